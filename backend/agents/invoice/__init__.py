"""
InvoiceAgent Package

Extraction collaborator: one multimodal Gemini call turns an invoice PDF or
image into ExtractedInvoiceData (run_invoice_agent never persists anything).
ingest_invoice_document wraps it for the chat upload route and the
process_invoice_from_text tool: store the file, then create the invoice and
its expense.

Usage:
    from backend.agents.invoice import run_invoice_agent

    extracted = await run_invoice_agent(engine, file_bytes, "application/pdf")
"""

from backend.agents.invoice.agent import (
    InvoiceExtractionError,
    normalize_extracted_data,
    run_invoice_agent,
)
from backend.agents.invoice.ingest import ingest_invoice_document, invoice_file_type
from backend.agents.invoice.types import ExtractedInvoiceData, InvoiceLineItem

__all__ = [
    "run_invoice_agent",
    "normalize_extracted_data",
    "InvoiceExtractionError",
    "ingest_invoice_document",
    "invoice_file_type",
    "ExtractedInvoiceData",
    "InvoiceLineItem",
]
