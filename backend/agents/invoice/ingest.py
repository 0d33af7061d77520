"""
Invoice ingestion: document bytes -> stored file + Invoice (+ derived Expense).

Shared by the chat upload route and the process_invoice_from_text tool.

Steps:
1. Extract fields with run_invoice_agent (one multimodal model call)
2. Upload the document to Supabase Storage under the user's folder
3. Insert the invoice (category "other", status "pending", is_processed)
4. Insert an expense referencing the invoice when a total was extracted

user_id always comes from the authenticated caller.
"""

import logging
from datetime import date
from typing import Any, Dict

from supabase import Client

from backend.agents.invoice.agent import run_invoice_agent
from backend.agents.reasoning import ReasoningEngine
from backend.config import settings
from backend.services.expense_service import create_expense
from backend.services.invoice_service import create_invoice
from backend.services.storage import upload_invoice_file
from backend.utils.constants import DEFAULT_INVOICE_CATEGORY, DEFAULT_INVOICE_STATUS

logger = logging.getLogger(__name__)


def invoice_file_type(mime_type: str) -> str:
    """'pdf' or 'image', as stored on the invoice row."""
    return "pdf" if "pdf" in mime_type else "image"


async def ingest_invoice_document(
    supabase_client: Client,
    engine: ReasoningEngine,
    user_id: str,
    file_bytes: bytes,
    file_name: str,
    mime_type: str,
) -> Dict[str, Any]:
    """
    Extract, store and persist one invoice document.

    Returns:
        The created invoice record

    Raises:
        InvoiceExtractionError: If the document cannot be turned into invoice data
        Exception: If the upload or an insert fails
    """
    extracted = await run_invoice_agent(engine, file_bytes, mime_type)
    stored = await upload_invoice_file(supabase_client, user_id, file_bytes, file_name, mime_type)

    invoice = await create_invoice(
        supabase_client,
        user_id,
        {
            "file_url": stored["url"],
            "file_name": file_name,
            "file_type": invoice_file_type(mime_type),
            "vendor_name": extracted["vendor_name"],
            "vendor_email": extracted["vendor_email"],
            "vendor_phone": extracted["vendor_phone"],
            "invoice_number": extracted["invoice_number"],
            "invoice_date": extracted["invoice_date"],
            "due_date": extracted["due_date"],
            "total_amount": extracted["total_amount"],
            "currency": extracted["currency"] or settings.DEFAULT_CURRENCY,
            "tax_amount": extracted["tax_amount"],
            "subtotal": extracted["subtotal"],
            "items": extracted["items"],
            "category": DEFAULT_INVOICE_CATEGORY,
            "status": DEFAULT_INVOICE_STATUS,
            "is_processed": True,
        },
    )

    if invoice.get("total_amount"):
        await create_expense(
            supabase_client,
            user_id,
            {
                "invoice_id": invoice["id"],
                "amount": invoice["total_amount"],
                "currency": invoice.get("currency"),
                "category": invoice.get("category"),
                "vendor": invoice.get("vendor_name"),
                "description": f"Invoice {invoice.get('invoice_number') or 'N/A'}",
                "date": invoice.get("invoice_date") or date.today().isoformat(),
            },
        )

    logger.info(
        f"Invoice ingested for user {user_id[:8]}: id={invoice.get('id')}, "
        f"file_type={invoice_file_type(mime_type)}, expense={bool(invoice.get('total_amount'))}"
    )
    return invoice
