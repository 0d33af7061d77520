"""
Invoice tools: listing, details, duplicate detection, processing uploaded
documents and status updates.

Every handler closes over ToolContext; user_id is never taken from arguments.
"""

import logging
from typing import Any, Dict, List, Tuple
from urllib.parse import urlparse

import httpx

from backend.agents.chat.tools.base import ToolContext, ToolDescriptor
from backend.agents.chat.tools.duplicates import find_duplicate_invoices
from backend.agents.chat.tools.schemas import (
    DetectDuplicatesInput,
    GetInvoiceDetailsInput,
    GetInvoicesInput,
    ProcessInvoiceInput,
    UpdateInvoiceStatusInput,
)
from backend.agents.invoice import ingest_invoice_document
from backend.services.invoice_service import (
    get_processed_invoices,
    list_invoices,
    resolve_invoice,
    update_invoice,
)
from backend.utils.constants import DEFAULT_INVOICE_CATEGORY, DEFAULT_INVOICE_STATUS
from backend.utils.formatting import format_amount, format_date

logger = logging.getLogger(__name__)

MAX_INVOICE_LIST = 50
DEFAULT_INVOICE_FILE_NAME = "invoice.pdf"


def format_invoice_summary(invoices: List[Dict[str, Any]]) -> str:
    if not invoices:
        return "No invoices found matching your criteria."

    lines = [f"Found {len(invoices)} invoice{'s' if len(invoices) > 1 else ''}:", ""]
    for invoice in invoices:
        vendor = invoice.get("vendor_name") or "Unknown"
        amount = format_amount(invoice.get("total_amount"), invoice.get("currency"))
        status = invoice.get("status") or DEFAULT_INVOICE_STATUS
        lines.append(f"• {vendor} - {amount} ({status}) - {format_date(invoice.get('invoice_date'))}")
        if invoice.get("invoice_number"):
            lines.append(f"  Invoice #: {invoice['invoice_number']}")
    return "\n".join(lines)


def format_invoice_details(invoice: Dict[str, Any]) -> str:
    lines = [
        "Invoice Details:",
        "",
        f"ID: {invoice.get('id')}",
        f"Vendor: {invoice.get('vendor_name') or 'N/A'}",
        f"Invoice Number: {invoice.get('invoice_number') or 'N/A'}",
        f"Date: {format_date(invoice.get('invoice_date'))}",
        f"Due Date: {format_date(invoice.get('due_date'))}",
        f"Amount: {format_amount(invoice.get('total_amount'), invoice.get('currency'))}",
        f"Status: {invoice.get('status') or DEFAULT_INVOICE_STATUS}",
        f"Category: {invoice.get('category') or DEFAULT_INVOICE_CATEGORY}",
    ]
    if invoice.get("payment_method"):
        lines.append(f"Payment Method: {invoice['payment_method']}")
    if invoice.get("notes"):
        lines.append(f"Notes: {invoice['notes']}")

    items = invoice.get("items") or []
    if items:
        lines.append("")
        lines.append("Items:")
        for index, item in enumerate(items, start=1):
            lines.append(
                f"{index}. {item.get('description') or 'N/A'} - "
                f"Qty: {item.get('quantity') or 0} x {item.get('unit_price') or 0} = {item.get('amount') or 0}"
            )
    return "\n".join(lines)


async def _fetch_invoice_file(context: ToolContext, file_url: str) -> Tuple[bytes, str]:
    """
    Download a file the user uploaded earlier.

    Raises:
        ValueError: For non-http(s) URLs or non-success responses
        httpx.HTTPError: On transport failures
    """
    if urlparse(file_url).scheme not in ("http", "https"):
        raise ValueError("Only http(s) file URLs can be processed")

    async with context.http_client_factory() as client:
        response = await client.get(file_url)

    if response.is_error:
        raise ValueError(f"Could not fetch file from URL: {response.reason_phrase or response.status_code}")

    mime_type = response.headers.get("content-type", "application/pdf").split(";", 1)[0].strip()
    return response.content, mime_type or "application/pdf"


def build_invoice_tools(context: ToolContext) -> List[ToolDescriptor]:
    """Invoice tools bound to context.user_id."""

    async def get_invoices(params: GetInvoicesInput) -> str:
        invoices = await list_invoices(
            context.supabase_client,
            context.user_id,
            status=params.status,
            category=params.category,
            search=params.search,
            limit=min(params.limit, MAX_INVOICE_LIST),
        )
        return format_invoice_summary(invoices)

    async def get_invoice_details(params: GetInvoiceDetailsInput) -> str:
        invoice = await resolve_invoice(context.supabase_client, context.user_id, params.identifier)
        if invoice is None:
            return f"Invoice not found with identifier: {params.identifier}"
        return format_invoice_details(invoice)

    async def detect_duplicate_invoices(params: DetectDuplicatesInput) -> str:
        invoices = await get_processed_invoices(context.supabase_client, context.user_id)
        if len(invoices) < 2:
            return "Not enough invoices to check for duplicates."

        matches = await find_duplicate_invoices(context.engine, invoices, params.threshold)
        if not matches:
            return "No duplicate invoices detected."

        lines = [f"Found {len(matches)} potential duplicate{'s' if len(matches) > 1 else ''}:", ""]
        for index, match in enumerate(matches, start=1):
            lines.append(f"{index}. Similarity: {match.similarity * 100:.0f}%")
            for label, invoice in (("Invoice 1", match.first), ("Invoice 2", match.second)):
                lines.append(
                    f"   {label}: {invoice.get('vendor_name') or 'Unknown'} - "
                    f"{invoice.get('invoice_number') or 'N/A'} - "
                    f"{format_amount(invoice.get('total_amount'), invoice.get('currency'))} "
                    f"(ID: {invoice.get('id')})"
                )
            lines.append(f"   Reason: {match.reason}")
            lines.append("")
        return "\n".join(lines).rstrip()

    async def process_invoice_from_text(params: ProcessInvoiceInput) -> str:
        if not params.invoice_text and not params.file_url:
            return "Error: Either invoiceText or fileUrl must be provided."
        if not params.file_url:
            return (
                "Error: Invoice text processing requires file upload. "
                "Please upload the invoice file first, then ask me to process it."
            )

        try:
            file_bytes, mime_type = await _fetch_invoice_file(context, params.file_url)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Invoice file fetch failed for user {context.user_id[:8]}: {e}")
            return f"Error fetching file: {e}"

        if not file_bytes:
            return "Error: No file data available to process."

        file_name = params.file_name or DEFAULT_INVOICE_FILE_NAME
        invoice = await ingest_invoice_document(
            context.supabase_client, context.engine, context.user_id, file_bytes, file_name, mime_type
        )

        return "\n".join(
            [
                "Invoice processed successfully!",
                "",
                f"Vendor: {invoice.get('vendor_name') or 'N/A'}",
                f"Invoice Number: {invoice.get('invoice_number') or 'N/A'}",
                f"Date: {format_date(invoice.get('invoice_date'))}",
                f"Amount: {format_amount(invoice.get('total_amount'), invoice.get('currency'))}",
                f"Status: {invoice.get('status')}",
                "",
                f"Invoice ID: {invoice.get('id')}",
            ]
        )

    async def update_invoice_status(params: UpdateInvoiceStatusInput) -> str:
        invoice = await resolve_invoice(context.supabase_client, context.user_id, params.identifier)
        if invoice is None:
            return f"Invoice not found with identifier: {params.identifier}"

        changes: Dict[str, Any] = {"status": params.status}
        if params.payment_method:
            changes["payment_method"] = params.payment_method
        if params.notes:
            changes["notes"] = params.notes

        updated = await update_invoice(context.supabase_client, context.user_id, invoice["id"], changes)
        if updated is None:
            return f"Invoice not found with identifier: {params.identifier}"

        lines = [
            "Invoice status updated successfully!",
            "",
            f"Invoice: {updated.get('vendor_name') or 'Unknown'} - {updated.get('invoice_number') or 'N/A'}",
            f"Status: {updated.get('status')}",
        ]
        if updated.get("payment_method"):
            lines.append(f"Payment Method: {updated['payment_method']}")
        if updated.get("notes"):
            lines.append(f"Notes: {updated['notes']}")
        lines.append(f"Amount: {format_amount(updated.get('total_amount'), updated.get('currency'))}")
        return "\n".join(lines)

    return [
        ToolDescriptor(
            name="get_invoices",
            description=(
                "Get a list of invoices. Use this when users ask to see, list or browse invoices. "
                "Can filter by status or category, or search by vendor name / invoice number."
            ),
            input_model=GetInvoicesInput,
            handler=get_invoices,
        ),
        ToolDescriptor(
            name="get_invoice_details",
            description=(
                "Get detailed information about ONE specific invoice by its ID or invoice number, "
                "including line items. Use this when users ask about a particular invoice."
            ),
            input_model=GetInvoiceDetailsInput,
            handler=get_invoice_details,
        ),
        ToolDescriptor(
            name="detect_duplicate_invoices",
            description=(
                "Detect potential duplicate invoices using similarity analysis. Use this when users "
                "ask about duplicates, similar invoices, or want to check for duplicate payments."
            ),
            input_model=DetectDuplicatesInput,
            handler=detect_duplicate_invoices,
        ),
        ToolDescriptor(
            name="process_invoice_from_text",
            description=(
                "Process an uploaded invoice file from its URL: extract the invoice data and create "
                "a new invoice record (and a matching expense). Use this when users want a newly "
                "uploaded invoice document processed. Plain pasted text cannot be processed."
            ),
            input_model=ProcessInvoiceInput,
            handler=process_invoice_from_text,
        ),
        ToolDescriptor(
            name="update_invoice_status",
            description=(
                "Update the status of an invoice (pending, paid, overdue), optionally with payment "
                'method and notes. Examples: "Mark invoice INV-001 as paid", '
                '"Set payment method for invoice 123 to bank transfer"'
            ),
            input_model=UpdateInvoiceStatusInput,
            handler=update_invoice_status,
        ),
    ]
