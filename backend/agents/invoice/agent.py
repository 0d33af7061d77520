"""
InvoiceAgent Runner

Single-shot multimodal extraction: one Gemini call over the inline document,
JSON parsed from the reply and normalized. No tool calling, no persistence.
"""

import logging
from typing import Any, Dict, List, Optional

from backend.agents.invoice.prompts import build_invoice_extraction_prompt
from backend.agents.invoice.types import ExtractedInvoiceData, InvoiceLineItem
from backend.agents.reasoning import TEMPERATURE_STRICT, ReasoningEngine
from backend.utils.json_parsing import extract_json_object

logger = logging.getLogger(__name__)


class InvoiceExtractionError(Exception):
    """The document could not be turned into invoice data."""


def _to_float(value: Any) -> Optional[float]:
    # Falsy amounts (0, "", None) are treated as missing
    if not value:
        return None
    try:
        return float(str(value).replace(",", ""))
    except ValueError:
        return None


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _normalize_items(raw_items: Any) -> List[InvoiceLineItem]:
    if not isinstance(raw_items, list):
        return []

    items: List[InvoiceLineItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        items.append(
            {
                "description": _to_text(raw.get("description")),
                "quantity": _to_float(raw.get("quantity")),
                "unit_price": _to_float(raw.get("unit_price", raw.get("unitPrice"))),
                "amount": _to_float(raw.get("amount")),
            }
        )
    return items


def normalize_extracted_data(data: Dict[str, Any]) -> ExtractedInvoiceData:
    """Coerce a raw model payload into ExtractedInvoiceData (numbers parsed, missing -> None)."""
    return {
        "vendor_name": _to_text(data.get("vendor_name")),
        "vendor_email": _to_text(data.get("vendor_email")),
        "vendor_phone": _to_text(data.get("vendor_phone")),
        "invoice_number": _to_text(data.get("invoice_number")),
        "invoice_date": _to_text(data.get("invoice_date")),
        "due_date": _to_text(data.get("due_date")),
        "total_amount": _to_float(data.get("total_amount")),
        "currency": _to_text(data.get("currency")),
        "tax_amount": _to_float(data.get("tax_amount")),
        "subtotal": _to_float(data.get("subtotal")),
        "items": _normalize_items(data.get("items")),
    }


async def run_invoice_agent(
    engine: ReasoningEngine,
    file_bytes: bytes,
    mime_type: str,
) -> ExtractedInvoiceData:
    """
    Extract structured invoice data from a PDF or image.

    Args:
        engine: Reasoning engine with multimodal support
        file_bytes: Raw document bytes
        mime_type: Document MIME type (application/pdf, image/png, ...)

    Returns:
        Normalized ExtractedInvoiceData

    Raises:
        InvoiceExtractionError: Empty file, or a reply that is not a JSON object

    Security:
        - Does NOT log document bytes or extracted field values
        - Does NOT write to the database (persistence handled by the caller)
    """
    if not file_bytes:
        raise InvoiceExtractionError("No file provided for processing")

    logger.info(f"InvoiceAgent invoked (mime_type={mime_type}, bytes={len(file_bytes)})")

    response_text = await engine.generate_from_file(
        prompt=build_invoice_extraction_prompt(),
        file_bytes=file_bytes,
        mime_type=mime_type,
        temperature=TEMPERATURE_STRICT,
        json_output=True,
    )

    try:
        raw = extract_json_object(response_text)
    except ValueError as e:
        logger.error(f"Failed to parse InvoiceAgent response as JSON: {e}")
        raise InvoiceExtractionError(f"Failed to parse AI response as JSON: {e}") from e

    extracted = normalize_extracted_data(raw)
    logger.info(
        f"InvoiceAgent completed: has_number={extracted['invoice_number'] is not None}, "
        f"has_total={extracted['total_amount'] is not None}, items={len(extracted['items'])}"
    )
    return extracted
