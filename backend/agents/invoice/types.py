"""
InvoiceAgent Type Definitions

Output contract of the extraction collaborator. All types are JSON-serializable.
"""

from typing import List, Optional, TypedDict


class InvoiceLineItem(TypedDict, total=False):
    """Single line item from an invoice."""
    description: Optional[str]
    quantity: Optional[float]
    unit_price: Optional[float]
    amount: Optional[float]


class ExtractedInvoiceData(TypedDict):
    """Structured fields extracted from an invoice document."""
    vendor_name: Optional[str]
    vendor_email: Optional[str]
    vendor_phone: Optional[str]
    invoice_number: Optional[str]
    invoice_date: Optional[str]  # YYYY-MM-DD
    due_date: Optional[str]  # YYYY-MM-DD
    total_amount: Optional[float]
    currency: Optional[str]
    tax_amount: Optional[float]
    subtotal: Optional[float]
    items: List[InvoiceLineItem]
