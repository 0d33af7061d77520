"""
Tests for InvoiceAgent extraction and normalization.
"""

import pytest

from backend.agents.invoice import (
    InvoiceExtractionError,
    normalize_extracted_data,
    run_invoice_agent,
)


class TestNormalizeExtractedData:

    def test_numbers_are_parsed(self):
        data = normalize_extracted_data(
            {
                "vendor_name": "  Globex  ",
                "invoice_number": 42,
                "total_amount": "1,180.00",
                "tax_amount": 180,
                "subtotal": "1000",
                "items": [
                    {"description": "Widget", "quantity": "2", "unitPrice": "500", "amount": "1000"},
                    "not an item",
                ],
            }
        )

        assert data["vendor_name"] == "Globex"
        assert data["invoice_number"] == "42"
        assert data["total_amount"] == 1180.0
        assert data["tax_amount"] == 180.0
        assert data["subtotal"] == 1000.0
        assert data["items"] == [
            {"description": "Widget", "quantity": 2.0, "unit_price": 500.0, "amount": 1000.0}
        ]

    def test_missing_and_unparseable_values_are_none(self):
        data = normalize_extracted_data({"total_amount": "N/A", "currency": "", "items": "none"})

        assert data["total_amount"] is None
        assert data["currency"] is None
        assert data["vendor_email"] is None
        assert data["items"] == []


class TestRunInvoiceAgent:

    @pytest.mark.asyncio
    async def test_extracts_from_file(self, make_engine):
        engine = make_engine(
            file_response='Here you go:\n{"vendor_name": "Initech", "invoice_number": "IN-7", "total_amount": 99.5, "currency": "EUR"}'
        )

        data = await run_invoice_agent(engine, b"\x89PNG...", "image/png")

        assert data["vendor_name"] == "Initech"
        assert data["total_amount"] == 99.5
        assert engine.file_calls[0]["mime_type"] == "image/png"
        assert engine.file_calls[0]["bytes"] == b"\x89PNG..."
        assert engine.file_calls[0]["json_output"] is True

    @pytest.mark.asyncio
    async def test_empty_file_is_rejected(self, make_engine):
        engine = make_engine()

        with pytest.raises(InvoiceExtractionError):
            await run_invoice_agent(engine, b"", "application/pdf")
        assert engine.file_calls == []

    @pytest.mark.asyncio
    async def test_unparseable_reply_raises(self, make_engine):
        engine = make_engine(file_response="I could not read this document.")

        with pytest.raises(InvoiceExtractionError, match="Failed to parse AI response as JSON"):
            await run_invoice_agent(engine, b"%PDF", "application/pdf")
