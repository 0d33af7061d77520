"""
Tests for invoice file storage (Supabase Storage).
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from backend.services.storage import build_storage_path, get_invoice_file_url, upload_invoice_file


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client with storage capability."""
    client = MagicMock()
    client.storage.from_.return_value.create_signed_url.return_value = {
        "signedURL": "https://example.supabase.co/storage/v1/object/sign/invoices/u/file.pdf?token=t"
    }
    return client


class TestUploadInvoiceFile:

    @pytest.mark.asyncio
    async def test_upload_returns_path_and_signed_url(self, mock_supabase_client):
        stored = await upload_invoice_file(
            supabase_client=mock_supabase_client,
            user_id="user-123",
            file_bytes=b"%PDF-1.7",
            filename="march.pdf",
            content_type="application/pdf",
        )

        assert stored["storage_path"].startswith("invoices/user-123/")
        assert stored["storage_path"].endswith(".pdf")
        assert stored["url"].startswith("https://example.supabase.co/storage/v1/object/sign/")
        mock_supabase_client.storage.from_.assert_called_with("invoices")

    @pytest.mark.asyncio
    async def test_upload_infers_mime_type_from_filename(self, mock_supabase_client):
        await upload_invoice_file(
            supabase_client=mock_supabase_client,
            user_id="user-123",
            file_bytes=b"png-bytes",
            filename="receipt.png",
        )

        kwargs = mock_supabase_client.storage.from_.return_value.upload.call_args.kwargs
        assert kwargs["file_options"] == {"content-type": "image/png"}
        assert kwargs["file"] == b"png-bytes"

    @pytest.mark.asyncio
    async def test_upload_failure_propagates(self, mock_supabase_client):
        mock_supabase_client.storage.from_.return_value.upload.side_effect = RuntimeError("bucket missing")

        with pytest.raises(RuntimeError):
            await upload_invoice_file(mock_supabase_client, "user-123", b"x", "a.pdf")


def test_storage_path_extension_from_mime_when_filename_has_none():
    path = build_storage_path("user-1", "scan", "image/jpeg")
    assert path.startswith("invoices/user-1/")
    assert path.endswith(".jpg")


def test_signed_url_object_response():
    client = MagicMock()
    client.storage.from_.return_value.create_signed_url.return_value = SimpleNamespace(
        signed_url="https://signed.example.com/x"
    )

    assert get_invoice_file_url(client, "invoices/u/x.pdf") == "https://signed.example.com/x"
