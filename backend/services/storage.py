"""
Supabase Storage service for uploaded invoice documents.

Files live under invoices/{user_id}/{uuid}.{ext} in the configured bucket;
the invoice record keeps a signed URL and the storage path.
"""

import logging
import mimetypes
from typing import Optional, TypedDict
from uuid import uuid4

from supabase import Client

from backend.config import settings
from backend.utils.constants import SUPPORTED_INVOICE_MIME_TYPES

logger = logging.getLogger(__name__)

SIGNED_URL_TTL_SECONDS = 60 * 60 * 24 * 7


class StoredFile(TypedDict):
    storage_path: str
    url: str


def build_storage_path(user_id: str, filename: str, content_type: str) -> str:
    """invoices/{user_id}/{uuid}.{ext}, extension from filename or MIME type."""
    if "." in filename:
        file_ext = filename.rsplit(".", 1)[1].lower()
    else:
        file_ext = SUPPORTED_INVOICE_MIME_TYPES.get(content_type, "pdf")
    return f"invoices/{user_id}/{uuid4()}.{file_ext}"


def get_invoice_file_url(
    supabase_client: Client,
    storage_path: str,
    expires_in: int = SIGNED_URL_TTL_SECONDS,
) -> str:
    """
    Generate a signed URL for a stored invoice file.

    Raises:
        Exception: If URL generation fails
    """
    response = supabase_client.storage.from_(
        settings.SUPABASE_STORAGE_BUCKET
    ).create_signed_url(
        path=storage_path,
        expires_in=expires_in,
    )
    # supabase-py versions differ between dict and object responses
    if isinstance(response, dict):
        url = response.get("signedURL") or response.get("signed_url") or str(response)
    elif hasattr(response, "signed_url"):
        url = response.signed_url
    else:
        url = str(response)

    logger.debug(f"Generated signed URL for storage_path={storage_path}")
    return url


async def upload_invoice_file(
    supabase_client: Client,
    user_id: str,
    file_bytes: bytes,
    filename: str,
    content_type: Optional[str] = None,
) -> StoredFile:
    """
    Upload an invoice document and return its storage path and signed URL.

    Args:
        supabase_client: Authenticated Supabase client
        user_id: The authenticated user's ID (first path segment)
        file_bytes: Raw file bytes
        filename: Original filename (used for extension / MIME inference)
        content_type: Optional MIME type; inferred from filename when missing

    Raises:
        Exception: If the upload or URL generation fails

    Security:
        - Path includes user_id; Storage policies restrict access per user
    """
    if not content_type:
        content_type, _ = mimetypes.guess_type(filename)
        if not content_type:
            content_type = "application/pdf"

    storage_path = build_storage_path(user_id, filename, content_type)

    logger.info(
        f"Uploading invoice file for user {user_id[:8]}: "
        f"size={len(file_bytes)} bytes, content_type={content_type}, storage_path={storage_path}"
    )

    try:
        supabase_client.storage.from_(
            settings.SUPABASE_STORAGE_BUCKET
        ).upload(
            path=storage_path,
            file=file_bytes,
            file_options={"content-type": content_type},
        )
    except Exception as e:
        logger.error(f"Failed to upload invoice file to storage: {e}", exc_info=True)
        raise

    url = get_invoice_file_url(supabase_client, storage_path)
    return {"storage_path": storage_path, "url": url}
