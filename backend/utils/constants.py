"""
Domain constants shared by services, tools and schemas.
"""

# Defaults applied to invoices created from an uploaded document
DEFAULT_INVOICE_CATEGORY = "other"
DEFAULT_INVOICE_STATUS = "pending"

# Category label for expenses stored without one
UNCATEGORIZED = "uncategorized"

SUPPORTED_INVOICE_MIME_TYPES = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

MAX_UPLOAD_SIZE_MB = 10
