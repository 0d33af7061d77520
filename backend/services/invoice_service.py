"""
Invoice persistence service.

CRITICAL RULES:
1. Every query MUST be filtered by the acting user's user_id (explicit .eq on
   top of RLS). No function here may return or mutate another user's invoice.
2. user_id always comes from the authenticated request, never from model output.
3. Identifiers from the chat assistant are untrusted: id-shaped strings are
   looked up by id, everything else by invoice_number.
"""

import logging
import re
from typing import Any, Dict, List, Optional, cast

from supabase import Client

logger = logging.getLogger(__name__)

INVOICE_TABLE = "invoice"

_UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

# Characters that would break PostgREST's or=(...) filter syntax
_OR_FILTER_UNSAFE = re.compile(r"[,()]")


def is_invoice_id(identifier: str) -> bool:
    """True if identifier looks like an invoice primary key (UUID)."""
    return bool(_UUID_PATTERN.match(identifier.strip()))


async def list_invoices(
    supabase_client: Client,
    user_id: str,
    status: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 10,
) -> List[Dict[str, Any]]:
    """
    List the user's invoices, newest first.

    Args:
        supabase_client: Authenticated Supabase client
        user_id: The authenticated user's ID
        status: Optional status filter (pending, paid, overdue)
        category: Optional category filter
        search: Optional case-insensitive match on vendor name or invoice number
        limit: Maximum number of invoices to return

    Returns:
        List of invoice records belonging to user_id
    """
    logger.debug(
        f"Listing invoices for user {user_id[:8]} "
        f"(status={status}, category={category}, search={bool(search)}, limit={limit})"
    )

    query = (
        supabase_client.table(INVOICE_TABLE)
        .select("*")
        .eq("user_id", user_id)
    )

    if status:
        query = query.eq("status", status.lower())
    if category:
        query = query.eq("category", category.lower())
    if search:
        term = _OR_FILTER_UNSAFE.sub(" ", search).strip()
        if term:
            query = query.or_(
                f"vendor_name.ilike.%{term}%,invoice_number.ilike.%{term}%"
            )

    result = query.order("created_at", desc=True).limit(limit).execute()

    invoices = cast(List[Dict[str, Any]], result.data or [])
    logger.info(f"Fetched {len(invoices)} invoices for user {user_id[:8]}")
    return invoices


async def get_invoice_by_id(
    supabase_client: Client,
    user_id: str,
    invoice_id: str,
) -> Optional[Dict[str, Any]]:
    """
    Fetch a single invoice by its ID.

    Returns None if the invoice doesn't exist or belongs to another user.
    """
    result = (
        supabase_client.table(INVOICE_TABLE)
        .select("*")
        .eq("id", invoice_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )

    if not result.data:
        logger.info(f"Invoice {invoice_id} not found for user {user_id[:8]}")
        return None

    return cast(Dict[str, Any], result.data[0])


async def get_invoice_by_number(
    supabase_client: Client,
    user_id: str,
    invoice_number: str,
) -> Optional[Dict[str, Any]]:
    """Fetch the user's most recent invoice carrying invoice_number."""
    result = (
        supabase_client.table(INVOICE_TABLE)
        .select("*")
        .eq("invoice_number", invoice_number)
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )

    if not result.data:
        logger.info(f"Invoice number {invoice_number} not found for user {user_id[:8]}")
        return None

    return cast(Dict[str, Any], result.data[0])


async def resolve_invoice(
    supabase_client: Client,
    user_id: str,
    identifier: str,
) -> Optional[Dict[str, Any]]:
    """Resolve an invoice by ID (UUID-shaped identifier) or invoice number."""
    identifier = identifier.strip()
    if is_invoice_id(identifier):
        return await get_invoice_by_id(supabase_client, user_id, identifier)
    return await get_invoice_by_number(supabase_client, user_id, identifier)


async def get_processed_invoices(
    supabase_client: Client,
    user_id: str,
) -> List[Dict[str, Any]]:
    """All of the user's invoices that went through extraction successfully."""
    result = (
        supabase_client.table(INVOICE_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("is_processed", True)
        .order("created_at", desc=True)
        .execute()
    )
    return cast(List[Dict[str, Any]], result.data or [])


async def get_all_invoices(
    supabase_client: Client,
    user_id: str,
) -> List[Dict[str, Any]]:
    """All of the user's invoices (used for reports)."""
    result = (
        supabase_client.table(INVOICE_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .execute()
    )
    return cast(List[Dict[str, Any]], result.data or [])


async def create_invoice(
    supabase_client: Client,
    user_id: str,
    invoice_data: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Insert an invoice record for user_id.

    Any user_id present in invoice_data is overwritten with the authenticated one.

    Raises:
        Exception: If the database returns no row
    """
    record = {**invoice_data, "user_id": user_id}

    logger.info(
        f"Creating invoice for user {user_id[:8]}: "
        f"vendor={record.get('vendor_name')}, number={record.get('invoice_number')}"
    )

    result = supabase_client.table(INVOICE_TABLE).insert(record).execute()

    if not result.data:
        raise Exception("Failed to create invoice: no data returned")

    created_invoice = cast(Dict[str, Any], result.data[0])
    logger.info(f"Invoice created successfully: id={created_invoice.get('id')}")
    return created_invoice


async def update_invoice(
    supabase_client: Client,
    user_id: str,
    invoice_id: str,
    changes: Dict[str, Any],
) -> Optional[Dict[str, Any]]:
    """
    Patch an invoice owned by user_id.

    Returns:
        The updated invoice, or None if no invoice of this user matched.
    """
    logger.info(f"Updating invoice {invoice_id} for user {user_id[:8]}: fields={sorted(changes)}")

    result = (
        supabase_client.table(INVOICE_TABLE)
        .update(changes)
        .eq("id", invoice_id)
        .eq("user_id", user_id)
        .execute()
    )

    if not result.data:
        logger.warning(f"Invoice {invoice_id} update matched no rows for user {user_id[:8]}")
        return None

    return cast(Dict[str, Any], result.data[0])
