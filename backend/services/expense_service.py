"""
Expense persistence service.

CRITICAL RULES:
1. Every query is filtered by the authenticated user_id (explicit .eq on top of RLS).
2. ExpenseFilter never carries user_id; it is injected here.
3. Expenses derived from invoices keep a reference in invoice_id.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, cast

from supabase import Client

from backend.schemas.expenses import ExpenseFilter

logger = logging.getLogger(__name__)

EXPENSE_TABLE = "expense"

_RANGE_OPERATORS = ("gt", "gte", "lt", "lte")


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so model-supplied text only matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _apply_filter(query, expense_filter: ExpenseFilter):
    """Translate an ExpenseFilter into PostgREST filters on an existing query."""
    if expense_filter.amount:
        for op in _RANGE_OPERATORS:
            value = getattr(expense_filter.amount, op)
            if value is not None:
                query = getattr(query, op)("amount", value)

    if expense_filter.date:
        for op in _RANGE_OPERATORS:
            value = getattr(expense_filter.date, op)
            if value is not None:
                query = getattr(query, op)("date", value.isoformat())

    if expense_filter.currency:
        # ilike without wildcards is a case-insensitive equality
        query = query.ilike("currency", escape_like(expense_filter.currency))

    # Categories are stored lowercase
    categories = [c.strip().lower() for c in expense_filter.categories]
    if len(categories) == 1:
        query = query.eq("category", categories[0])
    elif categories:
        query = query.in_("category", categories)

    if expense_filter.vendor:
        query = query.ilike("vendor", f"%{escape_like(expense_filter.vendor)}%")
    if expense_filter.description:
        query = query.ilike("description", f"%{escape_like(expense_filter.description)}%")

    return query


async def find_expenses(
    supabase_client: Client,
    user_id: str,
    expense_filter: Optional[ExpenseFilter] = None,
) -> List[Dict[str, Any]]:
    """
    Find the user's expenses matching expense_filter, newest first.

    Args:
        supabase_client: Authenticated Supabase client
        user_id: The authenticated user's ID (always applied)
        expense_filter: Optional validated filter

    Returns:
        List of expense records belonging to user_id
    """
    query = (
        supabase_client.table(EXPENSE_TABLE)
        .select("*")
        .eq("user_id", user_id)
    )
    if expense_filter is not None:
        query = _apply_filter(query, expense_filter)

    result = query.order("date", desc=True).execute()

    expenses = cast(List[Dict[str, Any]], result.data or [])
    logger.info(f"Found {len(expenses)} expenses for user {user_id[:8]}")
    return expenses


async def find_expenses_in_period(
    supabase_client: Client,
    user_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Convenience wrapper for report/export date windows (inclusive bounds)."""
    expense_filter = None
    if start_date or end_date:
        expense_filter = ExpenseFilter.model_validate(
            {"date": {"gte": start_date, "lte": end_date}}
        )
    return await find_expenses(supabase_client, user_id, expense_filter)


async def get_expense_by_id(
    supabase_client: Client,
    user_id: str,
    expense_id: str,
) -> Optional[Dict[str, Any]]:
    """Fetch one expense; None if missing or owned by another user."""
    result = (
        supabase_client.table(EXPENSE_TABLE)
        .select("*")
        .eq("id", expense_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )

    if not result.data:
        logger.info(f"Expense {expense_id} not found for user {user_id[:8]}")
        return None

    return cast(Dict[str, Any], result.data[0])


async def create_expense(
    supabase_client: Client,
    user_id: str,
    expense_data: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Insert an expense record for user_id.

    Raises:
        Exception: If the database returns no row
    """
    record = {**expense_data, "user_id": user_id}

    result = supabase_client.table(EXPENSE_TABLE).insert(record).execute()

    if not result.data:
        raise Exception("Failed to create expense: no data returned")

    created = cast(Dict[str, Any], result.data[0])
    logger.info(f"Expense created: id={created.get('id')}, invoice_id={created.get('invoice_id')}")
    return created


async def update_expense(
    supabase_client: Client,
    user_id: str,
    expense_id: str,
    changes: Dict[str, Any],
) -> Optional[Dict[str, Any]]:
    """Patch an expense owned by user_id. Returns None if nothing matched."""
    logger.info(f"Updating expense {expense_id} for user {user_id[:8]}: fields={sorted(changes)}")

    result = (
        supabase_client.table(EXPENSE_TABLE)
        .update(changes)
        .eq("id", expense_id)
        .eq("user_id", user_id)
        .execute()
    )

    if not result.data:
        return None

    return cast(Dict[str, Any], result.data[0])
