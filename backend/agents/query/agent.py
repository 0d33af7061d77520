"""
Expense Query Agent

Natural language -> validated ExpenseFilter -> user-scoped expense lookup ->
human-readable summary.

Malformed model output (no JSON, wrong shape, unknown operators) raises
QueryTranslationError. It is not retried; the query_expenses tool turns it
into an error result the chat model can react to.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from supabase import Client

from backend.agents.query.prompts import build_query_translation_prompt
from backend.agents.reasoning import TEMPERATURE_DEFAULT, ReasoningEngine
from backend.schemas.expenses import ExpenseFilter
from backend.services.expense_service import find_expenses
from backend.utils.constants import UNCATEGORIZED
from backend.utils.formatting import format_amount
from backend.utils.json_parsing import extract_json_object

logger = logging.getLogger(__name__)

MAX_LISTED_EXPENSES = 10


class QueryTranslationError(ValueError):
    """The model's filter could not be parsed or validated."""


async def translate_expense_query(
    engine: ReasoningEngine,
    user_query: str,
    today: Optional[date] = None,
) -> ExpenseFilter:
    """
    Ask the model for a structured filter matching user_query.

    Raises:
        QueryTranslationError: If the reply is not a valid filter
    """
    prompt = build_query_translation_prompt(user_query, today or date.today())
    response_text = await engine.generate_text(
        prompt, temperature=TEMPERATURE_DEFAULT, json_output=True
    )

    try:
        raw_filter = extract_json_object(response_text)
    except ValueError as e:
        logger.warning(f"Query translation returned unparseable output: {e}")
        raise QueryTranslationError(f"Could not parse expense filter: {e}") from e

    try:
        expense_filter = ExpenseFilter.model_validate(raw_filter)
    except ValidationError as e:
        logger.warning(f"Query translation returned an invalid filter: {e.error_count()} errors")
        raise QueryTranslationError(f"Invalid expense filter: {e}") from e

    logger.debug(f"Translated expense filter: {expense_filter.model_dump(exclude_none=True)}")
    return expense_filter


def format_query_results(expenses: List[Dict[str, Any]]) -> str:
    """Summarize matching expenses: first 10 listed, total over all of them."""
    if not expenses:
        return "I couldn't find any expenses matching your query."

    count = len(expenses)
    total = sum(float(expense.get("amount") or 0) for expense in expenses)
    currencies = {expense.get("currency") for expense in expenses if expense.get("currency")}
    total_currency = currencies.pop() if len(currencies) == 1 else None

    lines = [f"Found {count} expense{'s' if count > 1 else ''}:", ""]
    for expense in expenses[:MAX_LISTED_EXPENSES]:
        vendor = expense.get("vendor") or "Unknown vendor"
        category = expense.get("category") or UNCATEGORIZED
        amount = format_amount(expense.get("amount"), expense.get("currency"))
        lines.append(f"• {vendor} - {amount} ({category})")

    lines.append("")
    lines.append(f"Total: {format_amount(total, total_currency)}")

    if count > MAX_LISTED_EXPENSES:
        lines.append("")
        lines.append(f"(Showing first {MAX_LISTED_EXPENSES} of {count} results)")

    return "\n".join(lines)


async def query_expenses(
    engine: ReasoningEngine,
    supabase_client: Client,
    user_id: str,
    user_query: str,
) -> str:
    """
    Answer a natural-language expense question for user_id.

    Raises:
        QueryTranslationError: If the query could not be translated
    """
    expense_filter = await translate_expense_query(engine, user_query)
    expenses = await find_expenses(supabase_client, user_id, expense_filter)
    return format_query_results(expenses)
