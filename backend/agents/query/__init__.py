"""
Expense query agent: natural-language questions answered from the expense table.
"""

from backend.agents.query.agent import (
    QueryTranslationError,
    format_query_results,
    query_expenses,
    translate_expense_query,
)

__all__ = [
    "QueryTranslationError",
    "translate_expense_query",
    "format_query_results",
    "query_expenses",
]
