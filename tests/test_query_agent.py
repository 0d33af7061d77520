"""
Tests for the expense query agent: natural language -> ExpenseFilter -> summary.
"""

from datetime import date

import pytest

from backend.agents.query import (
    QueryTranslationError,
    format_query_results,
    query_expenses,
    translate_expense_query,
)
from backend.agents.query.prompts import build_query_translation_prompt
from backend.schemas.expenses import ExpenseFilter

USER_ID = "aaaaaaaa-0000-4000-8000-000000000001"


class TestTranslateExpenseQuery:

    @pytest.mark.asyncio
    async def test_parses_fenced_json(self, make_engine):
        engine = make_engine(
            text_responses=[
                '```json\n{"vendor": {"$regex": "aws"}, "date": {"$gte": "2024-03-01", "$lte": "2024-03-31"}}\n```'
            ]
        )

        expense_filter = await translate_expense_query(engine, "AWS in March", today=date(2024, 4, 2))

        assert expense_filter.vendor == "aws"
        assert expense_filter.date.gte == date(2024, 3, 1)
        assert expense_filter.date.lte == date(2024, 3, 31)
        assert "2024-04-02" in engine.text_prompts[0]
        assert "AWS in March" in engine.text_prompts[0]
        assert engine.json_requests == [True]

    @pytest.mark.asyncio
    async def test_category_list_operator(self, make_engine):
        engine = make_engine(text_responses=['{"category": {"$in": ["software", "office"]}}'])

        expense_filter = await translate_expense_query(engine, "software or office")

        assert expense_filter.categories == ["software", "office"]

    @pytest.mark.asyncio
    async def test_prose_reply_raises(self, make_engine):
        engine = make_engine(text_responses=["I am not sure what you mean."])

        with pytest.raises(QueryTranslationError):
            await translate_expense_query(engine, "???")

    @pytest.mark.asyncio
    async def test_invalid_filter_shape_raises(self, make_engine):
        engine = make_engine(text_responses=['{"amount": {"$between": [1, 2]}}'])

        with pytest.raises(QueryTranslationError, match="Invalid expense filter"):
            await translate_expense_query(engine, "between 1 and 2")

    @pytest.mark.asyncio
    async def test_translation_error_is_a_value_error(self, make_engine):
        engine = make_engine(text_responses=["[1, 2, 3]"])

        with pytest.raises(ValueError):
            await translate_expense_query(engine, "numbers")


def test_prompt_never_asks_for_user_id():
    prompt = build_query_translation_prompt("show march", date(2024, 4, 2))
    assert "userId" not in prompt
    assert "user_id" not in prompt


class TestFormatQueryResults:

    def test_empty(self):
        assert format_query_results([]) == "I couldn't find any expenses matching your query."

    def test_single_expense(self):
        result = format_query_results(
            [{"vendor": "AWS", "amount": 1250, "currency": "USD", "category": "software"}]
        )
        assert result == "Found 1 expense:\n\n• AWS - USD 1,250.00 (software)\n\nTotal: USD 1,250.00"

    def test_missing_fields(self):
        result = format_query_results([{"amount": None}])
        assert "• Unknown vendor - INR 0.00 (uncategorized)" in result

    def test_mixed_currencies_total_uses_default(self):
        result = format_query_results(
            [
                {"vendor": "A", "amount": 10, "currency": "USD"},
                {"vendor": "B", "amount": 5, "currency": "EUR"},
            ]
        )
        assert result.endswith("Total: INR 15.00")

    def test_total_covers_all_rows_beyond_listing(self):
        expenses = [{"vendor": f"V{i}", "amount": 1, "currency": "INR"} for i in range(15)]
        result = format_query_results(expenses)
        assert "Total: INR 15.00" in result
        assert "(Showing first 10 of 15 results)" in result


@pytest.mark.asyncio
async def test_query_expenses_end_to_end(make_engine, make_supabase):
    store = make_supabase(
        {
            "expense": [
                {"user_id": USER_ID, "vendor": "AWS", "amount": 100.0, "currency": "USD",
                 "category": "software", "date": "2024-03-05"},
                {"user_id": USER_ID, "vendor": "Staples", "amount": 20.0, "currency": "USD",
                 "category": "office", "date": "2024-03-06"},
            ]
        }
    )
    engine = make_engine(text_responses=['{"category": "software"}'])

    result = await query_expenses(engine, store, USER_ID, "software spend")

    assert result.startswith("Found 1 expense:")
    assert "AWS" in result
    assert "Staples" not in result


def test_expense_filter_ignores_unknown_keys():
    expense_filter = ExpenseFilter.model_validate({"userId": "someone", "vendor": "x"})
    assert expense_filter.vendor == "x"
    assert not hasattr(expense_filter, "userId")
