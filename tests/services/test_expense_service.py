"""
Tests for expense persistence and ExpenseFilter translation.
"""

from datetime import date

import pytest

from backend.schemas.expenses import ExpenseFilter
from backend.services.expense_service import (
    create_expense,
    find_expenses,
    find_expenses_in_period,
    get_expense_by_id,
    update_expense,
)

USER_ID = "aaaaaaaa-0000-4000-8000-000000000001"
OTHER_USER = "bbbbbbbb-0000-4000-8000-000000000002"


@pytest.fixture
def store(make_supabase):
    return make_supabase(
        {
            "expense": [
                {"id": "e1", "user_id": USER_ID, "amount": 1500.0, "currency": "INR", "category": "software",
                 "vendor": "Amazon Web Services", "description": "hosting", "date": "2024-03-05"},
                {"id": "e2", "user_id": USER_ID, "amount": 80.0, "currency": "USD", "category": "office",
                 "vendor": "Staples", "description": "paper", "date": "2024-03-20"},
                {"id": "e3", "user_id": USER_ID, "amount": 400.0, "currency": "INR", "category": "marketing",
                 "vendor": "Meta Ads", "description": "campaign", "date": "2024-04-02"},
                {"id": "e4", "user_id": OTHER_USER, "amount": 9999.0, "currency": "INR", "category": "software",
                 "vendor": "Amazon Web Services", "description": "not mine", "date": "2024-03-06"},
            ]
        }
    )


def _ids(expenses):
    return sorted(expense["id"] for expense in expenses)


class TestFindExpenses:

    @pytest.mark.asyncio
    async def test_no_filter_returns_all_own_newest_first(self, store):
        expenses = await find_expenses(store, USER_ID)
        assert [expense["id"] for expense in expenses] == ["e3", "e2", "e1"]

    @pytest.mark.asyncio
    async def test_amount_range(self, store):
        expense_filter = ExpenseFilter.model_validate({"amount": {"$gt": 100, "lte": 1500}})
        assert _ids(await find_expenses(store, USER_ID, expense_filter)) == ["e1", "e3"]

    @pytest.mark.asyncio
    async def test_date_range(self, store):
        expense_filter = ExpenseFilter.model_validate({"date": {"gte": "2024-03-01", "lt": "2024-04-01T00:00:00Z"}})
        assert _ids(await find_expenses(store, USER_ID, expense_filter)) == ["e1", "e2"]

    @pytest.mark.asyncio
    async def test_vendor_substring_case_insensitive(self, store):
        expense_filter = ExpenseFilter.model_validate({"vendor": "amazon"})
        assert _ids(await find_expenses(store, USER_ID, expense_filter)) == ["e1"]

    @pytest.mark.asyncio
    async def test_category_list(self, store):
        expense_filter = ExpenseFilter.model_validate({"categories": ["Office", "marketing"]})
        assert _ids(await find_expenses(store, USER_ID, expense_filter)) == ["e2", "e3"]

    @pytest.mark.asyncio
    async def test_single_category_is_exact(self, store):
        expense_filter = ExpenseFilter.model_validate({"category": "soft%"})
        assert await find_expenses(store, USER_ID, expense_filter) == []

        expense_filter = ExpenseFilter.model_validate({"category": " Software "})
        assert _ids(await find_expenses(store, USER_ID, expense_filter)) == ["e1"]
        assert store.queries[-1].eq_filters["category"] == "software"

    @pytest.mark.asyncio
    async def test_wildcards_in_text_filters_match_literally(self, make_supabase):
        store = make_supabase(
            {
                "expense": [
                    {"id": "pct", "user_id": USER_ID, "amount": 5.0, "vendor": "100% Juice",
                     "description": "cost_center A", "date": "2024-03-01"},
                    {"id": "plain", "user_id": USER_ID, "amount": 5.0, "vendor": "100 Juice Bar",
                     "description": "costXcenter A", "date": "2024-03-02"},
                ]
            }
        )

        by_vendor = ExpenseFilter.model_validate({"vendor": "100%"})
        assert _ids(await find_expenses(store, USER_ID, by_vendor)) == ["pct"]

        by_description = ExpenseFilter.model_validate({"description": "cost_center"})
        assert _ids(await find_expenses(store, USER_ID, by_description)) == ["pct"]

        match_all = ExpenseFilter.model_validate({"vendor": "%"})
        assert _ids(await find_expenses(store, USER_ID, match_all)) == ["pct"]

    @pytest.mark.asyncio
    async def test_currency(self, store):
        expense_filter = ExpenseFilter.model_validate({"currency": "usd"})
        assert _ids(await find_expenses(store, USER_ID, expense_filter)) == ["e2"]

    @pytest.mark.asyncio
    async def test_period_helper(self, store):
        expenses = await find_expenses_in_period(store, USER_ID, date(2024, 3, 20), date(2024, 4, 30))
        assert _ids(expenses) == ["e2", "e3"]

    @pytest.mark.asyncio
    async def test_period_helper_open_ended(self, store):
        assert len(await find_expenses_in_period(store, USER_ID)) == 3


class TestSingleExpense:

    @pytest.mark.asyncio
    async def test_get_other_users_expense(self, store):
        assert await get_expense_by_id(store, USER_ID, "e4") is None
        assert (await get_expense_by_id(store, USER_ID, "e1"))["vendor"] == "Amazon Web Services"

    @pytest.mark.asyncio
    async def test_create_and_update(self, store):
        created = await create_expense(store, USER_ID, {"amount": 10.0, "invoice_id": "inv-1"})
        assert created["user_id"] == USER_ID

        updated = await update_expense(store, USER_ID, created["id"], {"category": "travel"})
        assert updated["category"] == "travel"

    @pytest.mark.asyncio
    async def test_update_other_users_expense(self, store):
        assert await update_expense(store, USER_ID, "e4", {"category": "travel"}) is None
