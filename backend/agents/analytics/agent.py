"""
Expense Analytics Agent

Deterministic aggregation over all of a user's expenses plus a short
model-written insights paragraph grounded in those aggregates.
"""

import json
import logging
from collections import defaultdict
from typing import Any, Dict, List, TypedDict

from supabase import Client

from backend.agents.reasoning import TEMPERATURE_CREATIVE, ReasoningEngine
from backend.services.expense_service import find_expenses
from backend.utils.constants import UNCATEGORIZED
from backend.utils.formatting import parse_date

logger = logging.getLogger(__name__)

INSIGHTS_UNAVAILABLE = "Unable to generate insights at this time."


class ExpenseStats(TypedDict):
    total_expenses: float
    expense_count: int
    average_expense: float
    by_category: Dict[str, float]
    by_vendor: Dict[str, float]


class MonthlyTrend(TypedDict):
    month: str  # YYYY-MM
    amount: float


class ChartData(TypedDict):
    monthly_trends: List[MonthlyTrend]


class AnalyticsResult(TypedDict):
    stats: ExpenseStats
    insights: str
    chart_data: ChartData


def calculate_stats(expenses: List[Dict[str, Any]]) -> ExpenseStats:
    """Totals, average and per-category / per-vendor sums."""
    total = 0.0
    by_category: Dict[str, float] = defaultdict(float)
    by_vendor: Dict[str, float] = defaultdict(float)

    for expense in expenses:
        amount = float(expense.get("amount") or 0)
        total += amount
        by_category[expense.get("category") or UNCATEGORIZED] += amount
        if expense.get("vendor"):
            by_vendor[expense["vendor"]] += amount

    count = len(expenses)
    return {
        "total_expenses": total,
        "expense_count": count,
        "average_expense": total / count if count else 0.0,
        "by_category": dict(by_category),
        "by_vendor": dict(by_vendor),
    }


def prepare_chart_data(expenses: List[Dict[str, Any]]) -> ChartData:
    """Monthly spend totals, oldest month first. Expenses without a date are skipped."""
    by_month: Dict[str, float] = defaultdict(float)
    for expense in expenses:
        expense_date = parse_date(expense.get("date"))
        if expense_date is None:
            continue
        by_month[expense_date.strftime("%Y-%m")] += float(expense.get("amount") or 0)

    return {
        "monthly_trends": [
            {"month": month, "amount": amount} for month, amount in sorted(by_month.items())
        ]
    }


def _build_insights_prompt(stats: ExpenseStats, user_request: str) -> str:
    return f"""Based on these expense statistics, provide 3-4 actionable insights:

{json.dumps(stats, indent=2)}

User asked: "{user_request}"

Provide insights that are:
- Specific and data-driven
- Actionable for a small business owner
- Easy to understand

Format as bullet points."""


async def generate_insights(
    engine: ReasoningEngine,
    stats: ExpenseStats,
    user_request: str,
) -> str:
    """Free-text insights; a failed model call degrades to a fixed sentence."""
    try:
        return await engine.generate_text(
            _build_insights_prompt(stats, user_request),
            temperature=TEMPERATURE_CREATIVE,
        )
    except Exception as e:
        logger.error(f"Insight generation failed: {e}")
        return INSIGHTS_UNAVAILABLE


async def generate_analytics(
    engine: ReasoningEngine,
    supabase_client: Client,
    user_id: str,
    user_request: str,
) -> AnalyticsResult:
    """Aggregate all of user_id's expenses and attach model insights."""
    expenses = await find_expenses(supabase_client, user_id)

    stats = calculate_stats(expenses)
    insights = await generate_insights(engine, stats, user_request)
    chart_data = prepare_chart_data(expenses)

    logger.info(
        f"Analytics generated for user {user_id[:8]}: expenses={stats['expense_count']}, "
        f"categories={len(stats['by_category'])}, months={len(chart_data['monthly_trends'])}"
    )
    return {"stats": stats, "insights": insights, "chart_data": chart_data}
