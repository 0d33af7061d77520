"""
Expense analytics agent: aggregates, monthly trends and model-written insights.
"""

from backend.agents.analytics.agent import (
    INSIGHTS_UNAVAILABLE,
    AnalyticsResult,
    ChartData,
    ExpenseStats,
    calculate_stats,
    generate_analytics,
    generate_insights,
    prepare_chart_data,
)

__all__ = [
    "AnalyticsResult",
    "ChartData",
    "ExpenseStats",
    "INSIGHTS_UNAVAILABLE",
    "calculate_stats",
    "generate_insights",
    "prepare_chart_data",
    "generate_analytics",
]
