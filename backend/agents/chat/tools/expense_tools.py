"""
Expense tools: natural-language queries, analytics, reports, CSV export and
category updates.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Optional

from backend.agents.analytics import calculate_stats, generate_analytics, generate_insights
from backend.agents.chat.tools.base import ToolContext, ToolDescriptor
from backend.agents.chat.tools.schemas import (
    ExportCsvInput,
    GenerateAnalyticsInput,
    GenerateReportInput,
    QueryExpensesInput,
    UpdateExpenseCategoryInput,
)
from backend.agents.query import query_expenses
from backend.config import settings
from backend.services.expense_service import find_expenses_in_period, update_expense
from backend.services.invoice_service import get_all_invoices
from backend.utils.constants import UNCATEGORIZED
from backend.utils.formatting import format_amount, format_date, format_number, parse_date

logger = logging.getLogger(__name__)

CSV_HEADER = "Date,Amount,Currency,Category,Vendor,Description"
TOP_VENDOR_COUNT = 5
RECENT_EXPENSE_COUNT = 10


def sanitize_csv_field(value: Any) -> str:
    """Commas become semicolons and line breaks become spaces (no quoting)."""
    return (
        str(value or "")
        .replace(",", ";")
        .replace("\r\n", " ")
        .replace("\n", " ")
        .replace("\r", " ")
    )


def build_expense_csv(expenses: List[Dict[str, Any]]) -> str:
    rows = [CSV_HEADER]
    for expense in expenses:
        rows.append(
            ",".join(
                [
                    format_date(expense.get("date")) if expense.get("date") else "",
                    f"{float(expense.get('amount') or 0):.2f}",
                    sanitize_csv_field(expense.get("currency") or settings.DEFAULT_CURRENCY),
                    sanitize_csv_field(expense.get("category")),
                    sanitize_csv_field(expense.get("vendor")),
                    sanitize_csv_field(expense.get("description")),
                ]
            )
        )
    return "\n".join(rows)


def _in_period(value: Any, start_date: Optional[date], end_date: Optional[date]) -> bool:
    if not start_date and not end_date:
        return True
    parsed = parse_date(value)
    if parsed is None:
        return False
    if start_date and parsed < start_date:
        return False
    if end_date and parsed > end_date:
        return False
    return True


def _top_vendors(
    expenses: List[Dict[str, Any]],
    invoices: List[Dict[str, Any]],
) -> List[tuple]:
    """Vendors ranked by combined spend across expenses and invoices."""
    by_vendor: Dict[str, float] = defaultdict(float)
    for expense in expenses:
        if expense.get("vendor"):
            by_vendor[expense["vendor"]] += float(expense.get("amount") or 0)
    for invoice in invoices:
        if invoice.get("vendor_name") and invoice.get("total_amount"):
            by_vendor[invoice["vendor_name"]] += float(invoice["total_amount"])
    return sorted(by_vendor.items(), key=lambda item: item[1], reverse=True)[:TOP_VENDOR_COUNT]


def build_expense_tools(context: ToolContext) -> List[ToolDescriptor]:
    """Expense tools bound to context.user_id."""

    async def query_expenses_tool(params: QueryExpensesInput) -> str:
        return await query_expenses(
            context.engine, context.supabase_client, context.user_id, params.query
        )

    async def generate_analytics_tool(params: GenerateAnalyticsInput) -> str:
        analytics = await generate_analytics(
            context.engine, context.supabase_client, context.user_id, params.request
        )
        stats = analytics["stats"]
        lines = [
            "Analytics Results:",
            "",
            f"Total Expenses: {format_number(stats['total_expenses'])}",
            f"Expense Count: {stats['expense_count']}",
            f"Average Expense: {format_number(stats['average_expense'])}",
        ]
        if stats["by_category"]:
            lines.append("")
            lines.append("By Category:")
            for category, amount in sorted(stats["by_category"].items(), key=lambda item: item[1], reverse=True):
                lines.append(f"- {category}: {format_number(amount)}")
        trends = analytics["chart_data"]["monthly_trends"]
        if trends:
            lines.append("")
            lines.append("Monthly Trend:")
            for point in trends:
                lines.append(f"- {point['month']}: {format_number(point['amount'])}")
        lines.append("")
        lines.append("Insights:")
        lines.append(analytics["insights"])
        return "\n".join(lines)

    async def generate_expense_report(params: GenerateReportInput) -> str:
        expenses = await find_expenses_in_period(
            context.supabase_client, context.user_id, params.start_date, params.end_date
        )
        invoices = [
            invoice
            for invoice in await get_all_invoices(context.supabase_client, context.user_id)
            if _in_period(invoice.get("invoice_date") or invoice.get("created_at"), params.start_date, params.end_date)
        ]

        if not expenses and not invoices:
            return "No expenses or invoices found for the specified period."

        stats = calculate_stats(expenses)
        total_invoices = sum(float(invoice.get("total_amount") or 0) for invoice in invoices)
        insights = await generate_insights(context.engine, stats, "Generate comprehensive expense report")

        lines = ["EXPENSE REPORT", f"Generated: {date.today().isoformat()}"]
        if params.start_date or params.end_date:
            start = params.start_date.isoformat() if params.start_date else "All time"
            end = params.end_date.isoformat() if params.end_date else "Present"
            lines.append(f"Period: {start} to {end}")

        lines += [
            "",
            "=== SUMMARY ===",
            f"Total Expenses: {format_number(stats['total_expenses'])}",
            f"Total Invoices: {format_number(total_invoices)}",
            f"Expense Count: {stats['expense_count']}",
            f"Invoice Count: {len(invoices)}",
            f"Average Expense: {format_number(stats['average_expense'])}",
        ]

        if stats["by_category"]:
            lines += ["", "=== BY CATEGORY ==="]
            for category, amount in sorted(stats["by_category"].items(), key=lambda item: item[1], reverse=True):
                lines.append(f"{category}: {format_number(amount)}")

        top_vendors = _top_vendors(expenses, invoices)
        if top_vendors:
            lines += ["", "=== TOP VENDORS ==="]
            for index, (vendor, amount) in enumerate(top_vendors, start=1):
                lines.append(f"{index}. {vendor}: {format_number(amount)}")

        lines += ["", "=== INSIGHTS ===", insights]

        if params.format == "text" and expenses:
            lines += ["", f"=== RECENT EXPENSES (Last {RECENT_EXPENSE_COUNT}) ==="]
            # find_expenses_in_period returns newest first
            for expense in expenses[:RECENT_EXPENSE_COUNT]:
                lines.append(
                    f"{format_date(expense.get('date'))} - {expense.get('vendor') or 'Unknown'}: "
                    f"{format_number(expense.get('amount'))} ({expense.get('category') or UNCATEGORIZED})"
                )

        return "\n".join(lines)

    async def export_csv_report(params: ExportCsvInput) -> str:
        expenses = await find_expenses_in_period(
            context.supabase_client, context.user_id, params.start_date, params.end_date
        )
        if not expenses:
            return "No expenses found for the specified period."

        logger.info(f"CSV export for user {context.user_id[:8]}: rows={len(expenses)}")
        return (
            f"CSV Export ({len(expenses)} expenses):\n\n"
            f"{build_expense_csv(expenses)}\n\n"
            "You can copy this data and save it as a .csv file."
        )

    async def update_expense_category(params: UpdateExpenseCategoryInput) -> str:
        category = params.category.strip().lower()
        updated = await update_expense(
            context.supabase_client, context.user_id, params.expense_id, {"category": category}
        )
        if updated is None:
            return f"Expense not found with ID: {params.expense_id}"

        return "\n".join(
            [
                "Expense category updated successfully!",
                "",
                f"Expense ID: {updated.get('id')}",
                f"Vendor: {updated.get('vendor') or 'N/A'}",
                f"Amount: {format_amount(updated.get('amount'), updated.get('currency'))}",
                f"New Category: {category}",
            ]
        )

    return [
        ToolDescriptor(
            name="query_expenses",
            description=(
                "Query and search expenses using natural language criteria (date, vendor, category, "
                'amount). Examples: "Show March expenses", "Find expenses over 1000", '
                '"What did I spend on software?"'
            ),
            input_model=QueryExpensesInput,
            handler=query_expenses_tool,
        ),
        ToolDescriptor(
            name="generate_analytics",
            description=(
                "Generate spending analytics, statistics, trends and insights across ALL expenses. "
                'Use this for questions about spending patterns, e.g. "What are my spending trends?"'
            ),
            input_model=GenerateAnalyticsInput,
            handler=generate_analytics_tool,
        ),
        ToolDescriptor(
            name="generate_expense_report",
            description=(
                "Generate a formatted expense report document (summary, category breakdown, top "
                "vendors, insights) optionally limited to a date range. Use this when users "
                "explicitly ask for a report or a detailed breakdown."
            ),
            input_model=GenerateReportInput,
            handler=generate_expense_report,
        ),
        ToolDescriptor(
            name="export_csv_report",
            description=(
                "Export expenses as CSV text, optionally limited to a date range. Use this when users "
                "ask to export data, download CSV, or get data in spreadsheet format."
            ),
            input_model=ExportCsvInput,
            handler=export_csv_report,
        ),
        ToolDescriptor(
            name="update_expense_category",
            description=(
                'Change the category of one expense by its ID. Examples: "Change expense 123 '
                'category to software", "Recategorize expense 123 as marketing"'
            ),
            input_model=UpdateExpenseCategoryInput,
            handler=update_expense_category,
        ),
    ]
