"""
Tool catalog for the chat assistant.

create_tools(context) builds the full, fixed catalog for ONE acting user: a
map from tool name to ToolDescriptor whose handlers close over the context.
Build it per request; never share a catalog between users.
"""

from typing import Dict

from backend.agents.chat.tools.base import ToolContext, ToolDescriptor
from backend.agents.chat.tools.expense_tools import build_expense_tools
from backend.agents.chat.tools.invoice_tools import build_invoice_tools
from backend.agents.chat.tools.memory_tools import build_memory_tools

TOOL_NAMES = (
    "query_expenses",
    "generate_analytics",
    "get_invoices",
    "get_invoice_details",
    "detect_duplicate_invoices",
    "generate_expense_report",
    "export_csv_report",
    "process_invoice_from_text",
    "update_invoice_status",
    "update_expense_category",
    "save_memory",
    "search_memory",
    "get_memory",
    "delete_memory",
)


def create_tools(context: ToolContext) -> Dict[str, ToolDescriptor]:
    """
    Build the tool catalog scoped to context.user_id.

    Raises:
        ValueError: If two tools share a name
    """
    descriptors = [
        *build_expense_tools(context),
        *build_invoice_tools(context),
        *build_memory_tools(context),
    ]

    catalog: Dict[str, ToolDescriptor] = {}
    for descriptor in descriptors:
        if descriptor.name in catalog:
            raise ValueError(f"Duplicate tool name: {descriptor.name}")
        catalog[descriptor.name] = descriptor
    return catalog


__all__ = ["TOOL_NAMES", "ToolContext", "ToolDescriptor", "create_tools"]
