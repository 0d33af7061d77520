"""
Service layer for the Invoice & Expense Copilot backend.

Contains persistence and integration code that:
- Scopes every data-store query to the authenticated user_id
- Wraps Supabase (invoices, expenses, chat sessions, file storage)
- Wraps Chroma for long-term user memory

Services act as the glue between routes/agents and external stores.
"""

from .chat_service import (
    append_turn,
    create_session,
    delete_message,
    delete_session,
    get_session,
    list_messages,
    list_sessions,
    load_recent_history,
    touch_session,
)
from .expense_service import (
    create_expense,
    find_expenses,
    find_expenses_in_period,
    get_expense_by_id,
    update_expense,
)
from .invoice_service import (
    create_invoice,
    get_all_invoices,
    get_invoice_by_id,
    get_invoice_by_number,
    get_processed_invoices,
    list_invoices,
    resolve_invoice,
    update_invoice,
)
from .memory_service import MemoryService, build_memory_service
from .storage import get_invoice_file_url, upload_invoice_file

__all__ = [
    "append_turn",
    "create_session",
    "delete_message",
    "delete_session",
    "get_session",
    "list_messages",
    "list_sessions",
    "load_recent_history",
    "touch_session",
    "create_expense",
    "find_expenses",
    "find_expenses_in_period",
    "get_expense_by_id",
    "update_expense",
    "create_invoice",
    "get_all_invoices",
    "get_invoice_by_id",
    "get_invoice_by_number",
    "get_processed_invoices",
    "list_invoices",
    "resolve_invoice",
    "update_invoice",
    "MemoryService",
    "build_memory_service",
    "get_invoice_file_url",
    "upload_invoice_file",
]
