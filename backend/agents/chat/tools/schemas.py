"""
Input models for the chat assistant's tools.

Field descriptions are sent to the model as part of each tool declaration.
Model-facing names are camelCase aliases; handlers read snake_case attributes.
"""

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class QueryExpensesInput(ToolInput):
    query: str = Field(..., min_length=1, description="The natural language query describing what expenses to find")


class GenerateAnalyticsInput(ToolInput):
    request: str = Field(..., description="The user's request for analytics or insights")


class GetInvoicesInput(ToolInput):
    status: Optional[Literal["pending", "paid", "overdue"]] = Field(
        None, description="Filter by status: pending, paid, or overdue"
    )
    category: Optional[str] = Field(
        None, description="Filter by category: utilities, software, office, marketing, other"
    )
    search: Optional[str] = Field(None, description="Search by vendor name or invoice number")
    limit: int = Field(10, ge=1, description="Maximum number of invoices to return (default: 10)")

    @field_validator("status", "category", mode="before")
    @classmethod
    def normalize_filters(cls, value):
        if isinstance(value, str):
            return value.strip().lower() or None
        return value


class GetInvoiceDetailsInput(ToolInput):
    identifier: str = Field(..., min_length=1, description="Invoice ID or invoice number")


class DetectDuplicatesInput(ToolInput):
    threshold: float = Field(0.85, ge=0.0, le=1.0, description="Similarity threshold (0-1, default: 0.85)")


class GenerateReportInput(ToolInput):
    format: Literal["text", "summary"] = Field(
        "text", description="Report format: text (detailed) or summary (brief)"
    )
    start_date: Optional[date] = Field(None, alias="startDate", description="Start date for report (YYYY-MM-DD)")
    end_date: Optional[date] = Field(None, alias="endDate", description="End date for report (YYYY-MM-DD)")


class ExportCsvInput(ToolInput):
    start_date: Optional[date] = Field(None, alias="startDate", description="Start date for export (YYYY-MM-DD)")
    end_date: Optional[date] = Field(None, alias="endDate", description="End date for export (YYYY-MM-DD)")


class ProcessInvoiceInput(ToolInput):
    invoice_text: Optional[str] = Field(
        None, alias="invoiceText", description="The text content of the invoice to process"
    )
    file_url: Optional[str] = Field(None, alias="fileUrl", description="URL of an uploaded invoice file to process")
    file_name: Optional[str] = Field(None, alias="fileName", description="Name of the invoice file")


class UpdateInvoiceStatusInput(ToolInput):
    identifier: str = Field(..., min_length=1, description="Invoice ID or invoice number")
    status: Literal["pending", "paid", "overdue"] = Field(..., description="New status for the invoice")
    payment_method: Optional[str] = Field(
        None,
        alias="paymentMethod",
        description='Payment method used (e.g., "Credit Card", "Bank Transfer", "Cash")',
    )
    notes: Optional[str] = Field(None, description="Additional notes about the payment or status change")

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class UpdateExpenseCategoryInput(ToolInput):
    expense_id: str = Field(..., alias="expenseId", min_length=1, description="Expense ID")
    category: str = Field(
        ...,
        min_length=1,
        description="New category for the expense (e.g., utilities, software, office, marketing, other)",
    )


class SaveMemoryInput(ToolInput):
    key: str = Field(
        ...,
        min_length=1,
        description='A key/identifier for this memory (e.g., "name", "preference_report_frequency")',
    )
    value: str = Field(..., min_length=1, description="The actual information to remember")
    description: Optional[str] = Field(None, description="Optional description or context for this memory")
    type: Optional[str] = Field(None, description="Type of memory: personal_info, preference, fact, etc.")


class SearchMemoryInput(ToolInput):
    query: str = Field(..., min_length=1, description="The search query to find relevant memories")
    limit: int = Field(5, ge=1, description="Maximum number of results to return (default: 5)")


class MemoryKeyInput(ToolInput):
    key: str = Field(..., min_length=1, description="The key of the memory")
