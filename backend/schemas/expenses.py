"""
Pydantic schemas for expense filtering.

ExpenseFilter is the validated structure the query agent produces from a
natural-language request. It never carries a user_id: the caller's identity
is injected by the expense service, so model output cannot widen the scope.
"""

from datetime import date
from typing import List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class AmountRange(BaseModel):
    """Numeric bounds on expense amount. Accepts both `gt` and Mongo-style `$gt` keys."""
    model_config = ConfigDict(extra="forbid")

    gt: Optional[float] = Field(None, validation_alias=AliasChoices("gt", "$gt"))
    gte: Optional[float] = Field(None, validation_alias=AliasChoices("gte", "$gte"))
    lt: Optional[float] = Field(None, validation_alias=AliasChoices("lt", "$lt"))
    lte: Optional[float] = Field(None, validation_alias=AliasChoices("lte", "$lte"))


class DateRange(BaseModel):
    """Date bounds on expense date (YYYY-MM-DD)."""
    model_config = ConfigDict(extra="forbid")

    gt: Optional[date] = Field(None, validation_alias=AliasChoices("gt", "$gt"))
    gte: Optional[date] = Field(None, validation_alias=AliasChoices("gte", "$gte"))
    lt: Optional[date] = Field(None, validation_alias=AliasChoices("lt", "$lt"))
    lte: Optional[date] = Field(None, validation_alias=AliasChoices("lte", "$lte"))

    @field_validator("gt", "gte", "lt", "lte", mode="before")
    @classmethod
    def strip_time_component(cls, value):
        """Accept full ISO datetimes by keeping only the date part."""
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value


class ExpenseFilter(BaseModel):
    """
    Structured expense filter.

    Unknown top-level keys (e.g. a userId the model echoed back) are ignored.
    """
    model_config = ConfigDict(extra="ignore")

    amount: Optional[AmountRange] = Field(None, description="Amount bounds")
    currency: Optional[str] = Field(None, description="Currency code, e.g. USD")
    category: Optional[Union[str, List[str]]] = Field(
        None,
        validation_alias=AliasChoices("category", "categories"),
        description="One category or a list of categories",
    )
    vendor: Optional[str] = Field(None, description="Case-insensitive vendor substring")
    description: Optional[str] = Field(None, description="Case-insensitive description substring")
    date: Optional[DateRange] = Field(None, description="Date bounds")

    @field_validator("category", mode="before")
    @classmethod
    def unwrap_in_operator(cls, value):
        """Accept {"$in": [...]} / {"in": [...]} as a category list."""
        if isinstance(value, dict):
            for key in ("$in", "in"):
                if key in value:
                    return value[key]
            raise ValueError("category must be a string, a list, or an {'$in': [...]} object")
        return value

    @field_validator("vendor", "description", mode="before")
    @classmethod
    def unwrap_regex_operator(cls, value):
        """Accept {"$regex": "..."} as a plain substring match."""
        if isinstance(value, dict):
            for key in ("$regex", "regex"):
                if key in value:
                    return value[key]
            raise ValueError("text filters must be a string or a {'$regex': ...} object")
        return value

    @property
    def categories(self) -> List[str]:
        if self.category is None:
            return []
        if isinstance(self.category, str):
            return [self.category]
        return list(self.category)
