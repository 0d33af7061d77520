"""
Health check schema. GET /health is public.
"""

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"status": "ok", "service": "invoice-copilot-backend"}}
    )

    status: str = Field(
        default="ok",
        description="Health status of the API (always 'ok' if responding)",
        examples=["ok"],
    )
    service: str = Field(
        default="invoice-copilot-backend",
        description="Service name",
    )
