"""
Health check route. Public (no authentication); used by load balancers and
deployment checks.
"""

from fastapi import APIRouter

from backend.schemas.health import HealthResponse
from backend.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["system"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint",
    description="Public health check. Returns a simple status indicator.",
    status_code=200,
)
async def health_check() -> HealthResponse:
    logger.debug("Health check endpoint called")
    return HealthResponse()
