"""
FastAPI application entry point for the invoice & expense copilot backend.

Process-wide collaborators (Gen AI client, reasoning engine, memory service)
are built once in the lifespan and stored on app.state; routes read them
from there.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.agents.reasoning import build_reasoning_engine, create_genai_client
from backend.config import settings
from backend.routes.chat import router as chat_router
from backend.routes.health import router as health_router
from backend.services.memory_service import build_memory_service
from backend.utils.logging import LOG_FORMAT, resolve_log_level

logging.basicConfig(level=resolve_log_level(), format=LOG_FORMAT)

logger = logging.getLogger(__name__)


def _get_cors_origins() -> list[str]:
    """
    Allowed CORS origins.

    Production uses CORS_ORIGINS as configured; any other environment allows
    all origins for local development.
    """
    if settings.is_production():
        origins = [origin.strip() for origin in settings.CORS_ORIGINS if origin.strip()]
        logger.info(f"CORS configured for production with {len(origins)} allowed origins")
        return origins

    logger.info(f"CORS configured for {settings.ENVIRONMENT}: allowing all origins")
    return ["*"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.reasoning_engine = None
    app.state.memory_service = None

    try:
        genai_client = create_genai_client()
    except ValueError as e:
        # The app still serves /health; chat routes answer 503 until configured
        logger.error(f"Chat assistant disabled: {e}")
    else:
        app.state.reasoning_engine = build_reasoning_engine(genai_client)
        app.state.memory_service = build_memory_service(genai_client)
        logger.info("Chat assistant initialized")

    yield

    logger.info("Shutting down")


app = FastAPI(
    title="Invoice Copilot API",
    description="Conversational assistant over a user's invoices and expenses",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances, which are not JSON serializable
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log request validation failures and return them in the API's error shape."""
    logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")

    return JSONResponse(
        status_code=422,
        content={"error": "validation_error", "details": jsonable_errors(exc)},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(chat_router)

logger.info("FastAPI app initialized successfully")
