"""
Tool descriptor and per-request tool context.

A ToolDescriptor pairs a model-facing name/description/input schema with an
async handler. invoke() is total: argument validation errors and any exception
raised by the handler come back as "Error executing <tool>: <message>" text,
so the orchestration loop always receives a string.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Type

import httpx
from pydantic import BaseModel, ValidationError
from supabase import Client

from backend.agents.reasoning import ReasoningEngine
from backend.services.memory_service import MemoryService

logger = logging.getLogger(__name__)

FILE_FETCH_TIMEOUT_SECONDS = 30.0


def _default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=FILE_FETCH_TIMEOUT_SECONDS, follow_redirects=True)


@dataclass
class ToolContext:
    """
    Everything a tool may touch, bound to ONE acting user.

    Tools never receive a user_id from model arguments; every store call uses
    context.user_id.
    """
    user_id: str
    supabase_client: Client
    engine: ReasoningEngine
    memory_service: MemoryService
    http_client_factory: Callable[[], httpx.AsyncClient] = field(default=_default_http_client)


def _describe_validation_error(error: ValidationError) -> str:
    problems = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ())) or "arguments"
        problems.append(f"{location}: {detail.get('msg')}")
    return "Invalid arguments - " + "; ".join(problems)


@dataclass(frozen=True)
class ToolDescriptor:
    """One catalog entry: schema for the model, handler for execution."""
    name: str
    description: str
    input_model: Type[BaseModel]
    handler: Callable[[Any], Awaitable[str]]

    def parameters_schema(self) -> Dict[str, Any]:
        """JSON schema of the tool input (model-facing field names)."""
        return self.input_model.model_json_schema(by_alias=True)

    async def invoke(self, args: Optional[Dict[str, Any]]) -> str:
        """Validate args and run the handler. Never raises (except on cancellation)."""
        try:
            params = self.input_model.model_validate(args or {})
        except ValidationError as e:
            logger.warning(f"Tool {self.name} called with invalid arguments: {e.error_count()} errors")
            return f"Error executing {self.name}: {_describe_validation_error(e)}"

        try:
            return await self.handler(params)
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {e}", exc_info=True)
            return f"Error executing {self.name}: {e}"
