"""
Chat Orchestrator - bounded tool-calling loop

AWAITING_MODEL --(no tool calls)--> DONE
AWAITING_MODEL --(tool calls)--> EXECUTING_TOOLS --> AWAITING_MODEL --> ...

At most max_iterations tool rounds, so at most max_iterations + 1 model calls
per user message. All tool calls of one model turn run concurrently and their
results are tied back to the originating call ids.

handle_user_message is total: model failures, timeouts and aborts all come
back as user-facing text. Only task cancellation (CancelledError) propagates.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from supabase import Client

from backend.agents.chat.prompts import build_memory_query, build_system_prompt
from backend.agents.chat.tools import ToolContext, ToolDescriptor, create_tools
from backend.agents.reasoning import TEMPERATURE_DEFAULT, ReasoningEngine
from backend.agents.types import (
    ChatMessage,
    ConversationTurn,
    ModelResponse,
    OrchestrationState,
    ToolCallRequest,
    ToolCallResult,
)
from backend.config import settings
from backend.services.memory_service import MemoryService

logger = logging.getLogger(__name__)

T = TypeVar("T")

FALLBACK_MESSAGE = "I'm having trouble processing your request. Please try again."
TIMEOUT_MESSAGE = "Sorry, your request took too long to process. Please try again."
ABORTED_MESSAGE = "Your request was cancelled before I could finish."
ERROR_MESSAGE = "I encountered an error processing your request: {error}. Please try again."


class RequestAborted(Exception):
    """The caller set the abort event while the loop was running."""


async def _await_or_abort(awaitable: Awaitable[T], abort_event: Optional[asyncio.Event]) -> T:
    """Await awaitable, cancelling it and raising RequestAborted if abort_event fires first."""
    if abort_event is None:
        return await awaitable
    if abort_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestAborted()

    work = asyncio.ensure_future(awaitable)
    abort_waiter = asyncio.ensure_future(abort_event.wait())
    try:
        await asyncio.wait({work, abort_waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        abort_waiter.cancel()
        if not work.done():
            work.cancel()

    if work.cancelled() or not work.done():
        raise RequestAborted()
    return work.result()


def _history_messages(history: Sequence[ConversationTurn], limit: int) -> List[ChatMessage]:
    """Map the most recent `limit` turns, dropping leading assistant turns."""
    recent = list(history)[-limit:] if limit > 0 else []
    while recent and recent[0]["role"] != "user":
        recent.pop(0)

    messages = []
    for turn in recent:
        if turn["role"] == "user":
            messages.append(ChatMessage.user(turn["content"]))
        else:
            messages.append(ChatMessage.assistant(turn["content"]))
    return messages


class ChatOrchestrator:
    """
    Resolves one user message into one final answer.

    Long-lived collaborators (engine, memory, store client) are injected once;
    the tool catalog and loop state are rebuilt for every call.
    """

    def __init__(
        self,
        engine: ReasoningEngine,
        memory_service: MemoryService,
        supabase_client: Client,
        max_iterations: int = settings.CHAT_MAX_ITERATIONS,
        history_limit: int = settings.CHAT_HISTORY_LIMIT,
        memory_limit: int = settings.CHAT_MEMORY_LIMIT,
        timeout_seconds: Optional[float] = settings.CHAT_TIMEOUT_SECONDS,
        tools_factory: Callable[[ToolContext], Dict[str, ToolDescriptor]] = create_tools,
    ):
        self.engine = engine
        self.memory_service = memory_service
        self.supabase_client = supabase_client
        self.max_iterations = max_iterations
        self.history_limit = history_limit
        self.memory_limit = memory_limit
        self.timeout_seconds = timeout_seconds
        self.tools_factory = tools_factory

    async def handle_user_message(
        self,
        user_message: str,
        history: Sequence[ConversationTurn],
        user_id: str,
        abort_event: Optional[asyncio.Event] = None,
    ) -> str:
        """
        Answer user_message for user_id given prior turns (chronological).

        Returns:
            The assistant's final text. Never raises, except CancelledError.
        """
        try:
            if self.timeout_seconds:
                return await asyncio.wait_for(
                    self._run(user_message, history, user_id, abort_event),
                    timeout=self.timeout_seconds,
                )
            return await self._run(user_message, history, user_id, abort_event)
        except asyncio.TimeoutError:
            logger.warning(f"Chat request timed out after {self.timeout_seconds}s for user {user_id[:8]}")
            return TIMEOUT_MESSAGE
        except RequestAborted:
            logger.info(f"Chat request aborted by caller for user {user_id[:8]}")
            return ABORTED_MESSAGE
        except Exception as e:
            logger.error(f"Error in chat orchestrator: {e}", exc_info=True)
            return ERROR_MESSAGE.format(error=e)

    async def _run(
        self,
        user_message: str,
        history: Sequence[ConversationTurn],
        user_id: str,
        abort_event: Optional[asyncio.Event],
    ) -> str:
        memory_context = await self.memory_service.load_relevant_context(
            user_id, build_memory_query(user_message, history), self.memory_limit
        )

        state = OrchestrationState(
            messages=[
                ChatMessage.system(build_system_prompt(memory_context)),
                *_history_messages(history, self.history_limit),
                ChatMessage.user(user_message),
            ],
            max_iterations=self.max_iterations,
        )

        tools = self.tools_factory(
            ToolContext(
                user_id=user_id,
                supabase_client=self.supabase_client,
                engine=self.engine,
                memory_service=self.memory_service,
            )
        )
        tool_specs = list(tools.values())

        logger.debug(
            f"Chat request: user={user_id[:8]}, history={len(history)}, "
            f"messages={len(state.messages)}, has_memory={bool(memory_context)}"
        )

        response = await self._call_model(state, tool_specs, abort_event)
        final_text = ""

        while not state.exhausted:
            if not response.has_tool_calls:
                final_text = response.text
                break

            state.iteration_count += 1
            results = await _await_or_abort(
                self._execute_tool_calls(response.tool_calls, tools), abort_event
            )

            state.messages.append(
                ChatMessage.assistant(response.text, response.tool_calls, raw=response.raw)
            )
            state.messages.extend(ChatMessage.tool_result(result) for result in results)

            response = await self._call_model(state, tool_specs, abort_event)

        if not final_text:
            if response.has_tool_calls:
                logger.warning(
                    f"Chat loop hit the iteration cap ({state.max_iterations}) for user {user_id[:8]}; "
                    "returning best available text"
                )
            final_text = response.text or FALLBACK_MESSAGE

        logger.info(
            f"Chat request completed: user={user_id[:8]}, iterations={state.iteration_count}, "
            f"answer_chars={len(final_text)}"
        )
        return final_text

    async def _call_model(
        self,
        state: OrchestrationState,
        tools: Sequence[ToolDescriptor],
        abort_event: Optional[asyncio.Event],
    ) -> ModelResponse:
        response = await _await_or_abort(
            self.engine.generate_with_tools(state.messages, tools, temperature=TEMPERATURE_DEFAULT),
            abort_event,
        )
        logger.debug(
            f"Model turn {state.iteration_count}: tool_calls={[call.name for call in response.tool_calls]}"
        )
        return response

    async def _execute_tool_calls(
        self,
        calls: Sequence[ToolCallRequest],
        tools: Dict[str, ToolDescriptor],
    ) -> List[ToolCallResult]:
        """Run every call concurrently; result i belongs to calls[i]."""

        async def run(call: ToolCallRequest) -> ToolCallResult:
            tool = tools.get(call.name)
            if tool is None:
                logger.warning(f"Model requested unknown tool: {call.name}")
                return ToolCallResult(call.id, call.name, f"Tool {call.name} not found")

            logger.debug(f"Tool execution: {call.name} args={call.args}")
            content = await tool.invoke(call.args)
            logger.debug(f"Tool result: {call.name} chars={len(content)}")
            return ToolCallResult(call.id, call.name, content)

        return list(await asyncio.gather(*(run(call) for call in calls)))


async def handle_user_message(
    user_message: str,
    history: Sequence[ConversationTurn],
    user_id: str,
    *,
    engine: ReasoningEngine,
    memory_service: MemoryService,
    supabase_client: Client,
    abort_event: Optional[asyncio.Event] = None,
) -> str:
    """One-shot convenience wrapper around ChatOrchestrator with default settings."""
    orchestrator = ChatOrchestrator(
        engine=engine,
        memory_service=memory_service,
        supabase_client=supabase_client,
    )
    return await orchestrator.handle_user_message(user_message, history, user_id, abort_event)
