"""
Shared Agent Type Definitions

Provider-neutral message and tool-call structures shared by the orchestration
loop, the tool catalog and the reasoning engine adapter.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, TypedDict


class ConversationTurn(TypedDict):
    """One persisted conversation turn as handed to the orchestrator."""
    role: Literal["user", "assistant"]
    content: str


@dataclass
class ToolCallRequest:
    """A single tool invocation requested by the model in one turn."""
    id: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolCallResult:
    """Text result of one tool call, tied back to its originating request id."""
    tool_call_id: str
    name: str
    content: str


@dataclass
class ChatMessage:
    """
    Entry of the in-memory message list sent to the reasoning engine.

    role:
        system    - instructions (first entry only)
        user      - human turn
        assistant - model turn; may carry tool_calls
        tool      - result of one tool call (tool_call_id + name set)

    raw holds the provider's own representation of an assistant turn so it can
    be replayed verbatim on the next request.
    """
    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    raw: Any = None

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Optional[List[ToolCallRequest]] = None, raw: Any = None) -> "ChatMessage":
        return cls(role="assistant", content=content, tool_calls=list(tool_calls or []), raw=raw)

    @classmethod
    def tool_result(cls, result: ToolCallResult) -> "ChatMessage":
        return cls(role="tool", content=result.content, tool_call_id=result.tool_call_id, name=result.name)


@dataclass
class ModelResponse:
    """Output of a tool-calling completion: final text and/or tool-call requests."""
    text: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    raw: Any = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@dataclass
class OrchestrationState:
    """Per-invocation loop state. Created per request, never persisted."""
    messages: List[ChatMessage]
    max_iterations: int
    iteration_count: int = 0

    @property
    def exhausted(self) -> bool:
        return self.iteration_count >= self.max_iterations
