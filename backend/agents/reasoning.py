"""
Reasoning Engine Adapter - Gemini via the Google Gen AI SDK

Wraps the two request shapes the rest of the backend needs:

1. Plain text completion (sub-agents: query translation, analytics insights,
   duplicate comparison). Low temperature for structured output, higher for prose.
2. Tool-calling completion (chat orchestrator). Returns the model's text and/or
   the function calls it requested. Automatic function calling is disabled;
   the orchestrator executes tools itself.

The genai.Client is constructed once at process start (see build_reasoning_engine,
called from the FastAPI lifespan) and injected; there is no lazy module global.
Failed calls propagate as exceptions. The orchestrator is responsible for
turning them into a user-facing message.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from google import genai
from google.genai import types

from backend.agents.types import ChatMessage, ModelResponse, ToolCallRequest
from backend.config import settings

logger = logging.getLogger(__name__)

TEMPERATURE_STRICT = 0.1
TEMPERATURE_DEFAULT = 0.3
TEMPERATURE_CREATIVE = 0.5

_JSON_TYPE_MAP = {
    "string": types.Type.STRING,
    "number": types.Type.NUMBER,
    "integer": types.Type.INTEGER,
    "boolean": types.Type.BOOLEAN,
    "object": types.Type.OBJECT,
    "array": types.Type.ARRAY,
}


class ToolSpec(Protocol):
    """What the adapter needs to know about a tool to declare it to the model."""
    name: str
    description: str

    def parameters_schema(self) -> Dict[str, Any]:
        ...


class ReasoningEngine(Protocol):
    """Interface consumed by the orchestrator and sub-agents."""

    async def generate_text(
        self,
        prompt: str,
        temperature: float = TEMPERATURE_DEFAULT,
        json_output: bool = False,
    ) -> str:
        ...

    async def generate_from_file(
        self,
        prompt: str,
        file_bytes: bytes,
        mime_type: str,
        temperature: float = TEMPERATURE_STRICT,
        json_output: bool = False,
    ) -> str:
        ...

    async def generate_with_tools(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec],
        temperature: float = TEMPERATURE_DEFAULT,
    ) -> ModelResponse:
        ...


def json_schema_to_gemini(schema: Dict[str, Any]) -> types.Schema:
    """
    Convert a (flat) JSON schema, as produced by pydantic's model_json_schema(),
    into a Gemini types.Schema.

    Optional fields (anyOf [X, null]) become X with nullable=True.
    """
    if "anyOf" in schema:
        variants = [s for s in schema["anyOf"] if s.get("type") != "null"]
        merged = dict(variants[0]) if variants else {"type": "string"}
        if "description" in schema:
            merged.setdefault("description", schema["description"])
        converted = json_schema_to_gemini(merged)
        converted.nullable = True
        return converted

    json_type = schema.get("type", "string")
    kwargs: Dict[str, Any] = {"type": _JSON_TYPE_MAP.get(json_type, types.Type.STRING)}

    if schema.get("description"):
        kwargs["description"] = schema["description"]
    if schema.get("enum"):
        kwargs["enum"] = [str(value) for value in schema["enum"]]
    if json_type == "object":
        properties = schema.get("properties", {})
        kwargs["properties"] = {
            name: json_schema_to_gemini(prop) for name, prop in properties.items()
        }
        if schema.get("required"):
            kwargs["required"] = list(schema["required"])
    if json_type == "array" and "items" in schema:
        kwargs["items"] = json_schema_to_gemini(schema["items"])

    return types.Schema(**kwargs)


def _function_declaration(tool: ToolSpec) -> types.FunctionDeclaration:
    return types.FunctionDeclaration(
        name=tool.name,
        description=tool.description,
        parameters=json_schema_to_gemini(tool.parameters_schema()),
    )


def _to_contents(messages: Sequence[ChatMessage]) -> tuple[Optional[str], List[types.Content]]:
    """
    Map provider-neutral messages to Gemini contents.

    - system messages are joined into the system instruction
    - consecutive plain-text turns of the same role are merged into one Content
    - assistant turns are replayed from their raw Content when available so
      provider metadata (e.g. thought signatures) survives the round trip
    - consecutive tool results are grouped into one user Content of
      function_response parts, each tagged with its call id (only when the
      model issued that id; locally generated ids stay local)
    """
    system_parts: List[str] = []
    contents: List[types.Content] = []
    pending_responses: List[types.Part] = []
    provider_ids: set[str] = set()
    text_only: set[int] = set()

    def flush_responses() -> None:
        if pending_responses:
            contents.append(types.Content(role="user", parts=list(pending_responses)))
            pending_responses.clear()

    def append_text(role: str, text: str) -> None:
        # Consecutive plain-text turns of one role are merged; Gemini expects alternation
        previous = contents[-1] if contents else None
        if previous is not None and id(previous) in text_only and previous.role == role and previous.parts:
            previous.parts.append(types.Part(text=text))
            return
        content = types.Content(role=role, parts=[types.Part(text=text)])
        text_only.add(id(content))
        contents.append(content)

    for message in messages:
        if message.role == "tool":
            pending_responses.append(
                types.Part(
                    function_response=types.FunctionResponse(
                        id=message.tool_call_id if message.tool_call_id in provider_ids else None,
                        name=message.name or "",
                        response={"result": message.content},
                    )
                )
            )
            continue

        flush_responses()

        if message.role == "system":
            system_parts.append(message.content)
        elif message.role == "user":
            append_text("user", message.content)
        elif message.raw is None and not message.tool_calls:
            append_text("model", message.content)
        elif message.raw is not None:
            for part in message.raw.parts or []:
                if part.function_call is not None and part.function_call.id:
                    provider_ids.add(part.function_call.id)
            contents.append(message.raw)
        else:
            provider_ids.update(call.id for call in message.tool_calls)
            parts: List[types.Part] = []
            if message.content:
                parts.append(types.Part(text=message.content))
            for call in message.tool_calls:
                parts.append(
                    types.Part(
                        function_call=types.FunctionCall(id=call.id, name=call.name, args=call.args)
                    )
                )
            contents.append(types.Content(role="model", parts=parts or [types.Part(text="")]))

    flush_responses()

    system_instruction = "\n\n".join(system_parts) if system_parts else None
    return system_instruction, contents


def _parse_response(response: types.GenerateContentResponse) -> ModelResponse:
    """Extract text and function calls from the first candidate."""
    if not response.candidates or not response.candidates[0].content:
        logger.warning("Model returned no candidates")
        return ModelResponse()

    content = response.candidates[0].content
    text_chunks: List[str] = []
    tool_calls: List[ToolCallRequest] = []

    for index, part in enumerate(content.parts or []):
        if part.function_call is not None:
            call = part.function_call
            tool_calls.append(
                ToolCallRequest(
                    id=call.id or f"call_{index}",
                    name=call.name or "",
                    args=dict(call.args or {}),
                )
            )
        elif part.text and not part.thought:
            text_chunks.append(part.text)

    return ModelResponse(text="".join(text_chunks).strip(), tool_calls=tool_calls, raw=content)


def _completion_config(temperature: float, json_output: bool) -> types.GenerateContentConfig:
    if json_output:
        return types.GenerateContentConfig(
            temperature=temperature,
            response_mime_type="application/json",
        )
    return types.GenerateContentConfig(temperature=temperature)


class GeminiReasoningEngine:
    """Gemini-backed implementation of ReasoningEngine."""

    def __init__(self, client: genai.Client, model: str = "gemini-2.5-flash"):
        self._client = client
        self.model = model

    async def generate_text(
        self,
        prompt: str,
        temperature: float = TEMPERATURE_DEFAULT,
        json_output: bool = False,
    ) -> str:
        """Single-turn completion. json_output switches the model to JSON mode."""
        logger.debug(
            f"Text completion request (temperature={temperature}, json={json_output}, "
            f"prompt_chars={len(prompt)})"
        )

        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=_completion_config(temperature, json_output),
        )
        return (response.text or "").strip()

    async def generate_from_file(
        self,
        prompt: str,
        file_bytes: bytes,
        mime_type: str,
        temperature: float = TEMPERATURE_STRICT,
        json_output: bool = False,
    ) -> str:
        """Multimodal completion over an inline document (PDF or image)."""
        logger.debug(f"File completion request (mime_type={mime_type}, bytes={len(file_bytes)})")

        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=[
                types.Part.from_bytes(data=file_bytes, mime_type=mime_type),
                prompt,
            ],
            config=_completion_config(temperature, json_output),
        )
        return (response.text or "").strip()

    async def generate_with_tools(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec],
        temperature: float = TEMPERATURE_DEFAULT,
    ) -> ModelResponse:
        system_instruction, contents = _to_contents(messages)

        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            tools=[types.Tool(function_declarations=[_function_declaration(t) for t in tools])] if tools else None,
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

        logger.debug(
            f"Tool-calling request: contents={len(contents)}, tools={len(tools)}"
        )

        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=contents,  # type: ignore[arg-type]
            config=config,
        )
        parsed = _parse_response(response)

        logger.debug(
            f"Tool-calling response: text_chars={len(parsed.text)}, "
            f"tool_calls={[call.name for call in parsed.tool_calls]}"
        )
        return parsed


def create_genai_client() -> genai.Client:
    """
    Create the shared Gen AI client (chat, sub-agents and memory embeddings).

    Raises:
        ValueError: If GOOGLE_API_KEY is not configured.
    """
    if not settings.GOOGLE_API_KEY:
        raise ValueError(
            "GOOGLE_API_KEY is not configured. "
            "Please set it in your .env file to use the chat assistant."
        )
    return genai.Client(api_key=settings.GOOGLE_API_KEY)


def build_reasoning_engine(client: Optional[genai.Client] = None) -> GeminiReasoningEngine:
    """Construct the process-wide reasoning engine from settings."""
    client = client or create_genai_client()
    logger.info(f"Gemini reasoning engine initialized (model={settings.GEMINI_MODEL})")
    return GeminiReasoningEngine(client=client, model=settings.GEMINI_MODEL)
