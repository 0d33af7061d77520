"""
Tests for the chat orchestration loop.

Covers:
- handle_user_message never raises (model errors, timeouts, aborts)
- at most max_iterations + 1 model calls per message
- concurrent tool results are tied to their originating call ids
- memory is a soft dependency
- remembered facts flow back into later conversations
"""

import asyncio

import pytest
from pydantic import BaseModel

from backend.agents.chat.orchestrator import (
    ABORTED_MESSAGE,
    FALLBACK_MESSAGE,
    TIMEOUT_MESSAGE,
    ChatOrchestrator,
    handle_user_message,
)
from backend.agents.chat.tools import ToolDescriptor
from backend.agents.types import ModelResponse, ToolCallRequest

USER_ID = "aaaaaaaa-0000-4000-8000-000000000001"


class DelayInput(BaseModel):
    delay: float = 0.0
    label: str = ""


def _delay_tools(_context):
    async def sleepy(params: DelayInput) -> str:
        await asyncio.sleep(params.delay)
        return f"result for {params.label}"

    return {
        "sleepy": ToolDescriptor(
            name="sleepy",
            description="Sleeps then echoes its label",
            input_model=DelayInput,
            handler=sleepy,
        )
    }


def _orchestrator(engine, memory_service, supabase_client, **kwargs):
    return ChatOrchestrator(
        engine=engine,
        memory_service=memory_service,
        supabase_client=supabase_client,
        **kwargs,
    )


class TestTotality:
    """handle_user_message always returns text."""

    @pytest.mark.asyncio
    async def test_plain_answer_without_tools(self, make_engine, memory_service, supabase_client):
        engine = make_engine([ModelResponse(text="Hi! How can I help with your invoices?")])

        answer = await _orchestrator(engine, memory_service, supabase_client).handle_user_message(
            "hello", [], USER_ID
        )

        assert answer == "Hi! How can I help with your invoices?"
        assert engine.model_calls == 1

    @pytest.mark.asyncio
    async def test_model_failure_becomes_error_text(self, make_engine, memory_service, supabase_client):
        engine = make_engine([RuntimeError("quota exceeded")])

        answer = await _orchestrator(engine, memory_service, supabase_client).handle_user_message(
            "show my invoices", [], USER_ID
        )

        assert isinstance(answer, str)
        assert "quota exceeded" in answer
        assert answer.startswith("I encountered an error processing your request")

    @pytest.mark.asyncio
    async def test_model_failure_after_tool_round(self, make_engine, memory_service, supabase_client):
        engine = make_engine(
            [
                ModelResponse(tool_calls=[ToolCallRequest(id="c1", name="sleepy", args={"label": "a"})]),
                RuntimeError("connection reset"),
            ]
        )

        answer = await _orchestrator(
            engine, memory_service, supabase_client, tools_factory=_delay_tools
        ).handle_user_message("go", [], USER_ID)

        assert "connection reset" in answer

    @pytest.mark.asyncio
    async def test_empty_model_text_falls_back(self, make_engine, memory_service, supabase_client):
        engine = make_engine([ModelResponse(text="")])

        answer = await _orchestrator(engine, memory_service, supabase_client).handle_user_message(
            "hmm", [], USER_ID
        )

        assert answer == FALLBACK_MESSAGE

    @pytest.mark.asyncio
    async def test_timeout_returns_timeout_text(self, make_engine, memory_service, supabase_client):
        async def slow(_messages):
            await asyncio.sleep(5)
            return ModelResponse(text="too late")

        engine = make_engine([slow])

        answer = await _orchestrator(
            engine, memory_service, supabase_client, timeout_seconds=0.05
        ).handle_user_message("report please", [], USER_ID)

        assert answer == TIMEOUT_MESSAGE

    @pytest.mark.asyncio
    async def test_abort_before_start_skips_model(self, make_engine, memory_service, supabase_client):
        engine = make_engine([ModelResponse(text="never")])
        abort_event = asyncio.Event()
        abort_event.set()

        answer = await _orchestrator(engine, memory_service, supabase_client).handle_user_message(
            "hello", [], USER_ID, abort_event=abort_event
        )

        assert answer == ABORTED_MESSAGE
        assert engine.model_calls == 0

    @pytest.mark.asyncio
    async def test_abort_during_model_call(self, make_engine, memory_service, supabase_client):
        abort_event = asyncio.Event()

        async def hang(_messages):
            abort_event.set()
            await asyncio.sleep(5)
            return ModelResponse(text="never")

        engine = make_engine([hang])

        answer = await _orchestrator(engine, memory_service, supabase_client).handle_user_message(
            "hello", [], USER_ID, abort_event=abort_event
        )

        assert answer == ABORTED_MESSAGE


class TestIterationBound:
    """At most max_iterations tool rounds."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_iterations", [1, 3, 5])
    async def test_model_calls_never_exceed_bound(
        self, make_engine, memory_service, supabase_client, max_iterations
    ):
        looping = [
            ModelResponse(tool_calls=[ToolCallRequest(id=f"c{i}", name="sleepy", args={"label": str(i)})])
            for i in range(20)
        ]
        engine = make_engine(looping)

        answer = await _orchestrator(
            engine,
            memory_service,
            supabase_client,
            max_iterations=max_iterations,
            tools_factory=_delay_tools,
        ).handle_user_message("loop forever", [], USER_ID)

        assert engine.model_calls == max_iterations + 1
        assert answer == FALLBACK_MESSAGE

    @pytest.mark.asyncio
    async def test_cap_returns_text_of_last_response(self, make_engine, memory_service, supabase_client):
        engine = make_engine(
            [
                ModelResponse(tool_calls=[ToolCallRequest(id="c1", name="sleepy", args={})]),
                ModelResponse(
                    text="Here is what I found so far.",
                    tool_calls=[ToolCallRequest(id="c2", name="sleepy", args={})],
                ),
            ]
        )

        answer = await _orchestrator(
            engine, memory_service, supabase_client, max_iterations=1, tools_factory=_delay_tools
        ).handle_user_message("go", [], USER_ID)

        assert engine.model_calls == 2
        assert answer == "Here is what I found so far."


class TestToolExecution:
    """Tool calls of one turn run concurrently and keep their ids."""

    @pytest.mark.asyncio
    async def test_results_correlate_with_call_ids(self, make_engine, memory_service, supabase_client):
        # C finishes first, A last
        calls = [
            ToolCallRequest(id="call-A", name="sleepy", args={"delay": 0.06, "label": "A"}),
            ToolCallRequest(id="call-B", name="sleepy", args={"delay": 0.03, "label": "B"}),
            ToolCallRequest(id="call-C", name="sleepy", args={"delay": 0.0, "label": "C"}),
        ]
        engine = make_engine([ModelResponse(tool_calls=calls), ModelResponse(text="All done.")])

        answer = await _orchestrator(
            engine, memory_service, supabase_client, tools_factory=_delay_tools
        ).handle_user_message("run three", [], USER_ID)

        assert answer == "All done."
        second_turn = engine.tool_calls_made[1]
        tool_messages = [message for message in second_turn if message.role == "tool"]
        assert {m.tool_call_id: m.content for m in tool_messages} == {
            "call-A": "result for A",
            "call-B": "result for B",
            "call-C": "result for C",
        }

        assistant_turn = second_turn[-4]
        assert assistant_turn.role == "assistant"
        assert [call.id for call in assistant_turn.tool_calls] == ["call-A", "call-B", "call-C"]

    @pytest.mark.asyncio
    async def test_tool_calls_run_concurrently(self, make_engine, memory_service, supabase_client):
        calls = [
            ToolCallRequest(id=f"c{i}", name="sleepy", args={"delay": 0.2, "label": str(i)})
            for i in range(3)
        ]
        engine = make_engine([ModelResponse(tool_calls=calls), ModelResponse(text="ok")])
        loop = asyncio.get_running_loop()

        started = loop.time()
        await _orchestrator(
            engine, memory_service, supabase_client, tools_factory=_delay_tools
        ).handle_user_message("go", [], USER_ID)

        assert loop.time() - started < 0.5

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(self, make_engine, memory_service, supabase_client):
        engine = make_engine(
            [
                ModelResponse(tool_calls=[ToolCallRequest(id="x1", name="launch_rockets", args={})]),
                ModelResponse(text="Sorry, I can't do that."),
            ]
        )

        answer = await _orchestrator(
            engine, memory_service, supabase_client, tools_factory=_delay_tools
        ).handle_user_message("launch", [], USER_ID)

        assert answer == "Sorry, I can't do that."
        tool_message = engine.tool_calls_made[1][-1]
        assert tool_message.role == "tool"
        assert tool_message.tool_call_id == "x1"
        assert tool_message.content == "Tool launch_rockets not found"

    @pytest.mark.asyncio
    async def test_full_catalog_is_declared(self, make_engine, memory_service, supabase_client):
        engine = make_engine([ModelResponse(text="hi")])

        await _orchestrator(engine, memory_service, supabase_client).handle_user_message(
            "hi", [], USER_ID
        )

        assert "query_expenses" in engine.declared_tools[0]
        assert "save_memory" in engine.declared_tools[0]
        assert len(engine.declared_tools[0]) == 14


class TestPromptAssembly:

    @pytest.mark.asyncio
    async def test_history_is_trimmed_to_start_with_user(self, make_engine, memory_service, supabase_client):
        engine = make_engine([ModelResponse(text="ok")])
        history = [
            {"role": "user", "content": "first question"},
            {"role": "assistant", "content": "first answer"},
            {"role": "user", "content": "second question"},
        ]

        await _orchestrator(
            engine, memory_service, supabase_client, history_limit=2
        ).handle_user_message("third question", history, USER_ID)

        sent = engine.tool_calls_made[0]
        assert sent[0].role == "system"
        assert [(m.role, m.content) for m in sent[1:]] == [
            ("user", "second question"),
            ("user", "third question"),
        ]

    @pytest.mark.asyncio
    async def test_relevant_memories_reach_system_prompt(self, make_engine, memory_service, supabase_client):
        await memory_service.save(USER_ID, value="Priya", key="name")
        engine = make_engine([ModelResponse(text="ok")])

        await _orchestrator(engine, memory_service, supabase_client).handle_user_message(
            "what is my name?", [], USER_ID
        )

        system_prompt = engine.tool_calls_made[0][0].content
        assert "Relevant user information:" in system_prompt
        assert "name: Priya" in system_prompt

    @pytest.mark.asyncio
    async def test_other_users_memories_stay_out(self, make_engine, memory_service, supabase_client):
        await memory_service.save("someone-else", value="Rahul", key="name")
        engine = make_engine([ModelResponse(text="ok")])

        await _orchestrator(engine, memory_service, supabase_client).handle_user_message(
            "what is my name?", [], USER_ID
        )

        assert "Rahul" not in engine.tool_calls_made[0][0].content


class TestMemorySoftFailure:

    @pytest.mark.asyncio
    async def test_unreachable_memory_still_answers(self, make_engine, broken_memory_service, supabase_client):
        engine = make_engine([ModelResponse(text="Your total spend is INR 0.00.")])

        answer = await _orchestrator(engine, broken_memory_service, supabase_client).handle_user_message(
            "how much did I spend?", [], USER_ID
        )

        assert answer == "Your total spend is INR 0.00."
        assert "Relevant user information" not in engine.tool_calls_made[0][0].content

    @pytest.mark.asyncio
    async def test_memory_tools_report_unavailability(self, make_engine, broken_memory_service, supabase_client):
        engine = make_engine(
            [
                ModelResponse(tool_calls=[ToolCallRequest(id="m1", name="search_memory", args={"query": "name"})]),
                ModelResponse(text="I don't remember anything yet."),
            ]
        )

        answer = await _orchestrator(engine, broken_memory_service, supabase_client).handle_user_message(
            "what do you know about me?", [], USER_ID
        )

        assert answer == "I don't remember anything yet."
        assert engine.tool_calls_made[1][-1].content == "No relevant memories found."


class TestRememberNameScenario:

    @pytest.mark.asyncio
    async def test_name_saved_then_recalled_in_later_conversation(
        self, make_engine, memory_service, supabase_client
    ):
        first = make_engine(
            [
                ModelResponse(
                    tool_calls=[
                        ToolCallRequest(id="s1", name="save_memory", args={"key": "name", "value": "Priya"})
                    ]
                ),
                lambda messages: ModelResponse(text=f"Got it! ({messages[-1].content})"),
            ]
        )

        reply = await handle_user_message(
            "My name is Priya",
            [],
            USER_ID,
            engine=first,
            memory_service=memory_service,
            supabase_client=supabase_client,
        )
        assert "Memory saved successfully: name = Priya" in reply

        def answer_from_memory(messages):
            result = messages[-1].content
            return ModelResponse(text="Your name is Priya." if "Priya" in result else "I don't know.")

        second = make_engine(
            [
                ModelResponse(tool_calls=[ToolCallRequest(id="g1", name="get_memory", args={"key": "name"})]),
                answer_from_memory,
            ]
        )

        answer = await handle_user_message(
            "What's my name?",
            [],
            USER_ID,
            engine=second,
            memory_service=memory_service,
            supabase_client=supabase_client,
        )

        assert "Priya" in answer
        assert second.tool_calls_made[1][-1].content == "Memory (name): name: Priya"
