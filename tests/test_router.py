"""Tests for the tool-calling conversation loop."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import pytest

from config import Language, Settings
from orchestrator import router
from orchestrator.errors import BudgetExhaustedError, NoCredentialsError, RateLimitError, TransportError
from orchestrator.llm_gemini import GeminiChatBackend
from orchestrator.llm_openai import OpenAIChatBackend
from orchestrator.models import ConversationTurn, ModelReply, Outcome, ToolCall
from tools.rules import execute_tool


SETTINGS = Settings(api_key="test-key")
HISTORY = [ConversationTurn(role="user", content="make it bold")]


class ScriptedBackend:
    """Backend double that plays back replies; the last one repeats forever."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests: List[bool] = []
        self.recorded: List[Any] = []
        self.system_prompts: List[str] = []

    def start(self, system_prompt, history):
        self.system_prompts.append(system_prompt)

    async def complete(self, use_tools):
        self.requests.append(use_tools)
        item = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(item, Exception):
            raise item
        return item

    def record_tool_round(self, reply, results):
        self.recorded.append(("tools", [c.name for c in reply.tool_calls], results))

    def record_text(self, text):
        self.recorded.append(("text", text))

    def transcript(self):
        return []


def tool_reply(*names: str, text: str = None) -> ModelReply:
    return ModelReply(
        text=text,
        tool_calls=[ToolCall(id=f"c{i}", name=n, arguments={"text": n}) for i, n in enumerate(names)],
    )


class Recorder:
    """Tool callback that records calls in order."""

    def __init__(self, fail_on: str = None):
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.fail_on = fail_on

    async def __call__(self, name: str, args: Dict[str, Any]):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        self.calls.append(name)
        if name == self.fail_on:
            raise ValueError(f"{name} exploded")
        return {"status": "ok", "name": name}


async def run(backend, executor=None, **kwargs):
    return await router.run(HISTORY, [], "source", SETTINGS, executor or Recorder(), backend=backend, **kwargs)


class TestLoop:
    """Tests for the loop's terminal outcomes."""

    @pytest.mark.asyncio
    async def test_plain_text_is_final(self):
        backend = ScriptedBackend(ModelReply(text="Done."))
        result = await run(backend)

        assert result.outcome is Outcome.FINAL_TEXT
        assert result.summary == "Done."
        assert backend.recorded == [("text", "Done.")]
        assert result.turns[-1] == ConversationTurn(role="assistant", content="Done.")

    @pytest.mark.asyncio
    async def test_budget_exhausted_after_exactly_five_rounds(self):
        backend = ScriptedBackend(tool_reply("updateSourceText"))
        executor = Recorder()
        result = await run(backend, executor)

        assert result.outcome is Outcome.BUDGET_EXHAUSTED
        assert result.summary == "Maximum tool calls reached"
        assert len(backend.requests) == 5
        assert len(executor.calls) == 5
        assert result.audit[-1].step == "max_rounds_reached"

    @pytest.mark.asyncio
    async def test_budget_can_raise(self):
        backend = ScriptedBackend(tool_reply("updateSourceText"))
        with pytest.raises(BudgetExhaustedError):
            await run(backend, raise_on_budget=True)

    @pytest.mark.asyncio
    async def test_loop_breaker_returns_repeated_text(self):
        backend = ScriptedBackend(
            tool_reply("addRule", text="Added the rule."),
            ModelReply(text="Added the rule."),
            ModelReply(text="never reached"),
        )
        result = await run(backend)

        assert result.summary == "Added the rule."
        assert result.outcome is Outcome.FINAL_TEXT
        assert len(backend.requests) == 2
        assert ("text", "Added the rule.") not in backend.recorded
        assert result.audit[-1].step == "loop_breaker"

    @pytest.mark.asyncio
    async def test_empty_text_gets_placeholder(self):
        result = await run(ScriptedBackend(ModelReply()))
        assert result.summary == "(no content)"


class TestTools:
    """Tests for tool execution inside the loop."""

    @pytest.mark.asyncio
    async def test_calls_run_sequentially_in_model_order(self):
        backend = ScriptedBackend(tool_reply("a", "b", "c"), ModelReply(text="ok"))
        executor = Recorder()
        await run(backend, executor)

        assert executor.calls == ["a", "b", "c"]
        assert executor.max_in_flight == 1
        _, names, results = backend.recorded[0]
        assert names == ["a", "b", "c"]
        assert [r.invocation_id for r in results] == ["c0", "c1", "c2"]

    @pytest.mark.asyncio
    async def test_tool_failure_is_wrapped_and_loop_continues(self):
        backend = ScriptedBackend(tool_reply("boom", "fine"), ModelReply(text="recovered"))
        result = await run(backend, Recorder(fail_on="boom"))

        _, _, (failed, ok) = backend.recorded[0]
        assert failed.success is False
        assert "boom exploded" in failed.error_message
        assert failed.wire_payload() == {"error": failed.error_message}
        assert ok.wire_payload() == {"result": "Success", "data": {"status": "ok", "name": "fine"}}
        assert result.summary == "recovered"

    @pytest.mark.asyncio
    async def test_sync_executor_supported(self):
        backend = ScriptedBackend(tool_reply("x"), ModelReply(text="ok"))
        await run(backend, lambda name, args: {"sync": name})

        _, _, (result,) = backend.recorded[0]
        assert result.payload == {"sync": "x"}

    @pytest.mark.asyncio
    async def test_snapshot_not_changed_by_tool_mutations(self, workspace):
        backend = ScriptedBackend(
            ModelReply(tool_calls=[ToolCall(id="1", name="addRule", arguments={"name": "Later", "regex": "x", "replace": "y"})]),
            ModelReply(text="added"),
        )
        snapshot = workspace.snapshot_rules()
        await router.run(HISTORY, snapshot, workspace.source_text, SETTINGS, execute_tool, backend=backend)

        assert len(workspace.rules) == 3
        assert len(backend.system_prompts) == 1
        assert "(2 total)" in backend.system_prompts[0]
        assert "Later" not in backend.system_prompts[0]


class TestTransportFailures:
    """Tests for the degraded retry and rate limiting."""

    @pytest.mark.asyncio
    async def test_retries_once_without_tools(self):
        backend = ScriptedBackend(TransportError("proxy rejected tools"), ModelReply(text="plain answer"))
        result = await run(backend)

        assert backend.requests == [True, False]
        assert result.summary == "plain answer"
        assert result.audit[0].step == "retry_without_tools"

    @pytest.mark.asyncio
    async def test_second_failure_surfaces(self):
        backend = ScriptedBackend(TransportError("down"))
        with pytest.raises(TransportError):
            await run(backend)
        assert backend.requests == [True, False]

    @pytest.mark.asyncio
    async def test_rate_limit_not_retried(self):
        backend = ScriptedBackend(RateLimitError())
        with pytest.raises(RateLimitError):
            await run(backend)
        assert backend.requests == [True]


class TestSend:
    """Tests for the user-facing wrapper."""

    @pytest.mark.asyncio
    async def test_missing_key(self):
        reply = await router.send(HISTORY, [], "", Settings(), Recorder())
        assert reply.startswith("Error: API Key not configured")

    @pytest.mark.asyncio
    async def test_rate_limit_message(self):
        reply = await router.send(HISTORY, [], "", SETTINGS, Recorder(), backend=ScriptedBackend(RateLimitError()))
        assert "429" in reply

    @pytest.mark.asyncio
    async def test_transport_message_localised(self):
        settings = Settings(api_key="k", language=Language.ZH)
        reply = await router.send(HISTORY, [], "", settings, Recorder(), backend=ScriptedBackend(TransportError("down")))
        assert reply.startswith("通信错误: down")

    @pytest.mark.asyncio
    async def test_budget_notice_localised(self):
        settings = Settings(api_key="k", language=Language.ZH)
        reply = await router.send(HISTORY, [], "", settings, Recorder(), backend=ScriptedBackend(tool_reply("x")))
        assert reply == "已达到最大工具调用次数"


class TestSelectBackend:
    """Tests for endpoint-based backend selection."""

    def test_no_base_url_is_native(self):
        assert isinstance(router.select_backend(Settings(api_key="k")), GeminiChatBackend)

    def test_googleapis_base_url_is_native(self):
        settings = Settings(api_key="k", base_url="https://generativelanguage.googleapis.com/")
        assert isinstance(router.select_backend(settings), GeminiChatBackend)

    def test_other_base_url_is_proxy(self):
        settings = Settings(api_key="k", base_url="https://proxy.example.com/")
        assert isinstance(router.select_backend(settings), OpenAIChatBackend)

    def test_no_key(self):
        with pytest.raises(NoCredentialsError):
            router.select_backend(Settings())
