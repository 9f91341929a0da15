"""
src/orchestrator/router.py

Router: picks the wire backend, runs the tool-calling loop, executes tools through the
host callback, and returns a tidy result.

One call goes through these states:

    Requesting --(tool calls)--> Executing --(results appended)--> Requesting
    Requesting --(plain text)--> done, FINAL_TEXT
    Executing, round == max   --> done, BUDGET_EXHAUSTED (a notice, not an error)

A transport failure while tools are on turns tools off and repeats the request
once. A rate limit (429) is raised straight away.
"""


import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Union

from config import MAX_TOOL_ROUNDS, Backend, Settings
from orchestrator import prompts
from orchestrator.errors import (
    BudgetExhaustedError,
    NoCredentialsError,
    OrchestratorError,
    RateLimitError,
    ToolExecutionError,
    TransportError,
)
from orchestrator.llm_gemini import GeminiChatBackend
from orchestrator.llm_openai import OpenAIChatBackend
from orchestrator.models import (
    AuditEntry,
    ConversationTurn,
    ModelReply,
    OrchestratorResult,
    Outcome,
    ToolCall,
    ToolResult,
)
from pipeline.models import Rule


logger = logging.getLogger(__name__)

ToolExecutor = Callable[[str, Dict[str, Any]], Union[Awaitable[Any], Any]]


# -------- Backend strategy -----------------------------------------------------
class ChatBackend(Protocol):
    """What the loop needs from a wire protocol. One instance per call."""

    def start(self, system_prompt: str, history: List[ConversationTurn]) -> None: ...

    async def complete(self, use_tools: bool) -> ModelReply: ...

    def record_tool_round(self, reply: ModelReply, results: List[ToolResult]) -> None: ...

    def record_text(self, text: str) -> None: ...

    def transcript(self) -> List[Dict[str, Any]]: ...


def select_backend(settings: Settings) -> ChatBackend:
    """
    Native Gemini when no base URL (or a googleapis.com one) is set,
    otherwise the OpenAI-compatible proxy.
    """

    if not settings.api_key:
        raise NoCredentialsError("API key not configured")

    if settings.backend is Backend.NATIVE:
        return GeminiChatBackend(settings)

    return OpenAIChatBackend(settings)


# -------- Tool execution bridge ------------------------------------------------
async def _execute_tool(execute_tool: ToolExecutor, call: ToolCall) -> ToolResult:
    """Run one tool call through the host callback; failures become failed results."""

    try:
        output = execute_tool(call.name, call.arguments)
        if inspect.isawaitable(output):
            output = await output
    except Exception as exc:
        err = ToolExecutionError(call.name, exc)
        logger.warning("Tool %s failed: %s", call.name, err)
        return ToolResult(invocation_id=call.id, name=call.name, success=False, error_message=str(err))

    return ToolResult(invocation_id=call.id, name=call.name, success=True, payload=output)


# -------- Orchestrate ----------------------------------------------------------
async def run(
    history: Sequence[ConversationTurn],
    rule_snapshot: Sequence[Rule],
    text_snapshot: str,
    settings: Settings,
    execute_tool: ToolExecutor,
    *,
    backend: Optional[ChatBackend] = None,
    max_tool_rounds: int = MAX_TOOL_ROUNDS,
    raise_on_budget: bool = False,
) -> OrchestratorResult:
    """
    Entry point: runs one user message through the tool-calling loop.

    The preamble is rendered here, once, from `rule_snapshot`/`text_snapshot`;
    tool calls change the live workspace but never the text already sent.

    Raises:
        NoCredentialsError: no API key and no backend supplied.
        RateLimitError: the endpoint answered 429.
        TransportError: the request failed again after the no-tools retry.
        BudgetExhaustedError: only with raise_on_budget=True; otherwise the
            result carries the "max turns" notice.
    """

    backend = backend or select_backend(settings)
    rules = [r.model_copy(deep=True) for r in rule_snapshot]
    system_prompt = prompts.build_system_prompt(rules, text_snapshot, settings.language)

    turns: List[ConversationTurn] = list(history)
    backend.start(system_prompt, turns)

    audit: List[AuditEntry] = []
    use_tools = True
    rounds = 0
    request_idx = 0
    last_text: Optional[str] = None

    while True:
        request_idx += 1
        try:
            reply = await backend.complete(use_tools)
        except RateLimitError as exc:
            audit.append(AuditEntry(step=f"model_request_{request_idx}", ok=False, detail=f"Rate limited: {exc}"))
            raise
        except TransportError as exc:
            if not use_tools:
                audit.append(AuditEntry(step=f"model_request_{request_idx}", ok=False, detail=str(exc)))
                raise
            logger.warning("Request %d failed (%s); retrying without tools", request_idx, exc)
            audit.append(AuditEntry(step="retry_without_tools", ok=False, detail=str(exc)))
            use_tools = False
            continue

        # Plain text: we are done
        if not reply.tool_calls:
            text = reply.text or ""

            if text and text == last_text:
                audit.append(AuditEntry(step="loop_breaker", ok=True, detail="Repeated assistant text: returning it."))
                return OrchestratorResult(
                    summary=text, outcome=Outcome.FINAL_TEXT, turns=turns,
                    messages=backend.transcript(), audit=audit,
                )

            if text:
                backend.record_text(text)
                turns.append(ConversationTurn(role="assistant", content=text))
            audit.append(AuditEntry(step=f"model_request_{request_idx}", ok=True, detail="No tool call: returning text."))

            return OrchestratorResult(
                summary=text or prompts.notice(settings.language, "no_content"),
                outcome=Outcome.FINAL_TEXT, turns=turns,
                messages=backend.transcript(), audit=audit,
            )

        # Execute each tool call in order, feed back results
        rounds += 1
        results: List[ToolResult] = []
        for call in reply.tool_calls:
            audit.append(AuditEntry(step="tool_call", ok=True, detail=f"Calling {call.name}", tool_call=call))
            result = await _execute_tool(execute_tool, call)
            audit.append(AuditEntry(
                step="tool_result", ok=result.success,
                detail=("ok" if result.success else result.error_message or "error"),
                tool_call=call, tool_result=result,
            ))
            results.append(result)

        backend.record_tool_round(reply, results)
        turns.append(ConversationTurn(
            role="assistant",
            content={"text": reply.text, "tool_calls": [c.model_dump() for c in reply.tool_calls]},
        ))
        turns.extend(ConversationTurn(role="tool-result", content=r.model_dump()) for r in results)

        if reply.text:
            last_text = reply.text

        if rounds >= max_tool_rounds:
            logger.info("Tool budget of %d rounds exhausted", max_tool_rounds)
            audit.append(AuditEntry(step="max_rounds_reached", ok=True, detail=f"Stopped after {rounds} tool rounds."))
            if raise_on_budget:
                raise BudgetExhaustedError(rounds)
            return OrchestratorResult(
                summary=prompts.notice(settings.language, "max_turns"),
                outcome=Outcome.BUDGET_EXHAUSTED, turns=turns,
                messages=backend.transcript(), audit=audit,
            )

async def send(
    history: Sequence[ConversationTurn],
    rule_snapshot: Sequence[Rule],
    text_snapshot: str,
    settings: Settings,
    execute_tool: ToolExecutor,
    **kwargs: Any,
) -> str:
    """
    User-facing wrapper around run(): always returns text in the display
    language, turning conversation-level failures into a single message.
    """

    language = settings.language

    try:
        result = await run(history, rule_snapshot, text_snapshot, settings, execute_tool, **kwargs)
    except NoCredentialsError:
        return prompts.notice(language, "no_api_key")
    except RateLimitError:
        return prompts.notice(language, "rate_limited")
    except BudgetExhaustedError:
        return prompts.notice(language, "max_turns")
    except OrchestratorError as exc:
        logger.error("Chat call failed: %s", exc)
        return prompts.notice(language, "communication_error", detail=str(exc) or "Unknown error")

    return result.summary
