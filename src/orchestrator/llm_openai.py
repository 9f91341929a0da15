"""
src/orchestrator/llm_openai.py

OpenAI-compatible proxy backend for function calling.
- OpenAIChatBackend: keeps the Chat Completions message list for one call and
  posts it to {base_url}/v1/chat/completions each turn
- extract_tool_calls(): normalise tool calls from a response choice
"""


import json
import logging
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from config import DEFAULT_TEMPERATURE, Settings
from orchestrator.errors import RateLimitError, TransportError
from orchestrator.models import ConversationTurn, ModelReply, ToolCall, ToolResult
from tools.registry import openai_tool_specs


logger = logging.getLogger(__name__)


def make_client(settings: Settings) -> AsyncOpenAI:

    return AsyncOpenAI(api_key=settings.api_key, base_url=f"{settings.clean_base_url}/v1")

def extract_tool_calls(choice) -> List[ToolCall]:
    """
    Normalize tool calls from the OpenAI response choice.
    """

    out: List[ToolCall] = []
    tcs = getattr(choice.message, "tool_calls", None)

    if not tcs:
        return out

    for idx, tc in enumerate(tcs):
        if tc.type == "function" and tc.function:
            try:
                args = json.loads(tc.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning("Unparseable arguments for %s: %r", tc.function.name, tc.function.arguments)
                args = {}
            out.append(ToolCall(id=tc.id or f"call_{idx}", name=tc.function.name, arguments=args))

    return out


class OpenAIChatBackend:

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):

        self.settings = settings
        self.client = client or make_client(settings)
        self.messages: List[Dict[str, Any]] = []

    def start(self, system_prompt: str, history: List[ConversationTurn]) -> None:

        self.messages = [{"role": "system", "content": system_prompt}]
        for turn in history:
            # Tool results from earlier calls have no matching tool_calls here
            if turn.role in ("user", "assistant"):
                self.messages.append({"role": turn.role, "content": str(turn.content)})

    async def complete(self, use_tools: bool) -> ModelReply:
        """
        Low-level call to Chat Completions, tools included only when enabled.
        """

        kwargs: Dict[str, Any] = {
            "model": self.settings.model_name,
            "messages": list(self.messages),
            "temperature": DEFAULT_TEMPERATURE,
        }
        if use_tools:
            kwargs["tools"] = openai_tool_specs()
            kwargs["tool_choice"] = "auto"

        try:
            resp = await self.client.chat.completions.create(**kwargs)
        except openai.RateLimitError as exc:
            raise RateLimitError(exc.message or "Too many requests (429)") from exc
        except openai.APIStatusError as exc:
            if exc.status_code == 429:
                raise RateLimitError(exc.message or "Too many requests (429)") from exc
            raise TransportError(exc.message or f"HTTP {exc.status_code}", status=exc.status_code) from exc
        except openai.APIError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

        if not resp.choices:
            raise TransportError("No response from AI")

        choice = resp.choices[0]

        return ModelReply(text=choice.message.content, tool_calls=extract_tool_calls(choice), raw=choice.message)

    def record_tool_round(self, reply: ModelReply, results: List[ToolResult]) -> None:
        """Push the assistant's tool calls, then one "tool" message per result."""

        self.messages.append({
            "role": "assistant",
            "content": reply.text or None,
            "tool_calls": [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.arguments, ensure_ascii=False)},
                }
                for tc in reply.tool_calls
            ],
        })
        for result in results:
            self.messages.append({
                "role": "tool",
                "tool_call_id": result.invocation_id,
                "content": json.dumps(result.wire_payload(), ensure_ascii=False, default=str),
            })

    def record_text(self, text: str) -> None:

        self.messages.append({"role": "assistant", "content": text})

    def transcript(self) -> List[Dict[str, Any]]:

        return list(self.messages)
