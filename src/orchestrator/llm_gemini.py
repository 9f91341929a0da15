"""
src/orchestrator/llm_gemini.py

Native Gemini backend (google-genai).

The chat session is held as our own list of `types.Content`, sent whole with
the system instruction, temperature and function declarations on every
request. Tool results go back as function-response parts.
"""


import logging
from typing import Any, Dict, List, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from config import DEFAULT_TEMPERATURE, Settings
from orchestrator.errors import RateLimitError, TransportError
from orchestrator.models import ConversationTurn, ModelReply, ToolCall, ToolResult
from tools.registry import gemini_tools


logger = logging.getLogger(__name__)


class GeminiChatBackend:

    def __init__(self, settings: Settings, client: Optional[genai.Client] = None):

        self.settings = settings
        self.client = client or genai.Client(api_key=settings.api_key)
        self.system_prompt = ""
        self.contents: List[types.Content] = []

    def start(self, system_prompt: str, history: List[ConversationTurn]) -> None:

        self.system_prompt = system_prompt
        self.contents = [
            types.Content(
                role="model" if turn.role == "assistant" else "user",
                parts=[types.Part.from_text(text=str(turn.content))],
            )
            for turn in history
            if turn.role in ("user", "assistant")
        ]

    def _config(self, use_tools: bool) -> types.GenerateContentConfig:

        return types.GenerateContentConfig(
            system_instruction=self.system_prompt,
            temperature=DEFAULT_TEMPERATURE,
            tools=gemini_tools() if use_tools else None,
        )

    async def complete(self, use_tools: bool) -> ModelReply:

        try:
            response = await self.client.aio.models.generate_content(
                model=self.settings.model_name,
                contents=list(self.contents),
                config=self._config(use_tools),
            )
        except genai_errors.APIError as exc:
            if exc.code == 429:
                raise RateLimitError(exc.message or "Too many requests (429)") from exc
            raise TransportError(exc.message or f"HTTP {exc.code}", status=exc.code) from exc
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

        candidates = response.candidates or []
        if not candidates or candidates[0].content is None:
            logger.warning("Gemini returned no candidates")
            return ModelReply()

        content = candidates[0].content
        calls: List[ToolCall] = []
        texts: List[str] = []

        for idx, part in enumerate(content.parts or []):
            if part.function_call is not None:
                fc = part.function_call
                calls.append(ToolCall(id=fc.id or f"call_{idx}", name=fc.name or "", arguments=dict(fc.args or {})))
            elif part.text and not part.thought:
                texts.append(part.text)

        return ModelReply(text="".join(texts) or None, tool_calls=calls, raw=content)

    def record_tool_round(self, reply: ModelReply, results: List[ToolResult]) -> None:

        model_turn = reply.raw
        if model_turn is None:
            model_turn = types.Content(role="model", parts=[
                types.Part(function_call=types.FunctionCall(name=tc.name, args=tc.arguments))
                for tc in reply.tool_calls
            ])
        self.contents.append(model_turn)
        self.contents.append(types.Content(
            role="user",
            parts=[
                types.Part.from_function_response(name=result.name, response=result.wire_payload())
                for result in results
            ],
        ))

    def record_text(self, text: str) -> None:

        self.contents.append(types.Content(role="model", parts=[types.Part.from_text(text=text)]))

    def transcript(self) -> List[Dict[str, Any]]:

        return [c.model_dump(exclude_none=True) for c in self.contents]
