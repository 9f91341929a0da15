"""
src/orchestrator/models.py

Pydantic models for conversation turns, tool-calling I/O and audit entries.
"""


from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


class ConversationTurn(BaseModel):

    role: Literal["user", "assistant", "tool-result"]
    content: Any = ""


class ToolCall(BaseModel):

    id: Optional[str] = None
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):

    invocation_id: Optional[str] = None
    name: str
    success: bool
    payload: Any = None
    error_message: Optional[str] = None

    def wire_payload(self) -> Dict[str, Any]:
        """Body sent back to the model, identical for both backends."""

        if self.success:
            return {"result": "Success", "data": self.payload}
        return {"error": self.error_message or "error"}


class ModelReply(BaseModel):
    """One model response, normalised across backends."""

    text: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    raw: Any = Field(default=None, exclude=True)   # backend-native message, replayed verbatim


class Outcome(str, Enum):

    FINAL_TEXT = "final_text"
    BUDGET_EXHAUSTED = "budget_exhausted"


class AuditEntry(BaseModel):

    step: str
    ok: bool
    detail: str
    tool_call: Optional[ToolCall] = None
    tool_result: Optional[ToolResult] = None


class OrchestratorResult(BaseModel):

    summary: str
    outcome: Outcome
    turns: List[ConversationTurn]       # history plus the turns appended by this call
    messages: List[Dict[str, Any]]      # final wire transcript
    audit: List[AuditEntry]
