"""
src/orchestrator/errors.py

Conversation-level error taxonomy.

Per-rule failures (PatternSyntaxError, SubstitutionError) live with the
pattern compiler and never reach this layer.
"""


from typing import Optional


class OrchestratorError(Exception):
    """Base class for failures surfaced by the chat orchestrator."""


class TransportError(OrchestratorError):
    """Network or HTTP failure talking to the model endpoint."""

    def __init__(self, message: str, *, status: Optional[int] = None, kind: str = "transport"):

        super().__init__(message)
        self.status = status
        self.kind = kind


class RateLimitError(TransportError):
    """HTTP 429. Never retried."""

    def __init__(self, message: str = "Too many requests (429)"):

        super().__init__(message, status=429, kind="rate_limit")


class ToolExecutionError(OrchestratorError):
    """The host's tool callback raised. Wrapped into a failed ToolResult."""

    def __init__(self, tool_name: str, cause: BaseException):

        self.tool_name = tool_name
        self.cause = cause
        super().__init__(str(cause) or cause.__class__.__name__)


class BudgetExhaustedError(OrchestratorError):
    """The model kept asking for tools after the last allowed round."""

    def __init__(self, rounds: int):

        self.rounds = rounds
        super().__init__(f"Stopped after {rounds} tool rounds")


class NoCredentialsError(OrchestratorError):
    """No API key configured."""


class EmptyResultError(OrchestratorError):
    """Model listing returned nothing usable."""
