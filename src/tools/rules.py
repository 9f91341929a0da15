"""
src/tools/rules.py - rule & source-text tools for the chat model

This module provides:
- parse_operation(name, args): validate a model tool call into a typed operation
- apply_operation(ws, op): perform that operation on the workspace
- execute_tool(name, args): the async callback handed to the orchestrator

Operations are a closed set (UpdateRule | AddRule | UpdateSourceText), one per
tool in tools.registry, discriminated by the tool name. The JSON argument
names on the wire ("regex", "replace") stay as the model sees them and are
mapped onto Rule fields ("pattern", "replacement") here.

Failures (unknown tool, bad arguments, unknown rule id) are raised, not
returned; the orchestrator turns them into failed tool results and the
conversation carries on.
"""


from __future__ import annotations
from typing import Annotated, Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from tools import registry
from workspace.loader import Workspace, new_rule_id


# --- Session workspace handle --------------------------------------------------
_WS: Optional[Workspace] = None


def attach_workspace(ws: Workspace) -> None:
    """
    Attach the live Workspace that tool calls mutate.

    The app attaches its session workspace once at start-up; tests attach a
    fresh one per case.
    """

    global _WS
    _WS = ws

def _require_ws() -> Workspace:
    """Internal: ensure a Workspace is attached."""

    if _WS is None:
        raise RuntimeError("Workspace not attached. Call rules.attach_workspace(ws) first.")

    return _WS


# --- Operations ----------------------------------------------------------------
class UpdateRule(BaseModel):

    model_config = ConfigDict(extra="forbid")

    tool: Literal["updateRule"] = registry.UPDATE_RULE
    id: str
    regex: Optional[str] = None
    replace: Optional[str] = None
    name: Optional[str] = None


class AddRule(BaseModel):

    model_config = ConfigDict(extra="forbid")

    tool: Literal["addRule"] = registry.ADD_RULE
    name: str
    regex: str
    replace: str


class UpdateSourceText(BaseModel):

    model_config = ConfigDict(extra="forbid")

    tool: Literal["updateSourceText"] = registry.UPDATE_SOURCE_TEXT
    text: str


ToolOperation = Annotated[Union[UpdateRule, AddRule, UpdateSourceText], Field(discriminator="tool")]

_OPERATION = TypeAdapter(ToolOperation)


def parse_operation(name: str, args: Dict[str, Any]) -> ToolOperation:
    """
    Turn a (name, arguments) tool call into a typed operation.

    Raises:
        ValueError: unknown tool name.
        pydantic.ValidationError: arguments do not match the declaration.
    """

    if name not in registry.TOOL_DECLARATIONS:
        raise ValueError(f"Unknown tool: {name}")

    return _OPERATION.validate_python({**(args or {}), "tool": name})

def apply_operation(ws: Workspace, op: ToolOperation) -> Dict[str, Any]:
    """Perform one operation on the workspace and return the payload for the model."""

    if isinstance(op, UpdateRule):
        updates = {
            field: value
            for field, value in (("pattern", op.regex), ("replacement", op.replace), ("name", op.name))
            if value is not None
        }
        ws.update_rule(op.id, **updates)
        return {"status": "updated", "id": op.id}

    if isinstance(op, AddRule):
        rule = ws.add_rule(op.name, op.regex, op.replace, rule_id=new_rule_id("ai-rule"))
        return {"status": "created", "id": rule.id}

    if isinstance(op, UpdateSourceText):
        ws.set_source_text(op.text)
        return {"status": "updated_text"}

    raise TypeError(f"Unhandled tool operation: {type(op).__name__}")

async def execute_tool(name: str, args: Dict[str, Any]) -> Dict[str, Any]:
    """Tool callback for orchestrator.router.run() / send()."""

    ws = _require_ws()
    op = parse_operation(name, args)

    return apply_operation(ws, op)
