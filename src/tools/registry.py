"""
src/tools/registry.py - the tools exposed to the model

There are exactly three tools, all with string arguments:
- updateRule(id, regex?, replace?, name?): edit an existing rule
- addRule(name, regex, replace): append a new rule to the end of the chain
- updateSourceText(text): replace the source text under test

The declarations live in one table (TOOL_DECLARATIONS) and are rendered to
each backend's wire format from it:
- openai_tool_specs(): Chat Completions `tools=[...]` entries
- gemini_tools(): google-genai `types.Tool` with function declarations

Both renderings are built once and reused, so every request of every call
carries byte-for-byte the same declarations.
"""


import copy
from functools import lru_cache
from typing import Any, Dict, List, Tuple

from google.genai import types


UPDATE_RULE = "updateRule"
ADD_RULE = "addRule"
UPDATE_SOURCE_TEXT = "updateSourceText"

# name -> (description, {param: description}, required)
TOOL_DECLARATIONS: Dict[str, Tuple[str, Dict[str, str], List[str]]] = {
    UPDATE_RULE: (
        "Update an existing regex rule, identified by its exact ID.",
        {
            "id": "ID of the rule to update.",
            "regex": "New pattern, e.g. /abc/g.",
            "replace": "New HTML replacement string.",
            "name": "Descriptive name for the rule.",
        },
        ["id"],
    ),
    ADD_RULE: (
        "Add a brand new rule at the end of the pipeline.",
        {
            "name": "Rule name.",
            "regex": "Regex pattern.",
            "replace": "Replacement HTML.",
        },
        ["name", "regex", "replace"],
    ),
    UPDATE_SOURCE_TEXT: (
        "Replace the raw source text used for testing.",
        {
            "text": "The new source text.",
        },
        ["text"],
    ),
}


def tool_names() -> List[str]:

    return list(TOOL_DECLARATIONS)


# -------- OpenAI-compatible ----------------------------------------------------
def _tool_spec(name: str, description: str, properties: Dict[str, str], required: List[str]) -> Dict[str, Any]:
    """Build an OpenAI function spec."""

    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": {
                    param: {"type": "string", "description": desc}
                    for param, desc in properties.items()
                },
                "required": list(required),
            },
        },
    }

@lru_cache(maxsize=None)
def _openai_specs() -> Tuple[Dict[str, Any], ...]:

    return tuple(
        _tool_spec(name, desc, props, required)
        for name, (desc, props, required) in TOOL_DECLARATIONS.items()
    )

def openai_tool_specs() -> List[Dict[str, Any]]:
    """Chat Completions tool list. A fresh copy, so callers cannot alter the cached one."""

    return copy.deepcopy(list(_openai_specs()))


# -------- Native (google-genai) ------------------------------------------------
@lru_cache(maxsize=None)
def _gemini_tools() -> Tuple[types.Tool, ...]:

    declarations = [
        types.FunctionDeclaration(
            name=name,
            description=desc,
            parameters=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    param: types.Schema(type=types.Type.STRING, description=pdesc)
                    for param, pdesc in props.items()
                },
                required=list(required),
            ),
        )
        for name, (desc, props, required) in TOOL_DECLARATIONS.items()
    ]

    return (types.Tool(function_declarations=declarations),)

def gemini_tools() -> List[types.Tool]:

    return list(_gemini_tools())
