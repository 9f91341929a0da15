"""
src/tools/exports.py - rule interchange (import/export) in the tavern script JSON format

Provides:
- export_rules(rules): rules -> list of interchange dicts
- export_json(rules, path): write the interchange JSON file
- import_rules(items, start_order): interchange dicts -> new Rule objects
- parse_rules(text) / load_rules(path): read interchange JSON (list or single object)

Field mapping:
    scriptName     <-> name
    findRegex      <-> pattern
    replaceString  <-> replacement
    disabled       <-> not active

Fields we do not understand are kept on Rule.extra and written back out.
The script-runner fields (placement, trimStrings, substituteRegex,
markdownOnly, promptOnly, runOnEdit) are always exported as fixed constants.
"""


import copy
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from pipeline.models import Rule


logger = logging.getLogger(__name__)

_KNOWN_FIELDS = {"id", "scriptName", "findRegex", "replaceString", "disabled"}

EXPORT_CONSTANTS: Dict[str, Any] = {
    "runOnEdit": True,
    "placement": [1, 2],
    "trimStrings": [],
    "substituteRegex": 0,
    "markdownOnly": False,
    "promptOnly": False,
}

EXPORT_FILENAME = "tavern_regex_export.json"


# --- Export --------------------------------------------------------------------
def export_rules(rules: Iterable[Rule]) -> List[Dict[str, Any]]:

    out = []
    for r in rules:
        item = dict(r.extra)
        item.update({
            "id": r.id,
            "scriptName": r.name,
            "findRegex": r.pattern,
            "replaceString": r.replacement,
            "disabled": not r.active,
        })
        item.update(copy.deepcopy(EXPORT_CONSTANTS))
        out.append(item)

    return out

def export_json(rules: Iterable[Rule], path: Union[str, Path]) -> str:
    """
    Write rules as an interchange JSON file.

    Returns: path
    """

    with open(path, "w", encoding="utf-8") as f:
        json.dump(export_rules(rules), f, indent=4, ensure_ascii=False)

    return str(path)


# --- Import --------------------------------------------------------------------
def _text(item: Dict[str, Any], key: str, default: str) -> str:
    """String field, with `default` only when the key is missing or null."""

    value = item.get(key)
    return default if value is None else str(value)

def import_rules(items: Union[Dict[str, Any], List[Dict[str, Any]]], start_order: int = 0) -> List[Rule]:
    """
    Convert interchange objects into new rules.

    Args:
        items: one object or a list of them.
        start_order: order given to the first imported rule (usually
            Workspace.next_order(), so imports land at the end).
    """

    if isinstance(items, dict):
        items = [items]

    batch = uuid.uuid4().hex[:8]
    rules = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"Item {idx} is not an object")
        rules.append(Rule(
            id=item.get("id") or f"imported-{batch}-{idx}",
            name=_text(item, "scriptName", f"Script {idx}"),
            pattern=_text(item, "findRegex", ""),
            replacement=_text(item, "replaceString", ""),
            active=not item.get("disabled", False),
            order=start_order + idx,
            extra={k: v for k, v in item.items() if k not in _KNOWN_FIELDS},
        ))
    logger.info("Imported %d rule(s)", len(rules))

    return rules

def parse_rules(content: str, start_order: int = 0) -> List[Rule]:
    """
    Parse interchange JSON text.

    Raises:
        ValueError: the content is not valid JSON or not an object/list.
    """

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON: {exc}") from exc

    if not isinstance(parsed, (dict, list)):
        raise ValueError("Expected a JSON object or array of rules")

    return import_rules(parsed, start_order=start_order)

def load_rules(path: Union[str, Path], start_order: int = 0) -> List[Rule]:

    with open(path, "r", encoding="utf-8") as f:
        return parse_rules(f.read(), start_order=start_order)
