"""
src/workspace/loader.py

Live session state: the rule list and the source text.

Every change, whether typed by the user or requested by a model tool call,
goes through the Workspace methods below so subscribers (the debounced
pipeline scheduler) see each mutation the same way.
"""


import json
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from pipeline.models import Rule
from workspace.selectors import suggest_rule_ids


logger = logging.getLogger(__name__)

WORKSPACE_PATH = Path(__file__).resolve().parents[2] / "data" / "workspace.json"


class RuleNotFoundError(LookupError):
    """Raised when a rule id does not exist (deleted or never created)."""

    def __init__(self, rule_id: str, suggestions: Optional[List[str]] = None):

        self.rule_id = rule_id
        self.suggestions = suggestions or []
        msg = f"Rule ID not found: {rule_id}"
        if self.suggestions:
            msg += f" (closest: {', '.join(self.suggestions)})"
        super().__init__(msg)


def new_rule_id(prefix: str = "rule") -> str:

    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class Workspace:

    def __init__(self, source_text: str = "", rules: Optional[Iterable[Rule]] = None):

        self.source_text = source_text
        self.rules: List[Rule] = list(rules or [])
        self._listeners: List[Callable[["Workspace"], Any]] = []

    # --- Change notification ---------------------------------------------------
    def subscribe(self, listener: Callable[["Workspace"], Any]) -> None:

        self._listeners.append(listener)

    def _changed(self) -> None:

        for listener in self._listeners:
            listener(self)

    # --- Snapshots -------------------------------------------------------------
    def snapshot_rules(self) -> List[Rule]:
        """Deep copies, so later mutations do not leak into the snapshot."""

        return [r.model_copy(deep=True) for r in self.rules]

    def find(self, rule_id: str) -> Optional[Rule]:

        return next((r for r in self.rules if r.id == rule_id), None)

    def require(self, rule_id: str) -> Rule:

        rule = self.find(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id, suggest_rule_ids(self.rules, rule_id))

        return rule

    def next_order(self) -> int:
        """Order value that places a new rule after every existing one."""

        return max((r.order for r in self.rules), default=-1) + 1

    # --- Mutation entry points -------------------------------------------------
    def set_source_text(self, text: str) -> None:

        self.source_text = text
        self._changed()

    def add_rule(self, name: str, pattern: str = "", replacement: str = "", *, active: bool = True, rule_id: Optional[str] = None) -> Rule:
        """Append a rule at the end of the chain."""

        rule = Rule(
            id=rule_id or new_rule_id(),
            name=name,
            pattern=pattern,
            replacement=replacement,
            active=active,
            order=self.next_order(),
        )
        self.rules.append(rule)
        logger.debug("Added rule %s", rule.id)
        self._changed()

        return rule

    def update_rule(self, rule_id: str, **updates: Any) -> Rule:
        """
        Update fields of an existing rule in place.

        Raises:
            RuleNotFoundError: no rule with this id.
            ValueError: an update names a field rules do not have.
        """

        rule = self.require(rule_id)
        unknown = set(updates) - (set(Rule.model_fields) - {"id"})
        if unknown:
            raise ValueError(f"Unknown rule field(s): {sorted(unknown)}")

        for key, value in updates.items():
            setattr(rule, key, value)
        self._changed()

        return rule

    def toggle_rule(self, rule_id: str) -> Rule:

        rule = self.require(rule_id)
        rule.active = not rule.active
        self._changed()

        return rule

    def delete_rule(self, rule_id: str) -> None:

        rule = self.require(rule_id)
        self.rules.remove(rule)
        self._changed()

    def move_rule(self, from_index: int, to_index: int) -> None:
        """Move a rule in display order and renumber `order` contiguously."""

        ordered = sorted(self.rules, key=lambda r: r.order)
        item = ordered.pop(from_index)
        ordered.insert(to_index, item)
        for idx, rule in enumerate(ordered):
            rule.order = idx
        self.rules = ordered
        self._changed()

    def extend_rules(self, rules: Iterable[Rule]) -> List[Rule]:
        """Append rules (e.g. an import). Ids already in use are replaced with fresh ones."""

        added = list(rules)
        taken = {r.id for r in self.rules}
        for rule in added:
            if rule.id in taken:
                fresh = new_rule_id("imported")
                logger.info("Rule id %s already in use; renamed to %s", rule.id, fresh)
                rule.id = fresh
            taken.add(rule.id)
        self.rules.extend(added)
        self._changed()

        return added

    def reset(self, source_text: str = "", rules: Optional[Iterable[Rule]] = None) -> None:
        """Replace the whole state (clear all / restore defaults)."""

        self.source_text = source_text
        self.rules = list(rules or [])
        self._changed()


def load_workspace(path: Path = WORKSPACE_PATH) -> Workspace:

    if not path.exists():
        raise FileNotFoundError(f"Workspace file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data: Dict[str, Any] = json.load(f)

    # Sanity checks
    for key in ("source_text", "rules"):
        if key not in data:
            raise ValueError(f"workspace.json missing '{key}'")

    rules = [Rule(**{"order": idx, **r}) for idx, r in enumerate(data["rules"])]

    return Workspace(data["source_text"], rules)
