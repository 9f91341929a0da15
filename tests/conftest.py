"""Pytest configuration and fixtures."""

import itertools

import pytest

from pipeline.models import Rule
from tools import rules as rule_tools
from workspace.loader import Workspace


_ids = itertools.count(1)


def make_rule(pattern: str, replacement: str = "", *, active: bool = True, order: int = 0, name: str = "", rule_id: str = "") -> Rule:
    """Helper to create a Rule with sensible defaults."""
    n = next(_ids)
    return Rule(
        id=rule_id or f"r{n}",
        name=name or f"Rule {n}",
        pattern=pattern,
        replacement=replacement,
        active=active,
        order=order,
    )


@pytest.fixture
def rule_factory():
    """Factory fixture for rules."""
    return make_rule


@pytest.fixture
def workspace() -> Workspace:
    """A small workspace attached to the tool executor."""
    ws = Workspace(
        "Hello world",
        [
            Rule(id="rule-greeting", name="Greeting", pattern="/Hello/g", replacement="Hi", order=0),
            Rule(id="rule-wrap", name="Wrap", pattern="/(.+)/", replacement="<p>$1</p>", order=1),
        ],
    )
    rule_tools.attach_workspace(ws)
    yield ws
    rule_tools.attach_workspace(None)
