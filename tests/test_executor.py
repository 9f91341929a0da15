"""Tests for the pipeline executor."""

from conftest import make_rule
from pipeline.executor import SCROLLBAR_STYLES, ordered_active_rules, run_pipeline


def body(result) -> str:
    """Final text without the fixed style header."""
    assert result.final_text.startswith(SCROLLBAR_STYLES)
    return result.final_text[len(SCROLLBAR_STYLES):]


def without_timing(result):
    return [d.model_dump(exclude={"elapsed_ms"}) for d in result.diagnostics], result.final_text


class TestOrdering:
    """Tests for sort order and activation."""

    def test_order_sensitivity(self):
        r1 = make_rule("a", "b", order=0)
        r2 = make_rule("b", "c", order=1)
        assert body(run_pipeline("a", [r1, r2])) == "c"

        r1.order, r2.order = 1, 0
        assert body(run_pipeline("a", [r1, r2])) == "b"

    def test_ties_keep_input_order(self):
        first = make_rule("x", "1", order=5)
        second = make_rule("x", "2", order=5)
        assert [r.id for r in ordered_active_rules([first, second])] == [first.id, second.id]

    def test_non_contiguous_orders(self):
        rules = [make_rule("a", "c", order=100), make_rule("a", "b", order=-3)]
        assert body(run_pipeline("a", rules)) == "b"

    def test_inactive_rule_excluded(self):
        active = make_rule("a", "b", order=1)
        inactive = make_rule("b", "z", order=0, active=False)
        result = run_pipeline("a", [inactive, active])

        assert body(result) == "b"
        assert [d.rule_id for d in result.diagnostics] == [active.id]


class TestRun:
    """Tests for run_pipeline() output and diagnostics."""

    def test_determinism(self):
        rules = [make_rule("/(\\w+)/g", "<$1>"), make_rule("/</g", "[", order=1)]
        assert without_timing(run_pipeline("one two", rules)) == without_timing(run_pipeline("one two", rules))

    def test_diagnostics_per_active_rule(self):
        hit = make_rule("/o/g", "0", order=0)
        miss = make_rule("/z/g", "", order=1)
        result = run_pipeline("foo", [hit, miss])

        assert body(result) == "f00"
        first, second = result.diagnostics
        assert (first.matched, first.match_count, first.error) == (True, 2, None)
        assert (second.matched, second.match_count, second.error) == (False, 0, None)
        assert all(d.elapsed_ms >= 0 for d in result.diagnostics)

    def test_back_references(self):
        rule = make_rule("/(\\d+) \\/ (\\d+)/", "$1 of $2")
        assert body(run_pipeline("65 / 100", [rule])) == "65 of 100"

    def test_fault_isolation(self):
        before = make_rule("a", "b", order=0)
        broken = make_rule("/(oops/g", "X", order=1)
        after = make_rule("b", "c", order=2)
        result = run_pipeline("a", [before, broken, after])

        assert body(result) == "c"
        assert len(result.diagnostics) == 3
        err = result.diagnostics[1]
        assert err.rule_id == broken.id
        assert err.error
        assert err.match_count == 0
        assert err.matched is False
        assert result.diagnostics[2].match_count == 1

    def test_empty_pattern_rule_is_a_no_op(self):
        result = run_pipeline("abc", [make_rule("", "X")])
        assert body(result) == "abc"
        assert result.diagnostics[0].match_count == 0

    def test_no_rules(self):
        result = run_pipeline("plain", [])
        assert body(result) == "plain"
        assert result.diagnostics == []


class TestEmptySource:
    """Tests for the template preview shown when there is no source text."""

    def test_concatenates_active_replacements(self):
        rules = [
            make_rule("/a/", "Y", order=1),
            make_rule("/b/", "X", order=0),
            make_rule("/c/", "Z", order=2, active=False),
        ]
        result = run_pipeline("", rules)

        assert body(result) == "XY"
        assert len(result.diagnostics) == 2
        for d in result.diagnostics:
            assert (d.matched, d.match_count, d.elapsed_ms, d.error) == (False, 0, 0.0, None)

    def test_broken_patterns_not_compiled(self):
        result = run_pipeline("", [make_rule("/(broken/", "T")])
        assert body(result) == "T"
        assert result.diagnostics[0].error is None
