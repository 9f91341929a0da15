"""
src/pipeline/executor.py

Runs the ordered chain of rules over a source text:
- run_pipeline(): sort, filter active, apply each rule, collect one diagnostic per active rule
- ordered_active_rules(): the execution order used by run_pipeline()

A rule that fails to compile or substitute is recorded with its error and
skipped; the text carried into the next rule is the text before it ran.
"""


import logging
import time
from typing import Iterable, List

from pipeline.models import DiagnosticEntry, PipelineResult, Rule
from pipeline.patterns import PatternSyntaxError, SubstitutionError, compile_pattern


logger = logging.getLogger(__name__)

# Fixed header prepended to every result (preview scrollbar styling)
SCROLLBAR_STYLES = """
    <style>
      ::-webkit-scrollbar { width: 6px; height: 6px; }
      ::-webkit-scrollbar-track { background: transparent; }
      ::-webkit-scrollbar-thumb { background: rgba(128, 128, 128, 0.3); border-radius: 3px; }
      ::-webkit-scrollbar-thumb:hover { background: rgba(128, 128, 128, 0.5); }
    </style>
  """


def ordered_active_rules(rules: Iterable[Rule]) -> List[Rule]:
    """Stable sort by `order`, then drop inactive rules."""

    return [r for r in sorted(rules, key=lambda r: r.order) if r.active]

def _template_preview(rules: List[Rule]) -> PipelineResult:
    """Empty source: show the concatenated replacement templates instead."""

    diagnostics = [
        DiagnosticEntry(rule_id=r.id, rule_name=r.name, matched=False, match_count=0, elapsed_ms=0.0)
        for r in rules
    ]
    preview = "".join(r.replacement for r in rules)

    return PipelineResult(final_text=SCROLLBAR_STYLES + preview, diagnostics=diagnostics)

def run_pipeline(source_text: str, rules: Iterable[Rule]) -> PipelineResult:
    """
    Apply every active rule, in order, to `source_text`.

    Returns a PipelineResult holding the transformed text (behind the fixed
    style header) and exactly one DiagnosticEntry per active rule.
    """

    active = ordered_active_rules(rules)

    if not source_text:
        return _template_preview(active)

    current = source_text
    diagnostics: List[DiagnosticEntry] = []

    for rule in active:
        started = time.perf_counter()
        match_count = 0
        error = None

        try:
            compiled = compile_pattern(rule.pattern)
            current, match_count = compiled.substitute(current, rule.replacement)
        except (PatternSyntaxError, SubstitutionError) as exc:
            error = str(exc) or exc.__class__.__name__
            logger.info("Rule %s (%s) skipped: %s", rule.id, rule.name, error)

        elapsed_ms = max((time.perf_counter() - started) * 1000.0, 0.0)
        diagnostics.append(DiagnosticEntry(
            rule_id=rule.id,
            rule_name=rule.name,
            matched=match_count > 0,
            match_count=match_count,
            elapsed_ms=elapsed_ms,
            error=error,
        ))

    return PipelineResult(final_text=SCROLLBAR_STYLES + current, diagnostics=diagnostics)
