"""
src/workspace/selectors.py
"""


from typing import Iterable, List
from rapidfuzz import fuzz, process

from pipeline.models import Rule


def sorted_rules(rules: Iterable[Rule]) -> List[Rule]:

    return sorted(rules, key=lambda r: r.order)

def suggest_rule_ids(rules: Iterable[Rule], query: str, limit: int = 3, score_cutoff: int = 60) -> List[str]:
    """
    Closest existing rule ids for a lookup that missed, best first.

    Models sometimes mangle an id (dropped suffix, rule name instead of id),
    so both ids and names are matched and the id is returned.
    """

    pool = list(rules)
    if not pool or not query:
        return []

    keys = [r.id for r in pool] + [r.name for r in pool]
    matches = process.extract(query, keys, scorer=fuzz.WRatio, limit=limit * 2, score_cutoff=score_cutoff)

    # matches: [(key, score, index)]; indexes past len(pool) are names
    out: List[str] = []
    for _key, _score, idx in matches:
        rule_id = pool[idx % len(pool)].id
        if rule_id not in out:
            out.append(rule_id)
        if len(out) >= limit:
            break

    return out
