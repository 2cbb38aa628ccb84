"""Greedy set-cover reduction of the base set to a concise test set.

The standard greedy maximum-coverage heuristic (``H(n)``-approximation of
minimum set cover): repeatedly take the test case exposing the most
still-uncovered candidates. Ties go to the lowest base-set index, so the
result depends only on the ``TestResults`` snapshot.
"""

from __future__ import annotations

import logging

from featgen.models import ConciseSet, TestCase, TestResults

logger = logging.getLogger(__name__)


def _prune_redundant(
    selected: list[TestCase], results: TestResults
) -> list[TestCase]:
    """Drop selections whose hits are all covered by the other selections.

    Walks the selection from last to first so earlier, larger picks are
    kept in preference to later ones.
    """
    kept = list(selected)
    for case in reversed(selected):
        others: set[str] = set()
        for other in kept:
            if other is not case:
                others |= results.hits_for(other)
        if results.hits_for(case) & results.universe <= others:
            kept.remove(case)
    return kept


def greedy_set_cover(results: TestResults) -> ConciseSet:
    """Select a small subset of test cases that exposes every coverable candidate.

    Args:
        results: Hit sets from the oracle.

    Returns:
        The selected test cases (in selection order) and the candidates no
        test case in the base set exposes.
    """
    uncovered = set(results.universe)
    remaining = sorted(results.cases, key=lambda case: case.index)
    selected: list[TestCase] = []

    while uncovered and remaining:
        best: TestCase | None = None
        best_gain = 0
        for case in remaining:
            gain = len(results.hits_for(case) & uncovered)
            if gain > best_gain:
                best, best_gain = case, gain
        if best is None:
            break
        selected.append(best)
        remaining.remove(best)
        uncovered -= results.hits_for(best)

    concise = _prune_redundant(selected, results)
    if uncovered:
        logger.warning(
            "%d candidate(s) not exposed by any test case: %s",
            len(uncovered),
            ", ".join(sorted(uncovered)),
        )
    logger.info(
        "Reduced %d test case(s) to %d covering %d of %d candidate(s)",
        len(results.cases),
        len(concise),
        len(results.universe) - len(uncovered),
        len(results.universe),
    )
    return ConciseSet(
        function_name=results.function_name,
        tests=tuple(concise),
        uncovered=frozenset(uncovered),
    )
