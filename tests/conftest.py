"""Shared fixtures for the featgen test suite."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path
import textwrap
from typing import Any

from featgen.models import (
    ConfigFile,
    DomainNode,
    HarnessSettings,
    ImplementationHandle,
    TestCase,
    TestResults,
    ValueKind,
)
import pytest

# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def make_node(**overrides: Any) -> DomainNode:
    """Build a valid DomainNode, an int node over 0..2 by default.

    Args:
        **overrides: Field values to override.

    Returns:
        A fully constructed DomainNode instance.
    """
    defaults: dict[str, Any] = {
        "kind": ValueKind.INT,
        "exhaustive_domain": (0, 1, 2),
        "random_domain": (0, 1, 2),
    }
    defaults.update(overrides)
    return DomainNode(**defaults)


def make_config(**overrides: Any) -> ConfigFile:
    """Build a valid single-parameter ConfigFile.

    Args:
        **overrides: Field values to override.

    Returns:
        A fully constructed ConfigFile instance.
    """
    defaults: dict[str, Any] = {
        "function_name": "func",
        "nodes": (make_node(),),
        "num_random": 0,
    }
    defaults.update(overrides)
    return ConfigFile(**defaults)


def make_results(
    hit_sets: Sequence[set[str] | frozenset[str]],
    universe: set[str] | frozenset[str] | None = None,
) -> TestResults:
    """Build TestResults with one single-argument test case per hit set.

    Args:
        hit_sets: Hit set of test case ``i`` at position ``i``.
        universe: Candidate universe; the union of *hit_sets* when ``None``.

    Returns:
        A fully constructed TestResults instance.
    """
    cases = tuple(TestCase(index=i, args=(i,)) for i in range(len(hit_sets)))
    if universe is None:
        universe = set().union(*hit_sets) if hit_sets else set()
    return TestResults(
        function_name="func",
        cases=cases,
        hits={i: frozenset(hits) for i, hits in enumerate(hit_sets)},
        universe=frozenset(universe),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def write_impl(tmp_path: Path) -> Callable[..., ImplementationHandle]:
    """Return a helper that writes an implementation file and returns its handle.

    The helper takes the identifier, the source (dedented), and an optional
    sub-directory relative to ``tmp_path``.
    """

    def _write(identifier: str, source: str, subdir: str = "impls") -> ImplementationHandle:
        directory = tmp_path / subdir
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{identifier}.py"
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return ImplementationHandle(identifier=identifier, path=path)

    return _write


@pytest.fixture()
def fast_settings() -> HarnessSettings:
    """Harness settings with a short timeout for subprocess tests."""
    return HarnessSettings(timeout_seconds=10.0, max_workers=4)
