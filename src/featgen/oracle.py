"""Execution oracle: expected outcomes from the reference, hit sets from candidates.

:class:`Tester` runs the reference implementation on every test case to fix
the expected outcome, then runs every candidate on the same inputs and
records which candidates diverge. Invocations are dispatched concurrently
under a bounded ``asyncio.Semaphore``; identical argument tuples are run
only once per implementation.
"""

from __future__ import annotations

import ast
import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
from typing import Any

from featgen.execution import build_execution_env, invoke
from featgen.models import (
    HarnessSettings,
    ImplementationHandle,
    Outcome,
    OutcomeStatus,
    TestCase,
    TestResults,
)

logger = logging.getLogger(__name__)


class ReferenceImplementationError(Exception):
    """The reference implementation cannot be invoked at all.

    Raised when the reference file is missing, fails to import, or does not
    define the function. Errors *raised by* the reference are not this
    error; they become expected outcomes.

    Attributes:
        diagnostics: Structured context about the failure.
    """

    def __init__(self, message: str, *, diagnostics: dict[str, Any]) -> None:
        """Initialize with a message and structured diagnostics.

        Args:
            message: Human-readable error description.
            diagnostics: Structured context (path, error type, etc.).
        """
        super().__init__(message)
        self.diagnostics = diagnostics


# ---------------------------------------------------------------------------
# Outcome comparison
# ---------------------------------------------------------------------------


def _tagged(value: Any) -> Any:
    """Hashable form of *value* that records the type of every component.

    Comparing tagged forms is Python equality made type-exact: ``1``,
    ``1.0`` and ``True`` differ, and so do a list and a tuple with the same
    items. Sets and dicts stay unordered.
    """
    if isinstance(value, list | tuple):
        return (type(value).__name__, tuple(_tagged(item) for item in value))
    if isinstance(value, set | frozenset):
        return (type(value).__name__, frozenset(_tagged(item) for item in value))
    if isinstance(value, dict):
        return ("dict", frozenset((_tagged(k), _tagged(v)) for k, v in value.items()))
    return (type(value).__name__, value)


def _values_equal(expected: str | None, actual: str | None) -> bool:
    """Compare two value literals by type and value.

    Scalars and sequences must match exactly, type included; sets and dicts
    compare unordered. Values whose repr is not a literal fall back to text
    equality.
    """
    try:
        expected_value = ast.literal_eval(expected or "")
        actual_value = ast.literal_eval(actual or "")
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return expected == actual
    return bool(_tagged(expected_value) == _tagged(actual_value))


def outcomes_match(expected: Outcome, actual: Outcome) -> bool:
    """Whether *actual* agrees with the reference's *expected* outcome.

    Timeouts, crashes and load errors never match. An expected error matches
    only an actual error of the same category (exception class name); the
    message is not compared. Returned values are compared with
    :func:`_values_equal`.

    Args:
        expected: Outcome of the reference implementation.
        actual: Outcome of a candidate implementation.

    Returns:
        True if the candidate is indistinguishable from the reference.
    """
    if not actual.is_reliable:
        return False
    if expected.status == OutcomeStatus.RAISED:
        return actual.status == OutcomeStatus.RAISED and actual.error_type == expected.error_type
    if expected.status != OutcomeStatus.RETURNED or actual.status != OutcomeStatus.RETURNED:
        return False
    return _values_equal(expected.value, actual.value)


# ---------------------------------------------------------------------------
# Implementation discovery
# ---------------------------------------------------------------------------


def discover_implementations(directory: str | Path) -> list[ImplementationHandle]:
    """List the candidate implementations in *directory*.

    Every ``*.py`` file becomes one candidate, identified by its file stem.

    Args:
        directory: Directory holding candidate implementation files.

    Returns:
        Candidate handles sorted by file name.

    Raises:
        NotADirectoryError: If *directory* is not an existing directory.
    """
    dir_path = Path(directory)
    if not dir_path.is_dir():
        msg = f"candidate directory not found: {directory}"
        raise NotADirectoryError(msg)
    return [
        ImplementationHandle(identifier=path.stem, path=path)
        for path in sorted(dir_path.glob("*.py"))
        if path.is_file()
    ]


def _unique_literals(cases: Sequence[TestCase]) -> list[str]:
    """Distinct argument literals of *cases*, in first-appearance order."""
    return list(dict.fromkeys(case.literal for case in cases))


# ---------------------------------------------------------------------------
# Tester
# ---------------------------------------------------------------------------


class Tester:
    """Runs reference and candidate implementations over a base set.

    Attributes:
        function_name: Name of the function called in every implementation.
        reference: The reference implementation.
        candidates: Candidate implementations, each with a unique identifier.
        cases: The base set; ``compute_expected_results`` mutates it.
        settings: Timeout, worker-count and interpreter settings.
    """

    __test__ = False

    def __init__(
        self,
        function_name: str,
        reference: ImplementationHandle,
        candidates: Sequence[ImplementationHandle],
        cases: Sequence[TestCase],
        settings: HarnessSettings | None = None,
    ) -> None:
        """Initialize the tester.

        Args:
            function_name: Name of the function under test.
            reference: The reference implementation.
            candidates: Candidate implementations.
            cases: Test cases of the base set.
            settings: Harness settings; defaults when ``None``.

        Raises:
            ValueError: If two candidates share an identifier.
        """
        identifiers = [candidate.identifier for candidate in candidates]
        if len(set(identifiers)) != len(identifiers):
            msg = f"Candidate identifiers must be unique: {identifiers}"
            raise ValueError(msg)
        self.function_name = function_name
        self.reference = reference
        self.candidates = list(candidates)
        self.cases = list(cases)
        self.settings = settings if settings is not None else HarnessSettings()
        self._env = build_execution_env()

    async def _dispatch(
        self, jobs: Sequence[tuple[ImplementationHandle, str]]
    ) -> list[Outcome | BaseException]:
        """Invoke every ``(implementation, args literal)`` job with bounded concurrency."""
        sem = asyncio.Semaphore(self.settings.max_workers)

        async def _limited(handle: ImplementationHandle, literal: str) -> Outcome:
            async with sem:
                return await invoke(
                    handle.path,
                    self.function_name,
                    literal,
                    timeout_seconds=self.settings.timeout_seconds,
                    python_executable=self.settings.python_executable,
                    env=self._env,
                )

        coros = [_limited(handle, literal) for handle, literal in jobs]
        return await asyncio.gather(*coros, return_exceptions=True)

    async def compute_expected_results(self) -> None:
        """Run the reference on every test case and attach the expected outcomes.

        Raised errors become expected outcomes. Test cases on which the
        reference times out or crashes keep that outcome and are excluded
        from hit sets by :meth:`run_tests`.

        Raises:
            ReferenceImplementationError: If the reference file is missing,
                cannot be imported, does not define the function, or cannot
                be started.
            ValueError: If a test case already has an expected outcome.
        """
        path = Path(self.reference.path)
        if not path.is_file():
            msg = f"Reference implementation not found: {path}"
            raise ReferenceImplementationError(msg, diagnostics={"path": str(path)})

        literals = _unique_literals(self.cases)
        logger.info(
            "Running reference %s on %d distinct input(s)",
            self.reference.identifier,
            len(literals),
        )
        raw_results = await self._dispatch([(self.reference, lit) for lit in literals])

        expected: dict[str, Outcome] = {}
        for literal, result in zip(literals, raw_results, strict=True):
            if isinstance(result, BaseException):
                msg = f"Reference implementation could not be run: {result}"
                raise ReferenceImplementationError(
                    msg,
                    diagnostics={"path": str(path), "args": literal},
                ) from result
            if result.status == OutcomeStatus.LOAD_ERROR:
                msg = (
                    f"Reference implementation cannot be invoked: "
                    f"{result.error_type}: {result.error_message}"
                )
                raise ReferenceImplementationError(
                    msg,
                    diagnostics={
                        "path": str(path),
                        "error_type": result.error_type,
                        "error_message": result.error_message,
                    },
                )
            expected[literal] = result

        for case in self.cases:
            case.attach_expected(expected[case.literal])

        unreliable = [
            case for case in self.cases if not expected[case.literal].is_reliable
        ]
        if unreliable:
            logger.warning(
                "Reference timed out or crashed on %d test case(s); they cannot expose "
                "candidates (first: %s)",
                len(unreliable),
                unreliable[0].render(self.function_name),
            )

    async def run_tests(self) -> TestResults:
        """Run every candidate on every test case and collect hit sets.

        A candidate is hit by a test case when its outcome does not match
        the expected one (:func:`outcomes_match`). Harness failures for one
        invocation are recorded as crashes and never abort the run.

        Returns:
            Hit sets for every test case plus the universe of candidates.

        Raises:
            ValueError: If expected outcomes have not been computed.
        """
        if any(case.expected is None for case in self.cases):
            msg = "compute_expected_results() must run before run_tests()"
            raise ValueError(msg)

        usable = [case for case in self.cases if case.expected and case.expected.is_reliable]
        literals = _unique_literals(usable)
        jobs = [(candidate, literal) for candidate in self.candidates for literal in literals]
        logger.info(
            "Running %d candidate(s) on %d distinct input(s) (%d invocations, %d workers)",
            len(self.candidates),
            len(literals),
            len(jobs),
            self.settings.max_workers,
        )
        raw_results = await self._dispatch(jobs)

        actual: dict[tuple[str, str], Outcome] = {}
        for (candidate, literal), result in zip(jobs, raw_results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "Invocation of %s%s failed in the harness: %s",
                    candidate.identifier,
                    literal,
                    result,
                )
                result = Outcome(
                    status=OutcomeStatus.CRASHED,
                    error_type=type(result).__name__,
                    error_message=str(result),
                )
            actual[(candidate.identifier, literal)] = result

        hits: dict[int, frozenset[str]] = {}
        for case in usable:
            assert case.expected is not None  # noqa: S101
            hits[case.index] = frozenset(
                candidate.identifier
                for candidate in self.candidates
                if not outcomes_match(
                    case.expected, actual[(candidate.identifier, case.literal)]
                )
            )

        for candidate in self.candidates:
            count = sum(candidate.identifier in hit_set for hit_set in hits.values())
            logger.debug("Candidate %s hit by %d test case(s)", candidate.identifier, count)

        return TestResults(
            function_name=self.function_name,
            cases=tuple(self.cases),
            hits=hits,
            universe=frozenset(candidate.identifier for candidate in self.candidates),
        )
