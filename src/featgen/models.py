"""Core data models for featgen.

Defines the value domain model (``ValueKind``, ``DomainNode``), the parsed
``ConfigFile``, execution ``Outcome`` records, ``TestCase`` and
``TestResults`` containers, the reducer's ``ConciseSet`` and the
``HarnessSettings`` configuration shared by every other module.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class ValueKind(StrEnum):
    """Kind of value a parameter takes; the tag of the ``DomainNode`` variant."""

    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    STR = "str"
    LIST = "list"
    TUPLE = "tuple"
    SET = "set"
    DICT = "dict"


SCALAR_KINDS: frozenset[ValueKind] = frozenset(
    {ValueKind.INT, ValueKind.FLOAT, ValueKind.BOOL}
)
"""Kinds whose domains hold literal values rather than lengths."""

SEQUENCE_KINDS: frozenset[ValueKind] = frozenset(
    {ValueKind.LIST, ValueKind.TUPLE, ValueKind.SET}
)
"""Compound kinds with exactly one child node."""

_CHILD_COUNTS: dict[ValueKind, int] = {
    ValueKind.INT: 0,
    ValueKind.FLOAT: 0,
    ValueKind.BOOL: 0,
    ValueKind.STR: 0,
    ValueKind.LIST: 1,
    ValueKind.TUPLE: 1,
    ValueKind.SET: 1,
    ValueKind.DICT: 2,
}


class DomainNode(BaseModel):
    """One parameter's type and generation rules.

    A tagged variant over ``ValueKind``. Scalar nodes carry literal values
    in their domains; ``str`` and compound nodes carry lengths. Children are
    owned by the parent: one for list/tuple/set, key then value for dict.

    Attributes:
        kind: Which variant this node is.
        exhaustive_domain: Values (or lengths) expanded exhaustively.
        random_domain: Values (or lengths) sampled uniformly.
        children: Child nodes, in key/value order for dicts.
        charset: Alphabet for ``str`` nodes; ``None`` otherwise.
    """

    model_config = ConfigDict(frozen=True)

    kind: ValueKind
    exhaustive_domain: tuple[int | float, ...]
    random_domain: tuple[int | float, ...]
    children: tuple[DomainNode, ...] = ()
    charset: str | None = None

    @property
    def is_scalar(self) -> bool:
        """Whether the domains hold literal values rather than lengths."""
        return self.kind in SCALAR_KINDS

    @property
    def is_hashable(self) -> bool:
        """Whether values of this node can be set elements or dict keys."""
        if self.kind in SCALAR_KINDS or self.kind == ValueKind.STR:
            return True
        if self.kind == ValueKind.TUPLE:
            return self.children[0].is_hashable
        return False

    @model_validator(mode="after")
    def _check_variant(self) -> DomainNode:
        """Validate the kind-specific payload of the node."""
        expected = _CHILD_COUNTS[self.kind]
        if len(self.children) != expected:
            msg = f"{self.kind} node needs {expected} children, got {len(self.children)}"
            raise ValueError(msg)

        for label, domain in (
            ("exhaustive", self.exhaustive_domain),
            ("random", self.random_domain),
        ):
            if not domain:
                msg = f"{label} domain of {self.kind} node is empty"
                raise ValueError(msg)
            if self.kind == ValueKind.BOOL and any(v not in (0, 1) for v in domain):
                msg = f"Boolean {label} domain contains a value other than 0 or 1"
                raise ValueError(msg)
            if self.kind != ValueKind.FLOAT and any(isinstance(v, float) for v in domain):
                msg = f"{label} domain of {self.kind} node contains a float"
                raise ValueError(msg)
            if not self.is_scalar and any(v < 0 for v in domain):
                msg = f"{label} length domain of {self.kind} node contains a negative value"
                raise ValueError(msg)

        if self.kind == ValueKind.STR:
            if self.charset is None:
                msg = "str node requires a charset"
                raise ValueError(msg)
            if not self.charset and any(
                v > 0 for v in self.exhaustive_domain + self.random_domain
            ):
                msg = "str node with an empty charset can only have length 0"
                raise ValueError(msg)
        elif self.charset is not None:
            msg = f"charset is only valid for str nodes, not {self.kind}"
            raise ValueError(msg)

        if self.kind in (ValueKind.SET, ValueKind.DICT) and not self.children[0].is_hashable:
            what = "set elements" if self.kind == ValueKind.SET else "dict keys"
            msg = f"{what} must be hashable, got {self.children[0].kind}"
            raise ValueError(msg)
        return self


class ConfigFile(BaseModel):
    """Parsed configuration for one function under test.

    Attributes:
        function_name: Name of the function to call in every implementation.
        nodes: One domain node per parameter, in call-argument order.
        num_random: Number of random test cases to add to the base set.
    """

    model_config = ConfigDict(frozen=True)

    function_name: str
    nodes: tuple[DomainNode, ...]
    num_random: int

    @field_validator("num_random")
    @classmethod
    def _must_be_non_negative(cls, v: int) -> int:
        """Validate that the random-test count is >= 0."""
        if v < 0:
            msg = "num random must be a non-negative integer"
            raise ValueError(msg)
        return v


class ImplementationHandle(BaseModel):
    """A Python source file implementing the function under test.

    Attributes:
        identifier: Stable name of the implementation (the file stem for
            discovered candidates).
        path: Path to the source file.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str
    path: Path


# ---------------------------------------------------------------------------
# Execution outcomes and test cases
# ---------------------------------------------------------------------------


class OutcomeStatus(StrEnum):
    """How an invocation of an implementation ended."""

    RETURNED = "returned"
    RAISED = "raised"
    TIMED_OUT = "timed_out"
    CRASHED = "crashed"
    LOAD_ERROR = "load_error"


class Outcome(BaseModel):
    """Normalized result of calling an implementation with one argument tuple.

    Errors are reduced to their category (exception class name) and message
    so that outcomes from separate processes can be compared.

    Attributes:
        status: How the invocation ended.
        value: Python literal text of the returned value (``returned`` only).
        error_type: Exception class name, or a harness label for
            timeouts and crashes.
        error_message: Exception message or captured diagnostics.
    """

    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    value: str | None = None
    error_type: str | None = None
    error_message: str | None = None

    @property
    def is_reliable(self) -> bool:
        """Whether the outcome came from the function itself, not the harness."""
        return self.status in (OutcomeStatus.RETURNED, OutcomeStatus.RAISED)

    def describe(self) -> str:
        """Return a short human-readable summary of the outcome."""
        if self.status == OutcomeStatus.RETURNED:
            return f"returned {self.value}"
        return f"{self.status}: {self.error_type}: {self.error_message}"


class TestCase(BaseModel):
    """One generated argument tuple and, after the reference run, its expected outcome.

    The only non-frozen model: ``expected`` is attached exactly once by the
    oracle through :meth:`attach_expected`.

    Attributes:
        index: Position in the base set; also the deterministic tie-break order.
        args: One value per parameter, in call-argument order.
        expected: Reference outcome, ``None`` until computed.
    """

    __test__ = False

    model_config = ConfigDict(frozen=False)

    index: int
    args: tuple[Any, ...]
    expected: Outcome | None = None

    @property
    def literal(self) -> str:
        """Python literal for the argument tuple, accepted by ``ast.literal_eval``."""
        return repr(tuple(self.args))

    def attach_expected(self, outcome: Outcome) -> None:
        """Record the reference outcome for this test case.

        Args:
            outcome: Outcome of the reference implementation.

        Raises:
            ValueError: If an expected outcome was already attached.
        """
        if self.expected is not None:
            msg = f"Test case {self.index} already has an expected outcome"
            raise ValueError(msg)
        self.expected = outcome

    def render(self, function_name: str) -> str:
        """Render the test case as a call expression, e.g. ``f(1, 'a')``."""
        return f"{function_name}({', '.join(repr(arg) for arg in self.args)})"


class TestResults(BaseModel):
    """Hit sets produced by the oracle.

    Attributes:
        function_name: Name of the function under test.
        cases: Every test case of the base set, in base-set order.
        hits: Maps a test case index to the candidates it exposes.
        universe: Every candidate identifier that was evaluated.
    """

    __test__ = False

    model_config = ConfigDict(frozen=True)

    function_name: str
    cases: tuple[TestCase, ...]
    hits: dict[int, frozenset[str]]
    universe: frozenset[str]

    def hits_for(self, case: TestCase) -> frozenset[str]:
        """Return the hit set of *case* (empty when it exposes nothing)."""
        return self.hits.get(case.index, frozenset())

    @property
    def coverable(self) -> frozenset[str]:
        """Candidates exposed by at least one test case of the base set."""
        covered: set[str] = set()
        for hit_set in self.hits.values():
            covered |= hit_set
        return frozenset(covered & self.universe)


class ConciseSet(BaseModel):
    """Result of the set-cover reduction.

    Attributes:
        function_name: Name of the function under test.
        tests: Selected test cases, in selection order.
        uncovered: Candidates that no test case of the base set exposes.
    """

    model_config = ConfigDict(frozen=True)

    function_name: str
    tests: tuple[TestCase, ...]
    uncovered: frozenset[str] = frozenset()

    @property
    def is_complete(self) -> bool:
        """Whether every candidate is exposed by a selected test case."""
        return not self.uncovered

    def render(self) -> list[str]:
        """Render each selected test case as a call expression."""
        return [case.render(self.function_name) for case in self.tests]


# ---------------------------------------------------------------------------
# Harness configuration
# ---------------------------------------------------------------------------


class HarnessSettings(BaseModel):
    """Execution and generation settings for a featgen run.

    Attributes:
        timeout_seconds: Wall-clock limit for a single invocation.
        max_workers: Maximum number of concurrently running invocations.
        max_exhaustive_cases: Upper bound on the exhaustive part of the
            base set; larger products are rejected before expansion.
        seed: Seed for random test generation (``None`` = nondeterministic).
        python_executable: Interpreter that runs implementations
            (``None`` = the current interpreter).
        log_level: Logging level name.
        log_file: Optional log file path.
    """

    model_config = ConfigDict(frozen=True)

    timeout_seconds: float = 5.0
    max_workers: int = 8
    max_exhaustive_cases: int = 100_000
    seed: int | None = None
    python_executable: str | None = None
    log_level: str = "INFO"
    log_file: str | None = None

    @field_validator("timeout_seconds")
    @classmethod
    def _timeout_must_be_positive(cls, v: float) -> float:
        """Validate that the invocation timeout is > 0."""
        if v <= 0:
            msg = "timeout_seconds must be > 0"
            raise ValueError(msg)
        return v

    @field_validator("max_workers", "max_exhaustive_cases")
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        """Validate that worker and case limits are >= 1."""
        if v < 1:
            msg = "Value must be >= 1"
            raise ValueError(msg)
        return v
