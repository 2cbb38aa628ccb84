"""Tests for the featgen data models.

Covers the ``DomainNode`` variant invariants, ``TestCase`` single-attach
semantics and literal rendering, ``Outcome`` helpers, ``TestResults`` and
``ConciseSet`` accessors, and ``HarnessSettings`` validation.
"""

from __future__ import annotations

import ast

from featgen.models import (
    ConciseSet,
    ConfigFile,
    DomainNode,
    HarnessSettings,
    Outcome,
    OutcomeStatus,
    TestCase,
    ValueKind,
)
from hypothesis import given, settings, strategies as st
from pydantic import ValidationError
import pytest

from tests.conftest import make_node, make_results

# ===========================================================================
# DomainNode
# ===========================================================================


@pytest.mark.unit
class TestDomainNodeScalars:
    """Scalar nodes validate their literal domains."""

    def test_int_node_keeps_domains_in_order(self) -> None:
        """Domains are stored as given."""
        node = make_node(exhaustive_domain=(3, -1, 2), random_domain=(5,))
        assert node.exhaustive_domain == (3, -1, 2)
        assert node.random_domain == (5,)

    def test_node_is_frozen(self) -> None:
        """DomainNode cannot be mutated after construction."""
        node = make_node()
        with pytest.raises(ValidationError):
            node.kind = ValueKind.FLOAT  # type: ignore[misc]

    def test_negative_scalar_values_allowed(self) -> None:
        """Scalar numeric domains may be negative."""
        node = make_node(exhaustive_domain=(-5, -4))
        assert node.exhaustive_domain == (-5, -4)

    def test_bool_domain_outside_zero_one_rejected(self) -> None:
        """Bool domains must be a subset of {0, 1}."""
        with pytest.raises(ValidationError, match="other than 0 or 1"):
            make_node(kind=ValueKind.BOOL, exhaustive_domain=(0, 1, 2))

    def test_bool_domain_zero_one_accepted(self) -> None:
        """{0, 1} is a valid bool domain."""
        node = make_node(kind=ValueKind.BOOL, exhaustive_domain=(0, 1), random_domain=(1,))
        assert node.exhaustive_domain == (0, 1)

    def test_float_in_int_domain_rejected(self) -> None:
        """An int node cannot hold float values."""
        with pytest.raises(ValidationError, match="float"):
            make_node(exhaustive_domain=(1.5, 2))

    def test_float_node_accepts_floats(self) -> None:
        """A float node holds float values."""
        node = make_node(kind=ValueKind.FLOAT, exhaustive_domain=(1.5, -2.0))
        assert node.exhaustive_domain == (1.5, -2.0)

    def test_empty_domain_rejected(self) -> None:
        """Domains must not be empty."""
        with pytest.raises(ValidationError, match="empty"):
            make_node(random_domain=())

    def test_scalar_with_children_rejected(self) -> None:
        """Scalar nodes have no children."""
        with pytest.raises(ValidationError, match="children"):
            make_node(children=(make_node(),))

    def test_charset_on_int_rejected(self) -> None:
        """Only str nodes carry a charset."""
        with pytest.raises(ValidationError, match="charset"):
            make_node(charset="abc")


@pytest.mark.unit
class TestDomainNodeCompound:
    """Compound nodes validate lengths, children and hashability."""

    def test_list_node_with_one_child(self) -> None:
        """A list node owns exactly one child."""
        child = make_node()
        node = make_node(kind=ValueKind.LIST, exhaustive_domain=(0, 2), children=(child,))
        assert node.children == (child,)
        assert not node.is_scalar

    def test_list_node_without_child_rejected(self) -> None:
        """A list node must have a child."""
        with pytest.raises(ValidationError, match="1 children"):
            make_node(kind=ValueKind.LIST)

    def test_dict_node_needs_two_children(self) -> None:
        """A dict node owns a key child and a value child."""
        with pytest.raises(ValidationError, match="2 children"):
            make_node(kind=ValueKind.DICT, children=(make_node(),))

    def test_negative_length_rejected(self) -> None:
        """Length domains of compound nodes cannot be negative."""
        with pytest.raises(ValidationError, match="negative"):
            make_node(
                kind=ValueKind.LIST,
                exhaustive_domain=(-1, 0, 1),
                children=(make_node(),),
            )

    def test_set_of_lists_rejected(self) -> None:
        """Set elements must be hashable."""
        inner = make_node(kind=ValueKind.LIST, children=(make_node(),))
        with pytest.raises(ValidationError, match="hashable"):
            make_node(kind=ValueKind.SET, children=(inner,))

    def test_set_of_tuples_accepted(self) -> None:
        """Tuples of scalars are valid set elements."""
        inner = make_node(kind=ValueKind.TUPLE, children=(make_node(),))
        node = make_node(kind=ValueKind.SET, children=(inner,))
        assert node.children[0].is_hashable

    def test_dict_with_set_keys_rejected(self) -> None:
        """Dict keys must be hashable."""
        key = make_node(kind=ValueKind.SET, children=(make_node(),))
        with pytest.raises(ValidationError, match="dict keys"):
            make_node(kind=ValueKind.DICT, children=(key, make_node()))

    def test_str_node_requires_charset(self) -> None:
        """A str node needs an alphabet."""
        with pytest.raises(ValidationError, match="charset"):
            make_node(kind=ValueKind.STR)

    def test_str_node_empty_charset_only_length_zero(self) -> None:
        """An empty charset can only produce the empty string."""
        node = make_node(
            kind=ValueKind.STR, exhaustive_domain=(0,), random_domain=(0,), charset=""
        )
        assert node.charset == ""
        with pytest.raises(ValidationError, match="empty charset"):
            make_node(kind=ValueKind.STR, exhaustive_domain=(0, 1), charset="")

    def test_tuple_of_lists_not_hashable(self) -> None:
        """Hashability looks through tuple children."""
        inner = make_node(kind=ValueKind.LIST, children=(make_node(),))
        node = make_node(kind=ValueKind.TUPLE, children=(inner,))
        assert node.is_hashable is False


# ===========================================================================
# ConfigFile
# ===========================================================================


@pytest.mark.unit
class TestConfigFile:
    """ConfigFile validates the random-test count."""

    def test_negative_num_random_rejected(self) -> None:
        """num_random must be >= 0."""
        with pytest.raises(ValidationError, match="non-negative"):
            ConfigFile(function_name="f", nodes=(make_node(),), num_random=-1)

    def test_zero_num_random_accepted(self) -> None:
        """num_random may be zero."""
        config = ConfigFile(function_name="f", nodes=(make_node(),), num_random=0)
        assert config.num_random == 0


# ===========================================================================
# TestCase and Outcome
# ===========================================================================


@pytest.mark.unit
class TestTestCase:
    """TestCase rendering and single-attach semantics."""

    def test_expected_is_none_initially(self) -> None:
        """A new test case has no expected outcome."""
        assert TestCase(index=0, args=(1,)).expected is None

    def test_attach_expected_once(self) -> None:
        """attach_expected stores the outcome."""
        case = TestCase(index=0, args=(1,))
        outcome = Outcome(status=OutcomeStatus.RETURNED, value="1")
        case.attach_expected(outcome)
        assert case.expected == outcome

    def test_attach_expected_twice_raises(self) -> None:
        """A second attach is rejected."""
        case = TestCase(index=3, args=(1,))
        case.attach_expected(Outcome(status=OutcomeStatus.RETURNED, value="1"))
        with pytest.raises(ValueError, match="already has an expected outcome"):
            case.attach_expected(Outcome(status=OutcomeStatus.RETURNED, value="2"))

    def test_literal_of_single_argument_is_tuple(self) -> None:
        """A one-argument literal still evaluates to a tuple."""
        case = TestCase(index=0, args=(5,))
        assert ast.literal_eval(case.literal) == (5,)

    def test_literal_of_nested_values(self) -> None:
        """Nested collections survive the literal round trip."""
        args = ([1, 2], {"a": True}, {(1, 2)}, (), set(), 1.5, "x'y")
        case = TestCase(index=0, args=args)
        assert ast.literal_eval(case.literal) == args

    def test_render_call_expression(self) -> None:
        """render() produces a readable call."""
        case = TestCase(index=0, args=(1, "a", [True]))
        assert case.render("f") == "f(1, 'a', [True])"


@pytest.mark.unit
class TestOutcome:
    """Outcome helpers."""

    @pytest.mark.parametrize(
        ("status", "reliable"),
        [
            (OutcomeStatus.RETURNED, True),
            (OutcomeStatus.RAISED, True),
            (OutcomeStatus.TIMED_OUT, False),
            (OutcomeStatus.CRASHED, False),
            (OutcomeStatus.LOAD_ERROR, False),
        ],
    )
    def test_is_reliable(self, status: OutcomeStatus, reliable: bool) -> None:
        """Only outcomes produced by the function itself are reliable."""
        assert Outcome(status=status).is_reliable is reliable

    def test_describe_returned(self) -> None:
        """Returned outcomes describe their value."""
        assert Outcome(status=OutcomeStatus.RETURNED, value="[1]").describe() == "returned [1]"

    def test_describe_raised(self) -> None:
        """Raised outcomes describe their error."""
        outcome = Outcome(
            status=OutcomeStatus.RAISED, error_type="KeyError", error_message="'a'"
        )
        assert outcome.describe() == "raised: KeyError: 'a'"


# ===========================================================================
# TestResults and ConciseSet
# ===========================================================================


@pytest.mark.unit
class TestResultsAccessors:
    """TestResults helper methods."""

    def test_hits_for_missing_case_is_empty(self) -> None:
        """A case without an entry exposes nothing."""
        results = make_results([{"a"}])
        orphan = TestCase(index=99, args=(0,))
        assert results.hits_for(orphan) == frozenset()

    def test_coverable_is_union_within_universe(self) -> None:
        """coverable is the union of hit sets."""
        results = make_results([{"a"}, {"b"}, set()], universe={"a", "b", "c"})
        assert results.coverable == frozenset({"a", "b"})

    @given(hit_sets=st.lists(st.sets(st.sampled_from("abcde")), max_size=8))
    @settings(max_examples=50)
    def test_coverable_subset_of_universe(self, hit_sets: list[set[str]]) -> None:
        """Property: coverable never exceeds the universe."""
        results = make_results(hit_sets, universe=set("abcde"))
        assert results.coverable <= results.universe


@pytest.mark.unit
class TestConciseSet:
    """ConciseSet rendering and completeness."""

    def test_render(self) -> None:
        """render() lists one call expression per selected case."""
        concise = ConciseSet(
            function_name="g",
            tests=(TestCase(index=0, args=(1,)), TestCase(index=1, args=("a", 2))),
        )
        assert concise.render() == ["g(1)", "g('a', 2)"]

    def test_is_complete(self) -> None:
        """A concise set with uncovered candidates is incomplete."""
        assert ConciseSet(function_name="g", tests=()).is_complete
        assert not ConciseSet(function_name="g", tests=(), uncovered=frozenset({"x"})).is_complete


# ===========================================================================
# HarnessSettings
# ===========================================================================


@pytest.mark.unit
class TestHarnessSettings:
    """HarnessSettings defaults and validation."""

    def test_defaults(self) -> None:
        """Defaults are usable as-is."""
        settings_ = HarnessSettings()
        assert settings_.timeout_seconds == 5.0
        assert settings_.max_workers == 8
        assert settings_.max_exhaustive_cases == 100_000
        assert settings_.seed is None
        assert settings_.log_level == "INFO"

    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_non_positive_timeout_rejected(self, timeout: float) -> None:
        """timeout_seconds must be > 0."""
        with pytest.raises(ValidationError):
            HarnessSettings(timeout_seconds=timeout)

    @pytest.mark.parametrize("field", ["max_workers", "max_exhaustive_cases"])
    def test_zero_limits_rejected(self, field: str) -> None:
        """Worker and case limits must be >= 1."""
        with pytest.raises(ValidationError):
            HarnessSettings(**{field: 0})
