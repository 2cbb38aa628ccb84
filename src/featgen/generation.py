"""Value generation: exhaustive expansion, random sampling, and the base set.

Exhaustive expansion is lazy. :class:`ExhaustiveValues` is a finite,
restartable sequence whose size is known up front (:func:`count_exhaustive`)
so that oversized domains are rejected before anything is expanded.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
import itertools
import logging
import math
import random
from typing import Any

from featgen.models import ConfigFile, DomainNode, TestCase, ValueKind

logger = logging.getLogger(__name__)


class GenerationLimitError(ValueError):
    """The exhaustive base set would exceed the configured case limit."""


def _lazy_product(pools: Sequence[Iterable[Any]]) -> Iterator[tuple[Any, ...]]:
    """Cartesian product that re-iterates restartable pools instead of copying them.

    Order matches ``itertools.product``: the last pool varies fastest.
    """
    if not pools:
        yield ()
        return
    head, rest = pools[0], pools[1:]
    for item in head:
        for tail in _lazy_product(rest):
            yield (item, *tail)


class _Pairs:
    """Restartable key/value pairs for exhaustive dict expansion."""

    def __init__(self, keys: ExhaustiveValues, values: ExhaustiveValues) -> None:
        self._keys = keys
        self._values = values

    def __iter__(self) -> Iterator[tuple[Any, Any]]:
        for key in self._keys:
            for value in self._values:
                yield key, value


class ExhaustiveValues:
    """Finite, restartable, lazily produced exhaustive value set of a node.

    Every ``iter()`` starts a fresh expansion in the same deterministic
    order; ``len()`` is computed without expanding.
    """

    def __init__(self, node: DomainNode) -> None:
        self.node = node

    def __len__(self) -> int:
        return count_exhaustive(self.node)

    def __iter__(self) -> Iterator[Any]:
        node = self.node
        if node.kind == ValueKind.INT:
            yield from (int(v) for v in node.exhaustive_domain)
        elif node.kind == ValueKind.FLOAT:
            yield from (float(v) for v in node.exhaustive_domain)
        elif node.kind == ValueKind.BOOL:
            yield from (bool(v) for v in node.exhaustive_domain)
        elif node.kind == ValueKind.STR:
            for length in node.exhaustive_domain:
                for chars in itertools.product(node.charset or "", repeat=int(length)):
                    yield "".join(chars)
        else:
            if node.kind == ValueKind.DICT:
                pool: Any = _Pairs(
                    ExhaustiveValues(node.children[0]),
                    ExhaustiveValues(node.children[1]),
                )
            else:
                pool = ExhaustiveValues(node.children[0])
            build = _BUILDERS[node.kind]
            for length in node.exhaustive_domain:
                for combo in _lazy_product((pool,) * int(length)):
                    yield build(combo)

    def __repr__(self) -> str:
        return f"ExhaustiveValues(kind={self.node.kind}, size={count_exhaustive(self.node)})"


_BUILDERS: dict[ValueKind, Any] = {
    ValueKind.LIST: list,
    ValueKind.TUPLE: tuple,
    ValueKind.SET: set,
    ValueKind.DICT: dict,
}


def exhaustive_values(node: DomainNode) -> ExhaustiveValues:
    """Return the lazy exhaustive value set of *node*."""
    return ExhaustiveValues(node)


def count_exhaustive(node: DomainNode) -> int:
    """Size of the exhaustive value set of *node*, computed without expanding it.

    Scalars contribute one value per domain entry. For ``str`` and compound
    nodes the size is the sum over declared lengths of ``C ** length``,
    where ``C`` is the charset size, the child set size, or (for dicts) the
    product of the key and value set sizes.

    Args:
        node: The node to measure.

    Returns:
        Number of values :func:`exhaustive_values` yields for *node*.
    """
    if node.is_scalar:
        return len(node.exhaustive_domain)
    if node.kind == ValueKind.STR:
        choices = len(node.charset or "")
    elif node.kind == ValueKind.DICT:
        choices = count_exhaustive(node.children[0]) * count_exhaustive(node.children[1])
    else:
        choices = count_exhaustive(node.children[0])
    return sum(choices ** int(length) for length in node.exhaustive_domain)


def random_value(node: DomainNode, rng: random.Random) -> Any:
    """Sample one value of *node* from its random domain.

    A length is drawn uniformly from the random domain (scalars draw the
    value itself), then each position is sampled independently from the
    child. Sets and dicts may come out smaller than the drawn length when
    samples collide.

    Args:
        node: The node to sample.
        rng: Source of randomness.

    Returns:
        A native Python value of the node's kind.
    """
    drawn = rng.choice(node.random_domain)
    if node.kind == ValueKind.INT:
        return int(drawn)
    if node.kind == ValueKind.FLOAT:
        return float(drawn)
    if node.kind == ValueKind.BOOL:
        return bool(drawn)

    length = int(drawn)
    if node.kind == ValueKind.STR:
        return "".join(rng.choice(node.charset or "") for _ in range(length))
    if node.kind == ValueKind.DICT:
        key_node, value_node = node.children
        return {
            random_value(key_node, rng): random_value(value_node, rng)
            for _ in range(length)
        }
    items = [random_value(node.children[0], rng) for _ in range(length)]
    return _BUILDERS[node.kind](items)


# ---------------------------------------------------------------------------
# Base set
# ---------------------------------------------------------------------------


def exhaustive_case_count(config: ConfigFile) -> int:
    """Number of test cases in the exhaustive part of the base set."""
    return math.prod(count_exhaustive(node) for node in config.nodes)


def iter_base_set(
    config: ConfigFile,
    rng: random.Random,
    *,
    limit: int | None = None,
) -> Iterator[TestCase]:
    """Lazily produce the base set of test cases.

    The exhaustive cartesian product across parameters comes first, in
    declared parameter order, followed by ``config.num_random`` random
    tuples. Each test case's ``index`` is its position in this stream.

    Args:
        config: Parsed configuration.
        rng: Source of randomness for the random tuples.
        limit: Maximum number of exhaustive test cases, or ``None``.

    Returns:
        An iterator over test cases without expected outcomes.

    Raises:
        GenerationLimitError: If the exhaustive product exceeds *limit*.
            Raised eagerly, before any value is expanded.
    """
    total = exhaustive_case_count(config)
    if limit is not None and total > limit:
        msg = (
            f"Exhaustive domains of {config.function_name} produce {total} test "
            f"cases, more than the limit of {limit}; narrow the exhaustive "
            "domains or raise max_exhaustive_cases"
        )
        raise GenerationLimitError(msg)
    return _generate(config, rng)


def _generate(config: ConfigFile, rng: random.Random) -> Iterator[TestCase]:
    index = 0
    pools = tuple(exhaustive_values(node) for node in config.nodes)
    for args in _lazy_product(pools):
        yield TestCase(index=index, args=args)
        index += 1
    for _ in range(config.num_random):
        args = tuple(random_value(node, rng) for node in config.nodes)
        yield TestCase(index=index, args=args)
        index += 1


def generate_base_set(
    config: ConfigFile,
    rng: random.Random | None = None,
    *,
    limit: int | None = None,
) -> list[TestCase]:
    """Materialize the base set (see :func:`iter_base_set`).

    Args:
        config: Parsed configuration.
        rng: Source of randomness; a fresh unseeded ``random.Random`` when ``None``.
        limit: Maximum number of exhaustive test cases, or ``None``.

    Returns:
        All test cases, exhaustive first, then random.
    """
    rng = rng if rng is not None else random.Random()  # noqa: S311
    cases = list(iter_base_set(config, rng, limit=limit))
    logger.info(
        "Generated base set of %d test case(s) for %s (%d exhaustive, %d random)",
        len(cases),
        config.function_name,
        len(cases) - config.num_random,
        config.num_random,
    )
    return cases
