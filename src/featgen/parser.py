"""Configuration parsing: JSON config file and the type/domain mini-grammars.

Turns a JSON configuration such as::

    {
        "fname": "merge",
        "types": ["list(int)", "dict(str(ab):bool)"],
        "exhaustive domain": ["0~2(-1~1)", "0~1(1~2:[0,1])"],
        "random domain": ["0~5(-10~10)", "0~3(0~4:[0,1])"],
        "num random": 20
    }

into a :class:`~featgen.models.ConfigFile` holding one
:class:`~featgen.models.DomainNode` per parameter.

Domain grammar::

    RANGE := INT "~" INT
    LIST  := "[" NUM ("," NUM)* "]"

Type grammar::

    TYPE := "int" | "float" | "bool" | "str(" CHARSET ")"
          | ("list" | "tuple" | "set") "(" TYPE ")"
          | "dict(" TYPE ":" TYPE ")"

Compound domains take the form ``LENGTH "(" CHILD-DOMAIN ")"`` and dict
domains ``LENGTH "(" KEY-DOMAIN ":" VALUE-DOMAIN ")"``. Any violation raises
:class:`ConfigError`; there is no partial parse.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
import re
from typing import Any

from pydantic import ValidationError

from featgen.models import SEQUENCE_KINDS, ConfigFile, DomainNode, ValueKind

logger = logging.getLogger(__name__)

_RANGE_PATTERN: re.Pattern[str] = re.compile(r"^(-?\d+)~(-?\d+)$")
_LIST_PATTERN: re.Pattern[str] = re.compile(r"^\[(.+)\]$")
_INT_PATTERN: re.Pattern[str] = re.compile(r"^-?\d+$")
_FLOAT_PATTERN: re.Pattern[str] = re.compile(
    r"^-?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?$"
)
_WHITESPACE_PATTERN: re.Pattern[str] = re.compile(r"\s+")
_ESCAPE_PATTERN: re.Pattern[str] = re.compile(r"\\(.)", re.DOTALL)

KEY_FNAME = "fname"
KEY_TYPES = "types"
KEY_EXHAUSTIVE = "exhaustive domain"
KEY_RANDOM = "random domain"
KEY_NUM_RANDOM = "num random"

_REQUIRED_KEYS: tuple[str, ...] = (
    KEY_FNAME,
    KEY_TYPES,
    KEY_EXHAUSTIVE,
    KEY_RANDOM,
    KEY_NUM_RANDOM,
)

_SCALAR_TYPES: dict[str, ValueKind] = {
    "int": ValueKind.INT,
    "float": ValueKind.FLOAT,
    "bool": ValueKind.BOOL,
}

_CALL_TYPES: dict[str, ValueKind] = {
    "str": ValueKind.STR,
    "list": ValueKind.LIST,
    "tuple": ValueKind.TUPLE,
    "set": ValueKind.SET,
    "dict": ValueKind.DICT,
}


class ConfigError(ValueError):
    """A configuration file or one of its specs is invalid.

    Attributes:
        cause: Human-readable reason the configuration was rejected.
    """

    def __init__(self, cause: str) -> None:
        """Initialize with the rejection cause.

        Args:
            cause: Human-readable reason the configuration was rejected.
        """
        super().__init__(cause)
        self.cause = cause


# ---------------------------------------------------------------------------
# Domain grammar
# ---------------------------------------------------------------------------


def parse_domain(
    spec: str,
    *,
    is_float: bool = False,
    is_length: bool = False,
) -> tuple[int | float, ...]:
    """Parse a ``RANGE`` or ``LIST`` domain spec into its ordered values.

    Args:
        spec: Domain text such as ``"0~3"`` or ``"[1,2,5]"``.
        is_float: Produce floats (the owning node is float-typed).
        is_length: The domain holds lengths, so negative values are rejected.

    Returns:
        The values of the domain, in declaration order.

    Raises:
        ConfigError: If the spec is malformed, the range is inverted, a
            float appears in a non-float domain, a float is not finite, or a
            length is negative.
    """
    spec = _WHITESPACE_PATTERN.sub("", spec)

    range_match = _RANGE_PATTERN.match(spec)
    list_match = _LIST_PATTERN.match(spec)
    if range_match:
        low, high = int(range_match.group(1)), int(range_match.group(2))
        if low > high:
            msg = f"Lower range bound exceeds upper range bound in {spec!r}"
            raise ConfigError(msg)
        values: list[int | float] = list(range(low, high + 1))
    elif list_match:
        values = [_parse_number(item, spec, is_float) for item in list_match.group(1).split(",")]
    else:
        msg = f"Domain {spec!r} is neither a range (a~b) nor a list ([a,b,...])"
        raise ConfigError(msg)

    if is_float:
        values = [_finite_float(v, spec) for v in values]
    if is_length and any(v < 0 for v in values):
        msg = f"The length domain {spec!r} of an iterable contains a negative value"
        raise ConfigError(msg)
    return tuple(values)


def _parse_number(item: str, spec: str, is_float: bool) -> int | float:
    """Parse one ``NUM`` of a list domain."""
    if _INT_PATTERN.match(item):
        return int(item)
    if _FLOAT_PATTERN.match(item):
        if not is_float:
            msg = f"Domain {spec!r} contains a float for a non-float node"
            raise ConfigError(msg)
        return float(item)
    msg = f"Domain {spec!r} contains an invalid number {item!r}"
    raise ConfigError(msg)


def _finite_float(value: int | float, spec: str) -> float:
    """Convert a domain value to a float that survives the literal round trip."""
    try:
        result = float(value)
    except OverflowError:
        result = math.inf
    if not math.isfinite(result):
        msg = f"Domain {spec!r} contains a value that is not a finite float"
        raise ConfigError(msg)
    return result


# ---------------------------------------------------------------------------
# Structural helpers
# ---------------------------------------------------------------------------


def _check_balanced(text: str, label: str) -> None:
    """Raise unless every unescaped parenthesis in *text* is matched."""
    depth = 0
    escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                break
    if depth != 0:
        msg = f"Unmatched parenthesis in {label} {text!r}"
        raise ConfigError(msg)


def _split_call(text: str, label: str) -> tuple[str, str]:
    """Split ``head(inner)`` into ``(head, inner)``."""
    open_idx = text.find("(")
    if open_idx < 0 or not text.endswith(")"):
        msg = f"{label} {text!r} does not match the type format"
        raise ConfigError(msg)
    return text[:open_idx], text[open_idx + 1 : -1]


def _split_key_value(text: str, label: str) -> tuple[str, str]:
    """Split *text* at its first unescaped ``:`` at nesting depth 0."""
    depth = 0
    escaped = False
    for idx, char in enumerate(text):
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == ":" and depth == 0:
            return text[:idx], text[idx + 1 :]
    msg = f"{label} {text!r} has no ':' separating key and value"
    raise ConfigError(msg)


def _build_node(**fields: Any) -> DomainNode:
    """Construct a ``DomainNode``, converting validation failures to ``ConfigError``."""
    try:
        return DomainNode(**fields)
    except ValidationError as exc:
        cause = "; ".join(
            str(err["msg"]).removeprefix("Value error, ") for err in exc.errors()
        )
        raise ConfigError(cause) from exc


# ---------------------------------------------------------------------------
# Type grammar
# ---------------------------------------------------------------------------


def parse_node(type_spec: str, exhaustive_spec: str, random_spec: str) -> DomainNode:
    """Build the domain node for one parameter.

    Args:
        type_spec: Type text such as ``"list(int)"``.
        exhaustive_spec: Exhaustive domain such as ``"0~2(1~3)"``.
        random_spec: Random domain with the same shape as *exhaustive_spec*.

    Returns:
        A fully validated ``DomainNode`` (children included).

    Raises:
        ConfigError: If any of the three specs is malformed or they do not
            have matching shapes.
    """
    type_spec = _WHITESPACE_PATTERN.sub("", type_spec)
    exhaustive_spec = _WHITESPACE_PATTERN.sub("", exhaustive_spec)
    random_spec = _WHITESPACE_PATTERN.sub("", random_spec)
    _check_balanced(type_spec, "type")
    _check_balanced(exhaustive_spec, "exhaustive domain")
    _check_balanced(random_spec, "random domain")

    if "(" not in type_spec:
        kind = _SCALAR_TYPES.get(type_spec)
        if kind is None:
            msg = f"Unknown type {type_spec!r}"
            raise ConfigError(msg)
        is_float = kind == ValueKind.FLOAT
        return _build_node(
            kind=kind,
            exhaustive_domain=parse_domain(exhaustive_spec, is_float=is_float),
            random_domain=parse_domain(random_spec, is_float=is_float),
        )

    head, inner = _split_call(type_spec, "type")
    kind = _CALL_TYPES.get(head)
    if kind is None:
        msg = f"Unknown type {head!r} in {type_spec!r}"
        raise ConfigError(msg)

    if kind == ValueKind.STR:
        return _build_node(
            kind=kind,
            exhaustive_domain=parse_domain(exhaustive_spec, is_length=True),
            random_domain=parse_domain(random_spec, is_length=True),
            charset=_ESCAPE_PATTERN.sub(r"\1", inner),
        )

    ex_length, ex_inner = _split_call(exhaustive_spec, "exhaustive domain")
    rand_length, rand_inner = _split_call(random_spec, "random domain")
    exhaustive_domain = parse_domain(ex_length, is_length=True)
    random_domain = parse_domain(rand_length, is_length=True)

    if kind in SEQUENCE_KINDS:
        children = (parse_node(inner, ex_inner, rand_inner),)
    else:
        key_type, value_type = _split_key_value(inner, "dict type")
        key_ex, value_ex = _split_key_value(ex_inner, "exhaustive domain")
        key_rand, value_rand = _split_key_value(rand_inner, "random domain")
        children = (
            parse_node(key_type, key_ex, key_rand),
            parse_node(value_type, value_ex, value_rand),
        )

    return _build_node(
        kind=kind,
        exhaustive_domain=exhaustive_domain,
        random_domain=random_domain,
        children=children,
    )


# ---------------------------------------------------------------------------
# Config file
# ---------------------------------------------------------------------------


def read_config_file(path: str | Path) -> str:
    """Read the raw contents of a configuration file.

    Args:
        path: Path to the JSON configuration file.

    Returns:
        The file contents.

    Raises:
        FileNotFoundError: If *path* does not name an existing file.
        OSError: If the file cannot be read.
    """
    file_path = Path(path)
    if not file_path.is_file():
        msg = f"config file not found: {path}"
        raise FileNotFoundError(msg)
    return file_path.read_text(encoding="utf-8")


def _string_array(data: dict[str, Any], key: str) -> list[str]:
    """Return ``data[key]`` after checking it is a JSON array of strings."""
    value = data[key]
    if not isinstance(value, list):
        msg = f"The value stored at {key!r} is not a JSON array"
        raise ConfigError(msg)
    if not all(isinstance(item, str) for item in value):
        msg = f"Every entry of {key!r} must be a string"
        raise ConfigError(msg)
    return value


def parse_config(contents: str) -> ConfigFile:
    """Parse JSON configuration text into a ``ConfigFile``.

    Args:
        contents: JSON object text with the keys ``fname``, ``types``,
            ``exhaustive domain``, ``random domain`` and ``num random``.

    Returns:
        The parsed configuration.

    Raises:
        ConfigError: If the JSON is malformed, a key is missing or has the
            wrong shape, the arrays differ in length, the count is invalid,
            or any type/domain spec is rejected.
    """
    try:
        data = json.loads(contents)
    except json.JSONDecodeError as exc:
        msg = f"Config data is not valid JSON: {exc.msg} (line {exc.lineno})"
        raise ConfigError(msg) from exc

    if not isinstance(data, dict):
        msg = f"Config data must be a JSON object, got {type(data).__name__}"
        raise ConfigError(msg)

    missing = [key for key in _REQUIRED_KEYS if key not in data]
    if missing:
        msg = f"Missing required key(s): {', '.join(missing)}"
        raise ConfigError(msg)

    function_name = data[KEY_FNAME]
    if not isinstance(function_name, str) or not function_name.isidentifier():
        msg = f"{KEY_FNAME!r} must be a valid function name string, got {function_name!r}"
        raise ConfigError(msg)

    types = _string_array(data, KEY_TYPES)
    exhaustive = _string_array(data, KEY_EXHAUSTIVE)
    random_specs = _string_array(data, KEY_RANDOM)
    if not len(types) == len(exhaustive) == len(random_specs):
        msg = (
            f"{KEY_TYPES}, {KEY_EXHAUSTIVE}, and {KEY_RANDOM} are not of the same "
            f"length ({len(types)}, {len(exhaustive)}, {len(random_specs)})"
        )
        raise ConfigError(msg)

    num_random = data[KEY_NUM_RANDOM]
    if isinstance(num_random, bool) or not isinstance(num_random, int) or num_random < 0:
        msg = f"{KEY_NUM_RANDOM!r} is not a non-negative integer: {num_random!r}"
        raise ConfigError(msg)

    nodes = tuple(
        parse_node(type_spec, ex_spec, rand_spec)
        for type_spec, ex_spec, rand_spec in zip(types, exhaustive, random_specs, strict=True)
    )
    logger.debug("Parsed %d parameter(s) for %s", len(nodes), function_name)
    return ConfigFile(function_name=function_name, nodes=nodes, num_random=num_random)


def load_config(path: str | Path) -> ConfigFile:
    """Read and parse a configuration file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the contents are invalid.
    """
    return parse_config(read_config_file(path))
