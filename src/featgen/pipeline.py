"""End-to-end test generation: config -> base set -> oracle -> concise set.

Provides ``generate_tests()`` (async) and ``generate_tests_sync()`` as the
top-level entry points, plus the ambient pieces they share: harness
settings loading from YAML, ``FEATGEN_*`` environment overrides, and
logging configuration.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
import random
from typing import Any

import yaml

from featgen.generation import generate_base_set
from featgen.models import ConciseSet, HarnessSettings, ImplementationHandle
from featgen.oracle import Tester, discover_implementations
from featgen.parser import load_config
from featgen.setcover import greedy_set_cover

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_ENV_FIELD_MAP: dict[str, str] = {
    "FEATGEN_TIMEOUT": "timeout_seconds",
    "FEATGEN_MAX_WORKERS": "max_workers",
    "FEATGEN_LOG_LEVEL": "log_level",
    "FEATGEN_SEED": "seed",
}
"""Maps environment variable names to HarnessSettings field names."""


def load_settings(path: str | Path) -> HarnessSettings:
    """Load harness settings from a YAML mapping.

    Args:
        path: Path to the settings YAML file.

    Returns:
        The validated settings.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file does not contain a YAML mapping or a value
            fails validation.
    """
    file_path = Path(path)
    if not file_path.exists():
        msg = f"settings file not found: {path}"
        raise FileNotFoundError(msg)

    with open(file_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return HarnessSettings()
    if not isinstance(data, dict):
        msg = f"settings file must contain a YAML mapping, got {type(data).__name__}"
        raise ValueError(msg)
    return HarnessSettings(**data)


def apply_env_overrides(settings: HarnessSettings) -> HarnessSettings:
    """Apply ``FEATGEN_*`` env var overrides to *settings*.

    Environment variables override **default** field values only; a field
    whose value differs from the ``HarnessSettings`` default is considered
    explicitly set and is kept. Unparseable values are ignored.

    Args:
        settings: The settings to apply overrides to.

    Returns:
        A new ``HarnessSettings`` with overrides applied.
    """
    defaults = HarnessSettings()
    overrides: dict[str, Any] = {}

    for env_var, field_name in _ENV_FIELD_MAP.items():
        env_value = os.environ.get(env_var)
        if env_value is None:
            continue
        if getattr(settings, field_name) != getattr(defaults, field_name):
            continue
        parsed = _parse_env_value(field_name, env_value)
        if parsed is not None:
            overrides[field_name] = parsed

    if not overrides:
        return settings
    return settings.model_copy(update=overrides)


def _parse_env_value(field_name: str, raw: str) -> Any:
    """Parse a raw env var string for *field_name*, or ``None`` if invalid."""
    if field_name == "log_level":
        return raw
    if field_name == "timeout_seconds":
        try:
            timeout = float(raw)
        except ValueError:
            return None
        return timeout if timeout > 0 else None
    try:
        value = int(raw)
    except ValueError:
        return None
    if field_name == "max_workers" and value < 1:
        return None
    return value


# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(settings: HarnessSettings) -> None:
    """Configure the ``"featgen"`` logger.

    Adds a console handler and an optional file handler. Idempotent:
    repeated calls do not duplicate handlers.

    Args:
        settings: Settings providing ``log_level`` and optional ``log_file``.
    """
    featgen_logger = logging.getLogger("featgen")
    featgen_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    # FileHandler subclasses StreamHandler, so match the console handler exactly.
    if not any(type(h) is logging.StreamHandler for h in featgen_logger.handlers):
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(_LOG_FORMAT))
        featgen_logger.addHandler(console)

    if settings.log_file is not None:
        has_file = any(
            isinstance(h, logging.FileHandler)
            and getattr(h, "baseFilename", None) == str(Path(settings.log_file).resolve())
            for h in featgen_logger.handlers
        )
        if not has_file:
            file_handler = logging.FileHandler(settings.log_file)
            file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
            featgen_logger.addHandler(file_handler)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def generate_tests(
    config_path: str | Path,
    reference_path: str | Path,
    candidates_dir: str | Path,
    settings: HarnessSettings | None = None,
) -> ConciseSet:
    """Generate a concise test set exposing every candidate implementation.

    Args:
        config_path: JSON configuration file.
        reference_path: Python file with the reference implementation.
        candidates_dir: Directory of candidate implementation files.
        settings: Harness settings; defaults when ``None``.

    Returns:
        The concise test set (with expected outcomes attached) and the
        candidates it cannot expose.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        NotADirectoryError: If the candidate directory does not exist.
        ConfigError: If the configuration is invalid.
        GenerationLimitError: If the exhaustive domains are too large.
        ReferenceImplementationError: If the reference cannot be invoked.
    """
    settings = settings if settings is not None else HarnessSettings()
    config = load_config(config_path)
    candidates = discover_implementations(candidates_dir)
    logger.info(
        "Generating tests for %s with %d candidate implementation(s)",
        config.function_name,
        len(candidates),
    )

    rng = random.Random(settings.seed)  # noqa: S311
    cases = generate_base_set(config, rng, limit=settings.max_exhaustive_cases)

    reference = ImplementationHandle(identifier="reference", path=Path(reference_path))
    tester = Tester(config.function_name, reference, candidates, cases, settings)
    await tester.compute_expected_results()
    results = await tester.run_tests()
    return greedy_set_cover(results)


def generate_tests_sync(
    config_path: str | Path,
    reference_path: str | Path,
    candidates_dir: str | Path,
    settings: HarnessSettings | None = None,
) -> ConciseSet:
    """Synchronous wrapper for :func:`generate_tests` via ``asyncio.run()``."""
    return asyncio.run(
        generate_tests(config_path, reference_path, candidates_dir, settings)
    )
