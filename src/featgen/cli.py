"""CLI entry point for featgen.

Provides ``main()`` as the console-script entry point registered in
``pyproject.toml`` as ``featgen = "featgen.cli:main"``. Parses command-line
arguments, loads optional harness settings, and delegates to
``generate_tests_sync()`` from ``featgen.pipeline``.
"""

from __future__ import annotations

import argparse
import sys

from featgen.generation import GenerationLimitError
from featgen.models import ConciseSet, HarnessSettings
from featgen.oracle import ReferenceImplementationError
from featgen.parser import ConfigError
from featgen.pipeline import (
    apply_env_overrides,
    configure_logging,
    generate_tests_sync,
    load_settings,
)


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured ``ArgumentParser``.
    """
    parser = argparse.ArgumentParser(
        prog="featgen",
        description=(
            "Generate a concise set of test cases that exposes every buggy "
            "implementation of a Python function."
        ),
    )
    parser.add_argument("config", help="Path to the JSON configuration file.")
    parser.add_argument("reference", help="Path to the reference implementation.")
    parser.add_argument(
        "candidates",
        help="Directory containing the candidate (buggy) implementations.",
    )
    parser.add_argument(
        "--settings",
        default=None,
        help="Path to an optional HarnessSettings YAML file.",
    )
    return parser


def _print_result(result: ConciseSet) -> None:
    """Print the concise test set and any uncovered candidates to stdout."""
    print(f"Concise test set for {result.function_name} ({len(result.tests)} case(s)):")
    for case in result.tests:
        expected = case.expected.describe() if case.expected is not None else "?"
        print(f"  {case.render(result.function_name)}  # {expected}")
    if result.uncovered:
        print("Not exposed by any generated input:")
        for identifier in sorted(result.uncovered):
            print(f"  {identifier}")


def main(argv: list[str] | None = None) -> int:
    """Entry point for the featgen CLI application.

    Args:
        argv: Command-line arguments (defaults to ``sys.argv[1:]``).

    Returns:
        Exit code: 0 on success, 1 on error.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = (
            load_settings(args.settings) if args.settings is not None else HarnessSettings()
        )
        settings = apply_env_overrides(settings)
        configure_logging(settings)
        result = generate_tests_sync(args.config, args.reference, args.candidates, settings)
    except (ConfigError, GenerationLimitError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1
    except ReferenceImplementationError as exc:
        print(f"Reference implementation error: {exc}", file=sys.stderr)
        print(f"Diagnostics: {exc.diagnostics}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"I/O error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    _print_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
