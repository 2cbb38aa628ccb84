"""Subprocess side of an invocation: call one implementation with one argument tuple.

Executed as a script by :mod:`featgen.execution`, never imported into the
implementation's process as part of the package, so it depends on the
standard library only. Reads a JSON request from stdin::

    {"path": "/impls/buggy1.py", "function": "merge", "args": "([1, 2], 3)"}

and prints a single result line prefixed with ``RESULT_MARKER`` as the last
line of stdout.
"""

from __future__ import annotations

import ast
import importlib.util
import json
from pathlib import Path
import sys
from typing import Any

RESULT_MARKER = "__featgen_result__:"


def _load_function(path: str, name: str) -> Any:
    """Import the file at *path* as a fresh module and return its *name* attribute."""
    spec = importlib.util.spec_from_file_location("_featgen_impl", path)
    if spec is None or spec.loader is None:
        msg = f"Cannot load implementation from {path}"
        raise ImportError(msg)
    module = importlib.util.module_from_spec(spec)
    # Dataclasses and typing helpers look the module up by name while it executes.
    sys.modules[spec.name] = module
    sys.path.insert(0, str(Path(path).resolve().parent))
    spec.loader.exec_module(module)
    func = getattr(module, name, None)
    if not callable(func):
        msg = f"{path} does not define a callable {name!r}"
        raise AttributeError(msg)
    return func


def run(request: dict[str, str]) -> dict[str, str]:
    """Perform the call described by *request* and describe how it ended."""
    try:
        func = _load_function(request["path"], request["function"])
    except Exception as exc:  # noqa: BLE001
        return {
            "status": "load_error",
            "error_type": type(exc).__name__,
            "error_message": str(exc),
        }

    try:
        args = ast.literal_eval(request["args"])
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError) as exc:
        return {
            "status": "crashed",
            "error_type": "ArgumentError",
            "error_message": f"cannot decode arguments {request['args']!r}: {exc}",
        }
    try:
        result = func(*args)
    except Exception as exc:  # noqa: BLE001
        return {
            "status": "raised",
            "error_type": type(exc).__name__,
            "error_message": str(exc),
        }
    return {"status": "returned", "value": repr(result)}


def main() -> int:
    """Entry point: read the request, run it, print the result line."""
    # Keep this script's directory (the featgen package) off the import path.
    if sys.path and Path(sys.path[0]).resolve() == Path(__file__).resolve().parent:
        del sys.path[0]
    request = json.loads(sys.stdin.read())
    outcome = run(request)
    sys.stdout.write("\n" + RESULT_MARKER + json.dumps(outcome) + "\n")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
