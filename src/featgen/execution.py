"""Execution harness: isolated, time-limited invocation of implementations.

Every call of an implementation runs in its own Python subprocess (the
:mod:`featgen.runner` script) inside a new process group. The request is
sent as JSON on stdin; the outcome is read back from the last result line
of stdout. Timeouts terminate the whole process group with SIGTERM,
escalating to SIGKILL after a grace period, so a hanging or crashing
implementation can never stall or take down the harness.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from pathlib import Path
import re
import signal
import sys
import time

from pydantic import BaseModel, ConfigDict, ValidationError

from featgen import runner
from featgen.models import Outcome, OutcomeStatus

logger = logging.getLogger(__name__)

RUNNER_PATH = Path(runner.__file__).resolve()
"""Script executed in every invocation subprocess."""

_RESULT_PATTERN: re.Pattern[str] = re.compile(
    rf"^{re.escape(runner.RESULT_MARKER)}(.*)$", re.MULTILINE
)

_SIGKILL_GRACE_SECONDS = 2
_STDERR_TAIL_CHARS = 2000


def build_execution_env() -> dict[str, str]:
    """Build environment variables for implementation subprocesses.

    Returns a copy of the current environment with ``PYTHONUNBUFFERED=1``,
    ``PYTHONHASHSEED=0`` (stable set and dict reprs across processes) and
    ``PYTHONDONTWRITEBYTECODE=1`` set.

    Returns:
        A new dict suitable for passing as ``env`` to a subprocess.
    """
    env = dict(os.environ)
    env["PYTHONUNBUFFERED"] = "1"
    env["PYTHONHASHSEED"] = "0"
    env["PYTHONDONTWRITEBYTECODE"] = "1"
    return env


class ExecutionRawResult(BaseModel):
    """Raw output captured from one invocation subprocess.

    Attributes:
        stdout: Full standard output from the subprocess.
        stderr: Full standard error from the subprocess.
        exit_code: Process exit code (0 = success, -1 = timeout).
        duration_seconds: Wall-clock execution time in seconds.
        timed_out: Whether execution was killed due to timeout.
    """

    model_config = ConfigDict(frozen=True)

    stdout: str
    stderr: str
    exit_code: int
    duration_seconds: float
    timed_out: bool


async def _kill_process_group(proc: asyncio.subprocess.Process) -> None:
    """Send SIGTERM to the process group, escalating to SIGKILL after grace period.

    Args:
        proc: The asyncio subprocess to kill.
    """
    pid = proc.pid
    if pid is None:
        return

    try:
        pgid = os.getpgid(pid)
    except (OSError, ProcessLookupError):
        return

    try:
        os.killpg(pgid, signal.SIGTERM)
    except (OSError, ProcessLookupError):
        return

    try:
        await asyncio.wait_for(proc.wait(), timeout=_SIGKILL_GRACE_SECONDS)
    except TimeoutError:
        with contextlib.suppress(OSError, ProcessLookupError):
            os.killpg(pgid, signal.SIGKILL)
        with contextlib.suppress(ProcessLookupError):
            await proc.wait()


async def execute_script(
    script_path: str | Path,
    stdin_data: str,
    timeout_seconds: float,
    *,
    working_dir: str | Path | None = None,
    env: dict[str, str] | None = None,
    python_executable: str | None = None,
) -> ExecutionRawResult:
    """Execute a Python script as an async subprocess.

    Runs ``python {script_path}`` in a new session (its own process group),
    writes *stdin_data* to its stdin, captures stdout and stderr, records
    wall-clock duration, and enforces the timeout via SIGTERM then SIGKILL.

    Args:
        script_path: Path to the Python script to execute.
        stdin_data: Text written to the script's standard input.
        timeout_seconds: Maximum seconds before the script is killed.
        working_dir: Working directory for the subprocess.
        env: Environment variables, or ``None`` to inherit the current ones.
        python_executable: Interpreter to use (default: the current one).

    Returns:
        An ``ExecutionRawResult`` with captured output, exit code, duration,
        and timeout status.
    """
    start = time.monotonic()

    proc = await asyncio.create_subprocess_exec(
        python_executable or sys.executable,
        str(script_path),
        cwd=None if working_dir is None else str(working_dir),
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
        start_new_session=True,
    )

    timed_out = False
    # Shield communicate() so it survives the timeout and can still collect
    # partial output once the process group is killed.
    communicate_task = asyncio.ensure_future(
        proc.communicate(input=stdin_data.encode("utf-8"))
    )
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            asyncio.shield(communicate_task),
            timeout=timeout_seconds,
        )
    except TimeoutError:
        timed_out = True
        await _kill_process_group(proc)
        stdout_bytes, stderr_bytes = await communicate_task

    duration = time.monotonic() - start

    stdout_str = stdout_bytes.decode("utf-8", errors="replace")
    stderr_str = stderr_bytes.decode("utf-8", errors="replace")

    if timed_out:
        exit_code = -1
    else:
        exit_code = proc.returncode if proc.returncode is not None else -1

    return ExecutionRawResult(
        stdout=stdout_str,
        stderr=stderr_str,
        exit_code=exit_code,
        duration_seconds=duration,
        timed_out=timed_out,
    )


def parse_outcome(raw: ExecutionRawResult) -> Outcome:
    """Turn raw subprocess output into a normalized ``Outcome``.

    The **last** result line in stdout wins. A timeout, a missing or
    unparseable result line, or a non-zero exit code is reported as a
    ``timed_out`` or ``crashed`` outcome.

    Args:
        raw: Captured subprocess output.

    Returns:
        The invocation's outcome.
    """
    if raw.timed_out:
        return Outcome(
            status=OutcomeStatus.TIMED_OUT,
            error_type="Timeout",
            error_message=f"no result after {raw.duration_seconds:.2f}s",
        )

    matches = _RESULT_PATTERN.findall(raw.stdout)
    if raw.exit_code == 0 and matches:
        try:
            return Outcome.model_validate(json.loads(matches[-1]))
        except (json.JSONDecodeError, ValidationError):
            logger.debug("Unparseable result line: %r", matches[-1])

    return Outcome(
        status=OutcomeStatus.CRASHED,
        error_type="Crash",
        error_message=(
            f"exit code {raw.exit_code}: {raw.stderr[-_STDERR_TAIL_CHARS:].strip()}"
        ),
    )


async def invoke(
    path: str | Path,
    function_name: str,
    args_literal: str,
    *,
    timeout_seconds: float,
    python_executable: str | None = None,
    env: dict[str, str] | None = None,
) -> Outcome:
    """Call ``function_name(*args)`` from the implementation file at *path*.

    Args:
        path: Python source file defining the function.
        function_name: Name of the function to call.
        args_literal: Python literal of the argument tuple.
        timeout_seconds: Wall-clock limit for the call, module import included.
        python_executable: Interpreter to use (default: the current one).
        env: Subprocess environment (default: :func:`build_execution_env`).

    Returns:
        The normalized outcome of the call.
    """
    impl_path = Path(path).resolve()
    request = json.dumps(
        {"path": str(impl_path), "function": function_name, "args": args_literal}
    )
    raw = await execute_script(
        RUNNER_PATH,
        request,
        timeout_seconds,
        working_dir=impl_path.parent,
        env=env if env is not None else build_execution_env(),
        python_executable=python_executable,
    )
    outcome = parse_outcome(raw)
    logger.debug(
        "%s%s -> %s (%.2fs)",
        impl_path.name,
        args_literal,
        outcome.status,
        raw.duration_seconds,
    )
    return outcome
