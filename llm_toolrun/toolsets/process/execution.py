"""Child-process execution and the fallback executor.

This module provides:
- Argument-vector command execution (never through a shell)
- Explicit timeouts and a cooperative cancellation token
- run_with_fallback: primary command, one alternate, classified outcome

Commands given as strings are split with shlex. Nothing is interpreted by a
shell, so metacharacters in user-supplied names or paths are inert.
"""
from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import Sequence
from pathlib import Path
from typing import Optional, Union

from ...exceptions import CommandError, ToolrunError
from ...tool_context import DEFAULT_COMMAND_TIMEOUT, WriterSink
from .types import CommandResult, InvocationResult

logger = logging.getLogger(__name__)

# Maximum output size in characters (50KB)
MAX_OUTPUT_CHARS = 50 * 1024

Command = Union[str, Sequence[str]]


class RunCancelledError(ToolrunError):
    """Raised when the run's cancellation token fires during a command."""


def parse_command(command: Command) -> list[str]:
    """Turn a command into an argument vector.

    Args:
        command: Argument vector, or a string split with shlex

    Returns:
        List of command arguments

    Raises:
        CommandError: If the string cannot be parsed or the command is empty
    """
    if isinstance(command, str):
        try:
            args = shlex.split(command)
        except ValueError as e:
            raise CommandError(f"Cannot parse command: {e}") from e
    else:
        args = [str(arg) for arg in command]
    if not args:
        raise CommandError("Empty command")
    return args


def _decode(data: bytes | None) -> tuple[str, bool]:
    text = (data or b"").decode("utf-8", errors="replace")
    if len(text) > MAX_OUTPUT_CHARS:
        return text[:MAX_OUTPUT_CHARS] + "\n... (output truncated)", True
    return text, False


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


async def _communicate(
    proc: asyncio.subprocess.Process,
    timeout: float,
    cancel: asyncio.Event | None,
) -> tuple[bytes, bytes]:
    """Wait for the process, honoring the timeout and cancellation token."""
    communicate = asyncio.ensure_future(proc.communicate())
    waiters: set[asyncio.Future] = {communicate}
    cancelled: asyncio.Future | None = None
    if cancel is not None:
        cancelled = asyncio.ensure_future(cancel.wait())
        waiters.add(cancelled)
    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except BaseException:
        communicate.cancel()
        raise
    finally:
        if cancelled is not None:
            cancelled.cancel()

    if communicate in done:
        return communicate.result()
    communicate.cancel()
    if cancelled is not None and cancelled in done:
        raise RunCancelledError("Run cancelled while a command was executing")
    raise TimeoutError


async def run_command(
    command: Command,
    working_dir: Optional[Path | str] = None,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
    cancel: asyncio.Event | None = None,
    env: Optional[dict] = None,
) -> CommandResult:
    """Execute one command and capture its output.

    Start-up failures (missing executable, permission denied, bad working
    directory) and timeouts are reported through the exit code rather than
    raised, so callers can classify them like any other failure.

    Args:
        command: Argument vector or shlex-parseable string
        working_dir: Working directory for the command (defaults to cwd)
        timeout: Timeout in seconds
        cancel: Cancellation token; when set the child process is killed
        env: Environment variables (defaults to current environment)

    Returns:
        CommandResult with stdout, stderr, exit_code and flags

    Raises:
        CommandError: If the command cannot be parsed
        RunCancelledError: If the cancellation token fired
    """
    args = parse_command(command)
    if cancel is not None and cancel.is_set():
        raise RunCancelledError("Run cancelled before command started")

    if working_dir is not None and not Path(working_dir).is_dir():
        return CommandResult(
            argv=args,
            stdout="",
            stderr=f"Working directory not found: {working_dir}",
            exit_code=1,
        )

    logger.info("Executing command: %s (cwd=%s)", args, working_dir or ".")

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(working_dir) if working_dir is not None else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
    except FileNotFoundError:
        return CommandResult(
            argv=args, stdout="", stderr=f"Command not found: {args[0]}", exit_code=127
        )
    except PermissionError:
        return CommandResult(
            argv=args, stdout="", stderr=f"Permission denied: {args[0]}", exit_code=126
        )
    except OSError as e:
        return CommandResult(
            argv=args, stdout="", stderr=f"Failed to execute command: {e}", exit_code=126
        )

    try:
        raw_stdout, raw_stderr = await _communicate(proc, timeout, cancel)
    except TimeoutError:
        await _terminate(proc)
        return CommandResult(
            argv=args,
            stdout="",
            stderr=f"Command timed out after {timeout} seconds",
            exit_code=-1,
            timed_out=True,
        )
    except BaseException:
        await _terminate(proc)
        raise

    stdout, stdout_truncated = _decode(raw_stdout)
    stderr, stderr_truncated = _decode(raw_stderr)
    return CommandResult(
        argv=args,
        stdout=stdout,
        stderr=stderr,
        exit_code=proc.returncode if proc.returncode is not None else -1,
        truncated=stdout_truncated or stderr_truncated,
    )


def classify(result: CommandResult) -> InvocationResult:
    """Classify a command that ran: success, warning, or failure."""
    common = {
        "stdout": result.stdout,
        "stderr": result.stderr,
        "command": result.command_line,
    }
    if not result.ok:
        return InvocationResult.failure(result.error_text(), **common)
    if result.has_diagnostics:
        message = f"stdout:\n{result.stdout.strip()}\nstderr:\n{result.stderr.strip()}"
        return InvocationResult.warning(message, **common)
    return InvocationResult.success(result.stdout.strip(), **common)


def _emit(writer: WriterSink | None, text: str) -> None:
    if writer is not None:
        writer(text)


async def run_with_fallback(
    primary: Command,
    *,
    working_dir: Optional[Path | str] = None,
    alternate: Command | None = None,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
    cancel: asyncio.Event | None = None,
    writer: WriterSink | None = None,
) -> InvocationResult:
    """Run a command, falling back to one alternate command on failure.

    When both commands fail the primary's error is reported. The alternate's
    error is only logged so the root cause is not masked by a secondary one.
    Every classified outcome is written to ``writer`` before it is returned.
    """
    primary_args = parse_command(primary)
    alternate_args = parse_command(alternate) if alternate is not None else None

    first = await run_command(
        primary_args, working_dir=working_dir, timeout=timeout, cancel=cancel
    )
    if first.ok or alternate_args is None:
        outcome = classify(first)
    else:
        alternate_line = " ".join(alternate_args)
        _emit(writer, f"{first.command_line} failed, trying {alternate_line}...")
        second = await run_command(
            alternate_args, working_dir=working_dir, timeout=timeout, cancel=cancel
        )
        if second.ok:
            outcome = classify(second).model_copy(
                update={"fallback_used": True, "fallback_command": alternate_line}
            )
        else:
            logger.warning(
                "Fallback %s also failed (%s); reporting primary error",
                alternate_line,
                second.error_text(),
            )
            outcome = classify(first)

    _emit(writer, outcome.render())
    return outcome
