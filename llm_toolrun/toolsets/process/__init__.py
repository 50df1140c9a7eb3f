"""Process execution for tool handlers."""
from __future__ import annotations

from .execution import (
    DEFAULT_COMMAND_TIMEOUT,
    MAX_OUTPUT_CHARS,
    RunCancelledError,
    classify,
    parse_command,
    run_command,
    run_with_fallback,
)
from .types import CommandResult, InvocationResult, OutcomeStatus

__all__ = [
    "DEFAULT_COMMAND_TIMEOUT",
    "MAX_OUTPUT_CHARS",
    "CommandResult",
    "InvocationResult",
    "OutcomeStatus",
    "RunCancelledError",
    "classify",
    "parse_command",
    "run_command",
    "run_with_fallback",
]
