"""Process-execution data models.

- CommandResult: raw output of one child process
- OutcomeStatus: success / warning / failure classification
- InvocationResult: classified outcome handed back to the model
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class CommandResult(BaseModel):
    """Result of running one argument vector."""

    argv: list[str]
    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False
    truncated: bool = False  # True if output exceeded limit

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def has_diagnostics(self) -> bool:
        return bool(self.stderr.strip())

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)

    def error_text(self) -> str:
        """Describe why the command failed; never empty."""
        detail = self.stderr.strip()
        if detail:
            return detail
        return f"{self.command_line} exited with status {self.exit_code}"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    FAILURE = "failure"


_STATUS_MARKERS = {
    OutcomeStatus.SUCCESS: "OK",
    OutcomeStatus.WARNING: "WARNING",
    OutcomeStatus.FAILURE: "FAILED",
}


class InvocationResult(BaseModel):
    """Classified outcome of a tool invocation."""

    status: OutcomeStatus
    message: str
    stdout: str | None = None
    stderr: str | None = None
    command: str | None = None
    fallback_used: bool = False
    fallback_command: str | None = Field(
        default=None,
        description="Alternate command that produced this result",
    )

    @classmethod
    def success(cls, message: str, **kwargs) -> "InvocationResult":
        return cls(status=OutcomeStatus.SUCCESS, message=message, **kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs) -> "InvocationResult":
        return cls(status=OutcomeStatus.WARNING, message=message, **kwargs)

    @classmethod
    def failure(cls, message: str, **kwargs) -> "InvocationResult":
        return cls(status=OutcomeStatus.FAILURE, message=message, **kwargs)

    @property
    def is_success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.status is OutcomeStatus.FAILURE

    def with_message(self, message: str) -> "InvocationResult":
        return self.model_copy(update={"message": message})

    def render(self) -> str:
        """Render the outcome as the string returned to the model."""
        header = f"[{_STATUS_MARKERS[self.status]}]"
        if self.fallback_used:
            header += f" (fallback used: {self.fallback_command})"
        if not self.message:
            return header
        if "\n" in self.message:
            return f"{header}\n{self.message}"
        return f"{header} {self.message}"


__all__ = [
    "CommandResult",
    "InvocationResult",
    "OutcomeStatus",
]
