"""Step records emitted by the session driver (no rendering concerns)."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

StepSource = Literal["agent", "tools"]
StopReason = Literal["completed", "iteration_limit", "cancelled", "error"]


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass
class ToolCall:
    tool_name: str
    tool_call_id: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    tool_name: str
    tool_call_id: str
    content: str = ""
    is_error: bool = False  # True for schema-validation retries


@dataclass
class StepUpdate:
    """One incremental update of a run, in emission order."""

    index: int
    source: StepSource
    thread_id: str = ""
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    usage: TokenUsage | None = None


@dataclass
class RunSummary:
    """Statistics read back from the persisted session after a run.

    ``steps`` comes from the stream; the other counters come from the
    session snapshot, so the two are not required to agree.
    """

    thread_id: str
    steps: int
    messages: int
    tool_calls: int
    usage: TokenUsage
    stop_reason: StopReason = "completed"
    output: str | None = None
