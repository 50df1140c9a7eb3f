"""Session driver, step records and per-thread conversation storage."""
from .driver import (
    DEFAULT_RECURSION_LIMIT,
    DriverState,
    RunOutcome,
    SessionDriver,
    settled_history,
    step_from_node,
)
from .events import (
    RunSummary,
    StepSource,
    StepUpdate,
    StopReason,
    TokenUsage,
    ToolCall,
    ToolResult,
)
from .session import SessionSnapshot, SessionStore

__all__ = [
    "DEFAULT_RECURSION_LIMIT",
    "DriverState",
    "RunOutcome",
    "RunSummary",
    "SessionDriver",
    "SessionSnapshot",
    "SessionStore",
    "StepSource",
    "StepUpdate",
    "StopReason",
    "TokenUsage",
    "ToolCall",
    "ToolResult",
    "settled_history",
    "step_from_node",
]
