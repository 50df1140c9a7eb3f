"""Dependencies handed to every tool call through RunContext.deps."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Optional

# Default timeout in seconds for one command
DEFAULT_COMMAND_TIMEOUT = 120.0

WriterSink = Callable[[str], None]


@dataclass
class ToolContext:
    """Per-run execution context shared by tools and nested delegate runs.

    The cancellation token is shared with child contexts, so cancelling the
    top-level run also stops commands started by delegated workers.
    """

    workspace: Path = field(default_factory=Path.cwd)
    writer: Optional[WriterSink] = None
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    depth: int = 0
    max_depth: int = 2
    recursion_limit: int = 50
    request_timeout: float | None = None
    worker: str = "main"

    def write(self, text: str) -> None:
        """Send a progress line to the writer sink, if any."""
        if self.writer is not None:
            self.writer(text)

    def resolve(self, path: str | Path) -> Path:
        """Resolve a path relative to the workspace."""
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.workspace / candidate
        return candidate

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def child(self, worker: str) -> "ToolContext":
        """Context for a delegated worker one level deeper."""
        return replace(self, depth=self.depth + 1, worker=worker)
