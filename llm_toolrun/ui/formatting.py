"""Text helpers shared by the transcript backends."""
from __future__ import annotations

import json
from typing import Any

from ..runtime.events import TokenUsage

TRUNCATION_SUFFIX = "... [truncated]"
MORE_LINES = "... ({count} more lines)"


def truncate_text(text: str, max_len: int, *, suffix: str = TRUNCATION_SUFFIX) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len] + suffix


def truncate_lines(text: str, max_len: int, max_lines: int) -> str:
    """Truncate by length first, then keep at most ``max_lines`` lines."""
    text = truncate_text(text, max_len)
    lines = text.split("\n")
    if len(lines) <= max_lines:
        return text
    extra = len(lines) - max_lines
    return "\n".join(lines[:max_lines]) + "\n" + MORE_LINES.format(count=extra)


def format_args(args: dict[str, Any]) -> str:
    """Tool arguments as compact JSON (non-ASCII kept readable)."""
    return json.dumps(args, ensure_ascii=False, default=repr)


def format_usage(usage: TokenUsage) -> str:
    return (
        f"tokens: {usage.input_tokens} in / {usage.output_tokens} out"
        f" / {usage.total_tokens} total"
    )
