"""Transcript rendering for llm-toolrun runs."""
from .display import (
    HeadlessDisplayBackend,
    JsonDisplayBackend,
    RichDisplayBackend,
    TranscriptBackend,
)
from .formatting import format_args, format_usage, truncate_lines, truncate_text

__all__ = [
    "HeadlessDisplayBackend",
    "JsonDisplayBackend",
    "RichDisplayBackend",
    "TranscriptBackend",
    "format_args",
    "format_usage",
    "truncate_lines",
    "truncate_text",
]
