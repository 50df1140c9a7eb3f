"""Transcript backends for the CLI.

Each backend renders the driver's StepUpdate records, progress lines from
the tools' writer sink, the final RunSummary and errors. Backends hold no
state beyond their output stream.
"""
from __future__ import annotations

import json
import sys
from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import Any, Mapping, TextIO

from ..runtime.events import RunSummary, StepUpdate
from .formatting import format_args, format_usage, truncate_lines, truncate_text

MAX_ARGS_CHARS = 200
MAX_RESULT_CHARS = 500
MAX_RESULT_LINES = 10


class TranscriptBackend(ABC):
    """Interface for rendering a run (plain text, Rich, JSON lines)."""

    @abstractmethod
    def display_step(self, step: StepUpdate) -> None:
        raise NotImplementedError

    @abstractmethod
    def display_progress(self, text: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def display_summary(self, summary: RunSummary) -> None:
        raise NotImplementedError

    @abstractmethod
    def display_error(self, message: str) -> None:
        raise NotImplementedError

    def writer(self, text: str) -> None:
        """Writer sink handed to tools; forwards to display_progress."""
        self.display_progress(text)


class HeadlessDisplayBackend(TranscriptBackend):
    """Plain text renderer for non-interactive runs."""

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream or sys.stderr

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.write("\n")
        self.stream.flush()

    def display_step(self, step: StepUpdate) -> None:
        self._write(f"\n[step {step.index}] {step.source}")
        if step.text.strip():
            for line in step.text.split("\n"):
                self._write(f"  {line}")
        for call in step.tool_calls:
            self._write(f"  Tool call: {call.tool_name}")
            if call.args:
                self._write(f"    Args: {truncate_text(format_args(call.args), MAX_ARGS_CHARS)}")
        for result in step.tool_results:
            label = "Tool retry" if result.is_error else "Tool result"
            self._write(f"  {label}: {result.tool_name}")
            for line in truncate_lines(result.content, MAX_RESULT_CHARS, MAX_RESULT_LINES).split("\n"):
                self._write(f"    {line}")
        if step.usage is not None:
            self._write(f"  {format_usage(step.usage)}")

    def display_progress(self, text: str) -> None:
        for line in text.rstrip("\n").split("\n"):
            self._write(f"  | {line}")

    def display_summary(self, summary: RunSummary) -> None:
        self._write(f"\nRun {summary.stop_reason} on thread '{summary.thread_id}'")
        self._write(
            f"  steps: {summary.steps}, messages: {summary.messages},"
            f" tool calls: {summary.tool_calls}"
        )
        self._write(f"  {format_usage(summary.usage)}")

    def display_error(self, message: str) -> None:
        self._write(f"Error: {message}")


class RichDisplayBackend(TranscriptBackend):
    """Rich-formatted renderer.

    When writing to a StringIO buffer, pass force_terminal=True to keep the
    ANSI codes for later display in a terminal.
    """

    def __init__(self, stream: TextIO | None = None, force_terminal: bool = False):
        from rich.console import Console

        self.stream = stream or sys.stderr
        self.console = Console(file=self.stream, force_terminal=force_terminal, width=120)

    def display_step(self, step: StepUpdate) -> None:
        from rich.json import JSON
        from rich.panel import Panel
        from rich.text import Text

        if step.text.strip():
            self.console.print(Panel(
                step.text,
                title=f"[bold magenta]Step {step.index} ▷ Model Response[/bold magenta]",
                border_style="magenta",
            ))
        for call in step.tool_calls:
            body = JSON(format_args(call.args)) if call.args else Text("(no arguments)", style="dim")
            self.console.print(Panel(
                body,
                title=f"[bold blue]Step {step.index} ▷ Tool Call: {call.tool_name}[/bold blue]",
                border_style="blue",
            ))
        for result in step.tool_results:
            kind = "Tool Retry" if result.is_error else "Tool Result"
            self.console.print(Panel(
                Text(truncate_lines(result.content, MAX_RESULT_CHARS, MAX_RESULT_LINES)),
                title=f"[bold yellow]Step {step.index} ◁ {kind}: {result.tool_name}[/bold yellow]",
                border_style="red" if result.is_error else "yellow",
            ))
        if step.usage is not None:
            self.console.print(f"[dim]{format_usage(step.usage)}[/dim]")

    def display_progress(self, text: str) -> None:
        from rich.text import Text

        self.console.print(Text(text.rstrip("\n"), style="cyan"))

    def display_summary(self, summary: RunSummary) -> None:
        from rich.table import Table

        table = Table(title=f"Run summary ({summary.thread_id})", show_header=False)
        table.add_row("Stop reason", summary.stop_reason)
        table.add_row("Steps", str(summary.steps))
        table.add_row("Messages", str(summary.messages))
        table.add_row("Tool calls", str(summary.tool_calls))
        table.add_row("Tokens", format_usage(summary.usage))
        self.console.print(table)

    def display_error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {message}")


class JsonDisplayBackend(TranscriptBackend):
    """JSONL renderer for automation."""

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream or sys.stderr

    def _write_record(self, record: Mapping[str, Any]) -> None:
        json.dump(record, self.stream, default=repr, ensure_ascii=False)
        self.stream.write("\n")
        self.stream.flush()

    def display_step(self, step: StepUpdate) -> None:
        self._write_record({"kind": "step", "payload": asdict(step)})

    def display_progress(self, text: str) -> None:
        self._write_record({"kind": "progress", "payload": text})

    def display_summary(self, summary: RunSummary) -> None:
        payload = asdict(summary)
        payload["usage"]["total_tokens"] = summary.usage.total_tokens
        self._write_record({"kind": "summary", "payload": payload})

    def display_error(self, message: str) -> None:
        self._write_record({"kind": "error", "payload": message})
