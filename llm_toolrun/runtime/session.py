"""Per-thread conversation storage.

PydanticAI agents are stateless between runs; conversation memory is the
message history passed back in on the next run. SessionStore keeps that
history per thread identifier so two threads never see each other's
messages.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    ToolCallPart,
    UserPromptPart,
)

from .events import TokenUsage


@dataclass(frozen=True)
class SessionSnapshot:
    thread_id: str
    messages: tuple[ModelMessage, ...] = ()

    @property
    def tool_call_messages(self) -> int:
        """Number of model responses that requested at least one tool."""
        return sum(
            1
            for message in self.messages
            if isinstance(message, ModelResponse)
            and any(isinstance(part, ToolCallPart) for part in message.parts)
        )

    @property
    def usage(self) -> TokenUsage:
        total = TokenUsage()
        for message in self.messages:
            if isinstance(message, ModelResponse) and message.usage is not None:
                total = total + TokenUsage(
                    input_tokens=message.usage.input_tokens or 0,
                    output_tokens=message.usage.output_tokens or 0,
                )
        return total

    @property
    def user_turns(self) -> int:
        return sum(
            1
            for message in self.messages
            if isinstance(message, ModelRequest)
            and any(isinstance(part, UserPromptPart) for part in message.parts)
        )


@dataclass
class SessionStore:
    """In-memory message history keyed by thread identifier."""

    _threads: dict[str, list[ModelMessage]] = field(default_factory=dict)

    def load(self, thread_id: str) -> list[ModelMessage]:
        """Return a copy of the history for ``thread_id`` (empty if new)."""
        return list(self._threads.get(thread_id, ()))

    def save(self, thread_id: str, messages: list[ModelMessage]) -> None:
        self._threads[thread_id] = list(messages)

    def get_state(self, thread_id: str) -> SessionSnapshot:
        return SessionSnapshot(thread_id=thread_id, messages=tuple(self._threads.get(thread_id, ())))

    def clear(self, thread_id: str) -> None:
        self._threads.pop(thread_id, None)

    @property
    def thread_ids(self) -> list[str]:
        return list(self._threads)
