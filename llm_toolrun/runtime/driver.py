"""Agent session driver.

Runs one PydanticAI agent session per thread identifier and turns the
agent graph's nodes into StepUpdate records, yielded strictly in order:

- a model response becomes an ``agent`` step (text, tool calls, usage)
- a request carrying tool returns becomes a ``tools`` step

Each thread's run state moves IDLE -> STREAMING -> (DRAINING <-> STREAMING) ->
TERMINAL. A run ends when the graph ends, when the iteration ceiling
(``UsageLimits.request_limit``) is hit, or when ``cancel()`` is called.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic_ai import Agent
from pydantic_ai.exceptions import UsageLimitExceeded
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    RetryPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
)
from pydantic_ai.settings import ModelSettings
from pydantic_ai.usage import UsageLimits

from ..exceptions import SessionBusyError
from ..tool_context import DEFAULT_COMMAND_TIMEOUT, ToolContext, WriterSink
from ..toolsets.process import RunCancelledError
from ..toolsets.registry import ToolRegistry
from .events import RunSummary, StepUpdate, StopReason, TokenUsage, ToolCall, ToolResult
from .session import SessionSnapshot, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_RECURSION_LIMIT = 50


class DriverState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    DRAINING = "draining"
    TERMINAL = "terminal"


@dataclass
class RunOutcome:
    """State and result of the latest run on one thread."""

    state: DriverState = DriverState.IDLE
    stop_reason: StopReason | None = None
    output: str | None = None


def _agent_step(response: ModelResponse, index: int, thread_id: str) -> StepUpdate:
    text = "".join(part.content for part in response.parts if isinstance(part, TextPart))
    calls = [
        ToolCall(
            tool_name=part.tool_name,
            tool_call_id=part.tool_call_id,
            args=part.args_as_dict(),
        )
        for part in response.parts
        if isinstance(part, ToolCallPart)
    ]
    usage = TokenUsage(
        input_tokens=response.usage.input_tokens or 0,
        output_tokens=response.usage.output_tokens or 0,
    )
    return StepUpdate(
        index=index,
        source="agent",
        thread_id=thread_id,
        text=text,
        tool_calls=calls,
        usage=usage,
    )


def _tools_step(request: ModelRequest, index: int, thread_id: str) -> StepUpdate | None:
    results: list[ToolResult] = []
    for part in request.parts:
        if isinstance(part, ToolReturnPart):
            content = part.content if isinstance(part.content, str) else part.model_response_str()
            results.append(
                ToolResult(tool_name=part.tool_name, tool_call_id=part.tool_call_id, content=content)
            )
        elif isinstance(part, RetryPromptPart) and part.tool_name:
            results.append(
                ToolResult(
                    tool_name=part.tool_name,
                    tool_call_id=part.tool_call_id,
                    content=part.model_response(),
                    is_error=True,
                )
            )
    if not results:
        return None
    return StepUpdate(index=index, source="tools", thread_id=thread_id, tool_results=results)


def step_from_node(node: Any, index: int, thread_id: str) -> StepUpdate | None:
    """Convert an agent graph node into a step, or None for nodes with nothing to show."""
    if Agent.is_call_tools_node(node):
        return _agent_step(node.model_response, index, thread_id)
    if Agent.is_model_request_node(node):
        return _tools_step(node.request, index, thread_id)
    return None


def settled_history(messages: list[ModelMessage]) -> list[ModelMessage]:
    """Drop a trailing model response whose tool calls were never answered.

    A run stopped between steps can leave one behind, and the next prompt on
    the thread would be rejected while it is there.
    """
    history = list(messages)
    if (
        history
        and isinstance(history[-1], ModelResponse)
        and any(isinstance(part, ToolCallPart) for part in history[-1].parts)
    ):
        history.pop()
    return history


def _is_cancellation(exc: BaseException) -> bool:
    if isinstance(exc, RunCancelledError):
        return True
    if isinstance(exc, BaseExceptionGroup):
        return exc.subgroup(RunCancelledError) is not None
    return False


class SessionDriver:
    """Drive streamed agent runs against a fixed tool registry.

    Example:
        driver = SessionDriver(model, build_registry(ScriptingProfile()))
        async for step in driver.run("Check my Python setup", thread_id="t1"):
            backend.display_step(step)
        summary = driver.summarize("t1", steps=step.index)
    """

    def __init__(
        self,
        model: Any,
        registry: ToolRegistry,
        *,
        store: Optional[SessionStore] = None,
        workspace: Optional[Path] = None,
        writer: Optional[WriterSink] = None,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        max_delegation_depth: int = 2,
        request_timeout: Optional[float] = None,
    ):
        self._registry = registry
        self._agent: Agent[ToolContext, str] = Agent(
            model,
            instructions=registry.instructions,
            deps_type=ToolContext,
            output_type=str,
            toolsets=list(registry.toolsets),
            name="main",
        )
        self._store = store if store is not None else SessionStore()
        self._workspace = (workspace or Path.cwd()).resolve()
        self._writer = writer
        self._recursion_limit = recursion_limit
        self._command_timeout = command_timeout
        self._max_delegation_depth = max_delegation_depth
        self._request_timeout = request_timeout

        self._cancel_tokens: dict[str, asyncio.Event] = {}
        self._outcomes: dict[str, RunOutcome] = {}

    @property
    def agent(self) -> Agent[ToolContext, str]:
        return self._agent

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def store(self) -> SessionStore:
        return self._store

    def get_state(self, thread_id: str) -> SessionSnapshot:
        return self._store.get_state(thread_id)

    def outcome(self, thread_id: str) -> RunOutcome:
        """State and result of the latest run on ``thread_id``."""
        return self._outcomes.get(thread_id) or RunOutcome()

    def cancel(self, thread_id: str | None = None) -> None:
        """Ask in-flight runs to stop (all of them, or just ``thread_id``'s).

        Running commands are killed and the run ends before its next step.
        """
        for thread, token in self._cancel_tokens.items():
            if thread_id is None or thread == thread_id:
                token.set()

    def _deps(self, cancel: asyncio.Event) -> ToolContext:
        return ToolContext(
            workspace=self._workspace,
            writer=self._writer,
            command_timeout=self._command_timeout,
            cancel=cancel,
            max_depth=self._max_delegation_depth,
            recursion_limit=self._recursion_limit,
            request_timeout=self._request_timeout,
        )

    def _model_settings(self) -> ModelSettings | None:
        if self._request_timeout is None:
            return None
        return ModelSettings(timeout=self._request_timeout)

    async def run(self, prompt: str, *, thread_id: str) -> AsyncIterator[StepUpdate]:
        """Start a run on ``thread_id`` and yield its steps in emission order.

        Raises:
            SessionBusyError: If ``thread_id`` already has a run in flight
        """
        if thread_id in self._cancel_tokens:
            raise SessionBusyError(thread_id)
        cancel = asyncio.Event()
        self._cancel_tokens[thread_id] = cancel
        outcome = RunOutcome(state=DriverState.STREAMING, stop_reason="error")
        self._outcomes[thread_id] = outcome
        history = self._store.load(thread_id)
        index = 0

        try:
            async with self._agent.iter(
                prompt,
                deps=self._deps(cancel),
                message_history=history or None,
                usage_limits=UsageLimits(request_limit=self._recursion_limit),
                model_settings=self._model_settings(),
            ) as agent_run:
                try:
                    async for node in agent_run:
                        if cancel.is_set():
                            outcome.stop_reason = "cancelled"
                            break
                        step = step_from_node(node, index + 1, thread_id)
                        if step is None:
                            continue
                        index = step.index
                        outcome.state = DriverState.DRAINING
                        yield step
                        outcome.state = DriverState.STREAMING
                    else:
                        outcome.stop_reason = "completed"
                        if agent_run.result is not None:
                            outcome.output = agent_run.result.output
                except UsageLimitExceeded as exc:
                    logger.warning("Run on thread %s hit the iteration ceiling: %s", thread_id, exc)
                    outcome.stop_reason = "iteration_limit"
                except Exception as exc:
                    if not _is_cancellation(exc):
                        raise
                    logger.info("Run on thread %s cancelled", thread_id)
                    outcome.stop_reason = "cancelled"
                finally:
                    self._store.save(thread_id, settled_history(agent_run.all_messages()))
        finally:
            outcome.state = DriverState.TERMINAL
            del self._cancel_tokens[thread_id]

    async def invoke(self, prompt: str, *, thread_id: str) -> str | None:
        """Drain a run and return the agent's final answer."""
        async for _ in self.run(prompt, thread_id=thread_id):
            pass
        return self._outcomes[thread_id].output

    def summarize(self, thread_id: str, steps: int) -> RunSummary:
        """Summary statistics read back from the persisted session."""
        snapshot = self._store.get_state(thread_id)
        outcome = self.outcome(thread_id)
        return RunSummary(
            thread_id=thread_id,
            steps=steps,
            messages=len(snapshot.messages),
            tool_calls=snapshot.tool_call_messages,
            usage=snapshot.usage,
            stop_reason=outcome.stop_reason or "completed",
            output=outcome.output,
        )
