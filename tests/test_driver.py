"""Tests for the session driver: step streaming, limits, sessions and cancellation."""
from __future__ import annotations

import asyncio
import re

import pytest
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models.function import AgentInfo, FunctionModel

from llm_toolrun.exceptions import SessionBusyError
from llm_toolrun.runtime import DriverState, SessionDriver, SessionStore, settled_history
from llm_toolrun.toolsets import DelegatingProfile, ScriptingProfile, build_registry
from llm_toolrun.toolsets.registry import ToolRegistry


def _registry() -> ToolRegistry:
    return build_registry(ScriptingProfile())


def _chat_registry() -> ToolRegistry:
    return ToolRegistry(profile_kind="chat", instructions="Remember the user.", toolsets=())


def _user_prompts(messages: list[ModelMessage]) -> list[str]:
    return [
        part.content
        for message in messages
        if isinstance(message, ModelRequest)
        for part in message.parts
        if isinstance(part, UserPromptPart) and isinstance(part.content, str)
    ]


def _memory_model() -> FunctionModel:
    def respond(messages: list[ModelMessage], info: AgentInfo) -> ModelResponse:
        prompts = _user_prompts(messages)
        if prompts and "what is my name" in prompts[-1].lower():
            for prompt in reversed(prompts[:-1]):
                match = re.search(r"my name is (\w+)", prompt, re.IGNORECASE)
                if match:
                    return ModelResponse(parts=[TextPart(content=f"Your name is {match.group(1)}.")])
            return ModelResponse(parts=[TextPart(content="I don't know your name.")])
        return ModelResponse(parts=[TextPart(content=f"Noted ({len(prompts)} prompts so far).")])

    return FunctionModel(respond)


def _looping_model() -> FunctionModel:
    def respond(messages: list[ModelMessage], info: AgentInfo) -> ModelResponse:
        return ModelResponse(parts=[ToolCallPart(tool_name="get_current_directory", args={})])

    return FunctionModel(respond)


@pytest.mark.anyio
class TestStreaming:
    async def test_steps_follow_emission_order(self, tool_calling_model_cls, workspace):
        (workspace / "data.csv").write_text("a,b\n")
        model = tool_calling_model_cls([{"name": "list_files", "args": {}}])
        driver = SessionDriver(model, _registry(), workspace=workspace)
        assert driver.outcome("t1").state is DriverState.IDLE

        steps = [step async for step in driver.run("What is here?", thread_id="t1")]

        assert [(step.index, step.source) for step in steps] == [(1, "agent"), (2, "tools"), (3, "agent")]
        assert steps[0].tool_calls[0].tool_name == "list_files"
        assert steps[0].usage is not None and steps[0].usage.total_tokens == 15
        assert steps[1].tool_results[0].tool_name == "list_files"
        assert "data.csv (file)" in steps[1].tool_results[0].content
        assert steps[2].text == "Task completed"
        assert driver.outcome("t1").state is DriverState.TERMINAL
        assert driver.outcome("t1").stop_reason == "completed"
        assert driver.outcome("t1").output == "Task completed"

    async def test_state_is_draining_while_a_step_is_held(self, tool_calling_model_cls, workspace):
        model = tool_calling_model_cls([{"name": "get_current_directory", "args": {}}])
        driver = SessionDriver(model, _registry(), workspace=workspace)
        async for _ in driver.run("Where am I?", thread_id="t1"):
            assert driver.outcome("t1").state is DriverState.DRAINING
        assert driver.outcome("t1").state is DriverState.TERMINAL

    async def test_writer_receives_tool_progress(self, tool_calling_model_cls, workspace):
        lines: list[str] = []
        model = tool_calling_model_cls([{"name": "get_current_directory", "args": {}}])
        driver = SessionDriver(model, _registry(), workspace=workspace, writer=lines.append)
        await driver.invoke("Where am I?", thread_id="t1")
        assert lines == [f"[OK] Current working directory: {workspace.resolve()}"]

    async def test_schema_violation_shows_as_error_result(self, tool_calling_model_cls, workspace):
        model = tool_calling_model_cls([{"name": "install_python_package", "args": {"package_name": "-e ."}}])
        driver = SessionDriver(model, _registry(), workspace=workspace)

        steps = [step async for step in driver.run("install", thread_id="t1")]

        assert steps[1].source == "tools"
        assert steps[1].tool_results[0].is_error
        assert driver.outcome("t1").stop_reason == "completed"

    async def test_iteration_ceiling_ends_run_without_raising(self, workspace):
        driver = SessionDriver(_looping_model(), _registry(), workspace=workspace, recursion_limit=2)

        steps = [step async for step in driver.run("loop forever", thread_id="t1")]

        assert driver.outcome("t1").stop_reason == "iteration_limit"
        assert [step.source for step in steps] == ["agent", "tools", "agent", "tools"]
        assert driver.outcome("t1").state is DriverState.TERMINAL
        assert len(driver.get_state("t1").messages) > 0

    async def test_cancel_stops_before_next_step(self, tool_calling_model_cls, workspace):
        model = tool_calling_model_cls([{"name": "list_files", "args": {}}])
        driver = SessionDriver(model, _registry(), workspace=workspace)

        steps = []
        async for step in driver.run("list", thread_id="t1"):
            steps.append(step)
            driver.cancel()

        assert len(steps) == 1
        assert driver.outcome("t1").stop_reason == "cancelled"
        assert driver.outcome("t1").output is None
        assert await driver.invoke("list again", thread_id="t1") == "Task completed"


@pytest.mark.anyio
class TestSessions:
    async def test_memory_recall_on_same_thread(self):
        driver = SessionDriver(_memory_model(), _chat_registry())
        await driver.invoke("Hello, my name is Alice", thread_id="alice")
        assert await driver.invoke("What is my name?", thread_id="alice") == "Your name is Alice."

    async def test_threads_are_isolated(self):
        driver = SessionDriver(_memory_model(), _chat_registry())
        await driver.invoke("My name is Alice", thread_id="alice")
        await driver.invoke("My name is Bob", thread_id="bob")

        assert await driver.invoke("What is my name?", thread_id="bob") == "Your name is Bob."
        assert await driver.invoke("What is my name?", thread_id="carol") == "I don't know your name."
        assert _user_prompts(list(driver.get_state("alice").messages)) == ["My name is Alice"]

    async def test_store_can_be_shared_between_drivers(self):
        store = SessionStore()
        await SessionDriver(_memory_model(), _chat_registry(), store=store).invoke(
            "my name is Dana", thread_id="t"
        )
        other = SessionDriver(_memory_model(), _chat_registry(), store=store)
        assert await other.invoke("what is my name?", thread_id="t") == "Your name is Dana."
        assert store.thread_ids == ["t"]

    async def test_second_run_on_busy_thread_is_rejected(self, tool_calling_model_cls, workspace):
        model = tool_calling_model_cls([{"name": "get_current_directory", "args": {}}])
        driver = SessionDriver(model, _registry(), workspace=workspace)

        first = driver.run("one", thread_id="busy")
        await first.__anext__()
        with pytest.raises(SessionBusyError, match="busy"):
            await driver.run("two", thread_id="busy").__anext__()
        assert await driver.invoke("elsewhere", thread_id="free") == "Task completed"
        await first.aclose()

        assert await driver.invoke("three", thread_id="busy") == "Task completed"

    async def test_concurrent_threads_keep_their_own_outcome(self, workspace):
        async def respond(messages: list[ModelMessage], info: AgentInfo) -> ModelResponse:
            await asyncio.sleep(0)
            prompt = _user_prompts(messages)[-1]
            if prompt == "loop forever":
                return ModelResponse(parts=[ToolCallPart(tool_name="get_current_directory", args={})])
            return ModelResponse(parts=[TextPart(content=f"answer to {prompt}")])

        driver = SessionDriver(FunctionModel(respond), _registry(), workspace=workspace, recursion_limit=3)

        alice, bob = await asyncio.gather(
            driver.invoke("loop forever", thread_id="alice"),
            driver.invoke("bob secret", thread_id="bob"),
        )

        assert alice is None
        assert bob == "answer to bob secret"
        assert driver.summarize("alice", steps=0).stop_reason == "iteration_limit"
        assert driver.summarize("bob", steps=0).stop_reason == "completed"
        assert driver.outcome("alice").state is DriverState.TERMINAL


@pytest.mark.anyio
async def test_summary_reads_back_the_session(tool_calling_model_cls, workspace):
    model = tool_calling_model_cls([{"name": "get_current_directory", "args": {}}])
    driver = SessionDriver(model, _registry(), workspace=workspace)
    steps = [step async for step in driver.run("Where am I?", thread_id="t1")]

    summary = driver.summarize("t1", steps=len(steps))

    assert summary.steps == 3
    assert summary.messages == 4
    assert summary.tool_calls == 1
    assert summary.usage.input_tokens == 20
    assert summary.usage.output_tokens == 10
    assert summary.stop_reason == "completed"
    assert summary.output == "Task completed"


def _delegating_model() -> FunctionModel:
    """Coordinator calls its first worker; the worker checks the directory."""

    def respond(messages: list[ModelMessage], info: AgentInfo) -> ModelResponse:
        tools = [tool.name for tool in info.function_tools]
        latest = messages[-1]
        returns = [part for part in latest.parts if isinstance(part, ToolReturnPart)]
        if returns:
            return ModelResponse(parts=[TextPart(content=f"done: {returns[0].content}")])
        if "environment_agent" in tools:
            return ModelResponse(
                parts=[ToolCallPart(tool_name="environment_agent", args={"query": "Where are we?"})]
            )
        return ModelResponse(parts=[ToolCallPart(tool_name="get_current_directory", args={})])

    return FunctionModel(respond)


@pytest.mark.anyio
class TestDelegation:
    async def test_worker_answer_is_forwarded(self, workspace):
        registry = build_registry(DelegatingProfile(source=ScriptingProfile()))
        lines: list[str] = []
        driver = SessionDriver(_delegating_model(), registry, workspace=workspace, writer=lines.append)

        steps = [step async for step in driver.run("Where are we?", thread_id="t1")]

        assert steps[0].tool_calls[0].tool_name == "environment_agent"
        assert steps[1].tool_results[0].content == (
            f"done: [OK] Current working directory: {workspace.resolve()}"
        )
        assert lines[0] == "Delegating to environment_agent: Where are we?"
        # The worker's own messages stay out of the coordinator's session.
        assert driver.summarize("t1", len(steps)).tool_calls == 1

    async def test_depth_limit(self, workspace):
        registry = build_registry(DelegatingProfile(source=ScriptingProfile()))
        driver = SessionDriver(_delegating_model(), registry, workspace=workspace, max_delegation_depth=0)

        steps = [step async for step in driver.run("Where are we?", thread_id="t1")]

        assert steps[1].tool_results[0].content.startswith("[FAILED] Delegation depth limit (0) reached")


def test_settled_history_drops_unanswered_tool_calls():
    request = ModelRequest(parts=[UserPromptPart(content="hi")])
    pending = ModelResponse(parts=[ToolCallPart(tool_name="list_files", args={})])
    answer = ModelResponse(parts=[TextPart(content="hello")])

    assert settled_history([request, pending]) == [request]
    assert settled_history([request, answer]) == [request, answer]
    assert settled_history([]) == []
