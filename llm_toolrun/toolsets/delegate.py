"""Toolset that exposes a worker agent as a single delegate tool.

The parent agent sends a query; the worker runs its own agent session with
a fresh message history and its own tool catalog, and only the worker's
final answer travels back to the parent. Delegation depth is bounded by
ToolContext.max_depth.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, cast

from pydantic import BaseModel, Field
from pydantic_ai import Agent
from pydantic_ai.exceptions import UsageLimitExceeded
from pydantic_ai.settings import ModelSettings
from pydantic_ai.tools import RunContext, ToolDefinition
from pydantic_ai.toolsets import AbstractToolset, ToolsetTool
from pydantic_ai.toolsets.abstract import SchemaValidatorProt
from pydantic_ai.usage import UsageLimits

from ..tool_context import ToolContext
from .catalog import ArgsValidator, CatalogToolset
from .process import InvocationResult, RunCancelledError

logger = logging.getLogger(__name__)


class DelegateQuery(BaseModel):
    """Arguments for a delegate tool."""

    query: str = Field(description="Request forwarded to the worker agent")


@dataclass(frozen=True)
class WorkerSpec:
    """A worker agent: instructions plus the tools it may use."""

    name: str
    description: str
    instructions: str
    toolset: CatalogToolset


def model_settings_for(deps: ToolContext) -> ModelSettings | None:
    if deps.request_timeout is None:
        return None
    return ModelSettings(timeout=deps.request_timeout)


def build_worker_agent(worker: WorkerSpec, model: Any) -> Agent[ToolContext, str]:
    return Agent(
        model,
        instructions=worker.instructions,
        deps_type=ToolContext,
        output_type=str,
        toolsets=[worker.toolset],
        name=worker.name,
    )


class DelegateToolset(AbstractToolset[ToolContext]):
    """Adapter that exposes a WorkerSpec as one tool named after the worker."""

    def __init__(self, worker: WorkerSpec, max_retries: int = 1):
        self._worker = worker
        self._max_retries = max_retries

    @property
    def id(self) -> str | None:
        return self._worker.name

    @property
    def worker(self) -> WorkerSpec:
        return self._worker

    async def get_tools(self, ctx: RunContext[ToolContext]) -> dict[str, ToolsetTool[ToolContext]]:
        tool_def = ToolDefinition(
            name=self._worker.name,
            description=self._worker.description,
            parameters_json_schema=DelegateQuery.model_json_schema(),
        )
        return {
            self._worker.name: ToolsetTool(
                toolset=self,
                tool_def=tool_def,
                max_retries=self._max_retries,
                args_validator=cast(SchemaValidatorProt, ArgsValidator(DelegateQuery)),
            )
        }

    async def call_tool(
        self,
        name: str,
        tool_args: dict[str, Any],
        ctx: RunContext[ToolContext],
        tool: ToolsetTool[ToolContext],
    ) -> str:
        deps = ctx.deps if isinstance(ctx.deps, ToolContext) else ToolContext()
        query = DelegateQuery.model_validate(tool_args).query

        if deps.depth + 1 > deps.max_depth:
            result = InvocationResult.failure(
                f"Delegation depth limit ({deps.max_depth}) reached; {name} was not called"
            )
            deps.write(result.render())
            return result.render()

        deps.write(f"Delegating to {name}: {query}")
        agent = build_worker_agent(self._worker, ctx.model)
        try:
            run_result = await agent.run(
                query,
                deps=deps.child(name),
                usage_limits=UsageLimits(request_limit=deps.recursion_limit),
                model_settings=model_settings_for(deps),
            )
        except RunCancelledError:
            raise
        except UsageLimitExceeded as exc:
            result = InvocationResult.failure(f"{name} hit its step limit: {exc}")
        except Exception as exc:
            logger.exception("Worker %s failed", name)
            result = InvocationResult.failure(f"{name} failed: {exc}")
        else:
            return str(run_result.output)
        deps.write(result.render())
        return result.render()
