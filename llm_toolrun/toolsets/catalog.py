"""Tool descriptors and the toolset that exposes them to PydanticAI.

A ToolDescriptor pairs a name and description with a pydantic argument
model and an async handler. CatalogToolset publishes a fixed list of
descriptors to the agent: the runtime validates arguments against the
model's schema before a handler runs, and the toolset guarantees that a
handler's outcome always comes back as a string.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Optional, cast

from pydantic import BaseModel, TypeAdapter
from pydantic_ai.tools import RunContext, ToolDefinition
from pydantic_ai.toolsets import AbstractToolset, ToolsetTool
from pydantic_ai.toolsets.abstract import SchemaValidatorProt

from ..exceptions import CatalogError
from ..tool_context import ToolContext
from .process import InvocationResult, RunCancelledError

logger = logging.getLogger(__name__)

Handler = Callable[[ToolContext, Any], Awaitable[str]]


class NoArgs(BaseModel):
    """Argument model for tools that take no parameters."""


@dataclass(frozen=True)
class ToolDescriptor:
    """A named, schema-validated tool and its handler."""

    name: str
    description: str
    handler: Handler
    args_model: type[BaseModel] = NoArgs

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return self.args_model.model_json_schema()

    def tool_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters_json_schema=self.parameters_schema,
        )


class ArgsValidator:
    """Validate tool arguments against an args model, handing back a dict."""

    def __init__(self, args_model: type[BaseModel]) -> None:
        self._validator = TypeAdapter(args_model).validator

    @staticmethod
    def _as_dict(value: Any) -> dict[str, Any]:
        return value.model_dump() if isinstance(value, BaseModel) else value

    def validate_python(
        self,
        input: Any,
        *,
        allow_partial: bool | Literal["off", "on", "trailing-strings"] = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        return self._as_dict(
            self._validator.validate_python(input, allow_partial=allow_partial, **kwargs)
        )

    def validate_json(
        self,
        input: str | bytes | bytearray,
        *,
        allow_partial: bool | Literal["off", "on", "trailing-strings"] = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        return self._as_dict(
            self._validator.validate_json(input, allow_partial=allow_partial, **kwargs)
        )

    def validate_strings(self, data: Any, **kwargs: Any) -> dict[str, Any]:
        return self._as_dict(self._validator.validate_strings(data, **kwargs))


async def invoke_descriptor(
    descriptor: ToolDescriptor,
    deps: ToolContext,
    tool_args: dict[str, Any],
) -> str:
    """Run a handler, converting anything it raises into a failure string.

    Only RunCancelledError escapes: cancelling the run is not tool feedback.
    """
    try:
        args = descriptor.args_model.model_validate(tool_args)
        return await descriptor.handler(deps, args)
    except RunCancelledError:
        raise
    except Exception as exc:
        logger.exception("Tool %s raised an exception", descriptor.name)
        result = InvocationResult.failure(f"{descriptor.name} failed: {exc}")
        deps.write(result.render())
        return result.render()


class CatalogToolset(AbstractToolset[ToolContext]):
    """Fixed catalog of ToolDescriptors exposed as one PydanticAI toolset.

    Example:
        toolset = CatalogToolset(scripting_tools(), id="scripting")
        agent = Agent(model, deps_type=ToolContext, toolsets=[toolset])
    """

    def __init__(
        self,
        descriptors: Iterable[ToolDescriptor],
        id: Optional[str] = None,
        max_retries: int = 1,
    ):
        """Initialize the catalog.

        Args:
            descriptors: Tools to publish; names must be unique
            id: Optional toolset ID
            max_retries: Validation retries granted to the model per tool

        Raises:
            CatalogError: If two descriptors share a name
        """
        self._descriptors: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in self._descriptors:
                raise CatalogError(f"Duplicate tool name: {descriptor.name}")
            self._descriptors[descriptor.name] = descriptor
        self._id = id
        self._max_retries = max_retries

    @property
    def id(self) -> str | None:
        return self._id

    @property
    def descriptors(self) -> tuple[ToolDescriptor, ...]:
        return tuple(self._descriptors.values())

    @property
    def names(self) -> list[str]:
        return list(self._descriptors)

    def get(self, name: str) -> ToolDescriptor:
        try:
            return self._descriptors[name]
        except KeyError:
            raise CatalogError(
                f"Unknown tool '{name}'. Available: {', '.join(self._descriptors)}"
            ) from None

    def subset(self, names: Sequence[str], id: Optional[str] = None) -> "CatalogToolset":
        """Return a new catalog holding only the named tools, in that order."""
        return CatalogToolset(
            [self.get(name) for name in names],
            id=id,
            max_retries=self._max_retries,
        )

    async def get_tools(self, ctx: RunContext[ToolContext]) -> dict[str, ToolsetTool[ToolContext]]:
        return {
            name: ToolsetTool(
                toolset=self,
                tool_def=descriptor.tool_definition(),
                max_retries=self._max_retries,
                args_validator=cast(SchemaValidatorProt, ArgsValidator(descriptor.args_model)),
            )
            for name, descriptor in self._descriptors.items()
        }

    async def call_tool(
        self,
        name: str,
        tool_args: dict[str, Any],
        ctx: RunContext[ToolContext],
        tool: ToolsetTool[ToolContext],
    ) -> str:
        deps = ctx.deps if isinstance(ctx.deps, ToolContext) else ToolContext()
        return await invoke_descriptor(self.get(name), deps, tool_args)
