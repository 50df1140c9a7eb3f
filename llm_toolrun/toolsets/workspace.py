"""Workspace tools shared by every profile."""
from __future__ import annotations

from ..tool_context import ToolContext
from .catalog import NoArgs, ToolDescriptor
from .process import InvocationResult


async def get_current_directory(ctx: ToolContext, _: NoArgs) -> str:
    result = InvocationResult.success(f"Current working directory: {ctx.workspace}")
    ctx.write(result.render())
    return result.render()


async def list_files(ctx: ToolContext, _: NoArgs) -> str:
    ctx.write("Listing files in the working directory...")
    if not ctx.workspace.is_dir():
        return InvocationResult.failure(
            f"Directory not found: {ctx.workspace}"
        ).render()
    lines = []
    for entry in sorted(ctx.workspace.iterdir(), key=lambda p: p.name):
        kind = "directory" if entry.is_dir() else "file"
        lines.append(f"{entry.name} ({kind})")
    listing = "\n".join(lines) if lines else "(empty)"
    return InvocationResult.success(f"Files in {ctx.workspace}:\n{listing}").render()


def workspace_tools() -> list[ToolDescriptor]:
    return [
        ToolDescriptor(
            name="get_current_directory",
            description="Return the current working directory path.",
            handler=get_current_directory,
        ),
        ToolDescriptor(
            name="list_files",
            description="List all files and folders in the current working directory.",
            handler=list_files,
        ),
    ]
