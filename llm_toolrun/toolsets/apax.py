"""Tools for the SIMATIC AX build toolchain (the ``apax`` package manager).

Every command runs with the project or workspace directory as its working
directory; project names are passed as separate arguments, never spliced
into a command line.
"""
from __future__ import annotations

import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from ..tool_context import ToolContext
from .catalog import NoArgs, ToolDescriptor
from .process import InvocationResult, run_with_fallback
from .workspace import workspace_tools

DEFAULT_EXECUTABLE = "apax"
DEFAULT_MANIFEST = "apax.yml"

_PROJECT_NAME_PATTERN = r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$"


def environment_tool_name(executable: str) -> str:
    """Tool name for the environment check, usable even when ``executable`` is a path."""
    stem = re.sub(r"[^A-Za-z0-9_-]", "_", Path(executable).stem) or "toolchain"
    return f"check_{stem}_environment"


class ProjectArgs(BaseModel):
    project_name: str = Field(description="Name of the AX app project", pattern=_PROJECT_NAME_PATTERN)
    workspace_dir: str = Field(description="Workspace directory that holds the project")


class ProjectPathArgs(BaseModel):
    project_path: str = Field(description="Full path to the AX project directory")


def _project_dir(ctx: ToolContext, args: ProjectArgs) -> tuple[Path, Path]:
    workspace = ctx.resolve(args.workspace_dir)
    return workspace, workspace / args.project_name.lower()


def _summarize_manifest(data: object) -> str:
    if not isinstance(data, dict):
        return ""
    fields = [f"{key}: {data[key]}" for key in ("name", "version", "type") if key in data]
    dependencies = data.get("dependencies")
    if isinstance(dependencies, dict) and dependencies:
        fields.append(f"dependencies: {', '.join(sorted(dependencies))}")
    return "\n".join(fields)


def build_toolchain_tools(
    executable: str = DEFAULT_EXECUTABLE,
    manifest: str = DEFAULT_MANIFEST,
) -> list[ToolDescriptor]:
    """Return the build-toolchain catalog for ``executable``."""

    async def check_environment(ctx: ToolContext, _: NoArgs) -> str:
        outcome = await run_with_fallback(
            [executable, "--version"],
            alternate=[executable, "self-update"],
            working_dir=ctx.workspace,
            timeout=ctx.command_timeout,
            cancel=ctx.cancel,
            writer=ctx.writer,
        )
        if outcome.is_failure:
            return outcome.with_message(f"{executable} not found: {outcome.message}").render()
        return outcome.with_message(f"{executable} available: {outcome.message}").render()

    async def create_app_project(ctx: ToolContext, args: ProjectArgs) -> str:
        workspace, project_dir = _project_dir(ctx, args)
        ctx.write(f"Creating AX app project {project_dir.name} in {workspace}")
        if not workspace.is_dir():
            return InvocationResult.failure(f"Workspace directory not found: {workspace}").render()
        outcome = await run_with_fallback(
            [executable, "create", "app", project_dir.name],
            working_dir=workspace,
            timeout=ctx.command_timeout,
            cancel=ctx.cancel,
            writer=ctx.writer,
        )
        if outcome.is_failure:
            return outcome.with_message(f"Failed to create project: {outcome.message}").render()
        return outcome.with_message(
            f"AX app project created at {project_dir}\n{outcome.message}".rstrip()
        ).render()

    async def enter_project_path(ctx: ToolContext, args: ProjectArgs) -> str:
        _, project_dir = _project_dir(ctx, args)
        ctx.write(f"Resolving project path {project_dir}")
        if not project_dir.is_dir():
            return InvocationResult.failure(f"Project path not found: {project_dir}").render()
        return InvocationResult.success(f"Project path: {project_dir}").render()

    async def _in_project(ctx: ToolContext, args: ProjectPathArgs, command: list[str], what: str) -> str:
        project_dir = ctx.resolve(args.project_path)
        ctx.write(f"{what}: {project_dir}")
        if not project_dir.is_dir():
            return InvocationResult.failure(f"Project path not found: {project_dir}").render()
        outcome = await run_with_fallback(
            command,
            working_dir=project_dir,
            timeout=ctx.command_timeout,
            cancel=ctx.cancel,
            writer=ctx.writer,
        )
        if outcome.is_failure:
            return outcome.with_message(f"{what} failed: {outcome.message}").render()
        return outcome.render()

    async def install_sdk_packages(ctx: ToolContext, args: ProjectPathArgs) -> str:
        return await _in_project(ctx, args, [executable, "install"], "Installing AX SDK packages")

    async def compile_st_code(ctx: ToolContext, args: ProjectPathArgs) -> str:
        return await _in_project(ctx, args, [executable, "build"], "Compiling ST code")

    async def read_project_metadata(ctx: ToolContext, args: ProjectPathArgs) -> str:
        path = ctx.resolve(args.project_path) / manifest
        ctx.write(f"Reading project manifest {path}")
        if not path.is_file():
            return InvocationResult.failure(f"File not found: {path}").render()
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            return InvocationResult.failure(f"Failed to read {path}: {e}").render()
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            return InvocationResult.warning(
                f"{manifest} is not valid YAML ({e}):\n{content}"
            ).render()
        summary = _summarize_manifest(data)
        body = f"{manifest} contents:\n{content}"
        if summary:
            body = f"{summary}\n\n{body}"
        return InvocationResult.success(body).render()

    get_current_directory, list_files = workspace_tools()
    return [
        ToolDescriptor(
            name=environment_tool_name(executable),
            description=f"Check that the AX toolchain is installed and return the {executable} version.",
            handler=check_environment,
        ),
        get_current_directory,
        ToolDescriptor(
            name="create_ax_app_project",
            description="Create a new AX app project from the template.",
            handler=create_app_project,
            args_model=ProjectArgs,
        ),
        ToolDescriptor(
            name="enter_project_path",
            description="Resolve and verify the full path of an AX project.",
            handler=enter_project_path,
            args_model=ProjectArgs,
        ),
        ToolDescriptor(
            name="install_ax_code_sdk_package",
            description=f"Install the AX code SDK packages of a project with '{executable} install'.",
            handler=install_sdk_packages,
            args_model=ProjectPathArgs,
        ),
        ToolDescriptor(
            name="compile_st_code",
            description=f"Compile the ST code of a project with '{executable} build'.",
            handler=compile_st_code,
            args_model=ProjectPathArgs,
        ),
        list_files,
        ToolDescriptor(
            name="read_project_metadata",
            description=f"Read the project manifest ({manifest}).",
            handler=read_project_metadata,
            args_model=ProjectPathArgs,
        ),
    ]
