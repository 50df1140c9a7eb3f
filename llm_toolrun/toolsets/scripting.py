"""Tools for general Python scripting tasks.

The scripting profile lets an agent check the interpreter, write and run
scripts in the workspace, install packages with pip and open generated
HTML reports in a browser.
"""
from __future__ import annotations

import sys

from pydantic import BaseModel, Field

from ..tool_context import ToolContext
from .catalog import NoArgs, ToolDescriptor
from .process import InvocationResult, run_with_fallback
from .workspace import workspace_tools

DEFAULT_SCRIPT = "script.py"
DEFAULT_HTML = "output.html"

# Requirement names and versions only; a leading "-" would read as a pip option.
_PACKAGE_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._\-]*(\[[A-Za-z0-9._,\-]+\])?$"
_VERSION_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9.*+!\-]*$"


class WriteScriptArgs(BaseModel):
    script_content: str = Field(description="Python source to write")
    filename: str = Field(default=DEFAULT_SCRIPT, description="File name, defaults to script.py")


class ScriptFileArgs(BaseModel):
    filename: str = Field(default=DEFAULT_SCRIPT, description="Python file name, defaults to script.py")


class InstallPackageArgs(BaseModel):
    package_name: str = Field(description="Name of the Python package", pattern=_PACKAGE_PATTERN)
    version: str | None = Field(default=None, description="Optional exact version", pattern=_VERSION_PATTERN)

    @property
    def requirement(self) -> str:
        if self.version:
            return f"{self.package_name}=={self.version}"
        return self.package_name


class HtmlFileArgs(BaseModel):
    filename: str = Field(default=DEFAULT_HTML, description="HTML file name, defaults to output.html")


async def check_python_environment(ctx: ToolContext, _: NoArgs) -> str:
    outcome = await run_with_fallback(
        ["python", "--version"],
        alternate=["python3", "--version"],
        working_dir=ctx.workspace,
        timeout=ctx.command_timeout,
        cancel=ctx.cancel,
        writer=ctx.writer,
    )
    if outcome.is_failure:
        return outcome.with_message(f"No Python environment found: {outcome.message}").render()
    return outcome.with_message(f"Python environment available: {outcome.message}").render()


async def write_python_script(ctx: ToolContext, args: WriteScriptArgs) -> str:
    path = ctx.resolve(args.filename)
    ctx.write(f"Writing Python script: {path}")
    try:
        path.write_text(args.script_content, encoding="utf-8")
    except OSError as e:
        return InvocationResult.failure(f"Failed to write {path}: {e}").render()
    return InvocationResult.success(f"Python script written: {path}").render()


async def execute_python_script(ctx: ToolContext, args: ScriptFileArgs) -> str:
    path = ctx.resolve(args.filename)
    ctx.write(f"Executing Python script: {path}")
    if not path.is_file():
        return InvocationResult.failure(f"File not found: {path}").render()
    outcome = await run_with_fallback(
        ["python", str(path)],
        alternate=["python3", str(path)],
        working_dir=ctx.workspace,
        timeout=ctx.command_timeout,
        cancel=ctx.cancel,
        writer=ctx.writer,
    )
    if outcome.is_failure:
        return outcome.with_message(f"Script failed: {outcome.message}").render()
    return outcome.render()


async def read_python_script(ctx: ToolContext, args: ScriptFileArgs) -> str:
    path = ctx.resolve(args.filename)
    ctx.write(f"Reading Python script: {path}")
    if not path.is_file():
        return InvocationResult.failure(f"File not found: {path}").render()
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        return InvocationResult.failure(f"Failed to read {path}: {e}").render()
    return InvocationResult.success(
        f"Contents of {args.filename}:\n```python\n{content}\n```"
    ).render()


async def install_python_package(ctx: ToolContext, args: InstallPackageArgs) -> str:
    requirement = args.requirement
    ctx.write(f"Installing Python package: {requirement}")
    outcome = await run_with_fallback(
        ["pip", "install", requirement],
        alternate=["pip3", "install", requirement],
        working_dir=ctx.workspace,
        timeout=ctx.command_timeout,
        cancel=ctx.cancel,
        writer=ctx.writer,
    )
    if outcome.is_failure:
        return outcome.with_message(f"Failed to install {requirement}: {outcome.message}").render()
    return outcome.render()


def browser_commands(path: str, platform: str = sys.platform) -> tuple[list[str], list[str] | None]:
    """Return the primary and alternate commands that open a file in a browser."""
    if platform == "win32":
        return ["rundll32", "url.dll,FileProtocolHandler", path], ["explorer", path]
    if platform == "darwin":
        return ["open", path], None
    return ["xdg-open", path], None


async def open_html_file(ctx: ToolContext, args: HtmlFileArgs) -> str:
    path = ctx.resolve(args.filename)
    ctx.write(f"Opening HTML file: {path}")
    if not path.is_file():
        return InvocationResult.failure(f"HTML file not found: {path}").render()
    primary, alternate = browser_commands(str(path), sys.platform)
    outcome = await run_with_fallback(
        primary,
        alternate=alternate,
        working_dir=ctx.workspace,
        timeout=ctx.command_timeout,
        cancel=ctx.cancel,
        writer=ctx.writer,
    )
    if outcome.is_failure:
        return InvocationResult.warning(
            f"Could not open the file automatically, open it manually: {path}",
            stderr=outcome.stderr,
        ).render()
    return outcome.with_message(f"Opened in browser: {path}").render()


def scripting_tools() -> list[ToolDescriptor]:
    get_current_directory, list_files = workspace_tools()
    return [
        ToolDescriptor(
            name="check_python_environment",
            description="Check whether Python is installed and return its version.",
            handler=check_python_environment,
        ),
        get_current_directory,
        ToolDescriptor(
            name="write_python_script",
            description="Write Python code to a file in the working directory.",
            handler=write_python_script,
            args_model=WriteScriptArgs,
        ),
        ToolDescriptor(
            name="execute_python_script",
            description="Run a Python script file from the working directory.",
            handler=execute_python_script,
            args_model=ScriptFileArgs,
        ),
        list_files,
        ToolDescriptor(
            name="read_python_script",
            description="Read the contents of a Python script file.",
            handler=read_python_script,
            args_model=ScriptFileArgs,
        ),
        ToolDescriptor(
            name="install_python_package",
            description="Install a Python package with pip.",
            handler=install_python_package,
            args_model=InstallPackageArgs,
        ),
        ToolDescriptor(
            name="open_html_file",
            description="Open an HTML file in the default browser.",
            handler=open_html_file,
            args_model=HtmlFileArgs,
        ),
    ]
