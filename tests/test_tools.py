"""Tests for the workspace, scripting and build-toolchain handlers."""
from __future__ import annotations

import re
import sys

import pytest
from pydantic import ValidationError

from llm_toolrun.toolsets.apax import ProjectArgs, ProjectPathArgs, build_toolchain_tools
from llm_toolrun.toolsets.catalog import NoArgs
from llm_toolrun.toolsets.scripting import (
    HtmlFileArgs,
    InstallPackageArgs,
    ScriptFileArgs,
    WriteScriptArgs,
    browser_commands,
    check_python_environment,
    execute_python_script,
    install_python_package,
    open_html_file,
    read_python_script,
    write_python_script,
)
from llm_toolrun.toolsets.workspace import get_current_directory, list_files

FAKE_APAX = """
if args == ["--version"]:
    print("3.4.2")
    sys.exit(0)
if args[:2] == ["create", "app"]:
    os.makedirs(args[2])
    print(f"Created app {args[2]}")
    sys.exit(0)
if args == ["install"]:
    print("Installed 12 packages")
    sys.exit(0)
if args == ["build"]:
    print("Compiled with 1 warning", file=sys.stderr)
    sys.exit(0)
sys.exit(9)
"""


def _tools_by_name(**kwargs):
    return {tool.name: tool for tool in build_toolchain_tools(**kwargs)}


@pytest.mark.anyio
class TestWorkspaceTools:
    async def test_current_directory(self, tool_context, workspace):
        result = await get_current_directory(tool_context, NoArgs())
        assert result == f"[OK] Current working directory: {workspace}"

    async def test_list_files_sorted_and_idempotent(self, tool_context, workspace):
        (workspace / "b.py").write_text("")
        (workspace / "a_dir").mkdir()
        first = await list_files(tool_context, NoArgs())
        second = await list_files(tool_context, NoArgs())
        assert first == second
        assert first.endswith("a_dir (directory)\nb.py (file)")

    async def test_list_files_empty(self, tool_context):
        assert (await list_files(tool_context, NoArgs())).endswith("(empty)")


@pytest.mark.anyio
class TestScriptingTools:
    async def test_python_environment_prefers_python(self, tool_context, make_tool):
        make_tool("python", 'print("Python 3.11.9")')
        result = await check_python_environment(tool_context, NoArgs())
        assert result == "[OK] Python environment available: Python 3.11.9"

    async def test_python_environment_falls_back_to_python3(self, tool_context, make_tool):
        make_tool("python", "sys.exit(1)")
        make_tool("python3", 'print("Python 3.12.1")')
        result = await check_python_environment(tool_context, NoArgs())
        assert result == "[OK] (fallback used: python3 --version) Python environment available: Python 3.12.1"

    async def test_write_read_execute_roundtrip(self, tool_context, workspace, python_shim):
        written = await write_python_script(
            tool_context, WriteScriptArgs(script_content='print("hello from script")', filename="hello.py")
        )
        assert written.startswith("[OK] Python script written")
        assert (workspace / "hello.py").exists()

        read = await read_python_script(tool_context, ScriptFileArgs(filename="hello.py"))
        assert 'print("hello from script")' in read

        executed = await execute_python_script(tool_context, ScriptFileArgs(filename="hello.py"))
        assert executed == "[OK] hello from script"

    async def test_failing_script_reports_stderr(self, tool_context, python_shim):
        await write_python_script(tool_context, WriteScriptArgs(script_content="raise SystemExit('bad data')"))
        result = await execute_python_script(tool_context, ScriptFileArgs())
        assert result.startswith("[FAILED] Script failed:")
        assert "bad data" in result

    async def test_execute_missing_file(self, tool_context, workspace):
        result = await execute_python_script(tool_context, ScriptFileArgs(filename="nope.py"))
        assert result == f"[FAILED] File not found: {workspace / 'nope.py'}"

    async def test_read_missing_file(self, tool_context, workspace):
        result = await read_python_script(tool_context, ScriptFileArgs(filename="nope.py"))
        assert "File not found" in result and "nope.py" in result

    async def test_install_uses_pinned_requirement(self, tool_context, make_tool):
        make_tool("pip", 'print("pip " + " ".join(args))')
        result = await install_python_package(
            tool_context, InstallPackageArgs(package_name="pandas", version="2.2.0")
        )
        assert result == "[OK] pip install pandas==2.2.0"

    async def test_install_failure(self, tool_context, make_tool):
        make_tool("pip", 'print("No matching distribution", file=sys.stderr); sys.exit(1)')
        make_tool("pip3", 'print("pip3 broken", file=sys.stderr); sys.exit(1)')
        result = await install_python_package(tool_context, InstallPackageArgs(package_name="nopkg"))
        assert result == "[FAILED] Failed to install nopkg: No matching distribution"

    async def test_open_missing_html(self, tool_context):
        result = await open_html_file(tool_context, HtmlFileArgs())
        assert result.startswith("[FAILED] HTML file not found")

    @pytest.mark.skipif(sys.platform in ("win32", "darwin"), reason="uses xdg-open")
    async def test_open_html_failure_is_a_warning(self, tool_context, workspace, make_tool):
        (workspace / "output.html").write_text("<html></html>")
        make_tool("xdg-open", "sys.exit(3)")
        result = await open_html_file(tool_context, HtmlFileArgs())
        assert result.startswith("[WARNING] Could not open the file automatically")


class TestScriptingArgs:
    @pytest.mark.parametrize("name", ["-e", "--index-url=http://evil", "pkg; rm -rf /", ""])
    def test_package_names_cannot_be_options(self, name):
        with pytest.raises(ValidationError):
            InstallPackageArgs(package_name=name)

    def test_extras_allowed(self):
        assert InstallPackageArgs(package_name="pydantic-ai[openai]").requirement == "pydantic-ai[openai]"

    @pytest.mark.parametrize(
        ("platform", "primary", "alternate"),
        [
            ("win32", ["rundll32", "url.dll,FileProtocolHandler", "x.html"], ["explorer", "x.html"]),
            ("darwin", ["open", "x.html"], None),
            ("linux", ["xdg-open", "x.html"], None),
        ],
    )
    def test_browser_commands(self, platform, primary, alternate):
        assert browser_commands("x.html", platform) == (primary, alternate)


@pytest.mark.anyio
class TestBuildToolchainTools:
    async def test_catalog_names(self):
        assert list(_tools_by_name()) == [
            "check_apax_environment",
            "get_current_directory",
            "create_ax_app_project",
            "enter_project_path",
            "install_ax_code_sdk_package",
            "compile_st_code",
            "list_files",
            "read_project_metadata",
        ]

    async def test_custom_executable_names_the_check_tool(self):
        assert "check_axc_environment" in _tools_by_name(executable="axc")

    async def test_executable_path_gives_a_valid_tool_name(self):
        names = _tools_by_name(executable="/opt/ax/bin/apax.cmd")
        assert "check_apax_environment" in names
        assert all(re.fullmatch(r"[A-Za-z0-9_-]+", name) for name in names)

    async def test_version_check(self, tool_context, make_tool):
        make_tool("apax", FAKE_APAX)
        result = await _tools_by_name()["check_apax_environment"].handler(tool_context, NoArgs())
        assert result == "[OK] apax available: 3.4.2"

    async def test_version_check_falls_back_to_self_update(self, tool_context, make_tool):
        make_tool("apax", """
if args == ["--version"]:
    sys.exit(1)
print("apax updated")
""")
        result = await _tools_by_name()["check_apax_environment"].handler(tool_context, NoArgs())
        assert result == "[OK] (fallback used: apax self-update) apax available: apax updated"

    async def test_missing_toolchain(self, tool_context, monkeypatch, bin_dir):
        monkeypatch.setenv("PATH", str(bin_dir))
        result = await _tools_by_name()["check_apax_environment"].handler(tool_context, NoArgs())
        assert result.startswith("[FAILED] apax not found:")

    async def test_project_lifecycle(self, tool_context, workspace, make_tool):
        make_tool("apax", FAKE_APAX)
        tools = _tools_by_name()
        project = ProjectArgs(project_name="Myfirst_AX", workspace_dir=str(workspace))

        created = await tools["create_ax_app_project"].handler(tool_context, project)
        assert created.startswith(f"[OK]\nAX app project created at {workspace / 'myfirst_ax'}")

        entered = await tools["enter_project_path"].handler(tool_context, project)
        assert entered == f"[OK] Project path: {workspace / 'myfirst_ax'}"

        path_args = ProjectPathArgs(project_path=str(workspace / "myfirst_ax"))
        installed = await tools["install_ax_code_sdk_package"].handler(tool_context, path_args)
        assert installed == "[OK] Installed 12 packages"

        compiled = await tools["compile_st_code"].handler(tool_context, path_args)
        assert compiled.startswith("[WARNING]")
        assert "Compiled with 1 warning" in compiled

    async def test_compile_missing_project(self, tool_context, workspace):
        args = ProjectPathArgs(project_path=str(workspace / "ghost"))
        result = await _tools_by_name()["compile_st_code"].handler(tool_context, args)
        assert result == f"[FAILED] Project path not found: {workspace / 'ghost'}"

    async def test_project_name_cannot_be_an_option(self):
        with pytest.raises(ValidationError):
            ProjectArgs(project_name="--force", workspace_dir=".")

    async def test_read_project_metadata(self, tool_context, workspace):
        (workspace / "apax.yml").write_text(
            "name: myfirst_ax\nversion: 0.0.1\ntype: app\ndependencies:\n  '@ax/sdk': 2411.0.0\n"
        )
        result = await _tools_by_name()["read_project_metadata"].handler(
            tool_context, ProjectPathArgs(project_path=str(workspace))
        )
        assert result.startswith("[OK]\nname: myfirst_ax\nversion: 0.0.1\ntype: app\ndependencies: @ax/sdk")

    async def test_invalid_manifest_is_a_warning(self, tool_context, workspace):
        (workspace / "apax.yml").write_text("name: [unclosed\n")
        result = await _tools_by_name()["read_project_metadata"].handler(
            tool_context, ProjectPathArgs(project_path=str(workspace))
        )
        assert result.startswith("[WARNING]\napax.yml is not valid YAML")

    async def test_missing_manifest(self, tool_context, workspace):
        result = await _tools_by_name()["read_project_metadata"].handler(
            tool_context, ProjectPathArgs(project_path=str(workspace))
        )
        assert result == f"[FAILED] File not found: {workspace / 'apax.yml'}"
