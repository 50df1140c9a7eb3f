"""Shared test fixtures and helpers for the llm-toolrun test suite.

No test talks to a real model: runs use PydanticAI's TestModel /
FunctionModel or the scripted ToolCallingModel. Process tests run fake
executables written into tmp_path and put on PATH.
"""
import os
import sys
import textwrap
from pathlib import Path

import pytest
from pydantic_ai.models.test import TestModel

from llm_toolrun.tool_context import ToolContext
from tests.tool_calling_model import ToolCallingModel


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_model():
    """PydanticAI's TestModel answering with plain text and no tool calls."""
    return TestModel(call_tools=[], custom_output_text="Task completed")


@pytest.fixture
def tool_calling_model_cls():
    """Return the deterministic mock model used to exercise tool flows."""
    return ToolCallingModel


@pytest.fixture
def bin_dir(tmp_path, monkeypatch) -> Path:
    """Directory of fake executables placed first on PATH."""
    path = tmp_path / "bin"
    path.mkdir()
    monkeypatch.setenv("PATH", f"{path}{os.pathsep}{os.environ.get('PATH', '')}")
    return path


@pytest.fixture
def make_tool(bin_dir):
    """Write a fake executable whose body is Python code (``args`` = argv[1:])."""

    def _make(name: str, body: str) -> Path:
        path = bin_dir / name
        path.write_text(
            f"#!{sys.executable}\nimport os, sys, time\nargs = sys.argv[1:]\n"
            + textwrap.dedent(body)
        )
        path.chmod(0o755)
        return path

    return _make


@pytest.fixture
def python_shim(bin_dir):
    """Expose the test interpreter as ``python`` on PATH."""
    path = bin_dir / "python"
    path.write_text(f'#!/bin/sh\nexec "{sys.executable}" "$@"\n')
    path.chmod(0o755)
    return path


@pytest.fixture
def workspace(tmp_path) -> Path:
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def progress() -> list[str]:
    """Collects lines sent to the writer sink."""
    return []


@pytest.fixture
def tool_context(workspace, progress) -> ToolContext:
    return ToolContext(workspace=workspace, writer=progress.append, command_timeout=10.0)
