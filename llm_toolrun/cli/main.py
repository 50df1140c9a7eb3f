#!/usr/bin/env python
"""Run a tool-using agent against a local workspace.

Usage:
    llm-toolrun run [--profile KIND] [--thread-id ID] "Your prompt here"
    echo "Your prompt" | llm-toolrun run --profile build_toolchain
    llm-toolrun demo {python-analysis,ax-project,ax-coordinator,memory}

Profiles:
    scripting        - Python environment checks, scripts, pip installs, HTML preview
    build_toolchain  - apax project creation, SDK install, ST compilation
    delegating       - coordinator that forwards requests to worker agents

Configuration is read from ./llm-toolrun.toml when present. The API key is
read from the environment variable named by provider.api_key_env
(DASHSCOPE_API_KEY by default).
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

from ..config import ToolrunConfig, load_config
from ..exceptions import ConfigError, ToolrunError
from ..models import build_model
from ..runtime import RunSummary, SessionDriver, SessionStore
from ..toolsets.registry import PROFILE_KINDS, ToolRegistry, build_registry, parse_profile
from ..ui import HeadlessDisplayBackend, JsonDisplayBackend, RichDisplayBackend, TranscriptBackend

MEMORY_INSTRUCTIONS = "You are a friendly assistant. Remember what the user tells you."


@dataclass(frozen=True)
class Demo:
    profile: str
    thread_id: str
    prompt: str


DEMOS: dict[str, Demo] = {
    "python-analysis": Demo(
        profile="scripting",
        thread_id="python-analysis-thread",
        prompt=(
            "Create a simple data analysis script about employment of Chinese university "
            "graduates:\n"
            "1. Gather recent figures and save them to a CSV file\n"
            "2. Use pandas to read the CSV file and run a basic analysis\n"
            "3. Generate an HTML chart of the data, then open the HTML file to show the result"
        ),
    ),
    "ax-project": Demo(
        profile="build_toolchain",
        thread_id="AX_thread_1",
        prompt='Create an AX app project named "Myfirst_AX"',
    ),
    "ax-coordinator": Demo(
        profile="delegating",
        thread_id="AX_thread_1",
        prompt="Check my AX environment",
    ),
}

MEMORY_TURNS = (
    "Hello, my name is Zhang San and I am a programmer",
    "Do you still remember my name?",
    "I like apples and I live in Beijing",
    "Can you summarize what you know about me?",
    "What is my profession?",
    "Where do I live?",
)

ISOLATION_TURNS = (
    ("session-zhang", "My name is Zhang San and I am an engineer"),
    ("session-li", "My name is Li Si and I am a doctor"),
    ("session-zhang", "What is my profession?"),
    ("session-li", "What is my profession?"),
)


def _make_backend(args: argparse.Namespace) -> TranscriptBackend:
    if args.json:
        return JsonDisplayBackend(stream=sys.stderr)
    if args.rich:
        return RichDisplayBackend(stream=sys.stderr)
    return HeadlessDisplayBackend(stream=sys.stderr)


def build_driver(
    config: ToolrunConfig,
    registry: ToolRegistry,
    backend: TranscriptBackend,
    *,
    model: Optional[str] = None,
    store: Optional[SessionStore] = None,
) -> SessionDriver:
    """Wire config, model and registry into a SessionDriver."""
    run = config.run
    return SessionDriver(
        build_model(config.provider, model=model),
        registry,
        store=store,
        workspace=run.workspace,
        writer=backend.writer,
        recursion_limit=run.recursion_limit,
        command_timeout=run.command_timeout,
        max_delegation_depth=run.max_delegation_depth,
        request_timeout=config.provider.request_timeout,
    )


async def run_prompt(
    driver: SessionDriver,
    prompt: str,
    thread_id: str,
    backend: TranscriptBackend,
) -> RunSummary:
    """Stream one run into ``backend`` and report its summary."""
    steps = 0
    async for step in driver.run(prompt, thread_id=thread_id):
        steps = step.index
        backend.display_step(step)
    summary = driver.summarize(thread_id, steps)
    backend.display_summary(summary)
    return summary


async def _run_memory_demo(driver: SessionDriver) -> None:
    thread_id = "test-session-1"
    print("=== Multi-turn memory ===")
    for turn, prompt in enumerate(MEMORY_TURNS, start=1):
        print(f"\nTurn {turn}")
        print(f"User: {prompt}")
        print(f"AI: {await driver.invoke(prompt, thread_id=thread_id)}")
    snapshot = driver.get_state(thread_id)
    print(f"\nMessages in thread '{thread_id}': {len(snapshot.messages)}")

    print("\n=== Memory isolation ===")
    for thread, prompt in ISOLATION_TURNS:
        print(f"\n[{thread}] User: {prompt}")
        print(f"[{thread}] AI: {await driver.invoke(prompt, thread_id=thread)}")


def _resolve_run(
    args: argparse.Namespace, config: ToolrunConfig
) -> tuple[ToolRegistry, str, str]:
    """Return (registry, prompt, thread_id) for the selected subcommand."""
    if args.command == "demo":
        if args.scenario == "memory":
            registry = ToolRegistry(profile_kind="chat", instructions=MEMORY_INSTRUCTIONS, toolsets=())
            return registry, "", "test-session-1"
        demo = DEMOS[args.scenario]
        return build_registry(parse_profile(demo.profile), base_dir=config.base_dir), demo.prompt, demo.thread_id

    profile = parse_profile(args.profile) if args.profile else config.profile
    return build_registry(profile, base_dir=config.base_dir), args.prompt, args.thread_id


def _apply_overrides(args: argparse.Namespace, config: ToolrunConfig) -> None:
    if args.workspace:
        config.run.workspace = Path(args.workspace).expanduser().resolve()
    if args.recursion_limit is not None:
        if args.recursion_limit < 1:
            raise ConfigError("--recursion-limit must be at least 1")
        config.run.recursion_limit = args.recursion_limit


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--model", "-m", help="Model to use (default: provider.model or $LLM_TOOLRUN_MODEL)")
    parser.add_argument("--workspace", "-w", help="Directory tools run in (default: current directory)")
    parser.add_argument("--recursion-limit", type=int, help="Maximum model requests per run")
    output = parser.add_mutually_exclusive_group()
    output.add_argument("--json", action="store_true", help="Output the transcript as JSON lines")
    output.add_argument("--rich", action="store_true", help="Render the transcript with Rich panels")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log progress (-vv for debug logs)")
    parser.add_argument("--debug", action="store_true", help="Show full tracebacks on error")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llm-toolrun",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run one prompt against a profile")
    run_parser.add_argument("prompt", nargs="?", help="Prompt for the agent (default: read stdin)")
    run_parser.add_argument("--profile", "-p", choices=PROFILE_KINDS, help="Tool profile (default: from config)")
    run_parser.add_argument("--thread-id", "-t", default="default", help="Conversation thread identifier")
    _add_common_arguments(run_parser)

    demo_parser = subparsers.add_parser("demo", help="Replay a scripted scenario")
    demo_parser.add_argument("scenario", choices=[*DEMOS, "memory"])
    _add_common_arguments(demo_parser)
    return parser


def _configure_logging(args: argparse.Namespace) -> None:
    if args.debug or args.verbose >= 2:
        level = logging.DEBUG
    elif args.verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _format_model_http_error(exc: Any) -> str:
    message = f"Model API error (status {exc.status_code}): {exc.model_name}"
    if exc.body and isinstance(exc.body, dict):
        error_info = exc.body.get("error", {})
        if isinstance(error_info, dict):
            msg = error_info.get("message", "")
            if msg:
                message = f"{message}\n  {msg}"
    return message


async def _execute(args: argparse.Namespace, config: ToolrunConfig, backend: TranscriptBackend) -> int:
    registry, prompt, thread_id = _resolve_run(args, config)
    driver = build_driver(config, registry, backend, model=args.model)
    if args.command == "demo" and args.scenario == "memory":
        await _run_memory_demo(driver)
        return 0

    summary = await run_prompt(driver, prompt, thread_id, backend)
    if summary.output is not None:
        print(summary.output)
    return 0 if summary.stop_reason == "completed" else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the llm-toolrun CLI.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args)

    if args.command == "run" and not args.prompt:
        if not sys.stdin.isatty():
            args.prompt = sys.stdin.read().strip()
        if not args.prompt:
            parser.error("Prompt required (as argument or via stdin)")

    backend = _make_backend(args)

    from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior, UserError

    try:
        config = load_config(Path.cwd())
        _apply_overrides(args, config)
        return asyncio.run(_execute(args, config, backend))
    except ModelHTTPError as e:
        backend.display_error(_format_model_http_error(e))
        if args.debug:
            raise
        return 1
    except (ToolrunError, UnexpectedModelBehavior, UserError) as e:
        backend.display_error(str(e))
        if args.debug:
            raise
        return 1
    except KeyboardInterrupt:
        backend.display_error("Aborted by user")
        return 1
    except Exception as e:
        backend.display_error(f"Unexpected error: {e}")
        if args.debug:
            raise
        return 1


if __name__ == "__main__":
    sys.exit(main())
