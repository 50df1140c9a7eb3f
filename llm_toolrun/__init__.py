"""llm-toolrun: tool-using agents that run local commands with fallbacks.

Public surface:
- SessionDriver runs a streamed agent session per thread identifier
- build_registry turns a profile into the tool catalog and system prompt
- run_with_fallback executes a command with an optional alternate
"""
from .config import ProviderSettings, RunSettings, ToolrunConfig, load_config
from .exceptions import CatalogError, CommandError, ConfigError, SessionBusyError, ToolrunError
from .models import ModelError, build_model
from .runtime import (
    DriverState,
    RunOutcome,
    RunSummary,
    SessionDriver,
    SessionSnapshot,
    SessionStore,
    StepUpdate,
)
from .tool_context import ToolContext
from .toolsets import (
    BuildToolchainProfile,
    CatalogToolset,
    DelegatingProfile,
    ScriptingProfile,
    ToolDescriptor,
    ToolRegistry,
    build_registry,
    parse_profile,
)
from .toolsets.process import (
    CommandResult,
    InvocationResult,
    OutcomeStatus,
    RunCancelledError,
    run_command,
    run_with_fallback,
)

__version__ = "0.1.0"

__all__ = [
    "BuildToolchainProfile",
    "CatalogError",
    "CatalogToolset",
    "CommandError",
    "CommandResult",
    "ConfigError",
    "DelegatingProfile",
    "DriverState",
    "InvocationResult",
    "ModelError",
    "OutcomeStatus",
    "ProviderSettings",
    "RunCancelledError",
    "RunOutcome",
    "RunSettings",
    "RunSummary",
    "ScriptingProfile",
    "SessionBusyError",
    "SessionDriver",
    "SessionSnapshot",
    "SessionStore",
    "StepUpdate",
    "ToolContext",
    "ToolDescriptor",
    "ToolRegistry",
    "ToolrunConfig",
    "ToolrunError",
    "build_model",
    "build_registry",
    "load_config",
    "parse_profile",
    "run_command",
    "run_with_fallback",
]
