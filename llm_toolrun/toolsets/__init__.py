"""Tool catalogs shipped with llm-toolrun."""

from .catalog import CatalogToolset, NoArgs, ToolDescriptor
from .delegate import DelegateToolset, WorkerSpec
from .registry import (
    PROFILE_KINDS,
    BuildToolchainProfile,
    DelegatingProfile,
    ScriptingProfile,
    ToolRegistry,
    WorkerConfig,
    build_registry,
    parse_profile,
)

__all__ = [
    "PROFILE_KINDS",
    "BuildToolchainProfile",
    "CatalogToolset",
    "DelegateToolset",
    "DelegatingProfile",
    "NoArgs",
    "ScriptingProfile",
    "ToolDescriptor",
    "ToolRegistry",
    "WorkerConfig",
    "WorkerSpec",
    "build_registry",
    "parse_profile",
]
