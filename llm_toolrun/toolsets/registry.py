"""Profiles and the tool registry built from them.

A profile is a tagged variant selecting which catalog an agent sees:

- ``scripting``: general Python scripting tools
- ``build_toolchain``: tools for an AX-style build toolchain (apax)
- ``delegating``: a source profile's tools split across worker agents, each
  exposed to the coordinator as one delegate tool

The registry is assembled once and handed to the agent at construction.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator
from pydantic_ai.toolsets import AbstractToolset

from ..exceptions import CatalogError, ConfigError
from ..prompts import resolve_instructions
from .apax import DEFAULT_EXECUTABLE, DEFAULT_MANIFEST, build_toolchain_tools, environment_tool_name
from .catalog import CatalogToolset
from .delegate import DelegateToolset, WorkerSpec
from .scripting import scripting_tools


class ScriptingProfile(BaseModel):
    kind: Literal["scripting"] = "scripting"
    instructions: Optional[str] = None


class BuildToolchainProfile(BaseModel):
    kind: Literal["build_toolchain"] = "build_toolchain"
    executable: str = DEFAULT_EXECUTABLE
    manifest: str = DEFAULT_MANIFEST
    instructions: Optional[str] = None


SourceProfile = Annotated[
    Union[ScriptingProfile, BuildToolchainProfile],
    Field(discriminator="kind"),
]


class WorkerConfig(BaseModel):
    """One worker of a delegating profile."""

    name: str = Field(pattern=r"^[A-Za-z_][A-Za-z0-9_\-]*$")
    description: str
    tools: list[str] = Field(min_length=1)
    instructions: Optional[str] = None


def default_workers(source: ScriptingProfile | BuildToolchainProfile) -> list[WorkerConfig]:
    """Default partition of a source profile's tools into two workers."""
    if isinstance(source, BuildToolchainProfile):
        return [
            WorkerConfig(
                name="project_agent",
                description=(
                    "Checks the AX environment, reports the current working "
                    "directory and creates AX projects."
                ),
                tools=[
                    environment_tool_name(source.executable),
                    "get_current_directory",
                    "create_ax_app_project",
                ],
            ),
            WorkerConfig(
                name="build_agent",
                description=(
                    "Resolves AX project paths, installs the AX code SDK "
                    "packages and compiles ST code."
                ),
                tools=[
                    "enter_project_path",
                    "install_ax_code_sdk_package",
                    "compile_st_code",
                ],
            ),
        ]
    return [
        WorkerConfig(
            name="environment_agent",
            description="Checks the Python environment and installs packages.",
            tools=["check_python_environment", "get_current_directory", "install_python_package"],
        ),
        WorkerConfig(
            name="script_agent",
            description="Writes, reads and runs Python scripts and opens HTML reports.",
            tools=[
                "write_python_script",
                "execute_python_script",
                "read_python_script",
                "list_files",
                "open_html_file",
            ],
        ),
    ]


class DelegatingProfile(BaseModel):
    kind: Literal["delegating"] = "delegating"
    source: SourceProfile = Field(default_factory=BuildToolchainProfile)
    workers: list[WorkerConfig] = Field(default_factory=list)
    instructions: Optional[str] = None

    @model_validator(mode="after")
    def _fill_workers(self) -> "DelegatingProfile":
        if not self.workers:
            self.workers = default_workers(self.source)
        names = [worker.name for worker in self.workers]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate worker names: {names}")
        return self


Profile = Annotated[
    Union[ScriptingProfile, BuildToolchainProfile, DelegatingProfile],
    Field(discriminator="kind"),
]

PROFILE_KINDS = ("scripting", "build_toolchain", "delegating")

_PROFILE_ADAPTER: TypeAdapter[Any] = TypeAdapter(Profile)


def parse_profile(raw: str | dict[str, Any] | None) -> ScriptingProfile | BuildToolchainProfile | DelegatingProfile:
    """Validate a profile given as a kind name or a mapping."""
    if raw is None:
        raw = "scripting"
    data = {"kind": raw} if isinstance(raw, str) else raw
    try:
        return _PROFILE_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid profile: {exc}") from exc


@dataclass(frozen=True)
class ToolRegistry:
    """Static tool catalog plus the system prompt that goes with it."""

    profile_kind: str
    instructions: str
    toolsets: tuple[AbstractToolset[Any], ...]

    @property
    def tool_names(self) -> list[str]:
        names: list[str] = []
        for toolset in self.toolsets:
            if isinstance(toolset, CatalogToolset):
                names.extend(toolset.names)
            elif isinstance(toolset, DelegateToolset):
                names.append(toolset.worker.name)
        return names


def source_catalog(profile: ScriptingProfile | BuildToolchainProfile) -> CatalogToolset:
    if isinstance(profile, BuildToolchainProfile):
        return CatalogToolset(
            build_toolchain_tools(profile.executable, profile.manifest),
            id="build_toolchain",
        )
    return CatalogToolset(scripting_tools(), id="scripting")


def _build_workers(
    profile: DelegatingProfile, catalog: CatalogToolset, base_dir: Optional[Path]
) -> list[WorkerSpec]:
    workers = []
    for config in profile.workers:
        try:
            toolset = catalog.subset(config.tools, id=config.name)
        except CatalogError as exc:
            raise CatalogError(f"Worker '{config.name}': {exc}") from exc
        workers.append(
            WorkerSpec(
                name=config.name,
                description=config.description,
                instructions=resolve_instructions(
                    config.instructions,
                    default_template="worker",
                    base_dir=base_dir,
                    name=config.name,
                    description=config.description,
                    tools=config.tools,
                ),
                toolset=toolset,
            )
        )
    return workers


def build_registry(
    profile: ScriptingProfile | BuildToolchainProfile | DelegatingProfile,
    *,
    base_dir: Optional[Path] = None,
) -> ToolRegistry:
    """Assemble the catalog and system prompt for ``profile``."""
    if isinstance(profile, DelegatingProfile):
        catalog = source_catalog(profile.source)
        workers = _build_workers(profile, catalog, base_dir)
        instructions = resolve_instructions(
            profile.instructions,
            default_template="coordinator",
            base_dir=base_dir,
            workers=profile.workers,
        )
        return ToolRegistry(
            profile_kind=profile.kind,
            instructions=instructions,
            toolsets=tuple(DelegateToolset(worker) for worker in workers),
        )

    catalog = source_catalog(profile)
    params: dict[str, Any] = {"tools": catalog.names}
    if isinstance(profile, BuildToolchainProfile):
        params.update(executable=profile.executable, manifest=profile.manifest)
    instructions = resolve_instructions(
        profile.instructions,
        default_template=profile.kind,
        base_dir=base_dir,
        **params,
    )
    return ToolRegistry(profile_kind=profile.kind, instructions=instructions, toolsets=(catalog,))
