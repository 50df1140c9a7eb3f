"""Configuration loading for llm-toolrun.

Reads an optional ``llm-toolrun.toml`` from the working directory:

    [provider]
    base_url = "https://dashscope.aliyuncs.com/compatible-mode/v1"
    model = "qwen3-max"
    api_key_env = "DASHSCOPE_API_KEY"
    request_timeout = 120

    [run]
    recursion_limit = 50
    command_timeout = 120
    max_delegation_depth = 2
    workspace = "."

    [profile]
    kind = "build_toolchain"

Environment variables LLM_TOOLRUN_MODEL and LLM_TOOLRUN_BASE_URL override
the provider section. The API key is only ever read from the environment.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import ConfigError
from .toolsets.registry import (
    BuildToolchainProfile,
    DelegatingProfile,
    ScriptingProfile,
    parse_profile,
)

CONFIG_FILENAMES = ("llm-toolrun.toml",)

MODEL_ENV = "LLM_TOOLRUN_MODEL"
BASE_URL_ENV = "LLM_TOOLRUN_BASE_URL"

DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
DEFAULT_MODEL = "qwen3-max"
DEFAULT_API_KEY_ENV = "DASHSCOPE_API_KEY"


@dataclass
class ProviderSettings:
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    api_key_env: str = DEFAULT_API_KEY_ENV
    request_timeout: Optional[float] = 120.0

    def api_key(self, environ: Optional[dict[str, str]] = None) -> str:
        """Return the API key, failing fast when it is not configured."""
        env = os.environ if environ is None else environ
        key = env.get(self.api_key_env, "").strip()
        if not key:
            raise ConfigError(
                f"No API key configured. Set the {self.api_key_env} environment variable."
            )
        return key


@dataclass
class RunSettings:
    recursion_limit: int = 50
    command_timeout: float = 120.0
    max_delegation_depth: int = 2
    workspace: Optional[Path] = None


@dataclass
class ToolrunConfig:
    provider: ProviderSettings = field(default_factory=ProviderSettings)
    run: RunSettings = field(default_factory=RunSettings)
    profile: ScriptingProfile | BuildToolchainProfile | DelegatingProfile = field(
        default_factory=ScriptingProfile
    )
    path: Optional[Path] = None

    @property
    def base_dir(self) -> Optional[Path]:
        return self.path.parent if self.path is not None else None


def load_config(base_dir: Path, environ: Optional[dict[str, str]] = None) -> ToolrunConfig:
    """Load config from the first matching file in ``base_dir``, then apply env overrides."""
    env = os.environ if environ is None else environ
    config = ToolrunConfig()

    for filename in CONFIG_FILENAMES:
        candidate = base_dir / filename
        if not candidate.exists():
            continue
        try:
            with candidate.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid config file {candidate}: {exc}") from exc
        config = ToolrunConfig(
            provider=_parse_provider(data.get("provider", {})),
            run=_parse_run(data.get("run", {}), candidate.parent),
            profile=parse_profile(data.get("profile")),
            path=candidate,
        )
        break

    if env.get(MODEL_ENV):
        config.provider.model = env[MODEL_ENV]
    if env.get(BASE_URL_ENV):
        config.provider.base_url = env[BASE_URL_ENV]
    return config


def _number(raw: dict, key: str, default: Any, kind: type) -> Any:
    value = raw.get(key, default)
    if value is None:
        return None
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for '{key}': {value!r}") from exc


def _parse_provider(raw: dict) -> ProviderSettings:
    defaults = ProviderSettings()
    return ProviderSettings(
        base_url=raw.get("base_url", defaults.base_url),
        model=raw.get("model", defaults.model),
        api_key_env=raw.get("api_key_env", defaults.api_key_env),
        request_timeout=_number(raw, "request_timeout", defaults.request_timeout, float),
    )


def _parse_run(raw: dict, config_dir: Path) -> RunSettings:
    defaults = RunSettings()
    settings = RunSettings(
        recursion_limit=_number(raw, "recursion_limit", defaults.recursion_limit, int),
        command_timeout=_number(raw, "command_timeout", defaults.command_timeout, float),
        max_delegation_depth=_number(raw, "max_delegation_depth", defaults.max_delegation_depth, int),
    )
    workspace = raw.get("workspace")
    if workspace is not None:
        path = Path(workspace).expanduser()
        settings.workspace = path if path.is_absolute() else (config_dir / path).resolve()
    if settings.recursion_limit < 1:
        raise ConfigError("recursion_limit must be at least 1")
    if settings.command_timeout <= 0:
        raise ConfigError("command_timeout must be positive")
    return settings
