"""Exception hierarchy for llm-toolrun."""
from __future__ import annotations


class ToolrunError(Exception):
    """Base error for llm-toolrun failures."""


class ConfigError(ToolrunError, ValueError):
    """Configuration is missing or invalid (API key, profile, catalog)."""


class CatalogError(ConfigError):
    """A tool catalog could not be assembled from its profile."""


class SessionBusyError(ToolrunError):
    """A run is already in flight for the requested thread identifier."""

    def __init__(self, thread_id: str):
        super().__init__(f"Session '{thread_id}' already has a run in flight")
        self.thread_id = thread_id


class CommandError(ToolrunError):
    """A command could not be turned into an argument vector."""
