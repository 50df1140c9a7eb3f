"""Model resolution for the agent session driver."""
from __future__ import annotations

from typing import Optional, TypeAlias

from pydantic_ai.exceptions import UserError
from pydantic_ai.models import Model, infer_model
from pydantic_ai.models.openai import OpenAIChatModel

from .config import ProviderSettings
from .exceptions import ConfigError
from .providers import OpenAICompatibleProvider

ModelInput: TypeAlias = str | Model


class ModelError(ConfigError):
    """Model configuration is invalid."""


def is_prefixed_model(name: str) -> bool:
    """True for names PydanticAI resolves itself ('test', 'openai:gpt-4o', ...)."""
    return name == "test" or ":" in name


def build_model(
    settings: ProviderSettings,
    *,
    model: Optional[ModelInput] = None,
    environ: Optional[dict[str, str]] = None,
) -> Model:
    """Resolve the chat model for a run.

    A Model instance is used as-is. Prefixed names go through PydanticAI's
    ``infer_model``. Bare names are served by the configured OpenAI-compatible
    endpoint, which requires an API key.

    Raises:
        ConfigError: If the API key is missing
        ModelError: If a prefixed name is unknown to PydanticAI
    """
    selected = settings.model if model is None else model
    if isinstance(selected, Model):
        return selected
    if not selected:
        raise ModelError("No model configured.")

    if is_prefixed_model(selected):
        try:
            return infer_model(selected)
        except UserError as exc:
            raise ModelError(f"Unknown model '{selected}': {exc}") from exc

    provider = OpenAICompatibleProvider(
        base_url=settings.base_url,
        api_key=settings.api_key(environ),
    )
    return OpenAIChatModel(selected, provider=provider)
