from __future__ import annotations

from urllib.parse import urlparse

import httpx
from openai import AsyncOpenAI
from pydantic_ai.models import cached_async_http_client
from pydantic_ai.providers import Provider

from ..exceptions import ConfigError


def provider_name_for(base_url: str) -> str:
    """Name a provider after its host, e.g. ``dashscope.aliyuncs.com``."""
    host = urlparse(base_url).hostname
    return host or "openai-compatible"


class OpenAICompatibleProvider(Provider[AsyncOpenAI]):
    """Provider for OpenAI-compatible chat-completions endpoints (DashScope, Ollama, vLLM)."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        name: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ConfigError("api_key must be non-empty")
        self._base_url = base_url.rstrip("/")
        self._name = name or provider_name_for(self._base_url)

        http_client = http_client or cached_async_http_client(provider=self._name)

        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=self._base_url,
            http_client=http_client,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def client(self) -> AsyncOpenAI:
        return self._client
