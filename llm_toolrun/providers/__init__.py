"""Model providers for OpenAI-compatible endpoints."""

from .openai_compatible import OpenAICompatibleProvider

__all__ = ["OpenAICompatibleProvider"]
