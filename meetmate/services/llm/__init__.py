from __future__ import annotations

from meetmate.services.config import ProviderConfig
from meetmate.services.llm.base import BaseLLMProvider, LLMProvider, LLMProviderError
from meetmate.services.llm.gemini_provider import GeminiProvider


def create_provider(config: ProviderConfig | None) -> LLMProvider | None:
    """Build the shared AI client; None disables AI features."""
    if config is None:
        return None
    if config.name == "gemini":
        return GeminiProvider(api_key=config.api_key, model=config.model, base_url=config.base_url)
    raise LLMProviderError(f"Unknown provider: {config.name}")


__all__ = [
    "BaseLLMProvider",
    "LLMProvider",
    "LLMProviderError",
    "GeminiProvider",
    "create_provider",
]
