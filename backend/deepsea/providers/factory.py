"""LLM provider factory for creating providers from settings."""

from __future__ import annotations

from typing import Optional

import httpx

from backend.deepsea.config.settings import Settings

from .base import LLMProvider, ProviderName
from .chat_completions_provider import ChatCompletionsProvider
from .errors import ProviderMisconfiguredError


def provider_api_key(name: ProviderName, settings: Settings) -> Optional[str]:
    if name is ProviderName.DEEPSEEK:
        return settings.deepseek_api_key
    return settings.openai_api_key


def provider_model(name: ProviderName, settings: Settings) -> str:
    if name is ProviderName.DEEPSEEK:
        return settings.deepseek_model
    return settings.openai_model


def create_provider(
    name: ProviderName,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LLMProvider:
    """
    Create a provider from settings.

    Raises:
        ProviderMisconfiguredError: If the provider's API key is not set
    """
    api_key = provider_api_key(name, settings)
    if not api_key:
        raise ProviderMisconfiguredError(f"{name.key_env} not configured", provider=name.value)

    base_url = settings.deepseek_base_url if name is ProviderName.DEEPSEEK else settings.openai_base_url
    return ChatCompletionsProvider(
        name=name,
        api_key=api_key,
        base_url=base_url,
        connect_timeout_seconds=float(settings.model_connect_timeout_seconds),
        transport=transport,
    )


__all__ = ["create_provider", "provider_api_key", "provider_model"]
