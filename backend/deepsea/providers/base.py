"""LLM provider abstraction shared by the primary and fallback upstreams."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional


class ProviderName(str, Enum):
    DEEPSEEK = "deepseek"
    OPENAI = "openai"

    @property
    def label(self) -> str:
        return "DeepSeek" if self is ProviderName.DEEPSEEK else "OpenAI"

    @property
    def key_env(self) -> str:
        return "DEEPSEEK_API_KEY" if self is ProviderName.DEEPSEEK else "OPENAI_API_KEY"


PRIMARY_PROVIDER = ProviderName.DEEPSEEK
FALLBACK_PROVIDER = ProviderName.OPENAI


@dataclass
class LLMRequest:
    """Unified request format for all LLM providers."""
    messages: List[Dict[str, str]]
    model: str
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    stream: bool = False
    request_id: Optional[str] = None


@dataclass
class LLMResponse:
    """Unified response format from LLM providers."""
    text: str
    usage: Optional[Dict[str, int]] = None
    raw: Optional[Dict[str, Any]] = None
    finish_reason: Optional[str] = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: ProviderName

    @abstractmethod
    async def chat_completion(self, request: LLMRequest, timeout_seconds: Optional[float] = None) -> LLMResponse:
        """
        Execute a non-streaming chat completion request.

        Raises:
            ProviderTimeoutError: when the upstream does not answer in time
            ProviderUpstreamError: on transport failures and non-2xx statuses
        """

    @abstractmethod
    async def open_stream(self, request: LLMRequest, timeout_seconds: Optional[float] = None) -> AsyncIterator[str]:
        """
        Open a streaming chat completion.

        The upstream status is checked before this returns, so a rejected
        request raises here rather than from the first iteration.

        Returns:
            Async iterator over content deltas as they arrive
        """


__all__ = [
    "FALLBACK_PROVIDER",
    "LLMProvider",
    "LLMRequest",
    "LLMResponse",
    "PRIMARY_PROVIDER",
    "ProviderName",
]
