from __future__ import annotations

import logging
import time
from typing import AsyncIterator, Dict, List, Optional

import httpx

from backend.deepsea.config.settings import Settings
from backend.deepsea.perf.timeouts import PerfTimeoutError, enforce_timeout

from .base import LLMProvider, LLMRequest, ProviderName
from .errors import ProviderTimeoutError
from .factory import create_provider, provider_api_key, provider_model

logger = logging.getLogger(__name__)

Messages = List[Dict[str, str]]


class UpstreamClient:
    """Issues completion calls against an explicitly selected provider.

    Holds only read-only configuration, so one instance can serve concurrent
    requests. Each call opens its own HTTP connection.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def is_configured(self, provider: ProviderName) -> bool:
        return bool(provider_api_key(provider, self.settings))

    def ensure_configured(self, provider: ProviderName) -> LLMProvider:
        """Raise ProviderMisconfiguredError when the provider's key is absent."""
        return create_provider(provider, self.settings, transport=self.transport)

    def default_model(self, provider: ProviderName) -> str:
        return provider_model(provider, self.settings)

    def _request(
        self,
        messages: Messages,
        model: Optional[str],
        provider: ProviderName,
        temperature: float,
        max_tokens: Optional[int],
        stream: bool,
        request_id: Optional[str],
    ) -> LLMRequest:
        return LLMRequest(
            messages=list(messages),
            model=model or self.default_model(provider),
            temperature=temperature,
            max_tokens=max_tokens,
            stream=stream,
            request_id=request_id,
        )

    async def complete_once(
        self,
        messages: Messages,
        model: Optional[str] = None,
        *,
        provider: ProviderName,
        temperature: float,
        max_tokens: Optional[int],
        timeout_ms: int,
        request_id: Optional[str] = None,
    ) -> str:
        """Return the fully materialized completion text ("" when the provider sends none)."""
        llm = self.ensure_configured(provider)
        request = self._request(messages, model, provider, temperature, max_tokens, False, request_id)
        started = time.perf_counter()
        try:
            response = await enforce_timeout(
                lambda: llm.chat_completion(request, timeout_seconds=timeout_ms / 1000.0),
                timeout_ms,
            )
        except PerfTimeoutError as exc:
            logger.warning(
                "[UPSTREAM] timeout",
                extra={"provider": provider.value, "timeout_ms": timeout_ms, "request_id": request_id},
            )
            raise ProviderTimeoutError(f"{provider.label} request timeout", provider=provider.value) from exc
        logger.info(
            "[UPSTREAM] complete",
            extra={
                "provider": provider.value,
                "model": request.model,
                "latency_ms": int((time.perf_counter() - started) * 1000),
                "request_id": request_id,
            },
        )
        return response.text

    async def complete_streaming(
        self,
        messages: Messages,
        model: Optional[str] = None,
        *,
        provider: ProviderName,
        temperature: float,
        max_tokens: Optional[int],
        timeout_ms: int,
        request_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Open a stream of content deltas.

        The timeout bounds the wait for response headers; a non-success status
        raises here, before any delta is produced.
        """
        llm = self.ensure_configured(provider)
        request = self._request(messages, model, provider, temperature, max_tokens, True, request_id)
        try:
            stream = await enforce_timeout(
                lambda: llm.open_stream(request, timeout_seconds=timeout_ms / 1000.0),
                timeout_ms,
            )
        except PerfTimeoutError as exc:
            logger.warning(
                "[UPSTREAM] stream timeout",
                extra={"provider": provider.value, "timeout_ms": timeout_ms, "request_id": request_id},
            )
            raise ProviderTimeoutError(f"{provider.label} streaming timeout", provider=provider.value) from exc
        logger.info(
            "[UPSTREAM] stream opened",
            extra={"provider": provider.value, "model": request.model, "request_id": request_id},
        )
        return stream


__all__ = ["UpstreamClient"]
