"""Chat-completions provider for DeepSeek, OpenAI and other OpenAI-compatible APIs."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .base import LLMProvider, LLMRequest, LLMResponse, ProviderName
from .errors import ProviderTimeoutError, ProviderUpstreamError

logger = logging.getLogger(__name__)

MAX_ERROR_DETAIL_CHARS = 2000
SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class ChatCompletionsProvider(LLMProvider):
    """POSTs `{model, messages, temperature, max_tokens, stream}` with bearer auth."""

    def __init__(
        self,
        name: ProviderName,
        api_key: str,
        base_url: str,
        timeout_seconds: float = 30.0,
        connect_timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.connect_timeout_seconds = connect_timeout_seconds
        self.transport = transport

    def _payload(self, request: LLMRequest, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
            "temperature": request.temperature,
            "stream": stream,
        }
        if request.max_tokens:
            payload["max_tokens"] = request.max_tokens
        return payload

    def _headers(self, request: LLMRequest) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if request.request_id:
            headers["X-Request-ID"] = request.request_id
        return headers

    def _client(self, timeout_seconds: Optional[float] = None) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            timeout_seconds or self.timeout_seconds,
            connect=min(self.connect_timeout_seconds, timeout_seconds or self.timeout_seconds),
        )
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    def _status_error(self, status_code: int, body: str) -> ProviderUpstreamError:
        detail = body[:MAX_ERROR_DETAIL_CHARS]
        return ProviderUpstreamError(
            f"{self.name.label} API Error: {detail}",
            provider=self.name.value,
            status_code=status_code,
            detail=detail,
        )

    async def chat_completion(self, request: LLMRequest, timeout_seconds: Optional[float] = None) -> LLMResponse:
        """Execute a non-streaming chat completion."""
        try:
            async with self._client(timeout_seconds) as client:
                resp = await client.post(
                    self.base_url,
                    headers=self._headers(request),
                    json=self._payload(request, stream=False),
                )
                if resp.status_code >= 400:
                    raise self._status_error(resp.status_code, resp.text)
                data = resp.json()
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(
                f"{self.name.label} request timeout",
                provider=self.name.value,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderUpstreamError(
                f"{self.name.label} HTTP error: {exc}",
                provider=self.name.value,
            ) from exc
        except json.JSONDecodeError as exc:
            raise ProviderUpstreamError(
                f"{self.name.label} returned invalid JSON",
                provider=self.name.value,
            ) from exc

        try:
            choice = data["choices"][0]
            message = choice.get("message") or {}
            return LLMResponse(
                text=message.get("content") or "",
                usage=data.get("usage"),
                raw=data,
                finish_reason=choice.get("finish_reason"),
            )
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ProviderUpstreamError(
                f"{self.name.label} response missing expected fields: {exc}",
                provider=self.name.value,
            ) from exc

    async def open_stream(self, request: LLMRequest, timeout_seconds: Optional[float] = None) -> AsyncIterator[str]:
        """Open a streaming completion; non-success statuses raise before returning."""
        client = self._client(timeout_seconds)
        http_request = client.build_request(
            "POST",
            self.base_url,
            headers=self._headers(request),
            json=self._payload(request, stream=True),
        )
        try:
            resp = await client.send(http_request, stream=True)
        except httpx.TimeoutException as exc:
            await client.aclose()
            raise ProviderTimeoutError(
                f"{self.name.label} streaming timeout",
                provider=self.name.value,
            ) from exc
        except httpx.HTTPError as exc:
            await client.aclose()
            raise ProviderUpstreamError(
                f"{self.name.label} streaming HTTP error: {exc}",
                provider=self.name.value,
            ) from exc
        except asyncio.CancelledError:
            await client.aclose()
            raise

        if resp.status_code >= 400:
            try:
                body = (await resp.aread()).decode("utf-8", errors="replace")
            finally:
                await resp.aclose()
                await client.aclose()
            raise self._status_error(resp.status_code, body)

        return self._iter_deltas(client, resp)

    async def _iter_deltas(self, client: httpx.AsyncClient, resp: httpx.Response) -> AsyncIterator[str]:
        try:
            async for line in resp.aiter_lines():
                text = line.strip()
                if not text.startswith(SSE_DATA_PREFIX):
                    continue
                data = text[len(SSE_DATA_PREFIX):].strip()
                if data == SSE_DONE:
                    break
                try:
                    chunk = json.loads(data)
                    content = chunk["choices"][0]["delta"].get("content")
                except (json.JSONDecodeError, KeyError, IndexError, TypeError, AttributeError):
                    logger.debug("[UPSTREAM] skipped malformed stream chunk", extra={"provider": self.name.value})
                    continue
                if content:
                    yield content
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(
                f"{self.name.label} streaming timeout",
                provider=self.name.value,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderUpstreamError(
                f"{self.name.label} streaming HTTP error: {exc}",
                provider=self.name.value,
            ) from exc
        finally:
            await resp.aclose()
            await client.aclose()


__all__ = ["ChatCompletionsProvider"]
