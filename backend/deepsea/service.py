from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from backend.deepsea.chat_contract import ChatRequest, Mode
from backend.deepsea.config.settings import Settings, get_settings
from backend.deepsea.errors import ChatValidationError, ClientDisconnectedError
from backend.deepsea.modes.assembler import build_messages
from backend.deepsea.modes.classifier import classify_mode
from backend.deepsea.modes.profiles import ModeTable, build_mode_table
from backend.deepsea.perf.timeouts import monotonic_ms
from backend.deepsea.pipeline.engine import (
    POLICY_REVIEW_FALLBACK,
    HardcorePipeline,
    PipelineContext,
    build_pipeline,
)
from backend.deepsea.pipeline.telemetry import LoggingTelemetrySink, TelemetrySink
from backend.deepsea.providers.base import FALLBACK_PROVIDER, PRIMARY_PROVIDER, ProviderName
from backend.deepsea.providers.client import UpstreamClient
from backend.deepsea.streaming import Outcome

logger = logging.getLogger(__name__)

ERROR_HEADER = "X-DeepSea-Error"
MODE_HEADER = "X-DeepSea-Mode"

DisconnectWaiter = Callable[[], Awaitable[None]]


@dataclass
class ChatOutcome:
    mode: Mode
    body: Outcome
    headers: Dict[str, str] = field(default_factory=dict)


async def run_until_disconnect(work: Awaitable[Any], disconnected: Optional[DisconnectWaiter]) -> Any:
    """Await `work`, cancelling it if the client goes away first."""
    if disconnected is None:
        return await work
    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(disconnected())
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [t for t in (task, watcher) if not t.done()]
        for t in pending:
            t.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    if task.cancelled():
        raise ClientDisconnectedError()
    return task.result()


class ChatGateway:
    """Resolves the mode and runs either the direct stream or the hardcore pipeline."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[UpstreamClient] = None,
        table: Optional[ModeTable] = None,
        pipeline: Optional[HardcorePipeline] = None,
        sink: Optional[TelemetrySink] = None,
        now_ms: Callable[[], int] = monotonic_ms,
    ):
        self.settings = settings
        self.client = client or UpstreamClient(settings)
        self.table = table or build_mode_table(settings)
        self.pipeline = pipeline or build_pipeline(settings.pipeline_policy)
        self.sink = sink if sink is not None else LoggingTelemetrySink(debug=settings.debug_pipeline)
        self.now_ms = now_ms

    def resolve(self, request: ChatRequest) -> Mode:
        if request.mode is not Mode.AUTO:
            return request.mode
        text = request.latest_user_text()
        decision = classify_mode(text, allow_hardcore=self.table.allow_hardcore)
        logger.info(
            "[AUTO] Detected mode: %s",
            decision.mode.value,
            extra={"input_length": len(text), "score": decision.score, "signals": decision.signals},
        )
        return decision.mode

    def required_providers(self, mode: Mode) -> List[ProviderName]:
        providers = [PRIMARY_PROVIDER]
        if mode is Mode.HARDCORE and self.pipeline.policy == POLICY_REVIEW_FALLBACK:
            providers.append(FALLBACK_PROVIDER)
        return providers

    async def handle(
        self,
        request: ChatRequest,
        request_id: Optional[str] = None,
        disconnected: Optional[DisconnectWaiter] = None,
    ) -> ChatOutcome:
        """
        Produce the response body for one chat request.

        Raises before any upstream work:
            ChatValidationError: latest user message is blank
            ProviderMisconfiguredError: a provider this mode needs has no key
        Raises on the direct path (before streaming starts):
            ProviderTimeoutError, ProviderUpstreamError
        Raises when `disconnected` completes before the answer is ready:
            ClientDisconnectedError (in-flight upstream calls are cancelled)
        """
        if not request.latest_user_text().strip():
            raise ChatValidationError("latest user message is empty")

        mode = self.resolve(request)
        for provider in self.required_providers(mode):
            self.client.ensure_configured(provider)

        if mode is Mode.HARDCORE:
            return await self._run_pipeline(request, request_id, disconnected)
        return await self._run_direct(mode, request, request_id, disconnected)

    async def _run_direct(
        self,
        mode: Mode,
        request: ChatRequest,
        request_id: Optional[str],
        disconnected: Optional[DisconnectWaiter] = None,
    ) -> ChatOutcome:
        profile = self.table.profile(mode)
        messages = build_messages(mode, request.messages, self.table)
        stream = await run_until_disconnect(
            self.client.complete_streaming(
                messages,
                request.model,
                provider=PRIMARY_PROVIDER,
                temperature=profile.temperature,
                max_tokens=profile.max_tokens,
                timeout_ms=profile.timeout_ms,
                request_id=request_id,
            ),
            disconnected,
        )
        logger.info("[CHAT] %s stream started", mode.value.upper(), extra={"request_id": request_id})
        return ChatOutcome(mode=mode, body=stream, headers={MODE_HEADER: mode.value})

    async def _run_pipeline(
        self,
        request: ChatRequest,
        request_id: Optional[str],
        disconnected: Optional[DisconnectWaiter] = None,
    ) -> ChatOutcome:
        ctx = PipelineContext(
            client=self.client,
            table=self.table,
            history=request.messages,
            user_text=request.latest_user_text(),
            deadline_ms=self.settings.pipeline_deadline_ms,
            request_budget_ms=self.settings.request_budget_ms,
            model=request.model,
            request_id=request_id,
            now_ms=self.now_ms,
            sink=self.sink,
        )
        try:
            result = await run_until_disconnect(self.pipeline.run(ctx), disconnected)
        except ClientDisconnectedError:
            logger.info("[HARDCORE] client disconnected, pipeline cancelled", extra={"request_id": request_id})
            raise
        headers = {MODE_HEADER: Mode.HARDCORE.value}
        if result.error_kind:
            headers[ERROR_HEADER] = result.error_kind
        return ChatOutcome(mode=Mode.HARDCORE, body=result.text, headers=headers)


@functools.lru_cache(maxsize=1)
def _default_gateway() -> ChatGateway:
    return ChatGateway(get_settings())


def get_gateway() -> ChatGateway:
    return _default_gateway()


__all__ = ["ChatGateway", "ChatOutcome", "ERROR_HEADER", "MODE_HEADER", "get_gateway", "run_until_disconnect"]
