"""Pipeline telemetry. Records hold timings and scores only, never message text."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from backend.deepsea.observability.logging import structured_log

logger = logging.getLogger(__name__)

PROVIDER_PRIMARY = "deepseek"
PROVIDER_FALLBACK = "gpt-fallback"


def approx_tokens(text: Optional[str]) -> int:
    # ~4 chars per token
    if not text:
        return 0
    return max(1, (len(text) + 3) // 4)


@dataclass
class PipelineLog:
    mode: str = "hardcore"
    policy: str = "review_fallback"
    request_id: Optional[str] = None
    plan_latency_ms: Optional[int] = None
    draft_latency_ms: Optional[int] = None
    review_latency_ms: Optional[int] = None
    fallback_latency_ms: Optional[int] = None
    rewrite_latency_ms: Optional[int] = None
    total_latency_ms: Optional[int] = None
    confidence_score: Optional[float] = None
    fallback_triggered: bool = False
    fallback_reasons: List[str] = field(default_factory=list)
    deadline_exceeded: bool = False
    plan_fallback_used: bool = False
    review_fallback_used: bool = False
    total_tokens_approx: int = 0
    provider: str = PROVIDER_PRIMARY
    error: Optional[str] = None

    def add_tokens(self, *texts: Optional[str]) -> None:
        self.total_tokens_approx += sum(approx_tokens(t) for t in texts)

    def summary(self) -> Dict[str, Any]:
        return {
            "confidence": self.confidence_score,
            "fallback": self.fallback_triggered,
            "provider": self.provider,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TelemetrySink(Protocol):
    def record(self, log: PipelineLog) -> None:
        ...


class LoggingTelemetrySink:
    def __init__(self, debug: bool = False):
        self.debug = debug

    def record(self, log: PipelineLog) -> None:
        if self.debug:
            structured_log({"event": "hardcore_pipeline", **log.to_dict()})
        else:
            logger.info("[HARDCORE] %s", log.summary(), extra={"request_id": log.request_id})


def emit(sink: Optional[TelemetrySink], log: PipelineLog) -> None:
    """Hand the record to the sink; sink failures never reach the request path."""
    if sink is None:
        return
    try:
        sink.record(log)
    except Exception:  # noqa: BLE001
        logger.warning("[HARDCORE] telemetry sink failed", exc_info=True)


__all__ = [
    "LoggingTelemetrySink",
    "PROVIDER_FALLBACK",
    "PROVIDER_PRIMARY",
    "PipelineLog",
    "TelemetrySink",
    "approx_tokens",
    "emit",
]
