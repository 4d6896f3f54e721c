from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .artifacts import PlanResult, ReviewResult

CONFIDENCE_THRESHOLD = 0.65
FACTUAL_RELIABILITY_THRESHOLD = 0.7
HIGH_SEVERITY_FLAGS = frozenset({"numeric_unverified", "time_sensitive", "logical_gap"})


class FallbackReason:
    REQUESTED = "review_requested"
    LOW_CONFIDENCE = "low_confidence"
    HIGH_SEVERITY_FLAG = "high_severity_flag"
    TIME_SENSITIVE_UNRELIABLE = "time_sensitive_unreliable"


@dataclass
class FallbackDecision:
    triggered: bool
    reasons: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.triggered


def should_fallback(review: Optional[ReviewResult], plan: Optional[PlanResult] = None) -> FallbackDecision:
    """Evaluate every fallback condition and report each one that fired."""
    if review is None:
        return FallbackDecision(False)

    reasons: List[str] = []
    if review.needs_fallback:
        reasons.append(FallbackReason.REQUESTED)
    if review.confidence_score < CONFIDENCE_THRESHOLD:
        reasons.append(FallbackReason.LOW_CONFIDENCE)
    flagged = sorted(HIGH_SEVERITY_FLAGS.intersection(review.risk_flags or []))
    if flagged:
        reasons.append(f"{FallbackReason.HIGH_SEVERITY_FLAG}:{','.join(flagged)}")
    if plan is not None and plan.is_time_sensitive and review.factual_reliability_score < FACTUAL_RELIABILITY_THRESHOLD:
        reasons.append(FallbackReason.TIME_SENSITIVE_UNRELIABLE)

    return FallbackDecision(bool(reasons), reasons)


__all__ = [
    "CONFIDENCE_THRESHOLD",
    "FACTUAL_RELIABILITY_THRESHOLD",
    "FallbackDecision",
    "FallbackReason",
    "HIGH_SEVERITY_FLAGS",
    "should_fallback",
]
