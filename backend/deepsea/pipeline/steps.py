"""Per-step call parameters for the hardcore pipeline.

Plan + draft must normally fit inside PIPELINE_DEADLINE_MS; every step timeout
is additionally clamped to what is left of the request budget.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StepParams:
    name: str
    max_tokens: int
    temperature: float
    timeout_ms: int


PLAN_STEP = StepParams("plan", max_tokens=300, temperature=0.2, timeout_ms=2500)
DRAFT_STEP = StepParams("draft", max_tokens=1500, temperature=0.7, timeout_ms=6000)
REVIEW_STEP = StepParams("review", max_tokens=400, temperature=0.1, timeout_ms=2500)
FALLBACK_STEP = StepParams("fallback", max_tokens=1500, temperature=0.4, timeout_ms=6000)
REWRITE_STEP = StepParams("rewrite", max_tokens=1500, temperature=0.5, timeout_ms=6000)

__all__ = ["DRAFT_STEP", "FALLBACK_STEP", "PLAN_STEP", "REVIEW_STEP", "REWRITE_STEP", "StepParams"]
