from .artifacts import FALLBACK_PLAN, FALLBACK_REVIEW, PlanResult, ReviewResult, parse_plan, parse_review
from .decision import FallbackDecision, should_fallback
from .engine import (
    HardcorePipeline,
    PipelineContext,
    PipelineResult,
    ReviewFallbackPipeline,
    RewritePipeline,
    build_pipeline,
)
from .telemetry import LoggingTelemetrySink, PipelineLog, TelemetrySink

__all__ = [
    "FALLBACK_PLAN",
    "FALLBACK_REVIEW",
    "FallbackDecision",
    "HardcorePipeline",
    "LoggingTelemetrySink",
    "PipelineContext",
    "PipelineLog",
    "PipelineResult",
    "PlanResult",
    "ReviewFallbackPipeline",
    "ReviewResult",
    "RewritePipeline",
    "TelemetrySink",
    "build_pipeline",
    "parse_plan",
    "parse_review",
    "should_fallback",
]
