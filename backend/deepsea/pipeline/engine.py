"""
Hardcore pipeline: PLAN -> DRAFT -> [deadline checkpoint] -> policy steps -> DELIVER.

One pipeline policy is active per deployment (see `build_pipeline`):
- review_fallback: REVIEW, then FALLBACK on the secondary provider when
  `should_fallback` fires
- rewrite: one REWRITE pass on the primary provider

Failure handling:
- before a draft exists, any failure ends in ERROR_DELIVER (user-facing text
  plus `error_kind`)
- once a draft exists, a failing later step delivers the draft
- cancellation is never caught
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence

from backend.deepsea.chat_contract import Mode
from backend.deepsea.errors import user_message
from backend.deepsea.modes.assembler import build_messages, render_template
from backend.deepsea.modes.profiles import ModeTable
from backend.deepsea.modes import prompts
from backend.deepsea.perf.timeouts import Deadline, clamp_timeout_ms, monotonic_ms
from backend.deepsea.providers.base import FALLBACK_PROVIDER, PRIMARY_PROVIDER, ProviderName
from backend.deepsea.providers.errors import ProviderError, ProviderUpstreamError

from .artifacts import PlanResult, ReviewResult, parse_plan, parse_review
from .decision import should_fallback
from .steps import DRAFT_STEP, FALLBACK_STEP, PLAN_STEP, REVIEW_STEP, REWRITE_STEP, StepParams
from .telemetry import PROVIDER_FALLBACK, PipelineLog, TelemetrySink, emit

logger = logging.getLogger(__name__)

POLICY_REVIEW_FALLBACK = "review_fallback"
POLICY_REWRITE = "rewrite"


class CompletionClient(Protocol):
    async def complete_once(
        self,
        messages: Any,
        model: Optional[str] = None,
        *,
        provider: ProviderName,
        temperature: float,
        max_tokens: Optional[int],
        timeout_ms: int,
        request_id: Optional[str] = None,
    ) -> str:
        ...


@dataclass
class PipelineContext:
    client: CompletionClient
    table: ModeTable
    history: Sequence[Any]
    user_text: str
    deadline_ms: int
    request_budget_ms: int
    model: Optional[str] = None
    request_id: Optional[str] = None
    now_ms: Callable[[], int] = monotonic_ms
    sink: Optional[TelemetrySink] = None


@dataclass
class PipelineResult:
    text: str
    log: PipelineLog
    error_kind: Optional[str] = None
    plan: Optional[PlanResult] = None
    review: Optional[ReviewResult] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None


class HardcorePipeline:
    policy = ""

    async def run(self, ctx: PipelineContext) -> PipelineResult:
        log = PipelineLog(policy=self.policy, request_id=ctx.request_id)
        budget = Deadline(ctx.request_budget_ms, now_ms=ctx.now_ms)
        checkpoint = Deadline(ctx.deadline_ms, now_ms=ctx.now_ms, start_ms=budget.start_ms)
        plan: Optional[PlanResult] = None

        try:
            plan = await self._plan(ctx, budget, log)
            draft = await self._draft(ctx, budget, plan, log)
        except Exception as exc:  # noqa: BLE001
            return self._error_deliver(ctx, budget, log, exc, plan)

        if checkpoint.exceeded():
            log.deadline_exceeded = True
            logger.info(
                "[HARDCORE] deadline exceeded after draft, delivering draft",
                extra={"elapsed_ms": checkpoint.elapsed_ms(), "deadline_ms": ctx.deadline_ms, "request_id": ctx.request_id},
            )
            return self._deliver(ctx, budget, log, draft, plan)

        result = PipelineResult(text=draft, log=log, plan=plan)
        try:
            result.text = await self._refine(ctx, budget, plan, draft, result)
        except Exception as exc:  # noqa: BLE001
            log.error = getattr(exc, "kind", type(exc).__name__)
            logger.warning(
                "[HARDCORE] post-draft step failed, delivering draft",
                extra={"error_kind": log.error, "request_id": ctx.request_id},
                exc_info=not isinstance(exc, ProviderError),
            )
            result.text = draft

        return self._deliver(ctx, budget, log, result.text, plan, review=result.review)

    async def _refine(
        self,
        ctx: PipelineContext,
        budget: Deadline,
        plan: PlanResult,
        draft: str,
        result: PipelineResult,
    ) -> str:
        raise NotImplementedError

    async def _call(
        self,
        ctx: PipelineContext,
        budget: Deadline,
        step: StepParams,
        step_prompt: str,
        provider: ProviderName = PRIMARY_PROVIDER,
    ) -> tuple[str, int]:
        messages = build_messages(Mode.HARDCORE, ctx.history, ctx.table, step_prompt=step_prompt)
        model = ctx.model if provider is PRIMARY_PROVIDER else None
        started = ctx.now_ms()
        text = await ctx.client.complete_once(
            messages,
            model,
            provider=provider,
            temperature=step.temperature,
            max_tokens=step.max_tokens,
            timeout_ms=clamp_timeout_ms(budget, step.timeout_ms),
            request_id=ctx.request_id,
        )
        return text or "", max(0, ctx.now_ms() - started)

    async def _plan(self, ctx: PipelineContext, budget: Deadline, log: PipelineLog) -> PlanResult:
        prompt = render_template(prompts.PLAN_TEMPLATE, user_input=ctx.user_text)
        text, log.plan_latency_ms = await self._call(ctx, budget, PLAN_STEP, prompt)
        log.add_tokens(prompt, text)
        plan = parse_plan(text)
        log.plan_fallback_used = plan.is_fallback
        if plan.is_fallback:
            logger.info("[HARDCORE] plan unparseable, using fallback plan", extra={"request_id": ctx.request_id})
        return plan

    async def _draft(self, ctx: PipelineContext, budget: Deadline, plan: PlanResult, log: PipelineLog) -> str:
        prompt = render_template(prompts.DRAFT_TEMPLATE, user_input=ctx.user_text, plan_output=plan)
        text, log.draft_latency_ms = await self._call(ctx, budget, DRAFT_STEP, prompt)
        log.add_tokens(prompt, text)
        if not text.strip():
            raise ProviderUpstreamError("draft step returned no content", provider=PRIMARY_PROVIDER.value)
        return text

    def _finish(self, ctx: PipelineContext, budget: Deadline, log: PipelineLog) -> None:
        log.total_latency_ms = budget.elapsed_ms()
        emit(ctx.sink, log)

    def _deliver(
        self,
        ctx: PipelineContext,
        budget: Deadline,
        log: PipelineLog,
        text: str,
        plan: Optional[PlanResult],
        review: Optional[ReviewResult] = None,
    ) -> PipelineResult:
        self._finish(ctx, budget, log)
        return PipelineResult(text=text, log=log, plan=plan, review=review)

    def _error_deliver(
        self,
        ctx: PipelineContext,
        budget: Deadline,
        log: PipelineLog,
        exc: Exception,
        plan: Optional[PlanResult],
    ) -> PipelineResult:
        kind = exc.kind if isinstance(exc, ProviderError) else "internal_error"
        log.error = kind
        if isinstance(exc, ProviderError):
            logger.warning("[HARDCORE] pipeline failed before draft", extra={"error_kind": kind, "request_id": ctx.request_id})
        else:
            logger.exception("[HARDCORE] pipeline crashed before draft", extra={"request_id": ctx.request_id})
        self._finish(ctx, budget, log)
        return PipelineResult(text=user_message(kind), log=log, error_kind=kind, plan=plan)


class ReviewFallbackPipeline(HardcorePipeline):
    policy = POLICY_REVIEW_FALLBACK

    async def _refine(self, ctx, budget, plan, draft, result):
        log = result.log
        prompt = render_template(
            prompts.REVIEW_TEMPLATE,
            user_input=ctx.user_text,
            plan_output=plan,
            draft_output=draft,
        )
        text, log.review_latency_ms = await self._call(ctx, budget, REVIEW_STEP, prompt)
        log.add_tokens(prompt, text)
        review = parse_review(text)
        result.review = review
        log.review_fallback_used = review.is_fallback
        log.confidence_score = review.confidence_score

        decision = should_fallback(review, plan)
        if not decision:
            return draft

        log.fallback_triggered = True
        log.fallback_reasons = list(decision.reasons)
        logger.info(
            "[HARDCORE] fallback triggered",
            extra={"reasons": decision.reasons, "request_id": ctx.request_id},
        )
        prompt = render_template(
            prompts.FALLBACK_TEMPLATE,
            user_input=ctx.user_text,
            plan_output=plan,
            draft_output=draft,
            review_output=review,
        )
        text, log.fallback_latency_ms = await self._call(ctx, budget, FALLBACK_STEP, prompt, provider=FALLBACK_PROVIDER)
        log.add_tokens(prompt, text)
        if not text.strip():
            return draft
        log.provider = PROVIDER_FALLBACK
        return text


class RewritePipeline(HardcorePipeline):
    policy = POLICY_REWRITE

    async def _refine(self, ctx, budget, plan, draft, result):
        log = result.log
        prompt = render_template(
            prompts.REWRITE_TEMPLATE,
            user_input=ctx.user_text,
            plan_output=plan,
            draft_output=draft,
        )
        text, log.rewrite_latency_ms = await self._call(ctx, budget, REWRITE_STEP, prompt)
        log.add_tokens(prompt, text)
        return text if text.strip() else draft


PIPELINES = {
    POLICY_REVIEW_FALLBACK: ReviewFallbackPipeline,
    POLICY_REWRITE: RewritePipeline,
}


def build_pipeline(policy: str) -> HardcorePipeline:
    try:
        return PIPELINES[policy]()
    except KeyError:
        raise ValueError(f"unknown pipeline policy: {policy}") from None


__all__ = [
    "HardcorePipeline",
    "POLICY_REVIEW_FALLBACK",
    "POLICY_REWRITE",
    "PipelineContext",
    "PipelineResult",
    "ReviewFallbackPipeline",
    "RewritePipeline",
    "build_pipeline",
]
