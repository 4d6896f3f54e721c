import asyncio
import json

import pytest

from backend.deepsea.config.settings import Settings
from backend.deepsea.errors import TIMEOUT_MESSAGE
from backend.deepsea.modes.profiles import build_mode_table
from backend.deepsea.pipeline.engine import (
    PipelineContext,
    ReviewFallbackPipeline,
    RewritePipeline,
    build_pipeline,
)
from backend.deepsea.pipeline.steps import DRAFT_STEP, FALLBACK_STEP, PLAN_STEP, REVIEW_STEP, REWRITE_STEP
from backend.deepsea.pipeline.telemetry import PROVIDER_FALLBACK, PROVIDER_PRIMARY
from backend.deepsea.providers.base import ProviderName
from backend.deepsea.providers.errors import ProviderTimeoutError, ProviderUpstreamError
from backend.tests._fake_upstream import FakeClock, RecordingSink, ScriptedClient

PLAN_JSON = json.dumps(
    {
        "task_type": "analysis",
        "complexity_level": "high",
        "required_elements": ["trade-offs"],
        "answer_outline": ["Conclusion", "Analysis"],
        "risk_areas": [],
        "missing_information": [],
    }
)
GOOD_REVIEW = json.dumps({"confidence_score": 0.9, "factual_reliability_score": 0.9, "risk_flags": []})
BAD_REVIEW = json.dumps({"confidence_score": 0.3, "needs_fallback": True, "fallback_reason": "numbers"})

HISTORY = [{"role": "user", "content": "마이크로서비스 아키텍처 전략을 분석해줘"}]


def _ctx(client, clock, sink=None, deadline_ms=8000, budget_ms=9500, model=None):
    return PipelineContext(
        client=client,
        table=build_mode_table(Settings()),
        history=HISTORY,
        user_text=HISTORY[-1]["content"],
        deadline_ms=deadline_ms,
        request_budget_ms=budget_ms,
        model=model,
        request_id="req-1",
        now_ms=clock,
        sink=sink,
    )


def test_review_passes_and_draft_is_delivered():
    clock = FakeClock()
    client = ScriptedClient([(PLAN_JSON, 500), ("the draft", 2000), (GOOD_REVIEW, 500)], clock=clock)
    sink = RecordingSink()

    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock, sink)))

    assert result.ok
    assert result.text == "the draft"
    assert [c["max_tokens"] for c in client.calls] == [PLAN_STEP.max_tokens, DRAFT_STEP.max_tokens, REVIEW_STEP.max_tokens]
    assert all(c["provider"] is ProviderName.DEEPSEEK for c in client.calls)
    log = sink.records[0]
    assert log.plan_latency_ms == 500
    assert log.draft_latency_ms == 2000
    assert log.review_latency_ms == 500
    assert log.total_latency_ms == 3000
    assert log.confidence_score == 0.9
    assert log.fallback_triggered is False
    assert log.provider == PROVIDER_PRIMARY
    assert log.total_tokens_approx > 0


def test_draft_prompt_carries_the_plan():
    clock = FakeClock()
    client = ScriptedClient([PLAN_JSON, "the draft", GOOD_REVIEW], clock=clock)
    asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock)))
    draft_prompt = client.calls[1]["messages"][-1]["content"]
    assert '"required_elements"' in draft_prompt
    assert "trade-offs" in draft_prompt
    review_prompt = client.calls[2]["messages"][-1]["content"]
    assert "the draft" in review_prompt


def test_fallback_replaces_draft_with_secondary_provider_answer():
    clock = FakeClock()
    client = ScriptedClient([PLAN_JSON, "the draft", BAD_REVIEW, ("verified answer", 1500)], clock=clock)
    sink = RecordingSink()

    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock, sink, model="deepseek-reasoner")))

    assert result.text == "verified answer"
    fallback_call = client.calls[3]
    assert fallback_call["provider"] is ProviderName.OPENAI
    assert fallback_call["model"] is None
    assert fallback_call["max_tokens"] == FALLBACK_STEP.max_tokens
    assert client.calls[0]["model"] == "deepseek-reasoner"
    assert "numbers" in fallback_call["messages"][-1]["content"]
    log = sink.records[0]
    assert log.fallback_triggered is True
    assert log.provider == PROVIDER_FALLBACK
    assert log.fallback_latency_ms == 1500
    assert "review_requested" in log.fallback_reasons
    assert "low_confidence" in log.fallback_reasons


def test_deadline_exceeded_after_draft_skips_review():
    clock = FakeClock()
    client = ScriptedClient([(PLAN_JSON, 1000), ("slow but complete draft", 7500)], clock=clock)
    sink = RecordingSink()

    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock, sink, deadline_ms=8000)))

    assert result.text == "slow but complete draft"
    assert len(client.calls) == 2
    assert sink.records[0].deadline_exceeded is True
    assert sink.records[0].review_latency_ms is None


def test_deadline_exactly_met_still_reviews():
    clock = FakeClock()
    client = ScriptedClient([(PLAN_JSON, 1000), ("draft", 7000), GOOD_REVIEW], clock=clock)
    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock, deadline_ms=8000)))
    assert len(client.calls) == 3
    assert result.text == "draft"


@pytest.mark.parametrize("pipeline_cls", [ReviewFallbackPipeline, RewritePipeline])
def test_deadline_applies_to_every_policy(pipeline_cls):
    clock = FakeClock()
    client = ScriptedClient([(PLAN_JSON, 4000), ("draft text", 4001)], clock=clock)
    result = asyncio.run(pipeline_cls().run(_ctx(client, clock, deadline_ms=8000)))
    assert result.text == "draft text"
    assert len(client.calls) == 2


def test_unparseable_plan_uses_fallback_plan():
    clock = FakeClock()
    client = ScriptedClient(["I think we should first look at...", "a real answer", GOOD_REVIEW], clock=clock)
    sink = RecordingSink()

    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock, sink)))

    assert result.ok
    assert result.text == "a real answer"
    assert result.plan.is_fallback is True
    assert sink.records[0].plan_fallback_used is True
    assert "Direct answer to the user's question" in client.calls[1]["messages"][-1]["content"]


def test_unparseable_review_keeps_draft():
    clock = FakeClock()
    client = ScriptedClient([PLAN_JSON, "draft", "looks good to me"], clock=clock)
    sink = RecordingSink()
    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock, sink)))
    assert result.text == "draft"
    assert len(client.calls) == 3
    assert sink.records[0].review_fallback_used is True


def test_timeout_before_draft_becomes_error_delivery():
    clock = FakeClock()
    client = ScriptedClient([PLAN_JSON, ProviderTimeoutError("slow", provider="deepseek")], clock=clock)
    sink = RecordingSink()

    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock, sink)))

    assert result.error_kind == "upstream_timeout"
    assert result.text == TIMEOUT_MESSAGE
    assert sink.records[0].error == "upstream_timeout"


def test_upstream_error_in_plan_becomes_error_delivery():
    clock = FakeClock()
    client = ScriptedClient([ProviderUpstreamError("boom", provider="deepseek", status_code=502)], clock=clock)
    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock)))
    assert result.error_kind == "upstream_error"
    assert result.text
    assert len(client.calls) == 1


def test_empty_draft_is_an_error():
    clock = FakeClock()
    client = ScriptedClient([PLAN_JSON, "   "], clock=clock)
    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock)))
    assert result.error_kind == "upstream_error"


def test_failure_after_draft_delivers_draft():
    clock = FakeClock()
    client = ScriptedClient(
        [PLAN_JSON, "draft", BAD_REVIEW, ProviderTimeoutError("slow", provider="openai")],
        clock=clock,
    )
    sink = RecordingSink()
    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock, sink)))
    assert result.ok
    assert result.text == "draft"
    assert sink.records[0].error == "upstream_timeout"
    assert sink.records[0].provider == PROVIDER_PRIMARY


def test_review_failure_delivers_draft():
    clock = FakeClock()
    client = ScriptedClient([PLAN_JSON, "draft", ProviderUpstreamError("bad", provider="deepseek")], clock=clock)
    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock)))
    assert result.text == "draft"


def test_rewrite_policy_replaces_draft():
    clock = FakeClock()
    client = ScriptedClient([PLAN_JSON, "draft", ("polished", 800)], clock=clock)
    sink = RecordingSink()
    result = asyncio.run(RewritePipeline().run(_ctx(client, clock, sink)))
    assert result.text == "polished"
    assert client.calls[2]["max_tokens"] == REWRITE_STEP.max_tokens
    assert client.calls[2]["provider"] is ProviderName.DEEPSEEK
    assert "draft" in client.calls[2]["messages"][-1]["content"]
    assert sink.records[0].rewrite_latency_ms == 800
    assert sink.records[0].policy == "rewrite"


def test_step_timeouts_are_clamped_to_remaining_budget():
    clock = FakeClock()
    client = ScriptedClient([(PLAN_JSON, 1000), ("draft", 7500), GOOD_REVIEW], clock=clock)
    asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock, deadline_ms=9000, budget_ms=9500)))
    assert client.calls[0]["timeout_ms"] == PLAN_STEP.timeout_ms
    assert client.calls[1]["timeout_ms"] == DRAFT_STEP.timeout_ms
    assert client.calls[2]["timeout_ms"] == 1000


def test_cancellation_propagates():
    clock = FakeClock()
    client = ScriptedClient([PLAN_JSON, asyncio.CancelledError()], clock=clock)
    with pytest.raises(asyncio.CancelledError):
        asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock)))


def test_broken_sink_does_not_break_delivery():
    class BrokenSink:
        def record(self, log):
            raise RuntimeError("sink down")

    clock = FakeClock()
    client = ScriptedClient([PLAN_JSON, "draft", GOOD_REVIEW], clock=clock)
    result = asyncio.run(ReviewFallbackPipeline().run(_ctx(client, clock, BrokenSink())))
    assert result.text == "draft"


def test_build_pipeline():
    assert isinstance(build_pipeline("review_fallback"), ReviewFallbackPipeline)
    assert isinstance(build_pipeline("rewrite"), RewritePipeline)
    with pytest.raises(ValueError):
        build_pipeline("gpt_only")
