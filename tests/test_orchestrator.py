"""
Model Orchestrator Tests.

Tests: partial success, priority selection, timeouts, unparseable replies,
deterministic fallback, result caching, agreement and priority scoring.
"""

import asyncio

import pytest
from structlog.testing import capture_logs

from crisiswatch.engine.fusion import RiskFusionEngine
from crisiswatch.exceptions import ConfigurationError, ErrorCode, ModelCallError
from crisiswatch.schemas.analysis import DisplacementLikelihood, Urgency
from crisiswatch.schemas.common import RiskLevel, Trend
from crisiswatch.services.orchestrator import (
    ModelOrchestrator,
    analysis_cache_key,
    build_fallback_analysis,
    escalation_risk,
    priority_score,
    risk_agreement,
)
from factories import MODEL_SPECS, NOW, SOURCES, FakeGateway, make_signal, model_reply, unavailable


def high_assessment(country: str = "Sudan"):
    signals = [make_signal(s, RiskLevel.HIGH, indicators=(f"{s} stress",)) for s in SOURCES]
    return RiskFusionEngine().fuse(country, signals, generated_at=NOW)


def dark_assessment(country: str = "Sudan"):
    return RiskFusionEngine().fuse(country, [unavailable(s) for s in SOURCES], generated_at=NOW)


def orchestrator(behaviors: dict) -> tuple[ModelOrchestrator, FakeGateway]:
    gateway = FakeGateway(behaviors)
    return ModelOrchestrator(gateway, MODEL_SPECS), gateway


@pytest.mark.asyncio
class TestPartialSuccess:
    """One usable reply is enough."""

    async def test_two_timeouts_one_response(self):
        orch, _ = orchestrator({
            "primary": 2.0,
            "secondary": model_reply(risk="CRITICAL", reasoning="Famine conditions spreading."),
            "tertiary": 2.0,
        })
        analysis = await orch.analyze(high_assessment())

        meta = analysis.model_metadata
        assert analysis.successful
        assert meta.responded_models == ("secondary",)
        assert meta.timed_out_models == ("primary", "tertiary")
        assert meta.failed_models == ()
        assert meta.selected_model == "secondary"
        assert not meta.is_fallback
        assert analysis.risk_assessment == RiskLevel.CRITICAL
        assert analysis.reasoning == "Famine conditions spreading."
        assert analysis.displacement_prediction.estimated_affected == 250_000
        assert analysis.displacement_prediction.destinations == ("Chad", "Egypt")
        assert analysis.recommendations.immediate == ("Open humanitarian corridors",)
        assert analysis.review_in == "24 hours"
        assert analysis.escalation.level == "HIGH"
        assert analysis.escalation.timeframe == "2-8 weeks"

    async def test_total_latency_bounded_by_slowest_timeout(self):
        orch, _ = orchestrator({"primary": 5.0, "secondary": 5.0, "tertiary": 5.0})
        analysis = await asyncio.wait_for(orch.analyze(high_assessment()), timeout=2.0)
        assert analysis.model_metadata.is_fallback
        assert analysis.model_metadata.latency_ms < 2000

    async def test_priority_order_selects_primary(self):
        orch, _ = orchestrator({
            "primary": model_reply(risk="MEDIUM"),
            "secondary": model_reply(risk="CRITICAL"),
            "tertiary": model_reply(risk="LOW"),
        })
        analysis = await orch.analyze(high_assessment())
        assert analysis.model_metadata.selected_model == "primary"
        assert analysis.model_metadata.responded_models == ("primary", "secondary", "tertiary")
        assert analysis.risk_assessment == RiskLevel.MEDIUM

    async def test_unparseable_and_errors_count_as_failed(self):
        orch, _ = orchestrator({
            "primary": "I'm sorry, I cannot help with that.",
            "secondary": RuntimeError("socket closed"),
            "tertiary": model_reply(fenced=False),
        })
        analysis = await orch.analyze(high_assessment())
        assert analysis.model_metadata.failed_models == ("primary", "secondary")
        assert analysis.model_metadata.selected_model == "tertiary"

    async def test_failure_codes_logged_on_fallback(self):
        orch, _ = orchestrator({
            "primary": "no json here",
            "secondary": ModelCallError("secondary", "HTTP 503"),
            "tertiary": 2.0,
        })
        with capture_logs() as logs:
            await orch.analyze(high_assessment())
        fallback = next(e for e in logs if e["event"] == "orchestration_fallback")
        assert fallback["errors"] == {
            "primary": ErrorCode.MODEL_RESPONSE_INVALID.value,
            "secondary": ErrorCode.MODEL_CALL_FAILED.value,
            "tertiary": ErrorCode.TIMEOUT_ERROR.value,
        }

    async def test_empty_model_fields_filled_from_assessment(self):
        reply = (
            '{"aiRiskAssessment": "HIGH", "confidence": 0.7, "reasoning": "Tense.", '
            '"displacementPrediction": {"likelihood": "HIGH"}}'
        )
        orch, _ = orchestrator({"primary": reply})
        assessment = high_assessment()
        analysis = await orch.analyze(assessment)
        assert analysis.displacement_prediction.destinations == assessment.displacement_estimate.likely_destinations
        assert analysis.early_warning.immediate_threats == assessment.immediate_threats


class TestFallback:
    """No model responded → deterministic analysis of identical shape."""

    @pytest.mark.asyncio
    async def test_all_models_fail(self):
        failure = ModelCallError("any", "HTTP 503")
        orch, _ = orchestrator({"primary": failure, "secondary": failure, "tertiary": failure})
        assessment = high_assessment()
        analysis = await orch.analyze(assessment)

        meta = analysis.model_metadata
        assert not analysis.successful
        assert meta.is_fallback
        assert meta.responded_models == ()
        assert meta.failed_models == ("primary", "secondary", "tertiary")
        assert meta.selected_model is None
        assert analysis.risk_assessment == assessment.overall_risk
        assert analysis.confidence <= assessment.confidence
        assert analysis.confidence == pytest.approx(assessment.confidence * 0.8, abs=1e-4)
        assert analysis.generated_at == assessment.generated_at
        assert analysis.agreement == "PERFECT"
        assert analysis.review_in == "24 hours"
        assert analysis.escalation.level == "LOW"
        assert analysis.escalation.factors == ()

    def test_fallback_is_deterministic(self):
        assessment = high_assessment()
        assert build_fallback_analysis(assessment) == build_fallback_analysis(assessment)

    def test_fallback_over_zero_availability(self):
        assessment = dark_assessment()
        analysis = build_fallback_analysis(assessment)
        assert analysis.risk_assessment == RiskLevel.UNKNOWN
        assert analysis.confidence == 0.0
        assert analysis.early_warning.urgency == Urgency.LOW
        assert analysis.displacement_prediction.likelihood == DisplacementLikelihood.UNKNOWN
        assert analysis.agreement == "UNKNOWN"
        assert any("Unavailable sources" in f for f in analysis.key_findings)

    def test_fallback_confidence_never_exceeds_assessment(self):
        assessment = high_assessment()
        analysis = build_fallback_analysis(assessment, confidence_factor=1.5)
        assert analysis.confidence == pytest.approx(assessment.confidence)


class TestCaching:

    @pytest.mark.asyncio
    async def test_successful_analysis_cached(self):
        orch, gateway = orchestrator({"primary": model_reply(), "secondary": model_reply(), "tertiary": model_reply()})
        first = await orch.analyze(high_assessment())
        second = await orch.analyze(high_assessment())
        assert first is second
        assert len(gateway.calls) == 3

    @pytest.mark.asyncio
    async def test_fallback_not_cached(self):
        orch, gateway = orchestrator({})
        await orch.analyze(high_assessment())
        await orch.analyze(high_assessment())
        assert len(gateway.calls) == 6

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_orchestration(self):
        orch, gateway = orchestrator({"primary": 0.05, "secondary": 0.05, "tertiary": 0.05})
        results = await asyncio.gather(*(orch.analyze(high_assessment()) for _ in range(10)))
        assert len(gateway.calls) == 3
        assert all(r is results[0] for r in results)

    def test_cache_key_uses_material_fields(self):
        assert analysis_cache_key(high_assessment("Sudan")) == analysis_cache_key(high_assessment("sudan"))
        assert analysis_cache_key(high_assessment()) != analysis_cache_key(dark_assessment())


class TestScoring:

    @pytest.mark.parametrize("system,model,expected", [
        (RiskLevel.HIGH, RiskLevel.HIGH, "PERFECT"),
        (RiskLevel.HIGH, RiskLevel.CRITICAL, "HIGH"),
        (RiskLevel.LOW, RiskLevel.HIGH, "MODERATE"),
        (RiskLevel.LOW, RiskLevel.CRITICAL, "LOW"),
        (RiskLevel.UNKNOWN, RiskLevel.HIGH, "UNKNOWN"),
    ])
    def test_risk_agreement(self, system, model, expected):
        assert risk_agreement(system, model) == expected

    def test_priority_score(self):
        score = priority_score(RiskLevel.HIGH, Urgency.HIGH, DisplacementLikelihood.HIGH, 0.82)
        assert score == 30 + 20 + 15 + 12

    def test_priority_score_capped(self):
        score = priority_score(RiskLevel.CRITICAL, Urgency.IMMEDIATE, DisplacementLikelihood.VERY_HIGH, 1.0)
        assert score == 100

    @pytest.mark.parametrize("risk,urgency,trend,level", [
        (RiskLevel.CRITICAL, Urgency.HIGH, Trend.STABLE, "HIGH"),
        (RiskLevel.HIGH, Urgency.IMMEDIATE, Trend.STABLE, "HIGH"),
        (RiskLevel.HIGH, Urgency.HIGH, Trend.DETERIORATING, "MEDIUM"),
        (RiskLevel.CRITICAL, Urgency.IMMEDIATE, Trend.DETERIORATING, "HIGH"),
        (RiskLevel.MEDIUM, Urgency.MEDIUM, Trend.IMPROVING, "LOW"),
    ])
    def test_escalation_risk(self, risk, urgency, trend, level):
        assert escalation_risk(risk, urgency, trend, "2-8 weeks").level == level

    def test_escalation_factors_listed(self):
        escalation = escalation_risk(RiskLevel.CRITICAL, Urgency.IMMEDIATE, Trend.DETERIORATING, "")
        assert len(escalation.factors) == 3
        assert escalation.timeframe == "unknown"


class TestConfiguration:

    def test_empty_roster_rejected(self):
        with pytest.raises(ConfigurationError):
            ModelOrchestrator(FakeGateway({}), [])
