"""
Model Orchestrator — parallel reasoning calls with graceful degradation.

Every configured model is called concurrently, each under its own timeout.
The join is "all settled": timeouts, transport errors and unparseable
responses only mark that model failed. The highest-priority model that
responded supplies the analysis; when none did, a deterministic fallback of
identical shape is built from the assessment itself.
"""

import asyncio
import hashlib
import time
from dataclasses import dataclass
from typing import Optional

import structlog

from crisiswatch.config import ModelSpec, Settings, validate_model_specs
from crisiswatch.exceptions import ErrorCode, ModelCallError
from crisiswatch.schemas.analysis import (
    AiAnalysis,
    DisplacementLikelihood,
    DisplacementPrediction,
    EarlyWarning,
    EscalationRisk,
    ModelMetadata,
    Recommendations,
    Urgency,
)
from crisiswatch.schemas.assessment import CrisisAssessment
from crisiswatch.schemas.common import RiskLevel, Trend
from crisiswatch.schemas.signal import utcnow
from crisiswatch.services.cache import TTLCache
from crisiswatch.services.llm_gateway import ReasoningGateway
from crisiswatch.services.prompts import SYSTEM_PROMPT, build_analysis_prompt
from crisiswatch.services.response_parser import ModelAnalysisPayload, Parsed, parse_model_response

logger = structlog.get_logger(__name__)

RESPONDED = "responded"
TIMED_OUT = "timed_out"
FAILED = "failed"

RISK_PRIORITY = {
    RiskLevel.CRITICAL: 40,
    RiskLevel.HIGH: 30,
    RiskLevel.MEDIUM: 20,
    RiskLevel.LOW: 10,
    RiskLevel.UNKNOWN: 0,
}
URGENCY_PRIORITY = {
    Urgency.IMMEDIATE: 25,
    Urgency.HIGH: 20,
    Urgency.MEDIUM: 10,
    Urgency.LOW: 5,
}
LIKELIHOOD_PRIORITY = {
    DisplacementLikelihood.VERY_HIGH: 20,
    DisplacementLikelihood.HIGH: 15,
    DisplacementLikelihood.MEDIUM: 10,
    DisplacementLikelihood.LOW: 5,
    DisplacementLikelihood.UNKNOWN: 0,
}

REVIEW_INTERVALS = {
    Urgency.IMMEDIATE: "6 hours",
    Urgency.HIGH: "24 hours",
    Urgency.MEDIUM: "3 days",
    Urgency.LOW: "1 week",
}

LEVEL_LIKELIHOOD = {
    RiskLevel.CRITICAL: DisplacementLikelihood.VERY_HIGH,
    RiskLevel.HIGH: DisplacementLikelihood.HIGH,
    RiskLevel.MEDIUM: DisplacementLikelihood.MEDIUM,
    RiskLevel.LOW: DisplacementLikelihood.LOW,
    RiskLevel.UNKNOWN: DisplacementLikelihood.UNKNOWN,
}
LEVEL_URGENCY = {
    RiskLevel.CRITICAL: (Urgency.IMMEDIATE, "hours"),
    RiskLevel.HIGH: (Urgency.HIGH, "days"),
    RiskLevel.MEDIUM: (Urgency.MEDIUM, "weeks"),
    RiskLevel.LOW: (Urgency.LOW, "months"),
    RiskLevel.UNKNOWN: (Urgency.LOW, "weeks"),
}

FALLBACK_RECOMMENDATIONS = Recommendations(
    immediate=(
        "Continue monitoring all data sources for this country",
        "Verify the situation with field partners before committing resources",
    ),
    short_term=(
        "Restore unavailable data feeds and re-run the assessment",
        "Pre-position contingency stocks proportional to the assessed risk",
    ),
    long_term=(
        "Strengthen local early-warning capacity",
        "Review regional contingency plans with host-country authorities",
    ),
)


@dataclass(frozen=True)
class ModelOutcome:
    """How one model call settled."""
    name: str
    status: str
    latency_ms: int
    payload: Optional[ModelAnalysisPayload] = None
    error: Optional[str] = None
    code: Optional[ErrorCode] = None


# ── Pure helpers ──────────────────────────────────────────────────────────


def analysis_cache_key(assessment: CrisisAssessment) -> str:
    material = "|".join([
        assessment.country.casefold(),
        assessment.overall_risk.value,
        f"{round(assessment.confidence, 2):.2f}",
        assessment.data_quality.value,
    ])
    return "analysis:" + hashlib.sha256(material.encode("utf-8")).hexdigest()


def risk_agreement(system: RiskLevel, model: RiskLevel) -> str:
    """Agreement between the fused verdict and the model's verdict."""
    if RiskLevel.UNKNOWN in (system, model):
        return "UNKNOWN"
    diff = abs(system.rank - model.rank)
    if diff == 0:
        return "PERFECT"
    if diff <= 1:
        return "HIGH"
    if diff <= 2:
        return "MODERATE"
    return "LOW"


def priority_score(
    risk: RiskLevel,
    urgency: Urgency,
    likelihood: DisplacementLikelihood,
    confidence: float,
) -> int:
    score = (
        RISK_PRIORITY[risk]
        + URGENCY_PRIORITY[urgency]
        + LIKELIHOOD_PRIORITY[likelihood]
        + round(confidence * 15)
    )
    return max(0, min(100, score))


def escalation_risk(
    risk: RiskLevel,
    urgency: Urgency,
    trend: Trend,
    timeframe: str,
) -> EscalationRisk:
    """How likely the situation is to worsen before the next review."""
    factors = []
    level = "LOW"
    if risk == RiskLevel.CRITICAL:
        factors.append("Analysis indicates a critical situation")
        level = "HIGH"
    if urgency == Urgency.IMMEDIATE:
        factors.append("Immediate action required")
        level = "HIGH"
    if trend == Trend.DETERIORATING:
        factors.append("Deteriorating trend across multiple indicators")
        if level != "HIGH":
            level = "MEDIUM"
    return EscalationRisk(level=level, factors=tuple(factors), timeframe=timeframe or "unknown")


def build_fallback_analysis(
    assessment: CrisisAssessment,
    outcomes: tuple[ModelOutcome, ...] = (),
    latency_ms: int = 0,
    confidence_factor: float = 0.8,
) -> AiAnalysis:
    """Deterministic analysis from assessment fields alone."""
    risk = assessment.overall_risk
    quality = assessment.data_quality
    estimate = assessment.displacement_estimate
    urgency, time_to_action = LEVEL_URGENCY[risk]
    likelihood = LEVEL_LIKELIHOOD[estimate.level]
    confidence = round(min(assessment.confidence, assessment.confidence * confidence_factor), 4)

    findings = [
        f"Fused risk level {risk.value} (weighted score {assessment.weighted_score})",
        f"Data quality {quality.value}: {assessment.available_sources} of "
        f"{assessment.total_sources} sources available",
    ]
    findings.extend(f.factor for f in assessment.risk_factors[:3])
    if assessment.unavailable_sources:
        findings.append("Unavailable sources: " + ", ".join(assessment.unavailable_sources))

    return AiAnalysis(
        country=assessment.country,
        generated_at=assessment.generated_at,
        risk_assessment=risk,
        confidence=confidence,
        reasoning=(
            f"Automated assessment for {assessment.country}: overall risk is {risk.value} "
            f"with {quality.value} data quality. No reasoning model produced a usable "
            f"response, so this analysis is derived directly from the fused signals."
        ),
        key_findings=tuple(findings),
        displacement_prediction=DisplacementPrediction(
            likelihood=likelihood,
            timeframe_text=estimate.timeline,
            estimated_affected=estimate.estimated_numbers,
            destinations=estimate.likely_destinations,
        ),
        recommendations=FALLBACK_RECOMMENDATIONS,
        early_warning=EarlyWarning(
            urgency=urgency,
            time_to_action=time_to_action,
            immediate_threats=assessment.immediate_threats,
        ),
        model_metadata=ModelMetadata(
            responded_models=(),
            timed_out_models=tuple(o.name for o in outcomes if o.status == TIMED_OUT),
            failed_models=tuple(o.name for o in outcomes if o.status == FAILED),
            latency_ms=latency_ms,
            selected_model=None,
            is_fallback=True,
        ),
        system_risk=risk,
        agreement=risk_agreement(risk, risk),
        priority_score=priority_score(risk, urgency, likelihood, confidence),
        escalation=escalation_risk(risk, urgency, assessment.trend, estimate.timeline),
        review_in=REVIEW_INTERVALS[urgency],
    )


def build_model_analysis(
    assessment: CrisisAssessment,
    selected: ModelOutcome,
    outcomes: tuple[ModelOutcome, ...],
    latency_ms: int,
) -> AiAnalysis:
    payload = selected.payload
    prediction = payload.displacement_prediction
    warning = payload.early_warning
    estimate = assessment.displacement_estimate

    return AiAnalysis(
        country=assessment.country,
        generated_at=utcnow(),
        risk_assessment=payload.risk_assessment,
        confidence=payload.confidence,
        reasoning=payload.reasoning,
        key_findings=tuple(payload.key_findings),
        displacement_prediction=DisplacementPrediction(
            likelihood=prediction.likelihood,
            timeframe_text=prediction.timeframe,
            estimated_affected=prediction.estimated_population or estimate.estimated_numbers,
            destinations=tuple(prediction.likely_destinations) or estimate.likely_destinations,
        ),
        recommendations=Recommendations(
            immediate=tuple(payload.recommendations.immediate),
            short_term=tuple(payload.recommendations.short_term),
            long_term=tuple(payload.recommendations.long_term),
        ),
        early_warning=EarlyWarning(
            urgency=warning.urgency,
            time_to_action=warning.time_to_action,
            immediate_threats=tuple(warning.immediate_threats) or assessment.immediate_threats,
        ),
        model_metadata=ModelMetadata(
            responded_models=tuple(o.name for o in outcomes if o.status == RESPONDED),
            timed_out_models=tuple(o.name for o in outcomes if o.status == TIMED_OUT),
            failed_models=tuple(o.name for o in outcomes if o.status == FAILED),
            latency_ms=latency_ms,
            selected_model=selected.name,
            is_fallback=False,
        ),
        system_risk=assessment.overall_risk,
        agreement=risk_agreement(assessment.overall_risk, payload.risk_assessment),
        priority_score=priority_score(
            payload.risk_assessment, warning.urgency, prediction.likelihood, payload.confidence
        ),
        escalation=escalation_risk(
            payload.risk_assessment, warning.urgency, assessment.trend, prediction.timeframe
        ),
        review_in=REVIEW_INTERVALS[warning.urgency],
    )


# ── Orchestrator ──────────────────────────────────────────────────────────


class ModelOrchestrator:
    """
    Fan-out/fan-in over the configured reasoning models.

    Model order in `model_specs` is the static priority order.
    """

    def __init__(
        self,
        gateway: ReasoningGateway,
        model_specs: list[ModelSpec],
        cache: Optional[TTLCache[AiAnalysis]] = None,
        fallback_confidence_factor: float = 0.8,
    ):
        validate_model_specs(model_specs)
        self.gateway = gateway
        self.model_specs = list(model_specs)
        self.cache: TTLCache[AiAnalysis] = cache or TTLCache("analysis", default_ttl=120)
        self.fallback_confidence_factor = fallback_confidence_factor

    @classmethod
    def from_settings(cls, settings: Settings, gateway: ReasoningGateway) -> "ModelOrchestrator":
        return cls(
            gateway,
            settings.model_specs,
            cache=TTLCache(
                "analysis",
                default_ttl=settings.analysis_ttl_seconds,
                max_entries=settings.cache_max_entries,
            ),
            fallback_confidence_factor=settings.fallback_confidence_factor,
        )

    async def analyze(self, assessment: CrisisAssessment) -> AiAnalysis:
        """
        Analysis for one assessment. Never raises for model failures.

        Successful analyses are cached under the assessment's material
        fields; concurrent identical requests share one orchestration.
        """
        return await self.cache.get_or_compute(
            analysis_cache_key(assessment),
            lambda: self._orchestrate(assessment),
            should_cache=lambda analysis: analysis.successful,
        )

    async def _orchestrate(self, assessment: CrisisAssessment) -> AiAnalysis:
        started = time.perf_counter()
        user_prompt = build_analysis_prompt(assessment)

        settled = await asyncio.gather(
            *(self._call(spec, SYSTEM_PROMPT, user_prompt, assessment.country) for spec in self.model_specs),
            return_exceptions=True,
        )
        outcomes = tuple(
            result if isinstance(result, ModelOutcome)
            else ModelOutcome(spec.name, FAILED, 0, error=repr(result), code=ErrorCode.INTERNAL_ERROR)
            for spec, result in zip(self.model_specs, settled)
        )
        latency_ms = int((time.perf_counter() - started) * 1000)

        selected = next((o for o in outcomes if o.status == RESPONDED), None)
        if selected is None:
            logger.warning(
                "orchestration_fallback",
                country=assessment.country,
                timed_out=[o.name for o in outcomes if o.status == TIMED_OUT],
                failed=[o.name for o in outcomes if o.status == FAILED],
                errors={o.name: o.code.value for o in outcomes if o.code is not None},
                latency_ms=latency_ms,
            )
            return build_fallback_analysis(
                assessment, outcomes, latency_ms, self.fallback_confidence_factor
            )

        analysis = build_model_analysis(assessment, selected, outcomes, latency_ms)
        logger.info(
            "orchestration_complete",
            country=assessment.country,
            selected_model=selected.name,
            responded=list(analysis.model_metadata.responded_models),
            timed_out=list(analysis.model_metadata.timed_out_models),
            failed=list(analysis.model_metadata.failed_models),
            agreement=analysis.agreement,
            latency_ms=latency_ms,
        )
        return analysis

    async def _call(self, spec: ModelSpec, system: str, user: str, country: str) -> ModelOutcome:
        """One model call; every failure mode becomes an outcome."""
        started = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            text = await asyncio.wait_for(
                self.gateway.complete(spec, system, user),
                timeout=spec.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "model_call_timeout",
                model=spec.name,
                country=country,
                timeout=spec.timeout_seconds,
                code=ErrorCode.TIMEOUT_ERROR.value,
            )
            return ModelOutcome(
                spec.name, TIMED_OUT, elapsed(),
                error=f"timed out after {spec.timeout_seconds}s", code=ErrorCode.TIMEOUT_ERROR,
            )
        except ModelCallError as e:
            logger.warning("model_call_failed", model=spec.name, country=country, error=e.message, code=e.code.value)
            return ModelOutcome(spec.name, FAILED, elapsed(), error=e.message, code=e.code)
        except Exception as e:
            logger.error("model_call_error", model=spec.name, country=country, error=str(e), exc_info=True)
            return ModelOutcome(
                spec.name, FAILED, elapsed(), error=f"{type(e).__name__}: {e}", code=ErrorCode.INTERNAL_ERROR
            )

        result = parse_model_response(text)
        if not isinstance(result, Parsed):
            logger.warning(
                "model_response_unparseable",
                model=spec.name,
                country=country,
                reason=result.reason,
                preview=result.raw_text[:200],
                code=ErrorCode.MODEL_RESPONSE_INVALID.value,
            )
            return ModelOutcome(
                spec.name, FAILED, elapsed(), error=result.reason, code=ErrorCode.MODEL_RESPONSE_INVALID
            )

        logger.info("model_call_responded", model=spec.name, country=country, latency_ms=elapsed())
        return ModelOutcome(spec.name, RESPONDED, elapsed(), payload=result.payload)
