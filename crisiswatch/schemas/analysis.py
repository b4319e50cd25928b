"""AiAnalysis — the orchestrator's output, successful or fallback."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from crisiswatch.schemas.common import FrozenModel, RiskLevel


class DisplacementLikelihood(str, Enum):
    VERY_HIGH = "VERY_HIGH"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNKNOWN = "UNKNOWN"


class Urgency(str, Enum):
    IMMEDIATE = "immediate"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DisplacementPrediction(FrozenModel):
    likelihood: DisplacementLikelihood = DisplacementLikelihood.UNKNOWN
    timeframe_text: str = "unknown"
    estimated_affected: int = Field(default=0, ge=0)
    destinations: tuple[str, ...] = ()


class Recommendations(FrozenModel):
    immediate: tuple[str, ...] = ()
    short_term: tuple[str, ...] = ()
    long_term: tuple[str, ...] = ()


class EarlyWarning(FrozenModel):
    urgency: Urgency = Urgency.MEDIUM
    time_to_action: str = "days"
    immediate_threats: tuple[str, ...] = ()


class EscalationRisk(FrozenModel):
    """Likelihood the situation worsens before the next review."""
    level: str = "LOW"
    factors: tuple[str, ...] = ()
    timeframe: str = "unknown"


class ModelMetadata(FrozenModel):
    responded_models: tuple[str, ...] = ()
    timed_out_models: tuple[str, ...] = ()
    failed_models: tuple[str, ...] = ()
    latency_ms: int = 0
    selected_model: Optional[str] = None
    is_fallback: bool = False


class AiAnalysis(FrozenModel):
    """
    Synthesized reasoning over one CrisisAssessment.

    `successful` is True iff at least one model responded; otherwise this is
    the deterministic fallback, identical in shape.
    """
    country: str
    generated_at: datetime
    risk_assessment: RiskLevel
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    key_findings: tuple[str, ...] = ()
    displacement_prediction: DisplacementPrediction
    recommendations: Recommendations
    early_warning: EarlyWarning
    model_metadata: ModelMetadata
    system_risk: RiskLevel = RiskLevel.UNKNOWN
    agreement: str = "UNKNOWN"
    priority_score: int = Field(default=0, ge=0, le=100)
    escalation: EscalationRisk = EscalationRisk()
    review_in: str = "1 week"

    @property
    def successful(self) -> bool:
        return len(self.model_metadata.responded_models) > 0
