"""Immutable records handed between pipeline stages."""

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
from crisiswatch.schemas.assessment import CrisisAssessment, DisplacementEstimate, RiskFactor
from crisiswatch.schemas.common import (
    DataQuality,
    FrozenModel,
    RiskLevel,
    SignalTrend,
    Trend,
    level_from_score,
)
from crisiswatch.schemas.plan import (
    CostComparison,
    FundingStrategy,
    ImplementationRisk,
    PlanActivity,
    PlanPhase,
    PlanPhases,
    ResponsePlan,
)
from crisiswatch.schemas.signal import SourceSignal

__all__ = [
    "AiAnalysis",
    "CostComparison",
    "CrisisAssessment",
    "DataQuality",
    "DisplacementEstimate",
    "DisplacementLikelihood",
    "DisplacementPrediction",
    "EarlyWarning",
    "EscalationRisk",
    "FrozenModel",
    "FundingStrategy",
    "ImplementationRisk",
    "ModelMetadata",
    "PlanActivity",
    "PlanPhase",
    "PlanPhases",
    "Recommendations",
    "ResponsePlan",
    "RiskFactor",
    "RiskLevel",
    "SignalTrend",
    "SourceSignal",
    "Trend",
    "Urgency",
    "level_from_score",
]
