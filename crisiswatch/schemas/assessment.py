"""CrisisAssessment — the fused per-country verdict."""

from datetime import datetime
from types import MappingProxyType
from typing import Mapping

from pydantic import Field, field_serializer, field_validator

from crisiswatch.schemas.common import DataQuality, FrozenModel, RiskLevel, Trend
from crisiswatch.schemas.signal import SourceSignal


class RiskFactor(FrozenModel):
    source: str
    factor: str
    severity: RiskLevel


class DisplacementEstimate(FrozenModel):
    level: RiskLevel = RiskLevel.UNKNOWN
    timeline: str = "unknown"
    estimated_numbers: int = 0
    primary_causes: tuple[str, ...] = ()
    likely_destinations: tuple[str, ...] = ()


class CrisisAssessment(FrozenModel):
    """
    Output of one fusion cycle for one country.

    Superseded (never mutated) by the next cycle for the same country.
    `per_source` is a read-only mapping.
    """
    country: str
    generated_at: datetime
    overall_risk: RiskLevel
    confidence: float = Field(ge=0.0, le=1.0)
    data_quality: DataQuality
    per_source: Mapping[str, SourceSignal]
    displacement_estimate: DisplacementEstimate
    trend: Trend = Trend.STABLE
    weighted_score: float = 0.0
    available_sources: int = 0
    total_sources: int = 0
    risk_factors: tuple[RiskFactor, ...] = ()
    protective_factors: tuple[str, ...] = ()
    immediate_threats: tuple[str, ...] = ()
    emerging_concerns: tuple[str, ...] = ()

    @field_validator("per_source")
    @classmethod
    def _freeze_per_source(cls, value: Mapping[str, SourceSignal]) -> Mapping[str, SourceSignal]:
        return MappingProxyType(dict(value))

    @field_serializer("per_source", mode="wrap")
    def _dump_per_source(self, value, handler):
        return handler(dict(value))

    @property
    def unavailable_sources(self) -> list[str]:
        return [sid for sid, sig in self.per_source.items() if not sig.available]
