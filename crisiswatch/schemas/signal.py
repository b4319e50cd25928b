"""SourceSignal — one provider's normalized observation about a country."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import Field, field_validator

from crisiswatch.schemas.common import FrozenModel, RiskLevel, SignalTrend


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SourceSignal(FrozenModel):
    """
    Normalized output of a Source Adapter.

    An unavailable signal always carries riskLevel=UNKNOWN, score=0,
    confidence=0 and no indicators, with `error` naming the reason.
    `observed_at` is always timezone-aware UTC.
    """
    source_id: str
    available: bool
    risk_level: RiskLevel = RiskLevel.UNKNOWN
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    indicators: tuple[str, ...] = ()
    observed_at: datetime = Field(default_factory=utcnow)
    trend: SignalTrend = SignalTrend.STABLE
    error: Optional[str] = None

    @field_validator("observed_at")
    @classmethod
    def _observed_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @classmethod
    def unavailable(
        cls,
        source_id: str,
        reason: str,
        observed_at: Optional[datetime] = None,
    ) -> "SourceSignal":
        return cls(
            source_id=source_id,
            available=False,
            risk_level=RiskLevel.UNKNOWN,
            score=0.0,
            confidence=0.0,
            indicators=(),
            observed_at=observed_at or utcnow(),
            error=reason,
        )
