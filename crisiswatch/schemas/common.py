"""Shared enums and the immutable base model for all hand-off records."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FrozenModel(BaseModel):
    """Immutable record; serializes to camelCase with `model_dump(by_alias=True)`."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    UNKNOWN = "UNKNOWN"

    @property
    def rank(self) -> int:
        """Ordinal for comparisons; UNKNOWN ranks below LOW."""
        return _RISK_RANK[self]

    @classmethod
    def from_rank(cls, rank: int) -> "RiskLevel":
        rank = max(1, min(4, rank))
        return _RANK_RISK[rank]


_RISK_RANK = {
    RiskLevel.UNKNOWN: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
}
_RANK_RISK = {v: k for k, v in _RISK_RANK.items() if v > 0}


class DataQuality(str, Enum):
    POOR = "POOR"
    FAIR = "FAIR"
    GOOD = "GOOD"
    EXCELLENT = "EXCELLENT"


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DETERIORATING = "deteriorating"


class SignalTrend(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


# Severity bands shared by fusion and adapters
BAND_CRITICAL = 75.0
BAND_HIGH = 50.0
BAND_MEDIUM = 25.0


def level_from_score(
    score: float,
    critical: float = BAND_CRITICAL,
    high: float = BAND_HIGH,
    medium: float = BAND_MEDIUM,
) -> RiskLevel:
    """Map a 0-100 score to a risk level via fixed bands."""
    if score >= critical:
        return RiskLevel.CRITICAL
    if score >= high:
        return RiskLevel.HIGH
    if score >= medium:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW
