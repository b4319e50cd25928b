"""
Risk Fusion Engine.

Combines per-source signals into one CrisisAssessment using:
- Explicit per-source weights (must sum to 1.0, validated at construction)
- Confidence discounting of every contribution
- Two ceilings on the banded verdict so no single outlier dominates

Pure and synchronous: the same multiset of signals always yields the same
assessment, whatever order the signals arrive in.
"""

import math
from datetime import datetime
from typing import Iterable, Optional

import structlog

from crisiswatch.config import Settings, validate_weights
from crisiswatch.engine.displacement import estimate_displacement, overall_trend
from crisiswatch.geo import canonical_name
from crisiswatch.schemas.assessment import CrisisAssessment, DisplacementEstimate, RiskFactor
from crisiswatch.schemas.common import (
    BAND_CRITICAL,
    BAND_HIGH,
    BAND_MEDIUM,
    DataQuality,
    RiskLevel,
    SignalTrend,
    Trend,
    level_from_score,
)
from crisiswatch.schemas.signal import SourceSignal, utcnow

logger = structlog.get_logger(__name__)


# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_WEIGHTS: dict[str, float] = {
    "conflict": 0.35,
    "economic": 0.20,
    "climate": 0.20,
    "news": 0.25,
}
DEFAULT_MIN_CONTRIBUTION_SHARE = 0.10


def data_quality_for(available: int, total: int) -> DataQuality:
    if total <= 0 or available <= 0:
        return DataQuality.POOR
    ratio = available / total
    if available >= total:
        return DataQuality.EXCELLENT
    if ratio >= 0.75:
        return DataQuality.GOOD
    if ratio >= 0.5:
        return DataQuality.FAIR
    return DataQuality.POOR


def lower_median_rank(levels: Iterable[RiskLevel]) -> Optional[int]:
    """Median rank of known levels; the lower middle for even counts."""
    ranks = sorted(level.rank for level in levels if level != RiskLevel.UNKNOWN)
    if not ranks:
        return None
    return ranks[(len(ranks) - 1) // 2]


def _preference(s: SourceSignal) -> tuple:
    # Newest, then most confident, then highest score; the rest only breaks exact ties
    return (
        s.observed_at,
        s.confidence,
        s.score,
        s.available,
        s.risk_level.rank,
        s.indicators,
        s.trend.value,
        s.error or "",
    )


def _preferred(a: SourceSignal, b: SourceSignal) -> SourceSignal:
    """Of two signals for the same source, the one fusion keeps."""
    return a if _preference(a) >= _preference(b) else b


class RiskFusionEngine:
    """
    Weighted, confidence-discounted fusion of source signals.

    Formula:
      weighted = Σ(s_i × c_i × w_i) / Σ(c_i × w_i)     over available signals

    Verdict = band(weighted), clamped to
      - at most one level above the median available level, and
      - at most the highest level among sources holding at least
        `min_contribution_share` of Σ(c_i × w_i).
    """

    def __init__(
        self,
        weights: Optional[dict[str, float]] = None,
        min_contribution_share: float = DEFAULT_MIN_CONTRIBUTION_SHARE,
        bands: tuple[float, float, float] = (BAND_CRITICAL, BAND_HIGH, BAND_MEDIUM),
    ):
        self.weights = dict(DEFAULT_WEIGHTS if weights is None else weights)
        validate_weights(self.weights)
        self.min_contribution_share = min_contribution_share
        self.bands = bands

    @classmethod
    def from_settings(cls, settings: Settings) -> "RiskFusionEngine":
        return cls(
            weights=settings.source_weights,
            min_contribution_share=settings.min_contribution_share,
            bands=(settings.band_critical, settings.band_high, settings.band_medium),
        )

    @property
    def source_ids(self) -> list[str]:
        return sorted(self.weights)

    def fuse(
        self,
        country: str,
        signals: Iterable[SourceSignal],
        generated_at: Optional[datetime] = None,
    ) -> CrisisAssessment:
        """
        Fuse signals for one country into a CrisisAssessment. Never raises.

        `generated_at` defaults to the newest signal's `observed_at` so the
        output depends on the inputs alone.
        """
        signals = list(signals)
        if generated_at is None:
            generated_at = max((s.observed_at for s in signals), default=None) or utcnow()
        per_source = self._select(country, signals, generated_at)
        available = [per_source[sid] for sid in self.source_ids if per_source[sid].available]
        total = len(self.weights)

        # Weighted score over available signals
        conf_weight = {s.source_id: s.confidence * self.weights[s.source_id] for s in available}
        denominator = math.fsum(conf_weight.values())
        if available and denominator > 0:
            weighted_score = math.fsum(
                s.score * conf_weight[s.source_id] for s in available
            ) / denominator
            overall = self._clamp(
                level_from_score(weighted_score, *self.bands),
                available,
                conf_weight,
                denominator,
            )
        else:
            weighted_score = 0.0
            overall = RiskLevel.UNKNOWN

        confidence = math.fsum(s.confidence for s in available) / total if total else 0.0
        quality = data_quality_for(len(available), total)

        if available:
            displacement = estimate_displacement(country, available)
            trend = overall_trend(available)
        else:
            displacement = DisplacementEstimate()
            trend = Trend.STABLE

        assessment = CrisisAssessment(
            country=canonical_name(country),
            generated_at=generated_at,
            overall_risk=overall,
            confidence=round(min(1.0, confidence), 4),
            data_quality=quality,
            per_source=per_source,
            displacement_estimate=displacement,
            trend=trend,
            weighted_score=round(weighted_score, 2),
            available_sources=len(available),
            total_sources=total,
            risk_factors=self._risk_factors(available),
            protective_factors=tuple(
                f"Stable {s.source_id} indicators"
                for s in available if s.risk_level == RiskLevel.LOW
            ),
            immediate_threats=tuple(
                ind for s in available if s.risk_level == RiskLevel.CRITICAL
                for ind in s.indicators
            ),
            emerging_concerns=tuple(
                ind for s in available
                if s.trend == SignalTrend.INCREASING and s.risk_level != RiskLevel.CRITICAL
                for ind in s.indicators
            ),
        )

        logger.info(
            "fusion_complete",
            country=assessment.country,
            overall_risk=overall.value,
            weighted_score=assessment.weighted_score,
            confidence=assessment.confidence,
            data_quality=quality.value,
            available=len(available),
            total=total,
        )
        return assessment

    # ── internals ────────────────────────────────────────────────────────

    def _select(
        self,
        country: str,
        signals: list[SourceSignal],
        generated_at: datetime,
    ) -> dict[str, SourceSignal]:
        """One signal per configured source; placeholders for missing ones."""
        chosen: dict[str, SourceSignal] = {}
        for sig in signals:
            if sig.source_id not in self.weights:
                logger.warning("fusion_unknown_source", country=country, source=sig.source_id)
                continue
            current = chosen.get(sig.source_id)
            chosen[sig.source_id] = sig if current is None else _preferred(current, sig)

        for sid in self.source_ids:
            if sid not in chosen:
                chosen[sid] = SourceSignal.unavailable(sid, "no signal received", observed_at=generated_at)
        return {sid: chosen[sid] for sid in self.source_ids}

    def _clamp(
        self,
        banded: RiskLevel,
        available: list[SourceSignal],
        conf_weight: dict[str, float],
        denominator: float,
    ) -> RiskLevel:
        rank = banded.rank

        median = lower_median_rank(s.risk_level for s in available)
        if median is not None:
            rank = min(rank, median + 1)

        qualifying = [
            s.risk_level.rank
            for s in available
            if conf_weight[s.source_id] / denominator >= self.min_contribution_share
            and s.risk_level != RiskLevel.UNKNOWN
        ]
        if qualifying:
            rank = min(rank, max(qualifying))

        return RiskLevel.from_rank(rank)

    def _risk_factors(self, available: list[SourceSignal]) -> tuple[RiskFactor, ...]:
        factors = []
        for s in available:
            if s.risk_level not in (RiskLevel.HIGH, RiskLevel.CRITICAL):
                continue
            if not s.indicators:
                factors.append(RiskFactor(source=s.source_id, factor=f"Elevated {s.source_id} risk", severity=s.risk_level))
            for ind in s.indicators:
                factors.append(RiskFactor(source=s.source_id, factor=ind, severity=s.risk_level))
        return tuple(factors)
