"""
Displacement estimate and trend, derived from available signals only.

Each source family at high severity contributes a primary cause and a rough
people-affected figure; the number of causes sets the urgency level.
"""

from crisiswatch.geo import likely_destinations
from crisiswatch.schemas.assessment import DisplacementEstimate
from crisiswatch.schemas.common import RiskLevel, SignalTrend, Trend
from crisiswatch.schemas.signal import SourceSignal

SEVERE = (RiskLevel.HIGH, RiskLevel.CRITICAL)

CAUSE_CONFLICT = "Armed conflict escalation"
CAUSE_ECONOMIC = "Economic collapse"
CAUSE_CLIMATE = "Climate hazard"
CAUSE_MEDIA = "Media reports of crisis escalation"

# Displaced people per score point, or a flat figure for hazards
CONFLICT_PEOPLE_PER_POINT = 500
ECONOMIC_PEOPLE_PER_POINT = 300
CLIMATE_PEOPLE = 10_000

TIMELINES = {
    RiskLevel.CRITICAL: "1-4 weeks",
    RiskLevel.HIGH: "1-3 months",
    RiskLevel.MEDIUM: "3-6 months",
    RiskLevel.LOW: "6+ months",
}


def estimate_displacement(country: str, available: list[SourceSignal]) -> DisplacementEstimate:
    if not available:
        return DisplacementEstimate(likely_destinations=likely_destinations(country))

    by_source = {s.source_id: s for s in available}
    causes: list[str] = []
    numbers = 0.0

    conflict = by_source.get("conflict")
    if conflict is not None and conflict.risk_level in SEVERE:
        causes.append(CAUSE_CONFLICT)
        numbers += conflict.score * CONFLICT_PEOPLE_PER_POINT

    economic = by_source.get("economic")
    if economic is not None and economic.risk_level in SEVERE:
        causes.append(CAUSE_ECONOMIC)
        numbers += economic.score * ECONOMIC_PEOPLE_PER_POINT

    climate = by_source.get("climate")
    if climate is not None and climate.risk_level in SEVERE:
        causes.append(CAUSE_CLIMATE)
        numbers += CLIMATE_PEOPLE

    news = by_source.get("news")
    if news is not None and news.risk_level == RiskLevel.CRITICAL:
        causes.append(CAUSE_MEDIA)

    if len(causes) >= 3 or CAUSE_CONFLICT in causes:
        level = RiskLevel.CRITICAL
    elif len(causes) == 2:
        level = RiskLevel.HIGH
    elif len(causes) == 1:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW

    return DisplacementEstimate(
        level=level,
        timeline=TIMELINES[level],
        estimated_numbers=int(round(numbers)),
        primary_causes=tuple(causes),
        likely_destinations=likely_destinations(country),
    )


def overall_trend(available: list[SourceSignal]) -> Trend:
    """≥2 rising signals → deteriorating, ≥2 falling → improving."""
    rising = sum(1 for s in available if s.trend == SignalTrend.INCREASING)
    falling = sum(1 for s in available if s.trend == SignalTrend.DECREASING)
    if rising >= 2:
        return Trend.DETERIORATING
    if falling >= 2:
        return Trend.IMPROVING
    return Trend.STABLE
