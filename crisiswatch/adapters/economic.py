"""
Economic adapter — World Bank indicators API.

Five annual indicators are fetched concurrently; whichever have data are
turned into stress points and averaged into a 0-100 score.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from crisiswatch.adapters.base import FetchOptions, SourceAdapter
from crisiswatch.exceptions import MalformedPayloadError, ProviderError
from crisiswatch.geo import resolve_country
from crisiswatch.schemas.common import RiskLevel, SignalTrend, level_from_score
from crisiswatch.schemas.signal import SourceSignal

logger = structlog.get_logger(__name__)

INDICATORS = {
    "inflation": "FP.CPI.TOTL.ZG",
    "unemployment": "SL.UEM.TOTL.ZS",
    "poverty": "SI.POV.DDAY",
    "gdp_per_capita": "NY.GDP.PCAP.CD",
    "undernourishment": "SN.ITK.DEFC.ZS",
}

LEVEL_CONFIDENCE = {
    RiskLevel.CRITICAL: 0.9,
    RiskLevel.HIGH: 0.85,
    RiskLevel.MEDIUM: 0.75,
    RiskLevel.LOW: 0.6,
}


@dataclass(frozen=True)
class IndicatorReading:
    latest: float
    previous: Optional[float] = None

    @property
    def rising(self) -> bool:
        return self.previous is not None and self.latest > self.previous

    @property
    def falling(self) -> bool:
        return self.previous is not None and self.latest < self.previous


def parse_indicator(body) -> Optional[IndicatorReading]:
    """
    Read the newest two non-null values from a World Bank response.

    Shape: [meta, [{"date": "2023", "value": 12.3}, ...]]; the second element
    is null when the country has no data for the window.
    """
    if not isinstance(body, list) or len(body) < 1:
        raise MalformedPayloadError("worldbank", "expected [meta, rows]")
    if isinstance(body[0], dict) and "message" in body[0]:
        raise MalformedPayloadError("worldbank", "indicator query rejected", details={"message": body[0]["message"]})
    rows = body[1] if len(body) > 1 else None
    if not rows:
        return None
    values = [
        (str(row.get("date")), float(row["value"]))
        for row in rows
        if isinstance(row, dict) and row.get("value") is not None
    ]
    if not values:
        return None
    values.sort(key=lambda dv: dv[0], reverse=True)
    return IndicatorReading(
        latest=values[0][1],
        previous=values[1][1] if len(values) > 1 else None,
    )


def stress_points(readings: dict[str, IndicatorReading]) -> tuple[int, list[str]]:
    """Threshold table: indicator value → stress points and indicator text."""
    points = 0
    notes: list[str] = []

    inflation = readings.get("inflation")
    if inflation is not None:
        if inflation.latest > 100:
            points += 40
            notes.append(f"Hyperinflation ({inflation.latest:.1f}%)")
        elif inflation.latest > 50:
            points += 25
            notes.append(f"Very high inflation ({inflation.latest:.1f}%)")
        elif inflation.latest > 20:
            points += 15
            notes.append(f"High inflation ({inflation.latest:.1f}%)")

    unemployment = readings.get("unemployment")
    if unemployment is not None:
        if unemployment.latest > 40:
            points += 35
            notes.append(f"Mass unemployment ({unemployment.latest:.1f}%)")
        elif unemployment.latest > 25:
            points += 20
            notes.append(f"High unemployment ({unemployment.latest:.1f}%)")

    poverty = readings.get("poverty")
    if poverty is not None:
        if poverty.latest > 70:
            points += 30
            notes.append(f"Extreme poverty ({poverty.latest:.1f}% below $2.15/day)")
        elif poverty.latest > 50:
            points += 20
            notes.append(f"Widespread poverty ({poverty.latest:.1f}% below $2.15/day)")

    gdp = readings.get("gdp_per_capita")
    if gdp is not None:
        if gdp.latest < 500:
            points += 35
            notes.append(f"Very low GDP per capita (${gdp.latest:,.0f})")
        elif gdp.latest < 1000:
            points += 20
            notes.append(f"Low GDP per capita (${gdp.latest:,.0f})")

    food = readings.get("undernourishment")
    if food is not None and food.latest > 20:
        points += 25
        notes.append(f"Food insecurity ({food.latest:.1f}% undernourished)")

    return points, notes


def is_worsening(readings: dict[str, IndicatorReading]) -> bool:
    for name in ("inflation", "unemployment", "poverty"):
        reading = readings.get(name)
        if reading is not None and reading.rising:
            return True
    gdp = readings.get("gdp_per_capita")
    return gdp is not None and gdp.falling


class EconomicAdapter(SourceAdapter):
    source_id = "economic"

    async def _collect(self, country: str, options: FetchOptions) -> SourceSignal:
        info = resolve_country(country)
        if info is None:
            raise ProviderError("worldbank", f"no ISO3 code known for '{country}'")

        end_year = options.reference_time().year
        start_year = end_year - self.settings.economic_lookback_years
        names = list(INDICATORS)
        results = await asyncio.gather(
            *(self._indicator(info.iso3, INDICATORS[n], start_year, end_year) for n in names),
            return_exceptions=True,
        )

        readings: dict[str, IndicatorReading] = {}
        errors: list[str] = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                errors.append(f"{name}: {result}")
                logger.debug("economic_indicator_failed", country=info.name, indicator=name, error=str(result))
            elif result is not None:
                readings[name] = result

        if not readings:
            if errors and len(errors) == len(names):
                raise ProviderError("worldbank", "all indicator requests failed", details={"errors": errors})
            raise ProviderError("worldbank", "no indicator data in window")

        points, notes = stress_points(readings)
        score = min(100.0, round(2.5 * points / len(readings), 2))
        level = level_from_score(score, self.settings.band_critical, self.settings.band_high, self.settings.band_medium)
        confidence = min(LEVEL_CONFIDENCE[level], 0.5 + 0.1 * len(readings))

        return SourceSignal(
            source_id=self.source_id,
            available=True,
            risk_level=level,
            score=score,
            confidence=round(confidence, 4),
            indicators=tuple(notes),
            observed_at=options.reference_time(),
            trend=SignalTrend.INCREASING if is_worsening(readings) else SignalTrend.STABLE,
        )

    async def _indicator(self, iso3: str, code: str, start_year: int, end_year: int) -> Optional[IndicatorReading]:
        body = await self.get_json(
            "worldbank",
            f"{self.settings.worldbank_url}/country/{iso3}/indicator/{code}",
            params={"format": "json", "date": f"{start_year}:{end_year}", "per_page": 50},
        )
        return parse_indicator(body)
