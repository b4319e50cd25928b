"""
Climate adapter — USGS earthquakes + Open-Meteo daily forecast.

Both feeds are queried concurrently around the country's reference
coordinates. One answering feed is enough for an (less confident) signal.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta

import structlog

from crisiswatch.adapters.base import FetchOptions, SourceAdapter, object_entries
from crisiswatch.exceptions import MalformedPayloadError, ProviderError
from crisiswatch.geo import resolve_country
from crisiswatch.schemas.common import RiskLevel, SignalTrend, level_from_score
from crisiswatch.schemas.signal import SourceSignal

logger = structlog.get_logger(__name__)

EARTHQUAKE_LOOKBACK_DAYS = 30
FORECAST_DAYS = 7
HAZARD_POINTS = {RiskLevel.HIGH: 50, RiskLevel.MEDIUM: 20, RiskLevel.LOW: 5}


@dataclass(frozen=True)
class Hazard:
    kind: str
    severity: RiskLevel
    description: str


def earthquake_hazards(body) -> list[Hazard]:
    """Significant (M5.0+) earthquakes from a USGS GeoJSON response."""
    if not isinstance(body, dict) or not isinstance(body.get("features"), list):
        raise MalformedPayloadError("usgs", "expected a GeoJSON feature collection")
    hazards = []
    for feature in object_entries("usgs", body["features"], "features"):
        props = feature.get("properties")
        if not isinstance(props, dict):
            continue
        mag = props.get("mag")
        if mag is None or mag < 5.0:
            continue
        if mag >= 7.0:
            severity = RiskLevel.HIGH
        elif mag >= 6.0:
            severity = RiskLevel.MEDIUM
        else:
            severity = RiskLevel.LOW
        place = props.get("place") or "unknown location"
        hazards.append(Hazard("earthquake", severity, f"M{mag:.1f} earthquake near {place}"))
    return hazards


def weather_hazards(body) -> list[Hazard]:
    """Heavy-rain and high-wind days from an Open-Meteo daily forecast."""
    if not isinstance(body, dict) or not isinstance(body.get("daily"), dict):
        raise MalformedPayloadError("open_meteo", "expected a 'daily' block")
    daily = body["daily"]
    days = daily.get("time") or []
    rain = daily.get("precipitation_sum") or []
    wind = daily.get("windspeed_10m_max") or []

    hazards = []
    for i, day in enumerate(days):
        precipitation = (rain[i] if i < len(rain) else None) or 0
        windspeed = (wind[i] if i < len(wind) else None) or 0
        if precipitation > 50:
            severity = RiskLevel.HIGH if precipitation > 100 else RiskLevel.MEDIUM
            hazards.append(Hazard("heavy_precipitation", severity, f"Heavy rain forecast {day} ({precipitation:.0f}mm)"))
        if windspeed > 60:
            severity = RiskLevel.HIGH if windspeed > 100 else RiskLevel.MEDIUM
            hazards.append(Hazard("high_winds", severity, f"High winds forecast {day} ({windspeed:.0f} km/h)"))
    return hazards


class ClimateAdapter(SourceAdapter):
    source_id = "climate"

    async def _collect(self, country: str, options: FetchOptions) -> SourceSignal:
        info = resolve_country(country)
        if info is None:
            raise ProviderError("usgs", f"no coordinates known for '{country}'")

        now = options.reference_time()
        quakes, weather = await asyncio.gather(
            self._earthquakes(info.lat, info.lon, now),
            self._forecast(info.lat, info.lon),
            return_exceptions=True,
        )
        for outcome in (quakes, weather):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        feeds_ok = 0
        hazards: list[Hazard] = []
        for feed, outcome in (("usgs", quakes), ("open_meteo", weather)):
            if isinstance(outcome, Exception):
                logger.debug("climate_feed_failed", country=info.name, feed=feed, error=str(outcome))
                continue
            feeds_ok += 1
            hazards.extend(outcome)

        if feeds_ok == 0:
            raise ProviderError("climate", "earthquake and weather feeds both failed")

        score = float(min(100, sum(HAZARD_POINTS[h.severity] for h in hazards)))
        level = level_from_score(score, self.settings.band_critical, self.settings.band_high, self.settings.band_medium)
        forecast_hazard = any(h.kind != "earthquake" for h in hazards)

        return SourceSignal(
            source_id=self.source_id,
            available=True,
            risk_level=level,
            score=score,
            confidence=0.8 if feeds_ok == 2 else 0.6,
            indicators=tuple(h.description for h in hazards[:10]),
            observed_at=now,
            trend=SignalTrend.INCREASING if forecast_hazard else SignalTrend.STABLE,
        )

    async def _earthquakes(self, lat: float, lon: float, now) -> list[Hazard]:
        body = await self.get_json(
            "usgs",
            f"{self.settings.usgs_url}/query",
            params={
                "format": "geojson",
                "starttime": (now - timedelta(days=EARTHQUAKE_LOOKBACK_DAYS)).strftime("%Y-%m-%d"),
                "endtime": now.strftime("%Y-%m-%d"),
                "latitude": lat,
                "longitude": lon,
                "maxradiuskm": 500,
                "minmagnitude": 4.0,
                "limit": 100,
            },
        )
        return earthquake_hazards(body)

    async def _forecast(self, lat: float, lon: float) -> list[Hazard]:
        body = await self.get_json(
            "open_meteo",
            f"{self.settings.open_meteo_url}/forecast",
            params={
                "latitude": lat,
                "longitude": lon,
                "daily": "temperature_2m_max,temperature_2m_min,precipitation_sum,windspeed_10m_max",
                "forecast_days": FORECAST_DAYS,
                "timezone": "auto",
            },
        )
        return weather_hazards(body)
