"""
Conflict adapter — GDELT DOC 2.0 article search.

Scores a country's recent coverage by counting casualty, violence and
displacement keywords in article titles.
"""

from datetime import timedelta

import structlog

from crisiswatch.adapters.base import FetchOptions, SourceAdapter, object_entries
from crisiswatch.exceptions import MalformedPayloadError
from crisiswatch.geo import canonical_name
from crisiswatch.schemas.common import RiskLevel, SignalTrend
from crisiswatch.schemas.signal import SourceSignal

logger = structlog.get_logger(__name__)

CONFLICT_THEMES = (
    "conflict", "crisis", "kill", "wound", "attack", "armed", "unrest",
    "terrorism", "military", "violence", "protest", "fight",
)

CASUALTY_WORDS = ("kill", "death", "dead")
VIOLENCE_WORDS = ("attack", "bomb", "shoot")
DISPLACEMENT_WORDS = ("flee", "refugee", "displace")

# (min score, level, confidence), checked top-down
CONFLICT_BANDS = (
    (70.0, RiskLevel.CRITICAL, 0.9),
    (40.0, RiskLevel.HIGH, 0.8),
    (20.0, RiskLevel.MEDIUM, 0.7),
    (0.0, RiskLevel.LOW, 0.6),
)


def _mentions(title: str, words: tuple[str, ...]) -> bool:
    return any(w in title for w in words)


def score_articles(articles: list[dict]) -> dict:
    """Keyword tallies and the 0-100 intensity score for a list of articles."""
    casualty = violence = displacement = 0
    for article in articles:
        title = str(article.get("title") or "").lower()
        if _mentions(title, CASUALTY_WORDS):
            casualty += 1
        if _mentions(title, VIOLENCE_WORDS):
            violence += 1
        if _mentions(title, DISPLACEMENT_WORDS):
            displacement += 1
    score = min(100, 15 * casualty + 10 * violence + 8 * displacement + 2 * len(articles))
    return {
        "casualty": casualty,
        "violence": violence,
        "displacement": displacement,
        "articles": len(articles),
        "score": float(score),
    }


def classify(score: float) -> tuple[RiskLevel, float]:
    for floor, level, confidence in CONFLICT_BANDS:
        if score >= floor:
            return level, confidence
    return RiskLevel.LOW, 0.6


class ConflictAdapter(SourceAdapter):
    source_id = "conflict"

    async def _collect(self, country: str, options: FetchOptions) -> SourceSignal:
        days = options.lookback_days or self.settings.conflict_lookback_days
        end = options.reference_time()
        start = end - timedelta(days=days)
        name = canonical_name(country)

        body = await self.get_json(
            "gdelt",
            f"{self.settings.gdelt_url}/doc/doc",
            params={
                "query": f'"{name}" ({" OR ".join(CONFLICT_THEMES)})',
                "mode": "artlist",
                "maxrecords": 100,
                "format": "json",
                "startdatetime": start.strftime("%Y%m%d%H%M%S"),
                "enddatetime": end.strftime("%Y%m%d%H%M%S"),
                "sort": "hybridrel",
            },
        )
        if not isinstance(body, dict) or not isinstance(body.get("articles"), list):
            raise MalformedPayloadError("gdelt", "expected an 'articles' list")

        tally = score_articles(object_entries("gdelt", body["articles"], "articles"))
        level, confidence = classify(tally["score"])

        indicators = []
        if tally["casualty"] > 5:
            indicators.append("High casualty reports")
        if tally["displacement"] > 3:
            indicators.append("Population displacement")
        if tally["violence"] > 10:
            indicators.append("Escalating violence")
        if tally["articles"] > 50:
            indicators.append("High media attention")

        logger.debug("conflict_articles_scored", country=name, **tally)
        return SourceSignal(
            source_id=self.source_id,
            available=True,
            risk_level=level,
            score=tally["score"],
            confidence=confidence,
            indicators=tuple(indicators),
            observed_at=end,
            trend=SignalTrend.INCREASING if tally["score"] > 50 else SignalTrend.STABLE,
        )
