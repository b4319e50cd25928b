"""
News adapter — NewsAPI + The Guardian content API.

Coverage volume and a word-list sentiment over headlines are combined into
a 0-100 score. Both APIs need keys; unkeyed APIs are skipped.
"""

import asyncio
from datetime import timedelta

import structlog

from crisiswatch.adapters.base import FetchOptions, SourceAdapter, object_entries
from crisiswatch.exceptions import MalformedPayloadError, ProviderError
from crisiswatch.geo import canonical_name
from crisiswatch.schemas.common import SignalTrend, level_from_score
from crisiswatch.schemas.signal import SourceSignal

logger = structlog.get_logger(__name__)

POSITIVE_WORDS = ("peace", "aid", "help", "support", "rescue", "safe", "recovery")
NEGATIVE_WORDS = ("crisis", "war", "conflict", "disaster", "death", "violence", "displaced")
DISPLACEMENT_WORDS = ("refugee", "displace", "flee", "fled", "evacuat")

ATTENTION_SATURATION = 30


def article_sentiment(text: str) -> int:
    """+1 positive, -1 negative, 0 neutral by word-list counts."""
    text = text.lower()
    positive = sum(text.count(w) for w in POSITIVE_WORDS)
    negative = sum(text.count(w) for w in NEGATIVE_WORDS)
    if negative > positive:
        return -1
    if positive > negative:
        return 1
    return 0


def score_coverage(texts: list[str]) -> dict:
    total = len(texts)
    negative = sum(1 for t in texts if article_sentiment(t) < 0)
    displacement = sum(1 for t in texts if any(w in t.lower() for w in DISPLACEMENT_WORDS))
    negative_share = negative / total if total else 0.0
    score = 100 * (0.6 * negative_share + 0.4 * min(1.0, total / ATTENTION_SATURATION))
    return {
        "articles": total,
        "negative": negative,
        "negative_share": round(negative_share, 4),
        "displacement": displacement,
        "score": round(score, 2),
        "confidence": round(min(0.85, 0.5 + 0.02 * total), 4),
    }


class NewsAdapter(SourceAdapter):
    source_id = "news"

    async def _collect(self, country: str, options: FetchOptions) -> SourceSignal:
        name = canonical_name(country)
        now = options.reference_time()
        since = now - timedelta(days=options.lookback_days or self.settings.news_lookback_days)

        feeds = {}
        if self.settings.newsapi_key:
            feeds["newsapi"] = self._newsapi(name, since)
        if self.settings.guardian_api_key:
            feeds["guardian"] = self._guardian(name, since)
        if not feeds:
            raise ProviderError("news", "no news API key configured")

        results = await asyncio.gather(*feeds.values(), return_exceptions=True)
        texts: list[str] = []
        answered = 0
        for feed, result in zip(feeds, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.debug("news_feed_failed", country=name, feed=feed, error=str(result))
                continue
            answered += 1
            texts.extend(result)
        if answered == 0:
            raise ProviderError("news", "no news API answered")

        tally = score_coverage(texts)
        indicators = []
        if tally["articles"] >= 20:
            indicators.append("High media attention")
        if tally["negative_share"] >= 0.6:
            indicators.append("Predominantly negative coverage")
        if tally["displacement"] >= 3:
            indicators.append("Displacement coverage")

        level = level_from_score(tally["score"], self.settings.band_critical, self.settings.band_high, self.settings.band_medium)
        return SourceSignal(
            source_id=self.source_id,
            available=True,
            risk_level=level,
            score=tally["score"],
            confidence=tally["confidence"],
            indicators=tuple(indicators),
            observed_at=now,
            trend=SignalTrend.INCREASING if tally["negative_share"] >= 0.6 else SignalTrend.STABLE,
        )

    async def _newsapi(self, name: str, since) -> list[str]:
        body = await self.get_json(
            "newsapi",
            f"{self.settings.newsapi_url}/everything",
            params={
                "q": name,
                "from": since.strftime("%Y-%m-%d"),
                "sortBy": "publishedAt",
                "language": "en",
                "pageSize": 50,
            },
            headers={"X-Api-Key": self.settings.newsapi_key},
        )
        if not isinstance(body, dict) or not isinstance(body.get("articles"), list):
            raise MalformedPayloadError("newsapi", "expected an 'articles' list")
        return [
            f"{a.get('title') or ''} {a.get('description') or ''}".strip()
            for a in object_entries("newsapi", body["articles"], "articles")
        ]

    async def _guardian(self, name: str, since) -> list[str]:
        body = await self.get_json(
            "guardian",
            f"{self.settings.guardian_url}/search",
            params={
                "q": name,
                "from-date": since.strftime("%Y-%m-%d"),
                "order-by": "newest",
                "page-size": 50,
                "api-key": self.settings.guardian_api_key,
            },
        )
        envelope = body.get("response") if isinstance(body, dict) else None
        results = envelope.get("results") if isinstance(envelope, dict) else None
        if not isinstance(results, list):
            raise MalformedPayloadError("guardian", "expected response.results")
        return [str(r.get("webTitle") or "") for r in object_entries("guardian", results, "results")]
