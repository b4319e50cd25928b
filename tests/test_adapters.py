"""
Source Adapter Tests.

Every provider is served by httpx.MockTransport. Tests cover normalization of
each provider family and conversion of every failure mode into an
unavailable signal.
"""

import asyncio

import httpx
import pytest
from structlog.testing import capture_logs

from crisiswatch.adapters import (
    ClimateAdapter,
    ConflictAdapter,
    EconomicAdapter,
    FetchOptions,
    NewsAdapter,
    build_adapters,
)
from crisiswatch.adapters.climate import earthquake_hazards, weather_hazards
from crisiswatch.adapters.conflict import classify, score_articles
from crisiswatch.adapters.economic import IndicatorReading, parse_indicator, stress_points
from crisiswatch.adapters.news import article_sentiment, score_coverage
from crisiswatch.exceptions import ErrorCode, MalformedPayloadError
from crisiswatch.schemas.common import RiskLevel, SignalTrend
from crisiswatch.services.resilience import CircuitState
from factories import NOW, make_settings

OPTIONS = FetchOptions(now=NOW)


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def gdelt_body(titles: list[str]) -> dict:
    return {"articles": [{"title": t, "url": f"https://example.org/{i}"} for i, t in enumerate(titles)]}


# ============================================================================
# PURE SCORING
# ============================================================================


class TestConflictScoring:
    """Keyword tallies → score → level."""

    def test_score_articles(self):
        tally = score_articles([
            {"title": "Dozens killed as militia attack village"},
            {"title": "Thousands flee to border"},
            {"title": "Peace talks resume"},
        ])
        assert tally["casualty"] == 1
        assert tally["violence"] == 1
        assert tally["displacement"] == 1
        assert tally["score"] == 15 + 10 + 8 + 2 * 3

    def test_score_capped_at_100(self):
        tally = score_articles([{"title": "Many killed in bomb attack"}] * 20)
        assert tally["score"] == 100.0

    @pytest.mark.parametrize("score,level,confidence", [
        (85.0, RiskLevel.CRITICAL, 0.9),
        (70.0, RiskLevel.CRITICAL, 0.9),
        (45.0, RiskLevel.HIGH, 0.8),
        (20.0, RiskLevel.MEDIUM, 0.7),
        (3.0, RiskLevel.LOW, 0.6),
    ])
    def test_classify(self, score, level, confidence):
        assert classify(score) == (level, confidence)


class TestEconomicScoring:
    """World Bank rows → readings → stress points."""

    def test_parse_indicator_picks_newest_two(self):
        body = [
            {"page": 1},
            [
                {"date": "2021", "value": 30.0},
                {"date": "2023", "value": None},
                {"date": "2022", "value": 45.5},
            ],
        ]
        reading = parse_indicator(body)
        assert reading == IndicatorReading(latest=45.5, previous=30.0)
        assert reading.rising

    def test_parse_indicator_without_rows(self):
        assert parse_indicator([{"page": 1}, None]) is None

    def test_parse_indicator_rejected_query(self):
        with pytest.raises(MalformedPayloadError):
            parse_indicator([{"message": [{"id": "120", "value": "Invalid value"}]}])

    def test_stress_points(self):
        points, notes = stress_points({
            "inflation": IndicatorReading(120.0),
            "gdp_per_capita": IndicatorReading(450.0),
            "undernourishment": IndicatorReading(12.0),
        })
        assert points == 40 + 35
        assert notes[0].startswith("Hyperinflation")
        assert len(notes) == 2


class TestClimateScoring:

    def test_earthquakes_below_threshold_ignored(self):
        body = {"features": [
            {"properties": {"mag": 4.6, "place": "north"}},
            {"properties": {"mag": 6.2, "place": "Khartoum"}},
            {"properties": {"mag": 7.1, "place": "coast"}},
        ]}
        hazards = earthquake_hazards(body)
        assert [h.severity for h in hazards] == [RiskLevel.MEDIUM, RiskLevel.HIGH]

    def test_weather_hazards(self):
        body = {"daily": {
            "time": ["2025-06-01", "2025-06-02"],
            "precipitation_sum": [120.0, None],
            "windspeed_10m_max": [20.0, 75.0],
        }}
        hazards = weather_hazards(body)
        assert [(h.kind, h.severity) for h in hazards] == [
            ("heavy_precipitation", RiskLevel.HIGH),
            ("high_winds", RiskLevel.MEDIUM),
        ]

    def test_weather_missing_daily_block(self):
        with pytest.raises(MalformedPayloadError):
            weather_hazards({"error": True, "reason": "bad coordinates"})


class TestNewsScoring:

    def test_article_sentiment(self):
        assert article_sentiment("War and death in the capital") == -1
        assert article_sentiment("Aid convoy brings support") == 1
        assert article_sentiment("Election results announced") == 0

    def test_score_coverage(self):
        texts = ["War crisis deepens", "Refugees flee violence", "Aid arrives"]
        tally = score_coverage(texts)
        assert tally["negative"] == 2
        assert tally["displacement"] == 1
        assert tally["score"] == pytest.approx(100 * (0.6 * 2 / 3 + 0.4 * 3 / 30), abs=0.01)

    def test_empty_coverage(self):
        tally = score_coverage([])
        assert tally["score"] == 0.0
        assert tally["confidence"] == 0.5


# ============================================================================
# ADAPTERS OVER MOCK TRANSPORT
# ============================================================================


@pytest.mark.asyncio
class TestConflictAdapter:

    async def test_normalizes_articles(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            titles = ["Civilians killed in shelling"] * 6 + ["Families flee fighting"] * 4
            return httpx.Response(200, json=gdelt_body(titles))

        async with client_for(handler) as client:
            signal = await ConflictAdapter(client, make_settings()).fetch("sudan", OPTIONS)

        assert signal.available
        assert signal.source_id == "conflict"
        assert signal.score == 100.0
        assert signal.risk_level == RiskLevel.CRITICAL
        assert signal.confidence == 0.9
        assert "High casualty reports" in signal.indicators
        assert "Population displacement" in signal.indicators
        assert signal.trend == SignalTrend.INCREASING
        assert signal.observed_at == NOW
        assert seen["mode"] == "artlist"
        assert seen["enddatetime"] == "20250601120000"
        assert seen["startdatetime"] == "20250518120000"
        assert '"Sudan"' in seen["query"]

    async def test_server_error_becomes_unavailable(self):
        async with client_for(lambda r: httpx.Response(503)) as client:
            signal = await ConflictAdapter(client, make_settings()).fetch("Sudan", OPTIONS)

        assert not signal.available
        assert signal.risk_level == RiskLevel.UNKNOWN
        assert signal.score == 0.0
        assert signal.confidence == 0.0
        assert "503" in signal.error

    async def test_non_json_body_becomes_unavailable(self):
        async with client_for(lambda r: httpx.Response(200, text="<html>rate limited</html>")) as client:
            signal = await ConflictAdapter(client, make_settings()).fetch("Sudan", OPTIONS)
        assert not signal.available
        assert "not valid JSON" in signal.error

    async def test_missing_articles_becomes_unavailable(self):
        async with client_for(lambda r: httpx.Response(200, json={"status": "ok"})) as client:
            signal = await ConflictAdapter(client, make_settings()).fetch("Sudan", OPTIONS)
        assert not signal.available

    @pytest.mark.parametrize("articles", [["not-an-object", None], [{"title": "ok"}, 42]])
    async def test_non_object_articles_become_unavailable(self, articles):
        async with client_for(lambda r: httpx.Response(200, json={"articles": articles})) as client:
            signal = await ConflictAdapter(client, make_settings()).fetch("Sudan", OPTIONS)
        assert not signal.available
        assert "articles must be JSON objects" in signal.error

    async def test_transport_error_retried_then_unavailable(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("connection refused", request=request)

        settings = make_settings(adapter_retry_attempts=2)
        async with client_for(handler) as client:
            signal = await ConflictAdapter(client, settings).fetch("Sudan", OPTIONS)
        assert not signal.available
        assert calls == 3

    async def test_client_error_not_retried(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(404)

        settings = make_settings(adapter_retry_attempts=2)
        async with client_for(handler) as client:
            signal = await ConflictAdapter(client, settings).fetch("Sudan", OPTIONS)
        assert not signal.available
        assert calls == 1

    async def test_timeout_becomes_unavailable(self):
        async def handler(request):
            await asyncio.sleep(1.0)
            return httpx.Response(200, json=gdelt_body([]))

        settings = make_settings(adapter_timeout_seconds=0.05)
        async with client_for(handler) as client:
            with capture_logs() as logs:
                signal = await ConflictAdapter(client, settings).fetch("Sudan", OPTIONS)
        failures = [e for e in logs if e["event"] == "adapter_fetch_failed"]
        assert not signal.available
        assert "timed out" in signal.error
        assert failures[0]["code"] == ErrorCode.TIMEOUT_ERROR.value

    async def test_open_breaker_short_circuits(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(500)

        settings = make_settings(breaker_failure_threshold=2, breaker_recovery_seconds=600)
        async with client_for(handler) as client:
            adapter = ConflictAdapter(client, settings)
            for _ in range(2):
                await adapter.fetch("Sudan", OPTIONS)
            assert adapter.breaker("gdelt").state == CircuitState.OPEN
            signal = await adapter.fetch("Sudan", OPTIONS)

        assert not signal.available
        assert "OPEN" in signal.error
        assert calls == 2

    async def test_available_signal_cached(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=gdelt_body(["Calm week"]))

        async with client_for(handler) as client:
            adapter = ConflictAdapter(client, make_settings())
            first = await adapter.fetch("Sudan", OPTIONS)
            second = await adapter.fetch("SDN", OPTIONS)
            third = await adapter.fetch("Sudan", FetchOptions(now=NOW, use_cache=False))

        assert first == second
        assert third.available
        assert calls == 2

    async def test_unavailable_signal_not_cached(self):
        responses = iter([httpx.Response(500), httpx.Response(200, json=gdelt_body([]))])

        async with client_for(lambda r: next(responses)) as client:
            adapter = ConflictAdapter(client, make_settings())
            assert not (await adapter.fetch("Sudan", OPTIONS)).available
            assert (await adapter.fetch("Sudan", OPTIONS)).available


@pytest.mark.asyncio
class TestEconomicAdapter:

    async def test_scores_available_indicators(self):
        values = {
            "FP.CPI.TOTL.ZG": [{"date": "2023", "value": 140.0}, {"date": "2022", "value": 60.0}],
            "SL.UEM.TOTL.ZS": [{"date": "2023", "value": 11.0}],
            "NY.GDP.PCAP.CD": [{"date": "2023", "value": 800.0}],
        }

        def handler(request):
            code = request.url.path.rsplit("/", 1)[-1]
            assert "/country/SDN/" in request.url.path
            return httpx.Response(200, json=[{"page": 1}, values.get(code)])

        async with client_for(handler) as client:
            signal = await EconomicAdapter(client, make_settings()).fetch("Sudan", OPTIONS)

        # inflation 40 + gdp 20 over three reporting indicators
        assert signal.available
        assert signal.score == round(2.5 * 60 / 3, 2)
        assert signal.risk_level == RiskLevel.HIGH
        assert signal.confidence == pytest.approx(0.8)
        assert signal.trend == SignalTrend.INCREASING

    async def test_partial_indicator_failures_tolerated(self):
        def handler(request):
            if request.url.path.endswith("FP.CPI.TOTL.ZG"):
                return httpx.Response(200, json=[{"page": 1}, [{"date": "2023", "value": 5.0}]])
            return httpx.Response(502)

        async with client_for(handler) as client:
            signal = await EconomicAdapter(client, make_settings()).fetch("Sudan", OPTIONS)
        assert signal.available
        assert signal.risk_level == RiskLevel.LOW

    async def test_no_data_is_unavailable(self):
        async with client_for(lambda r: httpx.Response(200, json=[{"page": 1}, None])) as client:
            signal = await EconomicAdapter(client, make_settings()).fetch("Sudan", OPTIONS)
        assert not signal.available
        assert "no indicator data" in signal.error

    async def test_unknown_country_is_unavailable(self):
        async with client_for(lambda r: httpx.Response(200, json=[])) as client:
            signal = await EconomicAdapter(client, make_settings()).fetch("Atlantis", OPTIONS)
        assert not signal.available


@pytest.mark.asyncio
class TestClimateAdapter:

    async def test_both_feeds(self):
        def handler(request):
            if request.url.host == "earthquake.usgs.gov":
                return httpx.Response(200, json={"features": [{"properties": {"mag": 6.5, "place": "x"}}]})
            return httpx.Response(200, json={"daily": {
                "time": ["2025-06-02"], "precipitation_sum": [80.0], "windspeed_10m_max": [10.0],
            }})

        async with client_for(handler) as client:
            signal = await ClimateAdapter(client, make_settings()).fetch("Haiti", OPTIONS)

        assert signal.available
        assert signal.score == 40.0
        assert signal.risk_level == RiskLevel.MEDIUM
        assert signal.confidence == 0.8
        assert signal.trend == SignalTrend.INCREASING
        assert len(signal.indicators) == 2

    async def test_one_feed_down_lowers_confidence(self):
        def handler(request):
            if request.url.host == "earthquake.usgs.gov":
                return httpx.Response(500)
            return httpx.Response(200, json={"daily": {"time": [], "precipitation_sum": [], "windspeed_10m_max": []}})

        async with client_for(handler) as client:
            signal = await ClimateAdapter(client, make_settings()).fetch("Haiti", OPTIONS)

        assert signal.available
        assert signal.confidence == 0.6
        assert signal.risk_level == RiskLevel.LOW
        assert signal.trend == SignalTrend.STABLE

    async def test_non_object_features_fail_that_feed_only(self):
        def handler(request):
            if request.url.host == "earthquake.usgs.gov":
                return httpx.Response(200, json={"features": ["quake", None]})
            return httpx.Response(200, json={"daily": {"time": [], "precipitation_sum": [], "windspeed_10m_max": []}})

        async with client_for(handler) as client:
            signal = await ClimateAdapter(client, make_settings()).fetch("Haiti", OPTIONS)

        assert signal.available
        assert signal.confidence == 0.6

    async def test_both_feeds_down(self):
        async with client_for(lambda r: httpx.Response(500)) as client:
            signal = await ClimateAdapter(client, make_settings()).fetch("Haiti", OPTIONS)
        assert not signal.available


@pytest.mark.asyncio
class TestNewsAdapter:

    async def test_without_keys_is_unavailable(self):
        async with client_for(lambda r: httpx.Response(200, json={})) as client:
            signal = await NewsAdapter(client, make_settings()).fetch("Sudan", OPTIONS)
        assert not signal.available
        assert "no news API key" in signal.error

    async def test_combines_both_apis(self):
        seen_headers = []

        def handler(request):
            if request.url.host == "newsapi.org":
                seen_headers.append(request.headers.get("X-Api-Key"))
                return httpx.Response(200, json={"articles": [
                    {"title": "War spreads", "description": "Refugees flee"},
                    {"title": "Crisis deepens", "description": None},
                ]})
            assert request.url.params["api-key"] == "g-key"
            return httpx.Response(200, json={"response": {"results": [{"webTitle": "Aid reaches camps"}]}})

        settings = make_settings(newsapi_key="n-key", guardian_api_key="g-key")
        async with client_for(handler) as client:
            signal = await NewsAdapter(client, settings).fetch("Sudan", OPTIONS)

        assert seen_headers == ["n-key"]
        assert signal.available
        assert signal.score == pytest.approx(100 * (0.6 * 2 / 3 + 0.4 * 3 / 30), abs=0.01)
        assert signal.trend == SignalTrend.INCREASING
        assert "Predominantly negative coverage" in signal.indicators

    async def test_non_object_newsapi_articles(self):
        settings = make_settings(newsapi_key="n-key")
        async with client_for(lambda r: httpx.Response(200, json={"articles": [None, "x"]})) as client:
            signal = await NewsAdapter(client, settings).fetch("Sudan", OPTIONS)
        assert not signal.available

    async def test_malformed_guardian_envelope(self):
        settings = make_settings(guardian_api_key="g-key")
        async with client_for(lambda r: httpx.Response(200, json={"response": None})) as client:
            signal = await NewsAdapter(client, settings).fetch("Sudan", OPTIONS)
        assert not signal.available


def test_build_adapters_covers_all_sources():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    adapters = build_adapters(client, make_settings())
    assert [a.source_id for a in adapters] == ["conflict", "economic", "climate", "news"]
    assert all(a.client is client for a in adapters)
