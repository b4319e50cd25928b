"""
TTL Cache Tests — lazy expiry, last-write-wins, eviction, singleflight.
"""

import asyncio

import pytest

from crisiswatch.engine.fusion import RiskFusionEngine
from crisiswatch.services.cache import AssessmentCache, TTLCache
from factories import NOW, later, make_signal


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def assessment_at(generated_at, level_score=10.0):
    return RiskFusionEngine().fuse("Sudan", [make_signal("conflict", score=level_score)], generated_at=generated_at)


class TestTTLCache:
    """Test reads, writes and expiry."""

    def setup_method(self):
        self.clock = FakeClock()
        self.cache = TTLCache("test", default_ttl=60, max_entries=3, clock=self.clock)

    def test_miss_then_hit(self):
        assert self.cache.get("a") is None
        self.cache.put("a", 1)
        assert self.cache.get("a") == 1
        assert self.cache.stats()["hits"] == 1

    def test_lazy_expiry(self):
        """Entries vanish once their TTL has passed, on the next read."""
        self.cache.put("a", 1, ttl_seconds=10)
        self.clock.advance(9.9)
        assert self.cache.get("a") == 1
        self.clock.advance(0.2)
        assert self.cache.get("a") is None
        assert len(self.cache) == 0

    def test_older_version_ignored(self):
        """A write carrying an older version does not replace a newer live entry."""
        assert self.cache.put("a", "new", version=later(5))
        assert not self.cache.put("a", "old", version=NOW)
        assert self.cache.get("a") == "new"

    def test_newer_version_overwrites(self):
        self.cache.put("a", "old", version=NOW)
        assert self.cache.put("a", "new", version=later(5))
        assert self.cache.get("a") == "new"

    def test_older_version_accepted_after_expiry(self):
        self.cache.put("a", "new", ttl_seconds=1, version=later(5))
        self.clock.advance(2)
        assert self.cache.put("a", "old", version=NOW)

    def test_eviction_bounds_size(self):
        """Oldest entries are dropped beyond max_entries."""
        for key in "abcd":
            self.cache.put(key, key)
        assert len(self.cache) == 3
        assert self.cache.get("a") is None
        assert self.cache.get("d") == "d"


@pytest.mark.asyncio
class TestSingleflight:
    """Test deduplication of concurrent computations."""

    async def test_concurrent_misses_compute_once(self):
        """50 concurrent callers → one factory call, same value for all."""
        cache = TTLCache("test", default_ttl=60)
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return object()

        results = await asyncio.gather(*(cache.get_or_compute("k", factory) for _ in range(50)))
        assert calls == 1
        assert all(r is results[0] for r in results)
        assert cache.stats()["inflight"] == 0

    async def test_distinct_keys_run_concurrently(self):
        """Different keys never wait on each other."""
        cache = TTLCache("test", default_ttl=60)
        started = []
        release = asyncio.Event()

        async def factory(key):
            started.append(key)
            await release.wait()
            return key

        tasks = [asyncio.ensure_future(cache.get_or_compute(k, lambda k=k: factory(k))) for k in "abc"]
        await asyncio.sleep(0.01)
        assert sorted(started) == ["a", "b", "c"]
        release.set()
        assert await asyncio.gather(*tasks) == ["a", "b", "c"]

    async def test_failure_shared_and_not_cached(self):
        """Every waiter sees the error; the next call recomputes."""
        cache = TTLCache("test", default_ttl=60)
        calls = 0

        async def failing():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            raise ValueError("boom")

        results = await asyncio.gather(
            *(cache.get_or_compute("k", failing) for _ in range(5)),
            return_exceptions=True,
        )
        assert calls == 1
        assert all(isinstance(r, ValueError) for r in results)

        async def working():
            return "ok"

        assert await cache.get_or_compute("k", working) == "ok"

    async def test_should_cache_false_skips_store(self):
        cache = TTLCache("test", default_ttl=60)

        async def factory():
            return "degraded"

        await cache.get_or_compute("k", factory, should_cache=lambda v: False)
        assert cache.get("k") is None

    async def test_cancelled_waiter_does_not_cancel_computation(self):
        """The shared computation survives one caller being cancelled."""
        cache = TTLCache("test", default_ttl=60)

        async def factory():
            await asyncio.sleep(0.05)
            return "done"

        first = asyncio.ensure_future(cache.get_or_compute("k", factory))
        second = asyncio.ensure_future(cache.get_or_compute("k", factory))
        await asyncio.sleep(0.01)
        first.cancel()
        assert await second == "done"
        assert cache.get("k") == "done"


@pytest.mark.asyncio
class TestAssessmentCache:
    """Test the per-country assessment memo."""

    async def test_country_keys_are_canonical(self):
        """'sudan', 'Sudan' and 'SDN' share one entry."""
        cache = AssessmentCache(ttl_seconds=60)
        assessment = assessment_at(NOW)
        cache.put("sudan", assessment)
        assert cache.get("Sudan") is assessment
        assert cache.get("SDN") is assessment

    async def test_last_write_wins_by_generation_time(self):
        """An older assessment never replaces a newer one."""
        cache = AssessmentCache(ttl_seconds=60)
        newer = assessment_at(later(10))
        older = assessment_at(NOW)
        cache.put("Sudan", newer)
        cache.put("Sudan", older)
        assert cache.get("Sudan") is newer

    async def test_expiry(self):
        clock = FakeClock()
        cache = AssessmentCache(ttl_seconds=300, clock=clock)
        cache.put("Sudan", assessment_at(NOW))
        clock.advance(301)
        assert cache.get("Sudan") is None
