"""
In-process TTL Cache with singleflight.

Caches hot results to avoid redundant upstream work:
- Crisis assessments (per country, TTL 5 min)
- AI analyses (per assessment fingerprint, TTL 2 min)
- Provider responses (per adapter and country, TTL 30 min)

Entries expire lazily on read. Concurrent misses for the same key share one
in-flight computation; distinct keys never block each other.
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, Hashable, Optional, TypeVar

import structlog

from crisiswatch.geo import canonical_name
from crisiswatch.schemas.assessment import CrisisAssessment

logger = structlog.get_logger(__name__)

V = TypeVar("V")

# ── Key builders ──────────────────────────────────────────────────────────


def assessment_key(country: str) -> str:
    return f"assessment:{canonical_name(country).casefold()}"


def provider_key(source_id: str, country: str) -> str:
    return f"provider:{source_id}:{canonical_name(country).casefold()}"


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float
    version: Any = None


class TTLCache(Generic[V]):
    """
    Bounded key/value cache with per-entry TTL.

    `put` is last-write-wins by `version` (e.g. a generation timestamp): a
    write carrying an older version than the live entry is ignored.
    """

    def __init__(
        self,
        name: str,
        default_ttl: float,
        max_entries: int = 1024,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.name = name
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[Hashable, _Entry[V]]" = OrderedDict()
        self._inflight: dict[Hashable, asyncio.Task] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[V]:
        """Return the live value for key, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    def put(
        self,
        key: Hashable,
        value: V,
        ttl_seconds: Optional[float] = None,
        version: Any = None,
    ) -> bool:
        """Store value. Returns False when an older version was ignored."""
        now = self._clock()
        current = self._entries.get(key)
        if (
            current is not None
            and current.expires_at > now
            and current.version is not None
            and version is not None
            and version < current.version
        ):
            logger.debug("cache_stale_write_ignored", cache=self.name, key=str(key))
            return False

        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        self._entries[key] = _Entry(value=value, expires_at=now + ttl, version=version)
        self._entries.move_to_end(key)
        self._evict(now)
        return True

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self, now: float) -> None:
        if len(self._entries) <= self.max_entries:
            return
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            del self._entries[key]
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def get_or_compute(
        self,
        key: Hashable,
        factory: Callable[[], Awaitable[V]],
        ttl_seconds: Optional[float] = None,
        should_cache: Optional[Callable[[V], bool]] = None,
        version_of: Optional[Callable[[V], Any]] = None,
    ) -> V:
        """
        Return the cached value or compute it exactly once.

        The first caller on a miss starts `factory`; concurrent callers for
        the same key await that same task. A caller being cancelled does not
        cancel the shared computation.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._compute(key, factory, ttl_seconds, should_cache, version_of)
            )
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._finish(k, t))
        else:
            logger.debug("cache_singleflight_join", cache=self.name, key=str(key))
        return await asyncio.shield(task)

    async def _compute(self, key, factory, ttl_seconds, should_cache, version_of) -> V:
        value = await factory()
        if should_cache is None or should_cache(value):
            version = version_of(value) if version_of else None
            self.put(key, value, ttl_seconds, version=version)
        return value

    def _finish(self, key: Hashable, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception retrieved; every waiter re-raises it on its own
        if not task.cancelled():
            task.exception()

    def stats(self) -> dict:
        return {
            "name": self.name,
            "entries": len(self._entries),
            "inflight": len(self._inflight),
            "hits": self.hits,
            "misses": self.misses,
        }


class AssessmentCache:
    """Per-country CrisisAssessment memo; last write wins by generated_at."""

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 1024,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._cache: TTLCache[CrisisAssessment] = TTLCache(
            "assessment", ttl_seconds, max_entries, clock=clock
        )

    @property
    def ttl_seconds(self) -> float:
        return self._cache.default_ttl

    def get(self, country: str) -> Optional[CrisisAssessment]:
        return self._cache.get(assessment_key(country))

    def put(
        self,
        country: str,
        assessment: CrisisAssessment,
        ttl_seconds: Optional[float] = None,
    ) -> bool:
        return self._cache.put(
            assessment_key(country),
            assessment,
            ttl_seconds,
            version=_generated_at(assessment),
        )

    async def get_or_compute(
        self,
        country: str,
        factory: Callable[[], Awaitable[CrisisAssessment]],
        ttl_seconds: Optional[float] = None,
    ) -> CrisisAssessment:
        return await self._cache.get_or_compute(
            assessment_key(country),
            factory,
            ttl_seconds,
            version_of=_generated_at,
        )

    def invalidate(self, country: str) -> None:
        self._cache.invalidate(assessment_key(country))

    def stats(self) -> dict:
        return self._cache.stats()


def _generated_at(assessment: CrisisAssessment) -> datetime:
    return assessment.generated_at
