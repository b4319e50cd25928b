"""
Source Adapter base — HTTP plumbing shared by every provider family.

Providers are external and unreliable; CrisisWatch does NOT depend on their
availability. `fetch()` never raises for a remote failure: network errors,
error statuses, malformed payloads, open breakers and timeouts all become an
unavailable SourceSignal.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import httpx
import structlog

from crisiswatch.config import Settings
from crisiswatch.exceptions import (
    CrisisWatchError,
    ErrorCode,
    MalformedPayloadError,
    ProviderError,
    ProviderTransientError,
)
from crisiswatch.schemas.signal import SourceSignal, utcnow
from crisiswatch.services.cache import TTLCache, provider_key
from crisiswatch.services.resilience import CircuitBreaker, retry_with_backoff

logger = structlog.get_logger(__name__)


def object_entries(provider: str, entries: list, what: str = "entries") -> list[dict]:
    """The list itself, once every entry is confirmed to be a JSON object."""
    if not all(isinstance(e, dict) for e in entries):
        raise MalformedPayloadError(provider, f"{what} must be JSON objects")
    return entries


@dataclass(frozen=True)
class FetchOptions:
    """Per-call knobs for `SourceAdapter.fetch`."""
    now: Optional[datetime] = None
    use_cache: bool = True
    lookback_days: Optional[int] = None

    def reference_time(self) -> datetime:
        return self.now or utcnow()


class SourceAdapter(ABC):
    """
    Normalizes one provider family into a SourceSignal.

    Subclasses implement `_collect()` and may raise freely inside it; the
    public `fetch()` converts every expected failure into data.
    """

    source_id: str = ""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Settings,
        response_cache: Optional[TTLCache[SourceSignal]] = None,
    ):
        self.client = client
        self.settings = settings
        self.response_cache: TTLCache[SourceSignal] = response_cache or TTLCache(
            f"provider:{self.source_id}",
            settings.provider_cache_ttl_seconds,
            settings.cache_max_entries,
        )
        self._breakers: dict[str, CircuitBreaker] = {}

    async def fetch(self, country: str, options: Optional[FetchOptions] = None) -> SourceSignal:
        """Fetch and normalize; returns an unavailable signal on any provider failure."""
        options = options or FetchOptions()
        key = provider_key(self.source_id, country)
        if options.use_cache:
            cached = self.response_cache.get(key)
            if cached is not None:
                logger.debug("adapter_cache_hit", source=self.source_id, country=country)
                return cached

        timeout = self.settings.adapter_timeout_seconds
        try:
            signal = await asyncio.wait_for(self._collect(country, options), timeout=timeout)
        except asyncio.TimeoutError:
            return self._failed(
                country, options, f"timed out after {timeout}s", code=ErrorCode.TIMEOUT_ERROR.value
            )
        except CrisisWatchError as exc:
            return self._failed(country, options, exc.message, code=exc.code.value)
        except httpx.HTTPError as exc:
            return self._failed(country, options, f"{type(exc).__name__}: {exc}")
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            return self._failed(country, options, f"malformed payload: {exc!r}")

        if signal.available:
            self.response_cache.put(key, signal)
        logger.info(
            "adapter_fetch_complete",
            source=self.source_id,
            country=country,
            available=signal.available,
            risk_level=signal.risk_level.value,
            score=signal.score,
        )
        return signal

    @abstractmethod
    async def _collect(self, country: str, options: FetchOptions) -> SourceSignal:
        """Query the provider(s) and build the signal. May raise."""

    # ── helpers ──────────────────────────────────────────────────────────

    def breaker(self, provider: str) -> CircuitBreaker:
        if provider not in self._breakers:
            self._breakers[provider] = CircuitBreaker(
                name=provider,
                failure_threshold=self.settings.breaker_failure_threshold,
                recovery_timeout=self.settings.breaker_recovery_seconds,
            )
        return self._breakers[provider]

    async def get_json(
        self,
        provider: str,
        url: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Any:
        """GET a JSON document through the provider's breaker, with retries."""

        async def _request() -> Any:
            try:
                resp = await self.client.get(url, params=params, headers=headers)
            except httpx.TransportError as exc:
                raise ProviderTransientError(provider, f"{type(exc).__name__}: {exc}") from exc
            if resp.status_code >= 500 or resp.status_code == 429:
                raise ProviderTransientError(provider, f"HTTP {resp.status_code}")
            if resp.status_code >= 400:
                raise ProviderError(provider, f"HTTP {resp.status_code}")
            try:
                return resp.json()
            except ValueError as exc:
                raise MalformedPayloadError(provider, "response is not valid JSON") from exc

        base_delay = self.settings.adapter_retry_base_delay
        return await retry_with_backoff(
            lambda: self.breaker(provider).call(_request),
            max_retries=self.settings.adapter_retry_attempts,
            base_delay=base_delay,
            max_delay=base_delay * 8,
            jitter=base_delay / 2,
            retry_on=(ProviderTransientError,),
            operation_name=f"{provider}_get",
        )

    def unavailable(self, reason: str, options: FetchOptions) -> SourceSignal:
        return SourceSignal.unavailable(self.source_id, reason, observed_at=options.reference_time())

    def _failed(
        self,
        country: str,
        options: FetchOptions,
        reason: str,
        code: Optional[str] = None,
    ) -> SourceSignal:
        logger.warning(
            "adapter_fetch_failed",
            source=self.source_id,
            country=country,
            reason=reason,
            code=code,
        )
        return self.unavailable(reason, options)
