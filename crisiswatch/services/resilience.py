"""
Provider resilience — retry with backoff, plus one circuit breaker per provider.

Every GET a source adapter makes runs as
`retry_with_backoff(lambda: breaker.call(request))`. A breaker trips after
repeated failures inside a sliding window, so a provider that is down costs
one fast CircuitOpenError per fetch instead of a full retry cycle. An open
breaker is never retried.
"""

import asyncio
import random
import time
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from crisiswatch.exceptions import CircuitOpenError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """Seconds to wait before retry number `attempt + 1`: capped doubling plus jitter."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    if jitter > 0:
        delay += random.uniform(0, jitter)
    return delay


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    jitter: float = 0.5,
    retry_on: tuple = (Exception,),
    operation_name: str = "operation",
) -> T:
    """
    Await `fn()` up to `max_retries + 1` times.

    Only exceptions in `retry_on` trigger another attempt; anything else, and
    the last retryable failure, propagates unchanged.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.warning(
                    "provider_retries_exhausted",
                    operation=operation_name,
                    attempts=attempt + 1,
                    error=str(exc),
                )
                raise
            delay = backoff_delay(attempt, base_delay, max_delay, jitter)
            attempt += 1
            logger.info(
                "provider_retry_scheduled",
                operation=operation_name,
                attempt=attempt,
                max_retries=max_retries,
                delay=round(delay, 2),
                error=str(exc),
            )
            await asyncio.sleep(delay)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Per-provider breaker.

    CLOSED lets calls through and counts failures inside `window_seconds`;
    reaching `failure_threshold` trips it OPEN. OPEN rejects every call until
    `recovery_timeout` has elapsed, then admits a single trial call
    (HALF_OPEN). The trial's outcome closes or re-opens the breaker.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        recovery_timeout: float = 30.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.recovery_timeout = recovery_timeout
        self._clock = clock or time.monotonic

        self._state = CircuitState.CLOSED
        self._failure_times: deque[float] = deque()
        self._opened_at = 0.0
        self._trial_running = False

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            logger.info("provider_breaker_half_open", provider=self.name)
        return self._state

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Run `fn` if the breaker admits it; raises CircuitOpenError otherwise."""
        self._admit()
        try:
            result = await fn(*args, **kwargs)
        except asyncio.CancelledError:
            # a cancelled trial says nothing about the provider
            self._trial_running = False
            raise
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def reset(self) -> None:
        """Force the breaker closed and forget past failures."""
        self._state = CircuitState.CLOSED
        self._failure_times.clear()
        self._trial_running = False

    def _admit(self) -> None:
        state = self.state
        if state == CircuitState.OPEN:
            logger.debug("provider_breaker_rejected", provider=self.name)
            raise CircuitOpenError(self.name)
        if state == CircuitState.HALF_OPEN:
            if self._trial_running:
                raise CircuitOpenError(self.name, f"Circuit breaker '{self.name}' is testing")
            self._trial_running = True

    def _record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("provider_breaker_closed", provider=self.name)
        self.reset()

    def _record_failure(self) -> None:
        now = self._clock()
        self._trial_running = False
        if self._state == CircuitState.HALF_OPEN:
            self._trip(now)
            return

        self._failure_times.append(now)
        while self._failure_times and self._failure_times[0] <= now - self.window_seconds:
            self._failure_times.popleft()
        if len(self._failure_times) >= self.failure_threshold:
            self._trip(now)

    def _trip(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        logger.warning(
            "provider_breaker_opened",
            provider=self.name,
            recent_failures=len(self._failure_times),
            threshold=self.failure_threshold,
            retry_after=self.recovery_timeout,
        )
