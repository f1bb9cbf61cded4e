"""
Resilience pipeline for provider calls in API Aggregator.
Wraps each provider fetch with retry, a per-provider circuit breaker and a
per-attempt timeout, and records the outcome in the statistics service.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
import httpx

from ..api.schemas import CircuitBreakerStatus, Payload, utc_now
from ..core.config import settings
from ..core.logging_config import create_logger
from ..providers.base import (
    BaseDataProvider,
    CircuitOpenError,
    ProviderTimeoutError,
    TRANSIENT_STATUS_CODES,
    TransientProviderError,
)
from .statistics import StatisticsService, statistics_service

logger = create_logger(__name__)


def is_transient(error: BaseException) -> bool:
    """Whether a failure is network-class and worth retrying."""
    if isinstance(error, (TransientProviderError, httpx.TransportError, asyncio.TimeoutError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in TRANSIENT_STATUS_CODES
    return False


class FetchStatus(str, Enum):
    """Outcome of one resilient provider call."""
    OK = "ok"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class FetchResult:
    """Value, empty or error outcome of a provider call."""
    status: FetchStatus
    value: Optional[Payload] = None
    error: Optional[Exception] = None

    @classmethod
    def from_value(cls, value: Optional[Payload]) -> "FetchResult":
        if value is None:
            return cls(status=FetchStatus.EMPTY)
        return cls(status=FetchStatus.OK, value=value)

    @classmethod
    def failure(cls, error: Exception) -> "FetchResult":
        return cls(status=FetchStatus.ERROR, error=error)

    @property
    def failed(self) -> bool:
        return self.status is FetchStatus.ERROR

    def unwrap(self) -> Optional[Payload]:
        """Return the value (None when empty) or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker preventing repeated calls to a failing provider.

    Transitions:
    - CLOSED -> OPEN: after failure_threshold consecutive transient failures.
    - OPEN -> HALF_OPEN: once open_duration_seconds have elapsed.
    - HALF_OPEN -> CLOSED: if the single probe call succeeds.
    - HALF_OPEN -> OPEN: if the probe fails.

    All transitions happen between awaits, so the event loop serialises them.
    """

    def __init__(
        self,
        provider_name: str,
        failure_threshold: int = 5,
        open_duration_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.provider_name = provider_name
        self.failure_threshold = failure_threshold
        self.open_duration_seconds = open_duration_seconds
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._opened_at_utc: Optional[datetime] = None
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.open_duration_seconds:
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False
                logger.info("Circuit breaker half-open", extra={"provider": self.provider_name})
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def before_call(self) -> None:
        """Admit a call or raise CircuitOpenError."""
        state = self.state
        if state is CircuitState.OPEN:
            raise CircuitOpenError(f"Circuit breaker is open for {self.provider_name}", self.provider_name)
        if state is CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                raise CircuitOpenError(
                    f"Circuit breaker is probing {self.provider_name}",
                    self.provider_name
                )
            self._probe_in_flight = True

    def record_success(self) -> None:
        # Calls admitted before the breaker opened cannot close it early
        if self.state is CircuitState.OPEN:
            return

        if self._state is not CircuitState.CLOSED:
            logger.info("Circuit breaker closed", extra={"provider": self.provider_name})
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._opened_at_utc = None
        self._probe_in_flight = False

    def record_failure(self, error: str) -> None:
        # Late failures must not extend the cool-down
        if self.state is CircuitState.OPEN:
            return

        self._failure_count += 1
        probing = self._state is CircuitState.HALF_OPEN
        self._probe_in_flight = False

        if probing or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            self._opened_at_utc = utc_now()
            logger.warning("Circuit breaker opened", extra={
                "provider": self.provider_name,
                "failure_count": self._failure_count,
                "open_seconds": self.open_duration_seconds,
                "error": error[:200]
            })

    def release(self) -> None:
        """End a call whose outcome says nothing about provider health."""
        self._probe_in_flight = False

    def status(self) -> CircuitBreakerStatus:
        return CircuitBreakerStatus(
            provider=self.provider_name,
            state=self.state.value,
            failure_count=self._failure_count,
            opened_at=self._opened_at_utc
        )


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: attempt n waits backoff_base ** n seconds."""
    max_retries: int = 3
    backoff_base: float = 2.0

    def delay(self, attempt: int) -> float:
        return self.backoff_base ** attempt


class ResiliencePipeline:
    """Retry wraps circuit breaker wraps timeout, around every provider fetch."""

    def __init__(
        self,
        statistics: StatisticsService,
        retry_policy: Optional[RetryPolicy] = None,
        failure_threshold: int = 5,
        open_duration_seconds: float = 30.0,
        timeout_seconds: float = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        self.statistics = statistics
        self.retry_policy = retry_policy or RetryPolicy()
        self.failure_threshold = failure_threshold
        self.open_duration_seconds = open_duration_seconds
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def breaker_for(self, provider_name: str) -> CircuitBreaker:
        """Breaker shared by every call to the named provider."""
        breaker = self._breakers.get(provider_name)
        if breaker is None:
            breaker = CircuitBreaker(
                provider_name,
                failure_threshold=self.failure_threshold,
                open_duration_seconds=self.open_duration_seconds,
                clock=self._clock
            )
            self._breakers[provider_name] = breaker
        return breaker

    def circuit_states(self) -> List[CircuitBreakerStatus]:
        return [breaker.status() for breaker in self._breakers.values()]

    async def call(
        self,
        provider: BaseDataProvider,
        query: str,
        page: int = 1,
        page_size: int = 10
    ) -> FetchResult:
        """
        Fetch from a provider under the full policy stack.

        Failures come back as an ERROR result rather than an exception.
        Cancellation is not a failure and propagates to the caller.
        """
        started = time.perf_counter()

        try:
            value = await self._execute_with_retry(provider, query, page, page_size)
        except Exception as e:
            result = FetchResult.failure(e)
            logger.error("Provider call failed", extra={
                "provider": provider.name,
                "error_type": type(e).__name__,
                "error": str(e)
            })
        else:
            result = FetchResult.from_value(value)

        elapsed_ms = (time.perf_counter() - started) * 1000
        self.statistics.record_request(provider.name, elapsed_ms, not result.failed)
        return result

    async def _execute_with_retry(
        self,
        provider: BaseDataProvider,
        query: str,
        page: int,
        page_size: int
    ) -> Optional[Payload]:
        breaker = self.breaker_for(provider.name)
        attempt = 0

        while True:
            try:
                return await self._execute_attempt(provider, breaker, query, page, page_size)
            except Exception as e:
                if not is_transient(e) or attempt >= self.retry_policy.max_retries:
                    raise

                attempt += 1
                delay = self.retry_policy.delay(attempt)
                logger.warning("Retrying provider call", extra={
                    "provider": provider.name,
                    "attempt": attempt,
                    "delay_seconds": delay,
                    "reason": str(e)
                })
                await self._sleep(delay)

    async def _execute_attempt(
        self,
        provider: BaseDataProvider,
        breaker: CircuitBreaker,
        query: str,
        page: int,
        page_size: int
    ) -> Optional[Payload]:
        breaker.before_call()

        try:
            value = await asyncio.wait_for(
                provider.fetch(query, page, page_size),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            message = f"{provider.name} did not respond within {self.timeout_seconds}s"
            breaker.record_failure(message)
            raise ProviderTimeoutError(message, provider.name) from e
        except asyncio.CancelledError:
            breaker.release()
            raise
        except Exception as e:
            if is_transient(e):
                breaker.record_failure(str(e))
            else:
                breaker.release()
            raise

        breaker.record_success()
        return value


# Global resilience pipeline, shared so breaker state spans all requests
resilience_pipeline = ResiliencePipeline(
    statistics=statistics_service,
    retry_policy=RetryPolicy(
        max_retries=settings.retry_count,
        backoff_base=settings.retry_backoff_base
    ),
    failure_threshold=settings.circuit_breaker_failure_threshold,
    open_duration_seconds=settings.circuit_breaker_duration_seconds,
    timeout_seconds=settings.request_timeout_seconds
)
