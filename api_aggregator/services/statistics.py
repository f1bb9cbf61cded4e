"""
Request statistics service for API Aggregator.
Keeps a bounded sliding window of recent calls per provider and derives
latency summaries on demand.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, List, Optional

from ..api.schemas import ApiStatistics, PerformanceBuckets, StatisticsResponse, utc_now
from ..core.config import settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)


@dataclass(frozen=True)
class RequestRecord:
    """One completed provider call."""
    api_name: str
    response_time_ms: float
    success: bool
    timestamp: datetime = field(default_factory=utc_now)


class StatisticsService:
    """
    Thread-safe per-provider latency tracking.

    Each provider gets a deque capped at window_size, so appending past the
    cap drops the oldest record first. A single lock guards the window map
    and the appends; reads take a snapshot under the same lock.
    """

    def __init__(
        self,
        window_size: int = 1000,
        fast_threshold_ms: float = 500.0,
        slow_threshold_ms: float = 1000.0
    ):
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        if slow_threshold_ms <= fast_threshold_ms:
            raise ValueError("slow_threshold_ms must be greater than fast_threshold_ms")

        self.window_size = window_size
        self.fast_threshold_ms = fast_threshold_ms
        self.slow_threshold_ms = slow_threshold_ms
        self._windows: Dict[str, Deque[RequestRecord]] = {}
        self._lock = threading.Lock()

    def record_request(self, api_name: str, response_time_ms: float, success: bool) -> None:
        """Append a call to the provider's window, evicting the oldest when full."""
        record = RequestRecord(api_name=api_name, response_time_ms=response_time_ms, success=success)

        with self._lock:
            window = self._windows.get(api_name)
            if window is None:
                window = deque(maxlen=self.window_size)
                self._windows[api_name] = window
            window.append(record)

        logger.debug("Recorded request", extra={
            "api_name": api_name,
            "response_time_ms": response_time_ms,
            "success": success
        })

    def get_api_statistics(self, api_name: str) -> Optional[ApiStatistics]:
        """Summarise one provider's current window, None when it has no records."""
        with self._lock:
            window = self._windows.get(api_name)
            records = list(window) if window else []

        if not records:
            return None

        return self._summarise(api_name, records)

    def get_statistics(self) -> StatisticsResponse:
        """Summaries for every provider with at least one record."""
        with self._lock:
            snapshot = {name: list(window) for name, window in self._windows.items() if window}

        return StatisticsResponse(
            apis=[self._summarise(name, records) for name, records in snapshot.items()]
        )

    def tracked_apis(self) -> List[str]:
        """Names of providers with at least one record."""
        with self._lock:
            return [name for name, window in self._windows.items() if window]

    def _summarise(self, api_name: str, records: List[RequestRecord]) -> ApiStatistics:
        # Success flag is kept on the record but both outcomes count towards latency
        latencies = [record.response_time_ms for record in records]
        buckets = PerformanceBuckets()

        for latency in latencies:
            if latency < self.fast_threshold_ms:
                buckets.fast += 1
            elif latency < self.slow_threshold_ms:
                buckets.average += 1
            else:
                buckets.slow += 1

        return ApiStatistics(
            api_name=api_name,
            total_requests=len(latencies),
            average_response_time_ms=round(sum(latencies) / len(latencies), 2),
            performance_buckets=buckets
        )


# Global statistics service instance
statistics_service = StatisticsService(
    window_size=settings.statistics_window_size,
    fast_threshold_ms=settings.statistics_fast_threshold_ms,
    slow_threshold_ms=settings.statistics_slow_threshold_ms
)
