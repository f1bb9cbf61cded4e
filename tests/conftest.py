import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

# Predictable settings before the application modules are imported
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from api_aggregator.api.schemas import NewsArticle, WeatherData  # noqa: E402
from api_aggregator.providers.base import BaseDataProvider, SortableProvider, sort_records  # noqa: E402
from api_aggregator.services.cache import CacheService  # noqa: E402
from api_aggregator.services.data_aggregator import AggregationService  # noqa: E402
from api_aggregator.services.resilience import ResiliencePipeline, RetryPolicy  # noqa: E402
from api_aggregator.services.statistics import StatisticsService  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Stand-in for asyncio.sleep that returns immediately and remembers delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeProvider(BaseDataProvider):
    """Provider returning a canned payload, or raising errors from a script."""

    def __init__(self, name: str, category: str, payload=None, errors=None, delay: float = 0.0):
        super().__init__(name=name, category=category, base_url="http://fake.local")
        self.payload = payload
        self.errors = list(errors or [])
        self.delay = delay
        self.calls = []

    async def fetch(self, query: str, page: int = 1, page_size: int = 10):
        self.calls.append((query, page, page_size))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            error = self.errors.pop(0) if len(self.errors) > 1 else self.errors[0]
            if error is not None:
                raise error
        return self.payload


class FakeNewsProvider(FakeProvider, SortableProvider):
    supported_sort_fields = frozenset({"date"})

    def sort(self, payload, field, order):
        if field.lower() == "date":
            return sort_records(payload, "published_at", order)
        return payload


def make_weather(city: str = "London") -> WeatherData:
    return WeatherData(city=city, country="GB", temperature=12.5, humidity=70, description="light rain")


def make_articles() -> List[NewsArticle]:
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    offsets = [3, 0, 7, 1, 5]
    return [
        NewsArticle(title=f"Article {offset}", published_at=base + timedelta(days=offset))
        for offset in offsets
    ]


def weather_provider(payload=None, errors=None) -> FakeProvider:
    return FakeProvider("OpenWeatherMap", "weather", payload=payload or make_weather(), errors=errors)


def news_provider(payload=None, errors=None) -> FakeNewsProvider:
    return FakeNewsProvider("NewsAPI", "news", payload=payload if payload is not None else make_articles(), errors=errors)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def statistics() -> StatisticsService:
    return StatisticsService()


@pytest.fixture
def pipeline(statistics, recording_sleep, clock) -> ResiliencePipeline:
    return ResiliencePipeline(
        statistics=statistics,
        retry_policy=RetryPolicy(max_retries=3, backoff_base=2.0),
        failure_threshold=5,
        open_duration_seconds=30.0,
        timeout_seconds=5.0,
        sleep=recording_sleep,
        clock=clock
    )


@pytest.fixture
def cache(clock) -> CacheService:
    return CacheService(ttl_seconds=300, clock=clock)


@pytest.fixture
def make_service(cache, pipeline):
    def _make(*providers: BaseDataProvider, cache_override: Optional[CacheService] = None) -> AggregationService:
        return AggregationService(
            providers=list(providers),
            cache=cache_override if cache_override is not None else cache,
            resilience=pipeline
        )
    return _make
