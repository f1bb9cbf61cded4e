import asyncio

import pytest

from api_aggregator.api.schemas import AggregationRequest, NewsArticle
from api_aggregator.providers.base import AuthenticationError, TransientProviderError, parse_timestamp

from conftest import FakeNewsProvider, FakeProvider, make_articles, make_weather, news_provider, weather_provider


def aggregate(service, **params):
    return asyncio.run(service.aggregate(AggregationRequest(**params)))


def test_all_providers_succeed(make_service):
    weather, news = weather_provider(), news_provider()
    service = make_service(weather, news)

    response = aggregate(service, city="London", query="technology")

    assert set(response.data) == {"weather", "news"}
    assert response.data["weather"].city == "London"
    assert len(response.data["news"]) == 5
    assert response.errors == []
    assert response.timestamp is not None


def test_failing_provider_is_reported_not_raised(make_service):
    weather = weather_provider(errors=[AuthenticationError("bad key", "OpenWeatherMap")])
    news = news_provider()
    service = make_service(weather, news)

    response = aggregate(service, city="London", query="technology")

    assert response.errors == ["Failed to fetch from OpenWeatherMap"]
    assert "weather" not in response.data
    assert "news" in response.data


def test_exhausted_transient_failures_are_reported(make_service, recording_sleep):
    news = news_provider(errors=[TransientProviderError("503", "NewsAPI")])
    service = make_service(news)

    response = aggregate(service, query="technology")

    assert response.errors == ["Failed to fetch from NewsAPI"]
    assert len(news.calls) == 4
    assert recording_sleep.delays == [2.0, 4.0, 8.0]


def test_blank_inputs_skip_every_provider(make_service):
    weather, news = weather_provider(), news_provider()
    service = make_service(weather, news)

    response = aggregate(service, city="  ", query="")

    assert response.data == {}
    assert response.errors == []
    assert weather.calls == [] and news.calls == []


def test_weather_gets_city_and_others_get_query(make_service):
    weather, news = weather_provider(), news_provider()
    service = make_service(weather, news)

    aggregate(service, city="Paris", query="climate", page=3, page_size=25)

    assert weather.calls == [("Paris", 3, 25)]
    assert news.calls == [("climate", 3, 25)]


def test_provider_without_its_input_is_skipped(make_service):
    weather, news = weather_provider(), news_provider()
    service = make_service(weather, news)

    response = aggregate(service, city="Paris")

    assert list(response.data) == ["weather"]
    assert news.calls == []


def test_category_filter_is_case_insensitive(make_service):
    weather, news = weather_provider(), news_provider()
    service = make_service(weather, news)

    response = aggregate(service, city="London", query="technology", category="NEWS")

    assert list(response.data) == ["news"]
    assert weather.calls == []


def test_empty_payload_is_neither_data_nor_error(make_service):
    weather = FakeProvider("OpenWeatherMap", "weather", payload=None)
    service = make_service(weather)

    response = aggregate(service, city="Atlantis")

    assert response.data == {}
    assert response.errors == []


def test_cache_hit_skips_provider_and_statistics(make_service, statistics):
    news = news_provider()
    service = make_service(news)

    first = aggregate(service, query="technology")
    second = aggregate(service, query="technology")

    assert len(news.calls) == 1
    assert second.data["news"] == first.data["news"]
    assert statistics.get_api_statistics("NewsAPI").total_requests == 1


def test_failures_are_not_cached(make_service):
    weather = weather_provider(errors=[AuthenticationError("bad key", "OpenWeatherMap"), None])
    service = make_service(weather)

    assert aggregate(service, city="London").errors == ["Failed to fetch from OpenWeatherMap"]
    assert aggregate(service, city="London").errors == []
    assert len(weather.calls) == 2


def test_sort_by_date_defaults_to_descending(make_service):
    service = make_service(news_provider())

    response = aggregate(service, query="technology", sort_by="DATE")

    dates = [article.published_at for article in response.data["news"]]
    assert dates == sorted(dates, reverse=True)


def test_sort_ascending(make_service):
    service = make_service(news_provider())

    response = aggregate(service, query="technology", sort_by="date", sort_order="asc")

    dates = [article.published_at for article in response.data["news"]]
    assert dates == sorted(dates)


def test_sort_does_not_mutate_cached_payload(make_service, cache):
    service = make_service(news_provider())

    aggregate(service, query="technology", sort_by="date", sort_order="asc")

    cached = [article.title for article in cache.get("news:technology")]
    assert cached == ["Article 3", "Article 0", "Article 7", "Article 1", "Article 5"]


def test_unsupported_sort_field_leaves_payload_alone(make_service):
    weather = weather_provider()
    news = news_provider()
    service = make_service(weather, news)

    response = aggregate(service, city="London", query="technology", sort_by="stars")

    assert [article.title for article in response.data["news"]][:2] == ["Article 3", "Article 0"]
    assert response.data["weather"] == weather.payload


def test_failing_sort_keeps_provider_data(make_service):
    class BrokenSortProvider(FakeNewsProvider):
        def sort(self, payload, field, order):
            raise TypeError("can't compare offset-naive and offset-aware datetimes")

    news = BrokenSortProvider("NewsAPI", "news", payload=make_articles())
    service = make_service(weather_provider(), news)

    response = aggregate(service, city="London", query="technology", sort_by="date")

    assert response.errors == []
    assert [article.title for article in response.data["news"]][:2] == ["Article 3", "Article 0"]
    assert "weather" in response.data


def test_sort_mixes_offsetless_and_missing_timestamps(make_service):
    articles = [
        NewsArticle(title="offsetless", published_at=parse_timestamp("2024-05-01T08:00:00")),
        NewsArticle(title="missing", published_at=parse_timestamp(None)),
        NewsArticle(title="zulu", published_at=parse_timestamp("2024-05-02T08:00:00Z")),
    ]
    service = make_service(news_provider(payload=articles))

    response = aggregate(service, query="technology", sort_by="date", sort_order="asc")

    assert [article.title for article in response.data["news"]] == ["offsetless", "zulu", "missing"]


def test_providers_are_fetched_concurrently(make_service):
    class RendezvousProvider(FakeProvider):
        """Completes only once its partner has started, so serial fetching would time out."""

        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.arrived = asyncio.Event()
            self.partner = None

        async def fetch(self, query, page=1, page_size=10):
            self.calls.append((query, page, page_size))
            self.arrived.set()
            await asyncio.wait_for(self.partner.arrived.wait(), timeout=1)
            return self.payload

    async def scenario():
        weather = RendezvousProvider("OpenWeatherMap", "weather", payload=make_weather())
        news = RendezvousProvider("NewsAPI", "news", payload=["headline"])
        weather.partner, news.partner = news, weather
        return await make_service(weather, news).aggregate(
            AggregationRequest(city="London", query="technology")
        )

    response = asyncio.run(scenario())

    assert response.errors == []
    assert set(response.data) == {"weather", "news"}


def test_cancellation_propagates_to_provider_calls(make_service):
    class BlockingProvider(FakeNewsProvider):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.started = asyncio.Event()
            self.cancelled = False

        async def fetch(self, query, page=1, page_size=10):
            self.started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
            return self.payload

    async def scenario():
        provider = BlockingProvider("NewsAPI", "news", payload=[])
        task = asyncio.create_task(make_service(provider).aggregate(AggregationRequest(query="technology")))
        await asyncio.wait_for(provider.started.wait(), timeout=1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return provider

    provider = asyncio.run(scenario())

    assert provider.cancelled


def test_registered_categories_and_sort_fields(make_service):
    service = make_service(weather_provider(), news_provider())

    assert service.registered_categories() == ["weather", "news"]
    assert service.sort_fields() == ["date"]


def test_initialize_keeps_injected_providers(make_service):
    news = news_provider()
    service = make_service(news)

    async def lifecycle():
        await service.initialize()
        await service.shutdown()

    asyncio.run(lifecycle())

    assert service.providers == [news]
