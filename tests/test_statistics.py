from concurrent.futures import ThreadPoolExecutor

import pytest

from api_aggregator.services.statistics import StatisticsService


def test_unknown_api_has_no_statistics(statistics):
    assert statistics.get_api_statistics("GitHub") is None
    assert statistics.get_statistics().apis == []


def test_summary_for_recorded_calls(statistics):
    statistics.record_request("NewsAPI", 100, True)
    statistics.record_request("NewsAPI", 200, False)

    stats = statistics.get_api_statistics("NewsAPI")

    assert stats.api_name == "NewsAPI"
    assert stats.total_requests == 2
    assert stats.average_response_time_ms == 150.0


def test_average_is_rounded_to_two_decimals(statistics):
    for latency in (1, 2, 2):
        statistics.record_request("GitHub", latency, True)

    assert statistics.get_api_statistics("GitHub").average_response_time_ms == 1.67


def test_performance_bucket_boundaries(statistics):
    for latency in (0, 499.99, 500, 999.99, 1000, 5000):
        statistics.record_request("OpenWeatherMap", latency, True)

    buckets = statistics.get_api_statistics("OpenWeatherMap").performance_buckets

    assert buckets.fast == 2
    assert buckets.average == 2
    assert buckets.slow == 2


def test_window_keeps_only_latest_records():
    statistics = StatisticsService(window_size=10)

    for latency in range(15):
        statistics.record_request("NewsAPI", latency, True)

    stats = statistics.get_api_statistics("NewsAPI")
    assert stats.total_requests == 10
    # Records 5..14 survive
    assert stats.average_response_time_ms == 9.5


def test_windows_are_per_provider():
    statistics = StatisticsService(window_size=3)

    for _ in range(5):
        statistics.record_request("NewsAPI", 10, True)
    statistics.record_request("GitHub", 20, True)

    assert statistics.get_api_statistics("NewsAPI").total_requests == 3
    assert statistics.get_api_statistics("GitHub").total_requests == 1
    assert sorted(statistics.tracked_apis()) == ["GitHub", "NewsAPI"]


def test_concurrent_records_are_all_counted():
    statistics = StatisticsService(window_size=1000)

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(lambda i: statistics.record_request("NewsAPI", i % 1200, True), range(1000)))

    stats = statistics.get_api_statistics("NewsAPI")
    buckets = stats.performance_buckets
    assert stats.total_requests == 1000
    assert buckets.fast + buckets.average + buckets.slow == 1000


def test_get_statistics_lists_every_tracked_api(statistics):
    statistics.record_request("NewsAPI", 10, True)
    statistics.record_request("GitHub", 700, True)

    response = statistics.get_statistics()

    by_name = {api.api_name: api for api in response.apis}
    assert set(by_name) == {"NewsAPI", "GitHub"}
    assert by_name["GitHub"].performance_buckets.average == 1
    assert response.generated_at is not None


@pytest.mark.parametrize("kwargs", [
    {"window_size": 0},
    {"fast_threshold_ms": 1000, "slow_threshold_ms": 500},
])
def test_rejects_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        StatisticsService(**kwargs)
