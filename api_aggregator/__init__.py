"""
API Aggregator Service
Fans a single request out to several external data providers and merges the results.
"""

__version__ = "1.0.0"
__author__ = "API Aggregator Team"
__description__ = "Concurrent API aggregation service with cache, retry and circuit breaker resilience"
