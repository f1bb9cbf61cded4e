"""
Data aggregator service for API Aggregator.
Fans a request out to every matching provider concurrently and merges
their payloads and failures into one response.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..api.schemas import AggregatedResponse, AggregationRequest, Payload, utc_now
from ..core.logging_config import create_logger
from ..providers.base import BaseDataProvider, SortableProvider
from ..providers.registry import create_default_providers, registered_categories, supported_sort_fields
from .cache import CacheService, cache_service
from .resilience import ResiliencePipeline, resilience_pipeline

logger = create_logger(__name__)

ALL_CATEGORIES = "all"
WEATHER_CATEGORY = "weather"
DEFAULT_SORT_ORDER = "desc"


@dataclass
class ProviderOutcome:
    """What one provider task produced."""
    provider: BaseDataProvider
    payload: Optional[Payload] = None
    error: Optional[str] = None


class AggregationService:
    """Service that orchestrates concurrent fetching from multiple providers."""

    def __init__(
        self,
        providers: Optional[Sequence[BaseDataProvider]] = None,
        cache: Optional[CacheService] = None,
        resilience: Optional[ResiliencePipeline] = None
    ):
        self._providers: List[BaseDataProvider] = list(providers or [])
        self.cache = cache if cache is not None else cache_service
        self.resilience = resilience if resilience is not None else resilience_pipeline

    @property
    def providers(self) -> List[BaseDataProvider]:
        return list(self._providers)

    async def initialize(self) -> None:
        """Build the default provider registry if none was supplied and open connections."""
        if not self._providers:
            self._providers = create_default_providers()

        for provider in self._providers:
            await provider.connect()
            logger.info("Initialized provider", extra={
                "provider": provider.name,
                "category": provider.category
            })

        logger.info("Aggregation service initialized", extra={
            "providers": [provider.name for provider in self._providers]
        })

    async def shutdown(self) -> None:
        """Close every provider connection."""
        for provider in self._providers:
            try:
                await provider.disconnect()
            except Exception as e:
                logger.warning("Error disconnecting provider", extra={
                    "provider": provider.name,
                    "error": str(e)
                })

        logger.info("Aggregation service shutdown complete")

    def registered_categories(self) -> List[str]:
        return registered_categories(self._providers)

    def sort_fields(self) -> List[str]:
        return supported_sort_fields(self._providers)

    async def aggregate(self, request: AggregationRequest) -> AggregatedResponse:
        """
        Fetch and merge data from every provider matching the request.

        Provider failures never escape: each becomes an entry in the
        response's error list. Cancelling the caller cancels every
        in-flight provider task and produces no response.
        """
        category = (request.category or ALL_CATEGORIES).strip().lower()

        logger.info("Starting aggregation", extra={
            "city": request.city,
            "query": request.query,
            "category": category
        })

        candidates = self._select_providers(category)

        tasks = []
        for provider in candidates:
            query = self._resolve_query(provider, request)
            if not query:
                logger.debug("Skipping provider without query", extra={
                    "provider": provider.name,
                    "category": provider.category
                })
                continue
            tasks.append(self._fetch_from_provider(provider, query, request))

        # Each task converts its own failures, so gather only raises on cancellation
        outcomes = await asyncio.gather(*tasks)

        response = AggregatedResponse()
        for outcome in outcomes:
            if outcome.error is not None:
                response.errors.append(outcome.error)
                continue

            if outcome.payload is None:
                continue

            response.data[outcome.provider.category] = self._apply_sort(outcome.provider, outcome.payload, request)

        response.timestamp = utc_now()

        logger.info("Aggregation complete", extra={
            "sources": list(response.data.keys()),
            "error_count": len(response.errors)
        })
        return response

    def _select_providers(self, category: str) -> List[BaseDataProvider]:
        if category == ALL_CATEGORIES:
            return list(self._providers)
        return [provider for provider in self._providers if provider.category.lower() == category]

    @staticmethod
    def _resolve_query(provider: BaseDataProvider, request: AggregationRequest) -> Optional[str]:
        """Weather providers take the city, everything else takes the search query."""
        if provider.category.lower() == WEATHER_CATEGORY:
            query = request.city
        else:
            query = request.query

        if query is None or not query.strip():
            return None
        return query

    async def _fetch_from_provider(
        self,
        provider: BaseDataProvider,
        query: str,
        request: AggregationRequest
    ) -> ProviderOutcome:
        cache_key = f"{provider.category}:{query}"

        async def load() -> Optional[Payload]:
            result = await self.resilience.call(provider, query, request.page, request.page_size)
            return result.unwrap()

        try:
            payload = await self.cache.get_or_create(cache_key, load)
        except Exception as e:
            logger.error("Error fetching data from provider", extra={
                "provider": provider.name,
                "error": str(e)
            })
            return ProviderOutcome(provider=provider, error=f"Failed to fetch from {provider.name}")

        return ProviderOutcome(provider=provider, payload=payload)

    @staticmethod
    def _apply_sort(provider: BaseDataProvider, payload: Payload, request: AggregationRequest) -> Payload:
        sort_by = request.sort_by
        if not sort_by or not sort_by.strip():
            return payload
        if not isinstance(provider, SortableProvider) or not provider.supports_sort_field(sort_by):
            return payload

        sort_order = request.sort_order or DEFAULT_SORT_ORDER
        logger.debug("Applying sort", extra={
            "provider": provider.name,
            "sort_by": sort_by,
            "sort_order": sort_order
        })
        try:
            return provider.sort(payload, sort_by, sort_order)
        except Exception as e:
            # The fetch succeeded, so the data is still returned in upstream order
            logger.warning("Sort failed, returning unsorted payload", extra={
                "provider": provider.name,
                "sort_by": sort_by,
                "error": str(e)
            })
            return payload


# Global aggregation service instance
aggregator_service = AggregationService()
