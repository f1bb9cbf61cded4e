"""
FastAPI endpoints for API Aggregator Service.
Aggregation, statistics and health routes.
"""

from datetime import datetime, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from ..api.schemas import (
    AggregatedResponse, AggregationRequest, ApiStatistics, ErrorResponse,
    HealthResponse, StatisticsResponse
)
from ..core.config import settings
from ..core.logging_config import create_logger
from ..providers.base import BaseDataProvider
from ..services.data_aggregator import ALL_CATEGORIES, WEATHER_CATEGORY, AggregationService, aggregator_service
from ..services.statistics import StatisticsService, statistics_service

logger = create_logger(__name__)

# Create API router
router = APIRouter()

# Application startup time for uptime calculation
app_start_time = datetime.now(timezone.utc)

VALID_SORT_ORDERS = {"asc", "desc"}
MAX_PAGE_SIZE = 100


def get_aggregation_service() -> AggregationService:
    return aggregator_service


def get_statistics_service() -> StatisticsService:
    return statistics_service


def _bad_request(message: str) -> JSONResponse:
    logger.info("Rejected aggregation request", extra={"reason": message})
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error=message, error_code="VALIDATION_ERROR").model_dump(mode="json")
    )


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_aggregation_request(request: AggregationRequest, service: AggregationService) -> Optional[str]:
    """Return the reason a request must be rejected, or None when it is valid."""
    if _is_blank(request.city) and _is_blank(request.query):
        return "At least one of 'city' or 'query' parameters is required."

    if request.page < 1:
        return "Page number must be greater than or equal to 1."

    if request.page_size < 1 or request.page_size > MAX_PAGE_SIZE:
        return f"Page size must be between 1 and {MAX_PAGE_SIZE}."

    valid_categories = sorted(service.registered_categories() + [ALL_CATEGORIES])
    if not _is_blank(request.category) and request.category.strip().lower() not in valid_categories:
        return (
            f"Invalid category '{request.category}'. "
            f"Valid categories are: {', '.join(valid_categories)}."
        )

    if not _is_blank(request.sort_order) and request.sort_order.lower() not in VALID_SORT_ORDERS:
        return f"Invalid sortOrder '{request.sort_order}'. Valid values are: asc, desc."

    if not _is_blank(request.sort_by):
        sort_fields = service.sort_fields()
        if request.sort_by.lower() not in sort_fields:
            return (
                f"Invalid sortBy '{request.sort_by}'. "
                f"Available sort fields are: {', '.join(sort_fields)}."
            )

    if not _is_blank(request.category) and request.category.strip().lower() == WEATHER_CATEGORY and _is_blank(request.city):
        return "The 'city' parameter is required when category is 'weather'."

    return None


@router.get("/api/aggregation", response_model=AggregatedResponse, responses={400: {"model": ErrorResponse}})
async def get_aggregated_data(
    city: Optional[str] = Query(None, description="City for weather data", examples=["London"]),
    query: Optional[str] = Query(None, description="Search query for news and GitHub"),
    category: Optional[str] = Query(None, description="weather, news, github or all (default)"),
    sort_by: Optional[str] = Query(None, alias="sortBy", description="Sort field, e.g. date or stars"),
    sort_order: Optional[str] = Query(None, alias="sortOrder", description="asc or desc (default)"),
    page: int = Query(1, description="Page number"),
    page_size: int = Query(10, alias="pageSize", description="Items per page"),
    service: AggregationService = Depends(get_aggregation_service)
):
    """
    Fetch and aggregate data from all configured external APIs.

    Providers that fail are reported in `errors`; the call itself still succeeds.
    """
    request = AggregationRequest(
        city=city,
        query=query,
        category=category,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size
    )

    reason = validate_aggregation_request(request, service)
    if reason:
        return _bad_request(reason)

    logger.info("Aggregation request received", extra={
        "city": city,
        "query": query,
        "category": category,
        "page": page,
        "page_size": page_size
    })

    return await service.aggregate(request)


@router.get("/api/statistics", response_model=StatisticsResponse)
async def get_statistics(statistics: StatisticsService = Depends(get_statistics_service)):
    """Statistics for every tracked external API."""
    logger.info("Statistics request received")
    return statistics.get_statistics()


@router.get("/api/statistics/{api_name}", response_model=ApiStatistics)
async def get_api_statistics(api_name: str, statistics: StatisticsService = Depends(get_statistics_service)):
    """Statistics for one external API, e.g. OpenWeatherMap, NewsAPI or GitHub."""
    logger.info("Statistics request received for API", extra={"api_name": api_name})

    stats = statistics.get_api_statistics(api_name)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"No statistics found for API: {api_name}")
    return stats


@router.get("/health", response_model=HealthResponse)
async def health_check(
    service: AggregationService = Depends(get_aggregation_service),
    statistics: StatisticsService = Depends(get_statistics_service)
):
    """
    Health check endpoint.
    Reports registered providers, circuit breaker states, cache size and
    the providers that have served requests.
    """
    providers: List[BaseDataProvider] = service.providers
    circuits = service.resilience.circuit_states()
    any_open = any(circuit.state == "open" for circuit in circuits)

    return HealthResponse(
        status="degraded" if any_open else "healthy",
        version=settings.app_version,
        uptime_seconds=(datetime.now(timezone.utc) - app_start_time).total_seconds(),
        providers=[provider.name for provider in providers],
        circuits=circuits,
        cache_entries=len(service.cache),
        tracked_apis=statistics.tracked_apis()
    )
