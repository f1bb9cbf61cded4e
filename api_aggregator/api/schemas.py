"""
Pydantic schemas for API Aggregator Service.
Provider payloads, aggregation request/response and statistics models.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# Provider payloads

class WeatherData(BaseModel):
    """Current weather conditions for a city."""
    city: str = Field(..., description="City name as reported by the provider")
    country: str = Field("", description="ISO country code")
    temperature: float = Field(0.0, description="Temperature in Celsius")
    feels_like: float = Field(0.0, description="Perceived temperature in Celsius")
    humidity: int = Field(0, description="Relative humidity in percent")
    description: str = Field("", description="Weather condition description")
    icon: str = Field("", description="Provider icon code")
    wind_speed: float = Field(0.0, description="Wind speed in m/s")
    timestamp: datetime = Field(default_factory=utc_now, description="Fetch timestamp")


class NewsArticle(BaseModel):
    """A single news article."""
    title: str = ""
    description: str = ""
    author: str = ""
    source: str = ""
    url: str = ""
    image_url: str = ""
    published_at: datetime = Field(default_factory=utc_now, description="Publication time")


class GitHubRepository(BaseModel):
    """A GitHub repository search hit."""
    name: str = ""
    full_name: str = ""
    description: str = ""
    url: str = ""
    language: str = ""
    stars: int = 0
    forks: int = 0
    open_issues: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# A provider returns either a single record or an ordered list of records
Payload = Union[BaseModel, List[BaseModel]]


# Aggregation

class AggregationRequest(BaseModel):
    """Parameters of one aggregation call."""
    city: Optional[str] = Field(None, description="City for weather data")
    query: Optional[str] = Field(None, description="Search query for all non-weather providers")
    category: Optional[str] = Field(None, description="Category filter, 'all' when absent")
    sort_by: Optional[str] = Field(None, description="Field to sort list payloads by")
    sort_order: Optional[str] = Field(None, description="asc or desc, desc when absent")
    page: int = Field(1, description="Page number, passed through to providers")
    page_size: int = Field(10, description="Page size, passed through to providers")


class AggregatedResponse(BaseModel):
    """Merged result of one aggregation call."""
    data: Dict[str, Any] = Field(default_factory=dict, description="Payload per category")
    errors: List[str] = Field(default_factory=list, description="Per-provider failure messages")
    timestamp: datetime = Field(default_factory=utc_now, description="Assembly timestamp")


# Statistics

class PerformanceBuckets(BaseModel):
    """Request counts partitioned by latency thresholds."""
    fast: int = 0
    average: int = 0
    slow: int = 0


class ApiStatistics(BaseModel):
    """Latency statistics for one provider over its sliding window."""
    api_name: str
    total_requests: int
    average_response_time_ms: float
    performance_buckets: PerformanceBuckets = Field(default_factory=PerformanceBuckets)


class StatisticsResponse(BaseModel):
    """Statistics for every provider with at least one record."""
    apis: List[ApiStatistics] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now)


# Service

class CircuitBreakerStatus(BaseModel):
    """Model for circuit breaker status."""
    provider: str = Field(..., description="Provider name")
    state: Literal["closed", "open", "half_open"] = Field(..., description="Breaker state")
    failure_count: int = Field(0, description="Number of consecutive transient failures")
    opened_at: Optional[datetime] = Field(None, description="When the breaker last opened")


class HealthResponse(BaseModel):
    """Model for health check response."""
    status: Literal["healthy", "degraded"] = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=utc_now, description="Health check timestamp")
    version: str = Field(..., description="Service version")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    providers: List[str] = Field(default_factory=list, description="Registered provider names")
    circuits: List[CircuitBreakerStatus] = Field(default_factory=list, description="Circuit breaker status")
    cache_entries: int = Field(0, description="Number of live cache entries")
    tracked_apis: List[str] = Field(default_factory=list, description="Providers with recorded requests")


class ErrorResponse(BaseModel):
    """Model for error responses."""
    error: str = Field(..., description="Error message")
    error_code: str = Field(..., description="Error code")
    timestamp: datetime = Field(default_factory=utc_now, description="Error timestamp")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
