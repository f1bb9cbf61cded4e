"""
Abstract base classes for data providers in API Aggregator.
Defines the fetch contract every provider implements, the optional
sorting capability and the provider error hierarchy.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional
import httpx

from ..api.schemas import Payload, utc_now
from ..core.logging_config import create_logger

logger = create_logger(__name__)

# Upstream statuses worth retrying
TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, provider: str):
        self.message = message
        self.provider = provider
        super().__init__(self.message)


class TransientProviderError(ProviderError):
    """Network-class failure that may succeed on a later attempt."""
    pass


class ProviderTimeoutError(TransientProviderError):
    """Exception raised when a single attempt exceeds its time limit."""
    pass


class AuthenticationError(ProviderError):
    """Exception raised when provider authentication fails."""
    pass


class CircuitOpenError(ProviderError):
    """Exception raised when the provider's circuit breaker rejects a call."""
    pass


class BaseDataProvider(ABC):
    """Abstract base class for aggregated data providers."""

    def __init__(
        self,
        name: str,
        category: str,
        base_url: str,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.name = name
        self.category = category
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.client: Optional[httpx.AsyncClient] = None
        self._transport = transport

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()

    async def connect(self) -> None:
        """Initialize HTTP client connection."""
        if self.client is None:
            # Per-attempt time limit is enforced by the resilience pipeline
            timeout = httpx.Timeout(30.0, connect=10.0)
            limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)

            self.client = httpx.AsyncClient(
                timeout=timeout,
                limits=limits,
                headers=self._get_default_headers(),
                follow_redirects=True,
                transport=self._transport
            )

            logger.debug("Connected to provider", extra={"provider": self.name})

    async def disconnect(self) -> None:
        """Close HTTP client connection."""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.debug("Disconnected from provider", extra={"provider": self.name})

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default HTTP headers for requests."""
        return {
            'User-Agent': 'ApiAggregator/1.0',
            'Accept': 'application/json'
        }

    def _get_auth_headers(self) -> Optional[Dict[str, str]]:
        """Get authentication headers for this provider."""
        return None

    async def _make_request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        """
        Perform a single GET request and classify its failure modes.

        Retrying is left to the resilience pipeline, so every failure is
        raised immediately as either a transient or a permanent error.

        Raises:
            TransientProviderError: Connection failures, timeouts, 408/429/5xx
            AuthenticationError: 401 or 403 from the upstream
            ProviderError: Any other 4xx status or an unparseable body
        """
        if not self.client:
            await self.connect()

        request_headers: Dict[str, str] = {}
        auth_headers = self._get_auth_headers()
        if auth_headers:
            request_headers.update(auth_headers)
        if headers:
            request_headers.update(headers)

        logger.debug("Making request to provider", extra={
            "provider": self.name,
            "url": url
        })

        try:
            response = await self.client.get(url, params=params, headers=request_headers)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"Request timeout for {self.name}: {str(e)}", self.name) from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"Connection error for {self.name}: {str(e)}", self.name) from e

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientProviderError(
                f"{self.name} responded with status {response.status_code}",
                self.name
            )

        if response.status_code in (401, 403):
            raise AuthenticationError(f"Authentication failed for {self.name}", self.name)

        if response.is_error:
            raise ProviderError(
                f"{self.name} rejected the request with status {response.status_code}",
                self.name
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON response from {self.name}: {str(e)}", self.name) from e

        logger.debug("Received response from provider", extra={
            "provider": self.name,
            "status_code": response.status_code,
            "response_size": len(response.content)
        })
        return data

    @abstractmethod
    async def fetch(self, query: str, page: int = 1, page_size: int = 10) -> Optional[Payload]:
        """
        Fetch data for the given query.

        Args:
            query: City name or search query depending on the category
            page: Page number, passed through to the upstream
            page_size: Items per page, passed through to the upstream

        Returns:
            The provider payload, or None when the upstream had no data

        Raises:
            ProviderError: If the upstream call fails
        """
        pass


class SortableProvider(ABC):
    """Optional capability for providers whose payload is an ordered list."""

    supported_sort_fields: FrozenSet[str] = frozenset()

    def supports_sort_field(self, field: str) -> bool:
        """Case-insensitive check against the declared sort fields."""
        return field.lower() in self.supported_sort_fields

    @abstractmethod
    def sort(self, payload: Optional[Payload], field: str, order: str) -> Optional[Payload]:
        """
        Return the payload reordered by field.

        Must not mutate the input. Unsupported fields and non-list
        payloads are returned unchanged.
        """
        pass


def sort_records(payload: Optional[Payload], attribute: str, order: str) -> Optional[Payload]:
    """Sort a list payload by a record attribute without touching the input."""
    if not isinstance(payload, list):
        return payload
    descending = order.lower() == "desc"
    return sorted(payload, key=lambda record: getattr(record, attribute), reverse=descending)


def parse_timestamp(value: Optional[str]) -> datetime:
    """
    Parse an upstream ISO-8601 timestamp as an aware UTC-comparable datetime.

    Missing values fall back to now; values without an offset are taken as UTC.
    """
    if not value:
        return utc_now()
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
