"""
OpenWeatherMap data provider implementation.
Provides current weather conditions for a city.
"""

from typing import Any, Dict, Optional
import httpx

from .base import BaseDataProvider
from ..api.schemas import WeatherData
from ..core.config import settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class OpenWeatherMapProvider(BaseDataProvider):
    """OpenWeatherMap provider for the weather category."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(
            name="OpenWeatherMap",
            category="weather",
            base_url=base_url or settings.openweathermap_base_url,
            api_key=api_key if api_key is not None else settings.openweathermap_api_key,
            transport=transport
        )

    async def fetch(self, query: str, page: int = 1, page_size: int = 10) -> Optional[WeatherData]:
        """Get current weather for a city. Pagination does not apply here."""
        if not query or not query.strip():
            logger.warning("City parameter is empty, skipping weather fetch")
            return None

        logger.info("Fetching weather data", extra={"provider": self.name, "city": query})

        data = await self._make_request(
            url=f"{self.base_url}/weather",
            params={
                "q": query,
                "appid": self.api_key,
                "units": "metric"
            }
        )

        if not data:
            logger.warning("Received empty response from provider", extra={"provider": self.name})
            return None

        return self._parse_weather(data, query)

    def _parse_weather(self, data: Dict[str, Any], city: str) -> WeatherData:
        main = data.get('main') or {}
        wind = data.get('wind') or {}
        sys_info = data.get('sys') or {}
        conditions = data.get('weather') or [{}]
        first = conditions[0] if conditions else {}

        return WeatherData(
            city=data.get('name') or city,
            country=sys_info.get('country') or "",
            temperature=main.get('temp') or 0.0,
            feels_like=main.get('feels_like') or 0.0,
            humidity=main.get('humidity') or 0,
            description=first.get('description') or "",
            icon=first.get('icon') or "",
            wind_speed=wind.get('speed') or 0.0
        )
