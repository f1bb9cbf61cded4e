"""
NewsAPI data provider implementation.
Provides news articles matching a search query.
"""

from typing import Any, Dict, List, Optional
import httpx

from .base import BaseDataProvider, SortableProvider, parse_timestamp, sort_records
from ..api.schemas import NewsArticle, Payload
from ..core.config import settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class NewsApiProvider(BaseDataProvider, SortableProvider):
    """NewsAPI provider for the news category."""

    supported_sort_fields = frozenset({"date"})

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(
            name="NewsAPI",
            category="news",
            base_url=base_url or settings.newsapi_base_url,
            api_key=api_key if api_key is not None else settings.newsapi_api_key,
            transport=transport
        )

    async def fetch(self, query: str, page: int = 1, page_size: int = 10) -> Optional[List[NewsArticle]]:
        """Search articles matching the query, newest first upstream."""
        if not query or not query.strip():
            logger.warning("Query parameter is empty, skipping news fetch")
            return []

        logger.info("Fetching news articles", extra={"provider": self.name, "query": query})

        data = await self._make_request(
            url=f"{self.base_url}/everything",
            params={
                "q": query,
                "apiKey": self.api_key,
                "page": page,
                "pageSize": page_size,
                "sortBy": "publishedAt"
            }
        )

        articles = (data or {}).get('articles')
        if articles is None:
            logger.warning("Received response without articles", extra={"provider": self.name})
            return []

        return [self._parse_article(article) for article in articles if article]

    def _parse_article(self, article: Dict[str, Any]) -> NewsArticle:
        source = article.get('source') or {}
        published = article.get('publishedAt')

        return NewsArticle(
            title=article.get('title') or "",
            description=article.get('description') or "",
            author=article.get('author') or "",
            source=source.get('name') or "",
            url=article.get('url') or "",
            image_url=article.get('urlToImage') or "",
            published_at=parse_timestamp(published)
        )

    def sort(self, payload: Optional[Payload], field: str, order: str) -> Optional[Payload]:
        if field.lower() == "date":
            return sort_records(payload, "published_at", order)
        return payload

