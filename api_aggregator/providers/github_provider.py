"""
GitHub data provider implementation.
Provides repository search results.
"""

from typing import Any, Dict, List, Optional
import httpx

from .base import BaseDataProvider, SortableProvider, parse_timestamp, sort_records
from ..api.schemas import GitHubRepository, Payload
from ..core.config import settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)

SORT_ATTRIBUTES = {
    "date": "updated_at",
    "stars": "stars"
}


class GitHubProvider(BaseDataProvider, SortableProvider):
    """GitHub repository search provider for the github category."""

    supported_sort_fields = frozenset(SORT_ATTRIBUTES)

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(
            name="GitHub",
            category="github",
            base_url=base_url or settings.github_base_url,
            api_key=token if token is not None else settings.github_token,
            transport=transport
        )

    def _get_default_headers(self) -> Dict[str, str]:
        headers = super()._get_default_headers()
        headers['Accept'] = 'application/vnd.github+json'
        return headers

    def _get_auth_headers(self) -> Optional[Dict[str, str]]:
        """GitHub works anonymously; a token only raises the rate limit."""
        if self.api_key:
            return {'Authorization': f'Bearer {self.api_key}'}
        return None

    async def fetch(self, query: str, page: int = 1, page_size: int = 10) -> Optional[List[GitHubRepository]]:
        """Search repositories matching the query, most starred first upstream."""
        if not query or not query.strip():
            logger.warning("Query parameter is empty, skipping GitHub fetch")
            return []

        logger.info("Fetching GitHub repositories", extra={"provider": self.name, "query": query})

        data = await self._make_request(
            url=f"{self.base_url}/search/repositories",
            params={
                "q": query,
                "sort": "stars",
                "order": "desc",
                "page": page,
                "per_page": page_size
            }
        )

        items = (data or {}).get('items')
        if items is None:
            logger.warning("Received response without items", extra={"provider": self.name})
            return []

        return [self._parse_repository(item) for item in items if item]

    def _parse_repository(self, item: Dict[str, Any]) -> GitHubRepository:
        return GitHubRepository(
            name=item.get('name') or "",
            full_name=item.get('full_name') or "",
            description=item.get('description') or "",
            url=item.get('html_url') or "",
            language=item.get('language') or "",
            stars=item.get('stargazers_count') or 0,
            forks=item.get('forks_count') or 0,
            open_issues=item.get('open_issues_count') or 0,
            created_at=parse_timestamp(item.get('created_at')),
            updated_at=parse_timestamp(item.get('updated_at'))
        )

    def sort(self, payload: Optional[Payload], field: str, order: str) -> Optional[Payload]:
        attribute = SORT_ATTRIBUTES.get(field.lower())
        if attribute is None:
            return payload
        return sort_records(payload, attribute, order)
