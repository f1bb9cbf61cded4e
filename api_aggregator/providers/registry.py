"""
Provider registry for API Aggregator.
The set of providers is fixed at startup; adding an upstream means
adding its class to DEFAULT_PROVIDERS.
"""

from typing import Callable, List, Sequence

from .base import BaseDataProvider, SortableProvider
from .github_provider import GitHubProvider
from .news_provider import NewsApiProvider
from .weather_provider import OpenWeatherMapProvider

DEFAULT_PROVIDERS: Sequence[Callable[[], BaseDataProvider]] = (
    OpenWeatherMapProvider,
    NewsApiProvider,
    GitHubProvider,
)


def create_default_providers() -> List[BaseDataProvider]:
    """Instantiate every built-in provider from the current settings."""
    return [factory() for factory in DEFAULT_PROVIDERS]


def registered_categories(providers: Sequence[BaseDataProvider]) -> List[str]:
    """Lowercase categories served by the given providers, in registry order."""
    categories: List[str] = []
    for provider in providers:
        category = provider.category.lower()
        if category not in categories:
            categories.append(category)
    return categories


def supported_sort_fields(providers: Sequence[BaseDataProvider]) -> List[str]:
    """Union of the sort fields declared by the sortable providers."""
    fields = set()
    for provider in providers:
        if isinstance(provider, SortableProvider):
            fields.update(field.lower() for field in provider.supported_sort_fields)
    return sorted(fields)
