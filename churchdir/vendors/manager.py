"""Registry of configured acquisition sources with a switchable default."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from churchdir.core.config import Settings
from churchdir.models import ChurchSearchParams, ChurchSearchResult, RawChurchRecord
from churchdir.vendors.base import ChurchDataProvider, ProviderError, get_details
from churchdir.vendors.csv_directory import CsvDirectoryProvider
from churchdir.vendors.google_places import GooglePlacesProvider
from churchdir.vendors.openstreetmap import OpenStreetMapProvider
from churchdir.vendors.serpapi_maps import SerpApiMapsProvider

logger = logging.getLogger(__name__)


class ProviderNotConfiguredError(ProviderError):
    """Raised when a provider is requested that is not registered."""


class ProviderManager:
    def __init__(self, providers: Iterable[ChurchDataProvider] = (), default_provider: str = "google_places") -> None:
        self._providers: Dict[str, ChurchDataProvider] = {}
        for provider in providers:
            self.register(provider)
        self._default = default_provider

    def register(self, provider: ChurchDataProvider) -> None:
        if not provider.is_configured():
            logger.debug("Skipping unconfigured provider %s", provider.name)
            return
        self._providers[provider.name] = provider

    @property
    def default_provider_name(self) -> str:
        return self._default

    def available_providers(self) -> List[str]:
        return list(self._providers)

    def get_provider(self, name: Optional[str] = None) -> ChurchDataProvider:
        key = name or self._default
        provider = self._providers.get(key)
        if provider is None:
            raise ProviderNotConfiguredError(f"Provider {key} is not configured")
        return provider

    def set_default_provider(self, name: str) -> None:
        if name not in self._providers:
            raise ProviderNotConfiguredError(f"Provider {name} is not configured")
        self._default = name

    def search_churches(self, params: ChurchSearchParams, provider: Optional[str] = None) -> ChurchSearchResult:
        return self.get_provider(provider).search_churches(params)

    def get_church_details(self, source_id: str, provider: Optional[str] = None) -> Optional[RawChurchRecord]:
        return get_details(self.get_provider(provider), source_id)

    def search_all_providers(self, params: ChurchSearchParams) -> List[Tuple[str, ChurchSearchResult]]:
        """Query every provider; a failing provider is logged and skipped."""
        results: List[Tuple[str, ChurchSearchResult]] = []
        for name, provider in self._providers.items():
            try:
                results.append((name, provider.search_churches(params)))
            except Exception as exc:  # noqa: BLE001
                logger.error("Error searching %s: %s", name, exc)
        return results


def create_provider_manager(settings: Settings) -> ProviderManager:
    providers = [
        GooglePlacesProvider(settings.google_places_api_key, default_radius_miles=settings.default_search_radius_miles),
        OpenStreetMapProvider(settings.osm_user_agent),
        SerpApiMapsProvider(settings.serpapi_api_key),
        CsvDirectoryProvider(settings.churches_csv_path),
    ]
    manager = ProviderManager(providers, default_provider=settings.default_provider)
    logger.info("Configured providers: %s", ", ".join(manager.available_providers()) or "none")
    return manager
