from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from app.config import Settings
from app.services.cache import ResponseCache
from app.services.connectors.base import ExternalSourceClient
from app.services.connectors.google_books import GoogleBooksClient
from app.services.connectors.open_library import OpenLibraryClient
from app.services.health import HealthMonitor
from app.services.search import RelevanceStrategy, get_relevance_strategy
from app.services.source_state import SourceStateRegistry


@dataclass(frozen=True)
class FallbackConfig:
    sufficiency_threshold: int = 10
    call_timeout: float = 5.0
    overall_deadline: float = 8.0
    baseline_score: float = 0.9
    priority_step: float = 0.1
    max_page_size: int = 50
    max_query_length: int = 100

    @classmethod
    def from_settings(cls, settings: Settings) -> "FallbackConfig":
        return cls(
            sufficiency_threshold=settings.search_sufficiency_threshold,
            call_timeout=settings.external_call_timeout_seconds,
            overall_deadline=settings.external_overall_deadline_seconds,
            baseline_score=settings.external_baseline_score,
            priority_step=settings.external_priority_step,
            max_page_size=settings.search_max_page_size,
            max_query_length=settings.search_max_query_length,
        )


def build_source_clients(settings: Settings) -> list[ExternalSourceClient]:
    clients: list[ExternalSourceClient] = []
    for name in settings.external_source_names:
        if name == OpenLibraryClient.name:
            clients.append(
                OpenLibraryClient(
                    base_url=settings.open_library_base_url,
                    covers_url=settings.open_library_covers_url,
                    max_results=settings.external_max_results_per_source,
                )
            )
        elif name == GoogleBooksClient.name:
            clients.append(
                GoogleBooksClient(
                    base_url=settings.google_books_base_url,
                    api_key=settings.google_books_api_key,
                    max_results=settings.external_max_results_per_source,
                )
            )
    return clients


@dataclass
class SearchContext:
    """Everything that outlives a single request: source state, cache, clients."""

    registry: SourceStateRegistry
    cache: ResponseCache
    clients: list[ExternalSourceClient]
    strategy: RelevanceStrategy
    config: FallbackConfig = field(default_factory=FallbackConfig)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        clients: list[ExternalSourceClient] | None = None,
    ) -> "SearchContext":
        return cls(
            registry=SourceStateRegistry.from_settings(settings),
            cache=ResponseCache(default_ttl=settings.cache_ttl_seconds, max_entries=settings.cache_max_entries),
            clients=build_source_clients(settings) if clients is None else clients,
            strategy=get_relevance_strategy(settings.catalog_search_strategy),
            config=FallbackConfig.from_settings(settings),
        )

    @property
    def source_names(self) -> list[str]:
        return [client.source_name() for client in self.clients]

    def health_monitor(self) -> HealthMonitor:
        return HealthMonitor(self.registry, self.source_names)

    async def sweep_cache_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.cache.sweep()

    async def aclose(self) -> None:
        for client in self.clients:
            await client.aclose()
