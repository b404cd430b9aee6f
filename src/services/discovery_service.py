"""Discovery engine facade.

The single entry point for callers: cache lookup, coordinator on miss,
cache store, metrics. ``build_engine`` wires a production engine from
EngineSettings.
"""

import time
from typing import Any, Dict, Optional

import structlog

from src.models.config import EngineSettings
from src.models.discovery import DiscoveryConfiguration, DiscoveryResult
from src.models.paper import ProviderType, SourcePaper
from src.observability.context import discovery_context
from src.observability.metrics import DiscoveryMetrics
from src.services.admission_controller import AdmissionRegistry
from src.services.cache_service import DiscoveryCache
from src.services.discovery_coordinator import DiscoveryCoordinator
from src.services.durable_store import DiskCacheStore
from src.services.providers.base import ProviderClient
from src.services.providers.citation_network import CitationNetworkProvider
from src.services.providers.semantic_relevance import SemanticRelevanceProvider
from src.services.providers.trend_discovery import TrendDiscoveryProvider

logger = structlog.get_logger()


class DiscoveryEngine:
    """Related-paper discovery with two-tier caching.

    Never raises for provider failures: a result whose providers all failed
    or were skipped comes back with status FAILED and no candidates.
    Raises ValueError only for programmer errors (missing source paper).
    """

    def __init__(
        self,
        coordinator: DiscoveryCoordinator,
        cache: DiscoveryCache,
        metrics: Optional[DiscoveryMetrics] = None,
        default_config: Optional[DiscoveryConfiguration] = None,
    ):
        self.coordinator = coordinator
        self.cache = cache
        self.metrics = metrics
        self.default_config = default_config or DiscoveryConfiguration()

    async def discover(
        self,
        source: SourcePaper,
        config: Optional[DiscoveryConfiguration] = None,
        user_id: Optional[str] = None,
    ) -> DiscoveryResult:
        """Discover papers related to source.

        Args:
            source: Paper to find related work for
            config: Discovery options; the engine default when omitted
            user_id: Caller's user id, passed through to logs only

        Returns:
            Cached or freshly assembled DiscoveryResult
        """
        if source is None:
            raise ValueError("source paper is required")
        config = config or self.default_config
        fingerprint = config.fingerprint(source.paper_id)

        with discovery_context(paper_id=source.paper_id, user_id=user_id):
            cached = self.cache.get(source.paper_id, fingerprint)
            if cached is not None:
                if self.metrics:
                    self.metrics.discovery_cached()
                logger.info(
                    "discovery_served_from_cache",
                    status=cached.status.value,
                    candidates=len(cached.candidates),
                )
                return cached

            started = time.monotonic()
            result = await self.coordinator.discover(source, config)
            if self.metrics:
                self.metrics.discovery_completed(
                    result.status.value,
                    time.monotonic() - started,
                    len(result.candidates),
                )
            self.cache.store(source.paper_id, fingerprint, result)
            return result

    def invalidate(self, paper_id: str) -> int:
        """Remove all cached results for a paper"""
        return self.cache.invalidate_all(paper_id)

    def stats(self) -> Dict[str, Any]:
        """Read-only operational snapshot"""
        return {
            "cache": self.cache.stats().as_dict(),
            "admission": {
                name: snapshot.model_dump()
                for name, snapshot in self.coordinator.admission.snapshots().items()
            },
            "providers": sorted(p.value for p in self.coordinator.providers),
            "max_concurrency": self.coordinator.max_concurrency,
        }

    async def close(self) -> None:
        for provider in self.coordinator.providers.values():
            await provider.close()
        self.cache.close()
        logger.info("discovery_engine_closed")


def build_providers(settings: EngineSettings) -> Dict[ProviderType, ProviderClient]:
    """One client per provider variant, configured from settings"""
    providers_cfg = settings.providers
    common = {
        "retry_config": providers_cfg.retry,
        "request_timeout": settings.concurrency.request_timeout_seconds,
        "connection_limit": settings.concurrency.http_connection_limit,
    }
    return {
        ProviderType.CITATION_NETWORK: CitationNetworkProvider(
            base_url=providers_cfg.crossref_base_url,
            mailto=providers_cfg.crossref_mailto,
            **common,
        ),
        ProviderType.SEMANTIC_RELEVANCE: SemanticRelevanceProvider(
            base_url=providers_cfg.semantic_scholar_base_url,
            api_key=providers_cfg.semantic_scholar_api_key,
            **common,
        ),
        ProviderType.TREND_DISCOVERY: TrendDiscoveryProvider(
            base_url=providers_cfg.perplexity_base_url,
            api_key=providers_cfg.perplexity_api_key,
            model=providers_cfg.perplexity_model,
            **common,
        ),
    }


def build_engine(
    settings: EngineSettings,
    metrics: Optional[DiscoveryMetrics] = None,
    providers: Optional[Dict[ProviderType, ProviderClient]] = None,
) -> DiscoveryEngine:
    """Wire a DiscoveryEngine from configuration"""
    metrics = metrics or DiscoveryMetrics()
    admission = AdmissionRegistry.from_config(
        {p: settings.providers.admission_for(p) for p in ProviderType}
    )

    durable = None
    if settings.cache.enabled and settings.cache.cache_dir:
        durable = DiskCacheStore(
            settings.cache.cache_dir, size_limit_mb=settings.cache.durable_size_limit_mb
        )
    cache = DiscoveryCache(settings.cache, durable=durable, metrics=metrics)

    coordinator = DiscoveryCoordinator(
        providers=providers if providers is not None else build_providers(settings),
        admission=admission,
        metrics=metrics,
        max_concurrency=settings.concurrency.max_concurrent_provider_calls,
    )
    logger.info(
        "discovery_engine_built",
        providers=sorted(p.value for p in coordinator.providers),
        cache_dir=settings.cache.cache_dir if durable else None,
    )
    return DiscoveryEngine(
        coordinator=coordinator,
        cache=cache,
        metrics=metrics,
        default_config=settings.discovery,
    )
