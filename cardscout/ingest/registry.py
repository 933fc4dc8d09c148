"""Explicit registry of ranking, stats and marketplace connectors."""

import logging
from typing import Optional

import httpx

from cardscout.config import Settings, settings as default_settings
from cardscout.ingest.base import (
    BaseMarketplace,
    BaseRankingSource,
    BaseStatsSource,
    ProviderRole,
)
from cardscout.ingest.marketplaces import COMCMarketplace, StockXMarketplace, eBayMarketplace
from cardscout.ingest.rankings import FanGraphsSource, MLBPipelineSource, ProspectusSource
from cardscout.ingest.stats import MiLBStatsSource

logger = logging.getLogger(__name__)


class ConnectorRegistry:
    """
    Connectors injected into the orchestrator.

    Instances are owned by the registry rather than held as module-level
    singletons, so tests and alternative deployments can assemble their own.
    """

    def __init__(self):
        self._ranking_sources: dict[ProviderRole, BaseRankingSource] = {}
        self._marketplaces: dict[str, BaseMarketplace] = {}
        self.stats_source: Optional[BaseStatsSource] = None

    def register_ranking_source(self, role: ProviderRole, source: BaseRankingSource) -> None:
        """Register the ranking provider filling a fusion role."""
        role = ProviderRole(role)
        self._ranking_sources[role] = source
        logger.info(f"Registered ranking source {source.provider} as {role.value}")

    def register_stats_source(self, source: BaseStatsSource) -> None:
        self.stats_source = source
        logger.info(f"Registered stats source {source.provider}")

    def register_marketplace(self, marketplace: BaseMarketplace) -> None:
        """Register a marketplace; a later registration for the same platform replaces it."""
        self._marketplaces[marketplace.platform] = marketplace
        logger.info(f"Registered marketplace {marketplace.platform}")

    @property
    def ranking_sources(self) -> dict[ProviderRole, BaseRankingSource]:
        return dict(self._ranking_sources)

    @property
    def marketplaces(self) -> list[BaseMarketplace]:
        return list(self._marketplaces.values())

    def list_platforms(self) -> list[str]:
        return list(self._marketplaces.keys())

    async def close(self) -> None:
        """Close all connector HTTP clients."""
        connectors = [
            *self._ranking_sources.values(),
            *self._marketplaces.values(),
        ]
        if self.stats_source:
            connectors.append(self.stats_source)
        for connector in connectors:
            try:
                await connector.close()
            except Exception as e:
                logger.error(f"Error closing connector {connector.provider}: {e}")


def build_default_registry(
    config: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ConnectorRegistry:
    """
    Build the registry from configured endpoints.

    Unconfigured providers are still registered and return empty snapshots, so
    run summaries always report every provider.
    """
    config = config or default_settings
    registry = ConnectorRegistry()

    registry.register_ranking_source(
        ProviderRole.PRIMARY, FanGraphsSource(config.fangraphs_url, client=client)
    )
    registry.register_ranking_source(
        ProviderRole.SECONDARY_A, MLBPipelineSource(config.mlb_pipeline_url, client=client)
    )
    registry.register_ranking_source(
        ProviderRole.SECONDARY_B, ProspectusSource(config.prospectus_url, client=client)
    )
    registry.register_stats_source(MiLBStatsSource(config.milb_stats_url, client=client))

    registry.register_marketplace(
        eBayMarketplace(config.ebay_search_url, client=client, app_token=config.ebay_app_token)
    )
    registry.register_marketplace(COMCMarketplace(config.comc_search_url, client=client))
    registry.register_marketplace(StockXMarketplace(config.stockx_search_url, client=client))

    return registry
