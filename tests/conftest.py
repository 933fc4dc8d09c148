"""Shared fixtures: a file-backed SQLite store and in-memory connectors."""

import asyncio
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from cardscout.db.models import Base
from cardscout.db.store import SQLRecordStore
from cardscout.ingest.base import (
    BaseMarketplace,
    BaseRankingSource,
    BaseStatsSource,
    FetchResult,
    MarketListing,
    ProviderRole,
    RankingRecord,
    StatsRecord,
)
from cardscout.ingest.registry import ConnectorRegistry


class StaticRankingSource(BaseRankingSource):
    """Ranking source returning a fixed snapshot."""

    def __init__(self, provider: str, records: list[RankingRecord], error: Optional[str] = None):
        super().__init__(endpoint="static://")
        self.provider = provider
        self.records = records
        self.error = error

    async def fetch(self) -> FetchResult[RankingRecord]:
        if self.error:
            return FetchResult(provider=self.provider, error=self.error)
        return FetchResult(provider=self.provider, records=list(self.records))

    def parse_row(self, row: dict) -> RankingRecord:
        raise NotImplementedError


class StaticStatsSource(BaseStatsSource):
    provider = "milb_stats"

    def __init__(self, stats: dict[str, StatsRecord], error: Optional[str] = None):
        super().__init__(endpoint="static://")
        self.stats = stats
        self.error = error
        self.requested: list[set[str]] = []

    async def fetch_result(self, subject_ids: set[str]) -> FetchResult[StatsRecord]:
        self.requested.append(set(subject_ids))
        if self.error:
            return FetchResult(provider=self.provider, error=self.error)
        return FetchResult(
            provider=self.provider,
            records=[v for k, v in self.stats.items() if k in subject_ids],
        )

    def parse_row(self, row: dict) -> StatsRecord:
        raise NotImplementedError


class StaticMarketplace(BaseMarketplace):
    """Marketplace returning the fixed listings whose title contains the query."""

    def __init__(
        self,
        platform: str,
        listings: list[tuple[str, str]],
        delay: float = 0.0,
        error: Optional[str] = None,
    ):
        super().__init__(endpoint="static://")
        self.provider = platform.lower()
        self.platform = platform
        self.listings = listings
        self.delay = delay
        self.error = error
        self.queries: list[str] = []

    async def fetch(self, query: str) -> FetchResult[MarketListing]:
        self.queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            return FetchResult(provider=self.provider, error=self.error)
        records = [
            MarketListing(
                title=title,
                asking_price=Decimal(price),
                source_url=f"https://example.test/{self.provider}/{i}",
                platform=self.platform,
            )
            for i, (title, price) in enumerate(self.listings)
            if query.lower() in title.lower()
        ]
        return FetchResult(provider=self.provider, records=records)

    def parse_row(self, row: dict) -> MarketListing:
        raise NotImplementedError


def ranking(
    provider: str,
    subject_id: str,
    name: str,
    rank: int,
    **kwargs,
) -> RankingRecord:
    return RankingRecord(
        provider=provider,
        subject_id=subject_id,
        subject_name=name,
        team=kwargs.pop("team", "SD"),
        rank=rank,
        **kwargs,
    )


@pytest.fixture
def static_sources():
    """Factories for in-memory connectors."""
    return {
        "ranking": StaticRankingSource,
        "stats": StaticStatsSource,
        "marketplace": StaticMarketplace,
    }


@pytest.fixture
def prospect_registry():
    """Registry with three ranking providers and live stats for one subject."""
    registry = ConnectorRegistry()
    registry.register_ranking_source(
        ProviderRole.PRIMARY,
        StaticRankingSource("fangraphs", [
            ranking("fangraphs", "1", "Jackson Holliday", 1, level="AAA", age=20,
                    performance_index=140.0, position="SS"),
            ranking("fangraphs", "2", "Junior Caminero", 2, level="AA", age=20,
                    performance_index=130.0, position="3B"),
            ranking("fangraphs", "3", "Jackson Chourio", 7, level="A+", age=19,
                    performance_index=110.0, position="OF"),
        ]),
    )
    registry.register_ranking_source(
        ProviderRole.SECONDARY_A,
        StaticRankingSource("mlb_pipeline", [
            ranking("mlb_pipeline", "1", "Jackson Holliday", 2, eta="2024"),
            ranking("mlb_pipeline", "3", "Jackson Chourio", 5, eta="2025"),
        ]),
    )
    registry.register_ranking_source(
        ProviderRole.SECONDARY_B,
        StaticRankingSource("baseball_prospectus", [
            ranking("baseball_prospectus", "1", "Jackson Holliday", 1,
                    ceiling=95.0, floor=60.0, risk_tier="Low"),
        ]),
    )
    registry.register_stats_source(StaticStatsSource({
        "1": StatsRecord(
            subject_id="1",
            on_base_slugging=0.900,
            strikeout_rate=20.0,
            walk_rate=10.0,
            isolated_power=0.200,
            balls_in_play_rate=0.330,
            run_creation_index=140.0,
            games_played=90,
        ),
    }))
    return registry


@pytest.fixture
async def store(tmp_path):
    """SQLRecordStore on a fresh SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cardscout.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    yield SQLRecordStore(session_factory, price_tolerance=10.0)

    await engine.dispose()
