"""Persistence contract used by the pipelines and its SQLAlchemy implementation."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardscout.config import settings
from cardscout.db.models import Deal, PipelineRun, ProspectScore, User, WatchlistItem
from cardscout.detect.opportunity import DealStatus, Opportunity, utcnow
from cardscout.detect.scorer import ScoredSubject
from cardscout.errors import StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchEntry:
    """An owner's watch entry for one subject."""

    owner_id: str
    player_name: str
    team: Optional[str] = None
    position: Optional[str] = None
    prospect_rank: Optional[int] = None
    alert_price: Optional[Decimal] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class DealFilter:
    """Deals for one owner/platform/card with an asking price inside [price_min, price_max]."""

    owner_id: str
    platform: str
    card_descriptor: str
    price_min: Decimal
    price_max: Decimal


@dataclass(frozen=True)
class RunRecord:
    pipeline: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    trigger: str = "manual"
    summary: Optional[dict] = None
    error_message: Optional[str] = None
    id: Optional[int] = None


def price_bucket(asking_price: Decimal, tolerance: float) -> int:
    """Bucket index used by the deals unique constraint."""
    width = Decimal(str(tolerance)) if tolerance > 0 else Decimal("1")
    return math.floor(Decimal(asking_price) / width)


class RecordStore(ABC):
    """
    Narrow read/write contract over the external store.

    get: get_watch_entry; upsert: upsert_watch_entry, save_scores;
    insert: insert_deal (None on conflict); query: query_deals.
    Every method raises StoreError for a failed operation.
    """

    @abstractmethod
    async def ping(self) -> None:
        """Raise StoreError if the store is unreachable."""

    @abstractmethod
    async def ensure_owner(self, owner_id: str, email: Optional[str] = None) -> None:
        """Make sure an owner row exists for attribution of writes."""

    @abstractmethod
    async def list_owners(self) -> list[str]:
        pass

    @abstractmethod
    async def list_watch_entries(self, owner_id: str) -> list[WatchEntry]:
        pass

    @abstractmethod
    async def get_watch_entry(self, owner_id: str, player_name: str) -> Optional[WatchEntry]:
        pass

    @abstractmethod
    async def upsert_watch_entry(self, entry: WatchEntry) -> bool:
        """Insert or replace by (owner_id, player_name). Returns True if a row was updated."""

    @abstractmethod
    async def save_scores(self, subjects: Iterable[ScoredSubject]) -> int:
        """Replace stored scores for the given subjects. Returns rows written."""

    @abstractmethod
    async def insert_deal(self, deal: Opportunity) -> Optional[int]:
        """Insert a deal; returns its id, or None if an equivalent row already exists."""

    @abstractmethod
    async def query_deals(self, deal_filter: DealFilter) -> list[Opportunity]:
        pass

    @abstractmethod
    async def record_run(self, run: RunRecord) -> int:
        pass

    @abstractmethod
    async def list_runs(self, pipeline: Optional[str] = None, limit: int = 20) -> list[RunRecord]:
        pass


class SQLRecordStore(RecordStore):
    """RecordStore over SQLAlchemy; every call uses its own short-lived session."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        price_tolerance: Optional[float] = None,
    ):
        if session_factory is None:
            from cardscout.db.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._session_factory = session_factory
        self.price_tolerance = (
            price_tolerance if price_tolerance is not None else settings.dedup_price_tolerance
        )

    async def ping(self) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise StoreError(f"Store unreachable: {e}") from e

    async def ensure_owner(self, owner_id: str, email: Optional[str] = None) -> None:
        try:
            async with self._session_factory() as db:
                user = await db.get(User, owner_id)
                if user is None:
                    db.add(User(id=owner_id, email=email))
                elif email and user.email != email:
                    user.email = email
                else:
                    return
                try:
                    await db.commit()
                except IntegrityError:
                    # Created concurrently by another request
                    await db.rollback()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to register owner {owner_id}: {e}") from e

    async def list_owners(self) -> list[str]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(User.id).order_by(User.created_at, User.id))
                return [row[0] for row in result.all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list owners: {e}") from e

    async def list_watch_entries(self, owner_id: str) -> list[WatchEntry]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(WatchlistItem)
                    .where(WatchlistItem.user_id == owner_id)
                    .order_by(WatchlistItem.id)
                )
                return [self._to_entry(item) for item in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list watch entries for {owner_id}: {e}") from e

    async def get_watch_entry(self, owner_id: str, player_name: str) -> Optional[WatchEntry]:
        try:
            async with self._session_factory() as db:
                item = await self._find_watch_item(db, owner_id, player_name)
                return self._to_entry(item) if item else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read watch entry {owner_id}/{player_name}: {e}") from e

    async def upsert_watch_entry(self, entry: WatchEntry) -> bool:
        try:
            async with self._session_factory() as db:
                item = await self._find_watch_item(db, entry.owner_id, entry.player_name)
                updated = item is not None
                if item is None:
                    item = WatchlistItem(user_id=entry.owner_id, player_name=entry.player_name)
                    db.add(item)
                item.team = entry.team
                item.position = entry.position
                item.prospect_rank = entry.prospect_rank
                if entry.alert_price is not None:
                    item.alert_price = entry.alert_price
                await db.commit()
                return updated
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to upsert watch entry {entry.owner_id}/{entry.player_name}: {e}") from e

    async def save_scores(self, subjects: Iterable[ScoredSubject]) -> int:
        written = 0
        scored_at = utcnow()
        try:
            async with self._session_factory() as db:
                for subject in subjects:
                    await db.merge(
                        ProspectScore(
                            mlb_id=subject.subject_id,
                            player_name=subject.name,
                            team=subject.team,
                            position=subject.position,
                            level=subject.level,
                            prospect_rank=subject.source_rank,
                            ml_score=subject.composite_score,
                            ceiling_score=subject.ceiling_score,
                            floor_score=subject.floor_score,
                            risk_level=subject.risk_tier.value,
                            composite_rank=subject.composite_rank,
                            age=subject.age,
                            eta=subject.eta,
                            ops=subject.ops,
                            k_percent=subject.k_percent,
                            bb_percent=subject.bb_percent,
                            scored_at=scored_at,
                        )
                    )
                    written += 1
                await db.commit()
            return written
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to save prospect scores: {e}") from e

    async def insert_deal(self, deal: Opportunity) -> Optional[int]:
        row = Deal(
            user_id=deal.owner_id,
            player_name=deal.subject_name,
            card_name=deal.card_descriptor,
            asking_price=deal.asking_price,
            market_value=deal.estimated_value,
            profit_potential=deal.profit_amount,
            profit_percentage=deal.profit_percentage,
            platform=deal.platform,
            url=deal.url,
            status=deal.status.value,
            price_bucket=price_bucket(deal.asking_price, self.price_tolerance),
            discovered_at=deal.discovered_at,
        )
        try:
            async with self._session_factory() as db:
                db.add(row)
                try:
                    await db.commit()
                except IntegrityError:
                    await db.rollback()
                    logger.debug(
                        f"Deal conflict for {deal.owner_id}/{deal.platform}: {deal.card_descriptor}"
                    )
                    return None
                return row.id
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to insert deal {deal.card_descriptor!r}: {e}") from e

    async def query_deals(self, deal_filter: DealFilter) -> list[Opportunity]:
        query = (
            select(Deal)
            .where(
                Deal.user_id == deal_filter.owner_id,
                Deal.platform == deal_filter.platform,
                Deal.card_name == deal_filter.card_descriptor,
                Deal.asking_price >= deal_filter.price_min,
                Deal.asking_price <= deal_filter.price_max,
            )
            .order_by(Deal.discovered_at, Deal.id)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return [self._to_opportunity(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to query deals: {e}") from e

    async def record_run(self, run: RunRecord) -> int:
        row = PipelineRun(
            pipeline=run.pipeline,
            trigger=run.trigger,
            status=run.status,
            summary=run.summary,
            error_message=run.error_message,
            started_at=run.started_at,
            completed_at=run.completed_at,
        )
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
                return row.id
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to record {run.pipeline} run: {e}") from e

    async def list_runs(self, pipeline: Optional[str] = None, limit: int = 20) -> list[RunRecord]:
        query = select(PipelineRun).order_by(PipelineRun.started_at.desc(), PipelineRun.id.desc()).limit(limit)
        if pipeline:
            query = query.where(PipelineRun.pipeline == pipeline)
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return [
                    RunRecord(
                        id=row.id,
                        pipeline=row.pipeline,
                        trigger=row.trigger,
                        status=row.status,
                        summary=row.summary,
                        error_message=row.error_message,
                        started_at=row.started_at,
                        completed_at=row.completed_at,
                    )
                    for row in result.scalars().all()
                ]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list runs: {e}") from e

    @staticmethod
    async def _find_watch_item(
        db: AsyncSession, owner_id: str, player_name: str
    ) -> Optional[WatchlistItem]:
        result = await db.execute(
            select(WatchlistItem).where(
                WatchlistItem.user_id == owner_id,
                WatchlistItem.player_name == player_name,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_entry(item: WatchlistItem) -> WatchEntry:
        return WatchEntry(
            id=item.id,
            owner_id=item.user_id,
            player_name=item.player_name,
            team=item.team,
            position=item.position,
            prospect_rank=item.prospect_rank,
            alert_price=item.alert_price,
        )

    @staticmethod
    def _to_opportunity(row: Deal) -> Opportunity:
        return Opportunity(
            id=row.id,
            owner_id=row.user_id,
            subject_name=row.player_name,
            card_descriptor=row.card_name,
            asking_price=Decimal(row.asking_price),
            estimated_value=Decimal(row.market_value),
            profit_amount=Decimal(row.profit_potential),
            profit_percentage=row.profit_percentage,
            platform=row.platform,
            url=row.url or "",
            status=DealStatus(row.status),
            discovered_at=row.discovered_at,
        )
