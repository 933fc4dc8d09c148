"""Cycle orchestration for the prospect analyzer and the market scanner."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from cardscout import metrics
from cardscout.config import settings
from cardscout.db.store import RecordStore, WatchEntry
from cardscout.detect.dedupe import DealDeduplicator, DedupOutcome
from cardscout.detect.scorer import CompositeScorer, ScoredSubject, rank_top_n
from cardscout.errors import SetupError, StoreError
from cardscout.ingest.base import FetchResult, ProviderRole, RankingRecord, StatsRecord
from cardscout.ingest.market_scanner import MarketScanner
from cardscout.ingest.registry import ConnectorRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

PROSPECT_PIPELINE = "prospect_analyzer"
MARKET_PIPELINE = "market_scanner"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ProspectRunSummary:
    """Summary of one prospect analysis cycle."""

    processed: int = 0
    updated: int = 0
    inserted: int = 0
    skipped: int = 0
    data_sources: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    top_prospects: list[ScoredSubject] = field(default_factory=list)

    def to_response(self, preview: Optional[int] = None) -> dict:
        preview = settings.top_prospects_preview if preview is None else preview
        return {
            "success": True,
            "processed": self.processed,
            "updated": self.updated,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "data_sources": dict(self.data_sources),
            "top_prospects": [s.to_dict() for s in self.top_prospects[:preview]],
            "errors": list(self.errors),
            "timestamp": _timestamp(),
        }


@dataclass
class ScanRunSummary:
    """Summary of one market scan cycle."""

    deals_found: int = 0
    deals_inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    users_scanned: int = 0
    subjects_scanned: int = 0
    connector_errors: int = 0
    errors: list[str] = field(default_factory=list)

    def to_response(self) -> dict:
        return {
            "success": True,
            "deals_found": self.deals_found,
            "deals_inserted": self.deals_inserted,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "users_scanned": self.users_scanned,
            "subjects_scanned": self.subjects_scanned,
            "connector_errors": self.connector_errors,
            "errors": list(self.errors),
            "timestamp": _timestamp(),
        }


@dataclass
class _SubjectScanTally:
    found: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    connector_errors: int = 0


class Orchestrator:
    """
    Drives full pipeline cycles over injected connectors and store.

    Only a store that cannot be reached at cycle start is fatal (SetupError).
    Each subject's outcome is committed as soon as it is computed and a
    failure for one subject never rolls back or aborts the others.
    """

    def __init__(
        self,
        store: RecordStore,
        registry: ConnectorRegistry,
        scorer: Optional[CompositeScorer] = None,
        scanner: Optional[MarketScanner] = None,
        deduplicator: Optional[DealDeduplicator] = None,
        max_concurrency: Optional[int] = None,
        batch_delay: Optional[float] = None,
        top_n: Optional[int] = None,
    ):
        self.store = store
        self.registry = registry
        self.scorer = scorer or CompositeScorer()
        self.scanner = scanner or MarketScanner(registry.marketplaces)
        self.deduplicator = deduplicator or DealDeduplicator(store)
        self.max_concurrency = max(1, max_concurrency or settings.max_concurrent_subjects)
        self.batch_delay = settings.inter_batch_delay_seconds if batch_delay is None else batch_delay
        self.top_n = settings.prospect_top_n if top_n is None else top_n

    async def _ensure_store(self) -> None:
        try:
            await self.store.ping()
        except StoreError as e:
            raise SetupError(str(e)) from e

    async def _run_batched(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]],
    ) -> list[R | BaseException]:
        """Run worker over items in concurrent batches with a pause between batches."""
        results: list[R | BaseException] = []
        for start in range(0, len(items), self.max_concurrency):
            if start and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
            batch = items[start:start + self.max_concurrency]
            results.extend(
                await asyncio.gather(*(worker(item) for item in batch), return_exceptions=True)
            )
        return results

    # ------------------------------------------------------------------
    # Prospect analysis
    # ------------------------------------------------------------------

    async def _fetch_rankings(
        self, summary: ProspectRunSummary
    ) -> dict[ProviderRole, list[RankingRecord]]:
        sources = self.registry.ranking_sources
        results: list[FetchResult[RankingRecord] | BaseException] = await asyncio.gather(
            *(source.fetch() for source in sources.values()),
            return_exceptions=True,
        )
        rankings: dict[ProviderRole, list[RankingRecord]] = {}
        for (role, source), result in zip(sources.items(), results):
            if isinstance(result, BaseException):
                logger.warning(f"Ranking provider {source.provider} raised: {result!r}")
                result = FetchResult(provider=source.provider, error=str(result) or type(result).__name__)
            rankings[role] = list(result.records)
            summary.data_sources[source.provider] = len(result.records)
            if result.error:
                summary.errors.append(f"{source.provider}: {result.error}")
        return rankings

    async def _fetch_stats(
        self, summary: ProspectRunSummary, subject_ids: set[str]
    ) -> dict[str, StatsRecord]:
        stats_source = self.registry.stats_source
        if stats_source is None:
            return {}
        try:
            result = await stats_source.fetch_result(subject_ids)
        except Exception as e:
            logger.warning(f"Stats provider {stats_source.provider} raised: {e!r}")
            result = FetchResult(provider=stats_source.provider, error=str(e) or type(e).__name__)
        if result.error:
            summary.errors.append(f"{stats_source.provider}: {result.error}")
        return {record.subject_id: record for record in result.records}

    async def _upsert_watch_entry(
        self, subject: ScoredSubject, owner_id: Optional[str]
    ) -> Optional[str]:
        """Write one subject to the watch store; returns 'updated', 'inserted' or None."""
        if owner_id is None:
            return None
        existing = await self.store.get_watch_entry(owner_id, subject.name)
        if existing is not None:
            await self.store.upsert_watch_entry(
                WatchEntry(
                    owner_id=owner_id,
                    player_name=subject.name,
                    team=subject.team,
                    position=subject.position,
                    prospect_rank=subject.composite_rank,
                )
            )
            metrics.watch_entries_written_total.labels(operation="updated").inc()
            return "updated"

        alert_price = math.floor(
            settings.alert_price_base + subject.composite_score * settings.alert_price_per_point
        )
        await self.store.upsert_watch_entry(
            WatchEntry(
                owner_id=owner_id,
                player_name=subject.name,
                team=subject.team,
                position=subject.position,
                prospect_rank=subject.composite_rank,
                alert_price=Decimal(alert_price),
            )
        )
        metrics.watch_entries_written_total.labels(operation="inserted").inc()
        return "inserted"

    async def run_prospect_analysis(self, owner_id: Optional[str] = None) -> ProspectRunSummary:
        """
        Fetch every ranking provider, enrich with live stats, score, and write
        the top subjects to the watch store.

        With no owner the first registered owner receives new watch entries;
        with no owners at all only the scores are saved.
        """
        await self._ensure_store()
        summary = ProspectRunSummary()

        if owner_id is None:
            owners = await self._list_owners_or_fail()
            owner_id = owners[0] if owners else None

        rankings = await self._fetch_rankings(summary)
        primary_ids = {r.subject_id for r in rankings.get(ProviderRole.PRIMARY, [])}

        stats = await self._fetch_stats(summary, primary_ids)
        summary.data_sources["live_stats"] = len(stats)

        scored = self.scorer.score_all(rankings, stats)
        summary.skipped = len(primary_ids) - len(scored)
        top = rank_top_n(scored, self.top_n)
        summary.processed = len(top)
        summary.top_prospects = top

        try:
            await self.store.save_scores(top)
        except StoreError as e:
            logger.error(f"Failed to save prospect scores: {e}")
            summary.errors.append(str(e))

        outcomes = await self._run_batched(top, lambda s: self._upsert_watch_entry(s, owner_id))
        for subject, outcome in zip(top, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Failed to write watch entry for {subject.name}: {outcome}")
                summary.skipped += 1
                summary.errors.append(f"{subject.name}: {outcome}")
            elif outcome == "updated":
                summary.updated += 1
            elif outcome == "inserted":
                summary.inserted += 1

        logger.info(
            f"Prospect analysis complete: {summary.processed} processed, "
            f"{summary.updated} updated, {summary.inserted} inserted, "
            f"{summary.skipped} skipped (sources: {summary.data_sources})"
        )
        return summary

    # ------------------------------------------------------------------
    # Market scan
    # ------------------------------------------------------------------

    async def _list_owners_or_fail(self) -> list[str]:
        try:
            return await self.store.list_owners()
        except StoreError as e:
            raise SetupError(str(e)) from e

    async def _scan_subject(self, owner_id: str, subject_name: str) -> _SubjectScanTally:
        tally = _SubjectScanTally()
        result = await self.scanner.scan(subject_name, owner_id)
        tally.connector_errors = len(result.connector_errors)
        tally.found = len(result.candidates)
        # Candidates of one subject are recorded in order
        for candidate in result.candidates:
            outcome = await self.deduplicator.record(candidate)
            if outcome == DedupOutcome.INSERTED:
                tally.inserted += 1
            elif outcome == DedupOutcome.FAILED:
                tally.failed += 1
            else:
                tally.duplicates += 1
        return tally

    async def run_market_scan(self) -> ScanRunSummary:
        """Scan every marketplace for every owner's watch entries and record new deals."""
        await self._ensure_store()
        summary = ScanRunSummary()

        work: list[tuple[str, str]] = []
        for owner_id in await self._list_owners_or_fail():
            try:
                entries = await self.store.list_watch_entries(owner_id)
            except StoreError as e:
                logger.error(f"Failed to load watch entries for {owner_id}: {e}")
                summary.errors.append(f"{owner_id}: {e}")
                continue
            summary.users_scanned += 1
            work.extend((owner_id, entry.player_name) for entry in entries)

        tallies = await self._run_batched(work, lambda item: self._scan_subject(*item))
        for (owner_id, subject_name), tally in zip(work, tallies):
            if isinstance(tally, BaseException):
                logger.error(f"Market scan failed for {owner_id}/{subject_name}: {tally}")
                summary.errors.append(f"{owner_id}/{subject_name}: {tally}")
                continue
            summary.subjects_scanned += 1
            summary.deals_found += tally.found
            summary.deals_inserted += tally.inserted
            summary.duplicates += tally.duplicates
            summary.failed += tally.failed
            summary.connector_errors += tally.connector_errors

        logger.info(
            f"Market scan complete: {summary.users_scanned} users, "
            f"{summary.subjects_scanned} subjects, {summary.deals_found} deals found, "
            f"{summary.deals_inserted} inserted, {summary.duplicates} duplicates, "
            f"{summary.failed} failed"
        )
        return summary
