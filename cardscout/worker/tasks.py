"""Pipeline entrypoints shared by the API and the scheduler."""

import asyncio
import logging
import time
from typing import Optional
from uuid import uuid4

from redis.exceptions import RedisError

from cardscout import metrics
from cardscout.config import settings
from cardscout.db.store import RecordStore, RunRecord
from cardscout.detect.opportunity import utcnow
from cardscout.errors import SetupError, StoreError
from cardscout.worker.cycle_lock import CycleLockManager
from cardscout.worker.orchestrator import (
    MARKET_PIPELINE,
    PROSPECT_PIPELINE,
    Orchestrator,
    ProspectRunSummary,
    ScanRunSummary,
)

logger = logging.getLogger(__name__)


class PipelineRunner:
    """
    Runs orchestrator cycles and records each one as a pipeline run.

    Manual triggers always run. Scheduled triggers take the pipeline's cycle
    lock first and skip when another cycle holds it. A held lock is refreshed
    on a heartbeat until the cycle finishes.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        store: RecordStore,
        lock_manager: Optional[CycleLockManager] = None,
        heartbeat_interval: Optional[float] = None,
    ):
        self.orchestrator = orchestrator
        self.store = store
        self.lock_manager = lock_manager
        self.heartbeat_interval = heartbeat_interval or settings.cycle_lock_heartbeat_seconds

    async def run_prospect_analysis(
        self, owner_id: Optional[str] = None, trigger: str = "manual"
    ) -> ProspectRunSummary:
        return await self._run(
            PROSPECT_PIPELINE,
            trigger,
            lambda: self.orchestrator.run_prospect_analysis(owner_id),
        )

    async def run_market_scan(self, trigger: str = "manual") -> ScanRunSummary:
        return await self._run(MARKET_PIPELINE, trigger, self.orchestrator.run_market_scan)

    async def scheduled_prospect_analysis(self) -> Optional[ProspectRunSummary]:
        """Scheduled prospect analysis (APScheduler job)."""
        return await self._run_locked(PROSPECT_PIPELINE, self.run_prospect_analysis, trigger="scheduled")

    async def scheduled_market_scan(self) -> Optional[ScanRunSummary]:
        """Scheduled market scan (APScheduler job)."""
        return await self._run_locked(MARKET_PIPELINE, self.run_market_scan, trigger="scheduled")

    async def _run(self, pipeline: str, trigger: str, cycle):
        started_at = utcnow()
        start = time.monotonic()
        logger.info(f"Starting {pipeline} cycle (trigger: {trigger})")

        try:
            summary = await cycle()
        except SetupError as e:
            duration = time.monotonic() - start
            logger.error(f"{pipeline} cycle aborted: {e}")
            metrics.record_pipeline_run(pipeline, "failed", duration)
            await self._record(RunRecord(
                pipeline=pipeline,
                trigger=trigger,
                status="failed",
                error_message=str(e)[:500],
                started_at=started_at,
                completed_at=utcnow(),
            ))
            raise

        duration = time.monotonic() - start
        metrics.record_pipeline_run(pipeline, "completed", duration)
        response = summary.to_response()
        await self._record(RunRecord(
            pipeline=pipeline,
            trigger=trigger,
            status="completed",
            summary={k: v for k, v in response.items() if k != "top_prospects"},
            error_message="\n".join(summary.errors[:5]) or None,
            started_at=started_at,
            completed_at=utcnow(),
        ))
        logger.info(f"Finished {pipeline} cycle in {duration:.1f}s")
        return summary

    async def _record(self, run: RunRecord) -> None:
        try:
            await self.store.record_run(run)
        except StoreError as e:
            logger.error(f"Failed to record {run.pipeline} run: {e}")

    async def _run_locked(self, pipeline: str, job, trigger: str):
        if self.lock_manager is None:
            return await self._guarded(pipeline, job, trigger)

        run_id = uuid4().hex
        try:
            token = await self.lock_manager.acquire(pipeline, run_id)
        except RedisError as e:
            # Redis down: run unlocked
            logger.warning(f"Cycle lock unavailable for {pipeline}, running unlocked: {e}")
            return await self._guarded(pipeline, job, trigger)

        if token is None:
            lock_info = await self.lock_manager.get_lock_info(pipeline)
            metrics.pipeline_runs_total.labels(pipeline=pipeline, status="skipped").inc()
            logger.info(
                f"{pipeline} already running; skipping {trigger} run "
                f"(lock_run_id: {(lock_info or {}).get('run_id')})"
            )
            return None

        heartbeat_task = asyncio.create_task(self._heartbeat(pipeline, run_id, token))
        try:
            return await self._guarded(pipeline, job, trigger)
        finally:
            heartbeat_task.cancel()
            try:
                await heartbeat_task
            except asyncio.CancelledError:
                pass
            try:
                await self.lock_manager.release(pipeline, run_id, token)
            except RedisError as e:
                logger.warning(f"Failed to release {pipeline} lock for run_id {run_id[:16]}: {e}")

    async def _heartbeat(self, pipeline: str, run_id: str, token: str) -> None:
        """Keep extending the lock TTL while the cycle runs."""
        failures = 0
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                refreshed = await self.lock_manager.refresh(pipeline, run_id, token)
            except RedisError as e:
                logger.warning(f"{pipeline} lock heartbeat error for run_id {run_id[:16]}: {e}")
                refreshed = False
            if refreshed:
                failures = 0
                continue
            failures += 1
            logger.warning(
                f"{pipeline} lock heartbeat failed for run_id {run_id[:16]} "
                f"(consecutive failures: {failures})"
            )
            if failures >= 3:
                logger.error(f"Stopping {pipeline} lock heartbeat after {failures} failures")
                return

    async def _guarded(self, pipeline: str, job, trigger: str):
        # SetupError is already logged and recorded by _run
        try:
            return await job(trigger=trigger)
        except SetupError:
            return None
