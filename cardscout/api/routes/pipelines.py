"""Pipeline trigger API endpoints."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from redis.exceptions import RedisError

from cardscout.api.deps import get_lock_manager, get_runner, get_store, require_owner
from cardscout.db.store import RecordStore
from cardscout.worker.cycle_lock import CycleLockManager
from cardscout.worker.orchestrator import MARKET_PIPELINE, PROSPECT_PIPELINE
from cardscout.worker.tasks import PipelineRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pipelines", tags=["pipelines"])


# Response models
class ProspectAnalyzerResponse(BaseModel):
    """Response model for a prospect analysis cycle."""
    success: bool
    processed: int
    updated: int
    inserted: int
    skipped: int = 0
    data_sources: Dict[str, int]
    top_prospects: List[Dict[str, Any]]
    errors: List[str] = []
    timestamp: str


class MarketScannerResponse(BaseModel):
    """Response model for a market scan cycle."""
    success: bool
    deals_found: int
    deals_inserted: int
    duplicates: int = 0
    failed: int = 0
    users_scanned: int
    subjects_scanned: int = 0
    connector_errors: int = 0
    errors: List[str] = []
    timestamp: str


class PipelineRunResponse(BaseModel):
    """Response model for a recorded pipeline run."""
    id: int
    pipeline: str
    trigger: str
    status: str
    summary: Optional[Dict[str, Any]]
    error_message: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ForceUnlockResponse(BaseModel):
    """Response model for a forced lock release."""
    message: str
    pipeline: str
    lock_info: Optional[Dict[str, Any]] = None


@router.post("/prospect-analyzer", response_model=ProspectAnalyzerResponse)
async def run_prospect_analyzer(
    owner_id: str = Depends(require_owner),
    runner: PipelineRunner = Depends(get_runner),
):
    """Score prospects across all ranking providers and refresh the caller's watch list."""
    summary = await runner.run_prospect_analysis(owner_id, trigger="manual")
    return summary.to_response()


@router.post("/market-scanner", response_model=MarketScannerResponse)
async def run_market_scanner(
    owner_id: str = Depends(require_owner),
    runner: PipelineRunner = Depends(get_runner),
):
    """Scan every marketplace for all owners' watch entries and record new deals."""
    logger.info(f"Market scan triggered by {owner_id}")
    summary = await runner.run_market_scan(trigger="manual")
    return summary.to_response()


@router.get("/runs", response_model=List[PipelineRunResponse])
async def list_pipeline_runs(
    pipeline: Optional[str] = None,
    limit: int = Query(20, ge=1, le=200),
    store: RecordStore = Depends(get_store),
):
    """List recent pipeline runs, newest first."""
    runs = await store.list_runs(pipeline=pipeline, limit=limit)
    return [PipelineRunResponse.model_validate(run) for run in runs]


@router.post("/{pipeline}/force-unlock", response_model=ForceUnlockResponse)
async def force_unlock_pipeline(
    pipeline: str,
    owner_id: str = Depends(require_owner),
    lock_manager: CycleLockManager = Depends(get_lock_manager),
):
    """
    Clear a stuck cycle lock.

    A scheduled cycle whose worker died keeps its lock until the TTL runs out;
    this frees it immediately.
    """
    if pipeline not in (PROSPECT_PIPELINE, MARKET_PIPELINE):
        raise HTTPException(status_code=404, detail=f"Unknown pipeline: {pipeline}")

    try:
        lock_info = await lock_manager.get_lock_info(pipeline)
        if not lock_info:
            return ForceUnlockResponse(message="No lock found", pipeline=pipeline)
        await lock_manager.force_unlock(pipeline)
    except RedisError as e:
        raise HTTPException(status_code=503, detail=f"Cycle lock unavailable: {e}") from e

    logger.warning(
        f"Force-unlock of {pipeline} by {owner_id} (run_id: {lock_info.get('run_id')})"
    )
    return ForceUnlockResponse(message="Lock force-unlocked", pipeline=pipeline, lock_info=lock_info)
