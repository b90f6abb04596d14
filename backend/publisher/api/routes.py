"""
HTTP API routes for the publishing pipeline.

Provides endpoints for:
- Running one pipeline pass (the scheduled trigger)
- Reconciling the source folder
- Record maintenance and statistics
- Last upload status from run history

All routes require the API key, sent as X-API-Key header or ?secret=.
"""

import logging
import secrets
from collections.abc import AsyncIterator
from functools import lru_cache

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse

from publisher.config import Settings, get_settings
from publisher.models.schemas import (
    LastUploadStatus,
    PipelineOptions,
    PipelineRunResult,
    PipelineStep,
    ReconcileResult,
    RecordStats,
    ResetErrorsRequest,
    RunRequest,
    SyncRequest,
)
from publisher.services.errors import ConfigurationError, PublisherError, ResultPersistError
from publisher.services.pipeline import PipelineOrchestrator
from publisher.services.run_history import RunHistory

logger = logging.getLogger(__name__)


def require_api_key(
    x_api_key: str | None = Header(default=None),
    secret: str | None = Query(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Check the API key from header or query string.

    Raises:
        503: API secret not configured
        401: Missing or wrong key
    """
    if not settings.api_secret:
        raise HTTPException(status_code=503, detail="API secret not configured")

    provided = x_api_key or secret
    if not provided or not secrets.compare_digest(provided, settings.api_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")


async def get_orchestrator() -> AsyncIterator[PipelineOrchestrator]:
    """Orchestrator wired to the real services for one request."""
    try:
        async with PipelineOrchestrator.open(get_settings()) as orchestrator:
            yield orchestrator
    except ConfigurationError as e:
        logger.error(f"Pipeline not configured: {e}")
        raise HTTPException(status_code=503, detail=e.message)


@lru_cache
def get_run_history() -> RunHistory:
    """Get cached run history for the configured history file."""
    return RunHistory.from_settings(get_settings())


router = APIRouter(
    prefix="/api",
    tags=["pipeline"],
    dependencies=[Depends(require_api_key)],
)


@router.post("/pipeline/run", response_model=PipelineRunResult)
async def run_pipeline(
    request: RunRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    history: RunHistory = Depends(get_run_history),
):
    """
    Run one pipeline pass.

    Args:
        request: RunRequest with preview/sync options

    Returns:
        PipelineRunResult (HTTP 500 when the run failed)

    Raises:
        500: Outcome could not be written back to the record store
    """
    options = PipelineOptions(
        preview=request.preview,
        sync=request.sync,
        sync_limit=request.sync_limit,
    )
    logger.info(f"Pipeline run requested (preview={options.preview}, sync={options.sync})")

    async def progress_callback(
        step: PipelineStep,
        progress: float,
        message: str,
    ) -> None:
        """Forward progress to the log."""
        logger.debug(f"[{step.value}] {progress:.0f}% - {message}")

    try:
        result = await orchestrator.run_pipeline_once(options, progress_callback=progress_callback)
    except ResultPersistError as e:
        logger.critical(f"Pipeline result not persisted: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    history.record_run(result)

    if not result.success:
        return JSONResponse(status_code=500, content=result.model_dump(mode="json"))
    return result


@router.post("/sync", response_model=ReconcileResult)
async def sync_records(
    request: SyncRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> ReconcileResult:
    """
    Register new source videos as Pending records.

    Args:
        request: SyncRequest with dry_run/limit/force

    Returns:
        ReconcileResult with counts

    Raises:
        502: Source folder or record store unavailable
    """
    try:
        return await orchestrator.reconciler.reconcile(
            dry_run=request.dry_run,
            limit=request.limit,
            force=request.force,
        )
    except PublisherError as e:
        logger.error(f"Sync failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/records/reset-errors")
async def reset_errors(
    request: ResetErrorsRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> dict:
    """
    Return old Error records to Pending.

    Returns:
        Number of records reset
    """
    try:
        count = await orchestrator.lifecycle.reset_stale_errors(request.max_age_days)
    except PublisherError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"reset": count}


@router.get("/records/stats", response_model=RecordStats)
async def record_stats(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> RecordStats:
    """
    Count records per status.

    Returns:
        RecordStats
    """
    try:
        return await orchestrator.selector.stats()
    except PublisherError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/status/last-upload", response_model=LastUploadStatus)
async def last_upload_status(
    settings: Settings = Depends(get_settings),
    history: RunHistory = Depends(get_run_history),
) -> LastUploadStatus:
    """
    Report whether an upload succeeded recently.

    Returns:
        LastUploadStatus for the last recent_upload_hours
    """
    return history.last_upload_status(settings.recent_upload_hours)
