"""OID Sync — Synchronization API Routes.

Sync work never runs on the request loop: these endpoints queue it on the
scheduler's worker pool and answer 202 straight away. Progress is visible
through the run ledger endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.engine import Engine

from oidsync.database import get_engine
from oidsync.models.batch_models import BatchRun
from oidsync.models.hli_models import GroupMembersRequest
from oidsync.scheduler import jobs
from oidsync.sync.ledger import RunLedger
from oidsync.core.logging import get_logger

logger = get_logger("api.sync")

router = APIRouter(prefix="/sync", tags=["Sync"])


# ── Request / Response Models ──


class ProcessOidsRequest(BaseModel):
    """Request body for POST /sync/oids."""

    oids: List[str] = Field(min_length=1)


class QueuedResponse(BaseModel):
    status: str = "accepted"
    job_id: str
    submitted: int = 0


def _queue(func, *args, submitted: int = 0) -> QueuedResponse:
    try:
        job_id = jobs.submit_job(func, *args)
    except jobs.WorkerPoolUnavailable as e:
        logger.error(f"Could not queue {func.__name__}: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    return QueuedResponse(job_id=job_id, submitted=submitted)


def _run_view(run: BatchRun) -> dict:
    return {
        "batch_id": run.batch_id,
        "status": run.status.value,
        "total_oids": run.total_oids,
        "successful_oids": run.successful_oids,
        "failed_oids": run.failed_oids,
        "batch_start_time": run.batch_start_time.isoformat(),
        "batch_end_time": run.batch_end_time.isoformat() if run.batch_end_time else None,
        "error_message": run.error_message,
        "hli_api_config_id": run.hli_api_config_id,
    }


# ── Endpoints ──


@router.post("/run", status_code=202, response_model=QueuedResponse)
async def trigger_sweep():
    """Queue a sweep of every active OID without a current response."""
    return _queue(jobs.manual_processing)


@router.post("/oids", status_code=202, response_model=QueuedResponse)
async def trigger_oids(request: ProcessOidsRequest):
    """Queue on-demand processing of specific OIDs."""
    return _queue(jobs.on_demand_processing, request.oids, submitted=len(request.oids))


@router.post("/request", status_code=202, response_model=QueuedResponse)
async def trigger_request(request: GroupMembersRequest):
    """Queue on-demand processing using a caller supplied request template."""
    if not request.oids:
        raise HTTPException(status_code=422, detail="Request must list at least one OID")
    return _queue(
        jobs.on_demand_request_processing, request, submitted=len(request.oids)
    )


@router.get("/runs")
async def list_runs(
    limit: int = Query(20, ge=1, le=200),
    engine: Engine = Depends(get_engine),
):
    """Most recent synchronization runs."""
    runs = RunLedger(engine).list_runs(limit)
    return {
        "status": "success",
        "count": len(runs),
        "runs": [_run_view(r) for r in runs],
    }


@router.get("/runs/{batch_id}")
async def get_run(batch_id: str, engine: Engine = Depends(get_engine)):
    run = RunLedger(engine).get_run(batch_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run {batch_id} not found")
    return {"status": "success", "run": _run_view(run)}
