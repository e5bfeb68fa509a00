"""OID Sync — Scheduler Configuration API Routes."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional

from oidsync.config import settings
from oidsync.scheduler import jobs
from oidsync.scheduler.trigger import parse_cron_expression
from oidsync.core.logging import get_logger

logger = get_logger("api.scheduler")

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])


class UpdateSchedulerConfigRequest(BaseModel):
    """Request body for PUT /scheduler/config/{job_name}."""

    cron_expression: str
    """Spring-style six fields (``0 0 2 * * ?``) or classic five-field cron."""
    enabled: bool
    description: Optional[str] = None


@router.get("/config/{job_name}")
async def get_config(job_name: str):
    config = jobs.config_service.get_scheduler_config(job_name)
    return {
        "status": "success",
        "exists": jobs.config_service.job_exists(job_name),
        "config": config.model_dump(),
    }


@router.put("/config/{job_name}")
async def update_config(job_name: str, request: UpdateSchedulerConfigRequest):
    """Store a new schedule and reschedule the sweep immediately."""
    try:
        parse_cron_expression(request.cron_expression, settings.scheduler_timezone)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid cron expression: {e}")

    ok = jobs.config_service.update_scheduler_config(
        job_name, request.cron_expression, request.enabled, request.description
    )
    if not ok:
        raise HTTPException(status_code=500, detail="Failed to update scheduler configuration")

    next_run = None
    if job_name == settings.scheduler_job_name:
        next_run = jobs.refresh_schedule()

    return {
        "status": "success",
        "config": jobs.config_service.get_scheduler_config(job_name).model_dump(),
        "next_run_time": next_run.isoformat() if next_run else None,
    }
