"""OID Sync — Scheduler Configuration Models."""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel
from sqlmodel import SQLModel, Field

DEFAULT_CRON_EXPRESSION = "0 0 2 * * ?"  # 02:00 daily, Spring-style six fields


class SchedulerConfigRow(SQLModel, table=True):
    """Mutable per-job schedule, edited by operators."""

    __tablename__ = "scheduler_config"

    job_name: str = Field(primary_key=True)
    cron_expression: Optional[str] = None
    enabled: Optional[bool] = None
    description: Optional[str] = None
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SchedulerConfig(BaseModel):
    """Resolved schedule for one job."""

    job_name: str
    cron_expression: str = DEFAULT_CRON_EXPRESSION
    enabled: bool = False

    @classmethod
    def disabled_default(cls, job_name: str) -> "SchedulerConfig":
        return cls(job_name=job_name)
