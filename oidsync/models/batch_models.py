"""OID Sync — Batch Run Ledger Models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field


class RunStatus(str, Enum):
    """Lifecycle of one synchronization run."""

    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class BatchRun(SQLModel, table=True):
    """One execution of the synchronization sweep over a work list."""

    __tablename__ = "oid_batch_process_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    batch_id: str = Field(unique=True, index=True)
    hli_api_config_id: Optional[int] = Field(
        default=None, foreign_key="hli_api_config.id"
    )
    batch_start_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    batch_end_time: Optional[datetime] = None
    total_oids: int = Field(default=0)
    successful_oids: int = Field(default=0)
    failed_oids: int = Field(default=0)
    status: RunStatus = Field(default=RunStatus.PROCESSING, index=True)
    error_message: Optional[str] = None
