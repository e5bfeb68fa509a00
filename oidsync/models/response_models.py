"""OID Sync — Response Version Models (Append-Only)."""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

ERROR_STATUS_CODE = 500


class ResponseVersion(SQLModel, table=True):
    """Immutable snapshot of one HLI answer for a record.

    Never modified after insert, except for the is_current flip that happens
    in the same transaction as inserting the next current version.
    Unique constraint on (oid_record_id, version) keeps numbering gap-free
    and rejects racing writers.
    """

    __tablename__ = "oid_hli_api_response"
    __table_args__ = (
        UniqueConstraint("oid_record_id", "version", name="uq_oid_response_version"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    oid_record_id: int = Field(foreign_key="oid_master.id", index=True)
    api_response: str = Field(description="Serialized response body or error JSON")
    http_status_code: int = Field(default=200)
    response_time_ms: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = Field(ge=1)
    is_current: bool = Field(default=False, index=True)
