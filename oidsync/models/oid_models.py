"""OID Sync — OID Catalog Models."""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HliApiConfig(SQLModel, table=True):
    """Per-integration settings for the HLI API.

    Null tuning columns fall back to the process settings.
    """

    __tablename__ = "hli_api_config"

    id: Optional[int] = Field(default=None, primary_key=True)
    config_name: str = Field(unique=True, index=True)
    retry_limit: Optional[int] = Field(default=None, description="Total call attempts")
    retry_interval_ms: Optional[int] = Field(default=None, description="Initial backoff")
    max_response_time_ms: Optional[int] = None
    batch_size: Optional[int] = Field(default=None, description="Chunk size")
    api_base_url: Optional[str] = None
    timeout_ms: Optional[int] = Field(default=None, description="Per-call timeout")
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None


class OidRecord(SQLModel, table=True):
    """A code-system identifier tracked locally; the unit of synchronization.

    Responses reference a record by id; the record holds no list of its
    responses.
    """

    __tablename__ = "oid_master"

    id: Optional[int] = Field(default=None, primary_key=True)
    oid: str = Field(unique=True, index=True, description="e.g. 2.16.840.1.113883.6.1")
    code_group_content_set: str = Field(default="")
    code_group_content_set_version: str = Field(default="1.0")
    code_sub_type: Optional[str] = None
    code_group_name: str = Field(default="")
    code_group_revision_name: Optional[str] = None
    code: Optional[str] = None
    fhir_identifier: Optional[str] = None
    hl7_uri: Optional[str] = None
    revision_start: Optional[datetime] = None
    is_active: bool = Field(default=True, index=True)
    status: str = Field(default="ACTIVE")
    processing_strategy: Optional[str] = Field(
        default=None, description="Label resolved by the method router"
    )
    hli_api_config_id: Optional[int] = Field(
        default=None, foreign_key="hli_api_config.id", index=True
    )
    created_date: datetime = Field(default_factory=_utcnow)
    created_by: Optional[str] = None
    last_modified_date: datetime = Field(default_factory=_utcnow)
    last_modified_by: Optional[str] = None
