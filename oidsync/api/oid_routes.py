"""OID Sync — OID Catalog API Routes."""

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.engine import Engine

from oidsync.database import get_engine
from oidsync.models.response_models import ResponseVersion
from oidsync.sync.records import OidRecordIn, OidRecordRepository
from oidsync.sync.versions import ResponseVersionStore
from oidsync.core.logging import get_logger

logger = get_logger("api.oids")

router = APIRouter(prefix="/oids", tags=["OIDs"])


class RegisterOidsRequest(BaseModel):
    """Request body for POST /oids."""

    records: List[OidRecordIn] = Field(min_length=1)
    username: Optional[str] = None


def _version_view(v: ResponseVersion) -> dict:
    return {
        "version": v.version,
        "is_current": v.is_current,
        "http_status_code": v.http_status_code,
        "response_time_ms": v.response_time_ms,
        "created_at": v.created_at.isoformat(),
        "response": json.loads(v.api_response),
    }


def _record_id(oid: str, engine: Engine) -> int:
    record = OidRecordRepository(engine).get_by_oid(oid)
    if record is None:
        raise HTTPException(status_code=404, detail=f"OID {oid} not found")
    return record.id


@router.post("")
async def register_oids(request: RegisterOidsRequest, engine: Engine = Depends(get_engine)):
    """Create or update OID records. The processing strategy is derived from the OID."""
    created, updated = OidRecordRepository(engine).register(
        request.records, username=request.username
    )
    return {"status": "success", "created": created, "updated": updated}


@router.get("/{oid}/versions")
async def list_versions(oid: str, engine: Engine = Depends(get_engine)):
    """Full response history, newest first, failed attempts included."""
    versions = ResponseVersionStore(engine).list_versions(_record_id(oid, engine))
    return {
        "status": "success",
        "oid": oid,
        "count": len(versions),
        "versions": [_version_view(v) for v in versions],
    }


@router.get("/{oid}/current")
async def get_current(oid: str, engine: Engine = Depends(get_engine)):
    current = ResponseVersionStore(engine).current_version(_record_id(oid, engine))
    if current is None:
        return {"status": "no_data", "oid": oid, "message": "No current response yet."}
    return {"status": "success", "oid": oid, "current": _version_view(current)}
