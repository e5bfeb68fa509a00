"""OID Sync — Response Version Store.

Append-only per-record snapshots with a single current pointer per record.
"""

import json
import threading
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from sqlalchemy import func, update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from oidsync.models.oid_models import OidRecord
from oidsync.models.response_models import ERROR_STATUS_CODE, ResponseVersion
from oidsync.core.logging import get_logger

logger = get_logger("sync.versions")

# Version numbers are read then written, so writers in this process take turns
_write_lock = threading.Lock()


def _next_version(session: Session, record_id: int) -> int:
    latest = session.exec(
        select(func.max(ResponseVersion.version)).where(
            ResponseVersion.oid_record_id == record_id
        )
    ).one()
    return (latest or 0) + 1


class ResponseVersionStore:
    """Writes and reads ResponseVersion rows."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def save_success(
        self,
        record_id: int,
        payload_json: str,
        http_status: int,
        response_time_ms: int,
    ) -> ResponseVersion:
        """Insert a new current version and retire the previous one.

        Clearing the old flag, inserting the new row and bumping the record's
        modification time commit together.
        """
        with _write_lock, Session(self.engine) as session:
            new_version = _next_version(session, record_id)
            session.exec(
                update(ResponseVersion)
                .where(
                    ResponseVersion.oid_record_id == record_id,
                    ResponseVersion.is_current == True,  # noqa: E712
                )
                .values(is_current=False)
            )
            row = ResponseVersion(
                oid_record_id=record_id,
                api_response=payload_json,
                http_status_code=http_status,
                response_time_ms=response_time_ms,
                version=new_version,
                is_current=True,
            )
            session.add(row)

            record = session.get(OidRecord, record_id)
            if record is not None:
                record.last_modified_date = datetime.now(timezone.utc)
                session.add(record)

            session.commit()
            session.refresh(row)

        logger.info(f"Stored version {new_version} for record {record_id}")
        return row

    def save_error(
        self, record_id: int, message: str, response_time_ms: int
    ) -> ResponseVersion:
        """Keep a failed attempt for audit. Never becomes current."""
        with _write_lock, Session(self.engine) as session:
            row = ResponseVersion(
                oid_record_id=record_id,
                api_response=json.dumps({"error": message}),
                http_status_code=ERROR_STATUS_CODE,
                response_time_ms=response_time_ms,
                version=_next_version(session, record_id),
                is_current=False,
            )
            session.add(row)
            session.commit()
            session.refresh(row)

        logger.info(f"Stored error version {row.version} for record {record_id}")
        return row

    # ── Reads ──

    def current_version(self, record_id: int) -> Optional[ResponseVersion]:
        with Session(self.engine) as session:
            return session.exec(
                select(ResponseVersion).where(
                    ResponseVersion.oid_record_id == record_id,
                    ResponseVersion.is_current == True,  # noqa: E712
                )
            ).first()

    def list_versions(self, record_id: int) -> List[ResponseVersion]:
        """All versions for a record, newest first."""
        with Session(self.engine) as session:
            return list(
                session.exec(
                    select(ResponseVersion)
                    .where(ResponseVersion.oid_record_id == record_id)
                    .order_by(ResponseVersion.version.desc())  # type: ignore
                ).all()
            )

    def current_record_ids(self, record_ids: Iterable[int]) -> Set[int]:
        """Subset of record_ids that have a current version."""
        ids = list(record_ids)
        if not ids:
            return set()
        with Session(self.engine) as session:
            rows = session.exec(
                select(ResponseVersion.oid_record_id)
                .where(
                    ResponseVersion.oid_record_id.in_(ids),  # type: ignore
                    ResponseVersion.is_current == True,  # noqa: E712
                )
                .distinct()
            ).all()
        return set(rows)
