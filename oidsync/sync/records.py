"""OID Sync — OID Record Repository."""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from oidsync.models.oid_models import HliApiConfig, OidRecord
from oidsync.sync.router import determine_strategy, oid_root
from oidsync.core.logging import get_logger

logger = get_logger("sync.records")


class OidRecordIn(BaseModel):
    """Registration payload for one OID."""

    oid: str
    code_group_content_set: str = ""
    code_group_content_set_version: Optional[str] = None
    code_group_name: str = ""
    code_sub_type: Optional[str] = None
    code_group_revision_name: Optional[str] = None
    member_code_system: Optional[str] = None
    hli_api_config_id: Optional[int] = None


def _code_from_oid(oid: str) -> str:
    """'2.16.840.1.113883.6.1:12345' → '12345'; bare OIDs are returned whole."""
    head, sep, tail = oid.rpartition(":")
    return tail if sep and head and tail else oid


class OidRecordRepository:
    def __init__(self, engine: Engine):
        self.engine = engine

    def list_active(self) -> List[OidRecord]:
        with Session(self.engine) as session:
            return list(
                session.exec(
                    select(OidRecord)
                    .where(OidRecord.is_active == True)  # noqa: E712
                    .order_by(OidRecord.id)  # type: ignore
                ).all()
            )

    def list_by_oids(self, oids: Iterable[str]) -> List[OidRecord]:
        wanted = list(dict.fromkeys(oids))
        if not wanted:
            return []
        with Session(self.engine) as session:
            return list(
                session.exec(
                    select(OidRecord)
                    .where(OidRecord.oid.in_(wanted))  # type: ignore
                    .order_by(OidRecord.id)  # type: ignore
                ).all()
            )

    def get_by_oid(self, oid: str) -> Optional[OidRecord]:
        with Session(self.engine) as session:
            return session.exec(select(OidRecord).where(OidRecord.oid == oid)).first()

    # ── Integration configs ──

    def get_config(self, config_id: int) -> Optional[HliApiConfig]:
        with Session(self.engine) as session:
            return session.get(HliApiConfig, config_id)

    def get_active_config(self) -> Optional[HliApiConfig]:
        """The config used when a record does not reference its own."""
        with Session(self.engine) as session:
            return session.exec(
                select(HliApiConfig)
                .where(HliApiConfig.is_active == True)  # noqa: E712
                .order_by(HliApiConfig.id)  # type: ignore
            ).first()

    def config_for(self, record: OidRecord) -> Optional[HliApiConfig]:
        if record.hli_api_config_id is not None:
            config = self.get_config(record.hli_api_config_id)
            if config is not None:
                return config
        return self.get_active_config()

    # ── Registration ──

    def register(
        self, items: Iterable[OidRecordIn], username: Optional[str] = None
    ) -> Tuple[int, int]:
        """Create or update records by OID. Returns (created, updated)."""
        created = updated = 0
        now = datetime.now(timezone.utc)
        with Session(self.engine) as session:
            for item in items:
                record = session.exec(
                    select(OidRecord).where(OidRecord.oid == item.oid)
                ).first()
                if record is None:
                    record = OidRecord(
                        oid=item.oid,
                        code=_code_from_oid(item.oid),
                        hl7_uri=f"urn:oid:{oid_root(item.oid)}",
                        created_by=username,
                        created_date=now,
                    )
                    created += 1
                else:
                    updated += 1

                record.code_group_content_set = item.code_group_content_set
                if item.code_group_content_set_version:
                    record.code_group_content_set_version = item.code_group_content_set_version
                record.code_group_name = item.code_group_name
                record.code_sub_type = item.code_sub_type
                record.code_group_revision_name = item.code_group_revision_name
                if item.hli_api_config_id is not None:
                    record.hli_api_config_id = item.hli_api_config_id
                record.processing_strategy = determine_strategy(
                    item.oid, item.member_code_system
                ).value
                record.last_modified_by = username
                record.last_modified_date = now
                session.add(record)
            session.commit()

        logger.info(f"Registered OIDs: {created} created, {updated} updated")
        return created, updated
