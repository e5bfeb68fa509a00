"""OID Sync — Run Ledger.

Lifecycle and counters of one synchronization run. Counter updates arrive
from concurrently completing items and all pass through ``_increment``.
"""

import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from oidsync.models.batch_models import BatchRun, RunStatus
from oidsync.core.logging import get_logger

logger = get_logger("sync.ledger")

# Shared by every RunLedger in the process
_write_lock = threading.Lock()


class RunLedger:
    """Creates, counts, and closes BatchRun rows."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def open_run(
        self, items: Sequence, hli_api_config_id: Optional[int] = None
    ) -> str:
        batch_id = str(uuid.uuid4())
        with Session(self.engine) as session:
            session.add(
                BatchRun(
                    batch_id=batch_id,
                    hli_api_config_id=hli_api_config_id,
                    total_oids=len(items),
                    status=RunStatus.PROCESSING,
                )
            )
            session.commit()
        logger.info(
            f"Opened run for {len(items)} OIDs", extra={"batch_id": batch_id}
        )
        return batch_id

    def _increment(self, batch_id: str, column: str) -> None:
        counter = getattr(BatchRun, column)
        with _write_lock, Session(self.engine) as session:
            session.exec(
                update(BatchRun)
                .where(BatchRun.batch_id == batch_id)
                .values({column: counter + 1})
            )
            session.commit()

    def record_success(self, batch_id: str) -> None:
        self._increment(batch_id, "successful_oids")

    def record_failure(self, batch_id: str) -> None:
        self._increment(batch_id, "failed_oids")

    def close_run(
        self,
        batch_id: str,
        status: RunStatus,
        error_message: Optional[str] = None,
    ) -> Optional[BatchRun]:
        """Stamp the end time and final status. A run closes only once."""
        if status == RunStatus.PROCESSING:
            raise ValueError("A run cannot be closed as PROCESSING")

        with _write_lock, Session(self.engine) as session:
            run = session.exec(
                select(BatchRun).where(BatchRun.batch_id == batch_id)
            ).first()
            if run is None:
                logger.error("Cannot close unknown run", extra={"batch_id": batch_id})
                return None
            if run.status != RunStatus.PROCESSING:
                logger.warning(
                    f"Run already closed as {run.status.value}",
                    extra={"batch_id": batch_id},
                )
                return run

            run.batch_end_time = datetime.now(timezone.utc)
            run.status = status
            run.error_message = error_message
            session.add(run)
            session.commit()
            session.refresh(run)

        logger.info(
            f"Closed run as {status.value}: {run.successful_oids} succeeded, "
            f"{run.failed_oids} failed of {run.total_oids}",
            extra={"batch_id": batch_id},
        )
        return run

    # ── Reads ──

    def get_run(self, batch_id: str) -> Optional[BatchRun]:
        with Session(self.engine) as session:
            return session.exec(
                select(BatchRun).where(BatchRun.batch_id == batch_id)
            ).first()

    def list_runs(self, limit: int = 20) -> List[BatchRun]:
        """Most recent runs first."""
        with Session(self.engine) as session:
            return list(
                session.exec(
                    select(BatchRun)
                    .order_by(BatchRun.id.desc())  # type: ignore
                    .limit(limit)
                ).all()
            )
