"""OID Sync — Scheduler Configuration Service.

Reads per-job schedules from the ``scheduler_config`` table through a small
cache keyed by job name. Any problem reading the table resolves to the
disabled default instead of an error.
"""

import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from oidsync.models.scheduler_models import SchedulerConfig, SchedulerConfigRow
from oidsync.core.logging import get_logger

logger = get_logger("scheduler.config")


class SchedulerConfigService:
    """Cached access to SchedulerConfig rows.

    ``ttl_seconds=0`` keeps entries until ``evict`` is called.
    """

    def __init__(
        self,
        engine: Engine,
        ttl_seconds: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.engine = engine
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[SchedulerConfig, float]] = {}
        self._lock = threading.Lock()

    def get_scheduler_config(self, job_name: str) -> SchedulerConfig:
        with self._lock:
            cached = self._cache.get(job_name)
            if cached is not None:
                config, loaded_at = cached
                if not self.ttl_seconds or self._clock() - loaded_at < self.ttl_seconds:
                    return config

        config, cacheable = self._load(job_name)
        if cacheable:
            with self._lock:
                self._cache[job_name] = (config, self._clock())
        return config

    def _load(self, job_name: str) -> Tuple[SchedulerConfig, bool]:
        logger.debug(f"Fetching scheduler configuration for job: {job_name}")
        try:
            with Session(self.engine) as session:
                row = session.get(SchedulerConfigRow, job_name)
        except SQLAlchemyError as e:
            # Table may not exist yet, or the database is down; retry next call
            logger.warning(
                f"Could not read scheduler_config: {e}", extra={"job_name": job_name}
            )
            return SchedulerConfig.disabled_default(job_name), False

        if row is None:
            logger.warning(
                f"No scheduler configuration found for job: {job_name}",
                extra={"job_name": job_name},
            )
            return SchedulerConfig.disabled_default(job_name), True

        if not row.cron_expression or not row.cron_expression.strip() or row.enabled is None:
            logger.warning(
                f"Incomplete scheduler configuration for job: {job_name}",
                extra={"job_name": job_name},
            )
            return SchedulerConfig.disabled_default(job_name), True

        return (
            SchedulerConfig(
                job_name=row.job_name,
                cron_expression=row.cron_expression.strip(),
                enabled=row.enabled,
            ),
            True,
        )

    def update_scheduler_config(
        self,
        job_name: str,
        cron_expression: str,
        enabled: bool,
        description: Optional[str] = None,
    ) -> bool:
        """Update the job's row, inserting it if missing. Evicts the cache entry."""
        logger.info(
            f"Updating scheduler configuration for job: {job_name}",
            extra={"job_name": job_name},
        )
        try:
            with Session(self.engine) as session:
                row = session.get(SchedulerConfigRow, job_name)
                if row is None:
                    row = SchedulerConfigRow(
                        job_name=job_name,
                        description=description or "Dynamically added job",
                    )
                elif description is not None:
                    row.description = description
                row.cron_expression = cron_expression
                row.enabled = enabled
                row.last_updated = datetime.now(timezone.utc)
                session.add(row)
                session.commit()
            return True
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to update scheduler configuration: {e}",
                extra={"job_name": job_name},
            )
            return False
        finally:
            self.evict(job_name)

    def job_exists(self, job_name: str) -> bool:
        try:
            with Session(self.engine) as session:
                return session.get(SchedulerConfigRow, job_name) is not None
        except SQLAlchemyError:
            return False

    def evict(self, job_name: Optional[str] = None) -> None:
        """Drop one cached entry, or all of them."""
        with self._lock:
            if job_name is None:
                self._cache.clear()
            else:
                self._cache.pop(job_name, None)
