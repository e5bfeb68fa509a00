"""OID Sync — Synchronization Pipeline.

Runs the full data flow:
  select pending → open run → route per strategy → dispatch chunks →
  call HLI per OID → store version → count outcome → close run

The public entry points are blocking. Each one drives its own event loop with
``asyncio.run`` and returns only when every chunk has finished, so callers
must invoke them from a worker thread (see ``oidsync.scheduler.jobs``), never
from an event loop serving requests. Runs in one process are serialized:
a second caller waits until the first run has closed, then selects afresh.
"""

import asyncio
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy.engine import Engine

from oidsync.config import settings
from oidsync.connectors.hli.client import HliClient
from oidsync.connectors.hli.mapper import to_hli_payload
from oidsync.models.batch_models import RunStatus
from oidsync.models.hli_models import GroupMembersRequest, GroupMembersResponse
from oidsync.models.oid_models import HliApiConfig, OidRecord
from oidsync.sync.dispatcher import BatchDispatcher
from oidsync.sync.ledger import RunLedger
from oidsync.sync.records import OidRecordRepository
from oidsync.sync.router import MethodRouter, group_by_strategy
from oidsync.sync.selector import PendingWorkSelector
from oidsync.sync.versions import ResponseVersionStore
from oidsync.core.logging import get_logger

logger = get_logger("sync.pipeline")

HTTP_OK = 200

# Held from selection to close, so two runs never pick the same records
_run_lock = threading.Lock()


@contextmanager
def exclusive_run():
    """One sync run at a time per process. Later callers wait their turn."""
    if not _run_lock.acquire(blocking=False):
        logger.info("Another sync run is in progress, waiting for it to finish")
        _run_lock.acquire()
    try:
        yield
    finally:
        _run_lock.release()


@dataclass(frozen=True)
class SyncTuning:
    """Effective knobs for one run: integration config over process settings."""

    base_url: str
    chunk_size: int
    inter_chunk_delay_ms: int
    max_concurrency: int
    retry_max_attempts: int
    retry_backoff_ms: int
    timeout_seconds: float
    item_timeout_seconds: float

    @classmethod
    def resolve(cls, config: Optional[HliApiConfig] = None) -> "SyncTuning":
        def pick(value, fallback):
            return value if value is not None and value > 0 else fallback

        timeout_seconds = settings.hli_timeout_seconds
        if config is not None and config.timeout_ms:
            timeout_seconds = config.timeout_ms / 1000

        return cls(
            base_url=(config.api_base_url if config and config.api_base_url else settings.hli_base_url),
            chunk_size=pick(config.batch_size if config else None, settings.hli_batch_size),
            inter_chunk_delay_ms=settings.hli_delay_ms,
            max_concurrency=settings.hli_max_concurrency,
            retry_max_attempts=pick(
                config.retry_limit if config else None, settings.hli_retry_max_attempts
            ),
            retry_backoff_ms=pick(
                config.retry_interval_ms if config else None, settings.hli_retry_backoff_ms
            ),
            timeout_seconds=timeout_seconds,
            item_timeout_seconds=settings.hli_item_timeout_seconds,
        )


def default_client_factory(tuning: SyncTuning) -> HliClient:
    return HliClient(
        base_url=tuning.base_url,
        retry_max_attempts=tuning.retry_max_attempts,
        retry_backoff_ms=tuning.retry_backoff_ms,
        timeout_seconds=tuning.timeout_seconds,
    )


class ProcessOidsResult(BaseModel):
    """Outcome of an on-demand request."""

    oids: List[str] = []
    batch_id: Optional[str] = None


class OidSyncService:
    """Synchronizes OID records with the HLI API."""

    def __init__(
        self,
        engine: Engine,
        client_factory: Callable[[SyncTuning], HliClient] = default_client_factory,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.records = OidRecordRepository(engine)
        self.versions = ResponseVersionStore(engine)
        self.ledger = RunLedger(engine)
        self.selector = PendingWorkSelector(self.versions)
        self.client_factory = client_factory
        self._sleep = sleep

    # ── Entry points (blocking) ──

    def process_all_pending(self) -> Optional[str]:
        """Sweep every active record without a current version."""
        logger.info("Processing all pending OIDs")
        with exclusive_run():
            pending = self.selector.select_pending(self.records.list_active())
            if not pending:
                logger.info("No OIDs need processing")
                return None
            return self._run(pending)

    def process_oids(self, oids: Sequence[str]) -> ProcessOidsResult:
        """On-demand sync of the given OIDs, shaped per record strategy."""
        logger.info(f"Processing {len(oids)} OIDs")
        with exclusive_run():
            known = self.records.list_by_oids(oids)
            if not known:
                logger.warning("No OID records found for the requested OIDs")
                return ProcessOidsResult()

            batch_id = None
            pending = self.selector.select_pending(known)
            if pending:
                batch_id = self._run(pending)
            return ProcessOidsResult(oids=[r.oid for r in known], batch_id=batch_id)

    def process_oids_with_request(self, request: GroupMembersRequest) -> Optional[str]:
        """On-demand sync using the caller's request template for every OID."""
        logger.info(f"Processing OIDs with request ID: {request.id}")
        if not request.oids:
            logger.warning("No OIDs provided in the request")
            return None

        with exclusive_run():
            known = self.records.list_by_oids(request.oids)
            if not known:
                logger.warning("No OID records found for the requested OIDs")
                return None

            pending = self.selector.select_pending(known)
            if not pending:
                logger.info("No OIDs need processing")
                return None
            return self._run(pending, template=request)

    # ── Run lifecycle ──

    def _run(
        self,
        pending: List[OidRecord],
        template: Optional[GroupMembersRequest] = None,
    ) -> str:
        config = self.records.config_for(pending[0])
        tuning = SyncTuning.resolve(config)
        batch_id = self.ledger.open_run(pending, config.id if config else None)

        status, error_message = RunStatus.FAILED, None
        try:
            asyncio.run(self._dispatch(batch_id, pending, tuning, template))
            status = RunStatus.COMPLETED
        except Exception as e:
            error_message = str(e) or type(e).__name__
            logger.error(
                f"Run aborted: {error_message}",
                exc_info=True,
                extra={"batch_id": batch_id},
            )
            raise
        finally:
            self.ledger.close_run(batch_id, status, error_message)
        return batch_id

    async def _dispatch(
        self,
        batch_id: str,
        pending: List[OidRecord],
        tuning: SyncTuning,
        template: Optional[GroupMembersRequest],
    ) -> None:
        client = self.client_factory(tuning)
        dispatcher = BatchDispatcher(tuning.max_concurrency, sleep=self._sleep)

        def action_for(request: GroupMembersRequest):
            return self._item_action(batch_id, client, request, tuning)

        try:
            if template is not None:
                await dispatcher.run(
                    pending, tuning.chunk_size, tuning.inter_chunk_delay_ms, action_for(template)
                )
                return

            router = MethodRouter(dispatcher)
            groups = group_by_strategy(pending)
            for index, (strategy, group) in enumerate(groups.items(), 1):
                await router.route(
                    strategy.value,
                    group,
                    tuning.chunk_size,
                    tuning.inter_chunk_delay_ms,
                    action_for,
                )
                # Groups share the rate limit, so pace between them too
                if index < len(groups) and tuning.inter_chunk_delay_ms > 0:
                    await self._sleep(tuning.inter_chunk_delay_ms / 1000)
        finally:
            await client.close()

    def _record_item_failure(
        self, batch_id: str, record: OidRecord, message: str, elapsed_ms: int
    ) -> None:
        """Store the error version and count the failure, even if the store is down."""
        try:
            self.versions.save_error(record.id, message, elapsed_ms)
        except Exception:
            logger.error(
                f"Could not store error version for OID {record.oid}",
                exc_info=True,
                extra={"batch_id": batch_id, "oid": record.oid},
            )
        finally:
            self.ledger.record_failure(batch_id)

    def _item_action(
        self,
        batch_id: str,
        client: HliClient,
        template: GroupMembersRequest,
        tuning: SyncTuning,
    ) -> Callable[[OidRecord], Awaitable[GroupMembersResponse]]:
        async def process(record: OidRecord) -> GroupMembersResponse:
            extra = {"batch_id": batch_id, "oid": record.oid}
            payload = to_hli_payload(template, record.oid)
            started = time.monotonic()
            try:
                response = await asyncio.wait_for(
                    client.fetch_group_members(payload), tuning.item_timeout_seconds
                )
            except Exception as e:
                elapsed_ms = int((time.monotonic() - started) * 1000)
                message = str(e) or type(e).__name__
                logger.error(
                    f"Error processing OID {record.oid}: {message}",
                    extra={**extra, "duration_ms": elapsed_ms},
                )
                self._record_item_failure(batch_id, record, message, elapsed_ms)
                raise

            elapsed_ms = int((time.monotonic() - started) * 1000)
            try:
                self.versions.save_success(
                    record.id,
                    response.model_dump_json(by_alias=True),
                    HTTP_OK,
                    elapsed_ms,
                )
            except Exception as e:
                logger.error(
                    f"Could not store response for OID {record.oid}",
                    exc_info=True,
                    extra=extra,
                )
                self._record_item_failure(
                    batch_id, record, f"Could not store response: {e}", elapsed_ms
                )
                raise
            self.ledger.record_success(batch_id)
            return response

        return process
