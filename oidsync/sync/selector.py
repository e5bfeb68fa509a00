"""OID Sync — Pending Work Selector."""

from typing import List, Sequence

from oidsync.models.oid_models import OidRecord
from oidsync.sync.versions import ResponseVersionStore
from oidsync.core.logging import get_logger

logger = get_logger("sync.selector")


class PendingWorkSelector:
    """Finds records that have no current response version."""

    def __init__(self, versions: ResponseVersionStore):
        self.versions = versions

    def select_pending(self, records: Sequence[OidRecord]) -> List[OidRecord]:
        """Return, in input order, the records lacking a current version."""
        answered = self.versions.current_record_ids(r.id for r in records)
        pending = [r for r in records if r.id not in answered]
        logger.info(f"Found {len(pending)} of {len(records)} OIDs that need processing")
        return pending
