"""OID Sync — Method Router.

Maps a record's processing strategy label to the request shape sent to HLI.
The set of strategies is a closed enum and the lookup is a static table.
"""

import uuid
from collections import OrderedDict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from oidsync.models.hli_models import GroupMembersRequest
from oidsync.models.oid_models import OidRecord
from oidsync.sync.dispatcher import BatchDispatcher, DispatchReport
from oidsync.core.logging import get_logger

logger = get_logger("sync.router")


class ProcessingStrategy(str, Enum):
    """Request-shaping variants, stored on OidRecord.processing_strategy."""

    DEFAULT = "defaultProcessOid"
    LOINC = "processLoincOid"
    SNOMED = "processSnomedOid"
    RXNORM = "processRxNormOid"
    ICD = "processIcdOid"
    CPT = "processCptOid"


LOINC_FIELDS = ["COMPONENT", "PROPERTY", "TIME_ASPCT", "SYSTEM", "SCALE_TYP", "METHOD_TYP"]
SNOMED_FIELDS = ["FSN", "CONCEPTID", "SEMANTIC_TAG"]


def resolve_strategy(label: Optional[str]) -> ProcessingStrategy:
    """Unknown or empty labels resolve to DEFAULT."""
    if not label:
        return ProcessingStrategy.DEFAULT
    try:
        return ProcessingStrategy(label)
    except ValueError:
        logger.warning(f"Unknown processing strategy '{label}', using default")
        return ProcessingStrategy.DEFAULT


# ── Request builders ──


def build_default_request() -> GroupMembersRequest:
    return GroupMembersRequest(id=str(uuid.uuid4()))


def build_loinc_request() -> GroupMembersRequest:
    return GroupMembersRequest(id=str(uuid.uuid4()), fields=list(LOINC_FIELDS))


def build_snomed_request() -> GroupMembersRequest:
    return GroupMembersRequest(id=str(uuid.uuid4()), fields=list(SNOMED_FIELDS))


STRATEGY_HANDLERS: Dict[ProcessingStrategy, Callable[[], GroupMembersRequest]] = {
    ProcessingStrategy.DEFAULT: build_default_request,
    ProcessingStrategy.LOINC: build_loinc_request,
    ProcessingStrategy.SNOMED: build_snomed_request,
    # No family-specific field sets for these yet
    ProcessingStrategy.RXNORM: build_default_request,
    ProcessingStrategy.ICD: build_default_request,
    ProcessingStrategy.CPT: build_default_request,
}


def build_request(label: Optional[str]) -> GroupMembersRequest:
    return STRATEGY_HANDLERS[resolve_strategy(label)]()


def group_by_strategy(
    records: Sequence[OidRecord],
) -> "OrderedDict[ProcessingStrategy, List[OidRecord]]":
    """Group records by resolved strategy, keeping first-seen order."""
    groups: "OrderedDict[ProcessingStrategy, List[OidRecord]]" = OrderedDict()
    for record in records:
        groups.setdefault(resolve_strategy(record.processing_strategy), []).append(record)
    return groups


# ── Classification (used when registering records) ──

LOINC_ROOT = "2.16.840.1.113883.6.1"
SNOMED_ROOT = "2.16.840.1.113883.6.96"
RXNORM_ROOT = "2.16.840.1.113883.6.88"
ICD10_ROOT = "2.16.840.1.113883.6.90"
ICD9_ROOT = "2.16.840.1.113883.6.103"
CPT_ROOT = "2.16.840.1.113883.6.12"
HCPCS_ROOT = "2.16.840.1.113883.6.285"


def oid_root(oid: str) -> str:
    """'2.16.840.1.113883.6.1:12345' → '2.16.840.1.113883.6.1'"""
    return oid.split(":", 1)[0]


def determine_strategy(
    oid: Optional[str], member_code_system: Optional[str] = None
) -> ProcessingStrategy:
    """Pick a strategy from the OID root or the member code system name."""
    if not oid:
        return ProcessingStrategy.DEFAULT
    root = oid_root(oid)
    system = (member_code_system or "").lower()

    if root == LOINC_ROOT or "loinc" in system:
        return ProcessingStrategy.LOINC
    if root == SNOMED_ROOT or "snomed" in system:
        return ProcessingStrategy.SNOMED
    if root == RXNORM_ROOT or "rxnorm" in system:
        return ProcessingStrategy.RXNORM
    if root in (ICD10_ROOT, ICD9_ROOT) or "icd" in system:
        return ProcessingStrategy.ICD
    if root in (CPT_ROOT, HCPCS_ROOT) or "cpt" in system or "hcpcs" in system:
        return ProcessingStrategy.CPT
    return ProcessingStrategy.DEFAULT


# ── Router ──

ActionFactory = Callable[[GroupMembersRequest], Callable[[OidRecord], Awaitable[Any]]]


class MethodRouter:
    """Shapes a request per strategy and hands the group to the dispatcher."""

    def __init__(self, dispatcher: BatchDispatcher):
        self.dispatcher = dispatcher

    async def route(
        self,
        label: Optional[str],
        records: Sequence[OidRecord],
        chunk_size: int,
        inter_chunk_delay_ms: int,
        action_factory: ActionFactory,
    ) -> DispatchReport[OidRecord]:
        strategy = resolve_strategy(label)
        template = STRATEGY_HANDLERS[strategy]()
        logger.info(f"Routing {len(records)} OIDs via {strategy.value}")
        return await self.dispatcher.run(
            records, chunk_size, inter_chunk_delay_ms, action_factory(template)
        )
