"""OID Sync — HLI Group Members Wire Models.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


# ─────────────────────────────────────────────
# REQUESTS
# ─────────────────────────────────────────────


class GroupMembersRequest(_CamelModel):
    """Request template. Carries a list of OIDs; one wire call is made per OID."""

    id: Optional[str] = None
    oids: List[str] = []
    url: Optional[str] = None
    revision_date: Optional[str] = None  # YYYY-MM-DD
    count: Optional[int] = None
    next_cursor: Optional[str] = None
    fields: Optional[List[str]] = None
    effective_date: Optional[str] = None
    include_invalid: Optional[bool] = None
    include_retired: Optional[bool] = None


class HliGroupMembersPayload(_CamelModel):
    """JSON body of POST /v1/groups/members."""

    id: Optional[str] = None
    oid: str
    url: Optional[str] = None
    revision_date: Optional[str] = None
    count: Optional[int] = None
    next_cursor: Optional[str] = None
    fields: Optional[List[str]] = None
    effective_date: Optional[str] = None
    include_invalid: Optional[bool] = None
    include_retired: Optional[bool] = None


# ─────────────────────────────────────────────
# RESPONSES
# ─────────────────────────────────────────────


class MemberProperty(_CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    value: Any = None


class GroupMember(_CamelModel):
    """A single code returned for a group."""

    id: Optional[str] = None
    name: Optional[str] = None
    code: Optional[str] = None
    code_system_id: Optional[str] = None
    valid: bool = True
    properties: List[MemberProperty] = []


class GroupMembersResponse(_CamelModel):
    results: List[GroupMember] = []
    next_cursor: Optional[str] = None
