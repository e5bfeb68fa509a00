"""OID Sync — Request Template → Wire Payload Mapper."""

from oidsync.models.hli_models import GroupMembersRequest, HliGroupMembersPayload


def to_hli_payload(template: GroupMembersRequest, oid: str) -> HliGroupMembersPayload:
    """Copy every template field onto a payload addressed to a single OID."""
    fields = template.model_dump(exclude={"oids"})
    return HliGroupMembersPayload(oid=oid, **fields)
