"""
Diff Engine

Classifies every remote and local key of one entity type as insert, update,
delete or unchanged. Change detection compares the identity-relevant fields
listed in each canonical type's COMPARABLE_FIELDS; directory_last_modified is
never compared.
"""

from enum import Enum
from typing import Any
from typing import Dict
from typing import FrozenSet
from typing import Iterable

from scim_mirror.enums import EntityType
from scim_mirror.models.entities import MembershipEdge
from scim_mirror.models.entities import as_date
from scim_mirror.models.sync import DiffResult
from scim_mirror.models.sync import UpdateOp

DATE_FIELDS = frozenset({"valid_from", "valid_to"})


def _comparable(field: str, value: Any) -> Any:
    if field in DATE_FIELDS:
        return as_date(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, str):
        return value.strip() or None
    return value


def changed_fields(remote: Any, local: Any) -> FrozenSet[str]:
    """Names of the comparable fields whose values differ (None equals None, one-sided None differs)."""
    return frozenset(
        field
        for field in remote.COMPARABLE_FIELDS
        if _comparable(field, getattr(remote, field)) != _comparable(field, getattr(local, field, None))
    )


def protected_keys(entity_type: EntityType, skipped_ids: Iterable[str], local: Dict[str, Any]) -> FrozenSet[str]:
    """
    Local keys that belong to invalid directory resources and must not be deleted.

    For users and groups that is the skipped id itself; for membership edges it
    is every local edge owned by the skipped user (assignments) or group (members).
    """
    skipped = set(skipped_ids)
    if not skipped:
        return frozenset()
    if entity_type == EntityType.USER_GROUP_ASSIGNMENTS:
        return frozenset(key for key in local if MembershipEdge.from_key(key).user_id in skipped)
    if entity_type == EntityType.GROUP_MEMBERS:
        return frozenset(key for key in local if MembershipEdge.from_key(key).group_id in skipped)
    return frozenset(skipped & set(local))


def diff(remote: Dict[str, Any], local: Dict[str, Any], protected: Iterable[str] = ()) -> DiffResult:
    """
    Compute the writes that bring local in line with remote.

    Args:
        remote: Canonical records keyed by record key
        local: Local records keyed by record key
        protected: Local keys excluded from deletion

    Returns:
        DiffResult with every list sorted by key
    """
    result = DiffResult()

    for key in sorted(remote):
        record = remote[key]
        current = local.get(key)
        if current is None:
            result.to_insert.append(record)
            continue
        changed = changed_fields(record, current)
        if changed:
            result.to_update.append(UpdateOp(record=record, changed_fields=changed))
        else:
            result.unchanged += 1

    protected = set(protected)
    result.to_delete = sorted(key for key in local if key not in remote and key not in protected)
    return result
