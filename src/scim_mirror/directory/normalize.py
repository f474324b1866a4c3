"""
Directory Normalization

Turns raw SCIM resources into canonical records. Every function returns a
Normalized or Skipped result instead of raising, so one malformed resource never
aborts a page.
"""

from datetime import datetime
from datetime import timezone
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional

from pydantic import ValidationError

from scim_mirror.enums import EntityType
from scim_mirror.enums import UserStatus
from scim_mirror.exceptions import RecordInvalid
from scim_mirror.models.entities import CanonicalGroup
from scim_mirror.models.entities import CanonicalUser
from scim_mirror.models.entities import MembershipEdge
from scim_mirror.models.entities import as_date
from scim_mirror.models.sync import Normalized
from scim_mirror.models.sync import NormalizeResult
from scim_mirror.models.sync import Skipped

SAP_USER_EXTENSION = "urn:ietf:params:scim:schemas:extension:sap:2.0:User"
ENTERPRISE_USER_EXTENSION = "urn:ietf:params:scim:schemas:extension:enterprise:2.0:User"
CUSTOM_GROUP_EXTENSION = "urn:sap:cloud:scim:schemas:extension:custom:2.0:Group"

DEFAULT_USER_TYPE = "employee"

USER_REQUIRED_FIELDS = ("id", "login_name", "last_name", "user_type", "status")


def _text(value: Any) -> Optional[str]:
    """Strip strings; blank or non-string values become None."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def _section(resource: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = resource.get(name)
    return section if isinstance(section, dict) else {}


def _entries(container: Dict[str, Any], name: str) -> List[Dict[str, Any]]:
    entries = container.get(name)
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


def _parse_timestamp(value: Any) -> Optional[datetime]:
    text = _text(value)
    if text is None:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _first_email(entries: List[Dict[str, Any]]) -> Optional[str]:
    for entry in entries:
        email = _text(entry.get("value"))
        if email:
            return email
    return None


def _resolve_email(resource: Dict[str, Any]) -> Optional[str]:
    return _first_email(_entries(resource, "emails")) or _first_email(
        _entries(_section(resource, SAP_USER_EXTENSION), "emails")
    )


def _resolve_status(resource: Dict[str, Any]) -> UserStatus:
    active = resource.get("active")
    if isinstance(active, bool):
        return UserStatus.ACTIVE if active else UserStatus.INACTIVE

    sap_status = _text(_section(resource, SAP_USER_EXTENSION).get("status"))
    if sap_status and sap_status.lower() == "inactive":
        return UserStatus.INACTIVE
    return UserStatus.ACTIVE


def _pick_address(addresses: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Prefer the home address, then work, then whatever comes first."""
    if not addresses:
        return None
    for preferred in ("home", "work"):
        for address in addresses:
            address_type = _text(address.get("type"))
            if address_type and address_type.lower() == preferred:
                return address
    return addresses[0]


def _resolve_address(resource: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Core addresses win; SAP extension addresses are used only when the core pick is empty."""
    core = _pick_address(_entries(resource, "addresses"))
    if core is not None and (_text(core.get("country")) or _text(core.get("locality"))):
        return core
    sap = _pick_address(_entries(_section(resource, SAP_USER_EXTENSION), "addresses"))
    return sap if sap is not None else core


def _missing_user_fields(values: Dict[str, Any]) -> List[str]:
    return [name for name in USER_REQUIRED_FIELDS if values.get(name) is None]


def normalize_user(resource: Dict[str, Any]) -> NormalizeResult:
    """
    Build a CanonicalUser from a SCIM user resource.

    A resource missing id, loginName (after the email fallback) or last name
    is Skipped; userType defaults to "employee" and status to ACTIVE.
    """
    resource_id = _text(resource.get("id"))
    name = _section(resource, "name")
    sap = _section(resource, SAP_USER_EXTENSION)
    enterprise = _section(resource, ENTERPRISE_USER_EXTENSION)
    email = _resolve_email(resource)
    address = _resolve_address(resource) or {}

    values = {
        "id": resource_id,
        "login_name": _text(resource.get("userName")) or email,
        "email": email,
        "last_name": _text(name.get("familyName")),
        "first_name": _text(name.get("givenName")),
        "user_type": _text(resource.get("userType")) or DEFAULT_USER_TYPE,
        "status": _resolve_status(resource),
        "valid_from": as_date(sap.get("validFrom")),
        "valid_to": as_date(sap.get("validTo")),
        "company": _text(enterprise.get("organization")),
        "country": _text(address.get("country")),
        "city": _text(address.get("locality")),
        "directory_last_modified": _parse_timestamp(_section(resource, "meta").get("lastModified")),
    }

    missing = _missing_user_fields(values)
    if missing:
        return _skip(RecordInvalid(resource_id, f"missing required field(s): {', '.join(missing)}"))

    try:
        user = CanonicalUser(**values)
    except ValidationError as e:
        return _skip(RecordInvalid(resource_id, str(e)))
    return Normalized(resource_id=resource_id, entities=(user,))


def normalize_group(resource: Dict[str, Any]) -> NormalizeResult:
    """Build a CanonicalGroup from a SCIM group resource. Only the id is required."""
    resource_id = _text(resource.get("id"))
    if resource_id is None:
        return _skip(RecordInvalid(None, "missing required field(s): id"))

    custom = _section(resource, CUSTOM_GROUP_EXTENSION)
    group = CanonicalGroup(
        id=resource_id,
        name=_text(custom.get("name")),
        display_name=_text(resource.get("displayName")),
        description=_text(custom.get("description")),
        directory_last_modified=_parse_timestamp(_section(resource, "meta").get("lastModified")),
    )
    return Normalized(resource_id=resource_id, entities=(group,))


def normalize_user_assignments(resource: Dict[str, Any]) -> NormalizeResult:
    """
    Membership edges as listed on a user (groups[].value).

    Users that would be Skipped by normalize_user contribute no edges, so
    assignments never reference a user the mirror refuses to hold.
    """
    user = normalize_user(resource)
    if isinstance(user, Skipped):
        return user

    user_id = user.resource_id
    group_ids = sorted({gid for gid in (_text(g.get("value")) for g in _entries(resource, "groups")) if gid})
    edges = tuple(MembershipEdge(user_id=user_id, group_id=group_id) for group_id in group_ids)
    return Normalized(resource_id=user_id, entities=edges)


def normalize_group_members(resource: Dict[str, Any]) -> NormalizeResult:
    """Membership edges as listed on a group (members[].value), ignoring nested groups."""
    group_id = _text(resource.get("id"))
    if group_id is None:
        return _skip(RecordInvalid(None, "missing required field(s): id"))

    user_ids = set()
    for member in _entries(resource, "members"):
        member_type = _text(member.get("type"))
        if member_type and member_type.lower() == "group":
            continue
        user_id = _text(member.get("value"))
        if user_id:
            user_ids.add(user_id)

    edges = tuple(MembershipEdge(user_id=user_id, group_id=group_id) for user_id in sorted(user_ids))
    return Normalized(resource_id=group_id, entities=edges)


def _skip(error: RecordInvalid) -> Skipped:
    return Skipped(resource_id=error.resource_id, reason=error.reason)


NORMALIZERS: Dict[EntityType, Callable[[Dict[str, Any]], NormalizeResult]] = {
    EntityType.USERS: normalize_user,
    EntityType.GROUPS: normalize_group,
    EntityType.USER_GROUP_ASSIGNMENTS: normalize_user_assignments,
    EntityType.GROUP_MEMBERS: normalize_group_members,
}
