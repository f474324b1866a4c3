"""
Identity Entity Models

Canonical records normalized from directory resources, and the local records
mirrored from them. Diff and apply only ever see these types, never raw SCIM JSON.
"""

from datetime import date
from datetime import datetime
from typing import Any
from typing import ClassVar
from typing import Optional
from typing import Tuple

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import field_validator

from scim_mirror.enums import UserStatus


def as_date(value: Any) -> Optional[date]:
    """
    Normalize a stored date representation back to a date.

    Accepts date, datetime and ISO strings ("2024-01-31", "2024-01-31T00:00:00Z").
    Anything else, including unparseable strings, becomes None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None


class CanonicalUser(BaseModel):
    """A validated directory user, as seen in one reconciliation pass."""

    model_config = ConfigDict(frozen=True)

    COMPARABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "login_name",
        "email",
        "last_name",
        "first_name",
        "user_type",
        "status",
        "valid_from",
        "valid_to",
        "company",
        "country",
        "city",
    )

    id: str
    login_name: str
    email: Optional[str] = None
    last_name: str
    first_name: Optional[str] = None
    user_type: str
    status: UserStatus
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    company: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    directory_last_modified: Optional[datetime] = None  # informational, never compared

    @property
    def key(self) -> str:
        return self.id


class CanonicalGroup(BaseModel):
    """A validated directory group, as seen in one reconciliation pass."""

    model_config = ConfigDict(frozen=True)

    COMPARABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "display_name", "description")

    id: str
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    directory_last_modified: Optional[datetime] = None

    @property
    def key(self) -> str:
        return self.id


class MembershipEdge(BaseModel):
    """A (user, group) membership. Edges carry no attributes, so they are only ever inserted or deleted."""

    model_config = ConfigDict(frozen=True)

    COMPARABLE_FIELDS: ClassVar[Tuple[str, ...]] = ()

    user_id: str
    group_id: str

    @property
    def key(self) -> str:
        return f"{self.user_id}:{self.group_id}"

    @classmethod
    def from_key(cls, key: str) -> "MembershipEdge":
        """Inverse of key. Group ids never contain ":" (directory group ids are GUIDs); user ids may."""
        user_id, _, group_id = key.rpartition(":")
        return cls(user_id=user_id, group_id=group_id)


class LocalUser(BaseModel):
    """User row in the mirror (last synced values plus local bookkeeping)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    login_name: Optional[str] = None
    email: Optional[str] = None
    last_name: Optional[str] = None
    first_name: Optional[str] = None
    user_type: Optional[str] = None
    status: Optional[UserStatus] = None
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    company: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    directory_last_modified: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("valid_from", "valid_to", mode="before")
    @classmethod
    def _normalize_stored_date(cls, v):
        return as_date(v)

    @property
    def key(self) -> str:
        return self.id


class LocalGroup(BaseModel):
    """Group row in the mirror."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    directory_last_modified: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> str:
        return self.id
