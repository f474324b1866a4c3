"""
Enums

All enum types used by the directory reader, the reconciliation engine and the API.
Values of UserStatus must match the mirror's database constraint.
"""

from enum import Enum


class UserStatus(str, Enum):
    """Account status of a directory user."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class EntityType(str, Enum):
    """Entity types reconciled from the directory into the mirror."""

    USERS = "users"
    GROUPS = "groups"
    USER_GROUP_ASSIGNMENTS = "userGroupAssignments"  # edges read from each user's groups
    GROUP_MEMBERS = "groupMembers"  # edges read from each group's members

    @property
    def is_edge(self) -> bool:
        """True for the two membership-edge entity types."""
        return self in (EntityType.USER_GROUP_ASSIGNMENTS, EntityType.GROUP_MEMBERS)


class ChangeAction(str, Enum):
    """Effect applied to one mirrored record."""

    INSERTED = "INSERTED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"


class SyncStage(str, Enum):
    """Stages of one reconciliation pass, in execution order."""

    SYNC_USERS = "SYNC_USERS"
    SYNC_GROUPS = "SYNC_GROUPS"
    SYNC_MEMBERSHIPS_BY_USER = "SYNC_MEMBERSHIPS_BY_USER"
    SYNC_MEMBERSHIPS_BY_GROUP = "SYNC_MEMBERSHIPS_BY_GROUP"
    DONE = "DONE"


STAGE_ENTITY_TYPES = {
    SyncStage.SYNC_USERS: EntityType.USERS,
    SyncStage.SYNC_GROUPS: EntityType.GROUPS,
    SyncStage.SYNC_MEMBERSHIPS_BY_USER: EntityType.USER_GROUP_ASSIGNMENTS,
    SyncStage.SYNC_MEMBERSHIPS_BY_GROUP: EntityType.GROUP_MEMBERS,
}
