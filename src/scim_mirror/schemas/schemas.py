####################################
# --- Request/response schemas --- #
####################################

from datetime import date
from datetime import datetime
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic.alias_generators import to_camel

from scim_mirror.enums import UserStatus


class CamelModel(BaseModel):
    """Serializes with camelCase field names, accepts either form on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserResponse(CamelModel):
    """A mirrored user."""

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


class GroupResponse(CamelModel):
    """A mirrored group."""

    id: str
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    directory_last_modified: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ListQueryParams(BaseModel):
    """SCIM-style paging for list endpoints."""

    startIndex: int = 1
    count: int = 100
    search: Optional[str] = None

    @field_validator("startIndex")
    @classmethod
    def validate_start_index(cls, v):
        """startIndex is 1-based."""
        if v < 1:
            raise ValueError("startIndex must be at least 1")
        return v

    @field_validator("count")
    @classmethod
    def validate_count(cls, v):
        if v < 1 or v > 1000:
            raise ValueError("count must be between 1 and 1000")
        return v


# Field names follow the SCIM ListResponse, hence the mixed case
class UserListResponse(BaseModel):
    totalResults: int
    startIndex: int
    itemsPerPage: int
    Resources: List[UserResponse]


class GroupListResponse(BaseModel):
    totalResults: int
    startIndex: int
    itemsPerPage: int
    Resources: List[GroupResponse]


class GroupMembersResponse(BaseModel):
    groupId: str
    groupName: Optional[str] = None
    totalResults: int
    startIndex: int
    itemsPerPage: int
    Resources: List[UserResponse]


def _clean_ids(v: List[str], field: str) -> List[str]:
    """Strip, drop blanks and de-duplicate while keeping order."""
    cleaned = list(dict.fromkeys(item.strip() for item in v if item and item.strip()))
    if not cleaned:
        raise ValueError(f"{field} must contain at least one non-blank id")
    return cleaned


class AddMembersRequest(CamelModel):
    """Users to add to a group."""

    user_ids: List[str] = Field(min_length=1)

    @field_validator("user_ids")
    @classmethod
    def validate_user_ids(cls, v):
        return _clean_ids(v, "userIds")


class RemoveMembersRequest(AddMembersRequest):
    """Users to remove from a group."""


class UserGroupsRequest(CamelModel):
    """Groups to add a user to, or remove a user from."""

    group_ids: List[str] = Field(min_length=1)

    @field_validator("group_ids")
    @classmethod
    def validate_group_ids(cls, v):
        return _clean_ids(v, "groupIds")


class AddMembersResponse(CamelModel):
    group_id: str
    added: List[str]
    already_members: List[str]


class RemoveMemberResponse(CamelModel):
    group_id: str
    user_id: str
    removed: bool


class RemoveMembersResponse(CamelModel):
    group_id: str
    removed: List[str]
    not_members: List[str]


class AddUserGroupsResponse(CamelModel):
    user_id: str
    added: List[str]
    already_members: List[str]


class RemoveUserGroupsResponse(CamelModel):
    user_id: str
    removed: List[str]
    not_members: List[str]


class StageReportResponse(CamelModel):
    stage: str
    entity_type: str
    success: bool
    error: Optional[str] = None
    stats: Dict[str, int]


class RunReportResponse(CamelModel):
    """Statistics of one reconciliation pass."""

    run_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    state: str
    skipped: bool
    success: bool
    stages: List[StageReportResponse]

    @classmethod
    def from_report(cls, report: Any) -> "RunReportResponse":
        return cls(
            run_id=report.run_id,
            started_at=report.started_at,
            finished_at=report.finished_at,
            state=report.state.value,
            skipped=report.skipped,
            success=report.success,
            stages=[
                StageReportResponse(
                    stage=stage.stage.value,
                    entity_type=stage.entity_type.value,
                    success=stage.success,
                    error=stage.error,
                    stats=stage.stats.model_dump(),
                )
                for stage in report.stages
            ],
        )
