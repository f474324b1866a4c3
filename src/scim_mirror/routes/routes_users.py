"""
User endpoints.

Reads are served from the mirror. Group assignments edited from the user side
follow the same write-through rule as group membership edits: each group is
changed in the directory first and then in the mirror.
"""

from typing import List

from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import HTTPException
from fastapi import status
from loguru import logger

from scim_mirror.dependencies import get_scim_client
from scim_mirror.dependencies import get_store
from scim_mirror.directory.scim_client import ScimClient
from scim_mirror.models.entities import MembershipEdge
from scim_mirror.schemas.schemas import AddUserGroupsResponse
from scim_mirror.schemas.schemas import GroupResponse
from scim_mirror.schemas.schemas import ListQueryParams
from scim_mirror.schemas.schemas import RemoveUserGroupsResponse
from scim_mirror.schemas.schemas import UserGroupsRequest
from scim_mirror.schemas.schemas import UserListResponse
from scim_mirror.schemas.schemas import UserResponse

ROUTER_USERS = APIRouter(tags=["Users"])

USER_NOT_FOUND = {
    status.HTTP_404_NOT_FOUND: {
        "description": "User not found",
        "content": {"application/json": {"example": {"detail": "User not found: u1"}}},
    },
}

DIRECTORY_REJECTED = {
    status.HTTP_502_BAD_GATEWAY: {
        "description": (
            "The directory rejected the change for a group; that group and the ones after it were not modified"
        ),
    },
}


async def _require_user(store, user_id: str):
    user = await store.users.get(user_id)
    if user is None:
        logger.warning("User not found", user_id=user_id, http_status=404)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User not found: {user_id}")
    return user


async def _require_groups(store, group_ids: List[str]) -> None:
    unknown = [group_id for group_id in group_ids if await store.groups.get(group_id) is None]
    if unknown:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Groups not found: {', '.join(unknown)}")


@ROUTER_USERS.get("/users", response_model=UserListResponse)
async def list_users(query_params: ListQueryParams = Depends(), store=Depends(get_store)):
    """List mirrored users, SCIM ListResponse style, with optional case-insensitive search."""
    users = await store.users.list(
        start_index=query_params.startIndex,
        count=query_params.count,
        search=query_params.search,
    )
    total = await store.users.count(search=query_params.search)

    logger.info("Listed users", total=total, returned=len(users), search=query_params.search)
    return UserListResponse(
        totalResults=total,
        startIndex=query_params.startIndex,
        itemsPerPage=len(users),
        Resources=[UserResponse.model_validate(user.model_dump()) for user in users],
    )


@ROUTER_USERS.get("/users/{user_id}", response_model=UserResponse, responses=USER_NOT_FOUND)
async def get_user(user_id: str, store=Depends(get_store)):
    user = await _require_user(store, user_id)
    return UserResponse.model_validate(user.model_dump())


@ROUTER_USERS.get("/users/{user_id}/groups", response_model=List[GroupResponse], responses=USER_NOT_FOUND)
async def get_user_groups(user_id: str, store=Depends(get_store)):
    """Groups the user belongs to in the mirror."""
    await _require_user(store, user_id)
    groups = await store.members.groups_of(user_id)
    return [GroupResponse.model_validate(group.model_dump()) for group in groups]


@ROUTER_USERS.post(
    "/users/{user_id}/groups",
    response_model=AddUserGroupsResponse,
    responses={**USER_NOT_FOUND, **DIRECTORY_REJECTED},
)
async def add_user_to_groups(
    user_id: str,
    body: UserGroupsRequest = Body(...),
    store=Depends(get_store),
    scim_client: ScimClient = Depends(get_scim_client),
):
    """
    Add a user to several groups, one directory PATCH per group.

    Groups are processed in order and each is written to the mirror right after
    the directory accepted it, so a 502 halfway leaves the earlier groups changed
    on both sides and the rest untouched.
    """
    await _require_user(store, user_id)
    await _require_groups(store, body.group_ids)

    added, already_members = [], []
    for group_id in body.group_ids:
        await scim_client.add_group_members(group_id, [user_id])
        inserted = await store.members.upsert_edge(MembershipEdge(user_id=user_id, group_id=group_id))
        (added if inserted else already_members).append(group_id)

    logger.info("User added to groups", user_id=user_id, added=len(added), already_members=len(already_members))
    return AddUserGroupsResponse(user_id=user_id, added=added, already_members=already_members)


@ROUTER_USERS.delete(
    "/users/{user_id}/groups",
    response_model=RemoveUserGroupsResponse,
    responses={**USER_NOT_FOUND, **DIRECTORY_REJECTED},
)
async def remove_user_from_groups(
    user_id: str,
    body: UserGroupsRequest = Body(...),
    store=Depends(get_store),
    scim_client: ScimClient = Depends(get_scim_client),
):
    """
    Remove a user from several groups, one directory PATCH per group.

    Groups the user is not a member of in the mirror are reported in notMembers
    and not sent to the directory.
    """
    await _require_user(store, user_id)
    await _require_groups(store, body.group_ids)

    removed, not_members = [], []
    for group_id in body.group_ids:
        if not await store.members.is_member(user_id, group_id):
            not_members.append(group_id)
            continue
        await scim_client.remove_group_member(group_id, user_id)
        await store.members.delete_edge(MembershipEdge(user_id=user_id, group_id=group_id))
        removed.append(group_id)

    logger.info("User removed from groups", user_id=user_id, removed=len(removed), not_members=len(not_members))
    return RemoveUserGroupsResponse(user_id=user_id, removed=removed, not_members=not_members)
