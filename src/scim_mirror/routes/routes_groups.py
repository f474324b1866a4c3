"""
Group endpoints.

Reads are served from the mirror. Membership edits go to the directory first
and are then written to the mirror, so the next sync pass sees no difference.
"""

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
from scim_mirror.schemas.schemas import AddMembersRequest
from scim_mirror.schemas.schemas import AddMembersResponse
from scim_mirror.schemas.schemas import GroupListResponse
from scim_mirror.schemas.schemas import GroupMembersResponse
from scim_mirror.schemas.schemas import GroupResponse
from scim_mirror.schemas.schemas import ListQueryParams
from scim_mirror.schemas.schemas import RemoveMemberResponse
from scim_mirror.schemas.schemas import RemoveMembersRequest
from scim_mirror.schemas.schemas import RemoveMembersResponse
from scim_mirror.schemas.schemas import UserResponse

ROUTER_GROUPS = APIRouter(tags=["Groups"])

GROUP_NOT_FOUND = {
    status.HTTP_404_NOT_FOUND: {
        "description": "Group not found",
        "content": {"application/json": {"example": {"detail": "Group not found: g1"}}},
    },
}


async def _require_group(store, group_id: str):
    group = await store.groups.get(group_id)
    if group is None:
        logger.warning("Group not found", group_id=group_id, http_status=404)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Group not found: {group_id}")
    return group


@ROUTER_GROUPS.get("/groups", response_model=GroupListResponse)
async def list_groups(query_params: ListQueryParams = Depends(), store=Depends(get_store)):
    """List mirrored groups, SCIM ListResponse style, with optional case-insensitive search."""
    groups = await store.groups.list(
        start_index=query_params.startIndex,
        count=query_params.count,
        search=query_params.search,
    )
    total = await store.groups.count(search=query_params.search)

    logger.info("Listed groups", total=total, returned=len(groups), search=query_params.search)
    return GroupListResponse(
        totalResults=total,
        startIndex=query_params.startIndex,
        itemsPerPage=len(groups),
        Resources=[GroupResponse.model_validate(group.model_dump()) for group in groups],
    )


@ROUTER_GROUPS.get("/groups/{group_id}", response_model=GroupResponse, responses=GROUP_NOT_FOUND)
async def get_group(group_id: str, store=Depends(get_store)):
    group = await _require_group(store, group_id)
    return GroupResponse.model_validate(group.model_dump())


@ROUTER_GROUPS.get("/groups/{group_id}/members", response_model=GroupMembersResponse, responses=GROUP_NOT_FOUND)
async def get_group_members(group_id: str, query_params: ListQueryParams = Depends(), store=Depends(get_store)):
    """One page of the group's members, ordered by login name."""
    group = await _require_group(store, group_id)
    members = await store.members.members_of(group_id, start_index=query_params.startIndex, count=query_params.count)
    total = await store.members.count_members_of(group_id)

    return GroupMembersResponse(
        groupId=group_id,
        groupName=group.name or group.display_name,
        totalResults=total,
        startIndex=query_params.startIndex,
        itemsPerPage=len(members),
        Resources=[UserResponse.model_validate(member.model_dump()) for member in members],
    )


@ROUTER_GROUPS.post(
    "/groups/{group_id}/members",
    response_model=AddMembersResponse,
    responses={
        **GROUP_NOT_FOUND,
        status.HTTP_502_BAD_GATEWAY: {
            "description": "The directory rejected the change; the mirror was not modified",
        },
    },
)
async def add_group_members(
    group_id: str,
    body: AddMembersRequest = Body(...),
    store=Depends(get_store),
    scim_client: ScimClient = Depends(get_scim_client),
):
    """
    Add users to a group: directory first, then mirror.

    Users that are not in the mirror are rejected up front. Users that are
    already members are reported in alreadyMembers and left as they are.
    """
    await _require_group(store, group_id)

    unknown = [user_id for user_id in body.user_ids if await store.users.get(user_id) is None]
    if unknown:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Users not found: {', '.join(unknown)}")

    # DirectoryUnavailable propagates to the 502 handler before the mirror is touched
    await scim_client.add_group_members(group_id, body.user_ids)

    added, already_members = [], []
    for user_id in body.user_ids:
        inserted = await store.members.upsert_edge(MembershipEdge(user_id=user_id, group_id=group_id))
        (added if inserted else already_members).append(user_id)

    logger.info(
        "Group members added",
        group_id=group_id,
        added=len(added),
        already_members=len(already_members),
    )
    return AddMembersResponse(group_id=group_id, added=added, already_members=already_members)


@ROUTER_GROUPS.delete(
    "/groups/{group_id}/members/{user_id}",
    response_model=RemoveMemberResponse,
    responses=GROUP_NOT_FOUND,
)
async def remove_group_member(
    group_id: str,
    user_id: str,
    store=Depends(get_store),
    scim_client: ScimClient = Depends(get_scim_client),
):
    """Remove one user from a group: directory first, then mirror."""
    await _require_group(store, group_id)

    if not await store.members.is_member(user_id, group_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} is not a member of group {group_id}",
        )

    await scim_client.remove_group_member(group_id, user_id)
    removed = await store.members.delete_edge(MembershipEdge(user_id=user_id, group_id=group_id))

    logger.info("Group member removed", group_id=group_id, user_id=user_id)
    return RemoveMemberResponse(group_id=group_id, user_id=user_id, removed=removed)


@ROUTER_GROUPS.delete(
    "/groups/{group_id}/members",
    response_model=RemoveMembersResponse,
    responses={
        **GROUP_NOT_FOUND,
        status.HTTP_502_BAD_GATEWAY: {
            "description": "The directory rejected the change; the mirror was not modified",
        },
    },
)
async def remove_group_members(
    group_id: str,
    body: RemoveMembersRequest = Body(...),
    store=Depends(get_store),
    scim_client: ScimClient = Depends(get_scim_client),
):
    """
    Remove several users from a group in one directory request, then from the mirror.

    Users that are not members in the mirror are reported in notMembers and
    not sent to the directory.
    """
    await _require_group(store, group_id)

    members, not_members = [], []
    for user_id in body.user_ids:
        (members if await store.members.is_member(user_id, group_id) else not_members).append(user_id)

    if members:
        await scim_client.remove_group_members(group_id, members)
        for user_id in members:
            await store.members.delete_edge(MembershipEdge(user_id=user_id, group_id=group_id))

    logger.info("Group members removed", group_id=group_id, removed=len(members), not_members=len(not_members))
    return RemoveMembersResponse(group_id=group_id, removed=members, not_members=not_members)
