"""Async SCIM 2.0 client for the identity directory."""

import asyncio
import json
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

import httpx
from loguru import logger

from scim_mirror.exceptions import DirectoryUnavailable
from scim_mirror.exceptions import TokenError
from scim_mirror.ias_auth.token_manager import TokenManager

SCIM_ACCEPT = "application/scim+json, application/json"
SCIM_PATCH_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:PatchOp"


class ScimClient:
    """
    Thin wrapper around httpx.AsyncClient speaking SCIM to the directory.

    Every failure (token, transport, timeout, non-2xx, bad JSON) surfaces as
    DirectoryUnavailable. A 401 also drops the cached token so the next call
    requests a fresh one.
    """

    def __init__(
        self,
        base_url: str,
        token_manager: TokenManager,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_manager = token_manager
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
            headers={"Accept": SCIM_ACCEPT},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _access_token(self) -> str:
        try:
            token, _ = await asyncio.to_thread(self.token_manager.get_token)
        except TokenError as e:
            raise DirectoryUnavailable(f"Could not obtain directory access token: {e}") from e
        return token

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        token = await self._access_token()
        headers = {"Authorization": f"Bearer {token}"}
        if body is not None:
            headers["Content-Type"] = "application/scim+json"

        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                headers=headers,
                content=json.dumps(body) if body is not None else None,
            )
        except httpx.TimeoutException as e:
            raise DirectoryUnavailable(f"Directory request {method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise DirectoryUnavailable(f"Directory request {method} {path} failed: {e}") from e

        if response.status_code == 401:
            # only drop the token this request carried, not one refreshed since
            await asyncio.to_thread(self.token_manager.invalidate_token, token)

        if not response.is_success:
            logger.warning(
                "Directory request returned non-2xx",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise DirectoryUnavailable(
                f"Directory request {method} {path} returned {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    async def _get_page(self, path: str, start_index: int, count: int) -> Dict[str, Any]:
        response = await self._request("GET", path, params={"startIndex": start_index, "count": count})
        try:
            page = response.json()
        except ValueError as e:
            raise DirectoryUnavailable(f"Unparseable directory page from {path}: {e}") from e
        if not isinstance(page, dict):
            raise DirectoryUnavailable(f"Unexpected directory page shape from {path}")
        return page

    async def get_users_page(self, start_index: int, count: int) -> Dict[str, Any]:
        """GET /Users with 1-based paging."""
        return await self._get_page("/Users", start_index, count)

    async def get_groups_page(self, start_index: int, count: int) -> Dict[str, Any]:
        """GET /Groups with 1-based paging."""
        return await self._get_page("/Groups", start_index, count)

    async def add_group_members(self, group_id: str, user_ids: List[str]) -> None:
        """PATCH the group adding every user in user_ids as a member."""
        body = {
            "schemas": [SCIM_PATCH_SCHEMA],
            "Operations": [
                {
                    "op": "add",
                    "path": "members",
                    "value": [{"value": user_id} for user_id in user_ids],
                }
            ],
        }
        await self._request("PATCH", f"/Groups/{group_id}", body=body)
        logger.info("Added members in directory", group_id=group_id, user_count=len(user_ids))

    async def remove_group_member(self, group_id: str, user_id: str) -> None:
        """PATCH the group removing a single member."""
        body = {
            "schemas": [SCIM_PATCH_SCHEMA],
            "Operations": [{"op": "remove", "path": f'members[value eq "{user_id}"]'}],
        }
        await self._request("PATCH", f"/Groups/{group_id}", body=body)
        logger.info("Removed member in directory", group_id=group_id, user_id=user_id)

    async def remove_group_members(self, group_id: str, user_ids: List[str]) -> None:
        """PATCH the group removing every user in user_ids in one request."""
        body = {
            "schemas": [SCIM_PATCH_SCHEMA],
            "Operations": [{"op": "remove", "path": f'members[value eq "{user_id}"]'} for user_id in user_ids],
        }
        await self._request("PATCH", f"/Groups/{group_id}", body=body)
        logger.info("Removed members in directory", group_id=group_id, user_count=len(user_ids))
