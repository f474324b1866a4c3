"""Simulated SCIM identity directory served through httpx.MockTransport."""

import asyncio
import json
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from unittest.mock import MagicMock

import httpx
import pytest

from scim_mirror.directory.reader import DirectoryReader
from scim_mirror.directory.scim_client import ScimClient
from scim_mirror.ias_auth.token_manager import TokenManager
from scim_mirror.sync.apply import ApplyEngine
from scim_mirror.sync.notifier import ChangeNotifier
from scim_mirror.sync.orchestrator import SyncOrchestrator
from scim_mirror.sync.snapshot import SnapshotLoader
from tests.consts import SCIM_BASE_URL


def scim_user(
    user_id: str,
    user_name: Optional[str] = None,
    family_name: Optional[str] = "Doe",
    given_name: Optional[str] = "Jane",
    email: Optional[str] = None,
    active: Optional[bool] = True,
    groups: Optional[List[str]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Minimal valid SCIM user resource; pass None to drop a field."""
    resource: Dict[str, Any] = {"id": user_id, "userName": user_name or f"{user_id}@example.com"}
    name = {k: v for k, v in (("familyName", family_name), ("givenName", given_name)) if v is not None}
    if name:
        resource["name"] = name
    resource["emails"] = [{"value": email or f"{user_id}@example.com", "primary": True}]
    if active is not None:
        resource["active"] = active
    if groups:
        resource["groups"] = [{"value": group_id} for group_id in groups]
    resource.update(extra)
    return resource


def scim_group(
    group_id: str,
    display_name: Optional[str] = None,
    members: Optional[List[str]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    resource: Dict[str, Any] = {"id": group_id, "displayName": display_name or group_id.upper()}
    if members:
        resource["members"] = [{"value": user_id, "type": "User"} for user_id in members]
    resource.update(extra)
    return resource


class FakeDirectory:
    """
    In-process SCIM server.

    users/groups: resources served by /Users and /Groups
    failures: {"Users"|"Groups": status_code} makes every GET of that endpoint fail
    delay_seconds: sleep before answering GETs (for timeout tests)
    max_page_size: server-side cap on count, below what the client asks for
    declare_total: False leaves totalResults out of list responses
    """

    def __init__(self):
        self.users: List[Dict[str, Any]] = []
        self.groups: List[Dict[str, Any]] = []
        self.failures: Dict[str, int] = {}
        self.fail_at_start_index: Dict[str, int] = {}
        self.total_results_override: Optional[int] = None
        self.max_page_size: Optional[int] = None
        self.declare_total = True
        self.patch_status = 204
        self.delay_seconds = 0.0
        self.requests: List[httpx.Request] = []
        self.patches: List[Dict[str, Any]] = []

    def get_requests(self, kind: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "GET" and r.url.path.endswith(f"/{kind}")]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.method == "PATCH":
            self.patches.append({"path": request.url.path, "body": json.loads(request.content)})
            return httpx.Response(self.patch_status)

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        kind = request.url.path.rsplit("/", 1)[-1]
        start_index = int(request.url.params.get("startIndex", "1"))
        count = int(request.url.params.get("count", "100"))
        if self.max_page_size is not None:
            count = min(count, self.max_page_size)

        if kind in self.failures or self.fail_at_start_index.get(kind) == start_index:
            status = self.failures.get(kind, 500)
            return httpx.Response(status, json={"detail": "directory failure"})

        resources = self.users if kind == "Users" else self.groups
        page = resources[start_index - 1 : start_index - 1 + count]
        total = self.total_results_override if self.total_results_override is not None else len(resources)
        body = {
            "schemas": ["urn:ietf:params:scim:api:messages:2.0:ListResponse"],
            "totalResults": total,
            "startIndex": start_index,
            "itemsPerPage": len(page),
            "Resources": page,
        }
        if not self.declare_total:
            del body["totalResults"]
        return httpx.Response(200, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_directory():
    return FakeDirectory()


@pytest.fixture
def mock_token_manager():
    """TokenManager stand-in that always hands out the same bearer token."""
    manager = MagicMock(spec=TokenManager)
    manager.get_token.return_value = ("test-access-token", datetime.now(timezone.utc) + timedelta(hours=1))
    return manager


@pytest.fixture
def scim_client(fake_directory, mock_token_manager):
    return ScimClient(
        base_url=SCIM_BASE_URL + "/",
        token_manager=mock_token_manager,
        transport=fake_directory.transport,
    )


@pytest.fixture
def directory_reader(scim_client):
    return DirectoryReader(scim_client, page_size=100, fetch_timeout_seconds=5.0)


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def orchestrator(directory_reader, memory_store, notifier):
    """Orchestrator wired to the fake directory and the in-memory store."""
    return SyncOrchestrator(
        reader=directory_reader,
        snapshot_loader=SnapshotLoader(memory_store),
        apply_engine=ApplyEngine(memory_store),
        notifier=notifier,
    )
