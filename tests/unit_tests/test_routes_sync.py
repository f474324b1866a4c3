"""Tests for the sync notification and manual run endpoints."""

from unittest.mock import AsyncMock
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from scim_mirror.enums import EntityType
from scim_mirror.enums import SyncStage
from scim_mirror.models.sync import RunReport
from scim_mirror.models.sync import RunStats
from scim_mirror.models.sync import StageReport
from tests.consts import API_BASE
from tests.fixtures.directory_fixtures import scim_group
from tests.fixtures.directory_fixtures import scim_user


class TestNotificationEndpoints:
    def test_no_changes_initially(self, client):
        response = client.get(f"{API_BASE}/sync/notification")

        assert response.status_code == 200
        assert response.json() == {"hasChanges": False}

    def test_clear(self, client):
        response = client.post(f"{API_BASE}/sync/notification/clear")

        assert response.status_code == 200
        assert response.json() == {"message": "Notifications cleared", "hasChanges": False}


class TestRunSync:
    def test_returns_report(self, client, app):
        report = RunReport(
            run_id="abc",
            state=SyncStage.DONE,
            stages=[
                StageReport(
                    stage=SyncStage.SYNC_USERS,
                    entity_type=EntityType.USERS,
                    success=True,
                    stats=RunStats(fetched=3, inserted=1, unchanged=2),
                ),
                StageReport(
                    stage=SyncStage.SYNC_GROUPS,
                    entity_type=EntityType.GROUPS,
                    success=False,
                    error="Directory request GET Groups returned 500",
                ),
            ],
        )
        app.state.orchestrator = MagicMock(is_running=False, run_once=AsyncMock(return_value=report))

        response = client.post(f"{API_BASE}/sync/run")

        assert response.status_code == 200
        data = response.json()
        assert data["runId"] == "abc"
        assert data["state"] == "DONE"
        assert data["success"] is False
        assert data["stages"][0]["entityType"] == "users"
        assert data["stages"][0]["stats"]["inserted"] == 1
        assert data["stages"][1]["error"] == "Directory request GET Groups returned 500"

    def test_running_pass_returns_409(self, client, app):
        app.state.orchestrator = MagicMock(is_running=True, run_once=AsyncMock())

        response = client.post(f"{API_BASE}/sync/run")

        assert response.status_code == 409
        app.state.orchestrator.run_once.assert_not_called()

    def test_pass_skipped_by_lock_returns_409(self, client, app):
        app.state.orchestrator = MagicMock(
            is_running=False,
            run_once=AsyncMock(return_value=RunReport(run_id="x", skipped=True)),
        )

        response = client.post(f"{API_BASE}/sync/run")

        assert response.status_code == 409


@pytest.fixture
def mirror_client(mock_settings, memory_store, scim_client):
    """App wired to the fake directory and the in-memory store."""
    from scim_mirror.main import create_app

    app = create_app(settings=mock_settings, store=memory_store, scim_client=scim_client)
    with TestClient(app) as test_client:
        yield test_client


class TestSyncRoundTrip:
    def test_run_then_poll_then_clear(self, mirror_client, fake_directory, memory_store):
        fake_directory.users = [scim_user("u1", groups=["g1"])]
        fake_directory.groups = [scim_group("g1", members=["u1"])]

        run = mirror_client.post(f"{API_BASE}/sync/run")

        assert run.status_code == 200
        assert run.json()["success"] is True
        assert set(memory_store.edges) == {"u1:g1"}

        notification = mirror_client.get(f"{API_BASE}/sync/notification").json()
        assert notification["hasChanges"] is True
        assert notification["users"]["inserted"] == 1
        assert notification["groups"]["inserted"] == 1
        assert notification["userGroupAssignments"]["inserted"] == 1
        assert "groupMembers" not in notification

        mirror_client.post(f"{API_BASE}/sync/notification/clear")
        second = mirror_client.post(f"{API_BASE}/sync/run")

        assert second.status_code == 200
        assert mirror_client.get(f"{API_BASE}/sync/notification").json() == {"hasChanges": False}

    def test_directory_outage_is_reported_per_stage(self, mirror_client, fake_directory):
        fake_directory.failures["Users"] = 503

        data = mirror_client.post(f"{API_BASE}/sync/run").json()

        stages = {stage["stage"]: stage for stage in data["stages"]}
        assert stages["SYNC_USERS"]["success"] is False
        assert stages["SYNC_MEMBERSHIPS_BY_USER"]["success"] is False
        assert stages["SYNC_GROUPS"]["success"] is True
        assert data["success"] is False
