"""End-to-end reconciliation passes against the fake directory and the in-memory store."""

import asyncio

import pytest

from scim_mirror.enums import EntityType
from scim_mirror.enums import SyncStage
from scim_mirror.enums import UserStatus
from tests.fixtures.directory_fixtures import scim_group
from tests.fixtures.directory_fixtures import scim_user


def stage(report, entity_type):
    return next(s for s in report.stages if s.entity_type == entity_type)


class TestPass:
    @pytest.mark.asyncio
    async def test_runs_all_stages_in_order(self, orchestrator):
        report = await orchestrator.run_once()

        assert [s.stage for s in report.stages] == [
            SyncStage.SYNC_USERS,
            SyncStage.SYNC_GROUPS,
            SyncStage.SYNC_MEMBERSHIPS_BY_USER,
            SyncStage.SYNC_MEMBERSHIPS_BY_GROUP,
        ]
        assert report.state == SyncStage.DONE
        assert report.finished_at is not None
        assert report.success

    @pytest.mark.asyncio
    async def test_new_user_is_inserted_and_notified(self, orchestrator, fake_directory, memory_store, notifier):
        fake_directory.users = [scim_user("u1")]

        report = await orchestrator.run_once()

        assert stage(report, EntityType.USERS).stats.inserted == 1
        assert memory_store.users["u1"].last_name == "Doe"
        notification = notifier.consume()
        assert notification["hasChanges"] is True
        assert notification["users"]["changes"][0]["entity_id"] == "u1"
        assert notification["users"]["changes"][0]["action"] == "INSERTED"

    @pytest.mark.asyncio
    async def test_status_change_is_precise_update(self, orchestrator, fake_directory, memory_store, notifier):
        fake_directory.users = [scim_user("u1")]
        await orchestrator.run_once()
        notifier.clear()

        fake_directory.users = [scim_user("u1", active=False)]
        report = await orchestrator.run_once()

        users = stage(report, EntityType.USERS).stats
        assert (users.inserted, users.updated, users.deleted) == (0, 1, 0)
        assert memory_store.users["u1"].status == UserStatus.INACTIVE
        change = notifier.consume()["users"]["changes"][0]
        assert change["action"] == "UPDATED"
        assert change["changed_fields"] == ["status"]

    @pytest.mark.asyncio
    async def test_group_missing_from_directory_is_deleted_with_edges(
        self, orchestrator, fake_directory, memory_store, notifier
    ):
        fake_directory.users = [scim_user("u1")]
        memory_store.add_user("u1")
        memory_store.add_group("g1")
        memory_store.add_edge("u1", "g1")

        report = await orchestrator.run_once()

        assert stage(report, EntityType.GROUPS).stats.deleted == 1
        assert "g1" not in memory_store.groups
        assert memory_store.edges == {}
        assert notifier.consume()["groups"]["changes"][0]["action"] == "DELETED"

    @pytest.mark.asyncio
    async def test_invalid_user_is_skipped_and_local_copy_kept(self, orchestrator, fake_directory, memory_store):
        memory_store.add_user("u1", last_name="Kept")
        memory_store.add_group("g1")
        memory_store.add_edge("u1", "g1")
        fake_directory.users = [scim_user("u1", family_name=None, groups=["g1"])]
        fake_directory.groups = [scim_group("g1", members=["u1"])]

        report = await orchestrator.run_once()

        users = stage(report, EntityType.USERS).stats
        assert users.skipped == 1
        assert (users.inserted, users.updated, users.deleted) == (0, 0, 0)
        assert memory_store.users["u1"].last_name == "Kept"
        assert "u1:g1" in memory_store.edges

    @pytest.mark.asyncio
    async def test_group_failure_does_not_roll_back_users(self, orchestrator, fake_directory, memory_store, notifier):
        fake_directory.users = [scim_user("u1")]
        fake_directory.failures["Groups"] = 500

        report = await orchestrator.run_once()

        assert stage(report, EntityType.USERS).success
        assert stage(report, EntityType.USER_GROUP_ASSIGNMENTS).success
        groups = stage(report, EntityType.GROUPS)
        assert groups.success is False
        assert "500" in groups.error
        assert stage(report, EntityType.GROUP_MEMBERS).success is False
        assert report.success is False
        assert "u1" in memory_store.users
        notification = notifier.consume()
        assert notification["hasChanges"] is True
        assert "groups" not in notification


class TestMemberships:
    @pytest.mark.asyncio
    async def test_edges_from_users_and_groups(self, orchestrator, fake_directory, memory_store):
        fake_directory.users = [scim_user("u1", groups=["g1"]), scim_user("u2")]
        fake_directory.groups = [scim_group("g1", members=["u1", "u2"])]

        report = await orchestrator.run_once()

        assert stage(report, EntityType.USER_GROUP_ASSIGNMENTS).stats.inserted == 1
        assert stage(report, EntityType.GROUP_MEMBERS).stats.inserted == 1
        assert set(memory_store.edges) == {"u1:g1", "u2:g1"}

    @pytest.mark.asyncio
    async def test_edge_to_unknown_group_counts_as_failed(self, orchestrator, fake_directory, memory_store):
        fake_directory.users = [scim_user("u1", groups=["ghost"])]

        report = await orchestrator.run_once()

        assert stage(report, EntityType.USER_GROUP_ASSIGNMENTS).stats.failed == 1
        assert memory_store.edges == {}


class TestInvariants:
    @pytest.mark.asyncio
    async def test_second_pass_is_a_no_op(self, orchestrator, fake_directory, memory_store):
        fake_directory.users = [scim_user("u1", groups=["g1"]), scim_user("u2", active=False)]
        fake_directory.groups = [scim_group("g1", members=["u1"]), scim_group("g2")]
        await orchestrator.run_once()
        writes_after_first = len(memory_store.writes)

        report = await orchestrator.run_once()

        for stage_report in report.stages:
            stats = stage_report.stats
            assert (stats.inserted, stats.updated, stats.deleted, stats.failed) == (0, 0, 0, 0)
        assert len(memory_store.writes) == writes_after_first

    @pytest.mark.asyncio
    async def test_overlapping_pass_is_skipped(self, orchestrator, fake_directory):
        fake_directory.users = [scim_user("u1")]
        fake_directory.delay_seconds = 0.05

        first, second = await asyncio.gather(orchestrator.run_once(), orchestrator.run_once())

        assert first.skipped is False
        assert second.skipped is True
        assert second.stages == []
        assert orchestrator.is_running is False

    @pytest.mark.asyncio
    async def test_snapshot_failure_degrades_to_upserts(self, orchestrator, fake_directory, memory_store):
        fake_directory.users = [scim_user("u1")]
        memory_store.add_user("u1")
        memory_store.fail_load = True

        report = await orchestrator.run_once()

        users = stage(report, EntityType.USERS)
        assert users.success
        assert users.stats.inserted == 1
        assert users.stats.failed == 0
        assert list(memory_store.users) == ["u1"]

    @pytest.mark.asyncio
    async def test_unexpected_stage_error_is_captured(self, orchestrator, fake_directory, monkeypatch):
        async def broken(entity_type, diff, skipped=0, fetched=0):
            raise RuntimeError("boom")

        monkeypatch.setattr(orchestrator.apply_engine, "apply", broken)

        report = await orchestrator.run_once()

        assert all(s.success is False for s in report.stages)
        assert report.stages[0].error == "boom"
        assert report.state == SyncStage.DONE
