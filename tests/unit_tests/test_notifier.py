"""Tests for sync/notifier.py."""

import threading

from scim_mirror.enums import ChangeAction
from scim_mirror.enums import EntityType
from scim_mirror.models.sync import ApplyOutcome
from scim_mirror.models.sync import ChangeRecord
from scim_mirror.models.sync import RunStats
from scim_mirror.sync.notifier import ChangeNotifier


def outcome(entity_type=EntityType.USERS, inserted=0, updated=0, deleted=0):
    changes = [ChangeRecord(entity_id=f"id{i}", action=ChangeAction.INSERTED) for i in range(inserted)]
    return ApplyOutcome(
        entity_type=entity_type,
        stats=RunStats(fetched=10, inserted=inserted, updated=updated, deleted=deleted),
        changes=changes,
    )


class TestPublish:
    def test_starts_without_changes(self):
        assert ChangeNotifier().consume() == {"hasChanges": False}

    def test_publish_with_changes_sets_flag_and_section(self):
        notifier = ChangeNotifier()

        assert notifier.publish(EntityType.USERS, outcome(inserted=1)) is True

        notification = notifier.consume()
        assert notification["hasChanges"] is True
        assert notification["users"]["inserted"] == 1
        assert notification["users"]["changes"][0]["entity_id"] == "id0"
        assert notification["users"]["changes"][0]["action"] == "INSERTED"
        assert "groups" not in notification

    def test_no_change_publish_keeps_pending_results(self):
        notifier = ChangeNotifier()
        notifier.publish(EntityType.USERS, outcome(inserted=2))

        assert notifier.publish(EntityType.USERS, outcome()) is False

        assert notifier.consume()["users"]["inserted"] == 2

    def test_later_changes_replace_section(self):
        notifier = ChangeNotifier()
        notifier.publish(EntityType.GROUPS, outcome(EntityType.GROUPS, inserted=1))
        notifier.publish(EntityType.GROUPS, outcome(EntityType.GROUPS, deleted=3))

        section = notifier.consume()["groups"]
        assert section["inserted"] == 0
        assert section["deleted"] == 3

    def test_edge_sections_use_api_names(self):
        notifier = ChangeNotifier()
        notifier.publish(EntityType.USER_GROUP_ASSIGNMENTS, outcome(EntityType.USER_GROUP_ASSIGNMENTS, inserted=1))
        notifier.publish(EntityType.GROUP_MEMBERS, outcome(EntityType.GROUP_MEMBERS, deleted=1))

        notification = notifier.consume()
        assert set(notification) == {"hasChanges", "userGroupAssignments", "groupMembers"}


class TestConsumeAndClear:
    def test_consume_does_not_clear(self):
        notifier = ChangeNotifier()
        notifier.publish(EntityType.USERS, outcome(inserted=1))

        first = notifier.consume()
        second = notifier.consume()

        assert first == second
        assert notifier.has_changes

    def test_clear_resets_everything(self):
        notifier = ChangeNotifier()
        notifier.publish(EntityType.USERS, outcome(inserted=1))

        notifier.clear()

        assert notifier.consume() == {"hasChanges": False}
        assert notifier.has_changes is False

    def test_concurrent_publish_and_consume(self):
        notifier = ChangeNotifier()
        seen = []

        def publisher():
            for _ in range(200):
                notifier.publish(EntityType.USERS, outcome(inserted=1))

        def consumer():
            for _ in range(200):
                notification = notifier.consume()
                # a set flag always comes with its section
                seen.append(not notification["hasChanges"] or "users" in notification)

        threads = [threading.Thread(target=publisher), threading.Thread(target=consumer)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert all(seen)
