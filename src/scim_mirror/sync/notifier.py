"""
Change Notifier

Process-wide record of the latest reconciliation results that changed
something, polled by clients through the sync notification endpoint.
"""

import threading
from typing import Any
from typing import Dict

from loguru import logger

from scim_mirror.enums import EntityType
from scim_mirror.models.sync import ApplyOutcome


class ChangeNotifier:
    """
    Latest changing ApplyOutcome per entity type plus a has_changes flag.

    All reads and writes go through one lock, so a consumer never observes
    a half-published result.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._results: Dict[EntityType, ApplyOutcome] = {}
        self._has_changes = False

    def publish(self, entity_type: EntityType, outcome: ApplyOutcome) -> bool:
        """
        Store outcome for entity_type when it inserted, updated or deleted anything.

        Returns:
            True if the outcome was stored; a no-change outcome leaves pending results untouched
        """
        if not outcome.has_changes:
            return False

        with self._lock:
            self._results[entity_type] = outcome
            self._has_changes = True

        logger.info(
            "Published sync changes",
            entity_type=entity_type.value,
            changes=len(outcome.changes),
        )
        return True

    @property
    def has_changes(self) -> bool:
        with self._lock:
            return self._has_changes

    def consume(self) -> Dict[str, Any]:
        """
        Current aggregate, without clearing it.

        Entity sections (users, groups, userGroupAssignments, groupMembers) are only
        included while has_changes is set, and only for types with a stored result.
        """
        with self._lock:
            notification: Dict[str, Any] = {"hasChanges": self._has_changes}
            if self._has_changes:
                for entity_type in EntityType:
                    outcome = self._results.get(entity_type)
                    if outcome is not None:
                        notification[entity_type.value] = self._section(outcome)
        return notification

    def clear(self) -> None:
        """Drop every stored result and reset has_changes."""
        with self._lock:
            self._results.clear()
            self._has_changes = False
        logger.info("Sync notifications cleared")

    @staticmethod
    def _section(outcome: ApplyOutcome) -> Dict[str, Any]:
        section = outcome.stats.model_dump()
        section["changes"] = [change.model_dump(mode="json") for change in outcome.changes]
        return section
