"""
Apply Engine

Writes one DiffResult to the mirror: inserts, then updates, then deletes,
inside a single stage session. Each record is isolated in its own savepoint;
a rejected record becomes a Failed result and the batch carries on.
"""

from typing import Any
from typing import FrozenSet
from typing import List
from typing import Optional

from loguru import logger

from scim_mirror.enums import ChangeAction
from scim_mirror.enums import EntityType
from scim_mirror.exceptions import ApplyFailure
from scim_mirror.models.sync import Applied
from scim_mirror.models.sync import ApplyOutcome
from scim_mirror.models.sync import ChangeRecord
from scim_mirror.models.sync import DiffResult
from scim_mirror.models.sync import Failed
from scim_mirror.models.sync import RecordResult
from scim_mirror.models.sync import RunStats


class ApplyEngine:
    """Applies diffs through the store's session() write primitives."""

    def __init__(self, store):
        self.store = store

    async def apply(
        self,
        entity_type: EntityType,
        diff: DiffResult,
        skipped: int = 0,
        fetched: int = 0,
    ) -> ApplyOutcome:
        """
        Apply diff and aggregate the per-record results.

        Args:
            entity_type: Entity type the diff belongs to
            diff: Output of the diff engine
            skipped: Invalid directory records excluded before the diff
            fetched: Directory resources read for this entity type

        Returns:
            ApplyOutcome with stats, the applied change records and the failures
        """
        results: List[RecordResult] = []

        async with self.store.session() as session:
            for record in diff.to_insert:
                results.append(await self._upsert(session, entity_type, record, ChangeAction.INSERTED))
            for op in diff.to_update:
                results.append(
                    await self._upsert(session, entity_type, op.record, ChangeAction.UPDATED, op.changed_fields)
                )
            for entity_id in diff.to_delete:
                results.append(await self._delete(session, entity_type, entity_id))

        outcome = self._aggregate(entity_type, diff, results, skipped, fetched)
        logger.info(
            "Applied changes to mirror",
            entity_type=entity_type.value,
            **outcome.stats.model_dump(),
        )
        return outcome

    async def _upsert(
        self,
        session,
        entity_type: EntityType,
        record: Any,
        action: ChangeAction,
        changed_fields: Optional[FrozenSet[str]] = None,
    ) -> RecordResult:
        try:
            async with session.isolated(record.key):
                await session.upsert(entity_type, record)
        except ApplyFailure as e:
            return self._failed(entity_type, record.key, action, e)
        return Applied(change=ChangeRecord(entity_id=record.key, action=action, changed_fields=changed_fields))

    async def _delete(self, session, entity_type: EntityType, entity_id: str) -> RecordResult:
        try:
            async with session.isolated(entity_id):
                # users and groups leave their memberships first
                await session.delete_edges_for(entity_type, entity_id)
                await session.delete(entity_type, entity_id)
        except ApplyFailure as e:
            return self._failed(entity_type, entity_id, ChangeAction.DELETED, e)
        return Applied(change=ChangeRecord(entity_id=entity_id, action=ChangeAction.DELETED))

    @staticmethod
    def _failed(entity_type: EntityType, entity_id: str, action: ChangeAction, error: ApplyFailure) -> Failed:
        logger.warning(
            "Mirror rejected record",
            entity_type=entity_type.value,
            entity_id=entity_id,
            action=action.value,
            reason=error.reason,
        )
        return Failed(entity_id=entity_id, action=action, reason=error.reason)

    @staticmethod
    def _aggregate(
        entity_type: EntityType,
        diff: DiffResult,
        results: List[RecordResult],
        skipped: int,
        fetched: int,
    ) -> ApplyOutcome:
        changes = [result.change for result in results if isinstance(result, Applied)]
        failures = [result for result in results if isinstance(result, Failed)]

        stats = RunStats(
            fetched=fetched,
            inserted=sum(1 for change in changes if change.action == ChangeAction.INSERTED),
            updated=sum(1 for change in changes if change.action == ChangeAction.UPDATED),
            deleted=sum(1 for change in changes if change.action == ChangeAction.DELETED),
            unchanged=diff.unchanged,
            skipped=skipped,
            failed=len(failures),
        )
        return ApplyOutcome(entity_type=entity_type, stats=stats, changes=changes, failures=failures)
