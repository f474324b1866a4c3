"""Local snapshot loading for reconciliation."""

from typing import Any
from typing import Dict

from loguru import logger

from scim_mirror.enums import EntityType
from scim_mirror.exceptions import SnapshotLoadFailure


class SnapshotLoader:
    """
    Reads the current mirror state of one entity type in a single bulk query.

    A failed read degrades to an empty snapshot. Every remote record is then
    classified as new and re-upserted, which is idempotent but reports spurious
    INSERTED changes, so the degradation is logged as a warning.
    """

    def __init__(self, store):
        self.store = store

    async def load_all(self, entity_type: EntityType) -> Dict[str, Any]:
        try:
            records = await self.store.load_all(entity_type)
        except SnapshotLoadFailure as e:
            logger.warning(
                "Local snapshot unavailable, treating mirror as empty",
                entity_type=entity_type.value,
                error=str(e),
            )
            return {}

        logger.debug("Local snapshot loaded", entity_type=entity_type.value, records=len(records))
        return records
