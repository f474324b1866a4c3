"""
Directory Reader

Streams every resource of one entity type from the directory, page by page,
and normalizes each into canonical records.
"""

import asyncio
from typing import Any
from typing import AsyncIterator
from typing import Dict
from typing import Tuple

from loguru import logger

from scim_mirror.directory.normalize import NORMALIZERS
from scim_mirror.directory.scim_client import ScimClient
from scim_mirror.enums import EntityType
from scim_mirror.exceptions import DirectoryUnavailable
from scim_mirror.models.sync import NormalizeResult
from scim_mirror.models.sync import RemoteSnapshot
from scim_mirror.models.sync import Skipped


class DirectoryReader:
    """
    Paged reader over the directory's /Users and /Groups endpoints.

    Membership edges are read from the same endpoints: user assignments from
    /Users (each user's groups), group members from /Groups (each group's members).
    """

    def __init__(self, client: ScimClient, page_size: int = 100, fetch_timeout_seconds: float = 300.0):
        self.client = client
        self.page_size = page_size
        self.fetch_timeout_seconds = fetch_timeout_seconds

    def _page_fetcher(self, entity_type: EntityType):
        if entity_type in (EntityType.USERS, EntityType.USER_GROUP_ASSIGNMENTS):
            return self.client.get_users_page
        return self.client.get_groups_page

    async def iter_resources(self, entity_type: EntityType) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield raw SCIM resources, advancing startIndex by the number of resources returned.

        Stops on an empty page or once startIndex passes totalResults. A server
        may cap pages below the requested count, so a short page only ends the
        read when the directory declared no totalResults.
        """
        get_page = self._page_fetcher(entity_type)
        start_index = 1
        total_results = None

        while True:
            page = await get_page(start_index, self.page_size)
            resources = page.get("Resources") or []
            if not isinstance(resources, list):
                raise DirectoryUnavailable(f"Directory page for {entity_type.value} has no Resources list")

            if total_results is None and isinstance(page.get("totalResults"), int):
                total_results = page["totalResults"]

            logger.debug(
                "Fetched directory page",
                entity_type=entity_type.value,
                start_index=start_index,
                returned=len(resources),
                total_results=total_results,
            )

            for resource in resources:
                if isinstance(resource, dict):
                    yield resource

            if not resources:
                break
            start_index += len(resources)
            if total_results is not None:
                if start_index > total_results:
                    break
            elif len(resources) < self.page_size:
                # no declared total, so a short page is the last one
                break

    async def fetch_all(self, entity_type: EntityType) -> AsyncIterator[NormalizeResult]:
        """Yield one Normalized or Skipped result per directory resource."""
        normalize = NORMALIZERS[entity_type]
        async for resource in self.iter_resources(entity_type):
            yield normalize(resource)

    async def _collect(self, entity_type: EntityType) -> RemoteSnapshot:
        snapshot = RemoteSnapshot(entity_type=entity_type)
        # last occurrence of a resource wins, including the full edge set it carries
        by_resource: Dict[str, Tuple[Any, ...]] = {}

        async for result in self.fetch_all(entity_type):
            snapshot.fetched += 1
            if isinstance(result, Skipped):
                snapshot.skipped += 1
                logger.warning(
                    "Skipping invalid directory record",
                    entity_type=entity_type.value,
                    resource_id=result.resource_id,
                    reason=result.reason,
                )
                if result.resource_id is not None:
                    by_resource.pop(result.resource_id, None)
                    snapshot.skipped_ids.add(result.resource_id)
                continue
            snapshot.skipped_ids.discard(result.resource_id)
            by_resource[result.resource_id] = result.entities

        for entities in by_resource.values():
            for entity in entities:
                snapshot.records[entity.key] = entity
        return snapshot

    async def fetch_snapshot(self, entity_type: EntityType) -> RemoteSnapshot:
        """
        Collect every valid canonical record of entity_type into a RemoteSnapshot.

        The whole paged fetch is bounded by fetch_timeout_seconds. Any failure
        raises DirectoryUnavailable and no partial snapshot is returned.
        """
        try:
            snapshot = await asyncio.wait_for(self._collect(entity_type), timeout=self.fetch_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise DirectoryUnavailable(
                f"Fetching {entity_type.value} exceeded {self.fetch_timeout_seconds}s"
            ) from e

        logger.info(
            "Directory snapshot fetched",
            entity_type=entity_type.value,
            fetched=snapshot.fetched,
            records=len(snapshot.records),
            skipped=snapshot.skipped,
        )
        return snapshot
