"""
Mirror Store

Storage side of reconciliation: bulk snapshot reads and a per-stage write
session. A session owns one connection and one transaction; every record is
written inside its own savepoint so a rejected record rolls back alone.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any
from typing import AsyncIterator
from typing import Dict

import asyncpg
from loguru import logger

from scim_mirror.db.pool import MirrorDBPool
from scim_mirror.db.repository_group import GroupRepository
from scim_mirror.db.repository_group_member import GroupMemberRepository
from scim_mirror.db.repository_user import UserRepository
from scim_mirror.enums import EntityType
from scim_mirror.exceptions import ApplyFailure
from scim_mirror.exceptions import SnapshotLoadFailure
from scim_mirror.models.entities import MembershipEdge


class MirrorSession:
    """Write primitives bound to one connection inside an open transaction."""

    def __init__(self, store: "PostgresMirrorStore", conn: asyncpg.Connection):
        self.store = store
        self.conn = conn

    @asynccontextmanager
    async def isolated(self, entity_id: str) -> AsyncIterator[None]:
        """Savepoint around the writes of one record; database errors become ApplyFailure."""
        try:
            async with self.conn.transaction():
                yield
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise ApplyFailure(entity_id, str(e)) from e

    async def upsert(self, entity_type: EntityType, record: Any) -> None:
        if entity_type.is_edge:
            await self.store.members.upsert_edge(record, conn=self.conn)
        elif entity_type == EntityType.USERS:
            await self.store.users.upsert(record, conn=self.conn)
        else:
            await self.store.groups.upsert(record, conn=self.conn)

    async def delete(self, entity_type: EntityType, entity_id: str) -> None:
        if entity_type.is_edge:
            await self.store.members.delete_edge(MembershipEdge.from_key(entity_id), conn=self.conn)
        elif entity_type == EntityType.USERS:
            await self.store.users.delete(entity_id, conn=self.conn)
        else:
            await self.store.groups.delete(entity_id, conn=self.conn)

    async def delete_edges_for(self, entity_type: EntityType, entity_id: str) -> int:
        """Remove every membership edge of a user or group about to be deleted."""
        if entity_type == EntityType.USERS:
            return await self.store.members.delete_all_for_user(entity_id, conn=self.conn)
        if entity_type == EntityType.GROUPS:
            return await self.store.members.delete_all_for_group(entity_id, conn=self.conn)
        return 0


class PostgresMirrorStore:
    """asyncpg-backed mirror of users, groups and memberships."""

    def __init__(self, db: MirrorDBPool):
        self.db = db
        self.users = UserRepository(db)
        self.groups = GroupRepository(db)
        self.members = GroupMemberRepository(db)

    async def load_all(self, entity_type: EntityType) -> Dict[str, Any]:
        """
        Single bulk read of every local record of entity_type, keyed by record key.

        Raises SnapshotLoadFailure when the read fails.
        """
        try:
            if entity_type.is_edge:
                return await self.members.load_all()
            if entity_type == EntityType.USERS:
                return await self.users.load_all()
            return await self.groups.load_all()
        except (
            asyncpg.PostgresError,
            asyncpg.InterfaceError,
            asyncio.TimeoutError,
            OSError,
            RuntimeError,
            ValueError,
        ) as e:
            raise SnapshotLoadFailure(f"Failed to load local {entity_type.value}: {e}") from e

    @asynccontextmanager
    async def session(self) -> AsyncIterator[MirrorSession]:
        """One connection and one transaction for a whole stage."""
        async with self.db.acquire() as conn:
            async with conn.transaction():
                yield MirrorSession(self, conn)
        logger.debug("Mirror session committed")
