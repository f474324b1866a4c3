"""
Group Member Repository

Membership edges between mirrored users and groups. Edges carry no
attributes, so they are only ever inserted or deleted.
"""

from typing import Dict
from typing import List
from typing import Optional

import asyncpg

from scim_mirror.db.pool import SCHEMA_NAME
from scim_mirror.db.pool import MirrorDBPool
from scim_mirror.db.repository_base import acquire_or_reuse
from scim_mirror.db.repository_base import affected_rows
from scim_mirror.models.entities import LocalGroup
from scim_mirror.models.entities import LocalUser
from scim_mirror.models.entities import MembershipEdge

TABLE = f"{SCHEMA_NAME}.group_members"


class GroupMemberRepository:
    """Repository for the group_members edge table."""

    def __init__(self, db: MirrorDBPool):
        self.db = db

    def _connection(self, conn: Optional[asyncpg.Connection]):
        return acquire_or_reuse(self.db, conn)

    async def load_all(self, conn: Optional[asyncpg.Connection] = None) -> Dict[str, MembershipEdge]:
        """Every edge, keyed by "<user_id>:<group_id>"."""
        async with self._connection(conn) as c:
            rows = await c.fetch(f"SELECT user_id, group_id FROM {TABLE}")
        edges = (MembershipEdge(user_id=row["user_id"], group_id=row["group_id"]) for row in rows)
        return {edge.key: edge for edge in edges}

    async def upsert_edge(self, edge: MembershipEdge, conn: Optional[asyncpg.Connection] = None) -> bool:
        """Insert the edge unless it exists. Returns True when a row was inserted."""
        async with self._connection(conn) as c:
            status = await c.execute(
                f"INSERT INTO {TABLE} (user_id, group_id) VALUES ($1, $2) ON CONFLICT DO NOTHING",
                edge.user_id,
                edge.group_id,
            )
        return affected_rows(status) > 0

    async def delete_edge(self, edge: MembershipEdge, conn: Optional[asyncpg.Connection] = None) -> bool:
        async with self._connection(conn) as c:
            status = await c.execute(
                f"DELETE FROM {TABLE} WHERE user_id = $1 AND group_id = $2",
                edge.user_id,
                edge.group_id,
            )
        return affected_rows(status) > 0

    async def delete_all_for_user(self, user_id: str, conn: Optional[asyncpg.Connection] = None) -> int:
        """Remove a user from every group."""
        async with self._connection(conn) as c:
            status = await c.execute(f"DELETE FROM {TABLE} WHERE user_id = $1", user_id)
        return affected_rows(status)

    async def delete_all_for_group(self, group_id: str, conn: Optional[asyncpg.Connection] = None) -> int:
        """Remove every member of a group."""
        async with self._connection(conn) as c:
            status = await c.execute(f"DELETE FROM {TABLE} WHERE group_id = $1", group_id)
        return affected_rows(status)

    async def is_member(self, user_id: str, group_id: str, conn: Optional[asyncpg.Connection] = None) -> bool:
        async with self._connection(conn) as c:
            return await c.fetchval(
                f"SELECT EXISTS (SELECT 1 FROM {TABLE} WHERE user_id = $1 AND group_id = $2)",
                user_id,
                group_id,
            )

    async def members_of(
        self,
        group_id: str,
        start_index: int = 1,
        count: int = 100,
        conn: Optional[asyncpg.Connection] = None,
    ) -> List[LocalUser]:
        """One page of the users in a group, ordered by login name."""
        async with self._connection(conn) as c:
            rows = await c.fetch(
                f"""
                SELECT u.* FROM {SCHEMA_NAME}.users u
                JOIN {TABLE} m ON m.user_id = u.id
                WHERE m.group_id = $1
                ORDER BY lower(u.login_name), u.id
                LIMIT $2 OFFSET $3
                """,
                group_id,
                count,
                max(start_index, 1) - 1,
            )
        return [LocalUser.model_validate(dict(row)) for row in rows]

    async def count_members_of(self, group_id: str, conn: Optional[asyncpg.Connection] = None) -> int:
        async with self._connection(conn) as c:
            return await c.fetchval(f"SELECT COUNT(*) FROM {TABLE} WHERE group_id = $1", group_id)

    async def groups_of(self, user_id: str, conn: Optional[asyncpg.Connection] = None) -> List[LocalGroup]:
        """Every group a user belongs to."""
        async with self._connection(conn) as c:
            rows = await c.fetch(
                f"""
                SELECT g.* FROM {SCHEMA_NAME}.user_groups g
                JOIN {TABLE} m ON m.group_id = g.id
                WHERE m.user_id = $1
                ORDER BY lower(coalesce(g.display_name, g.name, g.id)), g.id
                """,
                user_id,
            )
        return [LocalGroup.model_validate(dict(row)) for row in rows]
