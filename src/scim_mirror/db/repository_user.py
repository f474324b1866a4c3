"""
User Repository

Repository for mirrored directory users.
"""

from typing import Optional

import asyncpg

from scim_mirror.db.repository_base import BaseRepository
from scim_mirror.models.entities import LocalUser


class UserRepository(BaseRepository):
    """User repository (synced from the directory's /Users)."""

    table = "users"
    columns = (
        "login_name",
        "email",
        "last_name",
        "first_name",
        "user_type",
        "status",
        "valid_from",
        "valid_to",
        "company",
        "country",
        "city",
        "directory_last_modified",
    )
    search_columns = ("login_name", "email", "first_name", "last_name")
    order_by = "lower(login_name)"
    model = LocalUser

    async def get_by_login_name(self, login_name: str, conn: Optional[asyncpg.Connection] = None):
        """Get user by login name (case-insensitive)."""
        async with self._connection(conn) as c:
            row = await c.fetchrow(
                f"SELECT * FROM {self.qualified_table} WHERE lower(login_name) = lower($1)",
                login_name,
            )
        return self._to_model(row) if row else None
