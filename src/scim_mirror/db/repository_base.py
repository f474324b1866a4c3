"""
Base Repository

Base class providing the CRUD operations shared by the user and group tables.
Every method accepts an optional connection so it can join a caller's
transaction; without one it acquires its own connection from the pool.
"""

from contextlib import asynccontextmanager
from enum import Enum
from typing import Any
from typing import AsyncIterator
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple
from typing import Type

import asyncpg
from pydantic import BaseModel

from scim_mirror.db.pool import SCHEMA_NAME
from scim_mirror.db.pool import MirrorDBPool


def affected_rows(status: str) -> int:
    """Row count from an asyncpg command status such as "DELETE 3" or "INSERT 0 1"."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


@asynccontextmanager
async def acquire_or_reuse(db: MirrorDBPool, conn: Optional[asyncpg.Connection]) -> AsyncIterator[asyncpg.Connection]:
    """Yield conn when the caller already holds one, otherwise a pooled connection."""
    if conn is not None:
        yield conn
        return
    async with db.acquire() as acquired:
        yield acquired


def to_db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class BaseRepository:
    """
    Base repository keyed by the directory id.

    Subclasses declare the table, the mirrored columns, the columns searched
    by list() and the model rows are returned as.
    """

    table: str = ""
    columns: Tuple[str, ...] = ()
    search_columns: Tuple[str, ...] = ()
    order_by: str = "id"
    model: Type[BaseModel] = BaseModel

    def __init__(self, db: MirrorDBPool):
        """
        Initialize base repository.

        Args:
            db: Mirror connection pool
        """
        self.db = db

    @property
    def qualified_table(self) -> str:
        return f"{SCHEMA_NAME}.{self.table}"

    def _connection(self, conn: Optional[asyncpg.Connection]):
        return acquire_or_reuse(self.db, conn)

    def _to_model(self, row: asyncpg.Record) -> BaseModel:
        return self.model.model_validate(dict(row))

    def _search_clause(self, search: Optional[str], first_param: int) -> Tuple[str, List[Any]]:
        if not search or not self.search_columns:
            return "", []
        conditions = " OR ".join(f"{column} ILIKE ${first_param}" for column in self.search_columns)
        return f"WHERE ({conditions})", [f"%{search}%"]

    async def load_all(self, conn: Optional[asyncpg.Connection] = None) -> Dict[str, BaseModel]:
        """Every row of the table, keyed by id."""
        async with self._connection(conn) as c:
            rows = await c.fetch(f"SELECT * FROM {self.qualified_table}")
        return {row["id"]: self._to_model(row) for row in rows}

    async def get(self, entity_id: str, conn: Optional[asyncpg.Connection] = None) -> Optional[BaseModel]:
        """Row by id, or None."""
        async with self._connection(conn) as c:
            row = await c.fetchrow(f"SELECT * FROM {self.qualified_table} WHERE id = $1", entity_id)
        return self._to_model(row) if row else None

    async def list(
        self,
        start_index: int = 1,
        count: int = 100,
        search: Optional[str] = None,
        conn: Optional[asyncpg.Connection] = None,
    ) -> List[BaseModel]:
        """
        One page of rows ordered by order_by.

        Args:
            start_index: 1-based index of the first row
            count: Maximum number of rows
            search: Case-insensitive substring matched against search_columns
        """
        where, params = self._search_clause(search, 1)
        offset = max(start_index, 1) - 1
        limit_param = len(params) + 1
        async with self._connection(conn) as c:
            rows = await c.fetch(
                f"""
                SELECT * FROM {self.qualified_table}
                {where}
                ORDER BY {self.order_by}, id
                LIMIT ${limit_param} OFFSET ${limit_param + 1}
                """,
                *params,
                count,
                offset,
            )
        return [self._to_model(row) for row in rows]

    async def count(self, search: Optional[str] = None, conn: Optional[asyncpg.Connection] = None) -> int:
        """Number of rows matching search (all rows without one)."""
        where, params = self._search_clause(search, 1)
        async with self._connection(conn) as c:
            return await c.fetchval(f"SELECT COUNT(*) FROM {self.qualified_table} {where}", *params)

    async def upsert(self, record: BaseModel, conn: Optional[asyncpg.Connection] = None) -> None:
        """
        Insert the record or overwrite the mirrored columns of an existing row.

        created_at is kept from the first insert; updated_at is refreshed.
        """
        columns = ("id",) + self.columns
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        assignments = ", ".join(f"{column} = EXCLUDED.{column}" for column in self.columns)
        values = [to_db_value(getattr(record, column)) for column in columns]

        async with self._connection(conn) as c:
            await c.execute(
                f"""
                INSERT INTO {self.qualified_table} ({", ".join(columns)})
                VALUES ({placeholders})
                ON CONFLICT (id) DO UPDATE SET {assignments}, updated_at = now()
                """,
                *values,
            )

    async def delete(self, entity_id: str, conn: Optional[asyncpg.Connection] = None) -> bool:
        """Hard-delete a row. Returns False when it did not exist."""
        async with self._connection(conn) as c:
            status = await c.execute(f"DELETE FROM {self.qualified_table} WHERE id = $1", entity_id)
        return affected_rows(status) > 0
