"""
Mirror Database Connection Pool

Manages the asyncpg connection pool for the mirror database.
Automatically creates the schema on initialization.

Schema Evolution:
-----------------
When adding/removing/renaming tables in schema.sql:
1. Update the schema.sql file with new DDL
2. Update MirrorDBPool.EXPECTED_TABLES with the new table names
3. For existing deployments, drop and recreate the schema (the mirror is
   rebuilt from the directory on the next pass):
   DROP SCHEMA scim_mirror CASCADE;
"""

from pathlib import Path
from typing import Optional
from typing import Set

import asyncpg
from loguru import logger

SCHEMA_NAME = "scim_mirror"


class MirrorDBPool:
    """Mirror database connection pool manager."""

    # Update this set when schema.sql evolves
    EXPECTED_TABLES = {
        "users",
        "user_groups",
        "group_members",
    }

    def __init__(self, connection_string: str):
        """
        Initialize the mirror DB pool.

        Args:
            connection_string: PostgreSQL connection string for the mirror database
        """
        self.connection_string = connection_string
        self.pool: Optional[asyncpg.Pool] = None
        self._pool_initialized = False

    async def initialize(self) -> None:
        """Create the pool, validate it and run migrations."""
        if self._pool_initialized and self.pool is not None:
            logger.debug("Mirror DB pool already initialized")
            return

        try:
            logger.info("Initializing mirror database pool")

            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=1,
                max_size=10,
                command_timeout=60,
                timeout=15,
            )

            async with self.pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                if result != 1:
                    raise RuntimeError("Pool validation query failed")

            logger.info("Mirror DB pool validated")

            await self._run_migrations()

            self._pool_initialized = True
            logger.success("Mirror database initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize mirror DB pool: {e}")
            if self.pool:
                await self.pool.close()
                self.pool = None
            raise

    async def _existing_tables(self, conn: asyncpg.Connection) -> Set[str]:
        rows = await conn.fetch(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = $1
            """,
            SCHEMA_NAME,
        )
        return {row["table_name"] for row in rows}

    async def _run_migrations(self) -> None:
        """
        Execute schema.sql when the scim_mirror schema is missing or empty.

        An existing schema whose tables differ from EXPECTED_TABLES is left alone
        and reported as an error.
        """
        async with self.pool.acquire() as conn:
            existing_tables = await self._existing_tables(conn)

            if existing_tables == self.EXPECTED_TABLES:
                logger.info(f"Mirror schema and all {len(existing_tables)} expected tables exist")
                return

            if existing_tables:
                missing_tables = self.EXPECTED_TABLES - existing_tables
                extra_tables = existing_tables - self.EXPECTED_TABLES
                logger.error(
                    f"Mirror schema mismatch. Missing: {missing_tables or 'None'}, Extra: {extra_tables or 'None'}. "
                    f"Drop the schema and restart: DROP SCHEMA {SCHEMA_NAME} CASCADE;"
                )
                raise RuntimeError(f"Mirror schema mismatch: missing {missing_tables}, extra {extra_tables}")

            logger.info("Mirror schema not found - running migrations")

            schema_path = Path(__file__).parent / "schema.sql"
            if not schema_path.exists():
                raise FileNotFoundError(f"schema.sql not found at {schema_path}")

            await conn.execute(schema_path.read_text())

            existing_tables = await self._existing_tables(conn)
            if existing_tables != self.EXPECTED_TABLES:
                raise RuntimeError(
                    f"Migration incomplete: expected {sorted(self.EXPECTED_TABLES)}, found {sorted(existing_tables)}"
                )

            logger.success(f"All {len(self.EXPECTED_TABLES)} mirror tables verified successfully")

    async def close(self) -> None:
        """Close the connection pool gracefully."""
        if self.pool:
            logger.info("Closing mirror database pool")
            await self.pool.close()
            self.pool = None
            self._pool_initialized = False

    def acquire(self):
        """
        Acquire a database connection from the pool.

        Usage:
            async with pool.acquire() as conn:
                result = await conn.fetchrow("SELECT * FROM ...")
        """
        if not self.pool:
            raise RuntimeError("Mirror DB pool not initialized - call initialize() first")
        return self.pool.acquire()

    async def health_check(self) -> bool:
        """True if a trivial query succeeds."""
        try:
            if not self.pool:
                return False

            async with self.pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                return result == 1
        except Exception as e:
            logger.error(f"Mirror DB health check failed: {e}")
            return False
