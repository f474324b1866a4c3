"""PostgreSQL mirror of the identity directory (asyncpg)."""
