"""Unit tests for the asyncpg pool wrapper."""

from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from jobtracker.core.database import Database
from jobtracker.core.exceptions import DatabaseError


def _pool_with(conn: AsyncMock) -> MagicMock:
    pool = MagicMock()
    pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    pool.close = AsyncMock()
    return pool


class TestDatabase:
    """Tests for Database."""

    def test_requires_url(self):
        """An empty URL is rejected up front."""
        with pytest.raises(ValueError):
            Database("")

    def test_pool_size_clamped(self):
        """max_size is at least min_size and at most 100."""
        assert Database("postgresql://x", min_size=5, max_size=2).max_size == 5
        assert Database("postgresql://x", max_size=500).max_size == 100

    async def test_connect_failure_wrapped(self):
        """Pool creation errors surface as DatabaseError."""
        with patch(
            "jobtracker.core.database.asyncpg.create_pool",
            AsyncMock(side_effect=OSError("refused")),
        ):
            with pytest.raises(DatabaseError, match="refused"):
                await Database("postgresql://x").connect()

    async def test_query_before_connect(self):
        """Queries without a pool raise DatabaseError."""
        with pytest.raises(DatabaseError, match="not connected"):
            await Database("postgresql://x", name="chat").fetch("SELECT 1")

    async def test_fetch_and_fetchval(self):
        """Queries run on an acquired connection."""
        conn = AsyncMock()
        conn.fetch.return_value = [{"n": 1}]
        conn.fetchval.return_value = 3
        db = Database("postgresql://x")
        db.pool = _pool_with(conn)

        assert await db.fetch("SELECT $1", 1) == [{"n": 1}]
        assert await db.fetchval("SELECT 3") == 3
        conn.fetch.assert_awaited_once_with("SELECT $1", 1)

    async def test_query_error_wrapped(self):
        """Postgres errors surface as DatabaseError."""
        conn = AsyncMock()
        conn.fetchval.side_effect = asyncpg.PostgresError("relation missing")
        db = Database("postgresql://x")
        db.pool = _pool_with(conn)

        with pytest.raises(DatabaseError, match="Query failed"):
            await db.fetchval("SELECT * FROM nope")

    async def test_disconnect_closes_pool(self):
        """disconnect() closes and forgets the pool."""
        pool = _pool_with(AsyncMock())
        db = Database("postgresql://x")
        db.pool = pool

        await db.disconnect()

        pool.close.assert_awaited_once()
        assert db.pool is None
