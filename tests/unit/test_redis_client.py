"""Unit tests for the shared Redis connection."""

import asyncio
from unittest.mock import AsyncMock, patch

from redis.exceptions import ConnectionError, TimeoutError

from jobtracker.cache.client import RedisConnection


class TestConnect:
    """connect() and availability."""

    async def test_disabled_without_url(self):
        """No URL means caching is off and nothing is created."""
        conn = RedisConnection(url=None)

        assert await conn.connect() is False
        assert conn.enabled is False
        assert conn.client is None
        assert conn.available is False

    async def test_disabled_by_flag(self):
        """The enable flag overrides a configured URL."""
        conn = RedisConnection(url="redis://localhost:6379", enabled=False)

        assert await conn.connect() is False

    async def test_connect_builds_client_from_url(self):
        """Client is created with timeouts, pool size and name."""
        with patch("jobtracker.cache.client.Redis") as mock_redis:
            mock_client = AsyncMock()
            mock_redis.from_url.return_value = mock_client

            conn = RedisConnection(
                url="redis://localhost:6379/0",
                command_timeout=2.0,
                connect_timeout=3.0,
                health_check_interval=0,
                max_connections=7,
                client_name="jobtracker-cache-test",
            )
            assert await conn.connect() is True

            kwargs = mock_redis.from_url.call_args.kwargs
            assert kwargs["socket_timeout"] == 2.0
            assert kwargs["socket_connect_timeout"] == 3.0
            assert kwargs["max_connections"] == 7
            assert kwargs["client_name"] == "jobtracker-cache-test"
            assert kwargs["decode_responses"] is False
            assert conn.available is True

            await conn.disconnect()
            mock_client.aclose.assert_awaited_once()

    async def test_unreachable_redis_does_not_raise(self, fake_redis):
        """A failed ping leaves the connection unavailable."""
        fake_redis.fail_with = ConnectionError("refused")
        conn = RedisConnection(url=None, client=fake_redis, health_check_interval=0)

        assert await conn.connect() is False
        assert conn.available is False

    async def test_ping_timeout(self):
        """A hanging ping is bounded by the command timeout."""
        client = AsyncMock()

        async def hang():
            await asyncio.sleep(5)

        client.ping = hang
        conn = RedisConnection(
            url=None, client=client, command_timeout=0.05, health_check_interval=0
        )

        assert await conn.connect() is False


class TestHealth:
    """Health probing and recovery."""

    async def test_recovers_after_outage(self, fake_redis):
        """Availability follows the latest ping."""
        conn = RedisConnection(url=None, client=fake_redis, health_check_interval=0)
        await conn.connect()
        assert conn.available

        fake_redis.fail_with = TimeoutError()
        assert await conn.health_check() is False
        assert not conn.available

        fake_redis.fail_with = None
        assert await conn.health_check() is True
        assert conn.available

    async def test_background_probe(self, fake_redis):
        """The probe loop re-checks on its interval."""
        conn = RedisConnection(url=None, client=fake_redis, health_check_interval=0.02)
        await conn.connect()
        fake_redis.fail_with = ConnectionError()

        await asyncio.sleep(0.1)

        assert not conn.available
        await conn.disconnect()

    async def test_disconnect_stops_probe_and_closes(self, fake_redis):
        """disconnect() cancels the probe and closes the client."""
        conn = RedisConnection(url=None, client=fake_redis, health_check_interval=10)
        await conn.connect()

        await conn.disconnect()

        assert fake_redis.closed
        assert conn.client is None
        assert conn.available is False
        assert conn._health_task is None
