"""Shared Redis connection with availability tracking."""

import asyncio

from redis.asyncio import Redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from jobtracker.observability.logging import LogEvents, get_logger

logger = get_logger(__name__)


class RedisConnection:
    """Process-wide Redis client with connect/health/disconnect lifecycle.

    Cache services consult `available` before every operation. When the
    connection is disabled, never connected, or failed its last ping, they
    behave as if their circuit were open: reads go to the store and writes
    are skipped. The host process keeps running either way.
    """

    def __init__(
        self,
        url: str | None,
        enabled: bool = True,
        command_timeout: float = 5.0,
        connect_timeout: float = 10.0,
        health_check_interval: float = 30.0,
        max_connections: int = 10,
        client_name: str = "jobtracker-cache",
        client: Redis | None = None,
    ):
        """Initialize connection settings.

        Args:
            url: Redis URL (None disables caching)
            enabled: Master switch for caching
            command_timeout: Socket timeout per command in seconds
            connect_timeout: Socket connect timeout in seconds
            health_check_interval: Seconds between background pings (0 = off)
            max_connections: Connection pool size
            client_name: CLIENT SETNAME value
            client: Pre-built client (tests inject a double here)
        """
        self.url = url
        self.enabled = enabled and (bool(url) or client is not None)
        self.command_timeout = command_timeout
        self.connect_timeout = connect_timeout
        self.health_check_interval = health_check_interval
        self.max_connections = max_connections
        self.client_name = client_name
        self._client = client
        self._available = False
        self._reported_down = False
        self._health_task: asyncio.Task[None] | None = None

    @property
    def client(self) -> Redis | None:
        """Underlying redis.asyncio client, None until connected."""
        return self._client

    @property
    def available(self) -> bool:
        """True when the last ping succeeded."""
        return self.enabled and self._client is not None and self._available

    async def connect(self) -> bool:
        """Create the client and ping it.

        Returns:
            True if Redis answered. A failed ping leaves the cache unavailable
            but never raises.
        """
        if not self.enabled:
            logger.info(LogEvents.REDIS_DISABLED)
            return False

        if self._client is None:
            self._client = Redis.from_url(
                self.url,
                socket_timeout=self.command_timeout,
                socket_connect_timeout=self.connect_timeout,
                retry_on_timeout=False,
                max_connections=self.max_connections,
                client_name=self.client_name,
                decode_responses=False,  # msgpack payloads are bytes
            )

        await self.health_check()
        if self._available:
            logger.info(LogEvents.REDIS_CONNECTED, client_name=self.client_name)

        if self.health_check_interval > 0 and self._health_task is None:
            self._health_task = asyncio.create_task(
                self._health_loop(), name=f"{self.client_name}-health"
            )
        return self._available

    async def health_check(self) -> bool:
        """Ping Redis and update availability."""
        if self._client is None:
            self._available = False
            return False

        was_available = self._available
        try:
            await asyncio.wait_for(self._client.ping(), self.command_timeout)
        except (ConnectionError, TimeoutError, asyncio.TimeoutError, RedisError, OSError) as e:
            self._available = False
            if was_available or not self._reported_down:
                logger.warning(LogEvents.REDIS_UNAVAILABLE, error=str(e) or type(e).__name__)
            self._reported_down = True
            return False

        self._available = True
        if not was_available and self._reported_down:
            logger.info(LogEvents.REDIS_RECOVERED)
        self._reported_down = False
        return True

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.health_check_interval)
            await self.health_check()

    async def disconnect(self) -> None:
        """Stop the health probe and close the client."""
        if self._health_task is not None:
            self._health_task.cancel()
            try:
                await self._health_task
            except asyncio.CancelledError:
                pass
            self._health_task = None

        if self._client is not None:
            try:
                await self._client.aclose()
            except (ConnectionError, RedisError, OSError) as e:
                logger.debug("redis_close_failed", error=str(e))
            self._client = None
            logger.info(LogEvents.REDIS_DISCONNECTED)
        self._available = False
