"""Cache layer container: one Redis connection, two services, explicit lifecycle."""

from jobtracker.cache.chat import ChatCacheService
from jobtracker.cache.circuit_breaker import CircuitBreaker
from jobtracker.cache.client import RedisConnection
from jobtracker.cache.jobs import JobCacheService
from jobtracker.cache.keys import ChatCacheKeys, job_key_builder
from jobtracker.cache.models import CacheHealth
from jobtracker.core.config import Settings
from jobtracker.core.stores import ChatMessageStore, IdentityResolver, JobStore
from jobtracker.core.tasks import BackgroundTasks
from jobtracker.observability.logging import LogEvents, get_logger

logger = get_logger(__name__)


class CacheLayer:
    """Owns the cache services and the resources they share.

    Built once at process start and handed to request handlers; nothing is
    created at import time.

    Example:
        >>> layer = CacheLayer(settings, chat_store, identities, job_store)
        >>> await layer.initialize()
        >>> messages = await layer.chat.get_hot_messages("g1")
        >>> await layer.shutdown()
    """

    def __init__(
        self,
        settings: Settings,
        chat_store: ChatMessageStore,
        identity_resolver: IdentityResolver,
        job_store: JobStore,
        connection: RedisConnection | None = None,
    ):
        self.settings = settings
        self.connection = connection or RedisConnection(
            url=settings.redis_url,
            enabled=settings.redis_cache_enabled,
            command_timeout=settings.redis_command_timeout,
            connect_timeout=settings.redis_connect_timeout,
            health_check_interval=settings.redis_health_check_interval,
            max_connections=settings.redis_max_connections,
            client_name=f"jobtracker-cache-{settings.environment}",
        )
        self.tasks = BackgroundTasks()

        self.chat_breaker = self._build_breaker("chat")
        self.jobs_breaker = self._build_breaker("jobs")

        self.chat = ChatCacheService(
            connection=self.connection,
            breaker=self.chat_breaker,
            store=chat_store,
            identities=identity_resolver,
            tasks=self.tasks,
            keys=ChatCacheKeys(settings.redis_key_prefix),
            hot_message_count=settings.redis_hot_message_count,
            ttl=settings.redis_cache_ttl,
        )
        self.jobs = JobCacheService(
            connection=self.connection,
            breaker=self.jobs_breaker,
            store=job_store,
            tasks=self.tasks,
            keys=job_key_builder(settings.redis_key_prefix),
            ttl=settings.redis_job_cache_ttl,
        )
        self._initialized = False

    def _build_breaker(self, name: str) -> CircuitBreaker:
        return CircuitBreaker(
            threshold=self.settings.circuit_breaker_threshold,
            reset_timeout_ms=self.settings.circuit_breaker_reset_timeout_ms,
            operation_timeout=self.settings.redis_command_timeout,
            name=name,
        )

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Connect to Redis. An unreachable Redis leaves the layer in store-only mode."""
        if self._initialized:
            return
        await self.connection.connect()
        self._initialized = True
        logger.info(
            LogEvents.CACHE_LAYER_STARTED,
            available=self.connection.available,
            hot_message_count=self.settings.redis_hot_message_count,
        )

    async def shutdown(self, drain_timeout: float = 5.0) -> None:
        """Flush warmers, cancel breaker timers, disconnect Redis."""
        if not self._initialized:
            return
        self._initialized = False

        cancelled = await self.tasks.drain(timeout=drain_timeout)
        if cancelled:
            logger.warning(LogEvents.CACHE_WARM_FAILED, cancelled=cancelled, reason="shutdown")
        await self.chat_breaker.shutdown()
        await self.jobs_breaker.shutdown()
        await self.connection.disconnect()
        logger.info(LogEvents.CACHE_LAYER_SHUTDOWN)

    def health(self) -> CacheHealth:
        """Redis availability and breaker state of both services."""
        return CacheHealth(
            enabled=self.connection.enabled,
            available=self.connection.available,
            chat_breaker=self.chat_breaker.get_stats(),
            jobs_breaker=self.jobs_breaker.get_stats(),
            pending_warmers=self.tasks.pending,
        )
