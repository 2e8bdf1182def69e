"""Factory for building the stores and cache layer once per process."""

import logging
from dataclasses import dataclass, field

from jobtracker.cache.client import RedisConnection
from jobtracker.cache.layer import CacheLayer
from jobtracker.core.config import Settings, settings as default_settings
from jobtracker.core.database import Database
from jobtracker.core.exceptions import ConfigurationError
from jobtracker.core.postgres_stores import (
    PostgresChatStore,
    PostgresIdentityResolver,
    PostgresJobStore,
)
from jobtracker.core.stores import (
    ChatMessageStore,
    IdentityResolver,
    InMemoryChatStore,
    InMemoryIdentityResolver,
    InMemoryJobStore,
    JobStore,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler needs, built once at startup."""

    cache: CacheLayer
    chat_store: ChatMessageStore
    identities: IdentityResolver
    job_store: JobStore
    databases: list[Database] = field(default_factory=list)

    async def shutdown(self) -> None:
        """Shut down the cache layer, then close database pools."""
        await self.cache.shutdown()
        for database in self.databases:
            await database.disconnect()


async def create_services(
    settings: Settings | None = None,
    connection: RedisConnection | None = None,
) -> Services:
    """Create stores and an initialized cache layer.

    PostgreSQL stores are used when DATABASE_URL is set, in-memory stores
    otherwise. The chat store gets its own pool when CHAT_DATABASE_URL
    points somewhere else.

    Args:
        settings: Configuration (default: process settings)
        connection: Pre-built Redis connection (tests inject one)

    Returns:
        Services with the cache layer connected (or in store-only mode)

    Raises:
        ConfigurationError: If CHAT_DATABASE_URL is set without DATABASE_URL
    """
    settings = settings or default_settings
    databases: list[Database] = []

    if settings.chat_database_url and not settings.database_url:
        raise ConfigurationError(
            "CHAT_DATABASE_URL requires DATABASE_URL for users and jobs",
            details={"chat_database_url": "set", "database_url": "missing"},
        )

    if settings.database_url:
        primary = Database(
            settings.database_url, max_size=settings.database_pool_size, name="primary"
        )
        await primary.connect()
        databases.append(primary)

        chat_db = primary
        if settings.chat_database_url != settings.database_url:
            chat_db = Database(
                settings.chat_database_url,
                max_size=settings.database_pool_size,
                name="chat",
            )
            await chat_db.connect()
            databases.append(chat_db)

        chat_store: ChatMessageStore = PostgresChatStore(chat_db)
        identities: IdentityResolver = PostgresIdentityResolver(primary)
        job_store: JobStore = PostgresJobStore(primary)
    else:
        logger.warning("DATABASE_URL not set, using in-memory stores")
        chat_store = InMemoryChatStore()
        identities = InMemoryIdentityResolver()
        job_store = InMemoryJobStore()

    cache = CacheLayer(settings, chat_store, identities, job_store, connection=connection)
    await cache.initialize()

    return Services(
        cache=cache,
        chat_store=chat_store,
        identities=identities,
        job_store=job_store,
        databases=databases,
    )
