"""Query result cache for users' job lists.

Each distinct filter/sort/page combination of a user's job list is cached as
one complete page under `{prefix}:jobs:user:{user_id}:query:{hash}`. Any
mutation of a user's jobs drops every cached page of that user.
"""

import asyncio
from collections.abc import Mapping
from typing import Any

from jobtracker.cache.circuit_breaker import CircuitBreaker
from jobtracker.cache.client import RedisConnection
from jobtracker.cache.codec import decode, encode
from jobtracker.cache.keys import CacheKeyBuilder, job_key_builder
from jobtracker.cache.models import JobCacheStats
from jobtracker.core.exceptions import CacheMissError
from jobtracker.core.models import JobPage, JobQuery, JobSort, Pagination
from jobtracker.core.stores import JobStore
from jobtracker.core.tasks import BackgroundTasks
from jobtracker.observability.logging import LogEvents, get_logger

logger = get_logger(__name__)

SCAN_COUNT = 100


class JobCacheService:
    """Cache-aside access to paginated job list queries.

    Example:
        >>> jobs = JobCacheService(connection, breaker, store, tasks)
        >>> page = await jobs.get_cached_jobs(
        ...     "u1", filters, JobQuery.from_filters("u1", filters),
        ...     JobSort.from_filters(filters), skip=0, limit=50,
        ... )
        >>> await jobs.invalidate_user_cache("u1")  # after any job mutation
    """

    def __init__(
        self,
        connection: RedisConnection,
        breaker: CircuitBreaker,
        store: JobStore,
        tasks: BackgroundTasks,
        keys: CacheKeyBuilder | None = None,
        ttl: int = 300,
    ):
        """Initialize job cache.

        Args:
            connection: Shared Redis connection
            breaker: Circuit breaker owned by this service
            store: Job store (source of truth)
            tasks: Background task owner for cache warming
            keys: Key builder (default job_key_builder())
            ttl: Seconds to keep a cached page
        """
        self.connection = connection
        self.breaker = breaker
        self.store = store
        self.tasks = tasks
        self.keys = keys or job_key_builder()
        self.ttl = ttl

    @property
    def is_ready(self) -> bool:
        """True when Redis is connected and answered its last ping."""
        return self.connection.available

    @property
    def redis(self) -> Any:
        return self.connection.client

    def cache_key(self, user_id: str, filters: Mapping[str, Any] | None) -> str:
        """Key of one user's filter combination."""
        return self.keys.build(user_id, filters)

    async def get_cached_jobs(
        self,
        user_id: str,
        filters: Mapping[str, Any],
        query: JobQuery,
        sort: JobSort,
        skip: int,
        limit: int,
    ) -> JobPage:
        """One page of a user's jobs, cache first.

        Args:
            user_id: Owner of the jobs
            filters: Raw request filters (only used for the cache key)
            query: Store-native query built from the filters
            sort: Store-native sort
            skip: Rows to skip
            limit: Page size

        Raises:
            ValueError: If limit is below 1 or skip is negative
            Store errors from the fallback query
        """
        if limit < 1 or skip < 0:
            raise ValueError(f"Invalid page window: skip={skip}, limit={limit}")

        if not self.is_ready:
            return await self.fetch_from_store(user_id, query, sort, skip, limit)

        key = self.cache_key(user_id, filters)

        async def read_page() -> JobPage:
            data = await self.redis.get(key)
            if data is None:
                raise CacheMissError(f"No cached page for user {user_id}", details={"key": key})
            page = decode(data, JobPage)
            logger.debug(
                LogEvents.CACHE_HIT,
                user_id=user_id,
                rows=len(page.rows),
                total=page.pagination.total,
            )
            return page

        return await self.breaker.execute_with_fallback(
            read_page,
            lambda: self.fetch_from_store(user_id, query, sort, skip, limit, filters),
            context=f"get_cached_jobs:{user_id}",
        )

    async def fetch_from_store(
        self,
        user_id: str,
        query: JobQuery,
        sort: JobSort,
        skip: int,
        limit: int,
        filters: Mapping[str, Any] | None = None,
    ) -> JobPage:
        """Run the page and count queries; warm the cache when filters are known."""
        logger.info(LogEvents.STORE_QUERY, user_id=user_id, skip=skip, limit=limit)
        rows, total = await asyncio.gather(
            self.store.find_jobs(query, sort, skip, limit),
            self.store.count_jobs(query),
        )
        page = JobPage(rows=rows, pagination=Pagination.build(skip, limit, total))

        if filters is not None and self.is_ready:
            self.tasks.spawn(
                self._warm(user_id, dict(filters), page), name=f"warm-jobs:{user_id}"
            )
        return page

    async def _warm(self, user_id: str, filters: dict[str, Any], page: JobPage) -> None:
        if not await self.cache_jobs(user_id, filters, page):
            logger.warning(LogEvents.CACHE_WARM_FAILED, user_id=user_id)

    async def cache_jobs(
        self, user_id: str, filters: Mapping[str, Any] | None, page: JobPage
    ) -> bool:
        """Store a complete page under the filter-derived key with TTL.

        Returns:
            True if written, False if skipped or failed
        """
        if not self.is_ready:
            logger.debug(LogEvents.CACHE_WRITE_SKIPPED, user_id=user_id)
            return False

        key = self.cache_key(user_id, filters)
        try:
            await self.redis.set(key, encode(page), ex=self.ttl)
        except Exception as e:
            logger.warning(LogEvents.CACHE_WRITE_FAILED, user_id=user_id, key=key, error=str(e))
            return False

        logger.debug(LogEvents.CACHE_WRITE, user_id=user_id, key=key, rows=len(page.rows))
        return True

    async def invalidate_user_cache(self, user_id: str) -> int:
        """Delete every cached page of a user.

        Keys are found with incremental SCAN and deleted batch by batch, so a
        large keyspace never blocks Redis the way KEYS would.

        Returns:
            Number of keys deleted
        """
        if not self.is_ready:
            return 0

        pattern = self.keys.entity_pattern(user_id)
        deleted = 0
        try:
            cursor = 0
            while True:
                cursor, keys = await self.redis.scan(
                    cursor=cursor, match=pattern, count=SCAN_COUNT
                )
                if keys:
                    deleted += await self.redis.delete(*keys)
                if cursor == 0:
                    break
        except Exception as e:
            logger.warning(
                LogEvents.CACHE_INVALIDATE_FAILED,
                user_id=user_id,
                deleted=deleted,
                error=str(e),
            )
            return deleted

        logger.info(LogEvents.CACHE_INVALIDATED, user_id=user_id, keys_deleted=deleted)
        return deleted

    async def invalidate_job(self, job_id: str, user_id: str) -> int:
        """Invalidate after a single job changed (drops the owner's pages)."""
        logger.debug(LogEvents.CACHE_INVALIDATED, job_id=job_id, user_id=user_id)
        return await self.invalidate_user_cache(user_id)

    async def count_user_keys(self, user_id: str) -> int:
        """Number of cached pages of a user (SCAN, no deletion)."""
        pattern = self.keys.entity_pattern(user_id)
        total = 0
        cursor = 0
        while True:
            cursor, keys = await self.redis.scan(cursor=cursor, match=pattern, count=SCAN_COUNT)
            total += len(keys)
            if cursor == 0:
                break
        return total

    async def get_cache_stats(self, user_id: str | None = None) -> JobCacheStats:
        """Cached page count of a user (0 without one), TTL and breaker state."""
        breaker_stats = self.breaker.get_stats()
        if not self.is_ready:
            return JobCacheStats(available=False, ttl=self.ttl, circuit_breaker=breaker_stats)

        try:
            cached = await self.count_user_keys(user_id) if user_id else 0
        except Exception as e:
            return JobCacheStats(
                available=False, ttl=self.ttl, circuit_breaker=breaker_stats, error=str(e)
            )

        return JobCacheStats(
            available=True,
            cached_queries=cached,
            ttl=self.ttl,
            circuit_breaker=breaker_stats,
        )
