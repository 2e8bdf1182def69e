"""Hot window cache for group chat history.

Per group, Redis holds:
    - a sorted set of the most recent message ids scored by creation time (ms),
      capped at `hot_message_count` and refreshed to `ttl` on every write
    - one msgpack record per message (CachedMessage with sender snapshot)
    - an approximate message count, rebuilt from the chat store when absent

Reads go through the circuit breaker. Writes and invalidations are
best-effort: failures are logged and never raised.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from jobtracker.cache.circuit_breaker import CircuitBreaker
from jobtracker.cache.client import RedisConnection
from jobtracker.cache.codec import decode, decode_dict, encode
from jobtracker.cache.keys import ChatCacheKeys
from jobtracker.cache.models import ChatCacheStats
from jobtracker.core.exceptions import CacheMissError
from jobtracker.core.identity import attach_identities
from jobtracker.core.models import CachedMessage, ChatMessage, UserSnapshot
from jobtracker.core.stores import ChatMessageStore, IdentityResolver
from jobtracker.core.tasks import BackgroundTasks
from jobtracker.observability.logging import LogEvents, get_logger

logger = get_logger(__name__)


def _to_cached(message: ChatMessage) -> CachedMessage:
    if isinstance(message, CachedMessage):
        return message
    return CachedMessage.model_validate(message.model_dump())


def _with_sender(message: ChatMessage, sender: UserSnapshot | None) -> CachedMessage:
    return CachedMessage.model_validate({**message.model_dump(), "sender": sender})


class ChatCacheService:
    """Cache-aside access to recent group messages.

    Example:
        >>> chat = ChatCacheService(connection, breaker, store, resolver, tasks)
        >>> messages = await chat.get_hot_messages("g1", limit=20)
        >>> await chat.cache_message(new_message, "g1")
    """

    def __init__(
        self,
        connection: RedisConnection,
        breaker: CircuitBreaker,
        store: ChatMessageStore,
        identities: IdentityResolver,
        tasks: BackgroundTasks,
        keys: ChatCacheKeys | None = None,
        hot_message_count: int = 50,
        ttl: int = 86400,
    ):
        """Initialize chat cache.

        Args:
            connection: Shared Redis connection
            breaker: Circuit breaker owned by this service
            store: Chat store (source of truth for messages)
            identities: Primary store lookup for sender snapshots
            tasks: Background task owner for cache warming
            keys: Key naming (default prefix "jobtracker")
            hot_message_count: Window capacity per group
            ttl: Seconds to keep records, windows and counts
        """
        self.connection = connection
        self.breaker = breaker
        self.store = store
        self.identities = identities
        self.tasks = tasks
        self.keys = keys or ChatCacheKeys()
        self.hot_message_count = hot_message_count
        self.ttl = ttl

    @property
    def is_ready(self) -> bool:
        """True when Redis is connected and answered its last ping."""
        return self.connection.available

    @property
    def redis(self) -> Any:
        return self.connection.client

    # ==================== READS ====================

    async def get_hot_messages(
        self, group_id: str, limit: int = 50
    ) -> list[CachedMessage]:
        """Most recent messages of a group, newest first.

        Served from the hot window when every id in the requested range has
        a cached record. Any gap, an empty window, a Redis error or an open
        circuit falls back to the chat store, whose result is warmed into
        the cache in the background.

        Args:
            group_id: Group ID
            limit: Maximum messages to return

        Returns:
            Up to `limit` messages ordered by created_at descending

        Raises:
            Store errors from the fallback query
        """
        if limit < 1:
            return []

        if not self.is_ready:
            return await self.fetch_from_store(group_id, limit)

        if limit > self.hot_message_count:
            # The window never holds more than its capacity
            logger.debug(
                LogEvents.CACHE_MISS,
                group_id=group_id,
                reason="limit exceeds window capacity",
                limit=limit,
            )
            return await self.fetch_from_store(group_id, limit)

        async def read_window() -> list[CachedMessage]:
            raw_ids = await self.redis.zrevrange(
                self.keys.group_messages(group_id), 0, limit - 1
            )
            if not raw_ids:
                raise CacheMissError(f"Hot window empty for group {group_id}")

            ids = [i.decode() if isinstance(i, bytes) else str(i) for i in raw_ids]
            records = await self.redis.mget([self.keys.message(i) for i in ids])
            missing = [i for i, record in zip(ids, records) if record is None]
            if missing:
                raise CacheMissError(
                    f"{len(missing)} of {len(ids)} windowed messages not cached",
                    details={"group_id": group_id, "missing": missing[:5]},
                )

            messages = [decode(record, CachedMessage) for record in records]
            logger.debug(LogEvents.CACHE_HIT, group_id=group_id, count=len(messages))
            return messages

        return await self.breaker.execute_with_fallback(
            read_window,
            lambda: self.fetch_from_store(group_id, limit),
            context=f"get_hot_messages:{group_id}",
        )

    async def get_message(self, message_id: str) -> CachedMessage | None:
        """Single cached message, or None when not cached or unavailable."""
        if not self.is_ready:
            return None

        try:
            data = await self.redis.get(self.keys.message(message_id))
            if data is None:
                return None
            return decode(data, CachedMessage)
        except Exception as e:
            logger.warning(LogEvents.CACHE_ERROR, message_id=message_id, error=str(e))
            return None

    async def get_message_count(self, group_id: str) -> int:
        """Total non-deleted messages of a group.

        Cached with TTL; rebuilt from the store's count query when absent.
        """
        if not self.is_ready or self.breaker.is_open:
            return await self.store.count_messages(group_id)

        key = self.keys.group_count(group_id)
        try:
            cached = await self.redis.get(key)
        except Exception as e:
            logger.warning(LogEvents.CACHE_ERROR, group_id=group_id, error=str(e))
            return await self.store.count_messages(group_id)

        if cached is not None:
            try:
                return max(int(cached), 0)
            except ValueError:
                logger.warning(LogEvents.CACHE_ERROR, group_id=group_id, error="bad count")

        count = await self.store.count_messages(group_id)
        try:
            await self.redis.setex(key, self.ttl, count)
        except Exception as e:
            logger.warning(LogEvents.CACHE_WRITE_FAILED, key=key, error=str(e))
        return count

    # ==================== WRITES ====================

    async def cache_message(self, message: ChatMessage, group_id: str) -> bool:
        """Write one message and slide it into the group's hot window.

        A cached count is incremented. An absent count is seeded from the
        store's count query, which already includes the persisted message.

        Returns:
            True if written, False if skipped or failed
        """
        if not self.is_ready:
            logger.debug(LogEvents.CACHE_WRITE_SKIPPED, message_id=message.id)
            return False

        cached = _to_cached(message)
        window_key = self.keys.group_messages(group_id)
        count_key = self.keys.group_count(group_id)
        try:
            pipe = self.redis.pipeline(transaction=False)
            pipe.setex(self.keys.message(cached.id), self.ttl, encode(cached))
            pipe.zadd(window_key, {cached.id: cached.score})
            pipe.zremrangebyrank(window_key, 0, -(self.hot_message_count + 1))
            pipe.expire(window_key, self.ttl)
            await pipe.execute()

            if await self.redis.exists(count_key):
                await self.redis.incr(count_key)
                await self.redis.expire(count_key, self.ttl)
            else:
                total = await self.store.count_messages(group_id)
                await self.redis.setex(count_key, self.ttl, total)
        except Exception as e:
            logger.warning(
                LogEvents.CACHE_WRITE_FAILED,
                group_id=group_id,
                message_id=cached.id,
                error=str(e),
            )
            return False

        logger.debug(LogEvents.CACHE_WRITE, group_id=group_id, message_id=cached.id)
        return True

    async def cache_messages(
        self, messages: Iterable[ChatMessage], group_id: str
    ) -> bool:
        """Bulk warm: write records, window entries, trim and TTL in one pipeline.

        The message count is left alone; a warm batch says nothing about
        the group's total.
        """
        batch = [_to_cached(m) for m in messages]
        if not self.is_ready or not batch:
            logger.debug(LogEvents.CACHE_WRITE_SKIPPED, group_id=group_id, count=len(batch))
            return False

        window_key = self.keys.group_messages(group_id)
        try:
            pipe = self.redis.pipeline(transaction=False)
            for message in batch:
                pipe.setex(self.keys.message(message.id), self.ttl, encode(message))
            pipe.zadd(window_key, {m.id: m.score for m in batch})
            pipe.zremrangebyrank(window_key, 0, -(self.hot_message_count + 1))
            pipe.expire(window_key, self.ttl)
            await pipe.execute()
        except Exception as e:
            logger.warning(
                LogEvents.CACHE_WRITE_FAILED,
                group_id=group_id,
                count=len(batch),
                error=str(e),
            )
            return False

        logger.info(LogEvents.CACHE_WRITE, group_id=group_id, count=len(batch))
        return True

    async def update_message(self, message_id: str, fields: Mapping[str, Any]) -> bool:
        """Merge fields into a cached record and rewrite it with a fresh TTL.

        A message that is not cached is left uncached.

        Returns:
            True if a cached record was updated
        """
        if not self.is_ready:
            return False

        key = self.keys.message(message_id)
        try:
            data = await self.redis.get(key)
            if data is None:
                logger.debug(
                    LogEvents.CACHE_MISS, message_id=message_id, reason="update of uncached message"
                )
                return False

            merged = CachedMessage.model_validate({**decode_dict(data), **fields})
            await self.redis.setex(key, self.ttl, encode(merged))
        except Exception as e:
            logger.warning(LogEvents.CACHE_WRITE_FAILED, message_id=message_id, error=str(e))
            return False

        logger.debug(LogEvents.CACHE_UPDATED, message_id=message_id, fields=sorted(fields))
        return True

    # ==================== INVALIDATION ====================

    async def invalidate_message(self, message_id: str, group_id: str) -> bool:
        """Drop a message from the window and delete its record.

        A cached count is decremented, never below zero.
        """
        if not self.is_ready:
            return False

        count_key = self.keys.group_count(group_id)
        try:
            pipe = self.redis.pipeline(transaction=False)
            pipe.zrem(self.keys.group_messages(group_id), message_id)
            pipe.delete(self.keys.message(message_id))
            await pipe.execute()

            count = await self.redis.get(count_key)
            if count is not None and int(count) > 0:
                await self.redis.decr(count_key)
        except Exception as e:
            logger.warning(
                LogEvents.CACHE_INVALIDATE_FAILED,
                group_id=group_id,
                message_id=message_id,
                error=str(e),
            )
            return False

        logger.debug(LogEvents.CACHE_INVALIDATED, group_id=group_id, message_id=message_id)
        return True

    async def invalidate_group(self, group_id: str) -> int:
        """Delete every windowed record plus the window and count keys.

        Returns:
            Number of keys deleted
        """
        if not self.is_ready:
            return 0

        window_key = self.keys.group_messages(group_id)
        try:
            raw_ids = await self.redis.zrange(window_key, 0, -1)
            keys = [
                self.keys.message(i.decode() if isinstance(i, bytes) else str(i))
                for i in raw_ids
            ]
            keys += [window_key, self.keys.group_count(group_id)]
            deleted = await self.redis.delete(*keys)
        except Exception as e:
            logger.warning(LogEvents.CACHE_INVALIDATE_FAILED, group_id=group_id, error=str(e))
            return 0

        logger.info(
            LogEvents.CACHE_INVALIDATED,
            group_id=group_id,
            messages=len(raw_ids),
            keys_deleted=deleted,
        )
        return int(deleted)

    # ==================== FALLBACK ====================

    async def fetch_from_store(
        self, group_id: str, limit: int, before: datetime | None = None
    ) -> list[CachedMessage]:
        """Query the chat store, embed sender snapshots, warm in the background.

        Sender ids are resolved against the primary store in one batched
        call. Warming never delays or fails the response.
        """
        logger.info(LogEvents.STORE_QUERY, group_id=group_id, limit=limit)
        messages = await self.store.find_recent_messages(group_id, limit, before)
        result = await attach_identities(
            messages, self.identities, key=lambda m: m.user_id, attach=_with_sender
        )

        if result and self.is_ready:
            self.tasks.spawn(
                self._warm(result, group_id), name=f"warm-chat:{group_id}"
            )
        return result

    async def _warm(self, messages: list[CachedMessage], group_id: str) -> None:
        if not await self.cache_messages(messages, group_id):
            logger.warning(LogEvents.CACHE_WARM_FAILED, group_id=group_id, count=len(messages))

    # ==================== STATS ====================

    async def get_cache_stats(self, group_id: str) -> ChatCacheStats:
        """Window size and TTL of a group plus breaker state."""
        breaker_stats = self.breaker.get_stats()
        if not self.is_ready:
            return ChatCacheStats(available=False, circuit_breaker=breaker_stats)

        window_key = self.keys.group_messages(group_id)
        try:
            size = await self.redis.zcard(window_key)
            ttl = await self.redis.ttl(window_key)
        except Exception as e:
            return ChatCacheStats(
                available=False, circuit_breaker=breaker_stats, error=str(e)
            )

        return ChatCacheStats(
            available=True,
            message_count=int(size),
            ttl=int(ttl),
            circuit_breaker=breaker_stats,
        )
