"""Resilient cache layer for chat history and job list queries.

Redis sits in front of two independent persistent stores. Every read goes
through a per-service circuit breaker that falls back to the store on a
miss, a Redis error or an open circuit, so the system keeps working (only
slower) when Redis is unavailable.

Key Features:
    - Bounded hot window of recent messages per chat group
    - Filter-hash keyed cache of whole job list pages
    - Coarse per-user invalidation by incremental SCAN
    - MessagePack serialization of pydantic models
    - Fire-and-forget cache warming after a fallback

Usage:
    >>> from jobtracker.cache import CacheLayer
    >>>
    >>> layer = CacheLayer(settings, chat_store, identities, job_store)
    >>> await layer.initialize()
    >>> messages = await layer.chat.get_hot_messages("group-1", limit=20)
    >>> await layer.jobs.invalidate_user_cache("user-1")
"""

from jobtracker.cache.chat import ChatCacheService
from jobtracker.cache.circuit_breaker import CircuitBreaker
from jobtracker.cache.client import RedisConnection
from jobtracker.cache.jobs import JobCacheService
from jobtracker.cache.keys import (
    JOB_FILTER_DEFAULTS,
    CacheKeyBuilder,
    ChatCacheKeys,
    job_key_builder,
)
from jobtracker.cache.layer import CacheLayer
from jobtracker.cache.models import (
    CacheHealth,
    ChatCacheStats,
    CircuitBreakerStats,
    JobCacheStats,
)

__all__ = [
    "CacheLayer",
    "ChatCacheService",
    "JobCacheService",
    "CircuitBreaker",
    "RedisConnection",
    "CacheKeyBuilder",
    "ChatCacheKeys",
    "job_key_builder",
    "JOB_FILTER_DEFAULTS",
    "CacheHealth",
    "ChatCacheStats",
    "JobCacheStats",
    "CircuitBreakerStats",
]
