"""Pytest configuration and fixtures for JobTracker tests."""

import re
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from jobtracker.cache.chat import ChatCacheService
from jobtracker.cache.circuit_breaker import CircuitBreaker
from jobtracker.cache.client import RedisConnection
from jobtracker.cache.jobs import JobCacheService
from jobtracker.cache.layer import CacheLayer
from jobtracker.core.config import Settings
from jobtracker.core.models import ChatMessage, JobRecord, UserSnapshot
from jobtracker.core.stores import (
    InMemoryChatStore,
    InMemoryIdentityResolver,
    InMemoryJobStore,
)
from jobtracker.core.tasks import BackgroundTasks
from jobtracker.utils.service_factory import Services

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# IN-MEMORY REDIS DOUBLE
# =============================================================================


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode()


def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("^" + "".join(out) + "$")


def _redis_range(items: list[Any], start: int, end: int) -> list[Any]:
    n = len(items)
    if start < 0:
        start += n
    if end < 0:
        end += n
    start = max(start, 0)
    end = min(end, n - 1)
    if start > end:
        return []
    return items[start : end + 1]


class FakePipeline:
    """Queues commands and runs them against the FakeRedis on execute()."""

    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._commands: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def __getattr__(self, name: str) -> Any:
        def queue(*args: Any, **kwargs: Any) -> "FakePipeline":
            self._commands.append((name, args, kwargs))
            return self

        return queue

    async def execute(self) -> list[Any]:
        self._redis._check()
        results = []
        for name, args, kwargs in self._commands:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._commands = []
        return results


class FakeRedis:
    """Async in-memory stand-in for the redis.asyncio commands the cache issues.

    Values come back as bytes, like a client with decode_responses=False.
    TTLs are recorded but never expire on their own. Set `fail_with` to an
    exception to make every command raise it.
    """

    def __init__(self) -> None:
        self.strings: dict[str, bytes] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.ttls: dict[str, int] = {}
        self.fail_with: Exception | None = None
        self.closed = False
        self.commands: list[str] = []
        self._scan_cursors: dict[int, str] = {}
        self._cursor_seq = 0

    def _check(self, name: str = "pipeline") -> None:
        self.commands.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    def _exists(self, key: str) -> bool:
        return key in self.strings or key in self.zsets

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def aclose(self) -> None:
        self.closed = True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    # Strings

    async def get(self, key: str) -> bytes | None:
        self._check("get")
        return self.strings.get(key)

    async def mget(self, keys: list[str]) -> list[bytes | None]:
        self._check("mget")
        return [self.strings.get(k) for k in keys]

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        self._check("set")
        self.strings[key] = _to_bytes(value)
        if ex is not None:
            self.ttls[key] = ex
        else:
            self.ttls.pop(key, None)
        return True

    async def setex(self, key: str, ttl: int, value: Any) -> bool:
        self._check("setex")
        self.strings[key] = _to_bytes(value)
        self.ttls[key] = ttl
        return True

    async def incr(self, key: str) -> int:
        self._check("incr")
        value = int(self.strings.get(key, b"0")) + 1
        self.strings[key] = _to_bytes(value)
        return value

    async def decr(self, key: str) -> int:
        self._check("decr")
        value = int(self.strings.get(key, b"0")) - 1
        self.strings[key] = _to_bytes(value)
        return value

    # Keys

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        deleted = 0
        for key in keys:
            key = key.decode() if isinstance(key, bytes) else key
            if self.strings.pop(key, None) is not None or self.zsets.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted

    async def exists(self, *keys: str) -> int:
        self._check("exists")
        return sum(1 for k in keys if self._exists(k))

    async def expire(self, key: str, ttl: int) -> bool:
        self._check("expire")
        if not self._exists(key):
            return False
        self.ttls[key] = ttl
        return True

    async def ttl(self, key: str) -> int:
        self._check("ttl")
        if not self._exists(key):
            return -2
        return self.ttls.get(key, -1)

    async def scan(
        self, cursor: int = 0, match: str | None = None, count: int | None = None
    ) -> tuple[int, list[bytes]]:
        self._check("scan")
        # Cursor maps to the last key name visited, so deletes between calls
        # never make the iteration skip keys
        after = self._scan_cursors.pop(cursor, "") if cursor else ""
        keys = sorted(k for k in set(self.strings) | set(self.zsets) if k > after)
        count = count or 10
        page, rest = keys[:count], keys[count:]
        next_cursor = 0
        if rest:
            self._cursor_seq += 1
            next_cursor = self._cursor_seq
            self._scan_cursors[next_cursor] = page[-1]
        if match:
            regex = _glob_to_regex(match)
            page = [k for k in page if regex.match(k)]
        return next_cursor, [k.encode() for k in page]

    # Sorted sets

    def _ordered(self, key: str) -> list[str]:
        members = self.zsets.get(key, {})
        return sorted(members, key=lambda m: (members[m], m))

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        self._check("zadd")
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zset)
        zset.update({str(m): float(s) for m, s in mapping.items()})
        return added

    async def zrange(self, key: str, start: int, end: int) -> list[bytes]:
        self._check("zrange")
        return [m.encode() for m in _redis_range(self._ordered(key), start, end)]

    async def zrevrange(self, key: str, start: int, end: int) -> list[bytes]:
        self._check("zrevrange")
        ordered = list(reversed(self._ordered(key)))
        return [m.encode() for m in _redis_range(ordered, start, end)]

    async def zremrangebyrank(self, key: str, start: int, end: int) -> int:
        self._check("zremrangebyrank")
        doomed = _redis_range(self._ordered(key), start, end)
        for member in doomed:
            del self.zsets[key][member]
        if key in self.zsets and not self.zsets[key]:
            del self.zsets[key]
        return len(doomed)

    async def zrem(self, key: str, *members: str) -> int:
        self._check("zrem")
        zset = self.zsets.get(key, {})
        removed = sum(1 for m in members if zset.pop(m, None) is not None)
        if key in self.zsets and not zset:
            del self.zsets[key]
        return removed

    async def zcard(self, key: str) -> int:
        self._check("zcard")
        return len(self.zsets.get(key, {}))

    def window_ids(self, key: str) -> list[str]:
        """Members of a sorted set, oldest first (test helper)."""
        return self._ordered(key)


# =============================================================================
# DATA FIXTURES
# =============================================================================


def make_message(n: int, group_id: str = "g1", user_id: str = "u1", **fields: Any) -> ChatMessage:
    """Message m{n}, created n seconds after BASE_TIME."""
    return ChatMessage(
        id=f"m{n}",
        group_id=group_id,
        user_id=user_id,
        content=f"message {n}",
        created_at=BASE_TIME + timedelta(seconds=n),
        **fields,
    )


def make_job(n: int, user_id: str = "u1", **fields: Any) -> JobRecord:
    """Job j{n} applied n days after BASE_TIME."""
    defaults: dict[str, Any] = {
        "company": f"Company {n}",
        "title": f"Engineer {n}",
        "status": "applied",
        "work_type": "Remote",
        "date_applied": BASE_TIME + timedelta(days=n),
    }
    defaults.update(fields)
    return JobRecord(id=f"j{n}", user_id=user_id, **defaults)


@pytest.fixture
def users():
    """Users known to the primary store."""
    return [
        UserSnapshot(id="u1", first_name="Ada", last_name="Lovelace", email="ada@example.com"),
        UserSnapshot(id="u2", first_name="Alan", last_name="Turing", email="alan@example.com"),
    ]


@pytest.fixture
def chat_store():
    """Chat store with 60 messages m1..m60 in group g1."""
    return InMemoryChatStore(make_message(n) for n in range(1, 61))


@pytest.fixture
def identity_resolver(users):
    """Identity resolver over the test users."""
    return InMemoryIdentityResolver(users)


@pytest.fixture
def job_store():
    """Job store with 12 jobs for u1 and 3 for u2."""
    jobs = [make_job(n) for n in range(1, 13)]
    jobs += [make_job(n, user_id="u2") for n in range(13, 16)]
    return InMemoryJobStore(jobs)


# =============================================================================
# CACHE FIXTURES
# =============================================================================


@pytest.fixture
def fake_redis():
    """Fresh in-memory Redis double."""
    return FakeRedis()


@pytest.fixture
async def connection(fake_redis):
    """Connected RedisConnection over the double (no background probe)."""
    conn = RedisConnection(url=None, client=fake_redis, health_check_interval=0)
    await conn.connect()
    yield conn
    await conn.disconnect()


@pytest.fixture
async def tasks():
    """Background task owner, drained after each test."""
    owner = BackgroundTasks()
    yield owner
    await owner.drain(timeout=1.0)


@pytest.fixture
async def breaker():
    """Breaker with a low threshold and short reset timeout."""
    cb = CircuitBreaker(threshold=3, reset_timeout_ms=1000, operation_timeout=1.0, name="test")
    yield cb
    await cb.shutdown()


@pytest.fixture
def chat_cache(connection, breaker, chat_store, identity_resolver, tasks):
    """ChatCacheService with window capacity 50."""
    return ChatCacheService(
        connection=connection,
        breaker=breaker,
        store=chat_store,
        identities=identity_resolver,
        tasks=tasks,
        hot_message_count=50,
        ttl=86400,
    )


@pytest.fixture
def job_cache(connection, breaker, job_store, tasks):
    """JobCacheService with a 300 second TTL."""
    return JobCacheService(
        connection=connection,
        breaker=breaker,
        store=job_store,
        tasks=tasks,
        ttl=300,
    )


@pytest.fixture
def message_factory():
    """make_message for tests that build their own messages."""
    return make_message


@pytest.fixture
def job_factory():
    """make_job for tests that build their own jobs."""
    return make_job


# =============================================================================
# APPLICATION FIXTURES
# =============================================================================


@pytest.fixture
def test_settings():
    """Settings isolated from the environment, without a background probe."""
    return Settings(
        _env_file=None,
        redis_url=None,
        database_url="",
        environment="test",
        redis_health_check_interval=0,
        circuit_breaker_threshold=3,
        circuit_breaker_reset_timeout_ms=1000,
    )


@pytest.fixture
def services_factory(test_settings, chat_store, identity_resolver, job_store, fake_redis):
    """Builds Services over the in-memory stores and the Redis double.

    Shaped like create_services so it can replace it in the app and CLI.
    """

    async def factory(settings: Settings | None = None) -> Services:
        connection = RedisConnection(url=None, client=fake_redis, health_check_interval=0)
        cache = CacheLayer(
            test_settings, chat_store, identity_resolver, job_store, connection=connection
        )
        await cache.initialize()
        return Services(
            cache=cache,
            chat_store=chat_store,
            identities=identity_resolver,
            job_store=job_store,
        )

    return factory
