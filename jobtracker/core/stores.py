"""Persistent-store collaborators used by the cache layer.

The cache services treat these as black boxes: they ask for recent chat
messages, message counts, user identities and job pages, and never assume
anything about how the store answers.

Storage Options:
- InMemory*: dict-based storage for development and tests
- Postgres*: asyncpg-backed storage (see jobtracker.core.postgres_stores)

Usage:
    >>> store = InMemoryChatStore()
    >>> store.add(message)
    >>> recent = await store.find_recent_messages("group-1", limit=50)
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from jobtracker.core.models import (
    ChatMessage,
    JobQuery,
    JobRecord,
    JobSort,
    UserSnapshot,
)


class ChatMessageStore(ABC):
    """Source of truth for chat messages."""

    @abstractmethod
    async def find_recent_messages(
        self,
        group_id: str,
        limit: int,
        before: datetime | None = None,
    ) -> list[ChatMessage]:
        """Return up to `limit` non-deleted messages, newest first.

        Args:
            group_id: Group to read
            limit: Maximum number of messages
            before: Only messages created strictly before this instant
        """

    @abstractmethod
    async def count_messages(self, group_id: str) -> int:
        """Count non-deleted messages in a group."""


class IdentityResolver(ABC):
    """Resolves user ids living in another store."""

    @abstractmethod
    async def resolve_identities(self, ids: list[str]) -> dict[str, UserSnapshot]:
        """Resolve ids in one batched call; unknown ids are absent from the result."""


class JobStore(ABC):
    """Source of truth for job applications."""

    @abstractmethod
    async def find_jobs(
        self, query: JobQuery, sort: JobSort, skip: int, limit: int
    ) -> list[JobRecord]:
        """Return one sorted page of jobs matching the query."""

    @abstractmethod
    async def count_jobs(self, query: JobQuery) -> int:
        """Count all jobs matching the query."""


class InMemoryChatStore(ChatMessageStore):
    """Dict-backed chat store."""

    def __init__(self, messages: Iterable[ChatMessage] = ()):
        self.messages: dict[str, ChatMessage] = {}
        for message in messages:
            self.add(message)

    def add(self, message: ChatMessage) -> None:
        """Insert or replace a message."""
        self.messages[message.id] = message

    async def find_recent_messages(
        self,
        group_id: str,
        limit: int,
        before: datetime | None = None,
    ) -> list[ChatMessage]:
        matches = [
            m
            for m in self.messages.values()
            if m.group_id == group_id
            and not m.deleted
            and (before is None or m.created_at < before)
        ]
        matches.sort(key=lambda m: m.created_at, reverse=True)
        return matches[:limit]

    async def count_messages(self, group_id: str) -> int:
        return sum(
            1 for m in self.messages.values() if m.group_id == group_id and not m.deleted
        )


class InMemoryIdentityResolver(IdentityResolver):
    """Dict-backed user directory."""

    def __init__(self, users: Iterable[UserSnapshot] = ()):
        self.users: dict[str, UserSnapshot] = {u.id: u for u in users}

    async def resolve_identities(self, ids: list[str]) -> dict[str, UserSnapshot]:
        return {i: self.users[i] for i in ids if i in self.users}


class InMemoryJobStore(JobStore):
    """Dict-backed job store applying the same filters as the SQL store."""

    def __init__(self, jobs: Iterable[JobRecord] = ()):
        self.jobs: dict[str, JobRecord] = {}
        for job in jobs:
            self.add(job)

    def add(self, job: JobRecord) -> None:
        """Insert or replace a job."""
        self.jobs[job.id] = job

    def _matches(self, job: JobRecord, query: JobQuery) -> bool:
        if job.user_id != query.user_id or job.is_archived != query.archived:
            return False
        if query.status and job.status != query.status:
            return False
        if query.work_type and job.work_type != query.work_type:
            return False
        if query.priority and job.priority != query.priority:
            return False
        if query.tags and not set(query.tags) & set(job.tags):
            return False
        if query.date_from or query.date_to:
            if job.date_applied is None:
                return False
            if query.date_from and job.date_applied < query.date_from:
                return False
            if query.date_to and job.date_applied > query.date_to:
                return False
        if query.search:
            needle = query.search.lower()
            haystack = (job.company, job.title, job.location, job.notes)
            if not any(needle in (field or "").lower() for field in haystack):
                return False
        return True

    async def find_jobs(
        self, query: JobQuery, sort: JobSort, skip: int, limit: int
    ) -> list[JobRecord]:
        matches = [j for j in self.jobs.values() if self._matches(j, query)]
        # None values sort last regardless of direction
        present = [j for j in matches if getattr(j, sort.field, None) is not None]
        missing = [j for j in matches if getattr(j, sort.field, None) is None]
        present.sort(key=lambda j: getattr(j, sort.field), reverse=sort.descending)
        return (present + missing)[skip : skip + limit]

    async def count_jobs(self, query: JobQuery) -> int:
        return sum(1 for j in self.jobs.values() if self._matches(j, query))
