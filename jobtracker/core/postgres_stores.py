"""asyncpg-backed persistent stores.

Expected tables:
    chat_messages  (chat store)   one row per message, JSONB for job_data,
                                  pdf_attachment and reactions, TEXT[] mentions
    users          (primary)      id, first_name, last_name, email
    jobs           (primary)      one row per job application, TEXT[] tags

The chat store may live on a different server than users and jobs, which is
why sender identities are resolved in a separate batched query.
"""

import json
from datetime import datetime
from typing import Any

import asyncpg

from jobtracker.core.database import Database
from jobtracker.core.models import (
    ChatMessage,
    JobQuery,
    JobRecord,
    JobSort,
    SORT_FIELDS,
    UserSnapshot,
)
from jobtracker.core.stores import ChatMessageStore, IdentityResolver, JobStore

_JSON_COLUMNS = ("job_data", "pdf_attachment", "reactions")
_SORT_COLUMNS = frozenset(SORT_FIELDS.values())


def _row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
    data = dict(row)
    for column in _JSON_COLUMNS:
        if isinstance(data.get(column), str):
            data[column] = json.loads(data[column])
    for key, value in list(data.items()):
        if value is None and key in ("mentions", "tags"):
            data[key] = []
        elif key in ("id", "group_id", "user_id", "shared_job_id", "reply_to") and value is not None:
            data[key] = str(value)
    return {k: v for k, v in data.items() if v is not None}


class PostgresChatStore(ChatMessageStore):
    """Chat messages in PostgreSQL."""

    def __init__(self, database: Database):
        self.database = database

    async def find_recent_messages(
        self,
        group_id: str,
        limit: int,
        before: datetime | None = None,
    ) -> list[ChatMessage]:
        if before is None:
            rows = await self.database.fetch(
                """
                SELECT * FROM chat_messages
                WHERE group_id = $1 AND deleted = FALSE
                ORDER BY created_at DESC
                LIMIT $2
                """,
                group_id,
                limit,
            )
        else:
            rows = await self.database.fetch(
                """
                SELECT * FROM chat_messages
                WHERE group_id = $1 AND deleted = FALSE AND created_at < $3
                ORDER BY created_at DESC
                LIMIT $2
                """,
                group_id,
                limit,
                before,
            )
        return [ChatMessage.model_validate(_row_to_dict(row)) for row in rows]

    async def count_messages(self, group_id: str) -> int:
        count = await self.database.fetchval(
            "SELECT COUNT(*) FROM chat_messages WHERE group_id = $1 AND deleted = FALSE",
            group_id,
        )
        return int(count or 0)


class PostgresIdentityResolver(IdentityResolver):
    """User identities from the primary store."""

    def __init__(self, database: Database):
        self.database = database

    async def resolve_identities(self, ids: list[str]) -> dict[str, UserSnapshot]:
        if not ids:
            return {}
        rows = await self.database.fetch(
            """
            SELECT id::text AS id, first_name, last_name, email
            FROM users
            WHERE id::text = ANY($1::text[])
            """,
            list(ids),
        )
        return {
            row["id"]: UserSnapshot(
                id=row["id"],
                first_name=row["first_name"] or "",
                last_name=row["last_name"] or "",
                email=row["email"] or "",
            )
            for row in rows
        }


def build_job_where(query: JobQuery) -> tuple[str, list[Any]]:
    """Translate a JobQuery into a WHERE clause and positional parameters."""
    clauses = ["user_id = $1", "is_archived = $2"]
    params: list[Any] = [query.user_id, query.archived]

    def add(template: str, value: Any) -> None:
        params.append(value)
        clauses.append(template.format(n=len(params)))

    if query.status:
        add("status = ${n}", query.status)
    if query.work_type:
        add("work_type = ${n}", query.work_type)
    if query.priority:
        add("priority = ${n}", query.priority)
    if query.tags:
        add("tags && ${n}::text[]", query.tags)
    if query.date_from:
        add("date_applied >= ${n}", query.date_from)
    if query.date_to:
        add("date_applied <= ${n}", query.date_to)
    if query.search:
        match = " OR ".join(
            f"{column} ILIKE ${{n}} ESCAPE '\\'"
            for column in ("company", "title", "location", "notes")
        )
        add(f"({match})", f"%{escape_like(query.search)}%")
    return " AND ".join(clauses), params


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so search is a plain substring match."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostgresJobStore(JobStore):
    """Job applications in PostgreSQL."""

    def __init__(self, database: Database):
        self.database = database

    async def find_jobs(
        self, query: JobQuery, sort: JobSort, skip: int, limit: int
    ) -> list[JobRecord]:
        where, params = build_job_where(query)
        column = sort.field if sort.field in _SORT_COLUMNS else "date_applied"
        direction = "DESC" if sort.descending else "ASC"
        params.extend([limit, skip])
        rows = await self.database.fetch(
            f"""
            SELECT * FROM jobs
            WHERE {where}
            ORDER BY {column} {direction} NULLS LAST, id
            LIMIT ${len(params) - 1} OFFSET ${len(params)}
            """,
            *params,
        )
        return [JobRecord.model_validate(_row_to_dict(row)) for row in rows]

    async def count_jobs(self, query: JobQuery) -> int:
        where, params = build_job_where(query)
        count = await self.database.fetchval(
            f"SELECT COUNT(*) FROM jobs WHERE {where}", *params
        )
        return int(count or 0)
