"""Unit tests for the asyncpg-backed stores with a mocked Database."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from jobtracker.core.database import Database
from jobtracker.core.models import JobQuery, JobSort
from jobtracker.core.postgres_stores import (
    PostgresChatStore,
    PostgresIdentityResolver,
    PostgresJobStore,
    _row_to_dict,
    build_job_where,
    escape_like,
)

CREATED = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def database():
    """Database with mocked query methods."""
    db = MagicMock(spec=Database)
    db.fetch = AsyncMock(return_value=[])
    db.fetchval = AsyncMock(return_value=0)
    return db


class TestRowConversion:
    """Tests for _row_to_dict."""

    def test_json_columns_decoded(self):
        """JSONB columns returned as text are parsed."""
        row = {"id": 1, "reactions": '{"heart": ["u1"]}', "job_data": None}

        data = _row_to_dict(row)

        assert data == {"id": "1", "reactions": {"heart": ["u1"]}}

    def test_null_arrays_become_empty(self):
        """NULL array columns become empty lists."""
        assert _row_to_dict({"tags": None, "mentions": None}) == {"tags": [], "mentions": []}


class TestBuildJobWhere:
    """Tests for SQL filter translation."""

    def test_base_clause(self):
        """Every query is scoped to the user and archive flag."""
        where, params = build_job_where(JobQuery(user_id="u1"))

        assert where == "user_id = $1 AND is_archived = $2"
        assert params == ["u1", False]

    def test_all_filters(self):
        """Each filter appends one numbered clause."""
        query = JobQuery(
            user_id="u1",
            status="applied",
            work_type="Remote",
            priority="high",
            tags=["python"],
            date_from=CREATED,
            date_to=CREATED,
            archived=True,
            search="acme",
        )

        where, params = build_job_where(query)

        assert "status = $3" in where
        assert "work_type = $4" in where
        assert "priority = $5" in where
        assert "tags && $6::text[]" in where
        assert "date_applied >= $7" in where
        assert "date_applied <= $8" in where
        assert "company ILIKE $9 ESCAPE '\\' OR title ILIKE $9" in where
        assert params == [
            "u1", True, "applied", "Remote", "high", ["python"], CREATED, CREATED, "%acme%"
        ]

    def test_search_wildcards_are_literal(self):
        """% and _ in search text match themselves, as in the in-memory store."""
        where, params = build_job_where(JobQuery(user_id="u1", search="100%_off\\"))

        assert params[-1] == "%100\\%\\_off\\\\%"
        assert where.count("ESCAPE '\\'") == 4

    @pytest.mark.parametrize(
        "raw,escaped",
        [("acme", "acme"), ("50%", "50\\%"), ("a_b", "a\\_b"), ("c:\\x", "c:\\\\x")],
    )
    def test_escape_like(self, raw, escaped):
        """Backslash, percent and underscore are escaped."""
        assert escape_like(raw) == escaped


class TestPostgresChatStore:
    """Tests for PostgresChatStore."""

    async def test_find_recent_messages(self, database):
        """Rows are converted into chat messages."""
        database.fetch.return_value = [
            {
                "id": "m1",
                "group_id": "g1",
                "user_id": "u1",
                "content": "hi",
                "mentions": None,
                "reactions": "{}",
                "created_at": CREATED,
                "deleted": False,
            }
        ]
        store = PostgresChatStore(database)

        messages = await store.find_recent_messages("g1", 10)

        assert messages[0].id == "m1"
        assert messages[0].mentions == []
        sql, *args = database.fetch.call_args.args
        assert "ORDER BY created_at DESC" in sql
        assert args == ["g1", 10]

    async def test_before_cursor(self, database):
        """A cursor adds the created_at bound."""
        store = PostgresChatStore(database)

        await store.find_recent_messages("g1", 10, before=CREATED)

        sql, *args = database.fetch.call_args.args
        assert "created_at < $3" in sql
        assert args == ["g1", 10, CREATED]

    async def test_count_messages(self, database):
        """Counts come from COUNT(*)."""
        database.fetchval.return_value = 42

        assert await PostgresChatStore(database).count_messages("g1") == 42


class TestPostgresIdentityResolver:
    """Tests for PostgresIdentityResolver."""

    async def test_batched_lookup(self, database):
        """All ids go into one ANY() query."""
        database.fetch.return_value = [
            {"id": "u1", "first_name": "Ada", "last_name": None, "email": "ada@example.com"}
        ]

        result = await PostgresIdentityResolver(database).resolve_identities(["u1", "u2"])

        assert result["u1"].last_name == ""
        assert database.fetch.call_args.args[1] == ["u1", "u2"]
        database.fetch.assert_awaited_once()

    async def test_empty_ids_skip_query(self, database):
        """No ids, no query."""
        assert await PostgresIdentityResolver(database).resolve_identities([]) == {}
        database.fetch.assert_not_awaited()


class TestPostgresJobStore:
    """Tests for PostgresJobStore."""

    async def test_find_jobs_sql(self, database):
        """Sort column, direction and paging parameters are applied."""
        database.fetch.return_value = [
            {"id": "j1", "user_id": "u1", "company": "Acme", "title": "Dev", "tags": None}
        ]
        store = PostgresJobStore(database)

        rows = await store.find_jobs(
            JobQuery(user_id="u1", status="applied"),
            JobSort(field="company", descending=False),
            20,
            10,
        )

        assert rows[0].tags == []
        sql, *args = database.fetch.call_args.args
        assert "ORDER BY company ASC NULLS LAST, id" in sql
        assert "LIMIT $4 OFFSET $5" in sql
        assert args == ["u1", False, "applied", 10, 20]

    async def test_unknown_sort_column_falls_back(self, database):
        """Columns outside the whitelist sort by date applied."""
        await PostgresJobStore(database).find_jobs(
            JobQuery(user_id="u1"), JobSort(field="id; DROP TABLE jobs"), 0, 10
        )

        assert "ORDER BY date_applied DESC" in database.fetch.call_args.args[0]

    async def test_count_jobs(self, database):
        """count_jobs shares the WHERE clause."""
        database.fetchval.return_value = 7

        assert await PostgresJobStore(database).count_jobs(JobQuery(user_id="u1")) == 7
        assert "WHERE user_id = $1" in database.fetchval.call_args.args[0]
