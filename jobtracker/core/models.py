"""Core data models for JobTracker.

Chat messages come from the chat store, identities from the primary store,
and job rows from the primary store. Cached copies use the same models so a
cache hit and a store read return identical types.
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_filter_date(value: Any) -> datetime | None:
    """Parse an ISO date/datetime filter value; blank values mean no bound.

    Raises:
        ValueError: If the value is not an ISO 8601 date or datetime
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return _as_utc(datetime.fromisoformat(text))


# =============================================================================
# Chat
# =============================================================================


class UserSnapshot(BaseModel):
    """Identity fields copied from the primary store at fetch time."""

    id: str = Field(..., description="User ID")
    first_name: str = Field(default="", description="First name")
    last_name: str = Field(default="", description="Last name")
    email: str = Field(default="", description="Email address")


class MessageType(str, Enum):
    """Kinds of chat message."""

    TEXT = "text"
    JOB_SHARE = "job_share"
    SYSTEM = "system"
    PDF_ATTACHMENT = "pdf_attachment"


class PdfAttachment(BaseModel):
    """Metadata of a file attached to a message (the blob lives elsewhere)."""

    file_name: str = Field(..., description="Original file name")
    file_size: int | None = Field(None, description="Size in bytes", ge=0)
    mime_type: str = Field(default="application/pdf", description="MIME type")
    storage_key: str | None = Field(None, description="Blob storage object key")
    uploaded_at: datetime | None = Field(None, description="Upload timestamp")


class Reactions(BaseModel):
    """User ids per reaction."""

    thumbs_up: list[str] = Field(default_factory=list)
    heart: list[str] = Field(default_factory=list)
    fire: list[str] = Field(default_factory=list)
    laugh: list[str] = Field(default_factory=list)


class ChatMessage(BaseModel):
    """Chat message as stored in the chat store."""

    id: str = Field(..., description="Message ID")
    group_id: str = Field(..., description="Group the message belongs to")
    user_id: str | None = Field(None, description="Sender user ID")
    message_type: MessageType = Field(default=MessageType.TEXT)
    content: str = Field(default="", max_length=2000)
    shared_job_id: str | None = Field(None, description="Shared job (job_share messages)")
    job_data: dict[str, Any] | None = Field(None, description="Inline job snapshot")
    pdf_attachment: PdfAttachment | None = Field(None)
    mentions: list[str] = Field(default_factory=list)
    reactions: Reactions = Field(default_factory=Reactions)
    reply_to: str | None = Field(None, description="Parent message ID")
    reply_count: int = Field(default=0, ge=0)
    edited: bool = False
    edited_at: datetime | None = None
    deleted: bool = False
    deleted_at: datetime | None = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (hot window score)",
    )
    updated_at: datetime | None = None

    @field_validator("created_at", "edited_at", "deleted_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        return _as_utc(v)

    @property
    def score(self) -> int:
        """Hot window score: creation time in epoch milliseconds."""
        return int(self.created_at.timestamp() * 1000)


class CachedMessage(ChatMessage):
    """Denormalized message snapshot with the sender's identity embedded."""

    sender: UserSnapshot | None = Field(None, description="Sender snapshot")


# =============================================================================
# Jobs
# =============================================================================

SORT_FIELDS: dict[str, str] = {
    "dateApplied": "date_applied",
    "company": "company",
    "title": "title",
    "status": "status",
    "priority": "priority",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


class JobRecord(BaseModel):
    """Job application row from the primary store."""

    model_config = ConfigDict(extra="allow")

    id: str
    user_id: str
    company: str
    title: str
    location: str | None = None
    work_type: str = "Not specified"
    status: str = "saved"
    priority: str | None = None
    tags: list[str] = Field(default_factory=list)
    date_applied: datetime | None = None
    is_archived: bool = False
    notes: str | None = None
    url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("date_applied", "created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        return _as_utc(v)


def _filter_value(filters: dict[str, Any], key: str) -> str | None:
    value = filters.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if value == "" or value == "all":
        return None
    return value


class JobQuery(BaseModel):
    """Store-native job query built from request filters."""

    user_id: str
    status: str | None = None
    work_type: str | None = None
    priority: str | None = None
    tags: list[str] = Field(default_factory=list)
    date_from: datetime | None = None
    date_to: datetime | None = None
    archived: bool = False
    search: str | None = None

    @classmethod
    def from_filters(cls, user_id: str, filters: dict[str, Any]) -> "JobQuery":
        """Build a query from the raw list filters.

        "all" and blank values mean no filter; tags are comma separated;
        archived defaults to non-archived jobs.
        """
        tags = filters.get("tags") or []
        if isinstance(tags, str):
            tags = tags.split(",")
        archived = filters.get("archived")
        return cls(
            user_id=user_id,
            status=_filter_value(filters, "status"),
            work_type=_filter_value(filters, "workType"),
            priority=_filter_value(filters, "priority"),
            tags=[t.strip() for t in tags if t and t.strip()],
            date_from=parse_filter_date(filters.get("dateFrom")),
            date_to=parse_filter_date(filters.get("dateTo")),
            archived=archived is not None and str(archived).strip().lower() == "true",
            search=_filter_value(filters, "search"),
        )


class JobSort(BaseModel):
    """Sort column (whitelisted) and direction."""

    field: str = "date_applied"
    descending: bool = True

    @classmethod
    def from_filters(cls, filters: dict[str, Any]) -> "JobSort":
        """Map sortBy/sortOrder onto a known column; unknown columns fall back."""
        sort_by = str(filters.get("sortBy") or "").strip()
        sort_order = str(filters.get("sortOrder") or "").strip().lower()
        return cls(
            field=SORT_FIELDS.get(sort_by, "date_applied"),
            descending=sort_order != "asc",
        )


def page_window(filters: dict[str, Any], default_limit: int = 50) -> tuple[int, int]:
    """Translate page/limit filters into (skip, limit)."""
    try:
        page = max(int(filters.get("page") or 1), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        # A zero limit means the default, as it does in the cache key
        limit = max(int(filters.get("limit") or default_limit) or default_limit, 1)
    except (TypeError, ValueError):
        limit = default_limit
    return (page - 1) * limit, limit


class Pagination(BaseModel):
    """Pagination metadata of a job list page."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    pages: int = Field(..., ge=0)

    @classmethod
    def build(cls, skip: int, limit: int, total: int) -> "Pagination":
        """Compute page number and page count from skip/limit."""
        return cls(
            page=skip // limit + 1,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit),
        )


class JobPage(BaseModel):
    """One page of a user's job list: rows plus pagination."""

    rows: list[JobRecord] = Field(default_factory=list)
    pagination: Pagination
