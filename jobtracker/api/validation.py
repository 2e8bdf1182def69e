"""Response schemas for the JobTracker API."""

from pydantic import BaseModel, Field

from jobtracker.cache.models import CacheHealth, ChatCacheStats, JobCacheStats
from jobtracker.core.models import CachedMessage


class ErrorResponse(BaseModel):
    """Error response schema."""

    error: str = Field(..., description="Error code")
    detail: str | None = Field(None, description="Error details")


class HealthResponse(BaseModel):
    """Response schema for GET /health."""

    status: str = Field(..., description="ok, or degraded when Redis is unreachable")
    cache: CacheHealth


class MessagesResponse(BaseModel):
    """Response schema for GET /v1/groups/{group_id}/messages."""

    group_id: str
    count: int = Field(..., description="Messages returned")
    messages: list[CachedMessage]


class MessageCountResponse(BaseModel):
    """Response schema for GET /v1/groups/{group_id}/messages/count."""

    group_id: str
    count: int = Field(..., ge=0)


class CacheStatsResponse(BaseModel):
    """Response schema for GET /v1/cache/stats."""

    chat: ChatCacheStats | None = Field(None, description="Present when group_id given")
    jobs: JobCacheStats
