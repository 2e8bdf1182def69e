"""FastAPI route handlers for JobTracker."""

import logging
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Query, Request, status

from jobtracker.api.validation import (
    CacheStatsResponse,
    ErrorResponse,
    HealthResponse,
    MessageCountResponse,
    MessagesResponse,
)
from jobtracker.cache.keys import JOB_FILTER_DEFAULTS
from jobtracker.core.models import JobPage, JobQuery, JobSort, page_window
from jobtracker.observability.logging import bind_context
from jobtracker.utils.service_factory import Services

logger = logging.getLogger(__name__)


def job_filters(request: Request) -> dict[str, Any]:
    """Known job list filters from the query string, as sent."""
    return {
        name: value
        for name, value in request.query_params.items()
        if name in JOB_FILTER_DEFAULTS
    }


def create_routes(services: Services) -> APIRouter:
    """Create and configure API routes.

    Args:
        services: Stores and cache layer built at startup

    Returns:
        Configured APIRouter
    """
    api_router = APIRouter()
    cache = services.cache

    @api_router.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Cache availability and breaker state."""
        report = cache.health()
        degraded = report.enabled and not report.available
        return HealthResponse(status="degraded" if degraded else "ok", cache=report)

    @api_router.get(
        "/v1/groups/{group_id}/messages",
        response_model=MessagesResponse,
        responses={503: {"model": ErrorResponse}},
    )
    async def get_messages(
        group_id: str,
        limit: int = Query(default=50, ge=1, le=200),
    ) -> MessagesResponse:
        """Most recent messages of a group, newest first."""
        messages = await cache.chat.get_hot_messages(group_id, limit)
        return MessagesResponse(group_id=group_id, count=len(messages), messages=messages)

    @api_router.get(
        "/v1/groups/{group_id}/messages/count",
        response_model=MessageCountResponse,
        responses={503: {"model": ErrorResponse}},
    )
    async def get_message_count(group_id: str) -> MessageCountResponse:
        """Total non-deleted messages of a group."""
        count = await cache.chat.get_message_count(group_id)
        return MessageCountResponse(group_id=group_id, count=count)

    @api_router.get(
        "/v1/jobs",
        response_model=JobPage,
        responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    )
    async def list_jobs(
        request: Request,
        x_user_id: str = Header(..., alias="X-User-Id"),
    ) -> JobPage:
        """One page of the caller's jobs."""
        bind_context(user_id=x_user_id)
        filters = job_filters(request)
        try:
            query = JobQuery.from_filters(x_user_id, filters)
        except ValueError as e:
            logger.info(f"Rejected job filters for {x_user_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid filters: {e}",
            ) from e
        sort = JobSort.from_filters(filters)
        skip, limit = page_window(filters)
        return await cache.jobs.get_cached_jobs(x_user_id, filters, query, sort, skip, limit)

    @api_router.get("/v1/cache/stats", response_model=CacheStatsResponse)
    async def cache_stats(
        group_id: str | None = None,
        user_id: str | None = None,
    ) -> CacheStatsResponse:
        """Chat window stats for a group and cached page count for a user."""
        chat = await cache.chat.get_cache_stats(group_id) if group_id else None
        jobs = await cache.jobs.get_cache_stats(user_id)
        return CacheStatsResponse(chat=chat, jobs=jobs)

    return api_router
