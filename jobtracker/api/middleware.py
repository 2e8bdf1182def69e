"""Middleware for FastAPI application."""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from jobtracker.core.config import settings
from jobtracker.observability.logging import LogEvents, bind_context, clear_context, get_logger

logger = logging.getLogger(__name__)
event_logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log requests with a request id bound into the log context.

    Every cache log line emitted while serving the request carries the same
    request_id. Requests are tracked by the lifecycle manager (when present)
    so shutdown can drain them; new requests during shutdown get 503.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        # Client ids are echoed, never trusted to be unique
        tracking_id = uuid.uuid4().hex
        request_id = request.headers.get(REQUEST_ID_HEADER) or tracking_id
        clear_context()
        bind_context(request_id=request_id)

        lifecycle = getattr(request.app.state, "lifecycle_manager", None)
        if lifecycle is not None:
            try:
                lifecycle.track_request_start(tracking_id)
            except RuntimeError:
                clear_context()
                return JSONResponse(
                    status_code=503,
                    content={"error": "SHUTTING_DOWN", "detail": "Server is shutting down"},
                )

        start_time = time.perf_counter()
        event_logger.info(
            LogEvents.REQUEST_RECEIVED, method=request.method, path=request.url.path
        )
        try:
            response = await call_next(request)
        finally:
            if lifecycle is not None:
                lifecycle.track_request_end(tracking_id)

        event_logger.info(
            LogEvents.REQUEST_COMPLETED,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            latency_ms=round((time.perf_counter() - start_time) * 1000, 1),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        clear_context()
        return response


def setup_cors(app: FastAPI) -> None:
    """Configure CORS middleware."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if not settings.is_production else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware (CORS outermost, then request logging)."""
    setup_cors(app)
    app.add_middleware(LoggingMiddleware)
    logger.info("Middleware configured")
