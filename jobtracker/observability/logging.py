"""Structured logging configuration for JobTracker.

This module provides structured logging using structlog. Logs are output as
JSON in production for log aggregators and as colored console lines in
development.

Configuration:
    Set via environment variables:
    - LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - LOG_FORMAT: json, console (default: json in production, console in dev)
    - ENVIRONMENT: development, production (affects format default)

Usage:
    >>> from jobtracker.observability.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("cache_hit", group_id="g1", found=10)

Standard Events:
    Cache reads:
        - cache_hit: Result served from Redis
        - cache_miss: Window empty, record missing or key absent
        - cache_error: Redis operation failed (connection, timeout, decode)
        - fallback_used: Persistent store queried instead of the cache

    Cache writes:
        - cache_write: Record or query result stored
        - cache_warm_failed: Background warm after a fallback failed
        - cache_invalidated: Keys removed after a mutation

    Resilience:
        - circuit_breaker_opened: Failure threshold reached
        - circuit_breaker_closed: Reset timeout elapsed
        - redis_connected / redis_unavailable: Connection state changes
"""

import logging
import os
import sys
from typing import Any

import structlog
from structlog.types import Processor

# Module-level flag to track initialization
_configured = False


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
    is_production: bool | None = None,
) -> None:
    """Configure structured logging for the application.

    Should be called once at application startup. Safe to call multiple times
    (subsequent calls are no-ops).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Default from LOG_LEVEL env.
        log_format: Output format (json, console). Default based on environment.
        is_production: Override production detection. Default from ENVIRONMENT env.
    """
    global _configured
    if _configured:
        return

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()

    if is_production is None:
        is_production = os.getenv("ENVIRONMENT", "development").lower() == "production"

    if log_format is None:
        log_format = os.getenv("LOG_FORMAT", "json" if is_production else "console")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Auto-configures logging on first call if not already configured.

    Args:
        name: Logger name (typically __name__). If None, returns root logger.

    Returns:
        Configured structlog BoundLogger instance.
    """
    if not _configured:
        configure_logging()

    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log calls in this context.

    Used by the request middleware to attach request_id (and user_id when
    known) to every cache log line emitted while serving a request.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables.

    Call at the end of a request/task to prevent context leakage.
    """
    structlog.contextvars.clear_contextvars()


class LogEvents:
    """Standard event names for structured logging.

    Example:
        >>> logger.info(LogEvents.CACHE_HIT, group_id="g1")
    """

    # Cache reads
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    CACHE_ERROR = "cache_error"
    FALLBACK_USED = "fallback_used"
    STORE_QUERY = "store_query"

    # Cache writes
    CACHE_WRITE = "cache_write"
    CACHE_WRITE_SKIPPED = "cache_write_skipped"
    CACHE_WRITE_FAILED = "cache_write_failed"
    CACHE_WARM_FAILED = "cache_warm_failed"
    CACHE_UPDATED = "cache_updated"
    CACHE_INVALIDATED = "cache_invalidated"
    CACHE_INVALIDATE_FAILED = "cache_invalidate_failed"

    # Circuit breaker
    CIRCUIT_BREAKER_OPENED = "circuit_breaker_opened"
    CIRCUIT_BREAKER_CLOSED = "circuit_breaker_closed"
    CIRCUIT_BREAKER_BYPASS = "circuit_breaker_bypass"

    # Redis connection
    REDIS_CONNECTED = "redis_connected"
    REDIS_UNAVAILABLE = "redis_unavailable"
    REDIS_DISABLED = "redis_disabled"
    REDIS_RECOVERED = "redis_recovered"
    REDIS_DISCONNECTED = "redis_disconnected"

    # API events
    REQUEST_RECEIVED = "request_received"
    REQUEST_COMPLETED = "request_completed"

    # Lifecycle events
    CACHE_LAYER_STARTED = "cache_layer_started"
    CACHE_LAYER_SHUTDOWN = "cache_layer_shutdown"
