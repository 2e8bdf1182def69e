"""Exception hierarchy for JobTracker.

Cache-path errors are absorbed by the circuit breaker and converted into a
persistent-store read. Store errors propagate to the caller.
"""

from typing import Any


class JobTrackerError(Exception):
    """Base exception for all JobTracker errors."""

    code: str = "JOBTRACKER_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CacheError(JobTrackerError):
    """Cache backend operation failed (connection, timeout, decode)."""

    code: str = "CACHE_ERROR"


class CacheMissError(CacheError):
    """Expected miss: empty window, unresolved message id or absent key."""

    code: str = "CACHE_MISS"


class DatabaseError(JobTrackerError):
    """Persistent store operation failed (connection, query)."""

    code: str = "DATABASE_ERROR"


class ConfigurationError(JobTrackerError):
    """Configuration error (missing env vars, invalid settings)."""

    code: str = "CONFIGURATION_ERROR"
