"""Cache statistics models."""

from pydantic import BaseModel, Field


class CircuitBreakerStats(BaseModel):
    """Read-only snapshot of a circuit breaker.

    Attributes:
        is_open: True while calls skip the cache
        failure_count: Failures since the last success or reset
        success_count: Successful cache operations since start
        threshold: Failures that open the circuit
        reset_timeout_ms: Open duration before automatic close
    """

    is_open: bool = Field(default=False, description="Circuit open")
    failure_count: int = Field(default=0, description="Failures since last success", ge=0)
    success_count: int = Field(default=0, description="Successful cache operations", ge=0)
    threshold: int = Field(default=5, description="Failures before opening circuit")
    reset_timeout_ms: int = Field(default=60000, description="Open duration (ms)")


class ChatCacheStats(BaseModel):
    """Per-group chat cache statistics."""

    available: bool = Field(..., description="Redis reachable")
    message_count: int | None = Field(None, description="Ids in the hot window")
    ttl: int | None = Field(None, description="Seconds left on the window (-2 missing)")
    circuit_breaker: CircuitBreakerStats | None = None
    error: str | None = None


class JobCacheStats(BaseModel):
    """Job query cache statistics."""

    available: bool = Field(..., description="Redis reachable")
    cached_queries: int = Field(default=0, description="Cached pages for the user")
    ttl: int | None = Field(None, description="Configured TTL seconds")
    circuit_breaker: CircuitBreakerStats | None = None
    error: str | None = None


class CacheHealth(BaseModel):
    """Cache layer health for the /health endpoint and CLI."""

    enabled: bool = Field(..., description="Caching configured")
    available: bool = Field(..., description="Redis answered the last ping")
    chat_breaker: CircuitBreakerStats | None = None
    jobs_breaker: CircuitBreakerStats | None = None
    pending_warmers: int = Field(default=0, description="Background warm tasks running")
