"""Core infrastructure for JobTracker."""

from jobtracker.core.config import Settings, settings
from jobtracker.core.database import Database
from jobtracker.core.exceptions import (
    CacheError,
    CacheMissError,
    ConfigurationError,
    DatabaseError,
    JobTrackerError,
)
from jobtracker.core.identity import attach_identities, collect_foreign_ids
from jobtracker.core.models import (
    CachedMessage,
    ChatMessage,
    JobPage,
    JobQuery,
    JobRecord,
    JobSort,
    MessageType,
    Pagination,
    UserSnapshot,
    page_window,
)
from jobtracker.core.stores import (
    ChatMessageStore,
    IdentityResolver,
    InMemoryChatStore,
    InMemoryIdentityResolver,
    InMemoryJobStore,
    JobStore,
)
from jobtracker.core.tasks import BackgroundTasks

__all__ = [
    # Config
    "Settings",
    "settings",
    # Database
    "Database",
    # Exceptions
    "JobTrackerError",
    "CacheError",
    "CacheMissError",
    "DatabaseError",
    "ConfigurationError",
    # Models
    "UserSnapshot",
    "MessageType",
    "ChatMessage",
    "CachedMessage",
    "JobRecord",
    "JobQuery",
    "JobSort",
    "Pagination",
    "JobPage",
    "page_window",
    # Stores
    "ChatMessageStore",
    "IdentityResolver",
    "JobStore",
    "InMemoryChatStore",
    "InMemoryIdentityResolver",
    "InMemoryJobStore",
    # Identity join
    "attach_identities",
    "collect_foreign_ids",
    # Background work
    "BackgroundTasks",
]
