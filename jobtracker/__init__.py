"""JobTracker - job application tracker backend with a resilient cache layer.

Chat history and job list queries are served from Redis when possible and
from the persistent stores otherwise.

Basic usage:
    >>> from jobtracker import CacheLayer, settings
    >>> from jobtracker.utils.service_factory import create_services
    >>> services = await create_services(settings)
    >>> messages = await services.cache.chat.get_hot_messages("group-1")
"""

from dotenv import load_dotenv

load_dotenv()

from jobtracker.cache import CacheLayer
from jobtracker.core import (
    CacheError,
    CacheMissError,
    CachedMessage,
    ConfigurationError,
    DatabaseError,
    JobPage,
    JobTrackerError,
    settings,
)

__version__ = "0.1.0"

__all__ = [
    # Main interface
    "CacheLayer",
    # Models
    "CachedMessage",
    "JobPage",
    # Configuration
    "settings",
    # Exceptions
    "JobTrackerError",
    "CacheError",
    "CacheMissError",
    "DatabaseError",
    "ConfigurationError",
    # Version
    "__version__",
]
