"""HTTP surface for JobTracker."""

from jobtracker.api.app import create_app

__all__ = ["create_app"]
