"""Background task queue for post-commit side effects."""

from .queue import BackgroundTaskQueue

__all__ = ["BackgroundTaskQueue"]
