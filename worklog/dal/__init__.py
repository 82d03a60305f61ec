"""
Worklog Agent - Data Access Layer Module

Provides access to the ActivityWatch server:
    - ActivityWatchClient: bucket/event REST operations
    - WorkSessionEvent: published session payload
    - WindowEvent: aw-watcher-window event
"""

from worklog.dal.activitywatch import (
    ActivityWatchClient,
    ActivityWatchError,
    WindowBucketMissingError,
    WindowEvent,
    WorkSessionEvent,
)

__all__ = [
    "ActivityWatchClient",
    "ActivityWatchError",
    "WindowBucketMissingError",
    "WindowEvent",
    "WorkSessionEvent",
]
