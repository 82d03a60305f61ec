"""
Session Aggregation Module for Worklog Agent

A work session accumulates every observation for one repository until it
goes idle. The session engine owns these objects; nothing else mutates
them.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from worklog.gitinfo.git import RepositoryInfo


@dataclass
class WorkSession:
    """
    Live work session for a single repository.

    Invariant: start <= last_activity.
    """
    repository: RepositoryInfo
    branch: str
    start: datetime
    last_activity: datetime
    events: int = 1
    app: str = ""
    start_commit: Optional[str] = None

    @classmethod
    def open(
        cls,
        repository: RepositoryInfo,
        branch: str,
        timestamp: datetime,
        app: str = "",
        start_commit: Optional[str] = None,
    ) -> "WorkSession":
        """Start a session from its first observation."""
        return cls(
            repository=repository,
            branch=branch or repository.branch,
            start=timestamp,
            last_activity=timestamp,
            events=1,
            app=app,
            start_commit=start_commit or None,
        )

    @property
    def key(self) -> str:
        """Uniqueness key: the canonical repository path."""
        return self.repository.path

    @property
    def duration(self) -> timedelta:
        return self.last_activity - self.start

    def touch(self, branch: str, app: str, timestamp: datetime) -> None:
        """
        Record another observation.

        Empty branch/app values keep the previous ones so a transient
        resolution failure never erases what is known.
        """
        if branch:
            self.branch = branch
        if app:
            self.app = app
        if timestamp > self.last_activity:
            self.last_activity = timestamp
        elif timestamp < self.start:
            # Late, out-of-order observation
            self.start = timestamp
        self.events += 1

    def is_idle(self, now: datetime, idle_timeout: timedelta) -> bool:
        return now - self.last_activity >= idle_timeout

    def to_dict(self) -> Dict[str, Any]:
        return {
            'repo_path': self.repository.path,
            'repo_name': self.repository.name,
            'branch': self.branch,
            'start': self.start.isoformat(),
            'last_activity': self.last_activity.isoformat(),
            'duration_seconds': self.duration.total_seconds(),
            'events': self.events,
            'app': self.app,
        }
