"""
ActivityWatch window-event source.

Reads what aw-watcher-window already recorded for this machine instead of
probing the window system directly. Each editor event is stamped at its
end time (timestamp + duration).
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from worklog.dal.activitywatch import (
    ActivityWatchClient,
    ActivityWatchError,
    WindowBucketMissingError,
)
from worklog.gitinfo.index import RepositoryIndex
from worklog.ingestion.base import Observation, ObservationSource, resolve_title
from worklog.perception.editors import is_editor

logger = logging.getLogger(__name__)


# Named constants
WINDOW_EVENT_LIMIT = 100


class ActivityWatchWindowObserver(ObservationSource):
    """
    Polls aw-watcher-window events and converts editor focus into observations.

    Args:
        client: ActivityWatch client.
        machine: Hostname of the aw-watcher-window bucket.
        since: Initial lower bound; defaults to construction time so events
               recorded before startup are never replayed.
    """

    name = "activitywatch"

    def __init__(
        self,
        index: RepositoryIndex,
        queue: "asyncio.Queue[Observation]",
        poll_interval: timedelta,
        client: ActivityWatchClient,
        machine: str,
        since: Optional[datetime] = None,
        limit: int = WINDOW_EVENT_LIMIT,
    ):
        super().__init__(index, queue, poll_interval)
        self.client = client
        self.machine = machine
        self.since = since if since is not None else datetime.now(timezone.utc)
        self.limit = limit
        self._bucket_missing_logged = False

    async def poll_once(self) -> int:
        try:
            events = await self.client.fetch_window_events(self.machine, self.since, self.limit)
        except WindowBucketMissingError as e:
            if not self._bucket_missing_logged:
                logger.warning(f"{e}; is aw-watcher-window running for machine '{self.machine}'?")
                self._bucket_missing_logged = True
            return 0
        except ActivityWatchError as e:
            logger.warning(f"Fetch window events: {e}")
            return 0

        self._bucket_missing_logged = False
        emitted = 0
        for event in sorted(events, key=lambda ev: ev.timestamp):
            end = event.end
            if end <= self.since:
                continue
            self.since = end

            if not is_editor(event.app, event.title):
                continue
            repo = resolve_title(self.index, event.title)
            if repo is None:
                continue

            await self.emit(Observation(
                repository=repo,
                timestamp=end,
                source=self.name,
                app=event.app,
            ))
            emitted += 1

        if emitted:
            logger.debug(f"Emitted {emitted} observation(s) from {len(events)} window event(s)")
        return emitted
