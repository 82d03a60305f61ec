"""
Filesystem activity source.

Watches every indexed repository with watchdog and turns file writes,
creations, deletions and renames into observations. Watchdog delivers
events on its own threads; each one is handed to the event loop and the
thread waits until the bounded queue accepts it.
"""

import asyncio
import concurrent.futures
import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from worklog.gitinfo.git import RepositoryInfo
from worklog.gitinfo.index import RepositoryIndex
from worklog.ingestion.base import Observation, ObservationSource

logger = logging.getLogger(__name__)


# Named constants
IGNORED_DIRS = frozenset({".git", "node_modules", "vendor", "target", "build"})
TRACKED_EVENT_TYPES = frozenset({"created", "modified", "deleted", "moved"})
HANDOFF_POLL_SEC = 0.5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_ignored_path(repo_path: str, path: str) -> bool:
    """True if `path` lies inside an ignored directory of the repository."""
    try:
        relative = os.path.relpath(path, repo_path)
    except ValueError:
        return True
    if relative.startswith(os.pardir):
        return True
    return any(part in IGNORED_DIRS for part in relative.split(os.sep))


class RepositoryEventHandler(FileSystemEventHandler):
    """
    Watchdog handler bound to a single repository.

    Recursive watches on nested repositories overlap; a path is credited
    only to the innermost indexed repository that contains it.
    """

    def __init__(
        self,
        repository: RepositoryInfo,
        index: RepositoryIndex,
        submit: Callable[[Observation], None],
        clock: Callable[[], datetime] = _utc_now,
    ):
        super().__init__()
        self.repository = repository
        self.index = index
        self.submit = submit
        self.clock = clock

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in TRACKED_EVENT_TYPES:
            return
        # Directory mtime changes duplicate the child event
        if event.is_directory and event.event_type == "modified":
            return

        src_path = os.fsdecode(event.src_path)
        if is_ignored_path(self.repository.path, src_path):
            return

        owner = self.index.match_path(src_path)
        if owner is None or owner.path != self.repository.path:
            return

        self.submit(Observation(
            repository=self.repository,
            timestamp=self.clock(),
            source=f"fs:{event.event_type}",
        ))


class FilesystemObserver(ObservationSource):
    """
    Keeps one recursive watch per indexed repository.

    The watch set is re-synced with the index on every poll, so
    repositories discovered by a later scan are picked up and vanished ones
    are dropped.
    """

    name = "filesystem"

    def __init__(
        self,
        index: RepositoryIndex,
        queue: "asyncio.Queue[Observation]",
        poll_interval: timedelta,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        super().__init__(index, queue, poll_interval)
        self._observer_factory = observer_factory
        self._observer: Optional[Observer] = None
        self._watches: Dict[str, ObservedWatch] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stopping = threading.Event()

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stopping.clear()
        self._observer = self._observer_factory()
        self._observer.start()

    async def stop(self) -> None:
        self._stopping.set()
        if self._observer is None:
            return
        self._observer.stop()
        await asyncio.to_thread(self._observer.join)
        self._observer = None
        self._watches.clear()

    def _submit(self, observation: Observation) -> None:
        """Block the calling watchdog thread until the queue accepts the observation."""
        if self._stopping.is_set() or self._loop is None:
            return
        try:
            future = asyncio.run_coroutine_threadsafe(self.queue.put(observation), self._loop)
        except RuntimeError:
            # Event loop already closed
            return

        while True:
            try:
                future.result(timeout=HANDOFF_POLL_SEC)
                return
            except concurrent.futures.TimeoutError:
                if self._stopping.is_set():
                    future.cancel()
                    return
            except concurrent.futures.CancelledError:
                return

    def sync_watches(self) -> int:
        """
        Align watched repositories with the index.

        Returns:
            Number of repositories being watched.
        """
        if self._observer is None:
            return 0

        wanted = {repo.path: repo for repo in self.index.snapshot()}

        for path in list(self._watches):
            if path not in wanted:
                self._observer.unschedule(self._watches.pop(path))
                logger.info(f"Stopped watching {path}")

        for path, repo in wanted.items():
            if path in self._watches:
                continue
            handler = RepositoryEventHandler(repo, self.index, self._submit)
            try:
                self._watches[path] = self._observer.schedule(handler, path, recursive=True)
            except OSError as e:
                logger.warning(f"Cannot watch repository {path}: {e}")
                continue
            logger.info(f"Watching {path}")

        return len(self._watches)

    async def poll_once(self) -> int:
        self.sync_watches()
        return 0
