"""
Focused-window polling source.

Probes the foreground window on every tick. Editor windows whose title
names an indexed repository become observations; everything else is
ignored.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from worklog.gitinfo.index import RepositoryIndex
from worklog.ingestion.base import Observation, ObservationSource, resolve_title
from worklog.perception.editors import is_editor
from worklog.perception.window import WindowProbe, WindowProbeError

logger = logging.getLogger(__name__)


class WindowPollObserver(ObservationSource):
    """Emits an observation per tick while an editor shows a known repository."""

    name = "window"

    def __init__(
        self,
        index: RepositoryIndex,
        queue: "asyncio.Queue[Observation]",
        poll_interval: timedelta,
        probe: WindowProbe,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        super().__init__(index, queue, poll_interval)
        self.probe = probe
        self.clock = clock

    async def poll_once(self) -> int:
        try:
            window = await asyncio.to_thread(self.probe.current_focused_window)
        except WindowProbeError as e:
            logger.warning(f"Failed to get active window: {e}")
            return 0

        if not is_editor(window.app, window.title):
            return 0

        repo = resolve_title(self.index, window.title)
        if repo is None:
            return 0

        await self.emit(Observation(
            repository=repo,
            timestamp=self.clock(),
            source=self.name,
            app=window.app,
        ))
        return 1
