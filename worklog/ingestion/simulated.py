"""
Simulated activity source for --test mode.

Emits one observation per indexed repository on every tick, so the whole
pipeline can be exercised without a window watcher.
"""

import logging
from datetime import datetime, timezone

from worklog.ingestion.base import Observation, ObservationSource

logger = logging.getLogger(__name__)


class SimulatedObserver(ObservationSource):
    """Pretends every indexed repository is being edited."""

    name = "simulated"

    async def poll_once(self) -> int:
        now = datetime.now(timezone.utc)
        repos = self.index.snapshot()
        for repo in repos:
            await self.emit(Observation(repository=repo, timestamp=now, source=self.name, app="simulated"))

        logger.debug(f"Simulated activity for {len(repos)} repositories")
        return len(repos)
