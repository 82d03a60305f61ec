"""
Worklog Agent - Observation Sources

An observation says "this repository was being worked on at this time".
Sources run as independent workers and push observations into a bounded
asyncio.Queue; a full queue blocks the producer until the engine catches
up.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from worklog.gitinfo.git import RepositoryInfo
from worklog.gitinfo.index import RepositoryIndex

logger = logging.getLogger(__name__)


# Named constants
OBSERVATION_QUEUE_SIZE = 64


@dataclass(frozen=True)
class Observation:
    """One timestamped signal that a repository is being worked on."""
    repository: RepositoryInfo
    timestamp: datetime
    source: str
    app: str = ""


def new_observation_queue(maxsize: int = OBSERVATION_QUEUE_SIZE) -> "asyncio.Queue[Observation]":
    return asyncio.Queue(maxsize=maxsize)


async def wait_or_stop(stop: asyncio.Event, interval: timedelta) -> bool:
    """
    Sleep for `interval` unless `stop` is set first.

    Returns:
        True if the stop event was set.
    """
    try:
        await asyncio.wait_for(stop.wait(), timeout=interval.total_seconds())
    except asyncio.TimeoutError:
        return False
    return True


class ObservationSource(ABC):
    """
    Base class for observation producers.

    Args:
        index: Repository index used to resolve observations.
        queue: Bounded queue consumed by the session engine.
        poll_interval: Period between polls.
    """

    name = "source"

    def __init__(
        self,
        index: RepositoryIndex,
        queue: "asyncio.Queue[Observation]",
        poll_interval: timedelta,
    ):
        self.index = index
        self.queue = queue
        self.poll_interval = poll_interval

    async def emit(self, observation: Observation) -> None:
        """Enqueue an observation, waiting while the queue is full."""
        await self.queue.put(observation)

    @abstractmethod
    async def poll_once(self) -> int:
        """
        Run one collection pass.

        Returns:
            Number of observations emitted.
        """

    async def start(self) -> None:
        """Hook run once before the polling loop."""

    async def stop(self) -> None:
        """Hook run once after the polling loop exits."""

    async def run(self, stop: asyncio.Event) -> None:
        """Poll until `stop` is set. Errors in one pass never end the loop."""
        logger.info(f"Observation source '{self.name}' started (interval={self.poll_interval})")
        await self.start()
        try:
            while not stop.is_set():
                try:
                    await self.poll_once()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Error in observation source '{self.name}': {e}", exc_info=True)

                if await wait_or_stop(stop, self.poll_interval):
                    break
        finally:
            await self.stop()
            logger.info(f"Observation source '{self.name}' stopped")


def resolve_title(index: RepositoryIndex, title: str) -> Optional[RepositoryInfo]:
    """Match a window title against the index, logging misses at debug level."""
    repo = index.match_title(title)
    if repo is None:
        logger.debug(f"No repository matches window title {title[:60]!r}")
    return repo
