"""
Worklog Agent - Orchestrator Module

Coordinates initialization, the driving loop and graceful shutdown.

Workers:
    - repository index refresh (timer, scan in a worker thread)
    - one observation source (window poll, aw-watcher-window, filesystem
      or simulated) feeding a bounded queue

The driving loop services whichever is ready first: the shutdown signal,
the next observation, or the flush timer.

Usage:
    agent = AgentOrchestrator(config)
    await agent.run()
"""

import asyncio
import logging
from typing import Optional, Set

from worklog.brain.engine import SessionEngine
from worklog.brain.publisher import BucketNamer, SessionPublisher
from worklog.dal.activitywatch import ActivityWatchClient
from worklog.gitinfo.git import GitClient
from worklog.gitinfo.index import RepositoryIndex
from worklog.gitinfo.scanner import RepositoryScanner
from worklog.ingestion.aw_window import ActivityWatchWindowObserver
from worklog.ingestion.base import (
    Observation,
    ObservationSource,
    new_observation_queue,
    wait_or_stop,
)
from worklog.ingestion.fs_watcher import FilesystemObserver
from worklog.ingestion.simulated import SimulatedObserver
from worklog.ingestion.window_poller import WindowPollObserver
from worklog.perception.window import select_window_probe
from worklog.system.config import (
    MODE_ACTIVITYWATCH,
    MODE_FILESYSTEM,
    MODE_WINDOW,
    AgentConfig,
)

logger = logging.getLogger(__name__)


class AgentOrchestrator:
    """
    Main orchestrator for the worklog agent.

    Responsibilities:
        - Build the index, engine, publisher and observation source
        - Run the driving loop
        - Flush every live session on shutdown
    """

    def __init__(
        self,
        config: AgentConfig,
        test_mode: bool = False,
        git: Optional[GitClient] = None,
        aw_client: Optional[ActivityWatchClient] = None,
        source: Optional[ObservationSource] = None,
    ) -> None:
        """
        Initialize AgentOrchestrator.

        Args:
            config: Normalized agent configuration.
            test_mode: Use simulated activity instead of a real source.
            git: Git collaborator override.
            aw_client: ActivityWatch client override.
            source: Observation source override.
        """
        self.config = config
        self.test_mode = test_mode

        self.git = git or GitClient()
        self.aw_client = aw_client or ActivityWatchClient(
            base_url=config.activitywatch.base_url,
            machine=config.activitywatch.machine,
        )
        self.index = RepositoryIndex(RepositoryScanner(
            self.git,
            repositories=config.git.repositories,
            roots=config.git.roots,
            max_depth=config.git.max_depth,
        ))
        self.queue: "asyncio.Queue[Observation]" = new_observation_queue()

        self.publisher = SessionPublisher(
            self.aw_client,
            BucketNamer(
                prefix=config.activitywatch.bucket_prefix,
                template=config.activitywatch.bucket_template,
                machine=config.activitywatch.machine,
            ),
            machine=config.activitywatch.machine,
            git=self.git,
        )
        self.engine = SessionEngine(
            self.git,
            self.publisher,
            idle_timeout=config.session.idle_timeout,
        )
        self.source = source

        # Control state
        self.shutdown_event = asyncio.Event()
        self._workers: Set[asyncio.Task] = set()
        self._flushes: Set[asyncio.Task] = set()

    def _build_source(self) -> ObservationSource:
        """Pick the observation source for the configured collection mode."""
        session = self.config.session
        if self.test_mode:
            return SimulatedObserver(self.index, self.queue, session.poll_interval)
        if session.mode == MODE_WINDOW:
            return WindowPollObserver(
                self.index, self.queue, session.poll_interval, select_window_probe()
            )
        if session.mode == MODE_FILESYSTEM:
            return FilesystemObserver(self.index, self.queue, session.poll_interval)
        if session.mode == MODE_ACTIVITYWATCH:
            return ActivityWatchWindowObserver(
                self.index,
                self.queue,
                session.poll_interval,
                client=self.aw_client,
                machine=self.config.activitywatch.machine,
            )
        raise ValueError(f"unknown collection mode: {session.mode}")

    async def initialize(self) -> None:
        """Run the first repository scan and build the observation source."""
        logger.info("Initializing worklog agent...")

        count = await asyncio.to_thread(self.index.refresh)
        if count == 0:
            logger.warning("No git repositories found; check git.repositories and git.roots")

        if self.source is None:
            self.source = self._build_source()

        logger.info(
            f"Agent ready: mode={self.source.name} repositories={count} "
            f"idle_timeout={self.config.session.idle_timeout} "
            f"flush_interval={self.config.session.flush_interval}"
        )

    def request_stop(self) -> None:
        """Signal every worker and the driving loop to stop."""
        if not self.shutdown_event.is_set():
            logger.info("Shutdown requested")
            self.shutdown_event.set()

    async def _index_refresh_loop(self) -> None:
        interval = self.config.git.rescan_interval
        while not await wait_or_stop(self.shutdown_event, interval):
            try:
                await asyncio.to_thread(self.index.refresh)
            except Exception as e:
                logger.error(f"Repository index refresh failed: {e}", exc_info=True)

    def _spawn(self, coro, registry: Set[asyncio.Task]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        registry.add(task)
        task.add_done_callback(registry.discard)
        return task

    async def event_loop(self) -> None:
        """
        Driving loop.

        Each iteration waits for the first of: shutdown, an observation,
        a flush tick. Flushes run as background tasks so publishing never
        delays the next observation.
        """
        flush_seconds = self.config.session.flush_interval.total_seconds()
        stop_task = asyncio.create_task(self.shutdown_event.wait())
        get_task: Optional[asyncio.Task] = None
        tick_task: Optional[asyncio.Task] = None

        logger.info("Starting driving loop...")
        try:
            while True:
                if get_task is None:
                    get_task = asyncio.create_task(self.queue.get())
                if tick_task is None:
                    tick_task = asyncio.create_task(asyncio.sleep(flush_seconds))

                done, _ = await asyncio.wait(
                    {stop_task, get_task, tick_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if get_task in done:
                    observation = get_task.result()
                    get_task = None
                    await self.engine.record_observation(observation)

                if tick_task in done:
                    tick_task = None
                    self._spawn(self.engine.flush_expired(), self._flushes)

                if stop_task in done:
                    break
        finally:
            for task in (get_task, tick_task, stop_task):
                if task is not None and not task.done():
                    task.cancel()

    async def _drain_until_done(self, workers: asyncio.Future) -> None:
        """
        Keep consuming the queue until `workers` completes.

        A source blocked on a full queue mid-batch only reaches its stop
        check once the queue has room again.
        """
        while not workers.done():
            get_task = asyncio.create_task(self.queue.get())
            done, _ = await asyncio.wait({workers, get_task}, return_when=asyncio.FIRST_COMPLETED)
            if get_task in done:
                await self.engine.record_observation(get_task.result())
            else:
                # A cancelled get leaves its item in the queue
                get_task.cancel()
        await workers

    async def shutdown(self) -> None:
        """Stop workers, wait for in-flight flushes, publish every live session."""
        logger.info("Shutting down worklog agent...")
        self.request_stop()

        if self._workers:
            await self._drain_until_done(asyncio.gather(*self._workers, return_exceptions=True))

        # Observations already accepted from the source still count
        while not self.queue.empty():
            await self.engine.record_observation(self.queue.get_nowait())

        if self._flushes:
            await asyncio.gather(*self._flushes, return_exceptions=True)

        await asyncio.shield(self.engine.flush_all())
        await self.aw_client.close()
        logger.info("Shutdown complete")

    async def run(self) -> None:
        """Main entry point."""
        try:
            await self.initialize()
            self._spawn(self.source.run(self.shutdown_event), self._workers)
            self._spawn(self._index_refresh_loop(), self._workers)
            await self.event_loop()
        except Exception as e:
            logger.error(f"Fatal error: {e}", exc_info=True)
            raise
        finally:
            await self.shutdown()
