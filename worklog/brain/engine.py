"""
Worklog Agent - Session Engine Module

Maintains one live work session per repository and decides when sessions
close.

A session closes when:
1. It has seen no observation for `idle_timeout` (checked by flush_expired)
2. The agent shuts down (flush_all)

There is no maximum session length. A session is removed from the live
map in the same critical section that selects it for publishing, so it can
never be published twice. Git lookups and publishing happen outside the
lock.

Usage:
    engine = SessionEngine(git, publisher, idle_timeout=timedelta(minutes=30))
    await engine.record_observation(observation)
    await engine.flush_expired()
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from worklog.aggregation.session import WorkSession
from worklog.gitinfo.git import GitClient, GitError, HeadInfo
from worklog.ingestion.base import Observation

logger = logging.getLogger(__name__)


# Named constants
DEFAULT_IDLE_TIMEOUT = timedelta(minutes=30)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionEngine:
    """
    Per-repository session state machine.

    Args:
        git: Resolves the current branch/commit for an observed repository.
        publisher: Object with `async publish(session)`; receives every
                   closed session with a positive duration.
        idle_timeout: Inactivity after which a session is closed.
        clock: Returns the current time (timezone-aware).
    """

    def __init__(
        self,
        git: GitClient,
        publisher,
        idle_timeout: timedelta = DEFAULT_IDLE_TIMEOUT,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.git = git
        self.publisher = publisher
        self.idle_timeout = idle_timeout
        self.clock = clock

        self._sessions: Dict[str, WorkSession] = {}
        self._lock = asyncio.Lock()

        logger.info(f"SessionEngine initialized. Idle timeout: {idle_timeout}")

    async def _resolve_head(self, path: str) -> Optional[HeadInfo]:
        try:
            return await asyncio.to_thread(self.git.head, path)
        except GitError as e:
            logger.warning(f"Resolve branch for {path}: {e}")
            return None

    async def record_observation(self, observation: Observation) -> None:
        """
        Fold one observation into the repository's live session.

        Never raises; a failed branch lookup only means the branch label is
        left unchanged.
        """
        repo = observation.repository
        head = await self._resolve_head(repo.path)
        branch = head.branch if head else ""

        async with self._lock:
            session = self._sessions.get(repo.path)
            if session is None:
                self._sessions[repo.path] = WorkSession.open(
                    repository=repo,
                    branch=branch,
                    timestamp=observation.timestamp,
                    app=observation.app,
                    start_commit=head.commit if head else None,
                )
                logger.info(
                    f"Started session: {repo.name} ({branch or repo.branch or 'no branch'}) "
                    f"via {observation.source}"
                )
                return

            session.touch(branch, observation.app, observation.timestamp)

        logger.debug(
            f"Touched session {repo.name}: events={session.events} via {observation.source}"
        )

    async def flush_expired(self, now: Optional[datetime] = None) -> List[WorkSession]:
        """
        Close and publish every session idle for at least the idle timeout.

        Returns:
            Sessions removed from the live map (including zero-duration ones
            that were dropped rather than published).
        """
        now = now or self.clock()

        async with self._lock:
            expired = [s for s in self._sessions.values() if s.is_idle(now, self.idle_timeout)]
            for session in expired:
                del self._sessions[session.key]

        if expired:
            logger.info(f"Closing {len(expired)} idle session(s)")
            await self._publish_all(expired)
        return expired

    async def flush_all(self, now: Optional[datetime] = None) -> List[WorkSession]:
        """
        Close and publish every live session regardless of freshness.

        Used at shutdown so no in-progress work is dropped.
        """
        now = now or self.clock()

        async with self._lock:
            closing = list(self._sessions.values())
            self._sessions = {}

        if closing:
            logger.info(f"Flushing {len(closing)} session(s) at {now.isoformat()}")
            await self._publish_all(closing)
        return closing

    async def _publish_all(self, sessions: List[WorkSession]) -> None:
        results = await asyncio.gather(
            *(self._publish(session) for session in sessions),
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.error(f"Publish session {session.key}: {result}")

    async def _publish(self, session: WorkSession) -> None:
        # Single-observation sessions carry no duration signal
        if session.duration <= timedelta(0):
            logger.debug(f"Dropping zero-duration session for {session.key}")
            return
        await self.publisher.publish(session)

    async def live_sessions(self) -> List[WorkSession]:
        """Snapshot of the live sessions."""
        async with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        """
        Live session count, read without the lock.

        Only exact between awaits on the engine's own event loop; use
        live_sessions() for a consistent snapshot.
        """
        return len(self._sessions)
