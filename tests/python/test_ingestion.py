"""
Unit Tests for Observation Sources

Window polling, aw-watcher-window reading, filesystem events, simulated
activity, and the bounded queue they all feed.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from worklog.dal.activitywatch import ActivityWatchError, WindowBucketMissingError, WindowEvent
from worklog.gitinfo.index import RepositoryIndex
from worklog.ingestion.aw_window import ActivityWatchWindowObserver
from worklog.ingestion.base import ObservationSource, new_observation_queue
from worklog.ingestion.fs_watcher import (
    FilesystemObserver,
    RepositoryEventHandler,
    is_ignored_path,
)
from worklog.ingestion.simulated import SimulatedObserver
from worklog.ingestion.window_poller import WindowPollObserver
from worklog.perception.window import WindowInfo, WindowProbeError

from conftest import T0, make_repo

POLL = timedelta(milliseconds=10)
SINCE = T0 - timedelta(hours=1)


def drain(queue):
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


@pytest.fixture
def index():
    index = RepositoryIndex()
    index.replace([make_repo("/src/my-service"), make_repo("/src/other")])
    return index


# ==================== Base Source Tests ====================

class TestObservationSource:
    """Test suite for the shared source loop."""

    def test_full_queue_blocks_producer(self, index):
        """Test the producer waits instead of dropping observations."""
        async def scenario():
            queue = new_observation_queue(maxsize=1)
            source = SimulatedObserver(index, queue, POLL)
            task = asyncio.create_task(source.poll_once())
            for _ in range(5):
                await asyncio.sleep(0)

            assert not task.done()
            assert queue.full()

            first = await queue.get()
            emitted = await asyncio.wait_for(task, timeout=1)
            second = await queue.get()
            return emitted, first, second

        emitted, first, second = asyncio.run(scenario())

        assert emitted == 2
        assert {first.repository.path, second.repository.path} == {"/src/my-service", "/src/other"}

    def test_run_survives_errors_and_stops(self, index):
        """Test a failing pass is logged and polling continues until stop."""
        calls = []

        class Flaky(ObservationSource):
            name = "flaky"

            async def poll_once(self):
                calls.append(len(calls))
                if len(calls) == 1:
                    raise RuntimeError("boom")
                if len(calls) == 3:
                    stop.set()
                return 0

        stop = asyncio.Event()
        source = Flaky(index, new_observation_queue(), POLL)
        source.start = AsyncMock()
        source.stop = AsyncMock()

        asyncio.run(asyncio.wait_for(source.run(stop), timeout=2))

        assert len(calls) == 3
        source.start.assert_awaited_once()
        source.stop.assert_awaited_once()


# ==================== Window Poller Tests ====================

class TestWindowPollObserver:
    """Test suite for WindowPollObserver."""

    def make(self, index, window=None, error=None):
        probe = Mock()
        if error:
            probe.current_focused_window.side_effect = error
        else:
            probe.current_focused_window.return_value = window
        queue = new_observation_queue()
        return WindowPollObserver(index, queue, POLL, probe, clock=lambda: T0), queue

    def test_editor_window_emits(self, index):
        source, queue = self.make(index, WindowInfo("Code", "main.py - my-service - Visual Studio Code"))

        assert asyncio.run(source.poll_once()) == 1

        [obs] = drain(queue)
        assert obs.repository.path == "/src/my-service"
        assert obs.timestamp == T0
        assert obs.app == "Code"
        assert obs.source == "window"

    def test_non_editor_ignored(self, index):
        source, queue = self.make(index, WindowInfo("firefox", "my-service issues - Mozilla Firefox"))
        assert asyncio.run(source.poll_once()) == 0
        assert queue.empty()

    def test_unknown_repository_ignored(self, index):
        source, queue = self.make(index, WindowInfo("Code", "notes.md - scratch - Visual Studio Code"))
        assert asyncio.run(source.poll_once()) == 0

    def test_probe_error_skips_tick(self, index):
        source, queue = self.make(index, error=WindowProbeError("xdotool: exit 1"))
        assert asyncio.run(source.poll_once()) == 0
        assert queue.empty()


# ==================== aw-watcher-window Tests ====================

class TestActivityWatchWindowObserver:
    """Test suite for ActivityWatchWindowObserver."""

    @pytest.fixture
    def events(self):
        return [
            WindowEvent(T0 + timedelta(minutes=2), 30.0, "Code", "api.py - other - Visual Studio Code"),
            WindowEvent(T0, 60.0, "Code", "main.py - my-service - Visual Studio Code"),
            WindowEvent(T0 + timedelta(minutes=1), 30.0, "Slack", "my-service - Slack"),
        ]

    def make(self, index, since=SINCE, **kwargs):
        client = Mock()
        client.fetch_window_events = AsyncMock(**kwargs)
        queue = new_observation_queue()
        source = ActivityWatchWindowObserver(index, queue, POLL, client, machine="devbox", since=since)
        return source, client, queue

    def test_editor_events_emitted_at_end(self, index, events):
        source, client, queue = self.make(index, return_value=events)

        assert asyncio.run(source.poll_once()) == 2

        observations = drain(queue)
        assert [o.repository.path for o in observations] == ["/src/my-service", "/src/other"]
        assert observations[0].timestamp == T0 + timedelta(minutes=1)
        assert observations[1].timestamp == T0 + timedelta(minutes=2, seconds=30)
        assert all(o.source == "activitywatch" for o in observations)
        assert source.since == T0 + timedelta(minutes=2, seconds=30)
        client.fetch_window_events.assert_awaited_once_with("devbox", SINCE, 100)

    def test_history_before_startup_not_replayed(self, index):
        """Test events that ended before the agent started are not turned into observations."""
        now = datetime.now(timezone.utc)
        old = [
            WindowEvent(now - timedelta(days=2), 600.0, "Code", "main.py - my-service - Visual Studio Code"),
            WindowEvent(now - timedelta(days=2, hours=-1), 300.0, "Code", "api.py - other - Visual Studio Code"),
        ]
        source, client, queue = self.make(index, since=None, return_value=old)

        assert asyncio.run(source.poll_once()) == 0
        assert queue.empty()
        assert client.fetch_window_events.await_args.args[1] >= now

    def test_already_seen_events_skipped(self, index, events):
        source, client, queue = self.make(index, return_value=events)

        async def scenario():
            await source.poll_once()
            return await source.poll_once()

        assert asyncio.run(scenario()) == 0
        assert len(drain(queue)) == 2
        assert client.fetch_window_events.await_args.args[1] == T0 + timedelta(minutes=2, seconds=30)

    def test_missing_bucket(self, index, caplog):
        source, _, queue = self.make(index, side_effect=WindowBucketMissingError("bucket missing"))

        async def scenario():
            await source.poll_once()
            await source.poll_once()

        asyncio.run(scenario())

        assert queue.empty()
        assert caplog.text.count("aw-watcher-window running") == 1

    def test_server_error(self, index):
        source, _, queue = self.make(index, side_effect=ActivityWatchError("status 500"))
        assert asyncio.run(source.poll_once()) == 0


# ==================== Filesystem Tests ====================

class TestFilesystemEvents:
    """Test suite for the watchdog handler."""

    @pytest.fixture
    def handler(self, index):
        submitted = []
        handler = RepositoryEventHandler(make_repo("/src/my-service"), index, submitted.append, clock=lambda: T0)
        handler.submitted = submitted
        return handler

    def test_is_ignored_path(self):
        assert is_ignored_path("/src/app", "/src/app/.git/index")
        assert is_ignored_path("/src/app", "/src/app/web/node_modules/x/index.js")
        assert is_ignored_path("/src/app", "/elsewhere/file")
        assert not is_ignored_path("/src/app", "/src/app/src/main.py")

    def test_file_write_submitted(self, handler):
        handler.dispatch(FileModifiedEvent("/src/my-service/main.py"))
        handler.dispatch(FileCreatedEvent("/src/my-service/new.py"))
        handler.dispatch(FileMovedEvent("/src/my-service/a.py", "/src/my-service/b.py"))

        assert [o.source for o in handler.submitted] == ["fs:modified", "fs:created", "fs:moved"]
        assert all(o.timestamp == T0 for o in handler.submitted)

    def test_noise_ignored(self, handler):
        handler.dispatch(FileModifiedEvent("/src/my-service/.git/index"))
        handler.dispatch(FileModifiedEvent("/src/my-service/build/out.o"))
        handler.dispatch(DirModifiedEvent("/src/my-service/src"))
        handler.dispatch(FileClosedEvent("/src/my-service/main.py"))
        assert handler.submitted == []


    def test_nested_repository_credited_once(self):
        """Test a write inside a nested repository only counts for the inner one."""
        outer_repo = make_repo("/src/mono")
        inner_repo = make_repo("/src/mono/packages/ui")
        index = RepositoryIndex()
        index.replace([outer_repo, inner_repo])

        submitted = []
        outer = RepositoryEventHandler(outer_repo, index, submitted.append, clock=lambda: T0)
        inner = RepositoryEventHandler(inner_repo, index, submitted.append, clock=lambda: T0)

        for handler in (outer, inner):
            handler.dispatch(FileModifiedEvent("/src/mono/packages/ui/button.tsx"))
        assert [o.repository.path for o in submitted] == ["/src/mono/packages/ui"]

        submitted.clear()
        for handler in (outer, inner):
            handler.dispatch(FileModifiedEvent("/src/mono/README.md"))
        assert [o.repository.path for o in submitted] == ["/src/mono"]

    def test_repository_dropped_from_index_ignored(self):
        """Test events for a repository no longer indexed are skipped."""
        submitted = []
        handler = RepositoryEventHandler(make_repo("/src/gone"), RepositoryIndex(), submitted.append)
        handler.dispatch(FileModifiedEvent("/src/gone/main.py"))
        assert submitted == []


class TestFilesystemObserver:
    """Test suite for FilesystemObserver."""

    @pytest.fixture
    def fake_observer(self):
        observer = Mock()
        observer.schedule.side_effect = lambda handler, path, recursive: ("watch", path)
        return observer

    def test_sync_watches_follows_index(self, index, fake_observer):
        source = FilesystemObserver(index, new_observation_queue(), POLL, observer_factory=lambda: fake_observer)

        async def scenario():
            await source.start()
            assert source.sync_watches() == 2
            index.replace([make_repo("/src/other"), make_repo("/src/new")])
            count = source.sync_watches()
            await source.stop()
            return count

        assert asyncio.run(scenario()) == 2

        scheduled = [c.args[1] for c in fake_observer.schedule.call_args_list]
        assert scheduled == ["/src/my-service", "/src/other", "/src/new"]
        fake_observer.unschedule.assert_called_once_with(("watch", "/src/my-service"))
        fake_observer.stop.assert_called_once()
        fake_observer.join.assert_called_once()

    def test_unwatchable_repository_skipped(self, index, fake_observer):
        fake_observer.schedule.side_effect = OSError("inotify watch limit reached")
        source = FilesystemObserver(index, new_observation_queue(), POLL, observer_factory=lambda: fake_observer)

        async def scenario():
            await source.start()
            count = source.sync_watches()
            await source.stop()
            return count

        assert asyncio.run(scenario()) == 0

    def test_submit_from_watchdog_thread(self, index, fake_observer):
        """Test events from a foreign thread land on the event loop's queue."""
        queue = new_observation_queue()
        source = FilesystemObserver(index, queue, POLL, observer_factory=lambda: fake_observer)
        handler = RepositoryEventHandler(make_repo("/src/my-service"), index, source._submit, clock=lambda: T0)

        async def scenario():
            await source.start()
            await asyncio.to_thread(handler.dispatch, FileModifiedEvent("/src/my-service/main.py"))
            obs = queue.get_nowait()
            await source.stop()
            return obs

        obs = asyncio.run(scenario())
        assert obs.source == "fs:modified"
        assert obs.repository.path == "/src/my-service"

    def test_submit_after_stop_is_dropped(self, index, fake_observer):
        queue = new_observation_queue()
        source = FilesystemObserver(index, queue, POLL, observer_factory=lambda: fake_observer)

        async def scenario():
            await source.start()
            await source.stop()
            handler = RepositoryEventHandler(make_repo("/src/my-service"), index, source._submit)
            await asyncio.to_thread(handler.dispatch, FileModifiedEvent("/src/my-service/main.py"))

        asyncio.run(scenario())
        assert queue.empty()


# ==================== Simulated Source Tests ====================

class TestSimulatedObserver:
    """Test suite for SimulatedObserver."""

    def test_one_observation_per_repository(self, index):
        queue = new_observation_queue()
        source = SimulatedObserver(index, queue, POLL)

        assert asyncio.run(source.poll_once()) == 2

        observations = drain(queue)
        assert {o.repository.path for o in observations} == {"/src/my-service", "/src/other"}
        assert all(o.app == "simulated" for o in observations)
