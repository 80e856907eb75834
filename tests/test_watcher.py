"""
Unit tests for watch sessions.
"""

import threading
import time
from pathlib import Path
from queue import Queue

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from folder_organizer.actions.file_operations import FileOperations
from folder_organizer.config.categories import CategoryRules
from folder_organizer.config.settings import WatcherConfig
from folder_organizer.monitoring.watcher import (
    DebounceTracker,
    EventFilter,
    EventKind,
    FixedDelaySettle,
    OrganizerEventHandler,
    RawEvent,
    SessionState,
    SettleStrategy,
    SizeStabilitySettle,
    WatchSession,
    make_settle_strategy,
)
from folder_organizer.utils.exceptions import FileProcessingError, WatcherError
from folder_organizer.utils.notifications import CallbackSink, EventReporter


RULES = {
    "Documents": [".pdf", ".txt"],
    "Images": [".jpg", ".png"],
}


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeObserver:
    """Stands in for a watchdog observer; events are fed by hand."""

    def __init__(self, fail_on_schedule: bool = False):
        self.fail_on_schedule = fail_on_schedule
        self.handler = None
        self.path = None
        self.recursive = None
        self.started = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        if self.fail_on_schedule:
            raise OSError("inotify watch limit reached")
        self.handler = handler
        self.path = path
        self.recursive = recursive

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass


class BlockingSettle(SettleStrategy):
    """Settle that holds the worker until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def wait(self, file_path, kind):
        self.entered.set()
        self.release.wait(timeout=10.0)
        return True


class FailingFileOps(FileOperations):
    def move_file(self, source, category, destination_root):
        raise FileProcessingError("disk on fire", file_path=str(source))


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


@pytest.fixture
def folder(tmp_path):
    return tmp_path.resolve()


@pytest.fixture
def received():
    return []


@pytest.fixture
def reporter(received):
    return EventReporter(CallbackSink(lambda kind, payload: received.append((kind, payload))))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(folder, reporter, clock):
    return WatchSession(folder, RULES, reporter=reporter, settle=SettleStrategy(), clock=clock)


class TestDebounceTracker:
    """Tests for DebounceTracker."""

    def test_repeat_within_window_is_skipped(self, clock):
        tracker = DebounceTracker(clock=clock)

        assert tracker.should_process("/a/x.pdf", EventKind.CREATE) is True
        clock.advance(4.9)
        assert tracker.should_process("/a/x.pdf", EventKind.CREATE) is False

    def test_window_boundary_processes(self, clock):
        """Test a repeat exactly one window later is processed again."""
        tracker = DebounceTracker(clock=clock)

        tracker.should_process("/a/x.pdf", EventKind.CREATE)
        clock.advance(5.0)
        assert tracker.should_process("/a/x.pdf", EventKind.CREATE) is True

    def test_modify_window_is_shorter(self, clock):
        tracker = DebounceTracker(clock=clock)

        tracker.should_process("/a/x.pdf", EventKind.CREATE)
        clock.advance(2.5)
        assert tracker.should_process("/a/x.pdf", EventKind.MODIFY) is True

        clock.advance(1.0)
        assert tracker.should_process("/a/x.pdf", EventKind.OTHER) is False

    def test_skipped_event_does_not_extend_window(self, clock):
        """Test only processed events reset the window."""
        tracker = DebounceTracker(clock=clock)

        tracker.should_process("/a/x.pdf", EventKind.CREATE)
        clock.advance(3.0)
        tracker.should_process("/a/x.pdf", EventKind.CREATE)
        clock.advance(2.0)
        assert tracker.should_process("/a/x.pdf", EventKind.CREATE) is True

    def test_paths_are_independent(self, clock):
        tracker = DebounceTracker(clock=clock)

        tracker.should_process("/a/x.pdf", EventKind.CREATE)
        assert tracker.should_process("/a/y.pdf", EventKind.CREATE) is True
        assert len(tracker) == 2

    def test_seconds_since(self, clock):
        tracker = DebounceTracker(clock=clock)

        assert tracker.seconds_since("/a/x.pdf") is None
        tracker.should_process("/a/x.pdf", EventKind.CREATE)
        clock.advance(1.5)
        assert tracker.seconds_since("/a/x.pdf") == pytest.approx(1.5)


class TestEventFilter:
    """Tests for EventFilter."""

    @pytest.fixture
    def event_filter(self, folder):
        return EventFilter(folder, CategoryRules(RULES), exclude_patterns=["keep-*"])

    @pytest.mark.parametrize("name,reason", [
        ("._photo.jpg", "resource fork"),
        (".DS_Store", "system metadata"),
        ("Thumbs.db", "system metadata"),
        ("~$report.docx", "lock file"),
        (".~lock.sheet.ods#", "lock file"),
        ("draft.tmp", "temporary file"),
        ("notes.txt.swp", "temporary file"),
        ("movie.mp4.crdownload", "partial download"),
        (".hidden", "hidden file"),
        ("keep-me.pdf", "excluded by pattern"),
        ("report.pdf", None),
        (".gitignore", None),
        (".notes.txt", None),
    ])
    def test_create_events(self, folder, event_filter, name, reason):
        path = folder / name
        path.write_text("x")

        assert event_filter.rejection_reason(path, EventKind.CREATE) == reason

    def test_partial_download_modify_is_not_rejected(self, folder, event_filter):
        """Test partial-download suffixes only matter for create events."""
        path = folder / "movie.mp4.part"
        path.write_text("x")

        assert event_filter.rejection_reason(path, EventKind.MODIFY) is None

    def test_directory(self, folder, event_filter):
        (folder / "Documents").mkdir()
        assert event_filter.rejection_reason(folder / "Documents", EventKind.CREATE) == "directory"

    def test_nested_file(self, folder, event_filter):
        """Test files inside category folders are never reprocessed."""
        nested = folder / "Documents" / "report.pdf"
        nested.parent.mkdir()
        nested.write_text("x")

        assert event_filter.rejection_reason(nested, EventKind.CREATE) == "outside watched folder"

    def test_missing_file(self, folder, event_filter):
        reason = event_filter.rejection_reason(folder / "gone.pdf", EventKind.OTHER)
        assert reason == "not a regular file"


class TestSettleStrategies:
    """Tests for settle strategies."""

    def test_fixed_delay(self, folder):
        sleeps = []
        settle = FixedDelaySettle(create_delay=1.0, modify_delay=0.5, sleep=sleeps.append)

        assert settle.wait(folder / "a.pdf", EventKind.CREATE) is True
        assert settle.wait(folder / "a.pdf", EventKind.MODIFY) is True
        assert sleeps == [1.0, 0.5]

    def test_size_stability_stable_file(self, folder):
        path = folder / "a.pdf"
        path.write_text("done")
        sleeps = []
        settle = SizeStabilitySettle(check_interval=0.25, sleep=sleeps.append)

        assert settle.wait(path, EventKind.CREATE) is True
        assert sleeps == [0.25, 0.25]

    def test_size_stability_missing_file(self, folder):
        settle = SizeStabilitySettle(sleep=lambda seconds: None)
        assert settle.wait(folder / "gone.pdf", EventKind.CREATE) is False

    def test_factory(self):
        assert isinstance(make_settle_strategy(WatcherConfig()), FixedDelaySettle)
        config = WatcherConfig(settle_strategy="size_stability")
        assert isinstance(make_settle_strategy(config), SizeStabilitySettle)


class TestEventHandler:
    """Tests for OrganizerEventHandler."""

    def test_translates_events(self):
        events = Queue()
        handler = OrganizerEventHandler(events)

        handler.on_created(FileCreatedEvent("/w/a.pdf"))
        handler.on_modified(FileModifiedEvent("/w/a.pdf"))
        handler.on_moved(FileMovedEvent("/w/a.part", "/w/a.pdf"))
        handler.on_created(DirCreatedEvent("/w/sub"))

        assert events.get_nowait() == RawEvent(EventKind.CREATE, ("/w/a.pdf",), False)
        assert events.get_nowait() == RawEvent(EventKind.MODIFY, ("/w/a.pdf",), False)
        assert events.get_nowait() == RawEvent(EventKind.OTHER, ("/w/a.part", "/w/a.pdf"), False)
        assert events.get_nowait().is_directory is True


class TestProcessPath:
    """Tests for the per-path pipeline."""

    def test_moves_matching_file(self, folder, session, received):
        path = folder / "report.pdf"
        path.write_text("x")

        final = session.process_path(path, EventKind.CREATE)

        assert final == folder / "Documents" / "report.pdf"
        assert final.exists()
        assert session.files_organized == 1
        organized = [p for kind, p in received if kind == "file-organized"]
        assert organized[0]["original_name"] == "report.pdf"
        assert organized[0]["category"] == "Documents"
        assert organized[0]["watched_folder"] == str(folder)

    def test_collision_rename_reported(self, folder, session, received, clock):
        (folder / "Documents").mkdir()
        (folder / "Documents" / "report.pdf").write_text("old")
        path = folder / "report.pdf"
        path.write_text("new")

        final = session.process_path(path, EventKind.CREATE)

        assert final.name == "report_1.pdf"
        organized = [p for kind, p in received if kind == "file-organized"]
        assert organized[0]["actual_name"] == "report_1.pdf"

    def test_debounced_repeat_is_skipped(self, folder, session, received, clock):
        """Test a file arriving again under the same name inside the window is left alone."""
        path = folder / "report.pdf"
        path.write_text("first")
        session.process_path(path, EventKind.CREATE)

        path.write_text("second")
        clock.advance(1.0)

        assert session.process_path(path, EventKind.CREATE) is None
        assert path.exists()
        messages = [p["message"] for kind, p in received if kind == "log-message"]
        assert any("skipping" in m for m in messages)

    def test_unmatched_file_left_in_place(self, folder, session, received):
        path = folder / "song.mp3"
        path.write_text("x")

        assert session.process_path(path, EventKind.CREATE) is None
        assert path.exists()
        messages = [p["message"] for kind, p in received if kind == "log-message"]
        assert any("No matching category" in m for m in messages)

    def test_mover_failure_is_reported(self, folder, reporter, received):
        """Test move errors are reported and do not escape."""
        session = WatchSession(
            folder, RULES,
            reporter=reporter,
            file_ops=FailingFileOps(),
            settle=SettleStrategy(),
        )
        path = folder / "report.pdf"
        path.write_text("x")

        assert session.process_path(path, EventKind.CREATE) is None
        errors = [p for kind, p in received if kind == "log-message" and p["severity"] == "error"]
        assert "disk on fire" in errors[0]["message"]
        assert session.files_organized == 0

    def test_callback_failure_does_not_escape(self, folder, reporter):
        def explode(event):
            raise RuntimeError("callback broke")

        session = WatchSession(
            folder, RULES,
            reporter=reporter,
            settle=SettleStrategy(),
            on_organized=explode,
        )
        path = folder / "photo.jpg"
        path.write_text("x")

        assert session.process_path(path, EventKind.CREATE) == folder / "Images" / "photo.jpg"

    def test_process_event_handles_every_path(self, folder, session):
        (folder / "a.pdf").write_text("x")
        (folder / "b.png").write_text("x")

        session.process_event(RawEvent(
            EventKind.OTHER,
            (str(folder / "a.pdf"), str(folder / "b.png")),
        ))

        assert (folder / "Documents" / "a.pdf").exists()
        assert (folder / "Images" / "b.png").exists()


class TestSessionLifecycle:
    """Tests for start/stop with a hand-fed observer."""

    @pytest.fixture
    def observer(self):
        return FakeObserver()

    @pytest.fixture
    def live_session(self, folder, reporter, observer):
        session = WatchSession(
            folder, RULES,
            reporter=reporter,
            settle=SettleStrategy(),
            observer_factory=lambda: observer,
        )
        yield session
        session.stop(timeout=2.0)

    def test_start_provisions_and_watches(self, folder, live_session, observer):
        live_session.start()

        assert live_session.state is SessionState.WATCHING
        assert live_session.is_running
        assert live_session.started_at is not None
        assert (folder / "Documents").is_dir()
        assert (folder / "Images").is_dir()
        assert observer.started
        assert observer.path == str(folder)
        assert observer.recursive is False

    def test_worker_organizes_queued_events(self, folder, live_session, observer):
        live_session.start()
        path = folder / "report.pdf"
        path.write_text("x")

        observer.handler.on_created(FileCreatedEvent(str(path)))

        assert wait_for(lambda: (folder / "Documents" / "report.pdf").exists())

    def test_stop_returns_to_idle(self, live_session, observer):
        live_session.start()

        assert live_session.stop(timeout=2.0) is True
        assert live_session.state is SessionState.IDLE
        assert not live_session.is_running
        assert observer.stopped

    def test_start_twice_is_noop(self, live_session):
        live_session.start()
        worker = live_session._worker

        live_session.start()

        assert live_session._worker is worker

    def test_restart_after_stop(self, live_session):
        live_session.start()
        live_session.stop(timeout=2.0)

        live_session.start()

        assert live_session.is_running

    def test_stop_idle_session(self, live_session):
        assert live_session.stop() is True

    def test_stop_while_settling(self, folder, reporter):
        """Test a stop does not interrupt a settle in progress and the worker retires later."""
        observer = FakeObserver()
        settle = BlockingSettle()
        session = WatchSession(
            folder, RULES,
            reporter=reporter,
            settle=settle,
            observer_factory=lambda: observer,
        )
        session.start()
        path = folder / "report.pdf"
        path.write_text("x")
        observer.handler.on_created(FileCreatedEvent(str(path)))
        assert settle.entered.wait(timeout=5.0)

        try:
            assert session.stop(timeout=0.1) is False
            assert session.state is SessionState.STOPPING
            with pytest.raises(WatcherError):
                session.start()
        finally:
            settle.release.set()

        assert wait_for(lambda: session.state is SessionState.IDLE)
        assert (folder / "Documents" / "report.pdf").exists()
        assert observer.stopped

    def test_missing_folder(self, tmp_path):
        session = WatchSession(tmp_path / "nope", RULES, observer_factory=FakeObserver)

        with pytest.raises(WatcherError):
            session.start()
        assert session.state is SessionState.IDLE

    def test_observer_failure(self, folder):
        session = WatchSession(
            folder, RULES,
            observer_factory=lambda: FakeObserver(fail_on_schedule=True),
        )

        with pytest.raises(WatcherError) as exc_info:
            session.start()
        assert isinstance(exc_info.value.cause, OSError)
        assert session.state is SessionState.IDLE


class TestWatchdogIntegration:
    """End-to-end test with a real watchdog observer."""

    def test_new_file_is_organized(self, folder):
        config = WatcherConfig(create_settle_delay=0.0, modify_settle_delay=0.0)
        session = WatchSession(folder, RULES, config=config)
        session.start()
        try:
            (folder / "photo.png").write_bytes(b"\x89PNG")
            assert wait_for(lambda: (folder / "Images" / "photo.png").exists(), timeout=10.0)
            assert not (folder / "photo.png").exists()
        finally:
            assert session.stop(timeout=5.0) is True
