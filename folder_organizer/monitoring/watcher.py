"""
Filesystem Watcher
==================

Watch sessions: one watchdog observer plus one worker thread per folder.
The observer feeds raw events into a queue; the worker filters, debounces,
waits for the file to settle, classifies it and moves it into its category
folder.
"""

import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path
from queue import Queue, Empty
from typing import Callable, Dict, Iterable, Optional, Tuple

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from folder_organizer.actions.file_operations import FileOperations
from folder_organizer.classification.classifier import RuleSource, as_rules, classify
from folder_organizer.config.categories import CategoryRules, get_extension
from folder_organizer.config.settings import WatcherConfig, normalize_folder
from folder_organizer.utils.exceptions import FileProcessingError, WatcherError
from folder_organizer.utils.logging_config import get_logger, set_correlation_id
from folder_organizer.utils.notifications import (
    EventReporter,
    FileOrganizedEvent,
    now_timestamp,
)

logger = get_logger(__name__)


class EventKind(Enum):
    """Classes of raw filesystem events the session reacts to."""
    CREATE = "create"
    MODIFY = "modify"
    OTHER = "other"


@dataclass(frozen=True)
class RawEvent:
    """A filesystem event as handed from the observer to the worker.

    Attributes:
        kind: Event class.
        paths: Candidate paths; a move carries both source and destination.
        is_directory: Whether the event concerns a directory.
    """
    kind: EventKind
    paths: Tuple[str, ...]
    is_directory: bool = False


class DebounceTracker:
    """Tracks when each path was last processed.

    Prevents multiple rapid events for the same file from triggering
    multiple processing attempts. Create events use a longer window than
    modify and rename events.
    """

    def __init__(
        self,
        create_window: float = 5.0,
        modify_window: float = 2.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize the debounce tracker.

        Args:
            create_window: Seconds a processed path ignores create events.
            modify_window: Seconds a processed path ignores other events.
            clock: Monotonic time source.
        """
        self.create_window = create_window
        self.modify_window = modify_window
        self._clock = clock
        self._pending: Dict[str, float] = {}
        self._lock = threading.Lock()

    def window_for(self, kind: EventKind) -> float:
        return self.create_window if kind is EventKind.CREATE else self.modify_window

    def should_process(self, file_path: str, kind: EventKind) -> bool:
        """Check if enough time has passed since the path was last processed.

        Records the current time when the answer is yes.

        Args:
            file_path: Path to the file.
            kind: Class of the incoming event.

        Returns:
            True if the file should be processed, False to skip.
        """
        now = self._clock()
        with self._lock:
            last_time = self._pending.get(file_path)
            if last_time is not None and now - last_time < self.window_for(kind):
                return False
            self._pending[file_path] = now
            return True

    def seconds_since(self, file_path: str) -> Optional[float]:
        with self._lock:
            last_time = self._pending.get(file_path)
        if last_time is None:
            return None
        return self._clock() - last_time

    def clear_all(self) -> None:
        """Clear all pending entries."""
        with self._lock:
            self._pending.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


class EventFilter:
    """Decides which event paths are worth processing."""

    RESOURCE_FORK_PREFIX = "._"
    METADATA_FILES = frozenset({
        ".DS_Store", "Thumbs.db", "ehthumbs.db", "desktop.ini",
        ".localized", ".directory", "Icon\r",
    })
    LOCK_PREFIXES = ("~$", ".~lock.", ".#")
    TEMP_SUFFIXES = (".tmp", ".temp", ".swp", ".swx", "~")
    PARTIAL_SUFFIXES = (
        ".crdownload", ".part", ".partial", ".download",
        ".opdownload", ".!ut", ".aria2",
    )
    LEGITIMATE_DOTFILES = frozenset({
        ".gitignore", ".gitattributes", ".editorconfig", ".env",
        ".npmrc", ".nvmrc", ".prettierrc", ".eslintrc", ".htaccess",
        ".bashrc", ".zshrc", ".profile", ".vimrc",
    })

    def __init__(
        self,
        folder: Path,
        rules: CategoryRules,
        exclude_patterns: Iterable[str] = ()
    ):
        self.folder = folder
        self.rules = rules
        self.exclude_patterns = list(exclude_patterns)

    def rejection_reason(
        self,
        path: Path,
        kind: EventKind,
        is_directory: bool = False
    ) -> Optional[str]:
        """Explain why a path is skipped, or return None to process it."""
        if is_directory or path.is_dir():
            return "directory"
        if path.parent != self.folder:
            return "outside watched folder"
        if not path.is_file():
            return "not a regular file"
        return self.name_rejection_reason(path.name, kind)

    def name_rejection_reason(self, name: str, kind: EventKind) -> Optional[str]:
        lowered = name.lower()

        if name.startswith(self.RESOURCE_FORK_PREFIX):
            return "resource fork"
        if name in self.METADATA_FILES:
            return "system metadata"
        if name.startswith(self.LOCK_PREFIXES):
            return "lock file"
        if lowered.endswith(self.TEMP_SUFFIXES):
            return "temporary file"
        if kind is EventKind.CREATE:
            if lowered.endswith(self.PARTIAL_SUFFIXES):
                return "partial download"
            if name.startswith(".") and not self._is_wanted_dotfile(name):
                return "hidden file"
        if any(fnmatch(name, pattern) for pattern in self.exclude_patterns):
            return "excluded by pattern"
        return None

    def _is_wanted_dotfile(self, name: str) -> bool:
        return name in self.LEGITIMATE_DOTFILES or self.rules.knows_extension(get_extension(name))


class SettleStrategy:
    """Waits for a freshly detected file to be fully written.

    This is a best-effort heuristic, not a completion guarantee.
    """

    def wait(self, file_path: Path, kind: EventKind) -> bool:
        """Block until the file looks settled.

        Returns:
            True if the file appears ready.
        """
        return True


class FixedDelaySettle(SettleStrategy):
    """Sleeps for a fixed delay that depends on the event class."""

    def __init__(
        self,
        create_delay: float = 1.0,
        modify_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.create_delay = create_delay
        self.modify_delay = modify_delay
        self._sleep = sleep

    def wait(self, file_path: Path, kind: EventKind) -> bool:
        delay = self.create_delay if kind is EventKind.CREATE else self.modify_delay
        if delay > 0:
            self._sleep(delay)
        return True


class SizeStabilitySettle(SettleStrategy):
    """Ensures files are fully written before processing.

    Monitors file size stability to detect when a file has finished
    being written to disk.
    """

    def __init__(
        self,
        check_interval: float = 0.5,
        max_checks: int = 10,
        stability_checks: int = 2,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize the checker.

        Args:
            check_interval: Time between size checks in seconds.
            max_checks: Maximum number of checks before giving up.
            stability_checks: Number of consecutive stable readings required.
            sleep: Sleep function.
        """
        self.check_interval = check_interval
        self.max_checks = max_checks
        self.stability_checks = stability_checks
        self._sleep = sleep

    def wait(self, file_path: Path, kind: EventKind) -> bool:
        previous_size = -1
        stable_count = 0

        for _ in range(self.max_checks):
            try:
                current_size = file_path.stat().st_size
            except OSError:
                return False

            if current_size == previous_size:
                stable_count += 1
                if stable_count >= self.stability_checks:
                    return True
            else:
                stable_count = 0
            previous_size = current_size

            self._sleep(self.check_interval)

        return stable_count >= 1


def make_settle_strategy(config: WatcherConfig) -> SettleStrategy:
    """Build the settle strategy named in the watcher configuration."""
    if config.settle_strategy == "size_stability":
        return SizeStabilitySettle(
            check_interval=max(config.modify_settle_delay, 0.1),
            max_checks=max(int(10 * config.create_settle_delay), 2),
        )
    return FixedDelaySettle(config.create_settle_delay, config.modify_settle_delay)


class OrganizerEventHandler(FileSystemEventHandler):
    """Translates watchdog callbacks into RawEvents on the worker's queue.

    Runs on the observer thread, so it does nothing but enqueue.
    """

    def __init__(self, events: "Queue[RawEvent]"):
        super().__init__()
        self.queue = events

    def on_created(self, event) -> None:
        self.queue.put(RawEvent(EventKind.CREATE, (event.src_path,), event.is_directory))

    def on_modified(self, event) -> None:
        self.queue.put(RawEvent(EventKind.MODIFY, (event.src_path,), event.is_directory))

    def on_moved(self, event) -> None:
        self.queue.put(RawEvent(
            EventKind.OTHER,
            (event.src_path, event.dest_path),
            event.is_directory,
        ))


class SessionState(Enum):
    """Lifecycle of a watch session."""
    IDLE = "idle"
    WATCHING = "watching"
    STOPPING = "stopping"


class WatchSession:
    """Monitors one folder and organizes files as they arrive.

    The session starts in IDLE, moves to WATCHING on start() and to
    STOPPING on stop(); the worker returns it to IDLE when it exits.
    Stopping is cooperative: an in-flight settle delay or move finishes
    before the worker notices the stop flag.
    """

    def __init__(
        self,
        folder: Path,
        rules: RuleSource,
        config: Optional[WatcherConfig] = None,
        reporter: Optional[EventReporter] = None,
        file_ops: Optional[FileOperations] = None,
        settle: Optional[SettleStrategy] = None,
        exclude_patterns: Iterable[str] = (),
        on_organized: Optional[Callable[[FileOrganizedEvent], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        """Initialize the session.

        Args:
            folder: Folder to watch; also the root of the category folders.
            rules: Category rules used for classification.
            config: Watcher timing configuration.
            reporter: Destination for log lines and notifications.
            file_ops: Mover implementation.
            settle: Settle strategy; defaults to the one named in config.
            exclude_patterns: Glob patterns for names to leave alone.
            on_organized: Called after every successful move.
            clock: Monotonic time source for debouncing.
            observer_factory: Builds the watchdog observer.
        """
        self.folder = normalize_folder(folder)
        self.rules = as_rules(rules)
        self.config = config or WatcherConfig()
        self.reporter = reporter or EventReporter()
        self.file_ops = file_ops or FileOperations()
        self.settle = settle or make_settle_strategy(self.config)
        self.filter = EventFilter(self.folder, self.rules, exclude_patterns)
        self.on_organized = on_organized
        self.session_id = uuid.uuid4().hex[:8]
        self.started_at: Optional[str] = None
        self.files_organized = 0

        self._clock = clock
        self._observer_factory = observer_factory
        self.debouncer = DebounceTracker(
            self.config.create_debounce,
            self.config.modify_debounce,
            clock=clock,
        )
        self._state = SessionState.IDLE
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        """Check if the session is watching with a live worker."""
        with self._lock:
            return (
                self._state is SessionState.WATCHING
                and self._worker is not None
                and self._worker.is_alive()
            )

    def start(self) -> None:
        """Provision category folders, install the watch and spawn the worker.

        Starting a session that is already watching does nothing.

        Raises:
            WatcherError: If the folder is missing, the previous worker is
                still retiring, or the observer cannot be installed.
            FileProcessingError: If a category folder cannot be created.
        """
        with self._lock:
            if self._state is SessionState.WATCHING:
                logger.warning(f"Already watching {self.folder}")
                return
            if self._state is SessionState.STOPPING:
                raise WatcherError(
                    "Previous watch worker is still stopping",
                    folder=str(self.folder),
                )

            if not self.folder.is_dir():
                raise WatcherError(
                    "Folder does not exist or is not a directory",
                    folder=str(self.folder),
                )

            self.file_ops.ensure_category_folders(self.folder, self.rules.names)

            events: "Queue[RawEvent]" = Queue()
            observer = self._observer_factory()
            try:
                observer.schedule(
                    OrganizerEventHandler(events),
                    str(self.folder),
                    recursive=False,
                )
                observer.start()
            except OSError as e:
                raise WatcherError(
                    f"Cannot watch folder: {e}",
                    folder=str(self.folder),
                    cause=e,
                )

            self._stop_event = threading.Event()
            self.debouncer.clear_all()
            self._worker = threading.Thread(
                target=self._run,
                args=(observer, events, self._stop_event),
                daemon=True,
                name=f"WatchSession-{self.session_id}",
            )
            self._state = SessionState.WATCHING
            self.started_at = now_timestamp()
            self._worker.start()

        self.reporter.success(f"Monitoring started: {self.folder}", folder=str(self.folder))

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Ask the worker to exit and wait a bounded time for it.

        Args:
            timeout: Seconds to wait. Defaults to the configured stop
                timeout (longest settle delay + poll interval + 1 s).

        Returns:
            True if the worker has exited, False if it is still finishing
            in the background.
        """
        with self._lock:
            if self._state is SessionState.IDLE:
                return True
            worker = self._worker
            if self._state is SessionState.WATCHING:
                self._state = SessionState.STOPPING
                self._stop_event.set()
                self.reporter.info(f"Stop signal sent: {self.folder}")

        if timeout is None:
            timeout = self.config.effective_stop_timeout
        if worker is not None:
            worker.join(timeout=timeout)
            if worker.is_alive():
                self.reporter.warning(
                    f"Watch worker for {self.folder} did not exit within {timeout:.1f}s; "
                    "it will finish in the background"
                )
                return False

        self.reporter.success(f"Monitoring stopped: {self.folder}", folder=str(self.folder))
        return True

    def _run(
        self,
        observer: Observer,
        events: "Queue[RawEvent]",
        stop_event: threading.Event
    ) -> None:
        """Worker loop: the observer stays alive exactly as long as this runs."""
        set_correlation_id(self.session_id)
        try:
            while not stop_event.is_set():
                try:
                    event = events.get(timeout=self.config.poll_interval)
                except Empty:
                    continue

                try:
                    self.process_event(event, stop_event)
                except Exception as e:
                    logger.error(f"Error in watch loop for {self.folder}: {e}")
        finally:
            logger.info(f"Stop signal received, shutting down watcher: {self.folder}")
            observer.stop()
            observer.join(timeout=self.config.effective_stop_timeout)
            with self._lock:
                self._state = SessionState.IDLE

    def process_event(
        self,
        event: RawEvent,
        stop_event: Optional[threading.Event] = None
    ) -> None:
        """Process every candidate path of one raw event, in order."""
        if event.kind is EventKind.CREATE:
            logger.debug(f"File create event detected ({len(event.paths)} paths)")
        for raw_path in event.paths:
            if stop_event is not None and stop_event.is_set():
                return
            self.process_path(Path(raw_path), event.kind, event.is_directory)

    def process_path(
        self,
        path: Path,
        kind: EventKind,
        is_directory: bool = False
    ) -> Optional[Path]:
        """Filter, debounce, settle, classify and move a single path.

        Failures are reported and swallowed so the loop can continue.

        Returns:
            The final path when the file was moved, otherwise None.
        """
        reason = self.filter.rejection_reason(path, kind, is_directory)
        if reason is not None:
            logger.debug(f"Skipping {path.name} ({reason})")
            return None

        key = str(path)
        if not self.debouncer.should_process(key, kind):
            elapsed = self.debouncer.seconds_since(key) or 0.0
            self.reporter.info(
                f"File {path.name} was processed {elapsed:.1f}s ago, skipping",
                file_path=key,
            )
            return None

        self.reporter.info(f"Processing file: {path.name}", file_path=key)
        self.settle.wait(path, kind)

        category = classify(path.name, self.rules)
        if category is None:
            self.reporter.info(f"No matching category for {path.name}, left in place", file_path=key)
            return None

        try:
            final_path = self.file_ops.move_file(path, category, self.folder)
        except FileProcessingError as e:
            self.reporter.error(f"Failed to move {path.name}: {e.message}", file_path=key)
            return None

        self.files_organized += 1
        if final_path.name == path.name:
            self.reporter.success(f"New file {path.name} organized into {category}", category=category)
        else:
            self.reporter.success(
                f"New file {path.name} organized into {category} as {final_path.name}",
                category=category,
            )

        event = FileOrganizedEvent(
            original_name=path.name,
            actual_name=final_path.name,
            category=category,
            timestamp=now_timestamp(),
            watched_folder=str(self.folder),
            original_path=key,
            final_path=str(final_path),
        )
        self.reporter.file_organized(event)
        if self.on_organized is not None:
            try:
                self.on_organized(event)
            except Exception as e:
                logger.error(f"Error in organized callback: {e}")
        return final_path

    def __repr__(self) -> str:
        return f"WatchSession({str(self.folder)!r}, state={self.state.value})"
