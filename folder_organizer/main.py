"""
Folder Organizer - Main Application
===================================

Command surface of the organizer engine and its CLI entry point.
Coordinates batch organizing, per-folder watch sessions and undo.
"""

import argparse
import signal
import sys
import threading
import time
from dataclasses import dataclass, asdict, replace
from fnmatch import fnmatch
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml

from folder_organizer.actions import FileOperations, UndoAction, UndoLog, PROVENANCE_MANUAL
from folder_organizer.classification import classify
from folder_organizer.config import Config, normalize_folder
from folder_organizer.monitoring import SessionRegistry, WatchSession
from folder_organizer.utils.exceptions import (
    ErrorCode,
    FileProcessingError,
    OrganizerError,
    UndoError,
    UndoNotFoundError,
)
from folder_organizer.utils.logging_config import setup_logging, get_logger
from folder_organizer.utils.notifications import (
    DesktopNotifier,
    EventReporter,
    EventSink,
    FileOrganizedEvent,
    FileUndoneEvent,
    now_timestamp,
)

logger = get_logger(__name__)

FolderLike = Union[str, Path]


@dataclass
class FolderStats:
    """Per-folder organizing statistics."""
    files_organized: int = 0
    last_organized: Optional[str] = None
    monitoring_since: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class FolderOrganizer:
    """Main orchestrator for the Folder Organizer.

    Owns the session registry, one undo log and one stats record per
    folder, and the reporter every component writes through.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        sink: Optional[EventSink] = None,
        file_ops: Optional[FileOperations] = None,
    ):
        """Initialize the organizer.

        Args:
            config: Loaded configuration; defaults when None.
            sink: Receiver for log lines and move/undo notifications.
            file_ops: Mover shared by batch runs and watch sessions.
        """
        self.config = config or Config()
        self.reporter = EventReporter(sink)
        self.file_ops = file_ops or FileOperations()
        self.registry = SessionRegistry()

        self._undo_logs: Dict[Path, UndoLog] = {}
        self._stats: Dict[Path, FolderStats] = {}
        self._lock = threading.Lock()

    # =====================
    # Organizing
    # =====================

    def organize_now(self, folder: FolderLike) -> int:
        """Organize the files already in a folder (one synchronous pass).

        Every successful move is recorded in the folder's undo log.

        Args:
            folder: Folder to organize.

        Returns:
            Number of files moved.

        Raises:
            FileProcessingError: If the folder cannot be listed or a
                category folder cannot be created.
        """
        folder = normalize_folder(folder)
        if not folder.is_dir():
            raise FileProcessingError(
                "Not a directory",
                file_path=str(folder),
                error_code=ErrorCode.FILE_NOT_FOUND
            )

        rules = self.config.rules_for(folder)
        exclude_patterns = self.config.exclude_patterns_for(folder)
        self.file_ops.ensure_category_folders(folder, rules.names)

        try:
            entries = sorted(folder.iterdir())
        except OSError as e:
            raise FileProcessingError.from_os_error(
                "Cannot list folder", e, file_path=str(folder)
            )

        undo_log = self._undo_log(folder)
        files_moved = 0

        for entry in entries:
            if not entry.is_file() or entry.name.startswith("."):
                continue
            if any(fnmatch(entry.name, pattern) for pattern in exclude_patterns):
                logger.debug(f"Excluded by pattern: {entry.name}")
                continue

            category = classify(entry.name, rules)
            if category is None:
                self.reporter.info(f"Skipping unmatched file: {entry.name}")
                continue

            try:
                final_path = self.file_ops.move_file(entry, category, folder)
            except FileProcessingError as e:
                self.reporter.error(f"Failed to move {entry.name}: {e.message}", file_path=str(entry))
                continue

            undo_log.add(UndoAction.for_move(
                entry, final_path, category, folder, source=PROVENANCE_MANUAL
            ))
            self.reporter.success(f"Moved {entry.name} to {category}", category=category)
            self.reporter.file_organized(FileOrganizedEvent(
                original_name=entry.name,
                actual_name=final_path.name,
                category=category,
                timestamp=now_timestamp(),
                watched_folder=str(folder),
                original_path=str(entry),
                final_path=str(final_path),
            ))
            files_moved += 1

        self._record_organized(folder, files_moved)
        self.reporter.success(f"Organize complete, moved {files_moved} files", folder=str(folder))
        return files_moved

    # =====================
    # Watching
    # =====================

    def start_watch(self, folder: FolderLike) -> WatchSession:
        """Start watching a folder; a no-op if it is already watched.

        Raises:
            WatcherError, FileProcessingError: If the session cannot start.
        """
        session = self.registry.start(folder, self._build_session)
        with self._lock:
            stats = self._stats.setdefault(session.folder, FolderStats())
            stats.monitoring_since = session.started_at
        return session

    def stop_watch(self, folder: FolderLike, timeout: Optional[float] = None) -> bool:
        """Stop watching a folder. Stopping an unwatched folder is fine.

        Returns:
            False if the worker was still finishing when the wait ran out.
        """
        key = normalize_folder(folder)
        stopped = self.registry.stop(key, timeout)
        with self._lock:
            if key in self._stats:
                self._stats[key].monitoring_since = None
        return stopped

    def toggle_watch(self, folder: FolderLike) -> bool:
        """Flip the watch state of a folder.

        Returns:
            True if the folder is being watched afterwards.
        """
        if self.is_watching(folder):
            self.stop_watch(folder)
            return False
        self.start_watch(folder)
        return True

    def is_watching(self, folder: FolderLike) -> bool:
        return self.registry.is_watching(folder)

    def _build_session(self, folder: Path) -> WatchSession:
        return WatchSession(
            folder,
            self.config.rules_for(folder),
            config=self.config.watcher,
            reporter=self.reporter,
            file_ops=self.file_ops,
            exclude_patterns=self.config.exclude_patterns_for(folder),
            on_organized=lambda event: self._record_organized(folder, 1),
        )

    # =====================
    # Undo
    # =====================

    def list_undo(self, folder: FolderLike, count: int = 10) -> List[UndoAction]:
        """Most recent undoable moves for a folder, newest first."""
        undo_log = self._existing_undo_log(folder)
        return undo_log.latest(count) if undo_log else []

    def undo(self, folder: FolderLike, action_id: str) -> str:
        """Reverse one manual move.

        Returns:
            A human-readable confirmation.

        Raises:
            UndoNotFoundError, UndoTargetGoneError, OriginalOccupiedError:
                When the action cannot be undone (the entry is consumed
                in the latter two cases).
            FileProcessingError: If moving the file back fails.
        """
        undo_log = self._existing_undo_log(folder)
        if undo_log is None:
            raise UndoNotFoundError(action_id)

        try:
            action = undo_log.undo(action_id)
        except (UndoError, FileProcessingError) as e:
            self.reporter.error(f"Undo failed: {e.message}")
            raise

        self.reporter.success(f"Undone: {action.file_name} restored to {action.original_path}")
        self.reporter.file_undone(FileUndoneEvent(
            action_id=action.id,
            file_name=action.file_name,
            original_path=action.original_path,
            category=action.category,
            timestamp=now_timestamp(),
        ))
        return f"Restored {action.file_name} to {action.original_path}"

    def clear_undo(self, folder: FolderLike) -> None:
        undo_log = self._existing_undo_log(folder)
        if undo_log is not None:
            undo_log.clear()

    def undo_count(self, folder: FolderLike) -> int:
        undo_log = self._existing_undo_log(folder)
        return len(undo_log) if undo_log else 0

    def _undo_log(self, folder: Path) -> UndoLog:
        with self._lock:
            undo_log = self._undo_logs.get(folder)
            if undo_log is None:
                undo_log = UndoLog(self.config.undo.max_entries, file_ops=self.file_ops)
                self._undo_logs[folder] = undo_log
            return undo_log

    def _existing_undo_log(self, folder: FolderLike) -> Optional[UndoLog]:
        with self._lock:
            return self._undo_logs.get(normalize_folder(folder))

    # =====================
    # Stats & lifecycle
    # =====================

    def get_stats(self, folder: FolderLike) -> FolderStats:
        with self._lock:
            stats = self._stats.get(normalize_folder(folder))
            return replace(stats) if stats else FolderStats()

    def _record_organized(self, folder: Path, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            stats = self._stats.setdefault(folder, FolderStats())
            stats.files_organized += count
            stats.last_organized = now_timestamp()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop every session and drop all undo history."""
        logger.info("Stopping Folder Organizer...")
        self.registry.stop_all(timeout)
        with self._lock:
            for undo_log in self._undo_logs.values():
                undo_log.clear()
            self._undo_logs.clear()
            for stats in self._stats.values():
                stats.monitoring_since = None
        logger.info("Folder Organizer stopped.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="folder-organizer",
        description="Folder Organizer - sort files into category folders by extension"
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        default=None,
        help='Path to the YAML configuration file'
    )
    parser.add_argument(
        '--log-level',
        default=None,
        help='Override the configured log level (DEBUG, INFO, ...)'
    )
    parser.add_argument(
        '--notify',
        action='store_true',
        help='Show desktop notifications'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    organize = subparsers.add_parser('organize', help='Organize existing files once')
    organize.add_argument('folders', nargs='+', type=Path)

    watch = subparsers.add_parser('watch', help='Watch folders and organize new files')
    watch.add_argument(
        'folders',
        nargs='*',
        type=Path,
        help='Folders to watch (default: the configured paths)'
    )

    subparsers.add_parser('categories', help='List the configured categories')
    return parser


def _run_watch(organizer: FolderOrganizer, folders: List[Path]) -> int:
    for folder in folders:
        path_config = organizer.config.get_path_config(folder)
        if path_config is not None and path_config.auto_organize:
            organizer.organize_now(folder)
        organizer.start_watch(folder)

    stop_requested = threading.Event()

    def signal_handler(sig, frame):
        stop_requested.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("Folder Organizer is running. Press Ctrl+C to stop.")
    try:
        while not stop_requested.is_set():
            time.sleep(1)
    finally:
        organizer.shutdown()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with CLI support."""
    args = build_parser().parse_args(argv)

    try:
        config = Config.load(args.config)
    except (OrganizerError, yaml.YAMLError) as e:
        print(f"✗ Invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.log_level:
        config.logging.level = args.log_level.upper()
    setup_logging(config.logging)

    if args.command == 'categories':
        for name, extensions in config.categories.items():
            print(f"  {name}: {', '.join(extensions) or '(none)'}")
        return 0

    sink = DesktopNotifier() if args.notify else None
    organizer = FolderOrganizer(config, sink=sink)

    try:
        if args.command == 'organize':
            for folder in args.folders:
                count = organizer.organize_now(folder)
                print(f"✓ {folder}: organized {count} files")
            return 0

        folders = list(args.folders) or [p.path for p in config.paths]
        if not folders:
            print("✗ No folders given and none configured", file=sys.stderr)
            return 2
        return _run_watch(organizer, folders)

    except OrganizerError as e:
        logger.error(f"Failed: {e}")
        print(f"✗ {e.message}", file=sys.stderr)
        organizer.shutdown()
        return 1


if __name__ == "__main__":
    sys.exit(main())
