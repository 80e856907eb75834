"""
Session Registry
================

Keyed collection of active watch sessions, at most one per folder.
"""

import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from folder_organizer.config.settings import normalize_folder
from folder_organizer.monitoring.watcher import WatchSession
from folder_organizer.utils.logging_config import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[Path], WatchSession]


class SessionRegistry:
    """Idempotent start/stop of watch sessions per folder.

    Starting a folder that is already being watched returns the running
    session untouched. A registered session whose worker has died is
    replaced. Stopping a folder that is not watched succeeds quietly.
    """

    def __init__(self):
        self._sessions: Dict[Path, WatchSession] = {}
        self._lock = threading.Lock()

    def start(self, folder: Union[str, Path], factory: SessionFactory) -> WatchSession:
        """Start watching a folder unless it is already watched.

        Args:
            folder: Folder to watch.
            factory: Builds a new, idle session for the normalized folder.

        Returns:
            The running session for the folder.

        Raises:
            WatcherError, FileProcessingError: If a new session fails to
                start; nothing is registered in that case.
        """
        key = normalize_folder(folder)
        with self._lock:
            existing = self._sessions.get(key)
            if existing is not None:
                if existing.is_running:
                    logger.warning(f"Already watching {key}, start ignored")
                    return existing
                logger.info(f"Replacing stale session for {key}")
                del self._sessions[key]

            session = factory(key)
            session.start()
            self._sessions[key] = session
            return session

    def stop(self, folder: Union[str, Path], timeout: Optional[float] = None) -> bool:
        """Stop and forget the session for a folder.

        Returns:
            False only when a worker was still running after the timeout.
        """
        key = normalize_folder(folder)
        with self._lock:
            session = self._sessions.pop(key, None)
        if session is None:
            logger.debug(f"No session to stop for {key}")
            return True
        return session.stop(timeout)

    def stop_all(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.stop(timeout)

    def get(self, folder: Union[str, Path]) -> Optional[WatchSession]:
        with self._lock:
            return self._sessions.get(normalize_folder(folder))

    def is_watching(self, folder: Union[str, Path]) -> bool:
        session = self.get(folder)
        return session is not None and session.is_running

    def folders(self) -> List[Path]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
