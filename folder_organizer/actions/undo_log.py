"""
Undo Log
========

Bounded, insertion-ordered record of recent manual moves, and the undo
operation that reverses one of them.
"""

import os
import secrets
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import List, Optional, Union

from folder_organizer.actions.file_operations import FileOperations
from folder_organizer.utils.exceptions import (
    FileProcessingError,
    UndoNotFoundError,
    UndoTargetGoneError,
    OriginalOccupiedError,
)
from folder_organizer.utils.logging_config import get_logger
from folder_organizer.utils.notifications import now_timestamp

logger = get_logger(__name__)

PROVENANCE_MANUAL = "manual"
PROVENANCE_MONITORING = "monitoring"


def new_action_id() -> str:
    """Time-ordered id with a random tail, unique within a process."""
    return f"{int(time.time() * 1000):x}{secrets.token_hex(4)}"


@dataclass(frozen=True)
class UndoAction:
    """Record of a single move, sufficient to reverse it.

    Attributes:
        file_name: Name of the file before the move.
        original_path: Where the file was.
        moved_to_path: Where the move put it.
        category: Category folder it went into.
        folder_path: The organized folder the move belongs to.
        source: "manual" or "monitoring".
        timestamp: When the move happened.
        id: Unique identifier.
    """
    file_name: str
    original_path: str
    moved_to_path: str
    category: str
    folder_path: str
    source: str = PROVENANCE_MANUAL
    timestamp: str = field(default_factory=now_timestamp)
    id: str = field(default_factory=new_action_id)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def for_move(
        cls,
        original: Path,
        moved_to: Path,
        category: str,
        folder: Path,
        source: str = PROVENANCE_MANUAL
    ) -> "UndoAction":
        return cls(
            file_name=original.name,
            original_path=str(original),
            moved_to_path=str(moved_to),
            category=category,
            folder_path=str(folder),
            source=source,
        )


class UndoLog:
    """Bounded FIFO of undo actions.

    Adding to a full log evicts the oldest entry first. All operations are
    guarded by a lock so the log can be read from any thread.
    """

    MAX_ENTRIES = 50

    def __init__(
        self,
        max_entries: int = MAX_ENTRIES,
        file_ops: Optional[FileOperations] = None
    ):
        """Initialize the undo log.

        Args:
            max_entries: Capacity; the oldest entry is evicted beyond it.
            file_ops: File operations used to move files back.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.file_ops = file_ops or FileOperations()
        self._actions: "OrderedDict[str, UndoAction]" = OrderedDict()
        self._lock = threading.Lock()

    def add(self, action: UndoAction) -> None:
        """Append an action, evicting the oldest when full."""
        with self._lock:
            while len(self._actions) >= self.max_entries:
                evicted_id, _ = self._actions.popitem(last=False)
                logger.debug(f"Evicted undo action {evicted_id}")
            self._actions[action.id] = action

    def latest(self, count: int = 10) -> List[UndoAction]:
        """Get up to ``count`` actions, newest first."""
        if count <= 0:
            return []
        with self._lock:
            return list(reversed(self._actions.values()))[:count]

    def get(self, action_id: str) -> Optional[UndoAction]:
        with self._lock:
            return self._actions.get(action_id)

    def remove(self, action_id: str) -> Optional[UndoAction]:
        """Remove and return an action, or None if it is not logged."""
        with self._lock:
            return self._actions.pop(action_id, None)

    def clear(self) -> None:
        with self._lock:
            self._actions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._actions)

    def undo(self, action_id: Union[str, UndoAction]) -> UndoAction:
        """Move a file back to where an action found it.

        The entry is consumed before any filesystem check, so a failed undo
        cannot be retried with the same id.

        Args:
            action_id: Id of the action (or the action itself).

        Returns:
            The undone action.

        Raises:
            UndoNotFoundError: No action with that id.
            UndoTargetGoneError: The moved file no longer exists.
            OriginalOccupiedError: Something now sits at the original path.
            FileProcessingError: The rename back failed.
        """
        if isinstance(action_id, UndoAction):
            action_id = action_id.id

        action = self.remove(action_id)
        if action is None:
            raise UndoNotFoundError(action_id)

        moved_to = Path(action.moved_to_path)
        original = Path(action.original_path)

        if not moved_to.exists():
            logger.warning(f"Cannot undo {action.file_name}: moved file is gone ({moved_to})")
            raise UndoTargetGoneError(action.id, str(moved_to))

        if os.path.lexists(original):
            logger.warning(f"Cannot undo {action.file_name}: {original} is occupied")
            raise OriginalOccupiedError(action.id, str(original))

        try:
            self.file_ops.relocate(moved_to, original)
        except FileExistsError:
            logger.warning(f"Cannot undo {action.file_name}: {original} was taken during the move")
            raise OriginalOccupiedError(action.id, str(original))
        except OSError as e:
            raise FileProcessingError.from_os_error(
                "Failed to restore file", e, file_path=str(moved_to)
            )

        logger.info(f"Undone: {moved_to.name} -> {original}")
        return action
