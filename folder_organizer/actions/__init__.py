"""Actions module for file operations."""

from .file_operations import FileOperations
from .undo_log import (
    UndoLog,
    UndoAction,
    new_action_id,
    PROVENANCE_MANUAL,
    PROVENANCE_MONITORING,
)

__all__ = [
    "FileOperations",
    "UndoLog",
    "UndoAction",
    "new_action_id",
    "PROVENANCE_MANUAL",
    "PROVENANCE_MONITORING",
]
