"""Utilities module for Folder Organizer."""

from .logging_config import setup_logging, get_logger, LoggingConfig
from .exceptions import (
    ErrorCode,
    OrganizerError,
    ConfigurationError,
    FileProcessingError,
    WatcherError,
    UndoError,
    UndoNotFoundError,
    UndoTargetGoneError,
    OriginalOccupiedError,
)
from .notifications import (
    Severity,
    LogMessage,
    FileOrganizedEvent,
    FileUndoneEvent,
    EventSink,
    CallbackSink,
    EventReporter,
    DesktopNotifier,
    NotificationConfig,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "LoggingConfig",
    "ErrorCode",
    "OrganizerError",
    "ConfigurationError",
    "FileProcessingError",
    "WatcherError",
    "UndoError",
    "UndoNotFoundError",
    "UndoTargetGoneError",
    "OriginalOccupiedError",
    "Severity",
    "LogMessage",
    "FileOrganizedEvent",
    "FileUndoneEvent",
    "EventSink",
    "CallbackSink",
    "EventReporter",
    "DesktopNotifier",
    "NotificationConfig",
]
