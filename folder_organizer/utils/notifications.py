"""
Event Notifications
===================

Notification payloads the engine reports, the sink interface that receives
them, and the reporter that mirrors every log line into the logger.
A desktop notifier sink backed by notify-send is provided for Linux.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass, asdict, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Dict, Any

from folder_organizer.utils.logging_config import get_logger

logger = get_logger(__name__)


def now_timestamp() -> str:
    """Local timestamp used in every notification payload."""
    return datetime.now().isoformat(timespec="seconds")


class Severity(Enum):
    """Severity of a log line sent to the sink."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class LogMessage:
    """A log line for the host UI."""
    message: str
    severity: Severity = Severity.INFO
    timestamp: str = field(default_factory=now_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "severity": self.severity.value,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class FileOrganizedEvent:
    """A file was moved into a category folder.

    Attributes:
        original_name: File name before the move.
        actual_name: File name after collision renaming.
        category: Category the file was sorted into.
        timestamp: When the move happened.
        watched_folder: Folder the file was organized in.
        original_path: Full path before the move.
        final_path: Full path after the move.
    """
    original_name: str
    actual_name: str
    category: str
    timestamp: str
    watched_folder: str
    original_path: str
    final_path: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FileUndoneEvent:
    """A manual move was reversed."""
    action_id: str
    file_name: str
    original_path: str
    category: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EventSink:
    """Receiver for engine notifications.

    Subclasses override the hooks they care about; the defaults ignore
    everything, so a bare EventSink behaves like no sink at all.
    """

    def on_log(self, message: LogMessage) -> None:
        pass

    def on_file_organized(self, event: FileOrganizedEvent) -> None:
        pass

    def on_file_undone(self, event: FileUndoneEvent) -> None:
        pass


class CallbackSink(EventSink):
    """Forwards every notification to a single callable.

    The callable receives ``(kind, payload)`` where kind is one of
    ``"log-message"``, ``"file-organized"`` or ``"file-undone"`` and payload
    is the notification as a dictionary.
    """

    def __init__(self, callback: Callable[[str, Dict[str, Any]], None]):
        self.callback = callback

    def on_log(self, message: LogMessage) -> None:
        self.callback("log-message", message.to_dict())

    def on_file_organized(self, event: FileOrganizedEvent) -> None:
        self.callback("file-organized", event.to_dict())

    def on_file_undone(self, event: FileUndoneEvent) -> None:
        self.callback("file-undone", event.to_dict())


class EventReporter:
    """Writes log lines to the logger and forwards notifications to a sink.

    Sink failures are logged and never reach the caller.
    """

    def __init__(self, sink: Optional[EventSink] = None, log: Optional[logging.Logger] = None):
        self.sink = sink
        self.logger = log or logger

    def log(self, message: str, severity: Severity = Severity.INFO, **extra) -> None:
        """Log a line and send it to the sink.

        Args:
            message: Text of the log line.
            severity: Sink severity; success is logged at INFO.
            **extra: Structured fields attached to the log record.
        """
        self.logger.log(_LOG_LEVELS[severity], message, extra=extra or None)
        self._deliver("on_log", LogMessage(message=message, severity=severity))

    def info(self, message: str, **extra) -> None:
        self.log(message, Severity.INFO, **extra)

    def success(self, message: str, **extra) -> None:
        self.log(message, Severity.SUCCESS, **extra)

    def warning(self, message: str, **extra) -> None:
        self.log(message, Severity.WARNING, **extra)

    def error(self, message: str, **extra) -> None:
        self.log(message, Severity.ERROR, **extra)

    def file_organized(self, event: FileOrganizedEvent) -> None:
        self._deliver("on_file_organized", event)

    def file_undone(self, event: FileUndoneEvent) -> None:
        self._deliver("on_file_undone", event)

    def _deliver(self, hook: str, payload) -> None:
        if self.sink is None:
            return
        try:
            getattr(self.sink, hook)(payload)
        except Exception as e:
            self.logger.error(f"Error in event sink {hook}: {e}")


@dataclass
class NotificationConfig:
    """Notification configuration."""
    enabled: bool = True
    show_on_organize: bool = True
    show_on_undo: bool = True
    show_on_error: bool = True
    timeout_ms: int = 5000  # 5 seconds


class DesktopNotifier(EventSink):
    """Sends desktop notifications for organization events.

    Uses notify-send on Linux for native notifications.
    """

    APP_NAME = "Folder Organizer"

    def __init__(self, config: Optional[NotificationConfig] = None):
        """Initialize the notifier.

        Args:
            config: Notification configuration.
        """
        self.config = config or NotificationConfig()
        self._available = shutil.which("notify-send") is not None

        if self._available:
            logger.debug("Desktop notifications available")
        else:
            logger.warning("Desktop notifications not available (notify-send not found)")

    @property
    def is_available(self) -> bool:
        """Check if notifications are available and enabled."""
        return self._available and self.config.enabled

    def _get_icon(self, severity: Severity) -> str:
        icons = {
            Severity.INFO: "dialog-information",
            Severity.SUCCESS: "emblem-ok-symbolic",
            Severity.WARNING: "dialog-warning",
            Severity.ERROR: "dialog-error",
        }
        return icons.get(severity, "folder")

    def _get_urgency(self, severity: Severity) -> str:
        urgencies = {
            Severity.INFO: "low",
            Severity.SUCCESS: "normal",
            Severity.WARNING: "normal",
            Severity.ERROR: "critical",
        }
        return urgencies.get(severity, "normal")

    def send(
        self,
        title: str,
        message: str,
        severity: Severity = Severity.INFO
    ) -> bool:
        """Send a desktop notification.

        Args:
            title: Notification title.
            message: Notification body.
            severity: Controls icon and urgency.

        Returns:
            True if notification was sent successfully.
        """
        if not self.is_available:
            return False

        cmd = [
            "notify-send",
            "--app-name", self.APP_NAME,
            "--icon", self._get_icon(severity),
            "--urgency", self._get_urgency(severity),
            "--expire-time", str(self.config.timeout_ms),
            title,
            message
        ]
        try:
            subprocess.run(cmd, capture_output=True, timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"Failed to send notification: {e}")
            return False

        logger.debug(f"Notification sent: {title}")
        return True

    def on_log(self, message: LogMessage) -> None:
        if message.severity is Severity.ERROR and self.config.show_on_error:
            self.send("Organizer error", message.message[:100], Severity.ERROR)

    def on_file_organized(self, event: FileOrganizedEvent) -> None:
        if not self.config.show_on_organize:
            return
        self.send(
            "File organized",
            f"{event.actual_name}\n→ {event.category}",
            Severity.SUCCESS
        )

    def on_file_undone(self, event: FileUndoneEvent) -> None:
        if not self.config.show_on_undo:
            return
        self.send(
            "Move undone",
            f"{event.file_name}\n→ {Path(event.original_path).parent}",
            Severity.INFO
        )
