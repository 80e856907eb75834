"""
Custom Exceptions
=================

Defines custom exception classes for the Folder Organizer.
All exceptions include error codes for programmatic handling.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Error codes for programmatic error handling."""

    # General errors (1000-1099)
    UNKNOWN_ERROR = 1000
    CONFIGURATION_ERROR = 1001
    FILE_NOT_FOUND = 1002
    PERMISSION_DENIED = 1003

    # Processing errors (1100-1199)
    PROCESSING_FAILED = 1100
    DIRECTORY_CREATION_FAILED = 1101
    TOO_MANY_COLLISIONS = 1102

    # Watcher errors (1200-1299)
    WATCH_START_FAILED = 1200

    # Undo errors (1300-1399)
    UNDO_NOT_FOUND = 1300
    UNDO_TARGET_GONE = 1301
    UNDO_ORIGINAL_OCCUPIED = 1302


class OrganizerError(Exception):
    """Base exception for all Folder Organizer errors.

    Attributes:
        message: Human-readable error message.
        error_code: Programmatic error code.
        details: Additional error context.
        cause: Original exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[dict] = None,
        cause: Optional[Exception] = None
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Programmatic error code.
            details: Additional context as key-value pairs.
            cause: Original exception if wrapping another error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """Return a formatted error string."""
        result = f"[{self.error_code.name}] {self.message}"
        if self.details:
            result += f" | Details: {self.details}"
        if self.cause:
            result += f" | Caused by: {type(self.cause).__name__}: {self.cause}"
        return result

    def to_dict(self) -> dict:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "error_name": self.error_code.name,
            "details": self.details,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(OrganizerError):
    """Raised when there's a configuration problem.

    Examples:
        - Invalid configuration file format
        - Two categories claiming the same extension
        - Category names that are not safe folder names
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type
        super().__init__(
            message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
            **kwargs
        )


class FileProcessingError(OrganizerError):
    """Raised when a filesystem operation fails.

    Examples:
        - Source file vanished before it could be moved
        - Destination directory cannot be created
        - Permission denied
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.PROCESSING_FAILED,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if file_path:
            details["file_path"] = file_path
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            **kwargs
        )

    @classmethod
    def from_os_error(
        cls,
        message: str,
        error: OSError,
        file_path: Optional[str] = None,
        default_code: ErrorCode = ErrorCode.PROCESSING_FAILED
    ) -> "FileProcessingError":
        """Wrap an OSError, picking the error code from its type."""
        if isinstance(error, FileNotFoundError):
            code = ErrorCode.FILE_NOT_FOUND
        elif isinstance(error, PermissionError):
            code = ErrorCode.PERMISSION_DENIED
        else:
            code = default_code
        return cls(
            f"{message}: {error}",
            file_path=file_path,
            error_code=code,
            cause=error
        )


class WatcherError(OrganizerError):
    """Raised when a watch session cannot be started."""

    def __init__(
        self,
        message: str,
        folder: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if folder:
            details["folder"] = folder
        super().__init__(
            message,
            error_code=ErrorCode.WATCH_START_FAILED,
            details=details,
            **kwargs
        )


class UndoError(OrganizerError):
    """Base class for undo precondition failures."""

    def __init__(
        self,
        message: str,
        action_id: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if action_id:
            details["action_id"] = action_id
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            **kwargs
        )


class UndoNotFoundError(UndoError):
    """No undo action with the requested id exists."""

    def __init__(self, action_id: str, **kwargs):
        super().__init__(
            f"No undo action with id {action_id}",
            action_id=action_id,
            error_code=ErrorCode.UNDO_NOT_FOUND,
            **kwargs
        )


class UndoTargetGoneError(UndoError):
    """The moved file is no longer where the move left it."""

    def __init__(self, action_id: str, moved_to_path: str, **kwargs):
        details = kwargs.pop("details", {})
        details["moved_to_path"] = moved_to_path
        super().__init__(
            f"Moved file no longer exists: {moved_to_path}",
            action_id=action_id,
            error_code=ErrorCode.UNDO_TARGET_GONE,
            details=details,
            **kwargs
        )


class OriginalOccupiedError(UndoError):
    """Something already sits at the path the file would be restored to."""

    def __init__(self, action_id: str, original_path: str, **kwargs):
        details = kwargs.pop("details", {})
        details["original_path"] = original_path
        super().__init__(
            f"Original location is occupied: {original_path}",
            action_id=action_id,
            error_code=ErrorCode.UNDO_ORIGINAL_OCCUPIED,
            details=details,
            **kwargs
        )
