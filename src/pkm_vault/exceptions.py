"""Custom exceptions for the vault engine.

Provides a structured exception hierarchy with error codes and
machine-readable error information. These are raised inside the engine;
the public facade converts them into sentinel return values plus
diagnostics so nothing escapes to the UI.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Storage errors (1xxx)
    STORAGE_READ_FAILED = 1001
    STORAGE_WRITE_FAILED = 1002
    STORAGE_DELETE_FAILED = 1003
    STORAGE_PRUNE_FAILED = 1004

    # Index errors (2xxx)
    INDEX_CORRUPTED = 2001
    INDEX_ENTRY_REJECTED = 2002
    INDEX_STALE_ENTRY = 2003

    # Input errors (3xxx)
    NOTE_PAYLOAD_INVALID = 3001
    NOTE_ENTRY_SKIPPED = 3002
    NOTE_UNREADABLE = 3003

    # Attachment errors (4xxx)
    ATTACHMENT_INVALID = 4001
    ATTACHMENT_WRITE_FAILED = 4002
    ATTACHMENT_COPY_FAILED = 4003

    # Backup errors (5xxx)
    BACKUP_UNAVAILABLE = 5001
    BACKUP_COMMAND_FAILED = 5002
    BACKUP_SETTINGS_INVALID = 5003

    # Anything unexpected caught at the facade
    INTERNAL_ERROR = 9001


class VaultError(Exception):
    """Base exception for all vault errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class StorageError(VaultError):
    """Raised for file-system persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if path:
            details["path"] = path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class IndexCorruptedError(StorageError):
    """Raised when the sidecar index exists but cannot be parsed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            operation="read_index",
            path=path,
            code=ErrorCode.INDEX_CORRUPTED,
            original_error=original_error,
        )


class AttachmentError(VaultError):
    """Raised for attachment payloads that cannot be stored."""

    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        code: ErrorCode = ErrorCode.ATTACHMENT_INVALID,
    ):
        details: Dict[str, Any] = {}
        if file_name:
            details["file_name"] = file_name[:100]
        super().__init__(message, code=code, details=details)
        self.file_name = file_name


class BackupError(VaultError):
    """Raised for backup failures (git missing, command failed)."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.BACKUP_COMMAND_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, details=details)

