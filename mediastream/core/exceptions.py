"""Centralized exception definitions and error taxonomy."""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Describes severity for surfaced errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categorization used for error routing and status mapping."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RANGE = "range"
    TIMEOUT = "timeout"
    STORAGE = "storage"
    SYSTEM = "system"


class MediaStreamException(Exception):
    """Base exception type for the application."""

    def __init__(
        self,
        message: str,
        error_code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.error_code = error_code
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception metadata into a dict."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "details": self.details,
            "type": self.__class__.__name__
        }


# Client errors
class InvalidRequestException(MediaStreamException):
    """Raised for a missing or malformed identifier or declared size."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        request_details = details or {}
        if field:
            request_details["field"] = field
        super().__init__(
            message=message,
            error_code="INVALID_REQUEST",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            details=request_details
        )


class MediaNotFoundException(MediaStreamException):
    """Raised when no durable media file exists for an identifier."""

    def __init__(self, file_id: str):
        super().__init__(
            message=f"Media not found: {file_id}",
            error_code="MEDIA_NOT_FOUND",
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.LOW,
            details={"file_id": file_id}
        )


class InvalidRangeException(MediaStreamException):
    """Raised when a requested byte range does not fall inside the file."""

    def __init__(self, start: int, end: int, file_size: int):
        super().__init__(
            message=f"Invalid range: bytes={start}-{end} for size {file_size}",
            error_code="INVALID_RANGE",
            category=ErrorCategory.RANGE,
            severity=ErrorSeverity.LOW,
            details={"start": start, "end": end, "file_size": file_size}
        )
        self.file_size = file_size


class UploadTimeoutException(MediaStreamException):
    """Raised when the client stalls while sending an upload body."""

    def __init__(self, file_id: str, timeout: float, written_size: int):
        super().__init__(
            message=f"Timed out after {timeout}s waiting for upload body: {file_id}",
            error_code="UPLOAD_TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            severity=ErrorSeverity.MEDIUM,
            details={"file_id": file_id, "timeout": timeout, "written_size": written_size}
        )


# Storage exceptions
class StorageFailureException(MediaStreamException):
    """Raised for open/seek/read/write failures against storage."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        storage_details = details or {}
        if operation:
            storage_details["operation"] = operation
        super().__init__(
            message=message,
            error_code="STORAGE_FAILURE",
            category=ErrorCategory.STORAGE,
            severity=ErrorSeverity.HIGH,
            details=storage_details,
            original_error=original_error
        )


# System exceptions
class ConfigurationException(MediaStreamException):
    """Raised for configuration/initialization failures."""

    def __init__(self, message: str, config_key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        config_details = details or {}
        if config_key:
            config_details["config_key"] = config_key
        super().__init__(
            message=message,
            error_code="CONFIG_ERROR",
            category=ErrorCategory.SYSTEM,
            severity=ErrorSeverity.CRITICAL,
            details=config_details
        )
