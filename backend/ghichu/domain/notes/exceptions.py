"""
Note Store Exceptions

Domain-specific exceptions for note storage operations.
Storage errors are never swallowed on the write path; context is preserved
through exception chaining.
"""

from typing import Optional, Any, Dict


class NoteStoreException(Exception):
    """Base exception for note store errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class InvalidKeyException(NoteStoreException):
    """Raised when a key fails format validation. No I/O has been attempted."""

    def __init__(self, key: Any):
        super().__init__(
            message=f"Invalid note key: {key!r}",
            error_code="INVALID_KEY",
            details={"key": str(key)},
        )
        self.key = key


class NoteNotFoundException(NoteStoreException):
    """Raised when a key (or its alias target) has no live note."""

    def __init__(self, key: str, resolved_key: Optional[str] = None):
        details = {"key": key}
        if resolved_key and resolved_key != key:
            details["resolved_key"] = resolved_key

        super().__init__(
            message=f"Note not found: {key}",
            error_code="NOTE_NOT_FOUND",
            details=details,
        )
        self.key = key


class StorageFailureException(NoteStoreException):
    """Raised when the underlying persistence layer fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if key:
            details["key"] = key
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="STORAGE_FAILURE", details=details
        )
        if original_error:
            self.__cause__ = original_error
