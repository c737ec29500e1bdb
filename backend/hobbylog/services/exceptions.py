"""Custom exceptions for tagging and log services."""

from __future__ import annotations


class HobbyLogError(Exception):
    """Base exception for service-level errors."""

    def __init__(self, message: str, code: str = "HOBBYLOG_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(HobbyLogError):
    """Raised when input is rejected before any store access."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code)


class SelfReferenceError(HobbyLogError):
    """Raised when a tag's description resolves to the tag itself."""

    def __init__(
        self, tag_id: str | None = None, message: str = "Tag cannot reference itself"
    ):
        self.tag_id = tag_id
        super().__init__(message, "SELF_REFERENCE")


class TagConflictError(HobbyLogError):
    """Raised when renaming a tag onto another tag's name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tag name already exists: {name}", "TAG_CONFLICT")


class TagNotFoundError(HobbyLogError):
    """Raised when a tag id or name does not exist."""

    def __init__(self, message: str = "Tag not found"):
        super().__init__(message, "TAG_NOT_FOUND")


class LogNotFoundError(HobbyLogError):
    """Raised when a log does not exist or is not visible to the caller."""

    def __init__(self, message: str = "Log not found"):
        super().__init__(message, "LOG_NOT_FOUND")


class PermissionDeniedError(HobbyLogError):
    """Raised when a user modifies content they do not own."""

    def __init__(self, message: str = "Not the owner"):
        super().__init__(message, "PERMISSION_DENIED")


class StorageError(HobbyLogError):
    """Raised when the underlying store cannot complete an operation."""

    def __init__(self, message: str, code: str = "STORAGE_ERROR"):
        super().__init__(message, code)
