# src/polistore/exceptions.py
"""
Custom exceptions for the polistore library.

This module defines a hierarchy of custom exception classes so that callers
can tell apart programmer errors (bad identifiers, unsupported queries),
hard storage limits, and transient backend failures that are safe to retry.

"Not found" is never an exception: lookups return ``None``.
"""


class PoliStoreError(Exception):
    """Base class for all polistore specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in polistore."):
        super().__init__(message)

class ConfigError(PoliStoreError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class ValidationError(PoliStoreError):
    """Raised when an entity fails validation before any backend call is made."""
    def __init__(self, message: str = "Validation error."):
        super().__init__(message)

class MalformedIdentifierError(ValidationError):
    """
    Raised when an identifier does not follow the hierarchical id scheme.

    A segment holding the literal string ``"null"`` is treated as malformed:
    it means an upstream component built the id from a missing value.
    """
    def __init__(self, identifier: str | None = None, message: str = "Malformed identifier."):
        self.identifier = identifier
        super().__init__(f"{message} Identifier: '{identifier}'")

class StorageError(PoliStoreError):
    """Base class for errors related to storage operations."""
    def __init__(self, message: str = "Storage error."):
        super().__init__(message)

class TransientBackendError(StorageError):
    """Raised for backend failures that are safe to retry (throttling, 5xx, connection loss)."""
    def __init__(self, backend: str = "Unknown", message: str = "Transient backend error."):
        self.backend = backend
        super().__init__(f"Transient error from backend '{backend}': {message}")

class UnsupportedQueryError(StorageError):
    """Raised for queries the store refuses to run (unknown index, unscoped scan)."""
    def __init__(self, message: str = "Unsupported query."):
        super().__init__(message)

class SizeLimitExceededError(StorageError):
    """Raised when a page is still over the backend item size limit after page splitting."""
    def __init__(self, page: str = "?", size: int = 0, limit: int = 0, message: str = "Item size limit exceeded."):
        self.page = page
        self.size = size
        self.limit = limit
        super().__init__(f"{message} Page: '{page}', Size: {size} bytes, Limit: {limit} bytes.")

class UnsupportedOperationError(StorageError):
    """Raised when an operation is not available on a store (e.g. writes to a read-only union)."""
    def __init__(self, message: str = "Unsupported operation."):
        super().__init__(message)
