"""Custom exceptions for BookGraph.

Defines specific exception types for better error handling and reporting.
Each exception carries the HTTP status code the API responds with.
"""

from typing import Any, Dict, Optional


class BookGraphException(Exception):
    """Base exception for BookGraph errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class DimensionMismatchError(BookGraphException):
    """Raised when an embedding does not have the configured dimension."""

    def __init__(self, expected: int, actual: int, book_id: Optional[int] = None):
        message = f"Expected {expected} dimensions, got {actual}"
        details: Dict[str, Any] = {"expected": expected, "actual": actual}
        if book_id is not None:
            details["book_id"] = book_id
        super().__init__(message=message, status_code=400, details=details)


class ItemNotFoundError(BookGraphException):
    """Raised when a catalog item is required but does not exist."""

    def __init__(self, book_id: int, details: Optional[Dict[str, Any]] = None):
        message = f"Book {book_id} not found in catalog"
        super().__init__(
            message=message,
            status_code=404,
            details=details or {"book_id": book_id},
        )


class StorageError(BookGraphException):
    """Raised when the catalog or embedding database fails."""

    def __init__(self, operation: str, error: Exception):
        message = f"Storage operation '{operation}' failed: {str(error)}"
        super().__init__(
            message=message,
            status_code=503,
            details={
                "operation": operation,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )


class ProviderError(BookGraphException):
    """Raised when the embedding provider fails or times out."""

    def __init__(self, provider: str, reason: str, details: Optional[Dict[str, Any]] = None):
        message = f"Embedding provider '{provider}' failed: {reason}"
        super().__init__(
            message=message,
            status_code=502,
            details=details or {"provider": provider, "reason": reason},
        )
