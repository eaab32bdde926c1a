"""Exception hierarchy for the QA metrics library.

All library-specific exceptions inherit from MetricsError. Store
implementations raise these; the service layer converts them into
OperationResult failures at its public boundary.
"""

from typing import Any, Dict, Optional


class MetricsError(Exception):
    """Base exception for all metrics-related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Record store errors
class StoreQueryError(MetricsError):
    """Raised when the record store fails a read or write (I/O or permission)."""

    pass


class StoreTimeoutError(StoreQueryError):
    """Raised when a record store call exceeds its timeout."""

    def __init__(self, message: str, timeout_seconds: float):
        super().__init__(message, {"timeout_seconds": timeout_seconds})
        self.timeout_seconds = timeout_seconds


class StoreUnavailableError(StoreQueryError):
    """Raised when the record store cannot be reached or reports a server error."""

    pass


class RecordNotFoundError(StoreQueryError):
    """Raised when a point read targets a record that does not exist."""

    def __init__(self, collection_path: str, record_id: str):
        super().__init__(
            "Record not found",
            {"collection_path": collection_path, "record_id": record_id},
        )
        self.collection_path = collection_path
        self.record_id = record_id


# Aggregation errors
class ComputationError(MetricsError):
    """Raised when aggregating records fails (including invalid stored records)."""

    pass


class SubscriptionError(MetricsError):
    """Raised for invalid subscription lifecycle use."""

    pass


# Transient failures worth retrying
TRANSIENT_STORE_ERRORS = (StoreTimeoutError, StoreUnavailableError)
