"""Common models shared across the metrics engine.

- OperationResult: uniform success/failure envelope for public operations
- Utility functions: utc_now(), ensure_utc(), round_half_up()
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Generic, Optional, TypeVar

from qa_metrics_lib.exceptions import MetricsError

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    """Result of a public operation.

    Public operations never raise across their boundary; they return either
    ``OperationResult(success=True, data=...)`` or
    ``OperationResult(success=False, error=...)``.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[MetricsError] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "OperationResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: MetricsError) -> "OperationResult[T]":
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": str(self.error)}


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return a timezone-aware datetime, treating naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves up (2.5 -> 3), unlike the built-in round() (2.5 -> 2)."""
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rounded)


def round_int(value: float) -> int:
    """round_half_up() to an integer."""
    return int(round_half_up(value))
