"""Record store contract and the in-process implementation."""

from qa_metrics_lib.store.base import (
    ChangeCallback,
    ErrorCallback,
    Ordering,
    RecordStore,
    Unsubscribe,
    running_loop,
)
from qa_metrics_lib.store.memory import InMemoryRecordStore

__all__ = [
    "ChangeCallback",
    "ErrorCallback",
    "Ordering",
    "RecordStore",
    "Unsubscribe",
    "running_loop",
    "InMemoryRecordStore",
]
