"""
Record store contract.

The record store is the persistence collaborator of the metrics engine. It
provides filtered queries, point reads and writes, change subscriptions and
an activity log. Implementations raise StoreQueryError (or a subclass) on
failure; they never return error values.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from qa_metrics_lib.exceptions import SubscriptionError

# Callback types for subscriptions
ChangeCallback = Callable[[List[Dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


def running_loop() -> asyncio.AbstractEventLoop:
    """Event loop for a new subscription.

    Raises:
        SubscriptionError: If called outside a running event loop
    """
    try:
        return asyncio.get_running_loop()
    except RuntimeError as e:
        raise SubscriptionError("Subscriptions must be opened from a running event loop") from e


@dataclass(frozen=True)
class Ordering:
    """Sort order applied to a query or subscription"""

    field: str
    descending: bool = False

    @classmethod
    def desc(cls, field: str) -> "Ordering":
        return cls(field=field, descending=True)

    @classmethod
    def asc(cls, field: str) -> "Ordering":
        return cls(field=field)


class RecordStore(ABC):
    """Abstract base class for record stores.

    Collection paths look like ``testSuites/{suiteId}/testCases`` or
    ``testSuites/{suiteId}/sprints/{sprintId}/testCases``. Documents are
    plain dicts; reads include the document ``id``.
    """

    @abstractmethod
    async def query(
        self,
        collection_path: str,
        filters: Optional[Dict[str, Any]] = None,
        orderings: Sequence[Ordering] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return documents matching all equality filters."""
        pass

    @abstractmethod
    async def get(self, collection_path: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return one document, or None when it does not exist."""
        pass

    @abstractmethod
    async def create(
        self,
        collection_path: str,
        data: Dict[str, Any],
        record_id: Optional[str] = None,
    ) -> str:
        """Create a document and return its id.

        The store stamps ``created_at`` and ``updated_at``.
        """
        pass

    @abstractmethod
    async def update(self, collection_path: str, record_id: str, data: Dict[str, Any]) -> None:
        """Merge ``data`` into an existing document.

        Dotted keys (``metadata.executionCount``) address nested fields. The
        store stamps ``updated_at``. Raises RecordNotFoundError when the
        document does not exist.
        """
        pass

    @abstractmethod
    def subscribe(
        self,
        collection_path: str,
        orderings: Sequence[Ordering],
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> Unsubscribe:
        """Listen for changes to a collection.

        ``on_change`` receives the current (ordered, limited) documents once
        after subscribing and again after every change. Must be called from
        a running event loop. Returns a function releasing the listener.
        """
        pass

    @abstractmethod
    async def append_activity_log(self, suite_id: str, event: Dict[str, Any]) -> None:
        """Append an event to the suite's activity log."""
        pass

    async def close(self) -> None:
        """Release any held resources.

        Override this if the store keeps connections or background tasks.
        """
        pass
