"""In-process record store.

Documents live in per-collection dicts. Semantics follow a document
database: server-stamped timestamps, dotted-path merges on update, and
subscriptions that deliver the current result set once after subscribing
and again after every write to the collection.
"""

import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from qa_metrics_lib.exceptions import RecordNotFoundError
from qa_metrics_lib.models.common import utc_now
from qa_metrics_lib.store.base import (
    ChangeCallback,
    ErrorCallback,
    Ordering,
    RecordStore,
    Unsubscribe,
    running_loop,
)

logger = logging.getLogger(__name__)

ACTIVITY_LOGS = "activityLogs"


def _get_path(document: Dict[str, Any], dotted: str) -> Any:
    value: Any = document
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _set_path(document: Dict[str, Any], dotted: str, value: Any) -> None:
    parts = dotted.split(".")
    target = document
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


def _sort_key(value: Any):
    # Missing values sort first ascending, last descending
    return (value is not None, value if value is not None else 0)


@dataclass
class _Listener:
    collection_path: str
    orderings: Sequence[Ordering]
    on_change: ChangeCallback
    on_error: Optional[ErrorCallback]
    filters: Dict[str, Any]
    limit: Optional[int]
    loop: asyncio.AbstractEventLoop
    active: bool = True
    listener_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class InMemoryRecordStore(RecordStore):
    """Record store keeping every document in memory.

    Usage:
        store = InMemoryRecordStore()
        record_id = await store.create("testSuites/s1/testCases", {"name": "Login"})
        unsubscribe = store.subscribe(
            "testSuites/s1/testCases", [Ordering.desc("created_at")], print
        )
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or utc_now
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: Dict[str, _Listener] = {}

    # ===== Reads =====

    def _select(
        self,
        collection_path: str,
        filters: Optional[Dict[str, Any]],
        orderings: Sequence[Ordering],
        limit: Optional[int],
    ) -> List[Dict[str, Any]]:
        documents = [
            {"id": record_id, **copy.deepcopy(document)}
            for record_id, document in self._collections.get(collection_path, {}).items()
        ]
        if filters:
            documents = [
                doc for doc in documents
                if all(_get_path(doc, key) == expected for key, expected in filters.items())
            ]
        # Apply the least significant ordering first; sorts are stable
        for ordering in reversed(list(orderings)):
            documents.sort(
                key=lambda doc: _sort_key(_get_path(doc, ordering.field)),
                reverse=ordering.descending,
            )
        if limit is not None:
            documents = documents[:limit]
        return documents

    async def query(
        self,
        collection_path: str,
        filters: Optional[Dict[str, Any]] = None,
        orderings: Sequence[Ordering] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return self._select(collection_path, filters, orderings, limit)

    async def get(self, collection_path: str, record_id: str) -> Optional[Dict[str, Any]]:
        document = self._collections.get(collection_path, {}).get(record_id)
        if document is None:
            return None
        return {"id": record_id, **copy.deepcopy(document)}

    # ===== Writes =====

    async def create(
        self,
        collection_path: str,
        data: Dict[str, Any],
        record_id: Optional[str] = None,
    ) -> str:
        record_id = record_id or uuid.uuid4().hex
        now = self._clock()
        document = {k: v for k, v in copy.deepcopy(data).items() if v is not None and k != "id"}
        document["created_at"] = now
        document["updated_at"] = now
        self._collections.setdefault(collection_path, {})[record_id] = document
        logger.debug(f"Created {collection_path}/{record_id}")
        self._notify(collection_path)
        return record_id

    async def update(self, collection_path: str, record_id: str, data: Dict[str, Any]) -> None:
        document = self._collections.get(collection_path, {}).get(record_id)
        if document is None:
            raise RecordNotFoundError(collection_path, record_id)
        for key, value in copy.deepcopy(data).items():
            _set_path(document, key, value)
        document["updated_at"] = self._clock()
        logger.debug(f"Updated {collection_path}/{record_id}")
        self._notify(collection_path)

    async def append_activity_log(self, suite_id: str, event: Dict[str, Any]) -> None:
        await self.create(f"testSuites/{suite_id}/{ACTIVITY_LOGS}", event)

    def activity_log(self, suite_id: str) -> List[Dict[str, Any]]:
        """Logged events for a suite, oldest first."""
        return self._select(
            f"testSuites/{suite_id}/{ACTIVITY_LOGS}", None, [Ordering.asc("created_at")], None
        )

    # ===== Subscriptions =====

    def subscribe(
        self,
        collection_path: str,
        orderings: Sequence[Ordering],
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> Unsubscribe:
        listener = _Listener(
            collection_path=collection_path,
            orderings=list(orderings),
            on_change=on_change,
            on_error=on_error,
            filters=dict(filters or {}),
            limit=limit,
            loop=running_loop(),
        )
        self._listeners[listener.listener_id] = listener
        listener.loop.call_soon(self._dispatch, listener)
        logger.debug(f"Listener {listener.listener_id} subscribed to {collection_path}")

        def unsubscribe() -> None:
            listener.active = False
            self._listeners.pop(listener.listener_id, None)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, collection_path: str) -> None:
        for listener in list(self._listeners.values()):
            if listener.collection_path == collection_path:
                listener.loop.call_soon(self._dispatch, listener)

    def _dispatch(self, listener: _Listener) -> None:
        if not listener.active:
            return
        documents = self._select(
            listener.collection_path, listener.filters, listener.orderings, listener.limit
        )
        try:
            listener.on_change(documents)
        except Exception:
            logger.exception(f"Change callback failed for {listener.collection_path}")

    def emit_error(self, collection_path: str, error: Exception) -> None:
        """Deliver ``error`` to every listener on a collection.

        Simulates a listener-level failure such as revoked read permission.
        """
        for listener in list(self._listeners.values()):
            if listener.collection_path == collection_path and listener.on_error:
                listener.loop.call_soon(self._dispatch_error, listener, error)

    def _dispatch_error(self, listener: _Listener, error: Exception) -> None:
        if not listener.active or listener.on_error is None:
            return
        try:
            listener.on_error(error)
        except Exception:
            logger.exception(f"Error callback failed for {listener.collection_path}")

    async def close(self) -> None:
        for listener in self._listeners.values():
            listener.active = False
        self._listeners.clear()
