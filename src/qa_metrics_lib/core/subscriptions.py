"""Push subscriptions over the record store.

Each metrics subscription owns one record store listener. Change events
for a scope feed a single recompute worker for that scope, so recomputes
of one scope never overlap. A change arriving while a recompute is running
supersedes it: the running result is discarded and the worker recomputes,
so the delivered snapshot always reflects the latest change.

Disposing a subscription is synchronous and final: the listener is
released and no callback of that subscription runs afterwards, even for a
recompute already in flight.
"""

import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, List, Optional

from qa_metrics_lib.config import EXECUTIONS_FEED_LIMIT
from qa_metrics_lib.core.service import MetricsService, parse_records
from qa_metrics_lib.exceptions import ComputationError, MetricsError, StoreQueryError
from qa_metrics_lib.models.metrics import MetricsSnapshot
from qa_metrics_lib.models.records import (
    TEST_CASES,
    TEST_EXECUTIONS,
    ExecutionRecord,
    Scope,
)
from qa_metrics_lib.store.base import Ordering, Unsubscribe

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Any], None]
ErrorCallback = Callable[[MetricsError], None]

_subscription_ids = itertools.count(1)


def _as_metrics_error(error: Exception) -> MetricsError:
    if isinstance(error, MetricsError):
        return error
    return StoreQueryError(f"Record store listener failed: {error}")


class Subscription:
    """Handle for one live subscription; call dispose() to release it."""

    def __init__(
        self,
        scope: Scope,
        kind: str,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
        on_dispose: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.id = next(_subscription_ids)
        self.scope = scope
        self.kind = kind
        self._on_update = on_update
        self._on_error = on_error
        self._on_dispose = on_dispose
        self._unsubscribe: Optional[Unsubscribe] = None
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def _attach(self, unsubscribe: Unsubscribe) -> None:
        self._unsubscribe = unsubscribe

    def deliver(self, value: Any) -> None:
        if not self._active:
            return
        try:
            self._on_update(value)
        except Exception:
            logger.exception(f"Update callback of {self.kind} subscription {self.id} failed")

    def fail(self, error: MetricsError) -> None:
        if not self._active or self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception(f"Error callback of {self.kind} subscription {self.id} failed")

    def dispose(self) -> None:
        """Stop deliveries and release the record store listener. Idempotent."""
        if not self._active:
            return
        self._active = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._on_dispose is not None:
            self._on_dispose(self)
        logger.info(f"Disposed {self.kind} subscription {self.id} for scope {self.scope}")

    def __call__(self) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, kind={self.kind!r}, scope={self.scope}, active={self._active})"


class ScopeRecomputer:
    """Serial recompute worker for one scope.

    At most one recompute task runs at a time. trigger() marks the scope
    dirty and starts the task if idle; the task loops until no trigger
    arrived during its last computation, and only then delivers.
    """

    def __init__(self, scope: Scope, service: MetricsService):
        self.scope = scope
        self._service = service
        self._subscribers: Dict[int, Subscription] = {}
        self._dirty = False
        self._task: Optional[asyncio.Task] = None
        self.recompute_count = 0

    @property
    def subscribers(self) -> List[Subscription]:
        return list(self._subscribers.values())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add(self, subscription: Subscription) -> None:
        self._subscribers[subscription.id] = subscription

    def remove(self, subscription: Subscription) -> None:
        self._subscribers.pop(subscription.id, None)
        if not self._subscribers:
            self.cancel()

    def trigger(self) -> None:
        self._dirty = True
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self.running:
            self._task.cancel()
        self._task = None
        self._dirty = False

    async def _run(self) -> None:
        while self._dirty and self._subscribers:
            self._dirty = False
            self._service.clear_cache(self.scope.suite_id)
            self.recompute_count += 1
            result = await self._service.calculate_metrics_snapshot(self.scope, use_cache=False)

            if self._dirty:
                logger.debug(f"Recompute for {self.scope} superseded by a newer change")
                continue

            for subscription in self.subscribers:
                if result.success:
                    subscription.deliver(result.data)
                else:
                    subscription.fail(result.error)


class SubscriptionManager:
    """Owns push subscriptions and the per-scope recompute workers.

    Usage:
        manager = SubscriptionManager(service)
        subscription = manager.subscribe_metrics(scope, on_update=print, on_error=print)
        ...
        subscription.dispose()
    """

    def __init__(self, service: MetricsService):
        self.service = service
        self._recomputers: Dict[Scope, ScopeRecomputer] = {}
        self._subscriptions: Dict[int, Subscription] = {}

    @property
    def active_subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions.values())

    def recomputer(self, scope: Scope) -> Optional[ScopeRecomputer]:
        return self._recomputers.get(scope)

    def _release(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)
        recomputer = self._recomputers.get(subscription.scope)
        if recomputer is not None and subscription.kind == "metrics":
            recomputer.remove(subscription)
            if not recomputer.subscribers:
                del self._recomputers[subscription.scope]

    def subscribe_metrics(
        self,
        scope: Scope,
        on_update: Callable[[MetricsSnapshot], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Recompute and deliver the scope's snapshot on every test case change.

        Must be called from a running event loop. Store errors are passed to
        ``on_error`` and do not dispose the subscription.
        """
        subscription = Subscription(scope, "metrics", on_update, on_error, on_dispose=self._release)
        recomputer = self._recomputers.get(scope)
        if recomputer is None:
            recomputer = ScopeRecomputer(scope, self.service)
            self._recomputers[scope] = recomputer
        recomputer.add(subscription)
        self._subscriptions[subscription.id] = subscription

        def on_change(_documents: List[Dict[str, Any]]) -> None:
            if subscription.active:
                recomputer.trigger()

        def on_store_error(error: Exception) -> None:
            subscription.fail(_as_metrics_error(error))

        try:
            unsubscribe = self.service.store.subscribe(
                scope.collection_path(TEST_CASES),
                [Ordering.desc("created_at")],
                on_change,
                on_store_error,
            )
        except Exception as e:
            subscription.dispose()
            subscription_error = _as_metrics_error(e)
            logger.error(f"Failed to subscribe to metrics for {scope}: {subscription_error}")
            if on_error is not None:
                on_error(subscription_error)
            return subscription

        subscription._attach(unsubscribe)
        logger.info(f"Opened metrics subscription {subscription.id} for scope {scope}")
        return subscription

    def subscribe_executions(
        self,
        scope: Scope,
        on_update: Callable[[List[ExecutionRecord]], None],
        on_error: Optional[ErrorCallback] = None,
        limit: int = EXECUTIONS_FEED_LIMIT,
    ) -> Subscription:
        """Deliver the scope's most recent executions, newest first, on every change.

        Independent of any metrics subscription on the same scope.
        """
        subscription = Subscription(scope, "executions", on_update, on_error, on_dispose=self._release)
        self._subscriptions[subscription.id] = subscription

        def on_change(documents: List[Dict[str, Any]]) -> None:
            if not subscription.active:
                return
            try:
                executions = parse_records(documents, ExecutionRecord)
            except ComputationError as e:
                subscription.fail(e)
                return
            subscription.deliver(executions)

        def on_store_error(error: Exception) -> None:
            subscription.fail(_as_metrics_error(error))

        filters = {"sprintId": scope.sprint_id} if scope.sprint_id else None
        try:
            unsubscribe = self.service.store.subscribe(
                scope.suite_collection_path(TEST_EXECUTIONS),
                [Ordering.desc("executedAt")],
                on_change,
                on_store_error,
                filters=filters,
                limit=limit,
            )
        except Exception as e:
            subscription.dispose()
            subscription_error = _as_metrics_error(e)
            logger.error(f"Failed to subscribe to executions for {scope}: {subscription_error}")
            if on_error is not None:
                on_error(subscription_error)
            return subscription

        subscription._attach(unsubscribe)
        logger.info(f"Opened executions subscription {subscription.id} for scope {scope}")
        return subscription

    def dispose_all(self) -> None:
        for subscription in self.active_subscriptions:
            subscription.dispose()
