"""Consumer facade for UI and application code.

MetricsConsumer keeps the latest metrics snapshot of one scope up to date,
either by polling on a timer or through push subscriptions, never both at
once. It also forwards mutations to the service and refreshes afterwards
when no push notification would do it.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from qa_metrics_lib.config import EXECUTIONS_FEED_LIMIT
from qa_metrics_lib.core import computer
from qa_metrics_lib.core.reports import ReportGenerator
from qa_metrics_lib.core.service import MetricsService
from qa_metrics_lib.core.subscriptions import Subscription, SubscriptionManager
from qa_metrics_lib.exceptions import MetricsError
from qa_metrics_lib.models.common import OperationResult
from qa_metrics_lib.models.metrics import (
    ExecutionMetrics,
    MetricsSnapshot,
    ReportType,
    TestReport,
)
from qa_metrics_lib.models.records import ExecutionRecord, Scope

logger = logging.getLogger(__name__)

MODE_REALTIME = "realtime"
MODE_POLLING = "polling"


class MetricsConsumer:
    """Live view of one scope's metrics.

    Usage:
        async with MetricsConsumer(service, Scope(suite_id="s1"), enable_realtime=True) as consumer:
            await consumer.create_test_case({"name": "Checkout"})
            print(consumer.metrics.test_cases.total_test_cases)

    State attributes:
        metrics: Latest MetricsSnapshot (None before the first load)
        recent_executions: Latest executions, newest first (realtime mode)
        execution_metrics: Aggregates over recent_executions
        error: Last error, cleared by the next successful load
        loading: True while a refresh is in flight
        last_updated: When metrics were last replaced
    """

    def __init__(
        self,
        service: MetricsService,
        scope: Scope,
        auto_refresh: bool = True,
        refresh_interval_ms: Optional[int] = None,
        enable_realtime: bool = False,
        subscriptions: Optional[SubscriptionManager] = None,
        reports: Optional[ReportGenerator] = None,
        on_update: Optional[Callable[[MetricsSnapshot], None]] = None,
        on_error: Optional[Callable[[MetricsError], None]] = None,
    ):
        self.service = service
        self.scope = scope
        self.auto_refresh = auto_refresh
        self.refresh_interval_ms = refresh_interval_ms or service.settings.refresh_interval_ms
        self.enable_realtime = enable_realtime
        self.subscriptions = subscriptions if subscriptions is not None else service.subscriptions
        self.reports = reports if reports is not None else ReportGenerator(service)
        self._on_update = on_update
        self._on_error = on_error

        self.metrics: Optional[MetricsSnapshot] = None
        self.recent_executions: List[ExecutionRecord] = []
        self.execution_metrics = ExecutionMetrics()
        self.error: Optional[MetricsError] = None
        self.loading = False
        self.last_updated: Optional[datetime] = None

        self._started = False
        self._closed = False
        self._poll_task: Optional[asyncio.Task] = None
        self._metrics_subscription: Optional[Subscription] = None
        self._executions_subscription: Optional[Subscription] = None
        self._refresh_seq = 0
        self._applied_epoch = -1

    # ===== Lifecycle =====

    async def start(self) -> "MetricsConsumer":
        """Load once, then start the poll timer or the push subscriptions."""
        if self._started:
            return self
        self._started = True
        await self.refresh()
        if not self._closed:
            self._apply_mode()
        logger.info(f"MetricsConsumer started for {self.scope} (mode={self.mode})")
        return self

    async def close(self) -> None:
        """Dispose subscriptions and stop the poll timer."""
        if self._closed:
            return
        self._closed = True
        self._stop_subscriptions()
        await self._stop_polling()
        logger.info(f"MetricsConsumer closed for {self.scope}")

    async def __aenter__(self) -> "MetricsConsumer":
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def mode(self) -> Optional[str]:
        """Active update path: "realtime", "polling" or None."""
        if self._metrics_subscription is not None and self._metrics_subscription.active:
            return MODE_REALTIME
        if self._poll_task is not None and not self._poll_task.done():
            return MODE_POLLING
        return None

    # ===== Mode switching =====

    def set_realtime(self, enabled: bool) -> None:
        """Enable or disable push updates; enabling stops the poll timer."""
        self.enable_realtime = enabled
        if self._started and not self._closed:
            self._apply_mode()

    def set_auto_refresh(self, enabled: bool) -> None:
        """Enable or disable polling; has no visible effect while realtime is on."""
        self.auto_refresh = enabled
        if self._started and not self._closed:
            self._apply_mode()

    def _apply_mode(self) -> None:
        if self.enable_realtime:
            self._cancel_poll_task()
            self._start_subscriptions()
        else:
            self._stop_subscriptions()
            if self.auto_refresh:
                self._start_polling()
            else:
                self._cancel_poll_task()

    def _start_subscriptions(self) -> None:
        if self._metrics_subscription is None:
            self._metrics_subscription = self.subscriptions.subscribe_metrics(
                self.scope, self._apply_snapshot, self._handle_error
            )
        if self._executions_subscription is None:
            self._executions_subscription = self.subscriptions.subscribe_executions(
                self.scope, self._handle_executions, self._handle_error
            )

    def _stop_subscriptions(self) -> None:
        for subscription in (self._metrics_subscription, self._executions_subscription):
            if subscription is not None:
                subscription.dispose()
        self._metrics_subscription = None
        self._executions_subscription = None

    def _start_polling(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll())
            logger.debug(f"Polling {self.scope} every {self.refresh_interval_ms}ms")

    def _cancel_poll_task(self) -> Optional[asyncio.Task]:
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()
        return task

    async def _stop_polling(self) -> None:
        task = self._cancel_poll_task()
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll(self) -> None:
        interval = self.refresh_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            await self.refresh()

    # ===== State updates =====

    def _apply_snapshot(self, snapshot: MetricsSnapshot, epoch: Optional[int] = None) -> None:
        # Pushed snapshots are current as of delivery
        if epoch is None:
            epoch = self.service.invalidation_epoch
        self._applied_epoch = max(self._applied_epoch, epoch)
        self.metrics = snapshot
        self.error = None
        self.last_updated = self.service.now()
        if self._on_update is not None:
            try:
                self._on_update(snapshot)
            except Exception:
                logger.exception(f"on_update callback failed for {self.scope}")

    def _handle_executions(self, executions: List[ExecutionRecord]) -> None:
        self.recent_executions = executions
        self.execution_metrics = computer.calculate_execution_metrics(executions)

    def _handle_error(self, error: MetricsError) -> None:
        logger.error(f"Metrics update failed for {self.scope}: {error}")
        self.error = error
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception(f"on_error callback failed for {self.scope}")

    # ===== Loading =====

    async def refresh(self, use_cache: bool = True) -> OperationResult[MetricsSnapshot]:
        """Reload the snapshot; a recent cached snapshot may be returned.

        The result is applied only if no later refresh started and no snapshot
        reflecting a later invalidation was applied meanwhile.
        """
        self._refresh_seq += 1
        seq = self._refresh_seq
        epoch = self.service.invalidation_epoch
        self.loading = True
        try:
            result = await self.service.calculate_metrics_snapshot(self.scope, use_cache=use_cache)
        finally:
            if seq == self._refresh_seq:
                self.loading = False

        if seq != self._refresh_seq or epoch < self._applied_epoch:
            logger.debug(f"Discarding superseded refresh result for {self.scope}")
            return result
        if result.success:
            self._apply_snapshot(result.data, epoch)
        else:
            self._handle_error(result.error)
        return result

    async def clear_cache_and_refresh(self) -> OperationResult[MetricsSnapshot]:
        self.service.clear_cache(self.scope.suite_id)
        return await self.refresh(use_cache=False)

    async def load_recent_executions(self) -> OperationResult[List[ExecutionRecord]]:
        """Fetch the recent-executions feed once, outside realtime mode."""
        result = await self.service.load_recent_executions(self.scope, EXECUTIONS_FEED_LIMIT)
        if result.success:
            self._handle_executions(result.data)
        else:
            self._handle_error(result.error)
        return result

    async def generate_report(
        self, report_type: ReportType = ReportType.SUMMARY
    ) -> OperationResult[TestReport]:
        result = await self.reports.generate_report(self.scope, report_type)
        if not result.success:
            self._handle_error(result.error)
        return result

    # ===== Mutations =====

    async def _after_mutation(self, result: OperationResult, always: bool = False) -> OperationResult:
        if not result.success:
            self._handle_error(result.error)
        elif always or self.mode != MODE_REALTIME:
            await self.refresh()
        return result

    async def create_test_case(self, data: Dict[str, Any]) -> OperationResult[str]:
        return await self._after_mutation(await self.service.create_test_case(self.scope, data))

    async def update_test_case(self, test_case_id: str, updates: Dict[str, Any]) -> OperationResult[Dict[str, Any]]:
        return await self._after_mutation(
            await self.service.update_test_case(self.scope, test_case_id, updates)
        )

    async def execute_test_case(self, test_case_id: str, execution: Dict[str, Any]) -> OperationResult[Dict[str, Any]]:
        return await self._after_mutation(
            await self.service.execute_test_case(self.scope, test_case_id, execution)
        )

    async def track_ai_generation(self, generation: Dict[str, Any]) -> OperationResult[str]:
        # Push subscriptions only observe test cases
        return await self._after_mutation(
            await self.service.track_ai_generation(self.scope, generation), always=True
        )

    async def track_screen_recording(self, recording: Dict[str, Any]) -> OperationResult[str]:
        return await self._after_mutation(
            await self.service.track_screen_recording(self.scope, recording)
        )
