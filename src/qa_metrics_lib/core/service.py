"""Metrics service - record store I/O, caching and mutations.

The service is the orchestrator around the pure functions in
``core.computer``: it loads records for a scope, parses them into closed
models, runs the aggregations, and caches snapshots. Every public operation
returns an OperationResult and never raises.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from qa_metrics_lib.config import MetricsSettings, get_settings
from qa_metrics_lib.core import computer
from qa_metrics_lib.core.cache import MetricsCache
from qa_metrics_lib.exceptions import (
    ComputationError,
    MetricsError,
    RecordNotFoundError,
    StoreTimeoutError,
)
from qa_metrics_lib.models.common import OperationResult, utc_now
from qa_metrics_lib.models.metrics import (
    AIMetrics,
    AutomationMetrics,
    MetricsSnapshot,
    TestCaseMetrics,
)
from qa_metrics_lib.models.records import (
    AI_GENERATIONS,
    SCREEN_RECORDINGS,
    TEST_CASES,
    TEST_EXECUTIONS,
    AIGenerationRecord,
    ExecutionRecord,
    Scope,
    ScreenRecordingRecord,
    TestCaseRecord,
)
from qa_metrics_lib.store.base import Ordering, RecordStore
from qa_metrics_lib.utils.resilience import retry_from_settings

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")

# Aggregate types used in cache keys
TEST_CASE_METRICS = "testCaseMetrics"
METRICS_SNAPSHOT = "metricsSnapshot"


def parse_records(documents: Sequence[Dict[str, Any]], model: Type[M]) -> List[M]:
    """Validate store documents into models.

    Raises:
        ComputationError: If any document violates the model (e.g. unknown status)
    """
    records = []
    for document in documents:
        try:
            records.append(model.model_validate(document))
        except ValidationError as e:
            raise ComputationError(
                f"Invalid {model.__name__} document",
                {"id": document.get("id"), "errors": e.errors(include_url=False)},
            ) from e
    return records


class MetricsService:
    """Computes, caches and mutates the test metrics of suites.

    Usage:
        service = MetricsService(InMemoryRecordStore())
        scope = Scope(suite_id="suite-1")
        await service.create_test_case(scope, {"name": "Login works"})
        result = await service.calculate_metrics_snapshot(scope)
        if result.success:
            print(result.data.test_cases.total_test_cases)
    """

    def __init__(
        self,
        store: RecordStore,
        cache: Optional[MetricsCache] = None,
        settings: Optional[MetricsSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the service.

        Args:
            store: Record store collaborator
            cache: Snapshot cache (default: a new MetricsCache owned by this service)
            settings: Runtime settings (default: global settings)
            clock: Source of "now" for timestamps and recency checks
        """
        self.store = store
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else MetricsCache(max_size=self.settings.cache_max_size)
        self._clock = clock or utc_now
        self._retry = retry_from_settings(self.settings)
        self._invalidations = 0
        self._invalidated_at: Dict[Optional[str], int] = {}
        self._subscriptions = None

        logger.info(
            f"Initialized MetricsService with store={store.__class__.__name__}, "
            f"store_timeout={self.settings.store_timeout}s"
        )

    def now(self) -> datetime:
        return self._clock()

    @property
    def subscriptions(self):
        """Shared SubscriptionManager, so each scope has a single recompute worker."""
        if self._subscriptions is None:
            from qa_metrics_lib.core.subscriptions import SubscriptionManager

            self._subscriptions = SubscriptionManager(self)
        return self._subscriptions

    # ===== STORE ACCESS =====

    async def _call_store(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run a store call with the configured timeout and transient-error retries."""
        timeout = self.settings.store_timeout

        async def attempt() -> T:
            try:
                return await asyncio.wait_for(call(), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise StoreTimeoutError(f"Record store {operation} timed out", timeout) from e

        attempt.__name__ = operation
        return await self._retry(attempt)()

    async def _load(self, collection_path: str, model: Type[M], filters: Optional[Dict[str, Any]] = None) -> List[M]:
        documents = await self._call_store(
            "query", lambda: self.store.query(collection_path, filters)
        )
        return parse_records(documents, model)

    async def load_test_cases(self, scope: Scope) -> List[TestCaseRecord]:
        return await self._load(scope.collection_path(TEST_CASES), TestCaseRecord)

    async def load_ai_generations(self, scope: Scope) -> List[AIGenerationRecord]:
        return await self._load(scope.collection_path(AI_GENERATIONS), AIGenerationRecord)

    async def _log_activity(self, suite_id: str, activity: Dict[str, Any]) -> None:
        """Append to the suite's activity log; failures are logged, never raised."""
        event = {**activity, "category": "testing", "timestamp": self.now().isoformat()}
        try:
            await self._call_store(
                "append_activity_log", lambda: self.store.append_activity_log(suite_id, event)
            )
        except Exception as e:
            logger.warning(f"Failed to log activity {activity.get('action')} for suite {suite_id}: {e}")

    @staticmethod
    def _failure(operation: str, error: Exception) -> OperationResult:
        if isinstance(error, MetricsError):
            logger.error(f"Error {operation}: {error}")
            return OperationResult.fail(error)
        logger.exception(f"Error {operation}")
        return OperationResult.fail(ComputationError(f"Unexpected error {operation}: {error}"))

    # ===== CACHE MANAGEMENT =====

    @property
    def invalidation_epoch(self) -> int:
        """Counter bumped by every clear_cache call.

        A computation started at epoch N reflects no change signalled after N.
        """
        return self._invalidations

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        """Invalidate cached snapshots whose key contains ``pattern`` (all if None)."""
        self._invalidations += 1
        self._invalidated_at[pattern] = self._invalidations
        return self.cache.invalidate(pattern)

    def cleanup(self) -> None:
        self.clear_cache()

    def _cache_if_current(self, cache_key: str, value: Any, epoch: int) -> bool:
        """Cache ``value`` unless its key was invalidated after ``epoch``."""
        for pattern, invalidated in self._invalidated_at.items():
            if invalidated > epoch and (pattern is None or pattern in cache_key):
                logger.debug(f"Not caching {cache_key}: invalidated while computing")
                return False
        self.cache.set(cache_key, value)
        return True

    # ===== TEST CASE OPERATIONS =====

    async def create_test_case(self, scope: Scope, data: Dict[str, Any]) -> OperationResult[str]:
        """Create a test case with default fields; returns the new record id."""
        try:
            record = TestCaseRecord.from_input(data)
        except ValidationError as e:
            return self._failure(
                "validating test case",
                ComputationError("Invalid test case data", {"errors": e.errors(include_url=False)}),
            )

        try:
            record_id = await self._call_store(
                "create",
                lambda: self.store.create(scope.collection_path(TEST_CASES), record.to_document()),
            )
        except Exception as e:
            return self._failure("creating test case", e)

        await self._log_activity(scope.suite_id, {
            "action": "test_case_created",
            "testCaseId": record_id,
            "details": {
                "name": record.name,
                "creationType": record.creation_type.value,
                "priority": record.priority.value,
            },
        })
        self.clear_cache(scope.suite_id)
        return OperationResult.ok(record_id)

    async def update_test_case(
        self, scope: Scope, test_case_id: str, updates: Dict[str, Any]
    ) -> OperationResult[Dict[str, Any]]:
        """Merge ``updates`` (dotted keys allowed) into a test case."""
        try:
            await self._call_store(
                "update",
                lambda: self.store.update(scope.collection_path(TEST_CASES), test_case_id, updates),
            )
        except Exception as e:
            return self._failure(f"updating test case {test_case_id}", e)

        await self._log_activity(scope.suite_id, {
            "action": "test_case_updated",
            "testCaseId": test_case_id,
            "details": {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in updates.items()},
        })
        self.clear_cache(scope.suite_id)
        return OperationResult.ok(updates)

    async def execute_test_case(
        self, scope: Scope, test_case_id: str, execution: Dict[str, Any]
    ) -> OperationResult[Dict[str, Any]]:
        """Record an execution: bump the test case's metadata and append an ExecutionRecord.

        Args:
            scope: Scope owning the test case
            test_case_id: Test case identifier
            execution: ``result`` (passed/failed/skipped) plus optional
                ``duration``, ``notes``, ``environment``, ``browserInfo``

        Returns:
            Result carrying the applied test case updates
        """
        collection_path = scope.collection_path(TEST_CASES)
        try:
            current = await self._call_store("get", lambda: self.store.get(collection_path, test_case_id))
            if current is None:
                raise RecordNotFoundError(collection_path, test_case_id)
            record = ExecutionRecord(
                test_case_id=test_case_id,
                sprint_id=scope.sprint_id,
                result=execution.get("result"),
                duration=execution.get("duration") or 0,
                notes=execution.get("notes") or "",
                executed_by=self.settings.user_id,
                environment=execution.get("environment") or "production",
                browser_info=execution.get("browserInfo") or execution.get("browser_info"),
                executed_at=self.now(),
            )
        except ValidationError as e:
            return self._failure(
                "validating execution",
                ComputationError("Invalid execution data", {"errors": e.errors(include_url=False)}),
            )
        except Exception as e:
            return self._failure(f"loading test case {test_case_id}", e)

        metadata = current.get("metadata") or {}
        updates = {
            "metadata.lastExecuted": record.executed_at,
            "metadata.executionCount": (metadata.get("executionCount") or 0) + 1,
            "metadata.actualDuration": record.duration,
            "lastExecutionResult": record.result.value,
            "lastExecutionNotes": record.notes,
        }

        result = await self.update_test_case(scope, test_case_id, updates)
        if not result.success:
            return result

        try:
            await self._call_store(
                "create",
                lambda: self.store.create(scope.suite_collection_path(TEST_EXECUTIONS), record.to_document()),
            )
        except Exception as e:
            # The test case update already landed; report the missing history entry
            return self._failure(f"recording execution of {test_case_id}", e)

        return result

    # ===== AI GENERATION TRACKING =====

    async def track_ai_generation(self, scope: Scope, generation: Dict[str, Any]) -> OperationResult[str]:
        try:
            record = AIGenerationRecord.model_validate(generation)
        except ValidationError as e:
            return self._failure(
                "validating AI generation",
                ComputationError("Invalid AI generation data", {"errors": e.errors(include_url=False)}),
            )

        try:
            record_id = await self._call_store(
                "create",
                lambda: self.store.create(scope.collection_path(AI_GENERATIONS), record.to_document()),
            )
        except Exception as e:
            return self._failure("tracking AI generation", e)

        await self._log_activity(scope.suite_id, {
            "action": "ai_generation_completed",
            "details": {
                "testCasesGenerated": record.test_cases_generated,
                "generationType": record.generation_type.value,
                "quality": record.quality.value,
            },
        })
        self.clear_cache(scope.suite_id)
        return OperationResult.ok(record_id)

    # ===== SCREEN RECORDING TRACKING =====

    async def track_screen_recording(self, scope: Scope, recording: Dict[str, Any]) -> OperationResult[str]:
        payload = dict(recording)
        # Callers pass the recording quality as ``quality``
        if "quality" in payload and "recordingQuality" not in payload:
            payload["recordingQuality"] = payload.pop("quality")
        metadata = dict(payload.get("metadata") or {})
        for key in ("browserInfo", "screenResolution", "deviceType"):
            if key in payload:
                metadata[key] = payload.pop(key)
        payload["metadata"] = metadata

        try:
            record = ScreenRecordingRecord.model_validate(payload)
        except ValidationError as e:
            return self._failure(
                "validating screen recording",
                ComputationError("Invalid screen recording data", {"errors": e.errors(include_url=False)}),
            )

        try:
            record_id = await self._call_store(
                "create",
                lambda: self.store.create(scope.suite_collection_path(SCREEN_RECORDINGS), record.to_document()),
            )
        except Exception as e:
            return self._failure("tracking screen recording", e)

        await self._log_activity(scope.suite_id, {
            "action": "screen_recording_created",
            "details": {
                "duration": record.duration,
                "quality": record.recording_quality.value,
            },
        })
        return OperationResult.ok(record_id)

    # ===== METRICS CALCULATION =====

    def _cache_key(self, scope: Scope, aggregate_type: str) -> str:
        return self.cache.key(scope.suite_id, aggregate_type, {"sprintId": scope.sprint_id})

    async def calculate_test_case_metrics(
        self, scope: Scope, use_cache: bool = True
    ) -> OperationResult[TestCaseMetrics]:
        cache_key = self._cache_key(scope, TEST_CASE_METRICS)
        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return OperationResult.ok(cached)

        epoch = self._invalidations
        try:
            test_cases = await self.load_test_cases(scope)
            metrics = computer.calculate_test_case_metrics(test_cases, now=self.now())
        except Exception as e:
            return self._failure(f"calculating test case metrics for {scope}", e)

        self._cache_if_current(cache_key, metrics, epoch)
        return OperationResult.ok(metrics)

    async def calculate_ai_metrics(self, scope: Scope) -> OperationResult[AIMetrics]:
        try:
            generations = await self.load_ai_generations(scope)
            return OperationResult.ok(computer.calculate_ai_metrics(generations))
        except Exception as e:
            return self._failure(f"calculating AI metrics for {scope}", e)

    async def calculate_automation_metrics(self, scope: Scope) -> OperationResult[AutomationMetrics]:
        try:
            test_cases = await self.load_test_cases(scope)
            return OperationResult.ok(computer.calculate_automation_metrics(test_cases))
        except Exception as e:
            return self._failure(f"calculating automation metrics for {scope}", e)

    async def calculate_metrics_snapshot(
        self, scope: Scope, use_cache: bool = True
    ) -> OperationResult[MetricsSnapshot]:
        """Compute test-case, AI and automation metrics for a scope in one snapshot.

        With ``use_cache`` a snapshot younger than the TTL is returned as is;
        otherwise every aggregate is recomputed from the store and cached.
        """
        cache_key = self._cache_key(scope, METRICS_SNAPSHOT)
        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return OperationResult.ok(cached)

        epoch = self._invalidations
        try:
            test_cases = await self.load_test_cases(scope)
            generations = await self.load_ai_generations(scope)
            now = self.now()
            test_case_metrics = computer.calculate_test_case_metrics(test_cases, now=now)
            snapshot = MetricsSnapshot(
                suite_id=scope.suite_id,
                sprint_id=scope.sprint_id,
                test_cases=test_case_metrics,
                ai=computer.calculate_ai_metrics(generations),
                automation=computer.calculate_automation_metrics(test_cases),
                computed_at=now,
            )
        except Exception as e:
            return self._failure(f"calculating metrics snapshot for {scope}", e)

        self._cache_if_current(self._cache_key(scope, TEST_CASE_METRICS), test_case_metrics, epoch)
        self._cache_if_current(cache_key, snapshot, epoch)
        return OperationResult.ok(snapshot)

    async def load_recent_executions(
        self, scope: Scope, limit: int
    ) -> OperationResult[List[ExecutionRecord]]:
        """Most recent executions of the scope, newest first."""
        filters = {"sprintId": scope.sprint_id} if scope.sprint_id else None
        try:
            documents = await self._call_store(
                "query",
                lambda: self.store.query(
                    scope.suite_collection_path(TEST_EXECUTIONS),
                    filters,
                    [Ordering.desc("executedAt")],
                    limit,
                ),
            )
            return OperationResult.ok(parse_records(documents, ExecutionRecord))
        except Exception as e:
            return self._failure(f"loading executions for {scope}", e)
