"""QA Metrics Library

Metrics aggregation and caching for test case records: computations,
a TTL snapshot cache, push subscriptions, reports and a consumer facade.
"""

__version__ = "0.1.0"

# Export shared models first (no dependencies)
from qa_metrics_lib.models import (
    Scope, TestCaseRecord, AIGenerationRecord, ExecutionRecord, ScreenRecordingRecord,
    TestCaseMetrics, AIMetrics, AutomationMetrics, ExecutionMetrics, MetricsSnapshot,
    ReportType, TestReport, OperationResult,
)

from qa_metrics_lib.exceptions import (
    MetricsError,
    StoreQueryError,
    ComputationError,
    SubscriptionError,
)

from qa_metrics_lib.config import (
    MetricsSettings,
    get_settings,
    reset_settings,
)

from qa_metrics_lib.store import RecordStore, InMemoryRecordStore, Ordering

from qa_metrics_lib.core import (
    MetricsCache,
    MetricsService,
    SubscriptionManager,
    ReportGenerator,
    MetricsConsumer,
)


# Lazy import for the HTTP client so httpx loads only when it is used
def __getattr__(name):
    """Lazy import for RecordServiceClient."""
    if name == "RecordServiceClient":
        from qa_metrics_lib.clients import RecordServiceClient
        return RecordServiceClient
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    # Models
    "Scope", "TestCaseRecord", "AIGenerationRecord", "ExecutionRecord", "ScreenRecordingRecord",
    "TestCaseMetrics", "AIMetrics", "AutomationMetrics", "ExecutionMetrics", "MetricsSnapshot",
    "ReportType", "TestReport", "OperationResult",
    # Errors
    "MetricsError", "StoreQueryError", "ComputationError", "SubscriptionError",
    # Configuration
    "MetricsSettings", "get_settings", "reset_settings",
    # Store
    "RecordStore", "InMemoryRecordStore", "Ordering",
    # Engine
    "MetricsCache", "MetricsService", "SubscriptionManager", "ReportGenerator", "MetricsConsumer",
    # Clients (lazy loaded)
    "RecordServiceClient",
]
