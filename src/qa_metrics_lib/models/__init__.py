"""
Data models for the QA metrics engine.

Record models describe what the record store persists; metrics models are
derived, never persisted.
"""

from qa_metrics_lib.models.common import (
    OperationResult,
    ensure_utc,
    round_half_up,
    round_int,
    utc_now,
)
from qa_metrics_lib.models.records import (
    # Scope and collections
    Scope,
    TEST_CASES,
    AI_GENERATIONS,
    TEST_EXECUTIONS,
    SCREEN_RECORDINGS,

    # Closed categories
    CreationType,
    TestCaseStatus,
    Priority,
    Complexity,
    CoverageDimension,
    ExecutionResult,
    GenerationQuality,
    GenerationType,
    RecordingQuality,

    # Records
    CoverageFlags,
    TestCaseMetadata,
    TestCaseRecord,
    AIGenerationRecord,
    ExecutionRecord,
    RecordingMetadata,
    ScreenRecordingRecord,
)
from qa_metrics_lib.models.metrics import (
    TestCaseMetrics,
    AIMetrics,
    AutomationMetrics,
    ExecutionMetrics,
    MetricsSnapshot,
    ReportType,
    ReportSummary,
    TestReport,
)

__all__ = [
    # Common
    "OperationResult", "ensure_utc", "round_half_up", "round_int", "utc_now",
    # Scope
    "Scope", "TEST_CASES", "AI_GENERATIONS", "TEST_EXECUTIONS", "SCREEN_RECORDINGS",
    # Categories
    "CreationType", "TestCaseStatus", "Priority", "Complexity",
    "CoverageDimension", "ExecutionResult", "GenerationQuality",
    "GenerationType", "RecordingQuality",
    # Records
    "CoverageFlags", "TestCaseMetadata", "TestCaseRecord",
    "AIGenerationRecord", "ExecutionRecord", "RecordingMetadata",
    "ScreenRecordingRecord",
    # Metrics
    "TestCaseMetrics", "AIMetrics", "AutomationMetrics", "ExecutionMetrics",
    "MetricsSnapshot", "ReportType", "ReportSummary", "TestReport",
]
