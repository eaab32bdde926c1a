"""Metrics Computation Module

Pure aggregation functions over in-memory record sets. Nothing here performs
I/O or reads the clock implicitly: callers pass ``now`` when recency matters.

Key Functions:
- calculate_test_case_metrics(): counts, coverage, status/priority/complexity breakdowns
- calculate_ai_metrics(): success rate, yield and cost of AI generations
- calculate_automation_metrics(): automation ratio and functional automation coverage
- calculate_execution_metrics(): pass rate and duration over execution records
- calculate_quality_score(): mean of tag, recording, execution and freshness ratios

Every percentage goes through safe_ratio(), which yields 0 for an empty
denominator.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Type, TypeVar

from qa_metrics_lib.models.common import round_half_up, round_int, utc_now
from qa_metrics_lib.models.metrics import (
    AIMetrics,
    AutomationMetrics,
    ExecutionMetrics,
    TestCaseMetrics,
)
from qa_metrics_lib.models.records import (
    AIGenerationRecord,
    Complexity,
    CoverageDimension,
    CreationType,
    ExecutionRecord,
    ExecutionResult,
    Priority,
    TestCaseRecord,
    TestCaseStatus,
)

logger = logging.getLogger(__name__)

# Recency window for "recently updated" and update frequency
RECENT_DAYS = 7

E = TypeVar("E", bound=Enum)


def safe_ratio(numerator: float, denominator: float, scale: float = 100.0) -> float:
    """``scale * numerator / denominator``, or 0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return scale * numerator / denominator


def percentage(numerator: float, denominator: float) -> int:
    """safe_ratio() rounded half up to a whole percentage."""
    return round_int(safe_ratio(numerator, denominator))


def count_by(values: Iterable[E], enum_type: Type[E]) -> Dict[E, int]:
    """Count values per enum member; every member is present in the result."""
    counts = Counter(values)
    return {member: counts.get(member, 0) for member in enum_type}


def is_recent(timestamp: Optional[datetime], now: datetime, days: int = RECENT_DAYS) -> bool:
    if timestamp is None:
        return False
    return timestamp > now - timedelta(days=days)


def calculate_coverage(test_cases: Sequence[TestCaseRecord], dimension: CoverageDimension) -> int:
    """Percentage of test cases covering ``dimension``; 0 for an empty set."""
    dimension = CoverageDimension(dimension)
    covered = sum(1 for tc in test_cases if tc.coverage.covers(dimension))
    return percentage(covered, len(test_cases))


def calculate_average_execution_time(test_cases: Sequence[TestCaseRecord]) -> int:
    """Mean actual duration over test cases that recorded one."""
    durations = [tc.metadata.actual_duration for tc in test_cases if tc.metadata.actual_duration > 0]
    if not durations:
        return 0
    return round_int(sum(durations) / len(durations))


def calculate_update_frequency(test_cases: Sequence[TestCaseRecord], now: datetime) -> int:
    """Number of test cases updated within the recency window."""
    return sum(1 for tc in test_cases if is_recent(tc.updated_at, now))


def calculate_test_case_metrics(
    test_cases: Sequence[TestCaseRecord],
    now: Optional[datetime] = None,
) -> TestCaseMetrics:
    """Aggregate a scope's test cases.

    Args:
        test_cases: Parsed test case records of one scope
        now: Reference time for recency checks (default: current UTC time)

    Returns:
        TestCaseMetrics with counts, coverage percentages and breakdowns
    """
    now = now or utc_now()
    total = len(test_cases)

    by_creation = count_by((tc.creation_type for tc in test_cases), CreationType)
    by_status = count_by((tc.status for tc in test_cases), TestCaseStatus)
    by_priority = count_by((tc.priority for tc in test_cases), Priority)
    by_complexity = count_by((tc.metadata.complexity for tc in test_cases), Complexity)

    return TestCaseMetrics(
        total_test_cases=total,
        manual_test_cases=by_creation[CreationType.MANUAL],
        automated_test_cases=sum(1 for tc in test_cases if tc.is_automated),
        ai_generated_test_cases=by_creation[CreationType.AI_GENERATED],
        automation_generated_test_cases=by_creation[CreationType.AUTOMATED],
        test_cases_with_tags=sum(1 for tc in test_cases if tc.tags),
        test_cases_linked_to_bugs=sum(1 for tc in test_cases if tc.linked_bugs),
        test_cases_with_recordings=sum(1 for tc in test_cases if tc.has_recording),
        functional_coverage=calculate_coverage(test_cases, CoverageDimension.FUNCTIONAL),
        edge_case_coverage=calculate_coverage(test_cases, CoverageDimension.EDGE_CASE),
        negative_case_coverage=calculate_coverage(test_cases, CoverageDimension.NEGATIVE),
        active_test_cases=by_status[TestCaseStatus.ACTIVE],
        outdated_test_cases=by_status[TestCaseStatus.OUTDATED],
        draft_test_cases=by_status[TestCaseStatus.DRAFT],
        recently_updated_test_cases=sum(1 for tc in test_cases if is_recent(tc.updated_at, now)),
        executed_test_cases=sum(1 for tc in test_cases if tc.metadata.last_executed is not None),
        avg_execution_time=calculate_average_execution_time(test_cases),
        high_priority_test_cases=by_priority[Priority.HIGH],
        medium_priority_test_cases=by_priority[Priority.MEDIUM],
        low_priority_test_cases=by_priority[Priority.LOW],
        complex_test_cases=by_complexity[Complexity.HIGH],
        medium_complexity_test_cases=by_complexity[Complexity.MEDIUM],
        simple_test_cases=by_complexity[Complexity.LOW],
        test_case_update_frequency=calculate_update_frequency(test_cases, now),
    )


def calculate_ai_metrics(generations: Sequence[AIGenerationRecord]) -> AIMetrics:
    """Aggregate AI generation events.

    An empty input yields all zeros. Cost per test case is rounded to three
    decimals and is 0 whenever no test cases were generated.
    """
    total = len(generations)
    if total == 0:
        return AIMetrics()

    successful = sum(1 for g in generations if g.success_rate > 0)
    total_test_cases = sum(g.test_cases_generated for g in generations)
    total_cost = sum(g.cost for g in generations)

    cost_per_test_case = 0.0
    if total_test_cases > 0:
        cost_per_test_case = round_half_up(total_cost / total_test_cases, 3)

    return AIMetrics(
        success_rate=percentage(successful, total),
        avg_test_cases_per_generation=round_int(total_test_cases / total),
        total_generations=total,
        cost_per_test_case=cost_per_test_case,
    )


def calculate_automation_metrics(test_cases: Sequence[TestCaseRecord]) -> AutomationMetrics:
    """Automation ratio over all test cases and over functional ones."""
    automated = [tc for tc in test_cases if tc.is_automated]
    functional = [tc for tc in test_cases if tc.coverage.functional]
    automated_functional = [tc for tc in functional if tc.is_automated]

    return AutomationMetrics(
        automation_ratio=percentage(len(automated), len(test_cases)),
        automation_coverage=percentage(len(automated_functional), len(functional)),
        total_automated_tests=len(automated),
        cypress_scripts_generated=sum(1 for tc in test_cases if tc.automation_type == "cypress"),
    )


def calculate_execution_metrics(executions: Sequence[ExecutionRecord]) -> ExecutionMetrics:
    by_result = count_by((e.result for e in executions), ExecutionResult)
    total = len(executions)
    return ExecutionMetrics(
        total_executions=total,
        passed_executions=by_result[ExecutionResult.PASSED],
        failed_executions=by_result[ExecutionResult.FAILED],
        skipped_executions=by_result[ExecutionResult.SKIPPED],
        pass_rate=percentage(by_result[ExecutionResult.PASSED], total),
        avg_duration=round_int(safe_ratio(sum(e.duration for e in executions), total, scale=1.0)),
    )


def calculate_quality_score(metrics: TestCaseMetrics) -> int:
    """Mean of the tagged, recorded, executed and recently-updated ratios.

    Always within [0, 100]; 0 for an empty suite.
    """
    total = metrics.total_test_cases
    factors: List[float] = [
        min(safe_ratio(metrics.test_cases_with_tags, total), 100.0),
        min(safe_ratio(metrics.test_cases_with_recordings, total), 100.0),
        min(safe_ratio(metrics.executed_test_cases, total), 100.0),
        min(safe_ratio(metrics.recently_updated_test_cases, total), 100.0),
    ]
    return round_int(sum(factors) / len(factors))


def calculate_coverage_score(metrics: TestCaseMetrics) -> int:
    """Mean of the three coverage percentages."""
    return round_int(
        (metrics.functional_coverage + metrics.edge_case_coverage + metrics.negative_case_coverage) / 3
    )
