"""Tests for the pure metrics computations."""

from datetime import timedelta

import pytest

from conftest import START, example_suite
from qa_metrics_lib.core.computer import (
    calculate_ai_metrics,
    calculate_automation_metrics,
    calculate_average_execution_time,
    calculate_coverage,
    calculate_coverage_score,
    calculate_execution_metrics,
    calculate_quality_score,
    calculate_test_case_metrics,
    count_by,
    percentage,
    safe_ratio,
)
from qa_metrics_lib.models.metrics import AIMetrics, TestCaseMetrics as CaseMetrics
from qa_metrics_lib.models.records import (
    AIGenerationRecord,
    CoverageDimension,
    ExecutionRecord,
    Priority,
    TestCaseRecord as CaseRecord,
)


def cases(*inputs):
    return [CaseRecord.from_input(data) for data in inputs]


class TestSafeRatio:
    """Tests for the shared ratio helper."""

    def test_zero_denominator(self):
        """Empty denominators yield 0 instead of raising."""
        assert safe_ratio(5, 0) == 0.0
        assert percentage(5, 0) == 0

    def test_scaled_ratio(self):
        assert safe_ratio(1, 4) == 25.0
        assert safe_ratio(3, 2, scale=1.0) == 1.5

    def test_percentage_rounds_half_up(self):
        """1/8 = 12.5% rounds to 13, not to the even 12."""
        assert percentage(1, 8) == 13
        assert percentage(2, 3) == 67

    def test_count_by_lists_every_member(self):
        counts = count_by([Priority.HIGH, Priority.HIGH], Priority)
        assert counts == {Priority.HIGH: 2, Priority.MEDIUM: 0, Priority.LOW: 0}


class TestCoverage:
    """Tests for coverage percentages."""

    @pytest.mark.parametrize("dimension", list(CoverageDimension))
    def test_empty_set_is_zero(self, dimension):
        assert calculate_coverage([], dimension) == 0

    @pytest.mark.parametrize("dimension", list(CoverageDimension))
    def test_all_covered_is_hundred(self, dimension):
        records = cases(*[{"coverage": {dimension.value: True}} for _ in range(3)])
        assert calculate_coverage(records, dimension) == 100

    def test_accepts_dimension_value(self):
        records = cases({"coverage": {"edgeCase": True}}, {})
        assert calculate_coverage(records, "edgeCase") == 50


class TestTestCaseMetrics:
    """Tests for test case aggregation."""

    def test_example_suite(self):
        """10 cases, 3 automated, 2 AI generated, 4 tagged, 5 functional."""
        metrics = calculate_test_case_metrics(cases(*example_suite()), now=START)

        assert metrics.total_test_cases == 10
        assert metrics.automated_test_cases == 3
        assert metrics.ai_generated_test_cases == 2
        assert metrics.manual_test_cases == 8
        assert metrics.test_cases_with_tags == 4
        assert metrics.functional_coverage == 50
        assert metrics.edge_case_coverage == 0

    def test_empty_suite_is_all_zero(self):
        """An empty suite yields zeros without division errors."""
        metrics = calculate_test_case_metrics([], now=START)

        assert metrics == CaseMetrics()
        assert calculate_quality_score(metrics) == 0
        assert calculate_coverage_score(metrics) == 0

    def test_breakdowns(self):
        records = cases(
            {"status": "draft", "priority": "high", "complexity": "high"},
            {"status": "outdated", "priority": "low", "metadata": {"complexity": "low"}},
            {"linkedBugs": ["BUG-1"], "hasRecording": True, "creationType": "automated"},
        )
        metrics = calculate_test_case_metrics(records, now=START)

        assert metrics.draft_test_cases == 1
        assert metrics.outdated_test_cases == 1
        assert metrics.active_test_cases == 1
        assert metrics.high_priority_test_cases == 1
        assert metrics.low_priority_test_cases == 1
        assert metrics.medium_priority_test_cases == 1
        assert metrics.complex_test_cases == 1
        assert metrics.simple_test_cases == 1
        assert metrics.medium_complexity_test_cases == 1
        assert metrics.test_cases_linked_to_bugs == 1
        assert metrics.test_cases_with_recordings == 1
        assert metrics.automation_generated_test_cases == 1

    def test_recency_window(self):
        """Only updates within the last seven days count as recent."""
        records = [
            CaseRecord(updated_at=START - timedelta(days=1)),
            CaseRecord(updated_at=START - timedelta(days=8)),
            CaseRecord(),
        ]
        metrics = calculate_test_case_metrics(records, now=START)

        assert metrics.recently_updated_test_cases == 1
        assert metrics.test_case_update_frequency == 1

    def test_executed_and_average_time(self):
        """Average execution time ignores cases without a duration."""
        records = cases(
            {"actualDuration": 10, "lastExecuted": START},
            {"actualDuration": 0},
            {"actualDuration": 25, "lastExecuted": START},
        )
        metrics = calculate_test_case_metrics(records, now=START)

        assert metrics.executed_test_cases == 2
        assert metrics.avg_execution_time == 18
        assert calculate_average_execution_time([]) == 0

    def test_serializes_camel_case(self):
        data = calculate_test_case_metrics(cases({}), now=START).to_dict()
        assert data["totalTestCases"] == 1
        assert "negativeCaseCoverage" in data


class TestAIMetrics:
    """Tests for AI generation aggregation."""

    def test_empty_input(self):
        assert calculate_ai_metrics([]) == AIMetrics(
            success_rate=0, avg_test_cases_per_generation=0, total_generations=0, cost_per_test_case=0
        )

    def test_aggregates(self):
        generations = [
            AIGenerationRecord(success_rate=80, test_cases_generated=5, cost=0.5),
            AIGenerationRecord(success_rate=0, test_cases_generated=0, cost=0.2),
            AIGenerationRecord(success_rate=50, test_cases_generated=4, cost=0.4),
        ]
        metrics = calculate_ai_metrics(generations)

        assert metrics.total_generations == 3
        assert metrics.success_rate == 67
        assert metrics.avg_test_cases_per_generation == 3
        assert metrics.cost_per_test_case == 0.122

    def test_cost_is_zero_without_generated_cases(self):
        """Cost per test case is 0 whenever nothing was generated."""
        metrics = calculate_ai_metrics([AIGenerationRecord(cost=5.0, success_rate=100)])
        assert metrics.cost_per_test_case == 0


class TestAutomationMetrics:
    """Tests for automation aggregation."""

    def test_example_suite_ratio(self):
        metrics = calculate_automation_metrics(cases(*example_suite()))

        assert metrics.automation_ratio == 30
        assert metrics.total_automated_tests == 3
        # cases 0 and 2 are automated and functional out of 5 functional
        assert metrics.automation_coverage == 40

    def test_no_functional_cases(self):
        metrics = calculate_automation_metrics(cases({"isAutomated": True}))
        assert metrics.automation_ratio == 100
        assert metrics.automation_coverage == 0

    def test_empty(self):
        metrics = calculate_automation_metrics([])
        assert metrics.automation_ratio == 0
        assert metrics.automation_coverage == 0

    def test_cypress_scripts(self):
        records = cases({"automationType": "cypress", "isAutomated": True}, {"automationType": "playwright"})
        assert calculate_automation_metrics(records).cypress_scripts_generated == 1


class TestQualityScore:
    """Tests for the quality and coverage scores."""

    def test_mean_of_factors(self):
        """Tagged 50%, recorded 25%, executed 0%, recent 100% -> 44."""
        records = [
            CaseRecord(tags={"a"}, has_recording=True, updated_at=START),
            CaseRecord(tags={"b"}, updated_at=START),
            CaseRecord(updated_at=START),
            CaseRecord(updated_at=START),
        ]
        metrics = calculate_test_case_metrics(records, now=START)
        assert calculate_quality_score(metrics) == 44

    @pytest.mark.parametrize("tagged,recorded,executed,recent,total", [
        (0, 0, 0, 0, 0),
        (5, 5, 5, 5, 5),
        (9, 9, 9, 9, 3),
        (1, 0, 2, 0, 7),
    ])
    def test_bounded(self, tagged, recorded, executed, recent, total):
        """The score stays within [0, 100] even for inconsistent counts."""
        metrics = CaseMetrics(
            total_test_cases=total,
            test_cases_with_tags=tagged,
            test_cases_with_recordings=recorded,
            executed_test_cases=executed,
            recently_updated_test_cases=recent,
        )
        assert 0 <= calculate_quality_score(metrics) <= 100

    def test_coverage_score(self):
        metrics = CaseMetrics(functional_coverage=50, edge_case_coverage=20, negative_case_coverage=5)
        assert calculate_coverage_score(metrics) == 25


class TestExecutionMetrics:
    """Tests for execution feed aggregation."""

    def test_pass_rate_and_duration(self):
        executions = [
            ExecutionRecord(test_case_id="a", result="passed", duration=30),
            ExecutionRecord(test_case_id="b", result="failed", duration=15),
            ExecutionRecord(test_case_id="c", result="passed", duration=0),
        ]
        metrics = calculate_execution_metrics(executions)

        assert metrics.total_executions == 3
        assert metrics.passed_executions == 2
        assert metrics.failed_executions == 1
        assert metrics.skipped_executions == 0
        assert metrics.pass_rate == 67
        assert metrics.avg_duration == 15

    def test_empty(self):
        metrics = calculate_execution_metrics([])
        assert metrics.pass_rate == 0
        assert metrics.avg_duration == 0
