"""Derived metrics models.

These are never persisted. Attribute names are snake_case; dumping with
``by_alias=True`` yields the camelCase keys dashboards consume
(``functionalCoverage``, ``aiGenerationSuccessRate``, ...).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from qa_metrics_lib.models.common import utc_now


class MetricsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TestCaseMetrics(MetricsModel):
    """Aggregates over the test cases of one scope."""

    total_test_cases: int = 0

    # Creation breakdown (automated_test_cases counts is_automated)
    manual_test_cases: int = 0
    automated_test_cases: int = 0
    ai_generated_test_cases: int = 0
    automation_generated_test_cases: int = 0

    test_cases_with_tags: int = 0
    test_cases_linked_to_bugs: int = 0
    test_cases_with_recordings: int = 0

    # Coverage percentages
    functional_coverage: int = 0
    edge_case_coverage: int = 0
    negative_case_coverage: int = 0

    # Status breakdown
    active_test_cases: int = 0
    outdated_test_cases: int = 0
    draft_test_cases: int = 0

    recently_updated_test_cases: int = 0

    # Execution
    executed_test_cases: int = 0
    avg_execution_time: int = 0

    # Priority breakdown
    high_priority_test_cases: int = 0
    medium_priority_test_cases: int = 0
    low_priority_test_cases: int = 0

    # Complexity breakdown
    complex_test_cases: int = 0
    medium_complexity_test_cases: int = 0
    simple_test_cases: int = 0

    test_case_update_frequency: int = 0


class AIMetrics(MetricsModel):
    success_rate: int = 0
    avg_test_cases_per_generation: int = 0
    total_generations: int = 0
    cost_per_test_case: float = 0


class AutomationMetrics(MetricsModel):
    automation_ratio: int = 0
    automation_coverage: int = 0
    total_automated_tests: int = 0
    cypress_scripts_generated: int = 0


class ExecutionMetrics(MetricsModel):
    """Aggregates over a window of execution records."""

    total_executions: int = 0
    passed_executions: int = 0
    failed_executions: int = 0
    skipped_executions: int = 0
    pass_rate: int = 0
    avg_duration: int = 0


class MetricsSnapshot(MetricsModel):
    """Materialized output of one full metrics computation for a scope."""

    suite_id: str
    sprint_id: Optional[str] = None
    test_cases: TestCaseMetrics = Field(default_factory=TestCaseMetrics)
    ai: AIMetrics = Field(default_factory=AIMetrics)
    automation: AutomationMetrics = Field(default_factory=AutomationMetrics)
    computed_at: datetime = Field(default_factory=utc_now)

    @property
    def ai_generation_success_rate(self) -> int:
        return self.ai.success_rate

    @property
    def ai_cost_per_test_case(self) -> float:
        return self.ai.cost_per_test_case


class ReportType(str, Enum):
    SUMMARY = "summary"
    DETAILED = "detailed"
    SPRINT = "sprint"


class ReportSummary(MetricsModel):
    total_test_cases: int = 0
    automation_ratio: int = 0
    ai_contribution: int = 0
    quality_score: int = 0
    coverage_score: int = 0


class TestReport(MetricsModel):
    """Report composed from freshly computed test-case and automation metrics."""

    suite_id: str
    sprint_id: Optional[str] = None
    report_type: ReportType = ReportType.SUMMARY
    generated_at: datetime = Field(default_factory=utc_now)
    test_cases: TestCaseMetrics
    automation: AutomationMetrics
    summary: ReportSummary

    @property
    def metrics(self) -> Dict[str, Any]:
        """Test-case and automation metrics merged into one camelCase mapping."""
        merged = self.test_cases.to_dict()
        merged.update(self.automation.to_dict())
        return merged
