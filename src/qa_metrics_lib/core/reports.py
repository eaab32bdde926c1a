"""Report generation over freshly computed metrics."""

import asyncio
import logging

from qa_metrics_lib.core import computer
from qa_metrics_lib.core.service import MetricsService
from qa_metrics_lib.exceptions import ComputationError
from qa_metrics_lib.models.common import OperationResult
from qa_metrics_lib.models.metrics import ReportSummary, ReportType, TestReport
from qa_metrics_lib.models.records import Scope

logger = logging.getLogger(__name__)


class ReportGenerator:
    """Builds TestReports for a scope.

    Reports always bypass the cache. If either the test case metrics or the
    automation metrics cannot be computed, no report is produced.
    """

    def __init__(self, service: MetricsService):
        self.service = service

    async def generate_report(
        self, scope: Scope, report_type: ReportType = ReportType.SUMMARY
    ) -> OperationResult[TestReport]:
        """Generate a report for a scope.

        Args:
            scope: Suite and optional sprint to report on
            report_type: summary, detailed or sprint

        Returns:
            OperationResult with the TestReport, or a ComputationError wrapping
            the first underlying failure
        """
        try:
            report_type = ReportType(report_type)
        except ValueError:
            return OperationResult.fail(
                ComputationError(f"Unknown report type: {report_type}", {"reportType": report_type})
            )

        test_case_result, automation_result = await asyncio.gather(
            self.service.calculate_test_case_metrics(scope, use_cache=False),
            self.service.calculate_automation_metrics(scope),
        )

        for result in (test_case_result, automation_result):
            if not result.success:
                logger.error(f"Failed to generate {report_type.value} report for {scope}: {result.error}")
                return OperationResult.fail(
                    ComputationError(
                        "Failed to generate test report",
                        {"scope": str(scope), "cause": str(result.error)},
                    )
                )

        test_cases = test_case_result.data
        automation = automation_result.data
        summary = ReportSummary(
            total_test_cases=test_cases.total_test_cases,
            automation_ratio=automation.automation_ratio,
            ai_contribution=computer.percentage(
                test_cases.ai_generated_test_cases, test_cases.total_test_cases
            ),
            quality_score=computer.calculate_quality_score(test_cases),
            coverage_score=computer.calculate_coverage_score(test_cases),
        )

        report = TestReport(
            suite_id=scope.suite_id,
            sprint_id=scope.sprint_id,
            report_type=report_type,
            generated_at=self.service.now(),
            test_cases=test_cases,
            automation=automation,
            summary=summary,
        )
        logger.info(f"Generated {report_type.value} report for {scope}")
        return OperationResult.ok(report)
