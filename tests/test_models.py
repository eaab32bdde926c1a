"""Tests for record and result models."""

import pytest
from pydantic import ValidationError

from qa_metrics_lib.exceptions import ComputationError, StoreTimeoutError
from qa_metrics_lib.models import (
    CoverageDimension,
    CoverageFlags,
    ExecutionRecord,
    OperationResult,
    Scope,
    TestCaseRecord as CaseRecord,
    TestCaseStatus as CaseStatus,
    round_half_up,
)


class TestScope:
    """Tests for Scope."""

    def test_suite_paths(self):
        scope = Scope(suite_id="s1")
        assert scope.collection_path("testCases") == "testSuites/s1/testCases"
        assert str(scope) == "s1"

    def test_sprint_paths(self):
        scope = Scope(suite_id="s1", sprint_id="sp2")
        assert scope.collection_path("testCases") == "testSuites/s1/sprints/sp2/testCases"
        assert scope.suite_collection_path("testExecutions") == "testSuites/s1/testExecutions"
        assert str(scope) == "s1/sp2"

    def test_hashable(self):
        assert {Scope(suite_id="s1"): 1}[Scope(suite_id="s1")] == 1

    def test_suite_required(self):
        with pytest.raises(ValidationError):
            Scope(suite_id="")


class TestTestCaseRecord:
    """Tests for TestCaseRecord."""

    def test_creation_defaults(self):
        record = CaseRecord.from_input({"name": "Login"})

        assert record.status == CaseStatus.ACTIVE
        assert record.priority.value == "medium"
        assert record.creation_type.value == "manual"
        assert record.tags == set()
        assert record.metadata.complexity.value == "medium"
        assert record.metadata.execution_count == 0

    def test_flat_metadata_is_folded(self):
        record = CaseRecord.from_input({"estimatedDuration": 90, "complexity": "high"})

        assert record.metadata.estimated_duration == 90
        assert record.metadata.complexity.value == "high"
        assert "complexity" not in record.to_document()

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            CaseRecord.from_document({"status": "archived"})

    def test_document_shape(self):
        document = CaseRecord.from_input({"tags": ["b", "a"], "linkedBugs": None}).to_document()

        assert document["tags"] == ["a", "b"]
        assert document["linkedBugs"] == []
        assert document["type"] == "testCase"
        assert "id" not in document
        assert "created_at" not in document

    def test_coverage_flags(self):
        flags = CoverageFlags.model_validate({"edgeCase": True})
        assert flags.covers(CoverageDimension.EDGE_CASE)
        assert not flags.covers(CoverageDimension.FUNCTIONAL)

    def test_naive_timestamps_become_utc(self):
        record = CaseRecord.from_document({"updated_at": "2026-03-02T09:30:00"})
        assert record.updated_at.utcoffset().total_seconds() == 0


class TestExecutionRecord:
    """Tests for ExecutionRecord."""

    def test_result_required(self):
        with pytest.raises(ValidationError):
            ExecutionRecord(test_case_id="tc-1")

    def test_document(self):
        document = ExecutionRecord(test_case_id="tc-1", result="passed", duration=12).to_document()
        assert document["testCaseId"] == "tc-1"
        assert document["environment"] == "production"
        assert document["type"] == "testExecution"


class TestOperationResult:
    """Tests for OperationResult."""

    def test_ok(self):
        result = OperationResult.ok({"id": "r1"})
        assert result.success
        assert result.to_dict() == {"success": True, "data": {"id": "r1"}}

    def test_fail(self):
        result = OperationResult.fail(ComputationError("bad data", {"id": "r1"}))
        assert not result.success
        assert result.data is None
        assert result.to_dict()["error"] == "bad data | Details: {'id': 'r1'}"

    def test_error_details(self):
        error = StoreTimeoutError("query timed out", 10.0)
        assert error.timeout_seconds == 10.0
        assert error.details == {"timeout_seconds": 10.0}


class TestRounding:
    """Tests for half-up rounding."""

    @pytest.mark.parametrize("value,digits,expected", [
        (2.5, 0, 3.0),
        (3.5, 0, 4.0),
        (2.4, 0, 2.0),
        (0.1225, 3, 0.123),
        (0.0, 0, 0.0),
    ])
    def test_round_half_up(self, value, digits, expected):
        assert round_half_up(value, digits) == expected
