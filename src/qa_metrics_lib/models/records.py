"""Record models - test cases and the append-only events around them.

Key Models:
- Scope: (suite_id, sprint_id?) partition over which aggregates are computed
- TestCaseRecord: mutable test case owned by a suite
- AIGenerationRecord: one AI generation event (append-only)
- ExecutionRecord: one test execution (append-only)
- ScreenRecordingRecord: one screen recording event (append-only)

Records are persisted as camelCase documents (``to_document()``) and parsed
back with ``from_document()``. Every string-valued category is a closed
enum; documents carrying unknown values fail validation.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from qa_metrics_lib.models.common import ensure_utc


# ============================================================
# Collections
# ============================================================

TEST_CASES = "testCases"
AI_GENERATIONS = "aiGenerations"
TEST_EXECUTIONS = "testExecutions"
SCREEN_RECORDINGS = "screenRecordings"


class Scope(BaseModel):
    """The (suite_id, sprint_id?) pair partitioning records.

    Scopes are immutable and hashable so they can key per-scope state.
    """

    model_config = ConfigDict(frozen=True)

    suite_id: str = Field(..., min_length=1, description="Owning test suite")
    sprint_id: Optional[str] = Field(None, description="Optional sprint within the suite")

    def collection_path(self, collection: str) -> str:
        """Path of a scoped collection.

        Example:
            >>> Scope(suite_id="s1", sprint_id="sp2").collection_path("testCases")
            'testSuites/s1/sprints/sp2/testCases'
        """
        if self.sprint_id:
            return f"testSuites/{self.suite_id}/sprints/{self.sprint_id}/{collection}"
        return f"testSuites/{self.suite_id}/{collection}"

    def suite_collection_path(self, collection: str) -> str:
        """Path of a suite-level collection, ignoring the sprint."""
        return f"testSuites/{self.suite_id}/{collection}"

    def __str__(self) -> str:
        if self.sprint_id:
            return f"{self.suite_id}/{self.sprint_id}"
        return self.suite_id


# ============================================================
# Closed categories
# ============================================================

class CreationType(str, Enum):
    """How a test case came to exist"""

    MANUAL = "manual"
    AUTOMATED = "automated"
    AI_GENERATED = "ai_generated"


class TestCaseStatus(str, Enum):
    """Lifecycle status of a test case"""

    ACTIVE = "active"
    OUTDATED = "outdated"
    DRAFT = "draft"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CoverageDimension(str, Enum):
    """Kind of scenario a test case exercises"""

    FUNCTIONAL = "functional"
    EDGE_CASE = "edgeCase"
    NEGATIVE = "negative"


class ExecutionResult(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class GenerationQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class GenerationType(str, Enum):
    TEST_CASES = "test_cases"
    BUG_REPORTS = "bug_reports"
    AUTOMATION_SCRIPTS = "automation_scripts"


class RecordingQuality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ============================================================
# Base
# ============================================================

class DocumentModel(BaseModel):
    """Base for persisted records: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # Document type discriminator written alongside the fields
    DOCUMENT_TYPE: ClassVar[str] = ""

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        return cls.model_validate(document)

    def to_document(self) -> Dict[str, Any]:
        """JSON-compatible document, without store-managed fields."""
        document = self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"id", "created_at", "updated_at"},
        )
        if self.DOCUMENT_TYPE:
            document["type"] = self.DOCUMENT_TYPE
        return document


# ============================================================
# Test cases
# ============================================================

class CoverageFlags(BaseModel):
    """Coverage dimensions a test case exercises"""

    model_config = ConfigDict(populate_by_name=True)

    functional: bool = False
    edge_case: bool = Field(False, alias="edgeCase")
    negative: bool = False

    def covers(self, dimension: CoverageDimension) -> bool:
        if dimension is CoverageDimension.FUNCTIONAL:
            return self.functional
        if dimension is CoverageDimension.EDGE_CASE:
            return self.edge_case
        if dimension is CoverageDimension.NEGATIVE:
            return self.negative
        raise ValueError(f"Unknown coverage dimension: {dimension}")


class TestCaseMetadata(BaseModel):
    """Execution bookkeeping for a test case"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    estimated_duration: float = Field(0, ge=0)
    actual_duration: float = Field(0, ge=0)
    complexity: Complexity = Complexity.MEDIUM
    last_executed: Optional[datetime] = None
    execution_count: int = Field(0, ge=0)

    @field_validator("last_executed")
    @classmethod
    def _utc(cls, v):
        return ensure_utc(v)


# Flat input keys that belong in TestCaseMetadata
_METADATA_INPUT_KEYS = {
    "estimatedDuration": "estimatedDuration",
    "estimated_duration": "estimatedDuration",
    "actualDuration": "actualDuration",
    "actual_duration": "actualDuration",
    "complexity": "complexity",
    "lastExecuted": "lastExecuted",
    "last_executed": "lastExecuted",
    "executionCount": "executionCount",
    "execution_count": "executionCount",
}


class TestCaseRecord(DocumentModel):
    """A test case owned by a suite (optionally within a sprint)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    DOCUMENT_TYPE = "testCase"

    id: Optional[str] = None
    name: Optional[str] = None
    creation_type: CreationType = CreationType.MANUAL
    status: TestCaseStatus = TestCaseStatus.ACTIVE
    priority: Priority = Priority.MEDIUM
    tags: Set[str] = Field(default_factory=set)
    linked_bugs: Set[str] = Field(default_factory=set)
    has_recording: bool = False
    is_automated: bool = False
    automation_type: Optional[str] = None
    coverage: CoverageFlags = Field(default_factory=CoverageFlags)
    metadata: TestCaseMetadata = Field(default_factory=TestCaseMetadata)
    last_execution_result: Optional[ExecutionResult] = None
    last_execution_notes: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="created_at")
    updated_at: Optional[datetime] = Field(None, alias="updated_at")

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, v):
        return ensure_utc(v)

    @field_validator("tags", "linked_bugs", mode="before")
    @classmethod
    def _none_as_empty(cls, v):
        return set() if v is None else v

    @classmethod
    def from_input(cls, data: Dict[str, Any]) -> "TestCaseRecord":
        """Build a new record from caller input, applying creation defaults.

        Accepts metadata fields either nested under ``metadata`` or flat at
        the top level (``estimatedDuration``, ``complexity``, ...).
        """
        payload = {k: v for k, v in data.items() if k not in _METADATA_INPUT_KEYS}
        metadata = dict(data.get("metadata") or {})
        for key, target in _METADATA_INPUT_KEYS.items():
            if key in data and data[key] is not None:
                metadata[target] = data[key]
        payload["metadata"] = metadata
        return cls.model_validate(payload)

    def to_document(self) -> Dict[str, Any]:
        document = super().to_document()
        # Sets are stored as sorted arrays
        document["tags"] = sorted(self.tags)
        document["linkedBugs"] = sorted(self.linked_bugs)
        return document


# ============================================================
# Append-only events
# ============================================================

class AIGenerationRecord(DocumentModel):
    """One AI generation event."""

    DOCUMENT_TYPE = "aiGeneration"

    id: Optional[str] = None
    prompt: Optional[str] = None
    model: str = "gpt-4"
    tokens_used: int = Field(0, ge=0)
    cost: float = Field(0, ge=0)
    test_cases_generated: int = Field(0, ge=0)
    success_rate: float = Field(0, ge=0, le=100)
    generation_type: GenerationType = GenerationType.TEST_CASES
    input_data: Dict[str, Any] = Field(default_factory=dict)
    output_data: Dict[str, Any] = Field(default_factory=dict)
    quality: GenerationQuality = GenerationQuality.GOOD
    user_feedback: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="created_at")

    @field_validator("cost", "tokens_used", "test_cases_generated", "success_rate", mode="before")
    @classmethod
    def _none_as_zero(cls, v):
        return 0 if v is None else v


class ExecutionRecord(DocumentModel):
    """One execution of a test case."""

    DOCUMENT_TYPE = "testExecution"

    id: Optional[str] = None
    test_case_id: str
    sprint_id: Optional[str] = None
    result: ExecutionResult
    duration: float = Field(0, ge=0)
    notes: str = ""
    executed_by: Optional[str] = None
    environment: str = "production"
    browser_info: Optional[Dict[str, Any]] = None
    executed_at: Optional[datetime] = None

    @field_validator("executed_at")
    @classmethod
    def _utc(cls, v):
        return ensure_utc(v)


class RecordingMetadata(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    browser_info: Optional[Dict[str, Any]] = None
    screen_resolution: Optional[str] = None
    device_type: str = "desktop"


class ScreenRecordingRecord(DocumentModel):
    """One screen recording event."""

    DOCUMENT_TYPE = "screenRecording"

    id: Optional[str] = None
    duration: float = Field(0, ge=0)
    file_size: int = Field(0, ge=0)
    file_path: str = ""
    recording_quality: RecordingQuality = RecordingQuality.HIGH
    converted_to_bug_report: bool = False
    converted_to_test_case: bool = False
    linked_bug_id: Optional[str] = None
    linked_test_case_id: Optional[str] = None
    metadata: RecordingMetadata = Field(default_factory=RecordingMetadata)
