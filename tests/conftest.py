"""Shared fixtures for the QA metrics test suite."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable

import pytest

from qa_metrics_lib.config import MetricsSettings
from qa_metrics_lib.core.cache import MetricsCache
from qa_metrics_lib.core.service import MetricsService
from qa_metrics_lib.models.records import (
    AI_GENERATIONS,
    TEST_CASES,
    AIGenerationRecord,
    Scope,
    TestCaseRecord,
)
from qa_metrics_lib.store.memory import InMemoryRecordStore

START = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeMonotonic:
    """Settable monotonic clock for cache TTL tests."""

    def __init__(self):
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def case_document(**fields: Any) -> Dict[str, Any]:
    """Store document for a new test case with creation defaults."""
    fields.setdefault("name", "Checkout with saved card")
    return TestCaseRecord.from_input(fields).to_document()


def ai_generation_document(**fields: Any) -> Dict[str, Any]:
    return AIGenerationRecord.model_validate(fields).to_document()


async def seed_test_cases(store: InMemoryRecordStore, scope: Scope, cases: Iterable[Dict[str, Any]]) -> list:
    ids = []
    for fields in cases:
        ids.append(await store.create(scope.collection_path(TEST_CASES), case_document(**fields)))
    return ids


async def seed_ai_generations(store: InMemoryRecordStore, scope: Scope, generations: Iterable[Dict[str, Any]]) -> None:
    for fields in generations:
        await store.create(scope.collection_path(AI_GENERATIONS), ai_generation_document(**fields))


def example_suite() -> list:
    """Ten test cases: 3 automated, 2 AI generated, 4 tagged, 5 functional."""
    cases = []
    for i in range(10):
        cases.append({
            "name": f"Case {i}",
            "isAutomated": i < 3,
            "creationType": "ai_generated" if i in (3, 4) else "manual",
            "tags": ["smoke"] if i in (0, 5, 6, 7) else [],
            "coverage": {"functional": i % 2 == 0, "edgeCase": False, "negative": False},
        })
    return cases


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll ``predicate`` until it is truthy or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(interval)


class GatedStore(InMemoryRecordStore):
    """Holds the first test case query after reading its documents.

    The held computation therefore sees the collection as it was before any
    later write.
    """

    def __init__(self, clock=None):
        super().__init__(clock=clock)
        self.gate = asyncio.Event()
        self.hold_next = False
        self.waiting = False

    async def query(self, collection_path, filters=None, orderings=(), limit=None):
        documents = await super().query(collection_path, filters, orderings, limit)
        if collection_path.endswith(TEST_CASES) and self.hold_next:
            self.hold_next = False
            self.waiting = True
            await self.gate.wait()
            self.waiting = False
        return documents


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scope():
    return Scope(suite_id="suite-1")


@pytest.fixture
def sprint_scope():
    return Scope(suite_id="suite-1", sprint_id="sprint-7")


@pytest.fixture
def store(clock):
    return InMemoryRecordStore(clock=clock)


@pytest.fixture
def settings():
    return MetricsSettings(
        refresh_interval_ms=30000,
        store_timeout=2.0,
        store_max_attempts=1,
        store_retry_min_wait=0,
        store_retry_max_wait=0,
        user_id="qa-user",
    )


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def cache(monotonic):
    return MetricsCache(clock=monotonic)


@pytest.fixture
def service(store, cache, settings, clock):
    return MetricsService(store, cache=cache, settings=settings, clock=clock)
