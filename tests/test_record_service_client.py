"""Tests for the HTTP record service client."""

import asyncio
import json

import httpx
import pytest

from conftest import START, case_document, wait_until
from qa_metrics_lib.clients import RecordServiceClient
from qa_metrics_lib.core.service import MetricsService
from qa_metrics_lib.exceptions import (
    RecordNotFoundError,
    StoreQueryError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from qa_metrics_lib.models.records import Scope
from qa_metrics_lib.store.base import Ordering

BASE_URL = "http://record-service.test"
CASES = "testSuites/s1/testCases"


class FakeRecordService:
    """Minimal in-memory record service behind httpx.MockTransport."""

    def __init__(self):
        self.records = {}
        self.requests = []
        self.activity = []
        self.fail_with = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            failure, self.fail_with = self.fail_with, None
            if isinstance(failure, Exception):
                raise failure
            if isinstance(failure, httpx.Response):
                return failure
            return httpx.Response(failure, text="failure")

        path = request.url.path
        body = json.loads(request.content) if request.content else None

        if path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        if path == "/api/v1/records/query":
            documents = [
                {"id": record_id, **document}
                for (collection, record_id), document in self.records.items()
                if collection == body["collection"]
            ]
            return httpx.Response(200, json={"records": documents})
        if path.startswith("/api/v1/activity/"):
            self.activity.append((path.rsplit("/", 1)[-1], body))
            return httpx.Response(201, json={})

        rest = path[len("/api/v1/records/"):]
        if request.method == "POST":
            record_id = body.get("id") or f"r{len(self.records) + 1}"
            self.records[(rest, record_id)] = body["data"]
            return httpx.Response(201, json={"id": record_id})

        collection, record_id = rest.rsplit("/", 1)
        key = (collection, record_id)
        if key not in self.records:
            return httpx.Response(404, json={"detail": "not found"})
        if request.method == "GET":
            return httpx.Response(200, json={"id": record_id, **self.records[key]})
        if request.method == "PATCH":
            self.records[key].update(body["data"])
            return httpx.Response(200, json={})
        return httpx.Response(405)


@pytest.fixture
def fake_service():
    return FakeRecordService()


@pytest.fixture
def client(fake_service, settings):
    return RecordServiceClient(
        base_url=BASE_URL,
        poll_interval=0.01,
        transport=httpx.MockTransport(fake_service.handler),
        settings=settings,
    )


class TestRequests:
    """Tests for the RecordStore operations over HTTP."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, client, fake_service):
        record_id = await client.create(CASES, {"name": "Login", "lastExecuted": START})

        document = await client.get(CASES, record_id)
        assert document["name"] == "Login"
        assert document["lastExecuted"].startswith("2026-03-02T09:30:00")

    @pytest.mark.asyncio
    async def test_headers(self, client, fake_service):
        await client.query(CASES)

        request = fake_service.requests[-1]
        assert request.headers["X-User-ID"] == "qa-user"
        assert request.headers["X-Correlation-ID"]

    @pytest.mark.asyncio
    async def test_query_body(self, client, fake_service):
        await client.query(CASES, {"sprintId": "sp"}, [Ordering.desc("executedAt")], limit=50)

        body = json.loads(fake_service.requests[-1].content)
        assert body == {
            "collection": CASES,
            "filters": {"sprintId": "sp"},
            "orderBy": [{"field": "executedAt", "direction": "desc"}],
            "limit": 50,
        }

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, client):
        assert await client.get(CASES, "missing") is None

    @pytest.mark.asyncio
    async def test_update(self, client, fake_service):
        record_id = await client.create(CASES, {"status": "active"})
        await client.update(CASES, record_id, {"status": "draft"})

        assert fake_service.records[(CASES, record_id)]["status"] == "draft"

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, client):
        with pytest.raises(RecordNotFoundError):
            await client.update(CASES, "missing", {"status": "draft"})

    @pytest.mark.asyncio
    async def test_activity_log(self, client, fake_service):
        await client.append_activity_log("s1", {"action": "test_case_created"})
        assert fake_service.activity == [("s1", {"action": "test_case_created"})]


class TestErrorMapping:
    """Tests for mapping HTTP failures onto store errors."""

    @pytest.mark.asyncio
    async def test_server_error(self, client, fake_service):
        fake_service.fail_with = 503
        with pytest.raises(StoreUnavailableError):
            await client.query(CASES)

    @pytest.mark.asyncio
    async def test_client_error(self, client, fake_service):
        fake_service.fail_with = 403
        with pytest.raises(StoreQueryError) as exc_info:
            await client.query(CASES)
        assert exc_info.value.details["status_code"] == 403

    @pytest.mark.asyncio
    async def test_timeout(self, client, fake_service):
        fake_service.fail_with = httpx.ReadTimeout("read timed out")
        with pytest.raises(StoreTimeoutError):
            await client.query(CASES)

    @pytest.mark.asyncio
    async def test_connection_error(self, client, fake_service):
        fake_service.fail_with = httpx.ConnectError("connection refused")
        with pytest.raises(StoreUnavailableError):
            await client.get(CASES, "r1")

    @pytest.mark.asyncio
    async def test_invalid_json_body(self, client, fake_service):
        fake_service.fail_with = httpx.Response(200, text="oops")
        with pytest.raises(StoreQueryError, match="invalid JSON"):
            await client.query(CASES)

    @pytest.mark.asyncio
    async def test_malformed_query_result(self, client, fake_service):
        fake_service.fail_with = httpx.Response(200, json=["not", "an", "object"])
        with pytest.raises(StoreQueryError):
            await client.query(CASES)

    @pytest.mark.asyncio
    async def test_create_without_id(self, client, fake_service):
        fake_service.fail_with = httpx.Response(201, json={})
        with pytest.raises(StoreQueryError, match="created id"):
            await client.create(CASES, {"name": "Login"})

    @pytest.mark.asyncio
    async def test_verify_connection_retries(self, client, fake_service):
        fake_service.fail_with = 502
        assert await client.verify_connection() is True
        assert len(fake_service.requests) == 2


class TestPollingSubscriptions:
    """Tests for subscriptions emulated by polling."""

    @pytest.mark.asyncio
    async def test_fires_on_first_poll_and_on_change_only(self, client):
        deliveries = []
        unsubscribe = client.subscribe(CASES, [], deliveries.append)

        await wait_until(lambda: len(deliveries) == 1)
        await asyncio.sleep(0.05)
        assert len(deliveries) == 1

        await client.create(CASES, {"name": "Login"})
        await wait_until(lambda: len(deliveries) == 2)
        assert deliveries[1][0]["name"] == "Login"
        unsubscribe()

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_polling(self, client, fake_service):
        deliveries = []
        unsubscribe = client.subscribe(CASES, [], deliveries.append)
        unsubscribe()
        await asyncio.sleep(0.05)

        assert deliveries == []
        assert client.poll_task_count == 0

    @pytest.mark.asyncio
    async def test_poll_errors_go_to_on_error(self, client, fake_service):
        deliveries, errors = [], []
        fake_service.fail_with = 500
        unsubscribe = client.subscribe(CASES, [], deliveries.append, errors.append)

        await wait_until(lambda: errors and deliveries)
        assert isinstance(errors[0], StoreUnavailableError)
        unsubscribe()

    @pytest.mark.asyncio
    async def test_invalid_json_goes_to_on_error(self, client, fake_service):
        """An undecodable poll response is reported and polling continues."""
        deliveries, errors = [], []
        fake_service.fail_with = httpx.Response(200, text="oops")
        unsubscribe = client.subscribe(CASES, [], deliveries.append, errors.append)

        await wait_until(lambda: errors and deliveries)
        assert isinstance(errors[0], StoreQueryError)
        assert client.poll_task_count == 1
        unsubscribe()

    @pytest.mark.asyncio
    async def test_close_cancels_polling(self, client):
        client.subscribe(CASES, [], lambda documents: None)
        client.subscribe(CASES, [], lambda documents: None)
        await client.close()

        assert client.poll_task_count == 0


class TestServiceIntegration:
    """Tests for MetricsService on top of the HTTP client."""

    @pytest.mark.asyncio
    async def test_snapshot_over_http(self, client, fake_service, settings):
        scope = Scope(suite_id="s1")
        for fields in ({"isAutomated": True}, {}):
            await client.create(scope.collection_path("testCases"), case_document(**fields))

        service = MetricsService(client, settings=settings)
        result = await service.calculate_metrics_snapshot(scope)

        assert result.success
        assert result.data.test_cases.total_test_cases == 2
        assert result.data.automation.automation_ratio == 50
