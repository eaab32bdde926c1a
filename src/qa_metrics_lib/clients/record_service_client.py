"""HTTP client for the REST record service.

Implements the RecordStore contract over HTTP. The record service has no
push channel, so subscriptions poll the collection and fire whenever the
result set changes.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Set

import httpx
from pydantic_core import to_jsonable_python

from qa_metrics_lib.clients.base import BaseServiceClient
from qa_metrics_lib.config import MetricsSettings, get_settings
from qa_metrics_lib.exceptions import (
    RecordNotFoundError,
    StoreQueryError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from qa_metrics_lib.store.base import (
    ChangeCallback,
    ErrorCallback,
    Ordering,
    RecordStore,
    Unsubscribe,
    running_loop,
)
from qa_metrics_lib.utils.resilience import store_call_retry

logger = logging.getLogger(__name__)


def _fingerprint(documents: List[Dict[str, Any]]) -> str:
    return json.dumps(documents, sort_keys=True, default=str)


class RecordServiceClient(BaseServiceClient, RecordStore):
    """Async RecordStore backed by the record service REST API.

    Endpoints:
        POST  /api/v1/records/query               filtered, ordered query
        GET   /api/v1/records/{path}/{id}         point read (404 -> None)
        POST  /api/v1/records/{path}              create, returns {"id": ...}
        PATCH /api/v1/records/{path}/{id}         dotted-key merge
        POST  /api/v1/activity/{suite_id}         activity log append
        GET   /health                             connectivity check

    Usage:
        client = RecordServiceClient(base_url="http://record-service:8010")
        await client.verify_connection()
        service = MetricsService(client)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        poll_interval: Optional[float] = None,
        user_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[MetricsSettings] = None,
    ):
        """Initialize client.

        Args:
            base_url: Record service URL (default: RECORD_SERVICE_URL setting)
            timeout: Request timeout in seconds (default: 30.0)
            poll_interval: Seconds between subscription polls
                (default: RECORD_SERVICE_POLL_INTERVAL setting)
            user_id: Acting user (default: METRICS_USER_ID setting)
            transport: Optional httpx transport
            settings: Settings to read defaults from (default: global settings)
        """
        settings = settings or get_settings()
        super().__init__(
            base_url=base_url or settings.record_service_url,
            timeout=timeout,
            user_id=user_id or settings.user_id,
            transport=transport,
        )
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.record_service_poll_interval
        )
        self._poll_tasks: Set[asyncio.Task] = set()

    # ===== HTTP =====

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Any] = None,
        allow_not_found: bool = False,
    ) -> Optional[httpx.Response]:
        """Send a request and map failures onto the store error taxonomy.

        Returns None for a 404 when ``allow_not_found`` is set.
        """
        url = f"{self.base_url}{path}"
        try:
            async with self._get_client() as client:
                response = await client.request(
                    method,
                    url,
                    json=to_jsonable_python(payload) if payload is not None else None,
                    headers=self._headers(),
                )
        except httpx.TimeoutException as e:
            raise StoreTimeoutError(f"Record service {method} {path} timed out", self.timeout) from e
        except httpx.TransportError as e:
            raise StoreUnavailableError(
                f"Record service unreachable: {e}", {"method": method, "url": url}
            ) from e

        if response.status_code == 404 and allow_not_found:
            return None
        if response.status_code >= 500:
            raise StoreUnavailableError(
                f"Record service error {response.status_code}",
                {"method": method, "path": path, "body": response.text[:500]},
            )
        if response.is_error:
            raise StoreQueryError(
                f"Record service rejected {method} {path}",
                {"status_code": response.status_code, "body": response.text[:500]},
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise StoreQueryError(
                "Record service returned invalid JSON",
                {"url": str(response.request.url), "body": response.text[:500]},
            ) from e

    # ===== RecordStore =====

    async def query(
        self,
        collection_path: str,
        filters: Optional[Dict[str, Any]] = None,
        orderings: Sequence[Ordering] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        body = {
            "collection": collection_path,
            "filters": filters or {},
            "orderBy": [
                {"field": o.field, "direction": "desc" if o.descending else "asc"}
                for o in orderings
            ],
            "limit": limit,
        }
        response = await self._request("POST", "/api/v1/records/query", body)
        payload = self._json(response)
        if not isinstance(payload, dict) or not isinstance(payload.get("records", []), list):
            raise StoreQueryError(
                "Record service returned a malformed query result", {"collection": collection_path}
            )
        return payload.get("records", [])

    async def get(self, collection_path: str, record_id: str) -> Optional[Dict[str, Any]]:
        response = await self._request(
            "GET", f"/api/v1/records/{collection_path}/{record_id}", allow_not_found=True
        )
        if response is None:
            return None
        return self._json(response)

    async def create(
        self,
        collection_path: str,
        data: Dict[str, Any],
        record_id: Optional[str] = None,
    ) -> str:
        body: Dict[str, Any] = {"data": data}
        if record_id:
            body["id"] = record_id
        response = await self._request("POST", f"/api/v1/records/{collection_path}", body)
        payload = self._json(response)
        if not isinstance(payload, dict) or "id" not in payload:
            raise StoreQueryError(
                "Record service did not return the created id", {"collection": collection_path}
            )
        created_id = payload["id"]
        logger.debug(f"Created {collection_path}/{created_id}")
        return created_id

    async def update(self, collection_path: str, record_id: str, data: Dict[str, Any]) -> None:
        response = await self._request(
            "PATCH",
            f"/api/v1/records/{collection_path}/{record_id}",
            {"data": data},
            allow_not_found=True,
        )
        if response is None:
            raise RecordNotFoundError(collection_path, record_id)

    async def append_activity_log(self, suite_id: str, event: Dict[str, Any]) -> None:
        await self._request("POST", f"/api/v1/activity/{suite_id}", event)

    # ===== Subscriptions =====

    def subscribe(
        self,
        collection_path: str,
        orderings: Sequence[Ordering],
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> Unsubscribe:
        """Poll a collection and call ``on_change`` when its result set changes.

        The first successful poll always fires. Poll failures go to
        ``on_error`` and polling continues.
        """
        loop = running_loop()
        state = {"active": True}

        async def poll() -> None:
            fingerprint: Optional[str] = None
            while state["active"]:
                try:
                    documents = await self.query(collection_path, filters, orderings, limit)
                except StoreQueryError as e:
                    logger.warning(f"Polling {collection_path} failed: {e}")
                    if on_error is not None and state["active"]:
                        on_error(e)
                else:
                    current = _fingerprint(documents)
                    if current != fingerprint and state["active"]:
                        fingerprint = current
                        try:
                            on_change(documents)
                        except Exception:
                            logger.exception(f"Change callback failed for {collection_path}")
                await asyncio.sleep(self.poll_interval)

        task = loop.create_task(poll())
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)
        logger.debug(f"Polling {collection_path} every {self.poll_interval}s")

        def unsubscribe() -> None:
            state["active"] = False
            task.cancel()

        return unsubscribe

    @property
    def poll_task_count(self) -> int:
        return len(self._poll_tasks)

    # ===== Lifecycle =====

    @store_call_retry
    async def verify_connection(self) -> bool:
        """Check the record service health endpoint, retrying transient failures.

        Raises:
            StoreUnavailableError: If the service is still unreachable after retries
        """
        await self._request("GET", "/health")
        logger.info(f"Record service reachable at {self.base_url}")
        return True

    async def close(self) -> None:
        """Cancel every polling task."""
        tasks = list(self._poll_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._poll_tasks.clear()
