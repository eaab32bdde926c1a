"""Base HTTP client for the record service."""

import logging
import uuid
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class BaseServiceClient:
    """Base class for HTTP clients of internal services.

    The acting user is propagated via the X-User-ID header and every request
    carries an X-Correlation-ID for tracing.

    Usage:
        class RecordServiceClient(BaseServiceClient):
            async def get(self, collection_path: str, record_id: str) -> dict:
                async with self._get_client() as client:
                    response = await client.get(
                        f"{self.base_url}/api/v1/records/{collection_path}/{record_id}",
                        headers=self._headers(),
                    )
                    response.raise_for_status()
                    return response.json()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        user_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize service client.

        Args:
            base_url: Service base URL (e.g., http://record-service:8010)
            timeout: Request timeout in seconds (default: 30.0)
            user_id: Acting user sent as X-User-ID
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_id = user_id
        self._transport = transport

        logger.info(f"Initialized {self.__class__.__name__} with base_url={self.base_url}")

    def _headers(self, correlation_id: Optional[str] = None) -> dict:
        """Request headers with user context and a correlation ID."""
        headers = {
            "Content-Type": "application/json",
            "X-Correlation-ID": correlation_id or uuid.uuid4().hex,
        }
        if self.user_id:
            headers["X-User-ID"] = self.user_id
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client instance with configured timeout.

        Returns:
            Configured AsyncClient ready for use with async context manager
        """
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
