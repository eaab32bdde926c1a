"""HTTP clients for external services."""

from qa_metrics_lib.clients.base import BaseServiceClient
from qa_metrics_lib.clients.record_service_client import RecordServiceClient

__all__ = ["BaseServiceClient", "RecordServiceClient"]
