"""Utility Functions"""

from qa_metrics_lib.utils.resilience import (
    store_call_retry,
    create_custom_retry,
    retry_from_settings,
)

__all__ = [
    "store_call_retry",
    "create_custom_retry",
    "retry_from_settings",
]
