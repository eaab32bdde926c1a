"""Resilience utilities for record store access.

Standard retry policies for transient record store failures (timeouts,
unreachable or overloaded store). Permission errors, missing records and
validation failures are never retried.
"""

import logging
from typing import Any, Callable, Tuple, Type, TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
    RetryCallState,
)

from qa_metrics_lib.exceptions import TRANSIENT_STORE_ERRORS

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_retry_attempt(retry_state: RetryCallState) -> None:
    """Custom retry logging with the failing call's name."""
    if retry_state.attempt_number > 1:
        logger.warning(
            f"[Resilience] Retry attempt {retry_state.attempt_number} for "
            f"{retry_state.fn.__name__} after {retry_state.seconds_since_start:.1f}s. "
            f"Exception: {retry_state.outcome.exception() if retry_state.outcome else 'Unknown'}"
        )


# Standard retry policy for record store calls
# - Wait 2^x * 0.5 seconds between retries, capped at 4s
# - Stop after 3 attempts
# - Only transient store errors are retried
# - Re-raise the last exception if all retries fail
store_call_retry = retry(
    retry=retry_if_exception_type(TRANSIENT_STORE_ERRORS),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


def create_custom_retry(
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 4.0,
    multiplier: float = 0.5,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_STORE_ERRORS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Create a custom retry decorator with specific parameters.

    Args:
        max_attempts: Maximum number of attempts (1 disables retrying)
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
        multiplier: Exponential backoff multiplier
        retry_on: Exception types considered transient

    Returns:
        A retry decorator configured with the specified parameters

    Example:
        ```python
        fast_retry = create_custom_retry(max_attempts=5, min_wait=0.1, max_wait=1)

        @fast_retry
        async def load_records():
            return await store.query(path)
        ```
    """
    return retry(
        retry=retry_if_exception_type(retry_on),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        before_sleep=_log_retry_attempt,
        reraise=True,
    )


def retry_from_settings(settings: Any) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Build the store retry decorator described by a MetricsSettings object."""
    return create_custom_retry(
        max_attempts=settings.store_max_attempts,
        min_wait=settings.store_retry_min_wait,
        max_wait=settings.store_retry_max_wait,
    )
