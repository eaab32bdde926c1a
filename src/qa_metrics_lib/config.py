"""Environment-driven settings for the metrics engine.

Explicit constructor arguments take precedence over environment variables,
which take precedence over defaults.

Environment Variables:
    METRICS_REFRESH_INTERVAL_MS: Poll interval for consumers (default: 30000)
    METRICS_CACHE_MAX_SIZE: Optional bound on cached snapshots (default: unbounded)
    METRICS_STORE_TIMEOUT: Per-call record store timeout in seconds (default: 10.0)
    METRICS_STORE_MAX_ATTEMPTS: Attempts for transient store failures (default: 3)
    METRICS_STORE_RETRY_MIN_WAIT: Minimum backoff in seconds (default: 0.5)
    METRICS_STORE_RETRY_MAX_WAIT: Maximum backoff in seconds (default: 4.0)
    METRICS_USER_ID: Acting user recorded on executions (optional)
    RECORD_SERVICE_URL: Base URL of the REST record service (default: http://localhost:8010)
    RECORD_SERVICE_POLL_INTERVAL: Change polling interval in seconds (default: 5.0)
"""

import logging
import os
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Cache entries are valid for five minutes
CACHE_TTL_SECONDS = 300.0

DEFAULT_REFRESH_INTERVAL_MS = 30000

# Size of the recent-executions feed
EXECUTIONS_FEED_LIMIT = 50


def _env(name: str, cast: Callable[[str], T], default: T) -> T:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Invalid value in {name}: {raw!r}, using default {default!r}")
        return default


class MetricsSettings:
    """Runtime settings for the metrics service, subscriptions and clients.

    Example:
        ```python
        settings = MetricsSettings(store_timeout=2.0)
        service = MetricsService(store, settings=settings)
        ```
    """

    def __init__(
        self,
        refresh_interval_ms: Optional[int] = None,
        cache_max_size: Optional[int] = None,
        store_timeout: Optional[float] = None,
        store_max_attempts: Optional[int] = None,
        store_retry_min_wait: Optional[float] = None,
        store_retry_max_wait: Optional[float] = None,
        user_id: Optional[str] = None,
        record_service_url: Optional[str] = None,
        record_service_poll_interval: Optional[float] = None,
    ):
        self.refresh_interval_ms = (
            refresh_interval_ms
            if refresh_interval_ms is not None
            else _env("METRICS_REFRESH_INTERVAL_MS", int, DEFAULT_REFRESH_INTERVAL_MS)
        )
        self.cache_max_size = (
            cache_max_size
            if cache_max_size is not None
            else _env("METRICS_CACHE_MAX_SIZE", int, None)
        )
        self.store_timeout = (
            store_timeout
            if store_timeout is not None
            else _env("METRICS_STORE_TIMEOUT", float, 10.0)
        )
        self.store_max_attempts = (
            store_max_attempts
            if store_max_attempts is not None
            else _env("METRICS_STORE_MAX_ATTEMPTS", int, 3)
        )
        self.store_retry_min_wait = (
            store_retry_min_wait
            if store_retry_min_wait is not None
            else _env("METRICS_STORE_RETRY_MIN_WAIT", float, 0.5)
        )
        self.store_retry_max_wait = (
            store_retry_max_wait
            if store_retry_max_wait is not None
            else _env("METRICS_STORE_RETRY_MAX_WAIT", float, 4.0)
        )
        self.user_id = user_id or os.getenv("METRICS_USER_ID")
        self.record_service_url = record_service_url or os.getenv(
            "RECORD_SERVICE_URL", "http://localhost:8010"
        )
        self.record_service_poll_interval = (
            record_service_poll_interval
            if record_service_poll_interval is not None
            else _env("RECORD_SERVICE_POLL_INTERVAL", float, 5.0)
        )

        if self.refresh_interval_ms <= 0:
            logger.warning(
                f"Non-positive refresh interval {self.refresh_interval_ms}ms, "
                f"defaulting to {DEFAULT_REFRESH_INTERVAL_MS}ms"
            )
            self.refresh_interval_ms = DEFAULT_REFRESH_INTERVAL_MS
        if self.store_max_attempts < 1:
            self.store_max_attempts = 1

        logger.debug(
            f"MetricsSettings: refresh_interval_ms={self.refresh_interval_ms}, "
            f"cache_max_size={self.cache_max_size}, store_timeout={self.store_timeout}, "
            f"store_max_attempts={self.store_max_attempts}"
        )


# Singleton instance for global access
_settings_instance: Optional[MetricsSettings] = None


def get_settings() -> MetricsSettings:
    """Get or create the global MetricsSettings instance."""
    global _settings_instance

    if _settings_instance is None:
        _settings_instance = MetricsSettings()

    return _settings_instance


def reset_settings():
    """Reset the global MetricsSettings instance.

    Used for testing or reconfiguration.
    """
    global _settings_instance
    _settings_instance = None
    logger.warning("MetricsSettings instance reset")
