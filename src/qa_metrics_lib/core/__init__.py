"""Metrics engine: cache, computations, service, subscriptions, reports and consumer."""

from qa_metrics_lib.core.cache import CacheEntry, MetricsCache, build_cache_key
from qa_metrics_lib.core.computer import (
    calculate_ai_metrics,
    calculate_automation_metrics,
    calculate_coverage,
    calculate_coverage_score,
    calculate_execution_metrics,
    calculate_quality_score,
    calculate_test_case_metrics,
    percentage,
    safe_ratio,
)
from qa_metrics_lib.core.service import MetricsService, parse_records
from qa_metrics_lib.core.subscriptions import ScopeRecomputer, Subscription, SubscriptionManager
from qa_metrics_lib.core.reports import ReportGenerator
from qa_metrics_lib.core.consumer import MetricsConsumer

__all__ = [
    # Cache
    "CacheEntry",
    "MetricsCache",
    "build_cache_key",
    # Computations
    "calculate_ai_metrics",
    "calculate_automation_metrics",
    "calculate_coverage",
    "calculate_coverage_score",
    "calculate_execution_metrics",
    "calculate_quality_score",
    "calculate_test_case_metrics",
    "percentage",
    "safe_ratio",
    # Orchestration
    "MetricsService",
    "parse_records",
    "ScopeRecomputer",
    "Subscription",
    "SubscriptionManager",
    "ReportGenerator",
    "MetricsConsumer",
]
