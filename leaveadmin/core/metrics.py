"""
Prometheus metrics for the backend.

Metrics are created through ``_safe_create_metric`` so that re-importing a
module (tests, reloads) reuses the already registered collector instead of
raising a duplicate timeseries error.
"""

import logging
from typing import Any

from prometheus_client import REGISTRY, Counter, Histogram

logger = logging.getLogger(__name__)


def _safe_create_metric(metric_cls: type, name: str, documentation: str, **kwargs: Any) -> Any:
    """Create a metric or return the existing collector registered under ``name``."""
    try:
        return metric_cls(name, documentation, **kwargs)
    except ValueError:
        # Counters register "<name>" and "<name>_total"; look up either
        existing = REGISTRY._names_to_collectors.get(name) or REGISTRY._names_to_collectors.get(
            f"{name}_total"
        )
        if existing is None:
            raise
        logger.debug("Reusing already registered metric %s", name)
        return existing


HTTP_REQUESTS = _safe_create_metric(
    Counter,
    "leaveadmin_http_requests",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status_code"],
)

HTTP_LATENCY = _safe_create_metric(
    Histogram,
    "leaveadmin_http_request_latency_seconds",
    "HTTP request latency",
    labelnames=["method", "endpoint"],
)

REPOSITORY_OPERATION_LATENCY = _safe_create_metric(
    Histogram,
    "leaveadmin_repository_operation_latency_seconds",
    "Repository operation execution latency",
    labelnames=["repository", "operation"],
)

SWITCH_ATTEMPTS = _safe_create_metric(
    Counter,
    "leaveadmin_database_switch_attempts",
    "Database switch attempts by terminal status",
    labelnames=["switch_type", "status"],
)

SWITCH_PHASE_DURATION = _safe_create_metric(
    Histogram,
    "leaveadmin_database_switch_phase_seconds",
    "Duration of each database switch phase",
    labelnames=["phase"],
    buckets=(0.1, 0.5, 1, 5, 15, 60, 300, 900, 3600),
)

ROWS_TRANSFERRED = _safe_create_metric(
    Counter,
    "leaveadmin_database_switch_rows",
    "Rows copied from source to target",
    labelnames=["table"],
)

INSERT_BATCHES = _safe_create_metric(
    Counter,
    "leaveadmin_database_switch_insert_batches",
    "Insert batches written to the target",
    labelnames=["table"],
)


def get_http_requests() -> Any:
    """HTTP request counter."""
    return HTTP_REQUESTS


def get_http_latency() -> Any:
    """HTTP latency histogram."""
    return HTTP_LATENCY
