"""Observability package."""

from docmcp.observability.logging import configure_logging
from docmcp.observability.metrics import (
    AUTH_ATTEMPTS,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    SYNC_DOCUMENTS,
    SYNC_LATENCY,
    SYNC_RUNS,
    get_metrics,
)

__all__ = [
    "AUTH_ATTEMPTS",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "SYNC_DOCUMENTS",
    "SYNC_LATENCY",
    "SYNC_RUNS",
    "configure_logging",
    "get_metrics",
]
