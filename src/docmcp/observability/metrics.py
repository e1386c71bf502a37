from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Search Metrics
SEARCH_REQUESTS = Counter(
    "docmcp_search_requests_total",
    "Total number of search requests",
    ["status"]
)

SEARCH_LATENCY = Histogram(
    "docmcp_search_latency_seconds",
    "Search request latency in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0]
)

# Sync Metrics
SYNC_RUNS = Counter(
    "docmcp_sync_runs_total",
    "Total number of version sync runs by terminal status",
    ["status"]
)

SYNC_DOCUMENTS = Counter(
    "docmcp_sync_documents_total",
    "Documents seen during sync",
    ["result"]  # processed | skipped | failed
)

SYNC_LATENCY = Histogram(
    "docmcp_sync_latency_seconds",
    "Version sync duration in seconds",
    buckets=[1, 5, 15, 60, 300, 900, 1800]
)

# Auth Metrics
AUTH_ATTEMPTS = Counter(
    "docmcp_auth_attempts_total",
    "API key authentication attempts",
    ["outcome"]  # success | malformed | rejected | rate_limited
)


def get_metrics():
    """Return latest metrics in Prometheus format."""
    return generate_latest(), CONTENT_TYPE_LATEST
