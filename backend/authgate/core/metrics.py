"""Prometheus collectors shared across the process."""

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "authgate_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "authgate_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
TOKENS_ISSUED = Counter(
    "authgate_token_pairs_issued_total",
    "Access/refresh token pairs issued",
)
ROTATIONS = Counter(
    "authgate_refresh_rotations_total",
    "Refresh token rotation attempts by outcome",
    ["outcome"],
)
REVOCATIONS = Counter(
    "authgate_refresh_revocations_total",
    "Refresh token records removed by logout",
    ["scope"],
)
SWEPT_TOKENS = Counter(
    "authgate_swept_refresh_tokens_total",
    "Stale refresh token records deleted by the sweeper",
)
SWEEPER_UP_GAUGE = Gauge("authgate_sweeper_up", "Sweeper liveness (1 running, 0 stopped)")
