"""Prometheus metrics for the kb-sync daemon.

1. RED Metrics (Rate, Errors, Duration)
   - Request counts by method and status
   - Request duration histograms
   - Active connection gauge

2. Replica Metrics
   - Sync payloads by outcome (accepted / rejected)
   - Bases currently held, time of last accepted sync

3. Search Metrics
   - Search duration
   - Collaborator failures by stage
"""

from prometheus_client import Counter, Gauge, Histogram

# ==============================================================================
# RED Metrics (Rate, Errors, Duration)
# ==============================================================================

REQUEST_DURATION = Histogram(
    "kbsync_request_duration_seconds",
    "Daemon JSON-RPC request duration in seconds",
    ["method", "status"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

REQUEST_COUNT = Counter(
    "kbsync_requests_total",
    "Total daemon JSON-RPC requests",
    ["method", "status"],
)

ACTIVE_CONNECTIONS = Gauge(
    "kbsync_active_connections",
    "Number of active client connections",
)

# ==============================================================================
# Replica Metrics
# ==============================================================================

SYNC_PAYLOADS = Counter(
    "kbsync_sync_payloads_total",
    "Snapshots pushed by the owner, by outcome",
    ["outcome"],
)

REPLICA_BASES = Gauge(
    "kbsync_replica_bases",
    "Knowledge bases currently held by the replica",
)

REPLICA_LAST_SYNC = Gauge(
    "kbsync_replica_last_sync_timestamp_seconds",
    "Unix time of the last accepted snapshot (0 = none)",
)

SESSION_ACTIVE = Gauge(
    "kbsync_session_active",
    "1 while a sync session is active",
)

# ==============================================================================
# Search Metrics
# ==============================================================================

SEARCH_DURATION = Histogram(
    "kbsync_search_duration_seconds",
    "End-to-end search duration across all requested bases",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

UPSTREAM_FAILURES = Counter(
    "kbsync_upstream_failures_total",
    "Retrieval or rerank collaborator failures",
    ["stage"],
)
