"""Prometheus metrics definitions for infobot.

Defines counters, gauges, and histograms for monitoring:
- Source checks and discovered items
- Notification delivery
- Scheduler job state and cycle latency

Usage:
    from infobot.observability.metrics import SOURCE_CHECKS

    SOURCE_CHECKS.labels(source="youtube", status="success").inc()

Metrics are exposed via the /metrics endpoint of the health server.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Custom registry to avoid conflicts with default registry
REGISTRY = CollectorRegistry(auto_describe=True)

# =============================================================================
# COUNTERS
# =============================================================================

SOURCE_CHECKS = Counter(
    name="infobot_source_checks_total",
    documentation="Total source checks",
    labelnames=["source", "status"],  # youtube/instagram/linkedin, success/failed
    registry=REGISTRY,
)

ITEMS_DISCOVERED = Counter(
    name="infobot_items_discovered_total",
    documentation="Unseen items found by source checks",
    labelnames=["source"],
    registry=REGISTRY,
)

NOTIFICATIONS_SENT = Counter(
    name="infobot_notifications_total",
    documentation="Notification send attempts",
    labelnames=["kind", "status"],  # item/raw, success/failed
    registry=REGISTRY,
)

RATE_LIMIT_RETRIES = Counter(
    name="infobot_rate_limit_retries_total",
    documentation="Retries triggered by rate-limit signals",
    labelnames=["source"],
    registry=REGISTRY,
)

ERROR_SUMMARIES = Counter(
    name="infobot_error_summaries_total",
    documentation="Aggregated error summaries sent to the channel",
    registry=REGISTRY,
)

NOTIFICATIONS_PURGED = Counter(
    name="infobot_notifications_purged_total",
    documentation="Sent-notification rows removed by the retention sweep",
    registry=REGISTRY,
)

# =============================================================================
# GAUGES
# =============================================================================

SCHEDULER_JOBS = Gauge(
    name="infobot_scheduler_jobs",
    documentation="Number of scheduled jobs",
    registry=REGISTRY,
)

LAST_CHECK_TIMESTAMP = Gauge(
    name="infobot_last_check_timestamp_seconds",
    documentation="Unix time of the last completed check per source",
    labelnames=["source"],
    registry=REGISTRY,
)

# =============================================================================
# HISTOGRAMS
# =============================================================================

CHECK_CYCLE_DURATION = Histogram(
    name="infobot_check_cycle_duration_seconds",
    documentation="Check cycle duration in seconds",
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300, 600, float("inf")),
    registry=REGISTRY,
)


def get_metrics_text() -> bytes:
    """Generate Prometheus metrics in text exposition format."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Content-Type header value for the metrics response."""
    return CONTENT_TYPE_LATEST
