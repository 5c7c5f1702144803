"""
Prometheus Metrics Registry

Provides Prometheus-compatible metrics for:
- HTTP request counts and latencies
- Notification requests by target kind
- Token resolution and document scanning
- Push batch delivery outcomes and latency
"""
import logging
from prometheus_client import (
    Counter, Histogram, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)

logger = logging.getLogger(__name__)

# Create a custom registry to avoid conflicts with default registry
REGISTRY = CollectorRegistry()

# ============================================================================
# Application Info
# ============================================================================

app_info = Info(
    'herald',
    'Application information',
    registry=REGISTRY
)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status_code'],
    registry=REGISTRY
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY
)

# ============================================================================
# Notification Metrics
# ============================================================================

notification_requests_total = Counter(
    'notification_requests_total',
    'Total notification requests accepted',
    ['target_kind', 'mode'],  # mode: send, dry_run, list_only
    registry=REGISTRY
)

tokens_resolved_total = Counter(
    'notification_tokens_resolved_total',
    'Total unique device tokens resolved from target specifications',
    ['target_kind'],
    registry=REGISTRY
)

documents_scanned_total = Counter(
    'notification_documents_scanned_total',
    'Total documents read while resolving collection or document targets',
    ['target_kind', 'matched'],
    registry=REGISTRY
)

push_batches_total = Counter(
    'push_batches_total',
    'Total push provider calls (token batches and topics)',
    ['destination', 'status'],  # destination: tokens, topic; status: success, failure
    registry=REGISTRY
)

push_batch_duration_seconds = Histogram(
    'push_batch_duration_seconds',
    'Push provider call duration in seconds',
    ['destination'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=REGISTRY
)


def init_metrics(version: str = "1.0.0"):
    """Initialize application info metric."""
    app_info.info({'version': version, 'name': 'Herald'})
    logger.info("Prometheus metrics initialized", extra={"version": version})


def record_request_metrics(method: str, path: str, status_code: int, response_time_seconds: float):
    """
    Record HTTP request metrics.

    Args:
        method: HTTP method
        path: Request path
        status_code: Response status code
        response_time_seconds: Request duration in seconds
    """
    http_requests_total.labels(method=method, path=path, status_code=str(status_code)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(response_time_seconds)


def record_notification_request(target_kind: str, mode: str):
    """Record an accepted notification request."""
    notification_requests_total.labels(target_kind=target_kind, mode=mode).inc()


def record_tokens_resolved(target_kind: str, count: int):
    """Record unique tokens resolved for one dispatch pass."""
    if count > 0:
        tokens_resolved_total.labels(target_kind=target_kind).inc(count)


def record_document_scanned(target_kind: str, matched: bool):
    """Record one document evaluated against target conditions."""
    documents_scanned_total.labels(
        target_kind=target_kind,
        matched="true" if matched else "false",
    ).inc()


def record_push_batch(destination: str, status: str, duration_seconds: float = 0.0):
    """
    Record push provider call metrics.

    Args:
        destination: "tokens" or "topic"
        status: "success" or "failure"
        duration_seconds: Provider call duration
    """
    push_batches_total.labels(destination=destination, status=status).inc()
    if duration_seconds > 0:
        push_batch_duration_seconds.labels(destination=destination).observe(duration_seconds)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get Prometheus content type header."""
    return CONTENT_TYPE_LATEST
