"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# HTTP metrics
http_requests = Counter(
    'http_requests_total',
    'Total HTTP requests handled',
    ['method', 'status_code']
)

http_request_latency = Histogram(
    'http_request_latency_seconds',
    'HTTP request latency',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# Authentication metrics
auth_events = Counter(
    'auth_events_total',
    'Authentication events',
    ['event', 'result']  # signup/login/protect/reset..., success/failure
)

# Review aggregate metrics
rating_recomputations = Counter(
    'tour_rating_recomputations_total',
    'Tour rating aggregate recomputations after review writes'
)

# Collaborator metrics
images_processed = Counter(
    'images_processed_total',
    'Uploaded images resized and written to disk',
    ['kind']  # user, tour-cover, tour-image
)

notifications_sent = Counter(
    'notifications_total',
    'Notification dispatch attempts',
    ['template', 'result']  # welcome/passwordReset, sent/failed
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_request(method: str, status_code: int, duration_seconds: float):
    """Record a completed HTTP request."""
    http_requests.labels(method=method, status_code=str(status_code)).inc()
    http_request_latency.observe(duration_seconds)

def record_auth_event(event: str, success: bool):
    """Record auth outcome. Event: signup, login, protect, forgot_password, reset_password, update_password"""
    auth_events.labels(event=event, result="success" if success else "failure").inc()

def record_notification(template: str, sent: bool):
    """Record notifier dispatch."""
    result = "sent" if sent else "failed"
    notifications_sent.labels(template=template, result=result).inc()
