"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics and billing business counters.
This endpoint should be restricted to the internal network.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Check if running in multi-process mode (Gunicorn)
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

# In multiprocess mode metrics are written to PROMETHEUS_MULTIPROC_DIR and
# aggregated by the collector above, so they must not register globally.
_metric_registry = registry if not MULTIPROCESS_MODE else None

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_metric_registry,
    multiprocess_mode='livesum'
)

# Billing metrics
plan_change_previews_total = Counter(
    'plan_change_previews_total',
    'Plan change previews served, by resulting action',
    ['action'],
    registry=_metric_registry
)

plan_changes_committed_total = Counter(
    'plan_changes_committed_total',
    'Plan changes committed, by action',
    ['action'],
    registry=_metric_registry
)

payment_webhooks_total = Counter(
    'payment_webhooks_total',
    'Payment webhook events received',
    ['provider', 'event_type', 'outcome'],
    registry=_metric_registry
)


def setup_metrics_instrumentation(app):
    """
    Register request hooks that feed the HTTP metrics.

    Latency and totals are labelled by endpoint name, not by path, so
    tenant and plan ids never become label values.
    """

    @app.before_request
    def start_request_timer():
        g._metrics_started = time.perf_counter()
        http_requests_in_flight.inc()

    @app.after_request
    def record_request_metrics(response):
        started = g.pop('_metrics_started', None)
        if started is None:
            return response

        endpoint = request.endpoint or 'unknown'
        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(time.perf_counter() - started)
        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            http_status=response.status_code
        ).inc()
        return response

    @app.teardown_request
    def leave_request(exception=None):
        http_requests_in_flight.dec()


@metrics_bp.route('/metrics')
def metrics():
    """
    Prometheus metrics endpoint.

    Not authenticated; restrict by network rules in production.
    """
    data = generate_latest(registry)
    return Response(data, mimetype=CONTENT_TYPE_LATEST)
