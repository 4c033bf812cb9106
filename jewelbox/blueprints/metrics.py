"""
Prometheus metrics.

/metrics serves request latency/throughput per endpoint plus counters for
ledger entries and rate syncs. It is unauthenticated; keep it off the public
network.
"""
import os
import time

from flask import Blueprint, Response, request, g
from prometheus_client import (
    CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, Gauge, Histogram,
    generate_latest, multiprocess,
)

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers write to PROMETHEUS_MULTIPROC_DIR and /metrics aggregates them
MULTIPROCESS_MODE = 'PROMETHEUS_MULTIPROC_DIR' in os.environ

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = REGISTRY

REQUEST_COUNT = Counter(
    'jewelbox_http_requests_total',
    'HTTP requests by endpoint and status',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

REQUEST_LATENCY = Histogram(
    'jewelbox_http_request_duration_seconds',
    'HTTP request latency',
    ['method', 'endpoint'],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=_metric_registry
)

REQUESTS_IN_FLIGHT = Gauge(
    'jewelbox_http_requests_in_flight',
    'HTTP requests being served',
    registry=_metric_registry
)

LEDGER_MUTATIONS = Counter(
    'jewelbox_ledger_mutations_total',
    'Customer ledger entries written',
    ['kind'],
    registry=_metric_registry
)

PRICE_SYNCS = Counter(
    'jewelbox_price_syncs_total',
    'Committed variant rate changes',
    ['entity_type'],
    registry=_metric_registry
)

REPRICED_PRODUCTS = Counter(
    'jewelbox_repriced_products_total',
    'Products re-priced by rate syncs',
    registry=_metric_registry
)


def record_ledger_mutation(kind: str) -> None:
    """Count a ledger entry (sale, payment, adjustment, reversal)."""
    LEDGER_MUTATIONS.labels(kind=kind).inc()


def record_price_sync(entity_type: str, synced_products: int) -> None:
    PRICE_SYNCS.labels(entity_type=entity_type).inc()
    REPRICED_PRODUCTS.inc(synced_products)


def setup_metrics_instrumentation(app):
    """Time every request and count it by endpoint and status."""

    @app.before_request
    def start_request_timer():
        g.request_started_at = time.perf_counter()
        REQUESTS_IN_FLIGHT.inc()

    @app.after_request
    def observe_request(response):
        started_at = g.pop('request_started_at', None)
        if started_at is None:
            return response
        REQUESTS_IN_FLIGHT.dec()

        endpoint = request.endpoint or 'unknown'
        try:
            REQUEST_LATENCY.labels(request.method, endpoint).observe(time.perf_counter() - started_at)
            REQUEST_COUNT.labels(request.method, endpoint, response.status_code).inc()
        except ValueError as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        return response


@metrics_bp.route('/metrics')
def metrics():
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
