"""
Prometheus metrics collection and import pipeline metrics.
"""
from prometheus_client import Counter, Histogram, Gauge, Info
from prometheus_client import CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST

from backfill.core.config import settings

# Create a custom registry (can use default if preferred)
registry = CollectorRegistry()

# Application info
app_info = Info('app', 'Application information', registry=registry)
app_info.info({
    'name': settings.APP_NAME,
    'version': settings.APP_VERSION
})

# HTTP Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=registry
)

http_requests_in_progress = Gauge(
    'http_requests_in_progress',
    'Number of HTTP requests in progress',
    ['method', 'endpoint'],
    registry=registry
)

# Import admission
import_requests_total = Counter(
    'import_requests_total',
    'Import uploads by admission outcome',
    ['source', 'outcome'],  # accepted, concurrency_limit, quota_exhausted, invalid, error
    registry=registry
)

# Import processing
import_jobs_total = Counter(
    'import_jobs_total',
    'Total number of processed import jobs',
    ['source', 'status'],
    registry=registry
)

import_duration_seconds = Histogram(
    'import_duration_seconds',
    'Import parse duration in seconds',
    ['source'],
    buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800],  # Up to the import timeout
    registry=registry
)

import_jobs_in_progress = Gauge(
    'import_jobs_in_progress',
    'Number of import jobs being parsed',
    ['source'],
    registry=registry
)

import_rows_total = Counter(
    'import_rows_total',
    'Import rows by outcome',
    ['source', 'outcome'],  # accepted, skipped_quota, skipped_date, invalid
    registry=registry
)

import_chunks_sent_total = Counter(
    'import_chunks_sent_total',
    'Event chunks published to the insertion queue',
    ['source'],
    registry=registry
)

# Error Metrics
errors_total = Counter(
    'errors_total',
    'Total number of errors',
    ['error_type', 'endpoint'],
    registry=registry
)


def get_metrics():
    """
    Get current metrics in Prometheus format.

    Returns:
        Prometheus metrics in text format
    """
    return generate_latest(registry)


def get_metrics_content_type():
    """
    Get the content type for Prometheus metrics.

    Returns:
        Content type string
    """
    return CONTENT_TYPE_LATEST
