"""Prometheus metrics for the API service.

Request-level metrics live here; reminder send and scheduler metrics are
declared next to the code that records them and share the default registry.

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Spreadsheet uploads
spreadsheet_uploads_total = Counter(
    "spreadsheet_uploads_total",
    "Spreadsheet uploads by outcome",
    ["status"],  # success, failed
)

spreadsheet_upload_size_bytes = Histogram(
    "spreadsheet_upload_size_bytes",
    "Spreadsheet upload size in bytes",
    buckets=(1024, 10240, 102400, 1048576, 10485760),  # 1KB to 10MB
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
