"""Runtime metrics for the chat server."""

from opentelemetry import metrics

from .logging_config import get_logger

logger = get_logger(__name__)

# Get meter for creating instruments
meter = metrics.get_meter(__name__)

# HTTP Request Metrics
http_request_duration = meter.create_histogram(
    name="http_request_duration_seconds",
    description="Duration of HTTP requests in seconds",
    unit="s",
)

http_requests_total = meter.create_counter(
    name="http_requests_total",
    description="Total number of HTTP requests",
)

http_request_errors = meter.create_counter(
    name="http_request_errors_total",
    description="Total number of HTTP request errors",
)

# Database Metrics
db_reconnect_attempts_total = meter.create_counter(
    name="db_reconnect_attempts_total",
    description="Total number of database reconnection attempts",
)

db_disconnects_total = meter.create_counter(
    name="db_disconnects_total",
    description="Total number of lost database connections",
)

# Realtime Metrics
socket_connections_active = meter.create_up_down_counter(
    name="socket_connections_active",
    description="Number of sockets connected to this instance",
)


def record_http_request(method: str, endpoint: str, status_code: int, duration: float):
    """Record HTTP request metrics."""
    labels = {"method": method, "endpoint": endpoint, "status_code": str(status_code)}

    http_request_duration.record(duration, labels)
    http_requests_total.add(1, labels)

    if status_code >= 400:
        http_request_errors.add(1, labels)


def record_db_disconnect():
    db_disconnects_total.add(1)


def record_db_reconnect_attempt(succeeded: bool):
    db_reconnect_attempts_total.add(1, {"succeeded": str(succeeded).lower()})


def record_socket_connected():
    socket_connections_active.add(1)


def record_socket_disconnected():
    socket_connections_active.add(-1)


logger.debug("Runtime metrics instruments created")
