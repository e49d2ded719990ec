"""Opt-in OpenTelemetry tracing and Prometheus metrics."""

import sys

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from prometheus_client import start_http_server

from .config import Settings
from .logging_config import get_logger

logger = get_logger(__name__)


def _serve_metrics(port: int) -> int:
    """Expose the Prometheus scrape endpoint, on ``port`` or the one after it."""
    metrics.set_meter_provider(
        MeterProvider(metric_readers=[PrometheusMetricReader()])
    )
    for candidate in (port, port + 1):
        try:
            start_http_server(candidate)
        except OSError:
            logger.warning("Metrics port busy", port=candidate)
            continue
        return candidate
    raise OSError(f"No free metrics port at {port} or {port + 1}")


def _trace_to_console() -> None:
    provider = TracerProvider()
    provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)


def setup_telemetry(app: FastAPI, settings: Settings) -> bool:
    """Instrument the app when ``ENABLE_TELEMETRY`` is set.

    Returns True when instrumentation was installed. A failure here is logged
    and never stops the server.
    """
    if not settings.enable_telemetry:
        return False
    if "pytest" in sys.modules:
        logger.info("Telemetry disabled under pytest")
        return False

    try:
        metrics_port = _serve_metrics(settings.metrics_port)
        _trace_to_console()
        FastAPIInstrumentor.instrument_app(app)
        SQLAlchemyInstrumentor().instrument()
    except Exception as e:
        logger.error("Failed to set up OpenTelemetry", error=str(e), exc_info=e)
        return False

    logger.info("Telemetry enabled", metrics_port=metrics_port)
    return True
