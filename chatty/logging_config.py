import logging
from pathlib import Path

import structlog
from opentelemetry import trace
from rich.logging import RichHandler

from .config import Settings

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_FILE = Path("logs") / "chatty.log"

# Libraries that are chatty at INFO: SQL echo, per-request access lines,
# and a line per Socket.IO / Engine.IO packet
NOISY_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "uvicorn": logging.INFO,
    "socketio": logging.WARNING,
    "engineio": logging.WARNING,
}


def resolve_level(settings: Settings, override: str | None = None) -> int:
    """DEBUG in development, INFO elsewhere, unless a level is named."""
    requested = override or settings.log_level
    if requested:
        return getattr(logging, requested.upper(), logging.INFO)
    return logging.DEBUG if settings.is_development else logging.INFO


def setup_logging(settings: Settings, log_level: str | None = None) -> None:
    """Configure stdlib and structlog logging for the server process.

    Args:
        settings: Application settings snapshot
        log_level: Level name that takes precedence over ``settings.log_level``
    """
    level = resolve_level(settings, log_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers: list[logging.Handler] = [
        RichHandler(
            rich_tracebacks=True,
            show_path=settings.is_development,
            show_time=False,
        )
    ]
    if not settings.is_development or settings.log_to_file:
        LOG_FILE.parent.mkdir(exist_ok=True)
        handlers.append(logging.FileHandler(LOG_FILE, encoding="utf-8"))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    _configure_structlog(settings, level)

    get_logger(__name__).info(
        "Logging configured",
        level=logging.getLevelName(level),
        environment=settings.environment,
    )


def _add_trace_context(logger, method_name, event_dict):
    """Attach the active span's ids so log lines join up with traces."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        event_dict["trace_id"] = f"0x{span_context.trace_id:032x}"
        event_dict["span_id"] = f"0x{span_context.span_id:016x}"
    return event_dict


def _configure_structlog(settings: Settings, level: int) -> None:
    # Human-readable lines while developing, one JSON object per line otherwise
    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if settings.is_development
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.WriteLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    """Return a structlog logger bound to ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)
