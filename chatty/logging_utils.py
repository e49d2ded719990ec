import logging
from datetime import UTC, datetime

from fastapi import Request


def log_api_request(
    request: Request,
    response_status: int,
    process_time_ms: float | None = None,
    logger_name: str = "api",
) -> None:
    """Log HTTP requests with consistent format.

    Args:
        request: FastAPI request object
        response_status: HTTP response status code
        process_time_ms: Request processing time in milliseconds
        logger_name: Name of the logger to use
    """
    logger = logging.getLogger(logger_name)

    log_data = {
        "method": request.method,
        "path": request.url.path,
        "status_code": response_status,
        "client_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent", "Unknown")[:100],
    }

    if process_time_ms is not None:
        log_data["process_time_ms"] = str(round(process_time_ms, 2))

    # Different log levels based on status code
    if response_status >= 500:
        log_level = logging.ERROR
    elif response_status >= 400:
        log_level = logging.WARNING
    else:
        log_level = logging.INFO

    message = f"{request.method} {request.url.path} - {response_status}"
    if process_time_ms is not None:
        message += f" ({process_time_ms:.1f}ms)"

    logger.log(log_level, message, extra=log_data)


def log_system_info(hostname: str, pid: int, port: int, environment: str) -> None:
    """Log system startup information.

    Args:
        hostname: Server hostname
        pid: Process identifier serving this instance
        port: Bound TCP port
        environment: Deployment environment name
    """
    logger = logging.getLogger("system")

    logger.info(
        f"Server running on port {port} with process {pid}",
        extra={
            "hostname": hostname,
            "pid": pid,
            "port": port,
            "environment": environment,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )
