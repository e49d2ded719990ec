import time
from collections.abc import Awaitable, Callable
from typing import Any, Final

from fastapi import FastAPI, Request, Response
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

from .body_parsing import BodyParserMiddleware
from .config import Settings
from .constants import ALLOWED_METHODS, COMPRESSION_MIN_SIZE, SESSION_MAX_AGE_SECONDS
from .logging_utils import log_api_request
from .metrics import record_http_request
from .parameter_pollution import ParameterPollutionMiddleware
from .sessions import SessionCookieMiddleware

SECURITY_HEADERS: Final = {
    "Content-Security-Policy": (
        "default-src 'self'; base-uri 'self'; font-src 'self' https: data:; "
        "form-action 'self'; frame-ancestors 'none'; img-src 'self' data:; "
        "object-src 'none'; script-src 'self'; script-src-attr 'none'; "
        "style-src 'self' https: 'unsafe-inline'; upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "DENY",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def _use(app: FastAPI, middleware_class: Any, **options: Any) -> None:
    """Register middleware so that it runs after everything registered before it.

    ``add_middleware`` prepends, which would invert the pipeline order.
    """
    app.user_middleware.append(Middleware(middleware_class, **options))


async def security_headers_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Add conservative security headers without overriding handler choices."""
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    if "x-powered-by" in response.headers:
        del response.headers["x-powered-by"]
    return response


def apply_security(app: FastAPI, settings: Settings) -> None:
    """Session cookie, parameter pollution guard, security headers, CORS."""
    _use(
        app,
        SessionCookieMiddleware,
        keys=settings.session_keys,
        max_age=SESSION_MAX_AGE_SECONDS,
        secure=settings.cookie_secure,
    )
    _use(app, ParameterPollutionMiddleware)
    _use(app, BaseHTTPMiddleware, dispatch=security_headers_middleware)
    _use(
        app,
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=list(ALLOWED_METHODS),
        allow_headers=["*"],
    )


def apply_standard(app: FastAPI, settings: Settings) -> None:
    """Response compression and size-capped body parsing."""
    _use(app, GZipMiddleware, minimum_size=COMPRESSION_MIN_SIZE)
    _use(app, BodyParserMiddleware, limit=settings.body_limit_bytes)


async def log_requests_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Middleware to log all HTTP requests with timing information.

    Args:
        request: FastAPI request object
        call_next: Next middleware/route handler in the chain

    Returns:
        Response from the route handler
    """
    start_time = time.perf_counter()

    # Call the route handler
    response = await call_next(request)

    elapsed = time.perf_counter() - start_time

    log_api_request(
        request=request,
        response_status=response.status_code,
        process_time_ms=elapsed * 1000,
    )
    record_http_request(
        request.method, request.url.path, response.status_code, elapsed
    )

    return response
