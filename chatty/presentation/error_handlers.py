"""Global error boundary: catch-all 404 plus exception serialization."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..domain.exceptions import ApplicationError, InternalError, ValidationError
from ..logging_config import get_logger
from .error_responses import ErrorResponse

CATCH_ALL_METHODS = [
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "PATCH",
    "DELETE",
    "OPTIONS",
    "TRACE",
    "CONNECT",
]

logger = get_logger(__name__)


def validation_error_from(exc: RequestValidationError) -> ValidationError:
    """Convert Pydantic request errors into field-level entries."""
    entries = []
    for error in exc.errors():
        field_name = ".".join(
            str(loc) for loc in error["loc"] if loc not in ("body", "query", "path")
        )
        entries.append({"message": error["msg"], "field": field_name or "unknown"})
    return ValidationError("Request validation failed", errors=entries)


def error_response_for(exc: Exception) -> ErrorResponse:
    """Map any raised value onto the response the client receives.

    Unrecognized errors collapse to a generic internal error so nothing
    about the original exception leaks into the body.
    """
    match exc:
        case ApplicationError():
            return ErrorResponse(
                status_code=int(exc.status_code), errors=exc.serialize_errors()
            )
        case RequestValidationError():
            return error_response_for(validation_error_from(exc))
        case StarletteHTTPException():
            return ErrorResponse(
                status_code=exc.status_code, errors=[{"message": str(exc.detail)}]
            )
        case _:
            return error_response_for(InternalError())


def original_url(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


async def not_found(request: Request) -> JSONResponse:
    """Respond to any method/path no mounted route matched."""
    return JSONResponse(
        status_code=404, content={"message": f"{original_url(request)} not found"}
    )


async def application_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning(
        "Application error occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
    )
    return error_response_for(exc).to_response()


async def request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning(
        "Request validation error occurred",
        errors=exc.errors() if isinstance(exc, RequestValidationError) else None,
        path=request.url.path,
        method=request.method,
    )
    return error_response_for(exc).to_response()


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    headers = getattr(exc, "headers", None)
    return error_response_for(exc).to_response(headers=headers)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unexpected error occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return error_response_for(exc).to_response()


def install_error_boundary(app: FastAPI) -> None:
    """Install the terminal handlers. Call after every route is mounted."""
    app.add_api_route(
        "/{unmatched_path:path}",
        not_found,
        methods=CATCH_ALL_METHODS,
        include_in_schema=False,
    )

    app.add_exception_handler(ApplicationError, application_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
