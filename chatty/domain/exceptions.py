"""Application errors that the HTTP boundary knows how to serialize.

Every variant carries its own HTTP status code and renders itself as a list
of ``{"message": ..., "field": ...}`` entries (``field`` only when known).
Raise these from route handlers; anything else reaching the boundary is
treated as an internal failure.
"""

from http import HTTPStatus


class ApplicationError(Exception):
    """Base exception for errors with a client-facing representation."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message: str = "Something went wrong"

    def __init__(self, message: str | None = None, field: str | None = None):
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)

    def serialize_errors(self) -> list[dict[str, str]]:
        entry = {"message": self.message}
        if self.field is not None:
            entry["field"] = self.field
        return [entry]


class ValidationError(ApplicationError):
    """Raised when request data fails validation.

    Carries one entry per offending field.
    """

    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Validation failed"

    def __init__(
        self,
        message: str | None = None,
        field: str | None = None,
        errors: list[dict[str, str]] | None = None,
    ):
        super().__init__(message, field)
        self.errors = errors or []

    def serialize_errors(self) -> list[dict[str, str]]:
        if self.errors:
            return [dict(error) for error in self.errors]
        return super().serialize_errors()


class BadRequestError(ApplicationError):
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Bad request"


class NotAuthorizedError(ApplicationError):
    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Not authorized"


class NotFoundError(ApplicationError):
    status_code = HTTPStatus.NOT_FOUND
    default_message = "Resource not found"


class PayloadTooLargeError(ApplicationError):
    status_code = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    default_message = "Request entity too large"


class InternalError(ApplicationError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message = "Something went wrong"


class ServiceUnavailableError(ApplicationError):
    status_code = HTTPStatus.SERVICE_UNAVAILABLE
    default_message = "Service unavailable"
