"""Client-facing error payloads."""

from pydantic import BaseModel, Field
from starlette.responses import JSONResponse


class ErrorEntry(BaseModel):
    """A single message, optionally tied to a request field."""

    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(None, description="Offending field, when known")


class ErrorResponse(BaseModel):
    """Status code plus the serialized entries sent to the client."""

    status_code: int = Field(..., ge=400, le=599)
    errors: list[ErrorEntry] = Field(default_factory=list)

    def payload(self) -> list[dict[str, str]]:
        return [error.model_dump(exclude_none=True) for error in self.errors]

    def to_response(self, headers: dict[str, str] | None = None) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code, content=self.payload(), headers=headers
        )
