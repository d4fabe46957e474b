"""Error body shared by every endpoint."""

from typing import Any

from pydantic import BaseModel, Field

from shopguard.errors import DomainError


class ErrorBody(BaseModel):
    code: str = Field(description="Stable machine-readable code, e.g. NOT_FOUND")
    message: str
    detail: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """{ "error": { "code": str, "message": str, "detail": object } }"""

    error: ErrorBody

    @classmethod
    def from_error(cls, exc: DomainError) -> "ErrorResponse":
        return cls(error=ErrorBody(code=exc.code, message=exc.message, detail=exc.detail))
