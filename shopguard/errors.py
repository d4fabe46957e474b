"""Domain errors raised by the trust & settlement services.

Every error carries a stable machine-readable `code`, the HTTP status the API
layer should answer with, a human-readable message and an optional detail
payload. Services raise these; `shopguard.main` renders them as
{ "error": { "code": str, "message": str, "detail": object } }.
"""

from typing import Any


class DomainError(Exception):
    """Base class for errors surfaced to the API boundary."""

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "detail": self.detail}


class ValidationError(DomainError):
    """Malformed input (short dispute reason, out-of-range rating)."""

    code = "VALIDATION_ERROR"
    status_code = 422


class NotFoundError(DomainError):
    """Missing order, escrow, shop or payout."""

    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(DomainError):
    """Ownership violation."""

    code = "FORBIDDEN"
    status_code = 403


class ConflictError(DomainError):
    """Duplicate open dispute, duplicate escrow."""

    code = "CONFLICT"
    status_code = 409


class BadRequestError(DomainError):
    """Policy rejection (contact sharing, category gate, throttle, inventory)."""

    code = "BAD_REQUEST"
    status_code = 400
