from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class ProcurementError(Exception):
    """Base for errors surfaced to API callers as structured 4xx responses."""

    message: str
    field: str | None = None

    status_code = 500
    code = "ERROR"

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def as_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class NotFoundError(ProcurementError, LookupError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ProcurementError):
    status_code = 409
    code = "CONFLICT"


class InvalidTransition(ConflictError):
    code = "INVALID_TRANSITION"


class ValidationFailure(ProcurementError, ValueError):
    status_code = 400
    code = "VALIDATION_FAILED"


class UnauthorizedError(ProcurementError):
    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(ProcurementError, PermissionError):
    status_code = 403
    code = "FORBIDDEN"


def require_text(value: str | None, field: str, message: str, *, max_length: int | None = None) -> str:
    """Strip a free-text input and reject it when empty or too long."""
    text = (value or "").strip()
    if not text:
        raise ValidationFailure(message, field=field)
    if max_length is not None and len(text) > max_length:
        raise ValidationFailure(f"{field} cannot exceed {max_length} characters", field=field)
    return text
