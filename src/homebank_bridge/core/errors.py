from typing import Any


class LedgerError(Exception):
    """Base error; ``status_code`` is the HTTP status the API answers with."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.error)
        self.message = message or self.error

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.message}


class ValidationError(LedgerError):
    status_code = 400
    error = "Validation failed"

    def __init__(self, message: str | None = None, details: list[dict[str, str]] | None = None) -> None:
        super().__init__(message)
        self.details = details or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, details=[{"field": field, "message": message}])

    def to_payload(self) -> dict[str, Any]:
        details = self.details or [{"field": "", "message": self.message}]
        return {"error": self.error, "message": self.message, "details": details}


class AuthenticationError(LedgerError):
    status_code = 401
    error = "Authentication required"


class PermissionDeniedError(LedgerError):
    status_code = 403
    error = "Forbidden"


class NotFoundError(LedgerError):
    status_code = 404
    error = "Resource not found"


class ConflictError(LedgerError):
    status_code = 409
    error = "Conflict"


class PayloadTooLargeError(LedgerError):
    status_code = 413
    error = "Payload too large"


class StoreUnavailableError(LedgerError):
    status_code = 503
    error = "Database unavailable"


class InternalError(LedgerError):
    status_code = 500
    error = "Internal server error"
