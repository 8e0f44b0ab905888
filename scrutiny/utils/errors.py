"""Custom exception hierarchy for the Scrutiny API."""

from __future__ import annotations


class AppError(Exception):
    """Base application error with a stable machine-readable code."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        """Serialize the error in the API standard shape."""
        return {"error": self.message, "code": self.code}


class NotFoundError(AppError):
    """Raised when a requested resource does not exist."""

    def __init__(self, resource: str) -> None:
        super().__init__(message=f"{resource} not found", code="NOT_FOUND", status_code=404)


class InvalidStateError(AppError):
    """Raised when an election or position is not in the required lifecycle state."""

    def __init__(self, reason: str, code: str = "INVALID_STATE") -> None:
        super().__init__(message=reason, code=code, status_code=409)


class ConflictError(AppError):
    """Raised on duplicate/conflicting operations."""

    def __init__(self, reason: str, code: str = "CONFLICT") -> None:
        super().__init__(message=reason, code=code, status_code=409)


class IneligibleError(AppError):
    """Raised when a voter is not marked present for the election."""

    def __init__(self, reason: str = "You are not marked as present in this election") -> None:
        super().__init__(message=reason, code="INELIGIBLE", status_code=403)


class ForbiddenError(AppError):
    """Raised when the user lacks permission for the action."""

    def __init__(self, reason: str = "You don't have permission") -> None:
        super().__init__(message=reason, code="FORBIDDEN", status_code=403)


class UnauthorizedError(AppError):
    """Raised when the caller is not authenticated."""

    def __init__(self, reason: str = "Unauthorized") -> None:
        super().__init__(message=reason, code="UNAUTHORIZED", status_code=401)


class InvalidInputError(AppError):
    """Raised for request payload or parameter validation issues."""

    def __init__(self, reason: str) -> None:
        super().__init__(message=reason, code="INVALID_INPUT", status_code=422)
