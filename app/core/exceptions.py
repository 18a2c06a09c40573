"""
Domain errors for the drive / application lifecycle.

Every error raised on the primary path of an action derives from
PlacementError and carries the HTTP status the API layer maps it to.
SideEffectFailure is never raised to a caller; it only wraps the cause of a
failed notification or chat call for logging.
"""

from typing import List, Optional


class PlacementError(Exception):
    status_code = 500

    def __init__(self, message: str, reasons: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.reasons = list(reasons or [])

    def to_dict(self) -> dict:
        body = {"detail": self.message}
        if self.reasons:
            body["reasons"] = self.reasons
        return body


class ValidationError(PlacementError):
    """Missing or malformed input."""
    status_code = 400


class InvalidTransitionError(ValidationError):
    """Status change not allowed by the application state machine."""


class NotFoundError(PlacementError):
    status_code = 404


class AuthorizationError(PlacementError):
    status_code = 403


class IneligibleError(PlacementError):
    status_code = 400

    def __init__(self, reasons: List[str]):
        super().__init__("You are not eligible for this drive", reasons)


class DuplicateError(PlacementError):
    """Uniqueness violation (application, active drive, chat group)."""
    status_code = 409


class SideEffectFailure(Exception):
    def __init__(self, name: str, cause: BaseException):
        super().__init__(f"Side effect '{name}' failed: {cause!r}")
        self.name = name
        self.cause = cause
