"""
Error taxonomy for the identity service.

Every expected, caller-recoverable condition is an AppError subclass with a
stable machine-readable ``code`` and an HTTP status. The handlers registered
in ``authcore.main`` render them as ``{"detail": ..., "code": ...}``.
Anything that is not an AppError is an unexpected fault and surfaces as a
generic 500.
"""

from typing import Optional


class AppError(Exception):
    """Base class for all expected service errors."""

    status_code: int = 400
    code: str = "error"
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None, *, field: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[dict[str, str]]:
        return None

    def to_dict(self) -> dict:
        payload: dict = {"detail": self.message, "code": self.code}
        if self.field is not None:
            payload["field"] = self.field
        return payload


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class DuplicateEmailError(AppError):
    status_code = 409
    code = "duplicate_email"
    default_message = "User already exists with this email"


class InvalidCredentialsError(AppError):
    """Same message whether the email is unknown or the password is wrong."""

    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class NotVerifiedError(AppError):
    status_code = 403
    code = "not_verified"
    default_message = "Your account is not verified. Please check your email."


class UnauthenticatedError(AppError):
    """Access token missing, malformed, expired or forged (deliberately one kind)."""

    status_code = 401
    code = "unauthenticated"
    default_message = "Not authenticated"

    @property
    def headers(self) -> Optional[dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class ForbiddenError(AppError):
    status_code = 403
    code = "forbidden"
    default_message = "Admin access required"


class InvalidOrExpiredTokenError(AppError):
    """Verification or reset token unknown, already used, or past its expiry."""

    status_code = 400
    code = "invalid_or_expired_token"
    default_message = "Invalid or expired token"


class InvalidOrExpiredSessionError(AppError):
    status_code = 401
    code = "invalid_or_expired_session"
    default_message = "Invalid or expired refresh token"


class AlreadyVerifiedError(AppError):
    status_code = 400
    code = "already_verified"
    default_message = "User already verified"


class NotFoundError(AppError):
    """Lookup by email or id found no identity."""

    status_code = 404
    code = "not_found"
    default_message = "User not found"
