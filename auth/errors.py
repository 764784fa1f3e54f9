"""
auth/errors.py -- Typed failures raised by the auth core.

Every error carries the HTTP status and machine-readable code it maps to, so
the exception handler in api/main.py can render the standard error envelope
without a lookup table. The message is always safe to show to the caller --
internal failure detail goes to the log, never into an AuthError.

Propagation policy:
  NotFoundError, UnauthorizedError, ForbiddenError and ConflictError are
  expected domain failures. They propagate to the HTTP boundary unchanged.
  Anything else is caught at the operation boundary, logged, and re-raised
  as InternalError with a generic message.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth-core failures."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"


class UnauthorizedError(AuthError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"


class ConflictError(AuthError):
    status_code = 409
    code = "conflict"


class InternalError(AuthError):
    status_code = 500
    code = "internal_error"


# Failures that must reach the caller with their kind intact.
EXPECTED_ERRORS: tuple[type[AuthError], ...] = (
    NotFoundError,
    UnauthorizedError,
    ForbiddenError,
    ConflictError,
)
