"""
auth/errors.py -- Exception hierarchy for the identity subsystem.

Every error a caller is expected to handle derives from IdentityError so the
API layer can map the whole family in one place. Two groups:

  Caller-attributable (safe to report back):
    ValidationError, NotFound, DuplicateEmail, InvalidCredentials

  Internal (log with full detail, surface only as a generic failure):
    EncodingError, SigningError, StorageError

UnhashedCredentialError is deliberately NOT an IdentityError. It marks a
programming contract violation (a user reached the persistence boundary
without a password hash) and must never be translated into a user-facing
response by domain handlers.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class IdentityError(Exception):
    """Base class for all recoverable identity errors."""

    message = "identity error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class ValidationError(IdentityError):
    """Caller input failed structural checks.

    errors maps field name -> message, one message per field, so a caller can
    report every problem at once.
    """

    message = "input validation failed"

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__()
        self.errors = dict(errors)


class NotFound(IdentityError):
    message = "record not found"


class DuplicateEmail(IdentityError):
    message = "email already exists"


class InvalidCredentials(IdentityError):
    """Login failed. Unknown email and wrong password both raise this, unchanged."""

    message = "invalid credentials"


class EncodingError(IdentityError):
    """Password hashing failed, or a stored hash is malformed."""

    message = "password encoding failed"


class SigningError(IdentityError):
    """The signing key is malformed or token signing failed."""

    message = "token signing failed"


class StorageError(IdentityError):
    """Connectivity, timeout or unexpected database failure."""

    message = "storage operation failed"


class InvalidToken(IdentityError):
    message = "invalid token"


class TokenExpired(InvalidToken):
    message = "token expired"


class UnhashedCredentialError(AssertionError):
    """A user without a password hash reached the persistence boundary."""
