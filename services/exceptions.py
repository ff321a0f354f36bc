# File: services/exceptions.py
"""
Typed failures raised by the portal services.

Every error carries a human-readable message that the front end shows
as-is in a transient notification, plus the HTTP status the API layer
responds with.
"""
from typing import Optional

from sqlalchemy.exc import DBAPIError, IntegrityError


class PortalError(Exception):
    """Base class for errors surfaced to the user."""
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(PortalError):
    """Raised when the identity provider rejects credentials or a token is invalid."""
    status_code = 401


class PermissionDeniedError(PortalError):
    status_code = 403


class InvalidInputError(PortalError):
    """Raised for validation failures detected before any backend call."""
    status_code = 422


class NotFoundError(PortalError):
    status_code = 404


class ConflictError(PortalError):
    """Raised for uniqueness conflicts and state preconditions that do not hold."""
    status_code = 409


class ExternalServiceError(PortalError):
    """Raised when a delegated service (identity, storage, AI) fails."""
    status_code = 502


class AICheckError(ExternalServiceError):
    pass


DB_PERMISSION_MESSAGE = (
    "The database refused this operation (permission denied). "
    "Check the grants of the database role used by the portal service."
)


def translate_db_error(exc: Exception) -> PortalError:
    """
    Maps a SQLAlchemy failure to a portal error.
    Permission problems get an actionable message, unique violations become
    conflicts, everything else is reported as a generic storage failure.
    """
    if isinstance(exc, IntegrityError):
        return ConflictError("This change conflicts with an existing record (duplicate username or phone number?).")
    if isinstance(exc, DBAPIError):
        text = str(getattr(exc, "orig", exc)).lower()
        if "permission denied" in text or "insufficient privilege" in text:
            return PermissionDeniedError(DB_PERMISSION_MESSAGE)
    return PortalError("Could not reach the database. Please try again.", status_code=503)


def from_validation_error(exc) -> InvalidInputError:
    """Turns a pydantic ValidationError into the first readable message."""
    errors = exc.errors() if hasattr(exc, "errors") else []
    if not errors:
        return InvalidInputError(str(exc))
    first = errors[0]
    message = str(first.get("msg", "Invalid input"))
    # pydantic prefixes custom ValueError messages
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    if field and first.get("type") != "value_error":
        message = f"{field}: {message}"
    return InvalidInputError(message)
