"""Typed errors raised by the core operations.

Each error carries a stable ``code`` and the HTTP ``status_code`` the API layer
renders it as, so callers can branch on the error type without inspecting
messages.
"""

from __future__ import annotations


class PkbError(Exception):
    """Base class for expected, caller-facing failures."""

    code = "ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(PkbError, ValueError):
    """Caller-supplied data is malformed or out of range."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(PkbError):
    """A referenced entity does not exist (or is soft-deleted)."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(PkbError):
    """The request would violate an invariant of the stored data."""

    code = "CONFLICT"
    status_code = 409
