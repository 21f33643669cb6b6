"""
Typed errors raised by Strongroom gates.

Library code raises these; the HTTP layer maps each class to a status code
and renders {"error": message, "details": details}.
"""

from typing import Any, Optional


class StrongroomError(Exception):
    """Base class for all Strongroom errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFound(StrongroomError):
    """Project, folder, file or recycle-bin item does not exist."""

    status_code = 404


class InvalidInput(StrongroomError):
    """Malformed identifiers or request data."""

    status_code = 400


class AccessDenied(StrongroomError):
    """Target lies outside the caller's permitted area."""

    status_code = 403


class Conflict(StrongroomError):
    """Destination already occupied, or item not in a restorable state."""

    status_code = 409


class StorageLimitExceeded(StrongroomError):
    """Recycle bin would exceed its per-file or total size cap."""

    status_code = 413


class IOFailure(StrongroomError):
    """Underlying filesystem operation failed."""

    status_code = 500


__all__ = [
    "StrongroomError",
    "NotFound",
    "InvalidInput",
    "AccessDenied",
    "Conflict",
    "StorageLimitExceeded",
    "IOFailure",
]
