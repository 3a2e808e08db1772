"""Error taxonomy shared by every layer of the feed service."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    """Classifies a failure independently of the transport reporting it."""

    VALIDATION_FAILED = "validation_failed"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal"


_HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_FAILED: 422,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


class FeedError(Exception):
    """Base class for errors that carry a kind, a message and optional details."""

    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "An internal error occurred."

    def __init__(self, message: Optional[str] = None, *, details: Optional[List[Dict[str, Any]]] = None) -> None:
        self.message = message or self.default_message
        self.details: List[Dict[str, Any]] = list(details or [])
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.kind]

    def to_payload(self) -> Dict[str, Any]:
        return {"message": self.message, "status": self.http_status, "data": self.details}


class ValidationFailed(FeedError):
    kind = ErrorKind.VALIDATION_FAILED
    default_message = "Validation failed."


class Unauthenticated(FeedError):
    kind = ErrorKind.UNAUTHENTICATED
    default_message = "Not authenticated."


class Forbidden(FeedError):
    kind = ErrorKind.FORBIDDEN
    default_message = "Not authorized!"


class NotFound(FeedError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found."


class Conflict(FeedError):
    kind = ErrorKind.CONFLICT
    default_message = "Resource already exists."


class Internal(FeedError):
    kind = ErrorKind.INTERNAL


__all__ = [
    "Conflict",
    "ErrorKind",
    "FeedError",
    "Forbidden",
    "Internal",
    "NotFound",
    "Unauthenticated",
    "ValidationFailed",
]
