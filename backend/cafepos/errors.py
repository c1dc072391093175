"""
Core error taxonomy.

Every service raises one of these. The HTTP layer maps ``http_status`` and
``kind`` straight into the JSON error body, so messages must be safe to show
to a cashier.

KINDS:
- NOT_FOUND:       referenced catalog/order/customer entity absent
- INVALID_REQUEST: malformed input, unavailable variant/addon, bounds
- CONFLICT:        uniqueness collision that could not be resolved
- INVALID_STATE:   state-machine transition from the wrong state
- FORBIDDEN:       role check failure
"""

from __future__ import annotations


class CoreError(Exception):
    """Base class for domain errors surfaced to callers."""

    kind = "ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind}
        if self.details:
            body["details"] = self.details
        return body


class NotFound(CoreError):
    kind = "NOT_FOUND"
    http_status = 404


class InvalidRequest(CoreError):
    kind = "INVALID_REQUEST"
    http_status = 400


class Conflict(CoreError):
    kind = "CONFLICT"
    http_status = 409


class InvalidState(CoreError):
    kind = "INVALID_STATE"
    http_status = 409


class Forbidden(CoreError):
    kind = "FORBIDDEN"
    http_status = 403
