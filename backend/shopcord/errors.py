# Overview: Domain error taxonomy shared by services, routes and the bot adapter.

from __future__ import annotations


class ShopError(Exception):
    """
    Base class for expected, user-facing failures.

    status_code is the HTTP status a route maps the error to; message is
    always safe to show the purchaser.
    """
    status_code = 400
    code = "error"

    def __init__(self, message: str, details: dict | None = None, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ShopError):
    """400-level input problem."""
    status_code = 400
    code = "validation_error"


class NotFoundError(ShopError):
    status_code = 404
    code = "not_found"


class PermissionDeniedError(ShopError):
    """Non-admin attempting an admin action."""
    status_code = 403
    code = "permission_denied"


class ConflictError(ShopError):
    """Business rule conflict: insufficient stock or points."""
    status_code = 400
    code = "conflict"


class InvalidTransitionError(ConflictError):
    """Order status change not allowed from the current state."""
    status_code = 409
    code = "invalid_transition"


class InUseError(ConflictError):
    """Delete refused because other rows still reference the entity."""
    status_code = 409
    code = "in_use"


class UpstreamError(Exception):
    """
    Notification delivery failure.

    Never converted into a response: callers log it and carry on.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
