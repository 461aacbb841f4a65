# Overview: Domain error types shared by the order services and routes.

"""
Order engine errors.

Every failure the order engine reports carries a stable machine-readable
``code`` (e.g. ``OUT_OF_STOCK``) next to the human message, plus the HTTP
status the routes should answer with. ``details`` holds the context a caller
needs to react (product name, requested vs. available quantities, ...).
"""

from __future__ import annotations


class OrderError(Exception):
    """Raised for order intake, lifecycle and payment errors."""
    status_code = 400

    def __init__(
        self,
        message: str,
        code: str,
        status: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.code = code
        if status is not None:
            self.status_code = status
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class ValidationError(OrderError):
    """400-level input problem."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR", details: dict | None = None):
        super().__init__(message, code, details=details)


class NotFoundError(OrderError):
    status_code = 404

    def __init__(self, message: str = "Order not found", code: str = "NOT_FOUND"):
        super().__init__(message, code)


class ForbiddenError(OrderError):
    status_code = 403

    def __init__(self, message: str = "Forbidden", code: str = "FORBIDDEN"):
        super().__init__(message, code)


class ConflictError(OrderError):
    """409-level conflict with live state (e.g. stock consumed concurrently)."""
    status_code = 409


class ServiceUnavailableError(OrderError):
    status_code = 503

    def __init__(self, message: str = "Database not available", code: str = "SERVICE_UNAVAILABLE"):
        super().__init__(message, code)
