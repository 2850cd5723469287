"""
Domain exceptions for the fulfillment workflow.

Services raise these; the exception handler registered in main.py renders
them as JSON of the form {"detail": message, **extra}.
"""

from typing import Any, Dict, List, Optional


class FulfillmentError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 400

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, **self.extra}


class ValidationFailed(FulfillmentError):
    """Missing fields, quantity bounds, unknown status values."""

    status_code = 400

    def __init__(self, message: str, details: Optional[List[Any]] = None, **extra: Any):
        if details:
            extra["details"] = details
        super().__init__(message, extra)


class NotFound(FulfillmentError):
    status_code = 404


class BusinessRuleViolation(FulfillmentError):
    """A request that is well formed but not allowed in the current state."""

    status_code = 400

    def __init__(self, message: str, **flags: Any):
        super().__init__(message, flags)


class InvalidTransition(FulfillmentError):
    status_code = 400

    def __init__(self, message: str, current_status: str, requested_status: str,
                 allowed: Optional[List[str]] = None):
        super().__init__(message, {
            "currentStatus": current_status,
            "requestedStatus": requested_status,
            "allowedTransitions": allowed or [],
        })


class ConcurrencyConflict(FulfillmentError):
    """The row was modified by another request since it was read."""

    status_code = 409
