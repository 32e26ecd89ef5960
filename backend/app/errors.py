"""
Service error taxonomy and structured operation results.

Every failure a caller can see is one of:
- ValidationError (400): client-fixable input problem
- NotFoundError (404): unknown entity or an entity owned by another tenant
- InsufficientStockError (400): carries available/requested for display
- ConflictError (409): business-rule conflict (terminal state, payment linkage)
- InternalError (500): unexpected backing-store failure; raw error is logged, never returned
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from flask import current_app, has_app_context


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = 500
    default_message = "Operation failed"

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""

    status_code = 400
    default_message = "Invalid request"


class NotFoundError(ServiceError, LookupError):
    """404-level: missing, or belongs to a different tenant (never revealed)."""

    status_code = 404
    default_message = "Not found"


class InsufficientStockError(ServiceError):
    """400-level: available quantity is below the requested quantity."""

    status_code = 400

    def __init__(
        self,
        available: int,
        requested: int,
        *,
        product_id: int | None = None,
        variant_id: int | None = None,
        location_id: int | None = None,
        message: str | None = None,
    ):
        self.available = available
        self.requested = requested
        self.product_id = product_id
        self.variant_id = variant_id
        self.location_id = location_id
        super().__init__(
            message or f"Insufficient stock. Available: {available}, Requested: {requested}",
            details={
                "available": available,
                "requested": requested,
                "shortfall": requested - available,
                "product_id": product_id,
                "variant_id": variant_id,
                "location_id": location_id,
            },
        )


class ConflictError(ServiceError):
    """409-level business rule conflict."""

    status_code = 409
    default_message = "Conflict"


class InternalError(ServiceError):
    """500-level: unexpected failure. Message is generic by construction."""

    status_code = 500
    default_message = "An unexpected error occurred"


class TransactionTimeoutError(InternalError):
    """Unit of work exceeded TRANSACTION_TIMEOUT_SECONDS and was rolled back."""

    status_code = 504
    default_message = "Operation timed out"


@dataclass
class OperationResult:
    success: bool
    message: str
    status_code: int = 200
    data: Any = None
    details: dict = field(default_factory=dict)

    @property
    def available(self) -> int | None:
        return self.details.get("available")

    @property
    def requested(self) -> int | None:
        return self.details.get("requested")

    @property
    def shortfall(self) -> int | None:
        return self.details.get("shortfall")

    def to_dict(self) -> dict:
        payload = {"success": self.success, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        if self.details:
            payload["details"] = self.details
        return payload


def capture_result(func: Callable[[], Any], *, message: str = "OK") -> OperationResult:
    """
    Run a service call and fold the outcome into an OperationResult.

    Known ServiceErrors keep their message; anything else is logged with a
    stack trace and reported with InternalError's generic message.
    """
    try:
        data = func()
    except InternalError as exc:
        _log_exception("Internal error during service call")
        return OperationResult(False, exc.message, exc.status_code, details=exc.details)
    except ServiceError as exc:
        return OperationResult(False, exc.message, exc.status_code, details=exc.details)
    except Exception:
        _log_exception("Unexpected error during service call")
        return OperationResult(False, InternalError.default_message, InternalError.status_code)

    if hasattr(data, "to_dict"):
        data = data.to_dict()
    return OperationResult(True, message, 200, data=data)


def _log_exception(msg: str) -> None:
    if has_app_context():
        current_app.logger.exception(msg)
