"""
Domain errors and their HTTP mapping.
Services raise these; a single rule table turns them into HTTPExceptions so routes stay thin.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

MSG_COULD_NOT_COMPLETE = "The operation could not be completed in the invitation's current state."
MSG_PLEASE_RETRY = "The record was changed by another request. Please retry."


class VisitflowError(Exception):
    """Base class for all domain failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailedError(VisitflowError):
    """Malformed input, detected before any state mutation."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors) if errors else "Validation failed")
        self.errors = list(errors)


class NotFoundError(VisitflowError):
    pass


class PermissionDeniedError(VisitflowError):
    pass


class IllegalTransitionError(VisitflowError):
    """A lifecycle operation was attempted from a state that does not allow it."""

    def __init__(self, message: str, current_status: Optional[Any] = None):
        super().__init__(message)
        self.current_status = current_status


class CapacityUnavailableError(VisitflowError):
    """Raised by lifecycle gates when the capacity check did not admit the request."""

    def __init__(self, result: Any):
        reasons = getattr(result, "reasons", None) or ["Insufficient capacity"]
        super().__init__("; ".join(reasons))
        self.result = result


class ConcurrencyConflictError(VisitflowError):
    pass


def _validation_detail(exc: VisitflowError) -> Any:
    return {"message": "Validation failed", "errors": exc.errors}


def _capacity_detail(exc: VisitflowError) -> Any:
    result = exc.result
    payload = result.model_dump(mode="json") if hasattr(result, "model_dump") else None
    return {"message": "Insufficient capacity", "reasons": payload["reasons"] if payload else [exc.message], "capacity": payload}


def _message_detail(exc: VisitflowError) -> Any:
    return exc.message


# (error class, status code, detail builder, log underlying reason). First match wins.
DOMAIN_ERROR_RULES: list[tuple[type, int, Callable[[VisitflowError], Any], bool]] = [
    (ValidationFailedError, status.HTTP_422_UNPROCESSABLE_ENTITY, _validation_detail, False),
    (NotFoundError, status.HTTP_404_NOT_FOUND, _message_detail, False),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN, _message_detail, False),
    (CapacityUnavailableError, status.HTTP_409_CONFLICT, _capacity_detail, False),
    (IllegalTransitionError, status.HTTP_409_CONFLICT, lambda exc: MSG_COULD_NOT_COMPLETE, True),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT, lambda exc: MSG_PLEASE_RETRY, True),
]


def domain_error_to_http(exc: VisitflowError) -> HTTPException:
    """
    Map a domain error into an HTTPException.
    Illegal-transition and concurrency failures get a generic message; the reason is logged here.
    """
    for error_class, status_code, build_detail, log_reason in DOMAIN_ERROR_RULES:
        if isinstance(exc, error_class):
            if log_reason:
                logger.error(f"{error_class.__name__}: {exc.message}")
            return HTTPException(status_code=status_code, detail=build_detail(exc))
    logger.error(f"Unhandled domain error: {exc.message}")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
