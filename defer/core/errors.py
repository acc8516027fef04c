"""
Exception hierarchy for the Defer lifecycle engine.

Rule: every error carries a machine-readable `code` string so callers
(HTTP clients included) can branch on it without parsing English messages.

Validation errors are raised before anything is written. Persistence
failures of the primary write surface as PersistenceError through the
same channel.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class DeferException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class EmptyTitleError(DeferException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "EMPTY_TITLE"

    def __init__(self):
        super().__init__(message="Title must not be empty.")


class InvalidDateRangeError(DeferException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_DATE_RANGE"

    def __init__(self, start_time=None, checkpoint_time=None):
        details = {}
        if start_time is not None:
            details["start_time"] = start_time.isoformat()
        if checkpoint_time is not None:
            details["checkpoint_time"] = checkpoint_time.isoformat()
        super().__init__(
            message="Checkpoint must be after the start time.",
            details=details,
        )


class InvalidStateError(DeferException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_STATE"

    def __init__(self, detail: str):
        super().__init__(message=detail, details={"detail": detail})


class InvalidStatusTransitionError(DeferException):
    http_status = status.HTTP_409_CONFLICT
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, intent_id: str, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} an intent that is {current_status}.",
            details={
                "intent_id": intent_id,
                "status": current_status,
                "action": action,
            },
        )


class InvalidOutcomeError(DeferException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_OUTCOME"

    def __init__(self, outcome: str):
        super().__init__(
            message=f"Outcome '{outcome}' cannot complete a decision. Use postpone instead.",
            details={"outcome": outcome},
        )


class CheckpointUnavailableError(DeferException):
    http_status = status.HTTP_409_CONFLICT
    code = "CHECKPOINT_UNAVAILABLE"

    def __init__(self, intent_id: str, current_status: str):
        super().__init__(
            message=f"Intent is {current_status}; there is no checkpoint to postpone.",
            details={"intent_id": intent_id, "status": current_status},
        )


class IntentNotFoundError(DeferException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "INTENT_NOT_FOUND"

    def __init__(self, intent_id: str):
        super().__init__(
            message=f"Intent {intent_id} does not exist.",
            details={"intent_id": intent_id},
        )


class UrgeEventNotFoundError(DeferException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "URGE_EVENT_NOT_FOUND"

    def __init__(self, urge_id: str):
        super().__init__(
            message=f"Urge event {urge_id} does not exist.",
            details={"urge_id": urge_id},
        )


class PersistenceError(DeferException):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str):
        super().__init__(message=message)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def defer_exception_handler(request: Request, exc: DeferException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
