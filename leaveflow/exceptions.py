import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int


class AppError(Exception):
    """Base application exception."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Authentication and authorization (terminal, never retried)
# ---------------------------------------------------------------------------


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class TenantMismatch(AppError):
    """The credential names a user who does not belong to the asserted tenant."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "User does not belong to this tenant"


class CrossTenant(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Resource belongs to another tenant"


class InsufficientRole(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient role for this action"


class TrialExpired(AppError):
    """The tenant's trial has ended or its subscription is no longer active."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Tenant subscription is not active"


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InsufficientBalance(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Insufficient balance"


class BalanceExceeded(AppError):
    """Workflow-level surface of an InsufficientBalance during submit."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request exceeds the available balance"


class InvalidTransition(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Transition not allowed from the current status"


class OverlappingRequest(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Request overlaps with an existing request"


class ConcurrentModification(AppError):
    """Stale write detected; the caller may re-read and retry."""

    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource was modified concurrently, retry"


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            status_code=exc.status_code,
        ).model_dump(),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ).model_dump(),
    )


async def _database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database failure on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="DatabaseError",
            detail="The operation could not be completed",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _database_exception_handler)  # type: ignore[arg-type]
