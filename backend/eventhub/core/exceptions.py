"""
Operational error taxonomy.

Every expected, client-facing failure is an AppError. They subclass FastAPI's
HTTPException so routes and services can raise them directly; the handler
registered in main adds the stable machine-readable `code` to the body.
Anything that is not an AppError is a programming error and becomes a 500.
"""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from eventhub.core.logging import get_logger

logger = get_logger(__name__)


class AppError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "bad_request"
    default_message: str = "Bad request"

    def __init__(self, message: str | None = None, headers: dict[str, str] | None = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=message or self.default_message,
            headers=headers,
        )

    @property
    def message(self) -> str:
        return self.detail


class BadRequestError(AppError):
    code = "bad_request"
    default_message = "Bad request"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "not_authenticated"
    default_message = "Not authenticated"

    def __init__(self, message: str | None = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "You do not have permission to perform this action"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_message = "Resource already exists"


class InvalidStateError(AppError):
    code = "invalid_state"
    default_message = "Operation not allowed in the current state"


class AlreadyProcessedError(InvalidStateError):
    code = "already_processed"
    default_message = "Application has already been processed"


class RegistrationClosedError(AppError):
    code = "registration_closed"
    default_message = "Registration deadline has passed"


class RateLimitedError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "rate_limited"
    default_message = "Too many requests. Please try again later"


class CapacityExceededError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "capacity_exceeded"
    default_message = "Event is at full capacity"


class DuplicateApplicationError(ConflictError):
    code = "duplicate_application"
    default_message = "You have already applied to this event"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.warning(
        "request_rejected",
        code=exc.code,
        status_code=exc.status_code,
        detail=exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=exc.headers,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
