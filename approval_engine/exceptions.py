from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int


class AppError(Exception):
    """Base application exception."""

    default_status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status_code
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed input: bad date format, missing required field, unknown action."""

    default_status_code = status.HTTP_400_BAD_REQUEST


class ConfigurationError(AppError):
    """The employee's approval profile cannot produce a reachable approval chain."""

    default_status_code = status.HTTP_400_BAD_REQUEST


class InvalidStateError(AppError):
    """Operation attempted while the request is in a status that does not allow it."""

    default_status_code = status.HTTP_400_BAD_REQUEST


class EditNotAllowedError(InvalidStateError):
    """Owner edit attempted after the request left its editable window."""


class ForbiddenError(AppError):
    default_status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    default_status_code = status.HTTP_404_NOT_FOUND


class DuplicateRequestError(AppError):
    """A live request with the same natural key already exists."""

    default_status_code = status.HTTP_409_CONFLICT


class ConflictError(AppError):
    """The conditional update lost a race against another writer."""

    default_status_code = status.HTTP_409_CONFLICT


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
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_400_BAD_REQUEST,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
