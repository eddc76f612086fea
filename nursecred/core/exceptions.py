"""
Domain error taxonomy and the FastAPI handlers that render it.

Every error carries the HTTP status it maps to and an optional set of
extra fields that are merged into the JSON body, so route handlers and
dependencies simply raise and never build responses by hand.
"""

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from nursecred.core.logging import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra = {k: v for k, v in extra.items() if v is not None}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "detail": self.message, **self.extra}


class ValidationError(AppError):
    """One or more field constraints were violated."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"

    def __init__(self, errors: List[Dict[str, str]], message: Optional[str] = None):
        self.errors = errors
        if message is None:
            fields = ", ".join(sorted({e["field"] for e in errors}))
            message = f"Validation failed for: {fields}" if fields else self.default_message
        super().__init__(message, errors=errors)

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}], message=message)


class DuplicateError(AppError):
    """A unique constraint collided."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"{field} already exists", field=field)


class NotFoundError(AppError):
    """No active record matches."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class AuthenticationError(AppError):
    """Missing, invalid, expired or revoked credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class ExpiredError(AuthenticationError):
    default_message = "Session expired"


class RevokedError(AuthenticationError):
    default_message = "Session expired. Please login again."


class InvalidSignatureError(AuthenticationError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Invalid or expired token"


class AuthorizationError(AppError):
    """Valid identity without the required role or permission."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class InternalError(AppError):
    """Unexpected persistence or configuration failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def to_dict(self) -> Dict[str, Any]:
        # Detail stays in the log.
        return {"success": False, "detail": self.default_message}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, InternalError):
        logger.error(f"Internal error on {request.method} {request.url.path}: {exc.message}")
    elif exc.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
        logger.warning(f"Access rejected on {request.method} {request.url.path}: {exc.message}")

    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request parsing failures like any other ValidationError."""
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        errors.append({"field": ".".join(location) or "body", "message": error.get("msg", "Invalid value")})
    return await app_error_handler(request, ValidationError(errors))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON handlers for the whole error taxonomy."""
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
