"""Domain error taxonomy and its mapping onto HTTP responses.

Services raise subclasses of :class:`ChatterSphereError`; the handlers
registered by :func:`register_exception_handlers` turn them into JSON bodies of
the form ``{"detail": message, "code": code}``. Raw driver exceptions never
reach the client: they are logged server-side and answered with a generic 500.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ChatterSphereError(Exception):
    """Base class for errors that map onto a client-visible response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ChatterSphereError):
    """Missing or malformed path, query or body parameters."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"


class AuthenticationError(ChatterSphereError):
    """No resolvable session where the operation requires one."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class PermissionDeniedError(ChatterSphereError):
    """The resolved session lacks the required community role."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFoundError(ChatterSphereError):
    """A referenced community, request, notification or user does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(ChatterSphereError):
    """A uniqueness rule (name, slug, channel name) would be violated."""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class InternalError(ChatterSphereError):
    """Storage or upstream failure that the client cannot correct."""


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message, "code": code})


async def _handle_domain_error(request: Request, exc: ChatterSphereError) -> JSONResponse:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.code, exc.message)


async def _handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "%s %s hit a database error",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        InternalError.code,
        "Internal server error",
    )


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        prefix = f"{location}: " if location else ""
        message = f"Invalid request: {prefix}{first.get('msg', '')}"
    return _error_response(status.HTTP_400_BAD_REQUEST, ValidationError.code, message)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the domain, request-validation and database error handlers on ``app``."""
    app.add_exception_handler(RequestValidationError, _handle_request_validation)  # type: ignore[arg-type]
    app.add_exception_handler(ChatterSphereError, _handle_domain_error)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _handle_database_error)  # type: ignore[arg-type]
