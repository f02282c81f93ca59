"""
Error responses for the query API

Every error body has the same shape: {"error": CODE, "message": ..., "path": ...},
with "details" added for request validation failures.
"""
import logging
from typing import Any, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, SQLAlchemyError

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for errors raised deliberately by route handlers"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class BadRequestError(APIError):
    """Query parameters that parse but make no sense"""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "BAD_REQUEST"


def error_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Any] = None
) -> JSONResponse:
    content = {"error": error_code, "message": message, "path": request.url.path}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    logger.warning(f"{exc.error_code} on {request.url.path}: {exc.message}", extra={"error": exc.error_code})
    return error_response(request, exc.status_code, exc.error_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    logger.warning(f"Validation error on {request.url.path}: {errors}")
    details = [{"loc": list(e.get("loc", [])), "msg": e.get("msg", "")} for e in errors]
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Request validation failed",
        details,
    )


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """OperationalError maps to 503, any other database error to 500"""
    logger.error(f"Database error on {request.url.path}: {exc}", exc_info=True)
    if isinstance(exc, OperationalError):
        return error_response(
            request,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "DATABASE_UNAVAILABLE",
            "Database is currently unavailable",
        )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "DATABASE_ERROR",
        "An unexpected database error occurred",
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
    )


def register_error_handlers(app):
    """Register all error handlers with the FastAPI app"""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)
