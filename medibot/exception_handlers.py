"""
Exception handlers for the MEDIBOT API.

Domain errors, request validation errors and persistence failures all leave
the API in the same shape: ``{"error", "message", "details"}``.
"""

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .crud import CRUDError
from .exceptions import MedibotError, ValidationError

logger = logging.getLogger(__name__)


def _error_body(error: str, message: str, details=None) -> dict:
    return {"error": error, "message": message, "details": details or []}


async def medibot_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map a domain error to its status code."""
    if not isinstance(exc, MedibotError):
        return await global_exception_handler(request, exc)

    details = exc.errors if isinstance(exc, ValidationError) else []
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(type(exc).__name__, exc.message, details),
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle HTTPException with the same response format as domain errors."""
    http_exc = exc if isinstance(exc, StarletteHTTPException) else StarletteHTTPException(status_code=500, detail=str(exc))
    return JSONResponse(
        status_code=http_exc.status_code,
        content=_error_body(HTTPStatus(http_exc.status_code).phrase.replace(" ", ""), str(http_exc.detail)),
        headers=getattr(http_exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle request validation errors, one detail per invalid field."""
    if not isinstance(exc, RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body("ValidationError", str(exc)),
        )

    errors = []
    for error in exc.errors():
        # Drop the leading "body"/"query"/"path" part of the location
        loc = [str(part) for part in error["loc"][1:]] or [str(part) for part in error["loc"]]
        errors.append({"field": ".".join(loc), "message": error["msg"]})

    logger.warning(f"Validation error on {request.url.path}: {errors}")

    fields = ", ".join(e["field"] for e in errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body("ValidationError", f"Invalid request: {fields}", errors),
    )


async def crud_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc!s}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("DatabaseError", str(exc)),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all unhandled exceptions.

    Logs the full exception with traceback and returns a safe error response.
    """
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc!s}",
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("InternalServerError", "Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MedibotError, medibot_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(CRUDError, crud_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("Exception handlers registered")
