"""Application error type and the FastAPI exception handlers that render it."""
import logging

import jwt
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """
    Error raised by services and rendered as a JSON envelope.

    Args:
        message: Client-facing message
        status_code: HTTP status to respond with
        is_operational: False for programming errors that should alert
    """

    def __init__(self, message: str, status_code: int = 500, is_operational: bool = True):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.is_operational = is_operational


def error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


def _log_error(request: Request, status_code: int, message: str) -> None:
    log = logger.error if status_code >= 500 else logger.warning
    log("Request failed", extra={
        "method": request.method,
        "path": request.url.path,
        "status_code": status_code,
        "error": message,
    })


def _format_validation_error(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
    message = error.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    _log_error(request, exc.status_code, exc.message)
    if not exc.is_operational:
        logger.exception("Non-operational error", exc_info=exc)
    return error_response(exc.status_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = "; ".join(_format_validation_error(error) for error in exc.errors()) or "Validation failed"
    _log_error(request, 400, message)
    return error_response(400, message)


async def jwt_error_handler(request: Request, exc: jwt.PyJWTError) -> JSONResponse:
    message = "Token expired" if isinstance(exc, jwt.ExpiredSignatureError) else "Invalid token"
    _log_error(request, 401, message)
    return error_response(401, message)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    _log_error(request, 409, str(exc.orig))
    return error_response(409, "Duplicate entry")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    _log_error(request, exc.status_code, message)
    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={
        "method": request.method,
        "path": request.url.path,
    })
    return error_response(500, "Internal Server Error")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every handler to the application."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(jwt.PyJWTError, jwt_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
