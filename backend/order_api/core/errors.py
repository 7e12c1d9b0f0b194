"""
Exception handlers rendering every error as ``{"success": false, "error", "code"}``.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from shared.config.logging import get_logger
from shared.infrastructure.db import classify_db_error
from shared.utils.exceptions import AppException

logger = get_logger(__name__)


def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail, "code": exc.code},
        headers=exc.headers,
    )


def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    logger.info("Request validation failed", path=request.url.path, errors=len(errors))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": f"{location}: {message}" if location else message,
            "code": "VALIDATION_ERROR",
        },
    )


def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Driver failures that escaped the gateway, typically at commit."""
    return app_exception_handler(request, classify_db_error(exc, f"{request.method} {request.url.path}"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
