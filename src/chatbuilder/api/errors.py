"""
Exception handlers mapping pipeline errors to ErrorResponse bodies.

- RequestValidationError -> 422 VALIDATION_ERROR
- ValueError (includes ValidationError) -> 400 VALUE_ERROR
- IndexPersistenceError -> 503 INDEX_UNAVAILABLE
- anything else -> 500 INTERNAL_ERROR
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .schemas import ErrorResponse
from ..exceptions import IndexPersistenceError

logger = logging.getLogger(__name__)


def error_response(status_code: int, detail: str, error_code: str) -> JSONResponse:
    body = ErrorResponse(detail=detail, error_code=error_code)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    logger.warning(f"Invalid request to {request.url.path}: {errors}")
    first = errors[0] if errors else {"msg": "invalid request"}
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        f"Validation error: {first['msg']}",
        "VALIDATION_ERROR",
    )


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
    return error_response(status.HTTP_400_BAD_REQUEST, str(exc), "VALUE_ERROR")


async def handle_index_persistence(request: Request, exc: IndexPersistenceError) -> JSONResponse:
    logger.error(f"Vector index unavailable: {exc}")
    return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc), "INDEX_UNAVAILABLE")


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error. Please try again later.",
        "INTERNAL_ERROR",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(ValueError, handle_value_error)
    app.add_exception_handler(IndexPersistenceError, handle_index_persistence)
    app.add_exception_handler(Exception, handle_unexpected)
