"""Global error handlers for the VM pool service."""

# Standard library imports
import traceback
from typing import Union

# Third-party imports
import structlog
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

# Local application imports
from ..models.errors import (
    ErrorDetail,
    ErrorResponse,
    ErrorType,
    VMWorkerException,
)
from .id_generator import generate_request_id

logger = structlog.get_logger(__name__)


def _client_ip(request: Request) -> str:
    return getattr(request.client, "host", "unknown") if request.client else "unknown"


async def vmworker_exception_handler(
    request: Request, exc: VMWorkerException
) -> JSONResponse:
    """Handle VMWorkerException instances."""
    if not exc.request_id:
        exc.request_id = generate_request_id()

    log_data = {
        "error_type": exc.error_type.value,
        "status_code": exc.status_code,
        "message": exc.message,
        "request_id": exc.request_id,
        "path": request.url.path,
        "method": request.method,
        "client_ip": _client_ip(request),
    }

    if exc.status_code >= 500:
        logger.error("Server error occurred", **log_data)
    else:
        logger.warning("Client error occurred", **log_data)

    return JSONResponse(
        status_code=exc.status_code, content=exc.to_response().model_dump()
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPException instances."""
    request_id = generate_request_id()

    error_type_mapping = {
        400: ErrorType.VALIDATION,
        404: ErrorType.RESOURCE_NOT_FOUND,
        409: ErrorType.RESOURCE_CONFLICT,
        422: ErrorType.VALIDATION,
        500: ErrorType.INTERNAL_SERVER,
        503: ErrorType.SERVICE_UNAVAILABLE,
    }
    error_type = error_type_mapping.get(exc.status_code, ErrorType.INTERNAL_SERVER)

    logger.warning(
        "HTTP exception occurred",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
        path=request.url.path,
        method=request.method,
        client_ip=_client_ip(request),
    )

    error_response = ErrorResponse(
        error=str(exc.detail), error_type=error_type, request_id=request_id
    )
    return JSONResponse(
        status_code=exc.status_code, content=error_response.model_dump()
    )


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    """Handle request validation errors.

    Malformed coordination requests are answered with 400, the same status a
    request for an unconfigured pool gets.
    """
    request_id = generate_request_id()

    details = []
    for error in exc.errors():
        field_path = " -> ".join(str(loc) for loc in error["loc"])
        details.append(
            ErrorDetail(field=field_path, message=error["msg"], code=error["type"])
        )

    logger.warning(
        "Validation error occurred",
        request_id=request_id,
        path=request.url.path,
        method=request.method,
        validation_errors=[
            {"field": d.field, "message": d.message, "code": d.code} for d in details
        ],
        client_ip=_client_ip(request),
    )

    error_response = ErrorResponse(
        error="Request validation failed",
        error_type=ErrorType.VALIDATION,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(status_code=400, content=error_response.model_dump())


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = generate_request_id()

    logger.error(
        "Unexpected exception occurred",
        request_id=request_id,
        path=request.url.path,
        method=request.method,
        exception_type=type(exc).__name__,
        exception_message=str(exc),
        traceback=traceback.format_exc(),
        client_ip=_client_ip(request),
    )

    error_response = ErrorResponse(
        error="An unexpected error occurred",
        error_type=ErrorType.INTERNAL_SERVER,
        request_id=request_id,
    )
    return JSONResponse(status_code=500, content=error_response.model_dump())
