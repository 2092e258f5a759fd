"""Standardized API error handling for voicegate.

Every failure leaves the API as the same envelope:

    {"error": {"code", "message", "timestamp", "request_id"?, "details"?}}

Request validation failures additionally list the offending fields under
``validation_errors``. Every response, including unhandled 500s, carries an
``X-Request-ID`` header.
"""

from __future__ import annotations

import logging
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..exceptions import ERROR_CODE_TO_STATUS, ErrorCode, VoiceGateError
from ..observability.logging import RequestLogger


logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Starlette raises HTTPException for unmatched methods and the like
HTTP_STATUS_TO_CODE = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.NOT_FOUND,
    413: ErrorCode.PAYLOAD_TOO_LARGE,
}


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    request_id: Optional[str] = Field(None, description="Request identifier for tracing")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")


class ErrorResponse(BaseModel):
    """Standard error response format."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "code": "CONFIGURATION_ERROR",
                    "message": "ElevenLabs API key not configured",
                    "timestamp": "2024-01-15T10:30:00Z",
                    "request_id": "req_xyz789abc012",
                    "details": {"setting": "ELEVEN_API_KEY"},
                }
            }
        }
    )

    error: ErrorDetail


class ValidationErrorItem(BaseModel):
    """One field that failed request validation."""

    field: str
    message: str
    type: str


class ValidationErrorResponse(BaseModel):
    """400 body for a malformed request."""

    error: ErrorDetail
    validation_errors: List[ValidationErrorItem] = Field(default_factory=list)


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return f"req_{uuid.uuid4().hex[:12]}"


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _error_detail(
    code: ErrorCode,
    message: str,
    request_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> ErrorDetail:
    return ErrorDetail(
        code=code.value,
        message=message,
        timestamp=datetime.now(timezone.utc).isoformat(),
        request_id=request_id,
        details=details or None,
    )


def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: Optional[int] = None,
    request_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        code: Error code; also decides the status when none is given
        message: Human-readable error message
        status_code: HTTP status code override
        request_id: Request identifier, echoed in the body and the header
        details: Additional error details

    Returns:
        JSONResponse with standardized error format
    """
    if status_code is None:
        status_code = ERROR_CODE_TO_STATUS.get(code, 500)

    body = ErrorResponse(error=_error_detail(code, message, request_id, details))
    headers = {REQUEST_ID_HEADER: request_id} if request_id else None

    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


# Exception handlers


async def voicegate_exception_handler(
    request: Request, exc: VoiceGateError
) -> JSONResponse:
    """Render a VoiceGateError with its code, status and context details."""
    request_id = _request_id(request)

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"{exc.code.value} - {exc.message}",
        extra={"error_code": exc.code.value, "request_id": request_id},
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        request_id=request_id,
        details=exc.context.additional,
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Wrap framework HTTP errors (405, unmatched routes) in the envelope."""
    code = HTTP_STATUS_TO_CODE.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    return create_error_response(
        code=code,
        message=str(exc.detail),
        status_code=exc.status_code,
        request_id=_request_id(request),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Answer malformed request bodies with 400, like a missing field."""
    request_id = _request_id(request)
    body = ValidationErrorResponse(
        error=_error_detail(
            ErrorCode.VALIDATION_ERROR, "Request validation failed", request_id
        ),
        validation_errors=[
            ValidationErrorItem(
                field=".".join(str(loc) for loc in error["loc"]),
                message=error["msg"],
                type=error["type"],
            )
            for error in exc.errors()
        ],
    )
    headers = {REQUEST_ID_HEADER: request_id} if request_id else None
    return JSONResponse(
        status_code=400,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions.

    Starlette runs this outside the HTTP middleware stack, so the response
    sets its own request id header.
    """
    request_id = _request_id(request)

    logger.error(
        f"Unhandled exception: {exc}",
        extra={"request_id": request_id},
        exc_info=True,
    )

    settings = getattr(request.app.state, "settings", None)
    if settings is not None and settings.debug:
        message = str(exc)
        details = {"traceback": traceback.format_exc()}
    else:
        message = "An internal error occurred"
        details = None

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message=message,
        status_code=500,
        request_id=request_id,
        details=details,
    )


async def request_id_middleware(request: Request, call_next):
    """Tag the request with an id and log its completion."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
    request.state.request_id = request_id

    with RequestLogger(logger, request_id, request.url.path, request.method) as access:
        response = await call_next(request)
        access.status_code = response.status_code

    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def setup_error_handlers(app: FastAPI) -> None:
    """Install the request id middleware and all exception handlers."""
    app.middleware("http")(request_id_middleware)

    app.add_exception_handler(VoiceGateError, voicegate_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)


# Response models for route decorators
COMMON_ERROR_RESPONSES = {
    400: {"model": ValidationErrorResponse, "description": "Bad Request"},
    500: {"model": ErrorResponse, "description": "Internal Server Error"},
}
