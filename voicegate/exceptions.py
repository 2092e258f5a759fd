"""Custom exception hierarchy for voicegate.

This module provides a structured exception hierarchy that:
1. Enables precise error handling at the storage, provider and API layers
2. Provides consistent error messages and codes
3. Maps cleanly to HTTP status codes for API responses
4. Includes context for debugging and logging
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standard error codes for categorizing errors."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"

    # Configuration errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Upstream provider errors
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    UPSTREAM_STREAM_ERROR = "UPSTREAM_STREAM_ERROR"

    # Local storage errors
    STORAGE_ERROR = "STORAGE_ERROR"


# HTTP status code mapping
ERROR_CODE_TO_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.PAYLOAD_TOO_LARGE: 413,
    ErrorCode.CONFIGURATION_ERROR: 500,
    ErrorCode.UPSTREAM_ERROR: 500,
    ErrorCode.UPSTREAM_STREAM_ERROR: 500,
    ErrorCode.STORAGE_ERROR: 500,
}


@dataclass
class ErrorContext:
    """Additional context for debugging errors."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    additional: Dict[str, Any] = field(default_factory=dict)


class VoiceGateError(Exception):
    """
    Base exception for all voicegate errors.

    All custom exceptions should inherit from this class to ensure
    consistent error handling and reporting.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or ErrorContext()
        self.cause = cause

    @property
    def status_code(self) -> int:
        """Get HTTP status code for this error."""
        return ERROR_CODE_TO_STATUS.get(self.code, 500)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response."""
        result = {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "timestamp": self.context.timestamp.isoformat(),
            }
        }

        if self.context.request_id:
            result["error"]["request_id"] = self.context.request_id
        if self.context.additional:
            result["error"]["details"] = dict(self.context.additional)

        return result

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


# Request Exceptions


class ValidationError(VoiceGateError):
    """A required request field is missing or malformed."""

    def __init__(
        self, message: str, field: Optional[str] = None, **kwargs
    ):
        context = kwargs.pop("context", None) or ErrorContext()
        if field:
            context.additional["field"] = field
        super().__init__(
            message, code=ErrorCode.VALIDATION_ERROR, context=context, **kwargs
        )


class PayloadTooLargeError(VoiceGateError):
    """Uploaded payload exceeds the configured size limit."""

    def __init__(self, limit_bytes: int, **kwargs):
        context = kwargs.pop("context", None) or ErrorContext()
        context.additional["limit_bytes"] = limit_bytes
        super().__init__(
            f"Uploaded file exceeds the limit of {limit_bytes} bytes",
            code=ErrorCode.PAYLOAD_TOO_LARGE,
            context=context,
            **kwargs,
        )


class NotFoundError(VoiceGateError):
    """Generic not found error."""

    def __init__(self, resource_type: str, resource_id: str, **kwargs):
        context = kwargs.pop("context", None) or ErrorContext()
        context.additional["resource_type"] = resource_type
        context.additional["resource_id"] = resource_id
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            code=ErrorCode.NOT_FOUND,
            context=context,
            **kwargs,
        )


# Configuration Exceptions


class ConfigurationError(VoiceGateError):
    """A setting required by the requested operation is missing."""

    def __init__(self, message: str, setting: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", None) or ErrorContext()
        if setting:
            context.additional["setting"] = setting
        super().__init__(
            message, code=ErrorCode.CONFIGURATION_ERROR, context=context, **kwargs
        )


# Upstream Provider Exceptions


class UpstreamError(VoiceGateError):
    """The upstream voice provider call failed."""

    def __init__(
        self,
        message: str,
        provider: str = "elevenlabs",
        status: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("code", ErrorCode.UPSTREAM_ERROR)
        context = kwargs.pop("context", None) or ErrorContext()
        context.additional["provider"] = provider
        if status is not None:
            context.additional["upstream_status"] = status
        VoiceGateError.__init__(self, message, context=context, **kwargs)


class UpstreamStreamError(UpstreamError):
    """The upstream chunk stream failed before it was fully consumed."""

    def __init__(self, message: str, chunks_received: int = 0, **kwargs):
        kwargs["code"] = ErrorCode.UPSTREAM_STREAM_ERROR
        context = kwargs.pop("context", None) or ErrorContext()
        context.additional["chunks_received"] = chunks_received
        super().__init__(message, context=context, **kwargs)


# Storage Exceptions


class StorageError(VoiceGateError):
    """Local filesystem operation failed (disk full, permission denied, ...)."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", None) or ErrorContext()
        if path:
            context.additional["path"] = path
        super().__init__(
            message, code=ErrorCode.STORAGE_ERROR, context=context, **kwargs
        )
