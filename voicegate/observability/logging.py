"""Structured logging (JSON) for the API and CLI."""

import json
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Fields copied from ``extra=`` into the JSON payload when present
EXTRA_FIELDS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "error_code",
    "reference",
    "size_bytes",
    "category",
    "upstream_status",
)


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for structured logging."""

    def __init__(self, service_name: str = "voicegate"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        log_data["module"] = record.module
        log_data["function"] = record.funcName
        log_data["line"] = record.lineno

        return json.dumps(log_data, default=str)


def setup_logging(
    service_name: str = "voicegate",
    log_level: str = "INFO",
    json_format: bool = True,
) -> None:
    """Setup structured logging for the application.

    Args:
        service_name: Name of the service (api, cli)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, use JSON format; if False, use standard format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if json_format:
        formatter: logging.Formatter = JSONFormatter(service_name)
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


class RequestLogger:
    """Context manager for request logging with structured fields."""

    def __init__(
        self,
        logger: logging.Logger,
        request_id: str,
        path: str,
        method: str,
    ):
        """Initialize request logger.

        Args:
            logger: Logger instance
            request_id: Unique request ID
            path: Request path
            method: HTTP method
        """
        self.logger = logger
        self.request_id = request_id
        self.path = path
        self.method = method
        self.status_code: Optional[int] = None
        self.start_time: Optional[float] = None

    def __enter__(self):
        """Start request timing."""
        self.start_time = time.perf_counter()
        self.logger.debug(
            f"{self.method} {self.path}",
            extra={
                "request_id": self.request_id,
                "path": self.path,
                "method": self.method,
            },
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Log request completion."""
        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

        if exc_type is not None:
            status_code = 500
        else:
            status_code = self.status_code or 200

        level = logging.WARNING if status_code >= 500 else logging.INFO
        self.logger.log(
            level,
            f"{self.method} {self.path} completed",
            extra={
                "request_id": self.request_id,
                "path": self.path,
                "method": self.method,
                "duration_ms": duration_ms,
                "status_code": status_code,
            },
        )
        return False
