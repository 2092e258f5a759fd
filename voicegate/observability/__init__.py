"""Observability module for voicegate."""

from .logging import setup_logging, RequestLogger, JSONFormatter

__all__ = ["setup_logging", "RequestLogger", "JSONFormatter"]
