"""Middleware modules for request processing."""

from app.middleware.request_logging import RequestLoggingMiddleware, annotate, setup_logging

__all__ = [
    "RequestLoggingMiddleware",
    "annotate",
    "setup_logging",
]
