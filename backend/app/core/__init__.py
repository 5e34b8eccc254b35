"""Core HTTP error handling."""

# Exception handling
from app.core.exceptions import (
    APIException,
    ValidationException,
    ResourceNotFoundException,
    ServiceUnavailableException,
    NoRouteException,
    RouteTimeoutException,
    GraphException,
    register_exception_handlers,
    sanitize_error_message,
    to_api_exception,
)

__all__ = [
    "APIException",
    "ValidationException",
    "ResourceNotFoundException",
    "ServiceUnavailableException",
    "NoRouteException",
    "RouteTimeoutException",
    "GraphException",
    "register_exception_handlers",
    "sanitize_error_message",
    "to_api_exception",
]
