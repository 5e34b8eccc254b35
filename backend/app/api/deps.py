"""Shared API dependencies."""

from typing import List, Optional

from fastapi import Depends, Request

from app.core.exceptions import ServiceUnavailableException
from app.services.navigation import NavigationService


def get_request_id(request: Request) -> str:
    """Get request ID from request state."""
    return getattr(request.state, "request_id", "unknown")


def get_navigation_service(request: Request) -> NavigationService:
    """The engine instance built at startup."""
    service = getattr(request.app.state, "navigation", None)
    if service is None:
        raise ServiceUnavailableException("Navigation engine")
    return service


def get_routing_service(
    service: NavigationService = Depends(get_navigation_service),
) -> NavigationService:
    """The engine, provided a road graph is loaded."""
    if not service.graph_loaded:
        raise ServiceUnavailableException("Road graph", "Routing is unavailable: no road graph is loaded")
    return service


def parse_categories(categories: Optional[str]) -> Optional[List[str]]:
    """Comma-separated category ids from a query string; None when absent."""
    if categories is None:
        return None
    return [c.strip() for c in categories.split(",") if c.strip()]
