"""Routing API endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_request_id, get_routing_service
from app.core.exceptions import NoRouteException, RouteTimeoutException, ValidationException
from app.middleware import annotate
from app.schemas.routing import RouteRequest, RouteResponse
from app.services.errors import NoRouteError, SearchTimeoutError
from app.services.navigation import NavigationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/calculate", response_model=RouteResponse)
async def calculate_route(
    route_request: RouteRequest,
    request: Request,
    service: NavigationService = Depends(get_routing_service),
) -> RouteResponse:
    """
    Calculate the route between two points trading travel time against risk.

    Takes into account:
    - Decay-weighted incident risk of the enabled categories
    - The route profile (fastest, balanced, safest) or an explicit risk weight
    """
    request_id = get_request_id(request)
    categories = service.resolve_categories(route_request.categories)
    timeout = route_request.timeout_ms / 1000.0 if route_request.timeout_ms else None
    annotate(request, profile=route_request.profile.value, categories=categories)

    logger.info(
        f"[{request_id}] Route {route_request.origin.as_tuple()} -> "
        f"{route_request.destination.as_tuple()} profile={route_request.profile.value}"
    )

    # Search is CPU-bound; run it off the event loop so queries proceed in parallel
    try:
        result = await run_in_threadpool(
            service.plan_route,
            route_request.origin.as_tuple(),
            route_request.destination.as_tuple(),
            categories,
            route_request.as_of,
            route_request.profile,
            route_request.risk_aversion,
            timeout,
        )
    except NoRouteError as e:
        raise NoRouteException(e.message)
    except SearchTimeoutError as e:
        raise RouteTimeoutException(e.expansions)
    except ValueError as e:
        raise ValidationException(str(e))

    annotate(request, rating=result.safety_rating.value, risk=result.total_risk, expansions=result.expansions)
    return RouteResponse.from_result(result, list(categories))
