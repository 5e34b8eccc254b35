"""Health check endpoints."""

from fastapi import APIRouter, Request, Response

router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness_check(request: Request, response: Response):
    """Readiness check for the navigation engine.

    Returns HTTP 503 until the engine is built and a road graph is loaded.
    """
    service = getattr(request.app.state, "navigation", None)
    checks = {
        "engine": service is not None,
        "road_graph": service is not None and service.graph_loaded,
    }
    all_healthy = all(checks.values())

    # Return 503 if not ready
    if not all_healthy:
        response.status_code = 503

    result = {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks,
    }
    if service is not None:
        result["engine"] = service.status()

    return result
