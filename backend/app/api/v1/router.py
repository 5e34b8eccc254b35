"""API v1 router aggregation."""

from fastapi import APIRouter

from app.api.v1.routes import categories, graph, health, heatmap, incidents, routing

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["Health"])
api_router.include_router(routing.router, prefix="/routes", tags=["Routing"])
api_router.include_router(heatmap.router, prefix="/heatmap", tags=["Heatmap"])
api_router.include_router(incidents.router, prefix="/incidents", tags=["Incidents"])
api_router.include_router(graph.router, prefix="/graph", tags=["Road Graph"])
api_router.include_router(categories.router, prefix="/categories", tags=["Categories"])
