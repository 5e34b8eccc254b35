"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router
from app.middleware import RequestLoggingMiddleware, setup_logging
from app.core.exceptions import register_exception_handlers
from app.services.errors import ConfigError, GraphError
from app.services.navigation import NavigationService


# Setup logging early
setup_logging()
logger = logging.getLogger(__name__)


def build_navigation_service() -> NavigationService:
    """
    Build the engine from configuration.
    Invalid configuration or graph data aborts startup.
    """
    try:
        service = NavigationService.from_settings(settings)
    except (ConfigError, GraphError) as e:
        logger.critical(f"Refusing to start: {e.message}")
        raise

    status = service.status()
    logger.info(f"Environment: {settings.app_env}")
    logger.info(
        f"Road graph: {status['node_count']} nodes, {status['edge_count']} edges"
        if status["graph_loaded"]
        else "Road graph: not loaded"
    )
    logger.info(f"Incidents: {status['incident_count']} in {status['occupied_cells']} cells")
    return service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    # Startup
    logger.info(f"Starting {settings.app_name}...")

    if getattr(app.state, "navigation", None) is None:
        app.state.navigation = build_navigation_service()

    logger.info(f"{settings.app_name} started successfully")

    yield

    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="""
Safety-aware routing and incident heatmap API.

Routes trade travel time against decay-weighted incident risk along the way,
and are rated Safe, Moderate or Risky by their risk per kilometre.

## Error Responses

All errors follow a consistent format:
```json
{
  "error": {
    "code": "ERROR_CODE",
    "message": "Human-readable message",
    "request_id": "abc123"
  }
}
```
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production() else None,
    redoc_url="/redoc" if not settings.is_production() else None,
    openapi_url="/openapi.json" if not settings.is_production() else None,
)

# ============================================================================
# Register Exception Handlers (before middleware)
# ============================================================================
register_exception_handlers(app)

# ============================================================================
# Middleware Stack (order matters - first added = last executed)
# ============================================================================

# 1. Request logging (outermost - captures everything)
app.add_middleware(RequestLoggingMiddleware)

# 2. CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=["X-Request-ID"],
    max_age=600,  # Cache preflight for 10 minutes
)


# ============================================================================
# API Routes
# ============================================================================

app.include_router(api_router, prefix="/api/v1")


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Basic health check endpoint.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint with API information.
    """
    response = {
        "name": settings.app_name,
        "version": "1.0.0",
        "health": "/health",
    }

    # Only include docs links in non-production
    if not settings.is_production():
        response["docs"] = "/docs"
        response["redoc"] = "/redoc"

    return response
