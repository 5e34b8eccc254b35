"""Request logging middleware.

Each request gets a short id, echoed in `X-Request-ID`. Handlers attach
engine context (route profile, categories, safety rating, heatmap size,
error code) with `annotate()`, and the completion line carries it, e.g.

    [1a2b3c4d] <-- 200 POST /api/v1/routes/calculate (12.31ms) profile=balanced categories=theft rating=Safe
"""

import logging
import time
import uuid
from typing import Any, Callable, Dict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings


logger = logging.getLogger("api.requests")

# Probe endpoints are logged at debug level when they succeed
QUIET_PATHS = frozenset({"/health", "/api/v1/health", "/api/v1/health/ready"})


def annotate(request: Request, **fields: Any) -> None:
    """Attach key/value context to the request's completion log line."""
    context = getattr(request.state, "log_context", None)
    if context is None:
        context = {}
        request.state.log_context = context
    context.update((k, v) for k, v in fields.items() if v is not None)


def format_context(context: Dict[str, Any]) -> str:
    parts = []
    for key, value in context.items():
        if isinstance(value, (list, tuple, set, frozenset)):
            value = ",".join(sorted(str(v) for v in value)) or "-"
        elif isinstance(value, float):
            value = f"{value:.3g}"
        parts.append(f"{key}={value}")
    return " ".join(parts)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request, plus the inbound line for non-probe paths."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not settings.log_requests:
            return await call_next(request)

        request_id = uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        request.state.log_context = {}

        path = request.url.path
        quiet = path in QUIET_PATHS
        if not quiet:
            forwarded = request.headers.get("X-Forwarded-For", "")
            client = forwarded.split(",")[0].strip() or (request.client.host if request.client else "unknown")
            query = f"?{request.url.query}" if request.url.query else ""
            logger.info(f"[{request_id}] --> {request.method} {path}{query} from {client}")

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            line = f"[{request_id}] <-- {status_code} {request.method} {path} ({elapsed_ms:.2f}ms)"
            context = format_context(request.state.log_context)
            if context:
                line = f"{line} {context}"

            if status_code >= 500:
                logger.error(line)
            elif status_code >= 400:
                logger.warning(line)
            elif quiet:
                logger.debug(line)
            else:
                logger.info(line)


def setup_logging():
    """Configure logging for the application."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    logging.getLogger("api.requests").setLevel(log_level)
    logging.getLogger("app.services").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
