"""Heatmap API endpoints."""

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from shapely.errors import GEOSException
from shapely.geometry import shape
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_navigation_service, parse_categories
from app.core.exceptions import ValidationException
from app.middleware import annotate
from app.schemas.common import BoundingBox
from app.schemas.heatmap import HeatmapCell, HeatmapRequest, HeatmapResponse
from app.services.geo import Region
from app.services.navigation import NavigationService

router = APIRouter()


async def _render(
    request: Request,
    service: NavigationService,
    region: Region,
    categories: Optional[List[str]],
    as_of: Optional[datetime],
) -> HeatmapResponse:
    as_of = as_of or datetime.now(timezone.utc)
    enabled = service.resolve_categories(categories)
    cells = await run_in_threadpool(lambda: list(service.heatmap(region, enabled, as_of)))
    annotate(request, categories=enabled, cells=len(cells))
    return HeatmapResponse(
        cells=[HeatmapCell.from_heat_cell(cell) for cell in cells],
        total=len(cells),
        max_risk=max((cell.risk for cell in cells), default=0.0),
        categories=sorted(enabled),
        as_of=as_of,
    )


@router.get("", response_model=HeatmapResponse)
async def get_heatmap(
    request: Request,
    bbox: str = Query(..., description="Bounding box: min_lon,min_lat,max_lon,max_lat"),
    categories: Optional[str] = Query(None, description="Comma-separated category ids"),
    as_of: Optional[datetime] = Query(None, description="Evaluate risk at this instant"),
    service: NavigationService = Depends(get_navigation_service),
) -> HeatmapResponse:
    """
    Get non-zero risk cells within a bounding box.

    Cells are ordered by (row, col). Unknown category ids are ignored.
    """
    try:
        box = BoundingBox.from_string(bbox)
    except ValueError as e:
        raise ValidationException(str(e), field="bbox")

    return await _render(request, service, box.as_bounds(), parse_categories(categories), as_of)


@router.post("", response_model=HeatmapResponse)
async def post_heatmap(
    heatmap_request: HeatmapRequest,
    request: Request,
    service: NavigationService = Depends(get_navigation_service),
) -> HeatmapResponse:
    """Get non-zero risk cells overlapping a GeoJSON polygon."""
    try:
        region = shape(heatmap_request.region.model_dump())
    except (ValueError, GEOSException) as e:
        raise ValidationException(f"Invalid polygon: {e}", field="region")
    if region.is_empty or not region.is_valid:
        raise ValidationException("Region polygon is empty or self-intersecting", field="region")

    return await _render(request, service, region, heatmap_request.categories, heatmap_request.as_of)
