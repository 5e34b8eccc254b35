"""Incident ingestion and query endpoints."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_navigation_service, parse_categories
from app.core.exceptions import ResourceNotFoundException, ValidationException
from app.middleware import annotate
from app.schemas.common import BoundingBox, ErrorDetail
from app.schemas.incident import (
    IncidentBatchRequest,
    IncidentBatchResponse,
    IncidentCreate,
    IncidentListResponse,
    IncidentResponse,
    PurgeResponse,
)
from app.services.errors import ValidationError
from app.services.navigation import NavigationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=IncidentResponse, status_code=201)
async def create_incident(
    incident: IncidentCreate,
    service: NavigationService = Depends(get_navigation_service),
) -> IncidentResponse:
    """
    Record a single incident.

    Rejected with 422 when the category is unknown, severity is outside
    [0, 1], the location is outside the service area or the id is taken.
    """
    try:
        recorded = service.ingest(incident.to_incident())
    except ValidationError as e:
        raise ValidationException(e.message, field=e.field)
    return IncidentResponse.from_incident(recorded)


@router.post("/batch", response_model=IncidentBatchResponse)
async def ingest_batch(
    batch: IncidentBatchRequest,
    request: Request,
    service: NavigationService = Depends(get_navigation_service),
) -> IncidentBatchResponse:
    """
    Ingest a batch of incident records.

    Malformed records are rejected individually; the rest of the batch is
    still recorded.
    """
    report = await run_in_threadpool(service.ingest_batch, batch.incidents)
    annotate(request, accepted=report.accepted_count, rejected=report.rejected_count)
    return IncidentBatchResponse(
        accepted=report.accepted,
        rejected=[
            ErrorDetail(message=e.message, field=e.field, index=e.index)
            for e in report.rejected
        ],
        accepted_count=report.accepted_count,
        rejected_count=report.rejected_count,
    )


@router.get("", response_model=IncidentListResponse)
async def list_incidents(
    bbox: Optional[str] = Query(None, description="Bounding box: min_lon,min_lat,max_lon,max_lat"),
    categories: Optional[str] = Query(None, description="Comma-separated category ids; all when omitted"),
    as_of: Optional[datetime] = Query(None, description="Only incidents recorded by this instant"),
    limit: int = Query(500, ge=1, le=5000),
    service: NavigationService = Depends(get_navigation_service),
) -> IncidentListResponse:
    """List incidents inside a bounding box (the whole service area by default)."""
    if bbox:
        try:
            region = BoundingBox.from_string(bbox).as_bounds()
        except ValueError as e:
            raise ValidationException(str(e), field="bbox")
    else:
        region = service.store.bounds

    matches = await run_in_threadpool(
        lambda: list(service.query_incidents(region, parse_categories(categories), as_of))
    )
    return IncidentListResponse(
        incidents=[IncidentResponse.from_incident(i) for i in matches[:limit]],
        total=len(matches),
    )


@router.get("/{incident_id}", response_model=IncidentResponse)
async def get_incident(
    incident_id: str,
    service: NavigationService = Depends(get_navigation_service),
) -> IncidentResponse:
    incident = service.store.get(incident_id)
    if incident is None:
        raise ResourceNotFoundException("Incident", incident_id)
    return IncidentResponse.from_incident(incident)


@router.post("/purge", response_model=PurgeResponse)
async def purge_incidents(
    request: Request,
    service: NavigationService = Depends(get_navigation_service),
) -> PurgeResponse:
    """Drop incidents older than the retention horizon."""
    removed = await run_in_threadpool(service.purge_expired)
    annotate(request, purged=removed)
    return PurgeResponse(removed=removed, remaining=service.store.count())
