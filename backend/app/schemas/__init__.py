# Pydantic schemas
from app.schemas.common import BoundingBox, Coordinate, ErrorDetail, GeoJSONLineString, GeoJSONPolygon
from app.schemas.graph import GraphPayload, GraphStatus
from app.schemas.incident import (
    IncidentBatchRequest,
    IncidentBatchResponse,
    IncidentCreate,
    IncidentResponse,
)

__all__ = [
    "BoundingBox",
    "Coordinate",
    "ErrorDetail",
    "GeoJSONLineString",
    "GeoJSONPolygon",
    "GraphPayload",
    "GraphStatus",
    "IncidentBatchRequest",
    "IncidentBatchResponse",
    "IncidentCreate",
    "IncidentResponse",
]
