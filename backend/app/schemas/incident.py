"""Incident ingestion schemas."""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.incident import Incident, ensure_utc
from app.schemas.common import Coordinate, ErrorDetail


class IncidentCreate(BaseModel):
    """An incident record from an external reporting source.

    Only types are checked here; category, severity range and service-area
    bounds are enforced by the incident store.
    """

    id: Optional[str] = Field(None, description="Stable id; generated when omitted")
    category: str = Field(..., description="Category id, e.g. theft, accident")
    location: Coordinate
    timestamp: datetime = Field(..., description="ISO-8601 or epoch seconds; naive = UTC")
    severity: float = Field(..., description="Severity in [0, 1]")
    description: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="before")
    @classmethod
    def lift_flat_location(cls, data):
        """Accept flat `lat`/`lng` keys in place of a nested location."""
        if isinstance(data, dict) and "location" not in data:
            lat = data.get("lat", data.get("latitude"))
            lng = data.get("lng", data.get("lon", data.get("longitude")))
            if lat is not None or lng is not None:
                data = dict(data)
                data["location"] = {"latitude": lat, "longitude": lng}
        return data

    def to_incident(self) -> Incident:
        return Incident(
            id=self.id or uuid.uuid4().hex,
            category=self.category,
            lat=self.location.latitude,
            lng=self.location.longitude,
            timestamp=ensure_utc(self.timestamp),
            severity=self.severity,
            description=self.description,
        )


class IncidentResponse(BaseModel):
    """A recorded incident."""

    id: str
    category: str
    location: Coordinate
    timestamp: datetime
    severity: float
    description: Optional[str] = None

    @classmethod
    def from_incident(cls, incident: Incident) -> "IncidentResponse":
        return cls(
            id=incident.id,
            category=incident.category,
            location=Coordinate(latitude=incident.lat, longitude=incident.lng),
            timestamp=incident.timestamp,
            severity=incident.severity,
            description=incident.description,
        )


class IncidentBatchRequest(BaseModel):
    """A batch of raw incident records.

    Records are kept as plain objects so that one malformed record is
    rejected on its own instead of failing the whole request.
    """

    incidents: List[dict] = Field(..., max_length=10000)


class IncidentBatchResponse(BaseModel):
    """Per-record ingestion outcome."""

    accepted: List[str]
    rejected: List[ErrorDetail]
    accepted_count: int
    rejected_count: int


class IncidentListResponse(BaseModel):
    incidents: List[IncidentResponse]
    total: int


class PurgeResponse(BaseModel):
    removed: int
    remaining: int
