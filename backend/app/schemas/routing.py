"""Routing request and response schemas."""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from app.models.route import RouteProfile, RouteResult, SafetyRating
from app.schemas.common import Coordinate, GeoJSONLineString
from app.services.safety_scorer import format_distance, format_duration


class RouteRequest(BaseModel):
    """Request body for route calculation."""

    origin: Coordinate = Field(..., description="Starting point")
    destination: Coordinate = Field(..., description="Ending point")
    categories: Optional[List[str]] = Field(
        default=None,
        description="Enabled incident categories; omitted means the default set. Unknown ids are ignored.",
    )
    as_of: Optional[datetime] = Field(
        default=None,
        description="Evaluate risk as of this instant (defaults to now)",
    )
    profile: RouteProfile = Field(
        default=RouteProfile.BALANCED,
        description="Route optimization profile",
    )
    risk_aversion: Optional[float] = Field(
        default=None,
        ge=0,
        description="Explicit risk-aversion weight; overrides the profile",
    )
    timeout_ms: Optional[int] = Field(
        default=None,
        gt=0,
        le=60000,
        description="Search deadline in milliseconds",
    )


class RouteEdge(BaseModel):
    """A traversed road segment with its risk for this query."""

    id: str
    from_node: str
    to_node: str
    name: Optional[str] = None
    length_meters: float = Field(..., ge=0)
    duration_seconds: float = Field(..., ge=0)
    risk: float = Field(..., ge=0)


class RouteSummary(BaseModel):
    """Summary statistics for a route."""

    distance_meters: float = Field(..., ge=0, description="Total distance")
    duration_seconds: float = Field(..., ge=0, description="Total duration")
    distance_text: str = Field(..., description="Formatted distance, e.g. 2.4 km")
    duration_text: str = Field(..., description="Formatted duration, e.g. 8 minutes")
    total_risk: float = Field(..., ge=0, description="Accumulated decay-weighted risk")
    risk_density: float = Field(..., ge=0, description="Risk per km")
    safety_rating: SafetyRating = Field(..., description="Safe, Moderate or Risky")
    description: str = Field(..., description="Human-readable route summary")


class RouteResponse(BaseModel):
    """Response for route calculation."""

    route_id: UUID = Field(default_factory=uuid4, description="Unique route identifier")
    geometry: GeoJSONLineString = Field(..., description="Route geometry")
    summary: RouteSummary = Field(..., description="Route summary")
    edges: List[RouteEdge] = Field(default_factory=list, description="Traversed edges in order")
    node_ids: List[str] = Field(default_factory=list, description="Visited nodes in order")
    risk_by_category: Dict[str, float] = Field(default_factory=dict)
    risk_aversion: float = Field(..., ge=0, description="Risk-aversion weight used")
    categories: List[str] = Field(default_factory=list, description="Categories considered")

    @classmethod
    def from_result(cls, result: RouteResult, categories: List[str]) -> "RouteResponse":
        return cls(
            geometry=GeoJSONLineString(
                coordinates=[[lng, lat] for lng, lat in result.coordinates]
            ),
            summary=RouteSummary(
                distance_meters=result.total_distance,
                duration_seconds=result.total_duration,
                distance_text=format_distance(result.total_distance),
                duration_text=format_duration(result.total_duration),
                total_risk=result.total_risk,
                risk_density=result.risk_density,
                safety_rating=result.safety_rating,
                description=result.summary,
            ),
            edges=[
                RouteEdge(
                    id=scored.edge.id,
                    from_node=scored.source,
                    to_node=scored.target,
                    name=scored.edge.name,
                    length_meters=scored.edge.length_meters,
                    duration_seconds=scored.edge.base_cost,
                    risk=scored.risk_contribution,
                )
                for scored in result.path
            ],
            node_ids=list(result.node_ids),
            risk_by_category=dict(result.risk_by_category),
            risk_aversion=result.risk_aversion,
            categories=sorted(categories),
        )
