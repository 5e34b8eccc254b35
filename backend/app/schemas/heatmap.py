"""Heatmap schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.common import Coordinate, GeoJSONPolygon


class HeatmapRequest(BaseModel):
    """Heatmap over an arbitrary polygon."""

    region: GeoJSONPolygon
    categories: Optional[List[str]] = Field(
        default=None,
        description="Enabled incident categories; omitted means the default set",
    )
    as_of: Optional[datetime] = None


class HeatmapCell(BaseModel):
    """One non-zero risk cell."""

    cell: str = Field(..., description="Cell key as row:col")
    row: int
    col: int
    risk: float = Field(..., ge=0)
    incident_count: int = Field(..., ge=0)
    center: Coordinate
    bounds: List[float] = Field(..., description="[min_lng, min_lat, max_lng, max_lat]")

    @classmethod
    def from_heat_cell(cls, heat) -> "HeatmapCell":
        lat, lng = heat.center
        return cls(
            cell=str(heat.cell),
            row=heat.cell.row,
            col=heat.cell.col,
            risk=heat.risk,
            incident_count=heat.incident_count,
            center=Coordinate(latitude=lat, longitude=lng),
            bounds=list(heat.bounds),
        )


class HeatmapResponse(BaseModel):
    cells: List[HeatmapCell]
    total: int
    max_risk: float = Field(0.0, description="Largest cell risk, for color scaling")
    categories: List[str]
    as_of: datetime
