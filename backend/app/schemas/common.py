"""Common schemas used across the application."""

from typing import List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Coordinate(BaseModel):
    """Geographic coordinate. Accepts `lat`/`lng` as input aliases."""

    model_config = ConfigDict(populate_by_name=True)

    latitude: float = Field(
        ...,
        ge=-90,
        le=90,
        description="Latitude in degrees",
        validation_alias=AliasChoices("latitude", "lat"),
    )
    longitude: float = Field(
        ...,
        ge=-180,
        le=180,
        description="Longitude in degrees",
        validation_alias=AliasChoices("longitude", "lng", "lon"),
    )

    def as_tuple(self) -> Tuple[float, float]:
        """(lat, lng)"""
        return (self.latitude, self.longitude)


class GeoJSONLineString(BaseModel):
    """GeoJSON LineString geometry."""

    type: str = "LineString"
    coordinates: List[List[float]] = Field(
        ..., description="Array of [longitude, latitude] coordinates"
    )


class GeoJSONPolygon(BaseModel):
    """GeoJSON Polygon geometry."""

    type: str = "Polygon"
    coordinates: List[List[List[float]]] = Field(
        ..., description="Array of linear rings"
    )


class BoundingBox(BaseModel):
    """Bounding box for spatial queries."""

    min_lon: float = Field(..., ge=-180, le=180)
    min_lat: float = Field(..., ge=-90, le=90)
    max_lon: float = Field(..., ge=-180, le=180)
    max_lat: float = Field(..., ge=-90, le=90)

    @classmethod
    def from_string(cls, bbox_str: str) -> "BoundingBox":
        """Parse bounding box from comma-separated string."""
        try:
            parts = [float(x) for x in bbox_str.split(",")]
        except ValueError:
            raise ValueError("Bounding box values must be numbers")
        if len(parts) != 4:
            raise ValueError("Bounding box must have 4 values: min_lon,min_lat,max_lon,max_lat")
        if parts[0] > parts[2] or parts[1] > parts[3]:
            raise ValueError("Bounding box minimums must not exceed maximums")
        return cls(
            min_lon=parts[0],
            min_lat=parts[1],
            max_lon=parts[2],
            max_lat=parts[3],
        )

    def as_bounds(self) -> Tuple[float, float, float, float]:
        return (self.min_lon, self.min_lat, self.max_lon, self.max_lat)


class ErrorDetail(BaseModel):
    """A single rejected item."""

    message: str
    field: Optional[str] = None
    index: Optional[int] = None
