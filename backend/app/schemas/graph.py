"""Road graph dataset schemas."""

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


class GraphNodePayload(BaseModel):
    """An intersection as supplied by the map-data provider."""

    id: str
    lat: float = Field(..., ge=-90, le=90, validation_alias=AliasChoices("lat", "latitude"))
    lng: float = Field(
        ..., ge=-180, le=180, validation_alias=AliasChoices("lng", "lon", "longitude")
    )

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v):
        return str(v) if isinstance(v, int) else v


class GraphEdgePayload(BaseModel):
    """A road segment as supplied by the map-data provider."""

    id: str
    from_node: str = Field(..., validation_alias=AliasChoices("from", "from_node", "source"))
    to_node: str = Field(..., validation_alias=AliasChoices("to", "to_node", "target"))
    base_cost: float = Field(..., description="Travel time in seconds")
    length_meters: Optional[float] = Field(
        None, description="Derived from geometry when omitted"
    )
    bidirectional: bool = True
    geometry: Optional[List[List[float]]] = Field(
        None, description="Polyline of [longitude, latitude] vertices"
    )
    name: Optional[str] = None

    @field_validator("id", "from_node", "to_node", mode="before")
    @classmethod
    def stringify_ids(cls, v):
        return str(v) if isinstance(v, int) else v

    @field_validator("geometry")
    @classmethod
    def validate_geometry(cls, v):
        if v is None:
            return v
        if len(v) < 2:
            raise ValueError("Edge geometry needs at least two vertices")
        for vertex in v:
            if len(vertex) != 2:
                raise ValueError("Edge geometry vertices must be [longitude, latitude]")
        return v


class GraphPayload(BaseModel):
    """Complete node/edge dataset."""

    nodes: List[GraphNodePayload]
    edges: List[GraphEdgePayload]


class GraphStatus(BaseModel):
    """Summary of the loaded road graph."""

    loaded: bool
    node_count: int
    edge_count: int
    component_count: int
