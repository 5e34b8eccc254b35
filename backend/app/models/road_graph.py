"""Road network domain model."""

from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple


@dataclass(frozen=True)
class RoadNode:
    """An intersection."""

    id: str
    lat: float
    lng: float


@dataclass(frozen=True)
class RoadEdge:
    """A traversable road segment.

    `base_cost` is the travel time in seconds. `geometry` is an optional
    polyline of (lng, lat) vertices; when absent the segment is the straight
    line between its end nodes.
    """

    id: str
    from_node: str
    to_node: str
    base_cost: float
    length_meters: float
    bidirectional: bool = True
    geometry: Optional[Tuple[Tuple[float, float], ...]] = None
    name: Optional[str] = None


class Traversal(NamedTuple):
    """An edge as walked in one direction."""

    edge: RoadEdge
    source: str
    target: str

    @property
    def reversed(self) -> bool:
        return self.source != self.edge.from_node
