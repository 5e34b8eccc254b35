"""Route result model."""

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from app.models.road_graph import RoadEdge


class SafetyRating(str, enum.Enum):
    """Ordered safety bands, safest first."""

    SAFE = "Safe"
    MODERATE = "Moderate"
    RISKY = "Risky"


class RouteProfile(str, enum.Enum):
    """Route optimization profile."""

    FASTEST = "fastest"
    BALANCED = "balanced"
    SAFEST = "safest"


@dataclass(frozen=True)
class ScoredEdge:
    """A path edge annotated with its risk for one query."""

    edge: RoadEdge
    source: str
    target: str
    risk_contribution: float


@dataclass(frozen=True)
class RouteResult:
    """A complete, consistent route answer."""

    path: Tuple[ScoredEdge, ...]
    node_ids: Tuple[str, ...]
    coordinates: Tuple[Tuple[float, float], ...]  # (lng, lat)
    total_distance: float
    total_duration: float
    total_risk: float
    safety_rating: SafetyRating
    risk_density: float
    summary: str
    risk_aversion: float
    risk_by_category: Dict[str, float] = field(default_factory=dict)
    expansions: int = 0

    @property
    def edge_ids(self) -> List[str]:
        return [scored.edge.id for scored in self.path]
