# Domain models
from app.models.incident import Incident, IncidentCategory, normalize_category
from app.models.risk import CellKey, RiskCell
from app.models.road_graph import RoadEdge, RoadNode, Traversal
from app.models.route import RouteProfile, RouteResult, SafetyRating, ScoredEdge

__all__ = [
    "Incident",
    "IncidentCategory",
    "normalize_category",
    "CellKey",
    "RiskCell",
    "RoadEdge",
    "RoadNode",
    "Traversal",
    "RouteProfile",
    "RouteResult",
    "SafetyRating",
    "ScoredEdge",
]
