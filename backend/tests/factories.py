"""Test data builders shared across test modules."""

from datetime import datetime, timedelta, timezone
from typing import Dict, Tuple

from app.models.incident import Incident
from app.models.road_graph import RoadEdge, RoadNode
from app.services.geo import GridSpec

# Default San Francisco service area
BOUNDS = (-122.52, 37.70, -122.35, 37.82)
CATEGORIES = ["theft", "accident", "assault", "vandalism"]
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

# Plane offsets (meters) of the scenario block; multiples of the cell size
X0 = 8000.0
Y0 = 6000.0
CELL = 100.0


def make_incident(
    incident_id: str,
    lat: float,
    lng: float,
    category: str = "theft",
    severity: float = 1.0,
    hours_ago: float = 0.0,
) -> Incident:
    return Incident(
        id=incident_id,
        category=category,
        lat=lat,
        lng=lng,
        timestamp=NOW - timedelta(hours=hours_ago),
        severity=severity,
    )


class ScenarioCity:
    """Four intersections around a single high-risk cell.

        B ---- D        A-B  5s, no risk     A-C  3s, risk 10
        |      |        B-D  4s, no risk     C-D  3s, risk 10
        A ---- C

    A-C and C-D are drawn through the hot cell so each picks up its full
    risk; A-B and B-D stay clear of it. E is an isolated intersection.
    """

    def __init__(self, grid: GridSpec):
        self.grid = grid
        self.points: Dict[str, Tuple[float, float]] = {
            "A": self.at(50, 50),
            "B": self.at(50, 1050),
            "C": self.at(1050, 50),
            "D": self.at(1050, 1050),
            "E": self.at(5050, 5050),
        }
        self.hot_spot = self.at(550, 550)
        self.nodes = [
            RoadNode(id=name, lat=lat, lng=lng) for name, (lat, lng) in self.points.items()
        ]
        self.edges = [
            RoadEdge(id="A-B", from_node="A", to_node="B", base_cost=5, length_meters=1000),
            RoadEdge(
                id="A-C", from_node="A", to_node="C", base_cost=3, length_meters=1000,
                geometry=(self.lnglat(520, 520), self.lnglat(580, 520)),
            ),
            RoadEdge(
                id="C-D", from_node="C", to_node="D", base_cost=3, length_meters=1000,
                geometry=(self.lnglat(520, 580), self.lnglat(580, 580)),
            ),
            RoadEdge(id="B-D", from_node="B", to_node="D", base_cost=4, length_meters=1000),
        ]

    def at(self, dx: float, dy: float) -> Tuple[float, float]:
        """(lat, lng) of a point offset from the block corner."""
        return self.grid.unproject(X0 + dx, Y0 + dy)

    def lnglat(self, dx: float, dy: float) -> Tuple[float, float]:
        lat, lng = self.at(dx, dy)
        return (lng, lat)

    def hot_incidents(self, count: int = 10, category: str = "theft"):
        lat, lng = self.hot_spot
        return [make_incident(f"hot-{i}", lat, lng, category=category) for i in range(count)]
