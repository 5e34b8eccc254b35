"""Risk-weighted routing engine.

Finds the path minimizing  Σ base_cost + λ · Σ risk  with a best-first
search over the road graph. Edge risk is read from the risk grid on
expansion and memoized for the duration of one query only.
"""

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple

from app.models.incident import ensure_utc
from app.models.risk import CellKey
from app.models.road_graph import RoadNode, Traversal
from app.models.route import ScoredEdge
from app.services.errors import NoRouteError, SearchTimeoutError
from app.services.geo import haversine_distance
from app.services.risk_grid import RiskGrid
from app.services.road_graph import RoadGraphIndex

logger = logging.getLogger(__name__)

# (cost, hop count, accumulated risk); compared lexicographically
Label = Tuple[float, int, float]


@dataclass(frozen=True)
class PathSearchResult:
    """Raw search output before safety scoring."""

    node_ids: Tuple[str, ...]
    path: Tuple[ScoredEdge, ...]
    coordinates: Tuple[Tuple[float, float], ...]  # (lng, lat)
    total_cost: float
    total_distance: float
    total_duration: float
    total_risk: float
    risk_by_category: Dict[str, float]
    risk_aversion: float
    expansions: int


class _QueryContext:
    """Per-query state: risk memo, deadline and cancellation."""

    def __init__(
        self,
        categories: FrozenSet[str],
        as_of: datetime,
        deadline: Optional[float],
        cancel_event: Optional[threading.Event],
    ):
        self.categories = categories
        self.as_of = as_of
        self.deadline = deadline
        self.cancel_event = cancel_event
        self.edge_risk: Dict[str, float] = {}
        self.cell_risk: Dict[CellKey, float] = {}
        self.expansions = 0

    def check(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise SearchTimeoutError("Route search was cancelled", expansions=self.expansions)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise SearchTimeoutError("Route search exceeded its deadline", expansions=self.expansions)


class RiskWeightedRouter:
    """Best-first search combining travel time and risk exposure."""

    def __init__(self, graph: RoadGraphIndex, risk_grid: RiskGrid, use_heuristic: bool = True):
        self.graph = graph
        self.risk_grid = risk_grid
        self.use_heuristic = use_heuristic and graph.max_speed is not None

    def _edge_risk(self, edge_id: str, ctx: _QueryContext) -> float:
        risk = ctx.edge_risk.get(edge_id)
        if risk is None:
            risk = self.risk_grid.weighted_risk(
                self.graph.edge_cells(edge_id), ctx.categories, ctx.as_of, memo=ctx.cell_risk
            )
            ctx.edge_risk[edge_id] = risk
        return risk

    def _heuristic(self, node: RoadNode, goal: RoadNode) -> float:
        if not self.use_heuristic:
            return 0.0
        return haversine_distance(node.lat, node.lng, goal.lat, goal.lng) / self.graph.max_speed

    def find_path(
        self,
        origin: Tuple[float, float],
        destination: Tuple[float, float],
        categories: FrozenSet[str],
        as_of: datetime,
        risk_aversion: float,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PathSearchResult:
        """Route between two (lat, lng) points snapped onto the graph.

        Raises:
            NoRouteError: destination unreachable from origin
            SearchTimeoutError: deadline passed or cancel_event set
        """
        if risk_aversion < 0:
            raise ValueError("risk_aversion must be >= 0")

        start = self.graph.nearest_node(*origin)
        goal = self.graph.nearest_node(*destination)
        deadline = time.monotonic() + timeout if timeout is not None else None
        ctx = _QueryContext(categories, ensure_utc(as_of), deadline, cancel_event)

        if start.id == goal.id:
            logger.debug(f"Origin and destination both snap to node {start.id}")
            return PathSearchResult(
                node_ids=(start.id,),
                path=(),
                coordinates=((start.lng, start.lat),),
                total_cost=0.0,
                total_distance=0.0,
                total_duration=0.0,
                total_risk=0.0,
                risk_by_category={},
                risk_aversion=risk_aversion,
                expansions=0,
            )

        if not self.graph.same_component(start.id, goal.id):
            raise NoRouteError(f"Node {goal.id} is not connected to node {start.id}")

        traversals = self._search(start, goal, risk_aversion, ctx)
        result = self._assemble(start, traversals, risk_aversion, ctx)
        logger.info(
            f"Route {start.id} -> {goal.id}: {len(result.path)} edges, "
            f"{result.total_duration:.0f}s, risk {result.total_risk:.3f}, "
            f"λ={risk_aversion}, {ctx.expansions} expansions"
        )
        return result

    def _search(
        self,
        start: RoadNode,
        goal: RoadNode,
        risk_aversion: float,
        ctx: _QueryContext,
    ) -> Tuple[Traversal, ...]:
        nodes = self.graph.nodes
        counter = itertools.count()
        best: Dict[str, Label] = {start.id: (0.0, 0, 0.0)}
        came_from: Dict[str, Traversal] = {}
        settled = set()
        frontier = [(self._heuristic(start, goal), 0, 0.0, next(counter), 0.0, start.id)]

        while frontier:
            _, hops, risk, _, cost, node_id = heapq.heappop(frontier)
            if node_id in settled or (cost, hops, risk) != best[node_id]:
                continue
            settled.add(node_id)
            ctx.check()
            ctx.expansions += 1

            if node_id == goal.id:
                path = []
                while node_id != start.id:
                    traversal = came_from[node_id]
                    path.append(traversal)
                    node_id = traversal.source
                return tuple(reversed(path))

            for traversal in self.graph.neighbors(node_id):
                if traversal.target in settled:
                    continue
                edge_risk = self._edge_risk(traversal.edge.id, ctx)
                label = (
                    cost + traversal.edge.base_cost + risk_aversion * edge_risk,
                    hops + 1,
                    risk + edge_risk,
                )
                current = best.get(traversal.target)
                if current is not None and label >= current:
                    continue
                best[traversal.target] = label
                came_from[traversal.target] = traversal
                priority = label[0] + self._heuristic(nodes[traversal.target], goal)
                heapq.heappush(
                    frontier,
                    (priority, label[1], label[2], next(counter), label[0], traversal.target),
                )

        raise NoRouteError(f"No path from node {start.id} to node {goal.id}")

    def _assemble(
        self,
        start: RoadNode,
        traversals: Tuple[Traversal, ...],
        risk_aversion: float,
        ctx: _QueryContext,
    ) -> PathSearchResult:
        node_ids = [start.id]
        coordinates = [(start.lng, start.lat)]
        scored = []
        by_category: Dict[str, float] = {}
        total_cost = total_distance = total_duration = total_risk = 0.0

        for traversal in traversals:
            edge = traversal.edge
            edge_risk = self._edge_risk(edge.id, ctx)
            scored.append(ScoredEdge(edge, traversal.source, traversal.target, edge_risk))
            node_ids.append(traversal.target)

            coords = self.graph.edge_coordinates(traversal)
            if coords and coords[0] == coordinates[-1]:
                coords = coords[1:]
            coordinates.extend(coords)
            target = self.graph.nodes[traversal.target]
            if coordinates[-1] != (target.lng, target.lat):
                coordinates.append((target.lng, target.lat))

            total_distance += edge.length_meters
            total_duration += edge.base_cost
            total_risk += edge_risk
            total_cost += edge.base_cost + risk_aversion * edge_risk

            if edge_risk > 0:
                for cell, fraction in self.graph.edge_cells(edge.id):
                    breakdown = self.risk_grid.risk_breakdown(cell, ctx.categories, ctx.as_of)
                    for category, value in breakdown.risk_by_category.items():
                        by_category[category] = by_category.get(category, 0.0) + value * fraction

        return PathSearchResult(
            node_ids=tuple(node_ids),
            path=tuple(scored),
            coordinates=tuple(coordinates),
            total_cost=total_cost,
            total_distance=total_distance,
            total_duration=total_duration,
            total_risk=total_risk,
            risk_by_category=by_category,
            risk_aversion=risk_aversion,
            expansions=ctx.expansions,
        )
