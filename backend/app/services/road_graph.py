"""Road graph index: adjacency, snapping and per-edge grid coverage.

The index is immutable once built. Reloading a graph builds a new index and
swaps the reference, so any number of readers can share one instance.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from shapely import STRtree
from shapely.geometry import Point

from app.models.risk import CellKey
from app.models.road_graph import RoadEdge, RoadNode, Traversal
from app.schemas.graph import GraphPayload
from app.services.errors import GraphError
from app.services.geo import GridSpec, haversine_distance, polyline_length

logger = logging.getLogger(__name__)

Coords = Tuple[Tuple[float, float], ...]


class RoadGraphIndex:
    """Read-only road network prepared for routing queries."""

    def __init__(
        self,
        nodes: Dict[str, RoadNode],
        edges: Dict[str, RoadEdge],
        adjacency: Dict[str, Tuple[Traversal, ...]],
        edge_coords: Dict[str, Coords],
        edge_cells: Dict[str, Tuple[Tuple[CellKey, float], ...]],
        components: Dict[str, int],
        max_speed: Optional[float],
        grid: GridSpec,
    ):
        self.nodes = nodes
        self.edges = edges
        self._adjacency = adjacency
        self._edge_coords = edge_coords
        self._edge_cells = edge_cells
        self._components = components
        self.max_speed = max_speed
        self.grid = grid

        self._node_order = sorted(nodes)
        self._tree = STRtree(
            [Point(grid.project(nodes[nid].lat, nodes[nid].lng)) for nid in self._node_order]
        )

    @classmethod
    def build(
        cls,
        nodes: Iterable[RoadNode],
        edges: Iterable[RoadEdge],
        grid: GridSpec,
    ) -> "RoadGraphIndex":
        """Validate and index a node/edge dataset. Raises GraphError."""
        node_map: Dict[str, RoadNode] = {}
        for node in nodes:
            if node.id in node_map:
                raise GraphError(f"Duplicate node id: {node.id}")
            node_map[node.id] = node
        if not node_map:
            raise GraphError("Road graph has no nodes")

        edge_map: Dict[str, RoadEdge] = {}
        adjacency: Dict[str, List[Traversal]] = {nid: [] for nid in node_map}
        edge_coords: Dict[str, Coords] = {}
        edge_cells: Dict[str, Tuple[Tuple[CellKey, float], ...]] = {}
        parent = {nid: nid for nid in node_map}
        max_speed = 0.0

        def find(nid: str) -> str:
            while parent[nid] != nid:
                parent[nid] = parent[parent[nid]]
                nid = parent[nid]
            return nid

        for edge in edges:
            if edge.id in edge_map:
                raise GraphError(f"Duplicate edge id: {edge.id}")
            for endpoint in (edge.from_node, edge.to_node):
                if endpoint not in node_map:
                    raise GraphError(f"Edge {edge.id} references unknown node {endpoint}")
            if not edge.base_cost >= 0 or not edge.length_meters >= 0:
                raise GraphError(f"Edge {edge.id} has a negative or invalid cost or length")
            edge_map[edge.id] = edge

            start, end = node_map[edge.from_node], node_map[edge.to_node]
            coords = edge.geometry or ((start.lng, start.lat), (end.lng, end.lat))
            edge_coords[edge.id] = tuple(coords)
            edge_cells[edge.id] = grid.line_cell_fractions(coords)

            adjacency[edge.from_node].append(Traversal(edge, edge.from_node, edge.to_node))
            if edge.bidirectional and edge.from_node != edge.to_node:
                adjacency[edge.to_node].append(Traversal(edge, edge.to_node, edge.from_node))

            root_a, root_b = find(edge.from_node), find(edge.to_node)
            if root_a != root_b:
                parent[max(root_a, root_b)] = min(root_a, root_b)

            # Speed bound over the endpoint chord keeps the time heuristic admissible
            chord = haversine_distance(start.lat, start.lng, end.lat, end.lng)
            if chord > 0:
                if edge.base_cost == 0:
                    max_speed = None
                elif max_speed is not None:
                    max_speed = max(max_speed, chord / edge.base_cost)

        components: Dict[str, int] = {}
        labels: Dict[str, int] = {}
        for nid in sorted(node_map):
            root = find(nid)
            if root not in labels:
                labels[root] = len(labels)
            components[nid] = labels[root]

        sorted_adjacency = {
            nid: tuple(sorted(out, key=lambda t: (t.target, t.edge.id)))
            for nid, out in adjacency.items()
        }

        index = cls(
            nodes=node_map,
            edges=edge_map,
            adjacency=sorted_adjacency,
            edge_coords=edge_coords,
            edge_cells=edge_cells,
            components=components,
            max_speed=max_speed or None,
            grid=grid,
        )
        logger.info(
            f"Built road graph: {len(node_map)} nodes, {len(edge_map)} edges, "
            f"{len(labels)} components"
        )
        return index

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    @property
    def component_count(self) -> int:
        return len(set(self._components.values()))

    @property
    def directed_edge_count(self) -> int:
        return sum(len(out) for out in self._adjacency.values())

    def neighbors(self, node_id: str) -> Tuple[Traversal, ...]:
        """Outgoing traversals of a node, ordered by (target, edge id)."""
        return self._adjacency.get(node_id, ())

    def nearest_node(self, lat: float, lng: float) -> RoadNode:
        """Snap a coordinate to the closest node; equidistant nodes resolve to the lowest id."""
        matches = self._tree.query_nearest(Point(self.grid.project(lat, lng)), all_matches=True)
        return self.nodes[min(self._node_order[i] for i in matches)]

    def same_component(self, a: str, b: str) -> bool:
        return self._components[a] == self._components[b]

    def edge_coordinates(self, traversal: Traversal) -> Coords:
        """Edge polyline as (lng, lat) in the direction of travel."""
        coords = self._edge_coords[traversal.edge.id]
        return tuple(reversed(coords)) if traversal.reversed else coords

    def edge_cells(self, edge_id: str) -> Tuple[Tuple[CellKey, float], ...]:
        return self._edge_cells[edge_id]


def parse_graph_payload(data: Union[dict, GraphPayload]) -> Tuple[List[RoadNode], List[RoadEdge]]:
    """Convert a node/edge dataset into domain objects. Raises GraphError."""
    try:
        payload = data if isinstance(data, GraphPayload) else GraphPayload.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(loc) for loc in first["loc"])
        raise GraphError(f"Invalid graph data at {location}: {first['msg']}")

    nodes = [RoadNode(id=n.id, lat=n.lat, lng=n.lng) for n in payload.nodes]
    by_id = {n.id: n for n in nodes}

    edges = []
    for e in payload.edges:
        geometry = tuple((lng, lat) for lng, lat in e.geometry) if e.geometry else None
        length = e.length_meters
        if length is None:
            if geometry:
                length = polyline_length(geometry)
            elif e.from_node in by_id and e.to_node in by_id:
                a, b = by_id[e.from_node], by_id[e.to_node]
                length = haversine_distance(a.lat, a.lng, b.lat, b.lng)
            else:
                raise GraphError(f"Edge {e.id} references unknown node")
        edges.append(
            RoadEdge(
                id=e.id,
                from_node=e.from_node,
                to_node=e.to_node,
                base_cost=e.base_cost,
                length_meters=length,
                bidirectional=e.bidirectional,
                geometry=geometry,
                name=e.name,
            )
        )
    return nodes, edges


def load_graph_file(path: Union[str, Path]) -> Tuple[List[RoadNode], List[RoadEdge]]:
    """Read a JSON node/edge dataset from disk."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise GraphError(f"Could not read road graph from {path}: {e}")
    logger.info(f"Loaded road graph dataset from {path}")
    return parse_graph_payload(data)
