"""Navigation service: the single entry point used by the API layer.

Composes the incident store, risk grid, road graph, router and safety
scorer. Every query is a pure function of the current store state plus its
arguments; the only mutable references are the store contents and the
currently loaded road graph, which is replaced atomically on reload.
"""

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from app.config import Settings
from app.models.incident import Incident, normalize_category
from app.models.road_graph import RoadEdge, RoadNode
from app.models.route import RouteProfile, RouteResult
from app.services.errors import ConfigError, NoRouteError
from app.services.geo import Bounds, GridSpec, Region
from app.services.incident_store import IncidentQuery, IncidentStore, IngestReport
from app.services.risk_grid import DecayPolicy, HeatCell, RiskGrid
from app.services.road_graph import RoadGraphIndex, load_graph_file, parse_graph_payload
from app.services.routing.engine import RiskWeightedRouter
from app.services.safety_scorer import SafetyScorer

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]


class NavigationService:
    """Route planning and heatmap queries over a live incident store."""

    def __init__(
        self,
        store: IncidentStore,
        risk_grid: RiskGrid,
        scorer: SafetyScorer,
        default_categories: Iterable[str],
        risk_aversion: float,
        safest_risk_multiplier: float = 1.0,
        route_timeout: Optional[float] = None,
        use_heuristic: bool = True,
    ):
        if risk_aversion < 0:
            raise ConfigError(f"risk_aversion must be >= 0, got {risk_aversion}")
        self.store = store
        self.risk_grid = risk_grid
        self.scorer = scorer
        self.default_categories = self.resolve_categories(default_categories)
        self.risk_aversion = risk_aversion
        self.safest_risk_multiplier = safest_risk_multiplier
        self.route_timeout = route_timeout
        self.use_heuristic = use_heuristic
        self._router: Optional[RiskWeightedRouter] = None
        self._graph_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "NavigationService":
        """Build the engine from configuration. Raises ConfigError or GraphError."""
        errors = settings.validate_engine_settings()
        if errors:
            raise ConfigError("; ".join(errors))

        bounds: Bounds = (
            settings.area_min_lng,
            settings.area_min_lat,
            settings.area_max_lng,
            settings.area_max_lat,
        )
        grid = GridSpec(
            origin_lat=settings.area_min_lat,
            origin_lng=settings.area_min_lng,
            cell_size_meters=settings.cell_size_meters,
            reference_lat=(settings.area_min_lat + settings.area_max_lat) / 2,
        )
        store = IncidentStore(
            grid=grid,
            bounds=bounds,
            categories=settings.incident_categories,
            retention=timedelta(days=settings.retention_days),
        )
        decay = DecayPolicy(settings.default_half_life_hours, settings.category_half_life_hours)
        scorer = SafetyScorer(
            settings.safe_threshold, settings.risky_threshold, settings.density_epsilon_km
        )
        service = cls(
            store=store,
            risk_grid=RiskGrid(store, decay),
            scorer=scorer,
            default_categories=settings.default_enabled_categories,
            risk_aversion=settings.risk_aversion,
            safest_risk_multiplier=settings.safest_risk_multiplier,
            route_timeout=settings.route_timeout_seconds,
            use_heuristic=settings.route_use_heuristic,
        )

        if settings.graph_path:
            nodes, edges = load_graph_file(settings.graph_path)
            service.load_graph(nodes, edges)
        else:
            logger.warning("No GRAPH_PATH configured; routing is unavailable until a graph is loaded")

        if settings.incidents_path:
            report = service.ingest_batch(_read_incident_file(settings.incidents_path))
            logger.info(
                f"Seeded {report.accepted_count} incidents from {settings.incidents_path} "
                f"({report.rejected_count} rejected)"
            )

        return service

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    @property
    def graph(self) -> Optional[RoadGraphIndex]:
        router = self._router
        return router.graph if router is not None else None

    @property
    def graph_loaded(self) -> bool:
        return self._router is not None

    def load_graph(self, nodes: Iterable[RoadNode], edges: Iterable[RoadEdge]) -> RoadGraphIndex:
        """Build and swap in a new road graph. The previous graph stays live on GraphError."""
        index = RoadGraphIndex.build(nodes, edges, self.store.grid)
        router = RiskWeightedRouter(index, self.risk_grid, use_heuristic=self.use_heuristic)
        with self._graph_lock:
            self._router = router
        return index

    def load_graph_data(self, data: Mapping[str, Any]) -> RoadGraphIndex:
        nodes, edges = parse_graph_payload(data)
        return self.load_graph(nodes, edges)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def resolve_categories(self, categories: Optional[Iterable[str]]) -> FrozenSet[str]:
        """Known category ids from a client filter; unknown ids are dropped."""
        if categories is None:
            return self.default_categories
        if isinstance(categories, str):
            categories = [categories]
        resolved = frozenset(normalize_category(c) for c in categories)
        ignored = resolved - self.store.categories
        if ignored:
            logger.debug(f"Ignoring unknown categories: {', '.join(sorted(ignored))}")
        return resolved & self.store.categories

    def categories(self) -> Dict[str, List[str]]:
        return {
            "known": sorted(self.store.categories),
            "default_enabled": sorted(self.default_categories),
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lambda_for(self, profile: RouteProfile, risk_aversion: Optional[float] = None) -> float:
        """Risk-aversion weight for a profile; an explicit weight takes precedence."""
        if risk_aversion is not None:
            if risk_aversion < 0:
                raise ValueError("risk_aversion must be >= 0")
            return float(risk_aversion)
        if profile == RouteProfile.FASTEST:
            return 0.0
        if profile == RouteProfile.SAFEST:
            return self.risk_aversion * self.safest_risk_multiplier
        return self.risk_aversion

    def plan_route(
        self,
        origin: LatLng,
        destination: LatLng,
        categories: Optional[Iterable[str]] = None,
        as_of: Optional[datetime] = None,
        profile: RouteProfile = RouteProfile.BALANCED,
        risk_aversion: Optional[float] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RouteResult:
        """Plan a route between two (lat, lng) points.

        Raises:
            NoRouteError: no graph is loaded or the destination is unreachable
            SearchTimeoutError: the search deadline passed or it was cancelled
        """
        router = self._router
        if router is None:
            raise NoRouteError("No road graph is loaded")

        enabled = self.resolve_categories(categories)
        as_of = as_of or datetime.now(timezone.utc)
        weight = self.lambda_for(RouteProfile(profile), risk_aversion)

        found = router.find_path(
            origin,
            destination,
            enabled,
            as_of,
            weight,
            timeout=timeout if timeout is not None else self.route_timeout,
            cancel_event=cancel_event,
        )
        assessment = self.scorer.assess(
            found.total_risk, found.total_distance, found.total_duration, found.risk_by_category
        )
        return RouteResult(
            path=found.path,
            node_ids=found.node_ids,
            coordinates=found.coordinates,
            total_distance=found.total_distance,
            total_duration=found.total_duration,
            total_risk=found.total_risk,
            safety_rating=assessment.rating,
            risk_density=assessment.density,
            summary=assessment.summary,
            risk_aversion=weight,
            risk_by_category=found.risk_by_category,
            expansions=found.expansions,
        )

    def heatmap(
        self,
        region: Region,
        categories: Optional[Iterable[str]] = None,
        as_of: Optional[datetime] = None,
    ) -> Iterator[HeatCell]:
        """Non-zero risk cells overlapping a region, for rendering."""
        enabled = self.resolve_categories(categories)
        as_of = as_of or datetime.now(timezone.utc)
        return self.risk_grid.heat_cells(region, enabled, as_of)

    def query_incidents(
        self,
        region: Region,
        categories: Optional[Iterable[str]] = None,
        as_of: Optional[datetime] = None,
    ) -> IncidentQuery:
        enabled = None if categories is None else self.resolve_categories(categories)
        return self.store.query(region, enabled, as_of or datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, record: Union[Incident, Mapping[str, Any]]) -> Incident:
        return self.store.ingest(record)

    def ingest_batch(self, records: Iterable[Union[Incident, Mapping[str, Any]]]) -> IngestReport:
        return self.store.ingest_batch(records)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        return self.store.purge_expired(now or datetime.now(timezone.utc))

    def status(self) -> Dict[str, Any]:
        graph = self.graph
        return {
            "graph_loaded": graph is not None,
            "node_count": graph.node_count if graph else 0,
            "edge_count": graph.edge_count if graph else 0,
            "component_count": graph.component_count if graph else 0,
            "incident_count": self.store.count(),
            "occupied_cells": len(self.store.occupied_cells()),
        }


def _read_incident_file(path: Union[str, Path]) -> List[Any]:
    """Incident seed file: a JSON list, or an object with an `incidents` list."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read incidents from {path}: {e}")
    if isinstance(data, dict):
        data = data.get("incidents", [])
    if not isinstance(data, list):
        raise ConfigError(f"Incident file {path} must contain a list of incidents")
    return data
