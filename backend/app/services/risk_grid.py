"""Risk grid: decay-weighted incident aggregation per cell.

Aggregates are evaluated on demand from the incident store at the requested
`as_of` instant. Nothing is cached between calls, so every value reflects all
incidents ingested before the call.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

from app.models.incident import ensure_utc, normalize_category
from app.models.risk import CellKey, RiskCell
from app.services.errors import ConfigError
from app.services.geo import GridSpec, Region
from app.services.incident_store import IncidentStore

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0


class DecayPolicy:
    """Exponential half-life decay, configurable per category."""

    def __init__(
        self,
        default_half_life_hours: float,
        category_half_life_hours: Optional[Mapping[str, float]] = None,
    ):
        overrides = {
            normalize_category(category): float(hours)
            for category, hours in (category_half_life_hours or {}).items()
        }
        for category, hours in [("default", default_half_life_hours)] + list(overrides.items()):
            if not hours > 0 or math.isinf(hours):
                raise ConfigError(f"Half-life for {category} must be positive and finite, got {hours}")
        self.default_half_life_hours = float(default_half_life_hours)
        self.category_half_life_hours = overrides

    def half_life_seconds(self, category: str) -> float:
        hours = self.category_half_life_hours.get(category, self.default_half_life_hours)
        return hours * SECONDS_PER_HOUR

    def factor(self, category: str, age_seconds: float) -> float:
        """decay(age): 1 at age 0, halves every half-life, never increases with age."""
        if age_seconds <= 0:
            return 1.0
        return 0.5 ** (age_seconds / self.half_life_seconds(category))


@dataclass(frozen=True)
class HeatCell:
    """One rendered heatmap cell."""

    cell: CellKey
    risk: float
    incident_count: int
    center: Tuple[float, float]  # (lat, lng)
    bounds: Tuple[float, float, float, float]  # (min_lng, min_lat, max_lng, max_lat)


class RiskGrid:
    """Discretized risk surface over the incident store."""

    def __init__(self, store: IncidentStore, decay: DecayPolicy):
        self.store = store
        self.decay = decay

    @property
    def grid(self) -> GridSpec:
        return self.store.grid

    def cell_for(self, lat: float, lng: float) -> CellKey:
        return self.grid.cell_for(lat, lng)

    def cells_in_region(self, region: Region) -> Iterator[CellKey]:
        return self.grid.cells_in_region(region)

    def risk_at(self, cell: CellKey, categories: Iterable[str], as_of: datetime) -> float:
        """Sum of severity * decay(as_of - timestamp) over the cell's matching incidents."""
        wanted = _category_set(categories)
        if not wanted:
            return 0.0
        as_of = ensure_utc(as_of)
        total = 0.0
        for incident in self.store.incidents_in_cell(cell, as_of):
            if incident.category in wanted:
                total += incident.severity * self.decay.factor(
                    incident.category, incident.age_seconds(as_of)
                )
        return total

    def risk_breakdown(
        self, cell: CellKey, categories: Iterable[str], as_of: datetime
    ) -> RiskCell:
        """Per-category aggregates and contributing counts for one cell."""
        wanted = _category_set(categories)
        as_of = ensure_utc(as_of)
        risk: Dict[str, float] = {}
        counts: Dict[str, int] = {}
        for incident in self.store.incidents_in_cell(cell, as_of):
            if incident.category not in wanted:
                continue
            risk[incident.category] = risk.get(incident.category, 0.0) + (
                incident.severity
                * self.decay.factor(incident.category, incident.age_seconds(as_of))
            )
            counts[incident.category] = counts.get(incident.category, 0) + 1
        return RiskCell(key=cell, risk_by_category=risk, count_by_category=counts)

    def weighted_risk(
        self,
        cell_fractions: Sequence[Tuple[CellKey, float]],
        categories: Iterable[str],
        as_of: datetime,
        memo: Optional[Dict[CellKey, float]] = None,
    ) -> float:
        """Length-weighted risk of a geometry already split into cell fractions."""
        wanted = _category_set(categories)
        total = 0.0
        for cell, fraction in cell_fractions:
            if memo is not None:
                cell_risk = memo.get(cell)
                if cell_risk is None:
                    cell_risk = memo[cell] = self.risk_at(cell, wanted, as_of)
            else:
                cell_risk = self.risk_at(cell, wanted, as_of)
            total += cell_risk * fraction
        return total

    def edge_risk(
        self,
        coords: Sequence[Tuple[float, float]],
        categories: Iterable[str],
        as_of: datetime,
    ) -> float:
        """Risk of an arbitrary (lng, lat) polyline."""
        return self.weighted_risk(self.grid.line_cell_fractions(coords), categories, as_of)

    def heat_cells(
        self, region: Region, categories: Iterable[str], as_of: datetime
    ) -> Iterator[HeatCell]:
        """Lazily yield non-zero cells overlapping a region, ordered by cell key."""
        wanted = _category_set(categories)
        if not wanted:
            return
        overlaps = self.grid.cell_filter(region)
        for cell in sorted(self.store.occupied_cells()):
            if not overlaps(cell):
                continue
            breakdown = self.risk_breakdown(cell, wanted, as_of)
            total = breakdown.total_risk
            if total <= 0:
                continue
            yield HeatCell(
                cell=cell,
                risk=total,
                incident_count=breakdown.incident_count,
                center=self.grid.cell_center(cell),
                bounds=self.grid.cell_bounds(cell),
            )


def _category_set(categories: Iterable[str]) -> FrozenSet[str]:
    if isinstance(categories, frozenset):
        return categories
    return frozenset(normalize_category(c) for c in categories)
