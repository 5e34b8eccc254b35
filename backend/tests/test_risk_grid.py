"""Tests for the grid geometry, decay policy and risk aggregation."""

from datetime import timedelta

import pytest
from shapely.geometry import Polygon

from app.models.risk import CellKey
from app.services.errors import ConfigError
from app.services.geo import GridSpec
from app.services.risk_grid import DecayPolicy
from tests.factories import NOW, X0, Y0, make_incident


# =============================================================================
# Grid geometry
# =============================================================================

class TestGridSpec:
    """Cell assignment and region coverage."""

    def test_cell_size_must_be_positive(self):
        with pytest.raises(ConfigError):
            GridSpec(37.70, -122.52, 0)

    def test_project_unproject_round_trip(self, grid):
        lat, lng = grid.unproject(1234.0, 5678.0)
        x, y = grid.project(lat, lng)

        assert x == pytest.approx(1234.0)
        assert y == pytest.approx(5678.0)

    def test_cell_for_uses_floor(self, grid):
        lat, lng = grid.unproject(X0 + 150, Y0 + 250)

        assert grid.cell_for(lat, lng) == CellKey(62, 81)

    def test_cell_center_maps_back_to_cell(self, grid):
        cell = CellKey(40, 17)

        assert grid.cell_for(*grid.cell_center(cell)) == cell

    def test_cells_in_bbox_region(self, grid):
        min_lat, min_lng = grid.unproject(X0 + 10, Y0 + 10)
        max_lat, max_lng = grid.unproject(X0 + 290, Y0 + 190)

        cells = list(grid.cells_in_region((min_lng, min_lat, max_lng, max_lat)))

        assert cells == [CellKey(60, 80), CellKey(60, 81), CellKey(60, 82),
                         CellKey(61, 80), CellKey(61, 81), CellKey(61, 82)]

    def test_polygon_region_skips_cells_it_only_touches(self):
        # One-degree cells at the equator keep polygon edges exactly on cell borders
        degree_grid = GridSpec(0.0, 0.0, 111320.0)
        polygon = Polygon([(0, 0), (2, 0), (2, 1), (0, 1)])

        cells = set(degree_grid.cells_in_region(polygon))
        touching = degree_grid.cell_filter(polygon, include_touching=True)

        assert cells == {CellKey(0, 0), CellKey(0, 1)}
        assert touching(CellKey(1, 0))
        assert not touching(CellKey(3, 3))

    def test_inverted_bounds_rejected(self, grid):
        with pytest.raises(ValueError):
            list(grid.cells_in_region((-122.40, 37.75, -122.45, 37.70)))

    def test_line_fractions_sum_to_one(self, grid):
        start = grid.unproject(X0 + 50, Y0 + 50)
        end = grid.unproject(X0 + 350, Y0 + 50)

        fractions = grid.line_cell_fractions([(start[1], start[0]), (end[1], end[0])])

        assert [cell for cell, _ in fractions] == [CellKey(60, 80), CellKey(60, 81),
                                                   CellKey(60, 82), CellKey(60, 83)]
        assert sum(f for _, f in fractions) == pytest.approx(1.0)
        assert fractions[1][1] == pytest.approx(1 / 3)

    def test_zero_length_line_gets_single_cell(self, grid):
        lat, lng = grid.unproject(X0 + 50, Y0 + 50)

        assert grid.line_cell_fractions([(lng, lat), (lng, lat)]) == ((CellKey(60, 80), 1.0),)


# =============================================================================
# Decay
# =============================================================================

class TestDecayPolicy:
    """Exponential half-life decay."""

    def test_decay_at_zero_is_one(self, decay):
        assert decay.factor("theft", 0) == 1.0

    def test_one_half_life_halves(self, decay):
        assert decay.factor("theft", 24 * 3600) == pytest.approx(0.5)

    def test_category_override(self, decay):
        assert decay.factor("vandalism", 6 * 3600) == pytest.approx(0.5)
        assert decay.factor("vandalism", 24 * 3600) < decay.factor("theft", 24 * 3600)

    def test_non_increasing_with_age(self, decay):
        values = [decay.factor("assault", hours * 3600) for hours in range(0, 500, 7)]

        assert all(a >= b for a, b in zip(values, values[1:]))
        assert values[-1] < 0.001

    @pytest.mark.parametrize("hours", [0, -1, float("inf")])
    def test_invalid_half_life_rejected(self, hours):
        with pytest.raises(ConfigError):
            DecayPolicy(hours)

    def test_invalid_override_rejected(self):
        with pytest.raises(ConfigError):
            DecayPolicy(24.0, {"theft": 0})


# =============================================================================
# Risk aggregation
# =============================================================================

class TestRiskAt:
    """riskAt semantics."""

    @pytest.fixture
    def spot(self, grid):
        lat, lng = grid.unproject(X0 + 50, Y0 + 50)
        return lat, lng, grid.cell_for(lat, lng)

    def test_fresh_incident_contributes_full_severity(self, store, risk_grid, spot):
        lat, lng, cell = spot
        store.ingest(make_incident("i1", lat, lng, severity=0.8))

        assert risk_grid.risk_at(cell, ["theft"], NOW) >= 0.8

    def test_risk_reflects_ingestion_immediately(self, store, risk_grid, spot):
        lat, lng, cell = spot
        assert risk_grid.risk_at(cell, ["theft"], NOW) == 0.0

        store.ingest(make_incident("i1", lat, lng, severity=0.5))
        first = risk_grid.risk_at(cell, ["theft"], NOW)
        store.ingest(make_incident("i2", lat, lng, severity=0.25))

        assert first == 0.5
        assert risk_grid.risk_at(cell, ["theft"], NOW) == 0.75

    def test_decay_weighted_sum(self, store, risk_grid, spot):
        lat, lng, cell = spot
        store.ingest_batch([
            make_incident("now", lat, lng, severity=1.0),
            make_incident("day-old", lat, lng, severity=1.0, hours_ago=24),
        ])

        assert risk_grid.risk_at(cell, ["theft"], NOW) == pytest.approx(1.5)

    def test_monotonically_non_increasing_in_as_of(self, store, risk_grid, spot):
        lat, lng, cell = spot
        store.ingest_batch([
            make_incident(f"i{i}", lat, lng, category=cat, severity=0.3 + 0.1 * i, hours_ago=i * 5)
            for i, cat in enumerate(["theft", "vandalism", "assault", "theft", "accident"])
        ])
        categories = ["theft", "vandalism", "assault", "accident"]

        values = [risk_grid.risk_at(cell, categories, NOW + timedelta(hours=h)) for h in range(0, 200, 3)]

        assert all(a >= b for a, b in zip(values, values[1:]))

    def test_incidents_after_as_of_are_ignored(self, store, risk_grid, spot):
        lat, lng, cell = spot
        store.ingest(make_incident("later", lat, lng, hours_ago=-1))

        assert risk_grid.risk_at(cell, ["theft"], NOW) == 0.0

    def test_category_filter(self, store, risk_grid, spot):
        lat, lng, cell = spot
        store.ingest_batch([
            make_incident("t", lat, lng, category="theft", severity=0.4),
            make_incident("a", lat, lng, category="accident", severity=0.6),
        ])

        assert risk_grid.risk_at(cell, ["accident"], NOW) == pytest.approx(0.6)
        assert risk_grid.risk_at(cell, ["thefts", "accident"], NOW) == pytest.approx(1.0)
        assert risk_grid.risk_at(cell, [], NOW) == 0.0

    def test_breakdown_counts_per_category(self, store, risk_grid, spot):
        lat, lng, cell = spot
        store.ingest_batch([
            make_incident("t1", lat, lng, category="theft", severity=0.4),
            make_incident("t2", lat, lng, category="theft", severity=0.4),
            make_incident("v1", lat, lng, category="vandalism", severity=1.0, hours_ago=6),
        ])

        breakdown = risk_grid.risk_breakdown(cell, ["theft", "vandalism"], NOW)

        assert breakdown.count_by_category == {"theft": 2, "vandalism": 1}
        assert breakdown.risk_by_category["vandalism"] == pytest.approx(0.5)
        assert breakdown.total_risk == pytest.approx(1.3)
        assert breakdown.incident_count == 3

    def test_edge_risk_weights_by_length_fraction(self, store, risk_grid, grid):
        lat, lng = grid.unproject(X0 + 150, Y0 + 50)
        store.ingest(make_incident("mid", lat, lng, severity=0.9))
        start = grid.unproject(X0 + 50, Y0 + 50)
        end = grid.unproject(X0 + 350, Y0 + 50)

        risk = risk_grid.edge_risk([(start[1], start[0]), (end[1], end[0])], ["theft"], NOW)

        assert risk == pytest.approx(0.9 / 3)


# =============================================================================
# Heatmap cells
# =============================================================================

class TestHeatCells:
    """Lazy heatmap sequence."""

    def test_only_non_zero_cells_in_region_sorted(self, store, risk_grid, grid):
        points = {name: grid.unproject(X0 + dx, Y0 + dy) for name, dx, dy in
                  [("a", 250, 50), ("b", 50, 150), ("c", 50, 50), ("far", 3050, 3050)]}
        store.ingest_batch([
            make_incident(name, lat, lng, severity=0.5) for name, (lat, lng) in points.items()
        ])
        store.ingest(make_incident("skip", *grid.unproject(X0 + 150, Y0 + 50), category="vandalism"))
        min_lat, min_lng = grid.unproject(X0 + 1, Y0 + 1)
        max_lat, max_lng = grid.unproject(X0 + 999, Y0 + 999)

        cells = list(risk_grid.heat_cells((min_lng, min_lat, max_lng, max_lat), ["theft"], NOW))

        assert [c.cell for c in cells] == [CellKey(60, 80), CellKey(60, 82), CellKey(61, 80)]
        assert all(c.risk == pytest.approx(0.5) and c.incident_count == 1 for c in cells)

    def test_no_categories_yields_nothing(self, store, risk_grid, grid):
        lat, lng = grid.unproject(X0 + 50, Y0 + 50)
        store.ingest(make_incident("x", lat, lng))

        assert list(risk_grid.heat_cells(store.bounds, [], NOW)) == []

    def test_cell_bounds_contain_center(self, store, risk_grid, grid):
        lat, lng = grid.unproject(X0 + 50, Y0 + 50)
        store.ingest(make_incident("x", lat, lng))

        cell = next(iter(risk_grid.heat_cells(store.bounds, ["theft"], NOW)))
        min_lng, min_lat, max_lng, max_lat = cell.bounds
        center_lat, center_lng = cell.center

        assert min_lat < center_lat < max_lat
        assert min_lng < center_lng < max_lng
