"""Shared fixtures: a small city grid and the A/B/C/D routing scenario."""

from datetime import timedelta

import pytest

from app.services.geo import GridSpec
from app.services.incident_store import IncidentStore
from app.services.navigation import NavigationService
from app.services.risk_grid import DecayPolicy, RiskGrid
from app.services.safety_scorer import SafetyScorer
from tests.factories import BOUNDS, CATEGORIES, CELL, ScenarioCity


@pytest.fixture
def grid():
    return GridSpec(origin_lat=37.70, origin_lng=-122.52, cell_size_meters=CELL, reference_lat=37.76)


@pytest.fixture
def store(grid):
    return IncidentStore(grid, BOUNDS, CATEGORIES, retention=timedelta(days=365))


@pytest.fixture
def decay():
    return DecayPolicy(24.0, {"vandalism": 6.0})


@pytest.fixture
def risk_grid(store, decay):
    return RiskGrid(store, decay)


@pytest.fixture
def scenario(grid):
    return ScenarioCity(grid)


@pytest.fixture
def navigation(store, risk_grid, scenario):
    """Engine with the scenario graph loaded and the hot cell populated."""
    service = NavigationService(
        store=store,
        risk_grid=risk_grid,
        scorer=SafetyScorer(0.5, 2.0),
        default_categories=["theft", "accident", "assault"],
        risk_aversion=1.0,
        safest_risk_multiplier=5.0,
    )
    service.load_graph(scenario.nodes, scenario.edges)
    report = service.ingest_batch(scenario.hot_incidents())
    assert report.rejected_count == 0
    return service
