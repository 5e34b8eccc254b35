"""HTTP API tests against the FastAPI application."""

import asyncio
import logging

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.errors import SearchTimeoutError
from app.services.navigation import NavigationService
from app.services.safety_scorer import SafetyScorer
from tests.factories import BOUNDS, NOW

AS_OF = NOW.isoformat()
BBOX = ",".join(str(v) for v in BOUNDS)


@pytest.fixture
def client(navigation):
    """Client bound to the scenario engine; lifespan startup is skipped."""
    app.state.navigation = navigation
    yield TestClient(app)
    app.state.navigation = None


@pytest.fixture
def bare_client(store, risk_grid):
    """Client bound to an engine without a road graph."""
    app.state.navigation = NavigationService(store, risk_grid, SafetyScorer(0.5, 2.0), ["theft"], 1.0)
    yield TestClient(app)
    app.state.navigation = None


def coordinate(point):
    lat, lng = point
    return {"lat": lat, "lng": lng}


# =============================================================================
# Routing
# =============================================================================

class TestRoutingEndpoint:
    """POST /api/v1/routes/calculate"""

    def test_fastest_route(self, client, scenario):
        """Fastest profile takes the short path through the hot cell."""
        response = client.post("/api/v1/routes/calculate", json={
            "origin": coordinate(scenario.points["A"]),
            "destination": coordinate(scenario.points["D"]),
            "profile": "fastest",
            "as_of": AS_OF,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["node_ids"] == ["A", "C", "D"]
        assert data["summary"]["safety_rating"] == "Risky"
        assert data["summary"]["distance_text"] == "2.0 km"
        assert data["summary"]["total_risk"] == pytest.approx(20.0)
        assert data["geometry"]["type"] == "LineString"
        assert data["geometry"]["coordinates"][0] == list(scenario.lnglat(50, 50))
        assert [e["id"] for e in data["edges"]] == ["A-C", "C-D"]
        assert data["categories"] == ["accident", "assault", "theft"]

    def test_balanced_route_is_safe(self, client, scenario):
        """Default profile detours around the hot cell."""
        response = client.post("/api/v1/routes/calculate", json={
            "origin": coordinate(scenario.points["A"]),
            "destination": coordinate(scenario.points["D"]),
            "as_of": AS_OF,
        })

        data = response.json()
        assert data["node_ids"] == ["A", "B", "D"]
        assert data["summary"]["safety_rating"] == "Safe"
        assert data["summary"]["description"] == "Found a safe route taking 9 seconds (2.0 km)"
        assert data["risk_aversion"] == 1.0

    def test_unknown_categories_ignored(self, client, scenario):
        response = client.post("/api/v1/routes/calculate", json={
            "origin": coordinate(scenario.points["A"]),
            "destination": coordinate(scenario.points["D"]),
            "categories": ["accident", "jaywalking"],
            "as_of": AS_OF,
        })

        assert response.status_code == 200
        assert response.json()["categories"] == ["accident"]
        assert response.json()["summary"]["total_risk"] == 0.0

    def test_unreachable_destination(self, client, scenario):
        """Isolated destination returns 404 NO_ROUTE."""
        response = client.post("/api/v1/routes/calculate", json={
            "origin": coordinate(scenario.points["A"]),
            "destination": coordinate(scenario.points["E"]),
        })

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NO_ROUTE"

    def test_timeout_returns_504(self, client, navigation, scenario, monkeypatch):
        def slow(*args, **kwargs):
            raise SearchTimeoutError("Route search exceeded its deadline", expansions=3)

        monkeypatch.setattr(navigation, "plan_route", slow)

        response = client.post("/api/v1/routes/calculate", json={
            "origin": coordinate(scenario.points["A"]),
            "destination": coordinate(scenario.points["D"]),
            "timeout_ms": 10,
        })

        assert response.status_code == 504
        assert response.json()["error"]["code"] == "ROUTE_TIMEOUT"

    def test_invalid_coordinates(self, client):
        response = client.post("/api/v1/routes/calculate", json={
            "origin": {"lat": 95, "lng": -122.4},
            "destination": {"lat": 37.77, "lng": -122.4},
        })

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_negative_risk_aversion_rejected(self, client, scenario):
        response = client.post("/api/v1/routes/calculate", json={
            "origin": coordinate(scenario.points["A"]),
            "destination": coordinate(scenario.points["D"]),
            "risk_aversion": -2,
        })

        assert response.status_code == 422

    def test_no_graph_returns_503(self, bare_client, scenario):
        """Routing is unavailable until a graph is loaded."""
        response = bare_client.post("/api/v1/routes/calculate", json={
            "origin": coordinate(scenario.points["A"]),
            "destination": coordinate(scenario.points["D"]),
        })

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"


# =============================================================================
# Heatmap
# =============================================================================

class TestHeatmapEndpoint:
    """GET and POST /api/v1/heatmap"""

    def test_bbox_heatmap(self, client, scenario, grid):
        response = client.get("/api/v1/heatmap", params={"bbox": BBOX, "as_of": AS_OF})

        assert response.status_code == 200
        data = response.json()
        hot = grid.cell_for(*scenario.hot_spot)
        assert data["total"] == 1
        assert data["cells"][0]["cell"] == f"{hot.row}:{hot.col}"
        assert data["cells"][0]["risk"] == pytest.approx(10.0)
        assert data["max_risk"] == pytest.approx(10.0)

    def test_category_filter(self, client):
        response = client.get(
            "/api/v1/heatmap", params={"bbox": BBOX, "as_of": AS_OF, "categories": "assault,vandalism"}
        )

        assert response.json()["cells"] == []
        assert response.json()["categories"] == ["assault", "vandalism"]

    def test_invalid_bbox(self, client):
        response = client.get("/api/v1/heatmap", params={"bbox": "1,2,3"})

        assert response.status_code == 422
        assert response.json()["error"]["details"]["field"] == "bbox"

    def test_polygon_heatmap(self, client, scenario):
        ring = [scenario.lnglat(dx, dy) for dx, dy in [(0, 0), (1100, 0), (1100, 1100), (0, 1100), (0, 0)]]

        response = client.post("/api/v1/heatmap", json={
            "region": {"type": "Polygon", "coordinates": [[list(p) for p in ring]]},
            "as_of": AS_OF,
        })

        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_degenerate_polygon(self, client):
        response = client.post("/api/v1/heatmap", json={
            "region": {"type": "Polygon", "coordinates": [[[-122.4, 37.7], [-122.4, 37.7]]]},
        })

        assert response.status_code == 422


# =============================================================================
# Incidents
# =============================================================================

class TestIncidentEndpoints:
    """Ingestion and listing of incidents."""

    def test_create_incident(self, client):
        response = client.post("/api/v1/incidents", json={
            "id": "api-1",
            "category": "Accidents",
            "location": {"latitude": 37.7749, "longitude": -122.4194},
            "timestamp": "2026-03-01T09:30:00Z",
            "severity": 0.6,
        })

        assert response.status_code == 201
        assert response.json()["category"] == "accident"
        assert client.get("/api/v1/incidents/api-1").json()["severity"] == 0.6

    def test_rejected_incident(self, client):
        """Out-of-range severity returns 422 with the offending field."""
        response = client.post("/api/v1/incidents", json={
            "category": "theft",
            "lat": 37.7749,
            "lng": -122.4194,
            "timestamp": "2026-03-01T09:30:00Z",
            "severity": 1.5,
        })

        assert response.status_code == 422
        assert response.json()["error"]["details"] == {"field": "severity"}

    def test_batch_with_one_malformed_record(self, client):
        record = {"category": "theft", "lat": 37.7749, "lng": -122.4194,
                  "timestamp": "2026-03-01T09:30:00Z", "severity": 0.3}
        response = client.post("/api/v1/incidents/batch", json={"incidents": [
            dict(record, id="b1"),
            dict(record, id="b2", severity=2.0),
            dict(record, id="b3"),
            dict(record, id="b4", category="littering"),
        ]})

        data = response.json()
        assert response.status_code == 200
        assert data["accepted"] == ["b1", "b3"]
        assert [r["index"] for r in data["rejected"]] == [1, 3]
        assert [r["field"] for r in data["rejected"]] == ["severity", "category"]

    def test_list_incidents(self, client):
        response = client.get("/api/v1/incidents", params={"as_of": AS_OF, "limit": 3})

        assert response.json()["total"] == 10
        assert len(response.json()["incidents"]) == 3

    def test_unknown_incident(self, client):
        response = client.get("/api/v1/incidents/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"
        assert response.json()["error"]["message"] == "Incident not found"

    def test_purge(self, client):
        response = client.post("/api/v1/incidents/purge")

        assert response.status_code == 200
        assert response.json()["removed"] + response.json()["remaining"] == 10


# =============================================================================
# Graph, categories, health
# =============================================================================

class TestServiceEndpoints:
    """Graph management, categories and probes."""

    def test_graph_status(self, client):
        assert client.get("/api/v1/graph").json() == {
            "loaded": True, "node_count": 5, "edge_count": 4, "component_count": 2,
        }

    def test_invalid_graph_upload_keeps_current(self, client):
        response = client.put("/api/v1/graph", json={
            "nodes": [{"id": "x", "lat": 37.77, "lng": -122.42}],
            "edges": [{"id": "e", "from": "x", "to": "y", "base_cost": 5, "length_meters": 10}],
        })

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "GRAPH_ERROR"
        assert client.get("/api/v1/graph").json()["node_count"] == 5

    def test_graph_upload(self, bare_client):
        response = bare_client.put("/api/v1/graph", json={
            "nodes": [{"id": 1, "lat": 37.77, "lng": -122.42}, {"id": 2, "lat": 37.775, "lng": -122.42}],
            "edges": [{"id": "e", "from": 1, "to": 2, "base_cost": 40}],
        })

        assert response.status_code == 200
        assert response.json()["loaded"] is True
        assert bare_client.get("/api/v1/health/ready").status_code == 200

    def test_categories(self, client):
        assert client.get("/api/v1/categories").json() == {
            "known": ["accident", "assault", "theft", "vandalism"],
            "default_enabled": ["accident", "assault", "theft"],
        }

    def test_readiness_without_graph(self, bare_client):
        response = bare_client.get("/api/v1/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"] == {"engine": True, "road_graph": False}

    def test_health_and_request_id(self, client):
        """Every response carries an X-Request-ID header."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert len(response.headers["X-Request-ID"]) == 8

    def test_error_envelope_carries_request_id(self, client):
        response = client.get("/api/v1/incidents/missing")

        assert response.json()["error"]["request_id"] == response.headers["X-Request-ID"]

    def test_route_log_line_carries_profile_and_rating(self, client, scenario, caplog):
        with caplog.at_level(logging.INFO, logger="api.requests"):
            response = client.post("/api/v1/routes/calculate", json={
                "origin": coordinate(scenario.points["A"]),
                "destination": coordinate(scenario.points["D"]),
                "profile": "fastest",
                "as_of": AS_OF,
            })

        request_id = response.headers["X-Request-ID"]
        done = [r.getMessage() for r in caplog.records if r.getMessage().startswith(f"[{request_id}] <-- 200")]
        assert len(done) == 1
        assert "profile=fastest" in done[0]
        assert "categories=accident,assault,theft" in done[0]
        assert "rating=Risky" in done[0]

    def test_error_log_line_carries_error_code(self, client, scenario, caplog):
        with caplog.at_level(logging.INFO, logger="api.requests"):
            response = client.post("/api/v1/routes/calculate", json={
                "origin": coordinate(scenario.points["A"]),
                "destination": coordinate(scenario.points["E"]),
            })

        request_id = response.headers["X-Request-ID"]
        done = [r.getMessage() for r in caplog.records if r.getMessage().startswith(f"[{request_id}] <-- 404")]
        assert len(done) == 1
        assert "error=NO_ROUTE" in done[0]

    def test_engine_missing_returns_503(self):
        app.state.navigation = None

        response = TestClient(app).get("/api/v1/categories")

        assert response.status_code == 503


# =============================================================================
# Async client
# =============================================================================

class TestAsyncClient:
    """Concurrent requests through the ASGI transport."""

    @pytest.mark.asyncio
    async def test_parallel_route_requests(self, navigation, scenario):
        """Concurrent route queries return identical answers."""
        app.state.navigation = navigation
        body = {
            "origin": coordinate(scenario.points["A"]),
            "destination": coordinate(scenario.points["D"]),
            "profile": "fastest",
            "as_of": AS_OF,
        }
        try:
            async with httpx.AsyncClient(
                transport=httpx.ASGITransport(app=app), base_url="http://test"
            ) as ac:
                responses = await asyncio.gather(
                    *[ac.post("/api/v1/routes/calculate", json=body) for _ in range(8)]
                )
        finally:
            app.state.navigation = None

        assert all(r.status_code == 200 for r in responses)
        assert {tuple(r.json()["node_ids"]) for r in responses} == {("A", "C", "D")}
