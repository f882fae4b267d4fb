"""Tests for the FastAPI wrapper."""

from __future__ import annotations

from collections.abc import Generator

import pytest
import responses
from fastapi.testclient import TestClient
from requests.exceptions import ConnectionError as RequestsConnectionError

from quakescope.api import app
from quakescope.fetchers.usgs import FDSN_QUERY_URL


@pytest.fixture(scope="module")
def client() -> Generator[TestClient, None, None]:
    """TestClient with lifespan entered so app.state is initialised."""
    with TestClient(app) as c:
        yield c


def _mock_usgs(payload: dict) -> None:
    responses.add(responses.GET, FDSN_QUERY_URL, json=payload, status=200)


class TestHealthEndpoint:
    def test_returns_ok(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert "version" in data
        assert "uptime_seconds" in data
        assert isinstance(data["fetch_count"], int)
        assert data["cached_summaries"] >= 0

    @responses.activate
    def test_fetch_recorded(self, client: TestClient, sample_usgs_response: dict) -> None:
        _mock_usgs(sample_usgs_response)
        before = client.get("/health").json()["fetch_count"]
        client.get("/stats")
        data = client.get("/health").json()
        assert data["fetch_count"] == before + 1
        assert data["last_fetch"] is not None


class TestEventsEndpoint:
    @responses.activate
    def test_returns_all_events(self, client: TestClient, sample_usgs_response: dict) -> None:
        _mock_usgs(sample_usgs_response)
        resp = client.get("/events", params={"range": "7days", "min_magnitude": 2.0})
        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == data["total"] == 4
        assert data["events"][0]["id"] == "us7000abc1"
        sent = responses.calls[0].request.url
        assert "minmagnitude=2.0" in sent

    @responses.activate
    def test_progress_limits_events(self, client: TestClient, sample_usgs_response: dict) -> None:
        _mock_usgs(sample_usgs_response)
        data = client.get("/events", params={"progress": 0.5}).json()
        assert data["total"] == 4
        assert sorted(eq["id"] for eq in data["events"]) == ["nc7000abc3", "nc7000abc4"]

    def test_inverted_range_rejected(self, client: TestClient) -> None:
        resp = client.get("/events", params={"min_magnitude": 5, "max_magnitude": 3})
        assert resp.status_code == 422

    def test_unknown_time_range_rejected(self, client: TestClient) -> None:
        assert client.get("/events", params={"range": "2days"}).status_code == 422

    @responses.activate
    def test_upstream_failure_is_502(self, client: TestClient) -> None:
        responses.add(responses.GET, FDSN_QUERY_URL, body=RequestsConnectionError("down"))
        resp = client.get("/events")
        assert resp.status_code == 502
        assert resp.json()["detail"].startswith("Upstream data error")


class TestStatsEndpoint:
    @responses.activate
    def test_aggregates(self, client: TestClient, sample_usgs_response: dict) -> None:
        _mock_usgs(sample_usgs_response)
        data = client.get("/stats").json()
        assert data["total_count"] == 4
        assert data["largest_magnitude"] == 6.1
        assert data["depth_distribution"] == {"shallow": 4, "intermediate": 0, "deep": 0}


class TestMapEndpoint:
    @responses.activate
    def test_html(self, client: TestClient, sample_usgs_response: dict) -> None:
        _mock_usgs(sample_usgs_response)
        resp = client.get("/map", params={"heatmap": True})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert "QuakeScope" in resp.text
        assert "__MAP_DATA__" not in resp.text

    @responses.activate
    def test_geojson_with_location(self, client: TestClient, sample_usgs_response: dict) -> None:
        _mock_usgs(sample_usgs_response)
        resp = client.get("/map", params={"format": "geojson", "lat": 39.0, "lng": 142.0})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/geo+json")
        data = resp.json()
        assert data["metadata"]["earthquake_count"] == 4
        location = data["features"][-1]["properties"]
        assert location["feature_type"] == "user_location"
        assert location["approximate"] is False
        assert location["nearest_earthquake_id"] == "us7000abc1"

    def test_bad_format_rejected(self, client: TestClient) -> None:
        assert client.get("/map", params={"format": "pdf"}).status_code == 422

    def test_lat_without_lng_rejected(self, client: TestClient) -> None:
        resp = client.get("/map", params={"lat": 10.0})
        assert resp.status_code == 422
        assert resp.json()["detail"] == "lat and lng must be given together"


class TestSummaryEndpoint:
    @responses.activate
    def test_unknown_event_404(self, client: TestClient, sample_usgs_response: dict) -> None:
        _mock_usgs(sample_usgs_response)
        resp = client.get("/events/nope/summary")
        assert resp.status_code == 404

    @responses.activate
    def test_summary_returned(self, client: TestClient, sample_usgs_response: dict) -> None:
        _mock_usgs(sample_usgs_response)
        resp = client.get("/events/us7000abc1/summary")
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == "us7000abc1"
        assert "Miyako" in data["summary"]
