"""Tests for fetcher error paths and edge cases."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
import responses
from requests.exceptions import ConnectionError as RequestsConnectionError

from quakescope.errors import DataFetchError
from quakescope.fetchers.ipgeo import IPAPI_URL, lookup_ip_location, parse_ip_location
from quakescope.fetchers.usgs import (
    FDSN_QUERY_URL,
    UsgsEventSource,
    build_query_params,
    fetch_events,
)
from quakescope.models import FilterOptions, SeismicEvent


class TestBuildQueryParams:
    def test_time_window_and_filters(self):
        now = datetime(2024, 3, 10, 12, 30, 0, tzinfo=timezone.utc)
        filters = FilterOptions(
            time_range="7days", magnitude_range=(2.5, 8.0), depth_range=(10.0, 300.0)
        )
        params = build_query_params(filters, now=now, limit=500)
        assert params["format"] == "geojson"
        assert params["starttime"] == "2024-03-03T12:30:00"
        assert params["endtime"] == "2024-03-10T12:30:00"
        assert params["minmagnitude"] == 2.5
        assert params["maxmagnitude"] == 8.0
        assert params["mindepth"] == 10.0
        assert params["maxdepth"] == 300.0
        assert params["orderby"] == "time"
        assert params["limit"] == 500

    def test_negative_min_magnitude_clamped(self):
        params = build_query_params(FilterOptions(magnitude_range=(-1.0, 10.0)))
        assert params["minmagnitude"] == 0.0


class TestSeismicEventParsing:
    def test_full_feature(self, sample_usgs_response):
        eq = SeismicEvent.from_geojson_feature(sample_usgs_response["features"][0])
        assert eq.id == "us7000abc1"
        assert eq.magnitude == 6.1
        assert eq.coordinates == (142.45, 39.64, 35.0)
        assert eq.tsunami is True
        assert eq.alert == "yellow"
        assert eq.mag_type == "mww"

    def test_missing_fields_defaulted(self, sample_usgs_response):
        eq = SeismicEvent.from_geojson_feature(sample_usgs_response["features"][2])
        assert eq.magnitude == 0.0
        assert eq.place == "Unknown location"
        assert eq.depth_km == 1.2


class TestFetchEvents:
    @responses.activate
    def test_valid_response_returns_events(self, sample_usgs_response):
        responses.add(responses.GET, FDSN_QUERY_URL, json=sample_usgs_response, status=200)
        events = fetch_events(FilterOptions(time_range="1hour"))
        assert [eq.id for eq in events] == [
            "us7000abc1", "us7000abc2", "nc7000abc3", "nc7000abc4",
        ]
        assert all(eq.depth_km >= 0 for eq in events)
        sent = responses.calls[0].request.url
        assert "format=geojson" in sent
        assert "orderby=time" in sent

    @responses.activate
    def test_empty_features_returns_empty(self):
        responses.add(
            responses.GET,
            FDSN_QUERY_URL,
            json={"type": "FeatureCollection", "features": []},
            status=200,
        )
        assert fetch_events() == []

    @responses.activate
    def test_http_error_raises(self):
        responses.add(responses.GET, FDSN_QUERY_URL, status=400)
        with pytest.raises(DataFetchError, match="Failed to fetch"):
            fetch_events()

    @responses.activate
    def test_network_error_raises(self):
        responses.add(responses.GET, FDSN_QUERY_URL, body=RequestsConnectionError("down"))
        with pytest.raises(DataFetchError):
            fetch_events()

    @responses.activate
    def test_invalid_json_raises(self):
        responses.add(responses.GET, FDSN_QUERY_URL, body="<html>oops</html>", status=200)
        with pytest.raises(DataFetchError, match="Malformed"):
            fetch_events()

    @responses.activate
    def test_features_not_a_list_raises(self):
        responses.add(responses.GET, FDSN_QUERY_URL, json={"features": {}}, status=200)
        with pytest.raises(DataFetchError):
            fetch_events()

    @responses.activate
    def test_malformed_feature_skipped(self):
        responses.add(
            responses.GET,
            FDSN_QUERY_URL,
            json={
                "features": [
                    {"id": "bad", "properties": {"mag": 3.0}, "geometry": {"coordinates": ["x"]}},
                    {
                        "id": "good",
                        "properties": {"mag": 3.0, "time": 1700000000000, "place": "Test"},
                        "geometry": {"coordinates": [1.0, 2.0, 3.0]},
                    },
                ]
            },
            status=200,
        )
        assert [eq.id for eq in fetch_events()] == ["good"]

    @pytest.mark.asyncio
    @responses.activate
    async def test_async_source(self, sample_usgs_response):
        responses.add(responses.GET, FDSN_QUERY_URL, json=sample_usgs_response, status=200)
        events = await UsgsEventSource().fetch_events(FilterOptions())
        assert len(events) == 4


class TestIpLookup:
    def test_parse_valid(self):
        loc = parse_ip_location({"latitude": 51.5, "longitude": -0.12, "city": "London"})
        assert (loc.lat, loc.lng, loc.approximate) == (51.5, -0.12, True)

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [],
            {"latitude": "51.5", "longitude": 0},
            {"latitude": True, "longitude": 0},
            {"latitude": 91.0, "longitude": 0},
            {"latitude": 0, "longitude": float("nan")},
            {"error": True, "reason": "RateLimited"},
        ],
    )
    def test_parse_rejects_invalid(self, payload):
        assert parse_ip_location(payload) is None

    @responses.activate
    def test_lookup_success(self):
        responses.add(responses.GET, IPAPI_URL, json={"latitude": 40.0, "longitude": -74.0})
        loc = lookup_ip_location()
        assert loc is not None
        assert loc.approximate

    @responses.activate
    def test_lookup_http_error_is_none(self):
        responses.add(responses.GET, IPAPI_URL, status=429)
        assert lookup_ip_location() is None

    @responses.activate
    def test_lookup_network_error_is_none(self):
        responses.add(responses.GET, IPAPI_URL, body=RequestsConnectionError("down"))
        assert lookup_ip_location() is None

    @responses.activate
    def test_lookup_bad_json_is_none(self):
        responses.add(responses.GET, IPAPI_URL, body="not json")
        assert lookup_ip_location() is None
