"""Tests for pixel-radius proximity clustering."""

from __future__ import annotations

import math

from quakescope.clustering import cluster_points
from quakescope.surface import PointMarker


def _marker(event_id: str, lat: float, lng: float) -> PointMarker:
    return PointMarker(
        event_id=event_id, lat=lat, lng=lng, radius=6, color="red", css_class="x"
    )


class TestClusterPoints:
    def test_empty(self):
        assert cluster_points([], zoom=2) == []

    def test_nearby_points_grouped_at_low_zoom(self):
        markers = [
            _marker("a", 35.70, 139.70),
            _marker("b", 35.72, 139.75),
            _marker("c", -33.45, -70.66),
        ]
        clusters = cluster_points(markers, zoom=2)
        assert sorted(c.count for c in clusters) == [1, 2]
        grouped = next(c for c in clusters if c.count == 2)
        assert grouped.event_ids == ("a", "b")
        assert grouped.lat == (35.70 + 35.72) / 2

    def test_points_split_at_high_zoom(self):
        markers = [_marker("a", 35.70, 139.70), _marker("b", 35.72, 139.75)]
        clusters = cluster_points(markers, zoom=16)
        assert [c.count for c in clusters] == [1, 1]

    def test_every_marker_in_exactly_one_cluster(self, japan_events):
        markers = [_marker(eq.id, eq.latitude, eq.longitude) for eq in japan_events]
        clusters = cluster_points(markers, zoom=4)
        ids = [i for c in clusters for i in c.event_ids]
        assert sorted(ids) == sorted(eq.id for eq in japan_events)

    def test_nan_coordinates_skipped(self):
        markers = [_marker("a", math.nan, 10.0), _marker("b", 1.0, 1.0)]
        clusters = cluster_points(markers, zoom=2)
        assert [c.event_ids for c in clusters] == [("b",)]

    def test_radius_controls_grouping(self):
        markers = [_marker("a", 0.0, 0.0), _marker("b", 0.0, 1.0)]
        # 1 degree of longitude at zoom 5 is ~22.8 px
        assert len(cluster_points(markers, zoom=5, radius_px=50)) == 1
        assert len(cluster_points(markers, zoom=5, radius_px=10)) == 2

    def test_deterministic(self, japan_events):
        markers = [_marker(eq.id, eq.latitude, eq.longitude) for eq in japan_events]
        assert cluster_points(markers, zoom=3) == cluster_points(markers, zoom=3)
