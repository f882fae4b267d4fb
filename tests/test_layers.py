"""Tests for the layer engine against an in-memory surface."""

from __future__ import annotations

import pytest

from quakescope.layers import ClusterTarget, LayerManager, PointTarget
from quakescope.models import DisplayMode, UserLocation
from quakescope.styles import MagnitudeBand, classify_magnitude
from quakescope.surface import ClusterGroup, HeatmapLayer, LocationMarker, PointMarker

POINTS = DisplayMode()
CLUSTERS = DisplayMode(show_clusters=True)
HEAT = DisplayMode(show_heatmap=True)


@pytest.fixture
def selections():
    return {"selected": [], "deselected": []}


@pytest.fixture
def manager(surface, selections):
    return LayerManager(
        surface,
        on_select=selections["selected"].append,
        on_deselect=selections["deselected"].append,
        clock=lambda: 2_000_000_000.0,
    )


class TestPointMode:
    def test_one_marker_per_event(self, manager, surface, timeline_events):
        manager.render(timeline_events, POINTS)
        markers = surface.layers_of(PointMarker)
        assert len(markers) == 3
        bands = [classify_magnitude(eq.magnitude).band for eq in timeline_events]
        assert bands == [MagnitudeBand.MINOR, MagnitudeBand.MODERATE, MagnitudeBand.SEVERE]
        assert [m.radius for m in markers] == [6, 12, 16]
        assert isinstance(manager.target, PointTarget)

    def test_marker_position_and_style(self, manager, surface, timeline_events):
        manager.render(timeline_events[:1], POINTS)
        marker = surface.layers_of(PointMarker)[0]
        assert (marker.lat, marker.lng) == (10.0, 10.0)
        assert marker.color == classify_magnitude(2.0).color
        assert "magnitude-low" in marker.css_class
        assert not marker.pulsing

    def test_recent_events_pulse(self, surface, event_factory):
        now_s = 1_700_000_000.0
        manager = LayerManager(surface, clock=lambda: now_s)
        fresh = event_factory("fresh", time_ms=int(now_s * 1000) - 60_000)
        stale = event_factory("stale", time_ms=int(now_s * 1000) - 7_200_000)
        manager.render([fresh, stale], POINTS)
        by_id = {m.event_id: m for m in surface.layers_of(PointMarker)}
        assert by_id["fresh"].pulsing
        assert by_id["fresh"].css_class.endswith("pulse-glow")
        assert not by_id["stale"].pulsing

    def test_empty_events_renders_nothing(self, manager, surface):
        manager.render([], POINTS)
        assert surface.layers == []


class TestRenderReplacement:
    def test_idempotent(self, manager, surface, timeline_events):
        manager.render(timeline_events, HEAT)
        first = manager.snapshot()
        manager.render(timeline_events, HEAT)
        assert manager.snapshot() == first
        assert len(surface.layers) == 4

    def test_no_frame_mixes_old_and_new(self, manager, surface, timeline_events, japan_events):
        manager.render(timeline_events, POINTS)
        old_ids = {layer.layer_id for layer in surface.layers}
        manager.render(japan_events, POINTS)
        new_ids = {layer.layer_id for layer in surface.layers}
        assert len(surface.frames) == 2
        for frame in surface.frames:
            ids = set(frame)
            assert ids <= old_ids or ids <= new_ids

    def test_cluster_toggle_leaves_no_leaks(self, manager, surface, timeline_events):
        manager.render(timeline_events, POINTS)
        manager.render(timeline_events, CLUSTERS)
        assert surface.layers_of(PointMarker) == []
        assert len(surface.layers_of(ClusterGroup)) == 1
        assert isinstance(manager.target, ClusterTarget)

        manager.render(timeline_events, POINTS)
        assert surface.layers_of(ClusterGroup) == []
        assert len(surface.layers_of(PointMarker)) == 3
        assert not surface.has_zoom_subscribers()

    def test_cluster_mode_without_events(self, manager, surface):
        manager.render([], CLUSTERS)
        assert surface.layers == []
        assert manager.target.layers() == []

    def test_old_handlers_unbound(self, manager, surface, selections, timeline_events):
        manager.render(timeline_events, POINTS)
        old = surface.layers_of(PointMarker)[0]
        manager.render(timeline_events[1:], POINTS)
        surface.fire(old, "click")
        assert selections["selected"] == []

    def test_teardown(self, manager, surface, timeline_events):
        manager.render(timeline_events, DisplayMode(show_heatmap=True, show_clusters=True),
                       UserLocation(1.0, 2.0))
        manager.teardown()
        assert surface.layers == []
        assert not surface.has_zoom_subscribers()


class TestInteraction:
    def test_hover_enlarges_and_restores(self, manager, surface, timeline_events):
        manager.render(timeline_events, POINTS)
        marker = surface.layers_of(PointMarker)[1]
        surface.fire(marker, "mouseover")
        assert marker.radius == pytest.approx(18.0)
        assert marker.weight == 3.0
        assert marker.opacity == 1.0
        assert marker.fill_opacity == 0.8
        surface.fire(marker, "mouseout")
        assert marker.radius == 12
        assert (marker.weight, marker.opacity, marker.fill_opacity) == (2.0, 0.8, 0.6)

    def test_click_selects(self, manager, surface, selections, timeline_events):
        manager.render(timeline_events, POINTS)
        surface.fire(surface.layers_of(PointMarker)[2], "click")
        assert [eq.id for eq in selections["selected"]] == ["ev3"]
        assert manager.selected.id == "ev3"

    def test_second_selection_deselects_first(self, manager, surface, selections, timeline_events):
        manager.render(timeline_events, POINTS)
        markers = surface.layers_of(PointMarker)
        surface.fire(markers[0], "click")
        surface.fire(markers[1], "click")
        assert [eq.id for eq in selections["deselected"]] == ["ev1"]
        assert manager.selected.id == "ev2"

    def test_selection_dropped_when_event_disappears(
        self, manager, surface, selections, timeline_events
    ):
        manager.render(timeline_events, POINTS)
        surface.fire(surface.layers_of(PointMarker)[0], "click")
        manager.render(timeline_events[1:], POINTS)
        assert manager.selected is None
        assert [eq.id for eq in selections["deselected"]] == ["ev1"]

    def test_selection_kept_when_event_remains(self, manager, surface, selections, timeline_events):
        manager.render(timeline_events, POINTS)
        surface.fire(surface.layers_of(PointMarker)[2], "click")
        manager.render(timeline_events, CLUSTERS)
        assert manager.selected.id == "ev3"
        assert selections["deselected"] == []

    def test_cluster_members_clickable(self, manager, surface, selections, timeline_events):
        manager.render(timeline_events, CLUSTERS)
        group = surface.layers_of(ClusterGroup)[0]
        surface.fire(group.members[0], "click")
        assert [eq.id for eq in selections["selected"]] == ["ev1"]
        surface.fire(group.members[0], "mouseover")
        assert group.members[0].radius == 6


class TestHeatmapAndZoom:
    def test_heatmap_samples(self, manager, surface, timeline_events):
        manager.render(timeline_events, HEAT)
        heat = surface.layers_of(HeatmapLayer)[0]
        assert heat.points[0] == (10.0, 10.0, pytest.approx(0.25))
        assert heat.points[2][2] == pytest.approx(0.875)
        assert heat.radius == 18
        assert heat.blur == 14

    def test_no_heatmap_without_events(self, manager, surface):
        manager.render([], HEAT)
        assert surface.layers_of(HeatmapLayer) == []

    def test_zoom_updates_heat_radius(self, manager, surface, timeline_events):
        manager.render(timeline_events, HEAT)
        surface.set_zoom(10)
        heat = manager.heatmap
        assert heat.radius == 42
        assert heat.blur == 34

    def test_zoom_subscription_released(self, manager, surface, timeline_events):
        manager.render(timeline_events, HEAT)
        assert surface.has_zoom_subscribers()
        manager.render(timeline_events, POINTS)
        assert not surface.has_zoom_subscribers()

    def test_zoom_reclusters(self, manager, surface, japan_events):
        manager.render(japan_events, CLUSTERS)
        group = manager.target.group
        assert sorted(c.count for c in group.clusters) == [1, 3]
        surface.set_zoom(17)
        assert len(group.clusters) == 4


class TestUserLocation:
    def test_marker_and_single_recenter(self, manager, surface, timeline_events):
        manager.render(timeline_events, POINTS, UserLocation(35.0, 139.0))
        assert surface.fly_to_calls == [(35.0, 139.0, 5)]
        assert len(surface.layers_of(LocationMarker)) == 1

        manager.render(timeline_events, POINTS, UserLocation(36.0, 140.0, approximate=True))
        assert len(surface.fly_to_calls) == 1
        markers = surface.layers_of(LocationMarker)
        assert len(markers) == 1
        assert (markers[0].lat, markers[0].lng, markers[0].approximate) == (36.0, 140.0, True)

    def test_recenter_keeps_higher_zoom(self, surface, timeline_events):
        surface.set_zoom(9)
        manager = LayerManager(surface)
        manager.render(timeline_events, POINTS, UserLocation(1.0, 2.0))
        assert surface.fly_to_calls == [(1.0, 2.0, 9)]

    def test_location_survives_mode_change(self, manager, surface, timeline_events):
        loc = UserLocation(1.0, 2.0)
        manager.render(timeline_events, POINTS, loc)
        manager.render(timeline_events, CLUSTERS, loc)
        assert len(surface.layers_of(LocationMarker)) == 1
