"""Layer engine: reconcile events and display flags into map primitives."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Union

from quakescope.clustering import cluster_points
from quakescope.models import DisplayMode, SeismicEvent, UserLocation
from quakescope.styles import (
    HEAT_GRADIENT,
    HEAT_MAX_ZOOM,
    HEAT_MIN_OPACITY,
    classify_magnitude,
    heat_blur,
    heat_intensity,
    heat_radius,
)
from quakescope.surface import (
    ClusterGroup,
    HeatmapLayer,
    LocationMarker,
    MapLayer,
    MapSurface,
    PointMarker,
)

logger = logging.getLogger(__name__)

SelectionSink = Callable[[SeismicEvent], None]

HOVER_SCALE = 1.5
USER_FOCUS_MIN_ZOOM = 5


@dataclass
class PointTarget:
    """Point mode: one circle marker per event."""

    markers: list[PointMarker] = field(default_factory=list)

    def layers(self) -> list[MapLayer]:
        return list(self.markers)


@dataclass
class ClusterTarget:
    """Cluster mode: a single group layer, absent when there are no events."""

    group: ClusterGroup | None = None

    def layers(self) -> list[MapLayer]:
        return [self.group] if self.group is not None else []


RenderTarget = Union[PointTarget, ClusterTarget]


def _noop(_: SeismicEvent) -> None:
    return None


class LayerManager:
    """Owns every primitive on a :class:`MapSurface`.

    Each :meth:`render` call rebuilds the full primitive set from its inputs
    inside one surface batch, removing the previous set before adding the
    new one, so no frame ever mixes layers from two event lists.
    """

    def __init__(
        self,
        surface: MapSurface,
        *,
        on_select: SelectionSink | None = None,
        on_deselect: SelectionSink | None = None,
        cluster_radius_px: float = 50.0,
        recent_window_ms: int = 3_600_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._surface = surface
        self._on_select = on_select or _noop
        self._on_deselect = on_deselect or _noop
        self._cluster_radius_px = cluster_radius_px
        self._recent_window_ms = recent_window_ms
        self._clock = clock

        self._target: RenderTarget = PointTarget()
        self._heatmap: HeatmapLayer | None = None
        self._location_marker: LocationMarker | None = None
        self._zoom_unsubscribe: Callable[[], None] | None = None
        self._centered = False

        self._events: tuple[SeismicEvent, ...] = ()
        self._mode = DisplayMode()
        self._selected: SeismicEvent | None = None

    @property
    def target(self) -> RenderTarget:
        return self._target

    @property
    def mode(self) -> DisplayMode:
        return self._mode

    @property
    def selected(self) -> SeismicEvent | None:
        return self._selected

    @property
    def heatmap(self) -> HeatmapLayer | None:
        return self._heatmap

    @property
    def location_marker(self) -> LocationMarker | None:
        return self._location_marker

    def layers(self) -> list[MapLayer]:
        """Every primitive this manager currently has on the surface."""
        owned = self._target.layers()
        if self._heatmap is not None:
            owned.append(self._heatmap)
        if self._location_marker is not None:
            owned.append(self._location_marker)
        return owned

    def snapshot(self) -> tuple:
        """Visible state of all primitives, comparable across renders."""
        return tuple(layer.visual() for layer in self.layers())

    def render(
        self,
        events: Iterable[SeismicEvent],
        mode: DisplayMode,
        user_location: UserLocation | None = None,
    ) -> None:
        """Replace the whole primitive set with one derived from the inputs."""
        events = tuple(events)
        with self._surface.batch():
            self._clear_event_layers()
            self._events = events
            self._mode = mode
            self._reconcile_selection()

            if mode.show_clusters:
                self._target = self._build_cluster_target(events)
            else:
                self._target = self._build_point_target(events)
            if mode.show_heatmap and events:
                self._heatmap = self._build_heatmap(events)
                self._surface.add_layer(self._heatmap)

            self._sync_zoom_subscription()
            self._render_location(user_location)

        logger.debug(
            "Rendered %d events (clusters=%s, heatmap=%s)",
            len(events),
            mode.show_clusters,
            mode.show_heatmap,
        )

    def select(self, event: SeismicEvent) -> None:
        """Make *event* the single selected event."""
        previous = self._selected
        if previous is not None and previous.id != event.id:
            self._on_deselect(previous)
        self._selected = event
        self._on_select(event)

    def deselect(self) -> None:
        previous, self._selected = self._selected, None
        if previous is not None:
            self._on_deselect(previous)

    def teardown(self) -> None:
        """Remove every primitive and subscription from the surface."""
        with self._surface.batch():
            self._clear_event_layers()
            if self._location_marker is not None:
                self._surface.remove_layer(self._location_marker)
                self._location_marker = None
        if self._zoom_unsubscribe is not None:
            self._zoom_unsubscribe()
            self._zoom_unsubscribe = None
        self._target = PointTarget()
        self._events = ()
        self._selected = None

    # Render targets

    def _build_point_target(self, events: tuple[SeismicEvent, ...]) -> PointTarget:
        target = PointTarget()
        for eq in events:
            marker = self._point_marker(eq)
            self._surface.add_layer(marker)
            self._bind_point(marker, eq)
            target.markers.append(marker)
        return target

    def _build_cluster_target(self, events: tuple[SeismicEvent, ...]) -> ClusterTarget:
        if not events:
            return ClusterTarget()
        members = [self._icon_marker(eq) for eq in events]
        group = ClusterGroup(
            members=members,
            clusters=cluster_points(members, self._surface.zoom, self._cluster_radius_px),
            radius_px=self._cluster_radius_px,
        )
        self._surface.add_layer(group)
        for marker, eq in zip(members, events, strict=True):
            self._bind_click(marker, eq)
        return ClusterTarget(group=group)

    def _point_marker(self, eq: SeismicEvent) -> PointMarker:
        style = classify_magnitude(eq.magnitude)
        pulsing = self._is_recent(eq)
        css = f"earthquake-marker {style.css_class}"
        if pulsing:
            css += " pulse-glow"
        return PointMarker(
            event_id=eq.id,
            lat=eq.latitude,
            lng=eq.longitude,
            radius=style.radius,
            color=style.color,
            css_class=css,
            pulsing=pulsing,
        )

    def _icon_marker(self, eq: SeismicEvent) -> PointMarker:
        style = classify_magnitude(eq.magnitude)
        return PointMarker(
            event_id=eq.id,
            lat=eq.latitude,
            lng=eq.longitude,
            radius=style.radius,
            color=style.color,
            css_class=f"eq-div-icon {style.css_class}",
            opacity=0.75,
            fill_opacity=0.75,
            icon=True,
        )

    def _is_recent(self, eq: SeismicEvent) -> bool:
        if not isinstance(eq.time_ms, (int, float)):
            return False
        return self._clock() * 1000 - eq.time_ms < self._recent_window_ms

    # Interaction

    def _bind_click(self, marker: PointMarker, eq: SeismicEvent) -> None:
        self._surface.bind(marker, "click", lambda: self.select(eq))

    def _bind_point(self, marker: PointMarker, eq: SeismicEvent) -> None:
        base_radius = marker.radius

        def on_over() -> None:
            marker.radius = base_radius * HOVER_SCALE
            marker.weight = 3.0
            marker.opacity = 1.0
            marker.fill_opacity = 0.8
            self._surface.update_layer(marker)

        def on_out() -> None:
            marker.radius = base_radius
            marker.weight = 2.0
            marker.opacity = 0.8
            marker.fill_opacity = 0.6
            self._surface.update_layer(marker)

        self._bind_click(marker, eq)
        self._surface.bind(marker, "mouseover", on_over)
        self._surface.bind(marker, "mouseout", on_out)

    def _reconcile_selection(self) -> None:
        if self._selected is None:
            return
        current = next((eq for eq in self._events if eq.id == self._selected.id), None)
        if current is None:
            self.deselect()
        else:
            self._selected = current

    # Heatmap and zoom

    def _build_heatmap(self, events: tuple[SeismicEvent, ...]) -> HeatmapLayer:
        radius = heat_radius(self._surface.zoom)
        return HeatmapLayer(
            points=[(eq.latitude, eq.longitude, heat_intensity(eq.magnitude)) for eq in events],
            radius=radius,
            blur=heat_blur(radius),
            gradient=dict(HEAT_GRADIENT),
            min_opacity=HEAT_MIN_OPACITY,
            max_zoom=HEAT_MAX_ZOOM,
        )

    def _sync_zoom_subscription(self) -> None:
        needs_zoom = self._heatmap is not None or isinstance(self._target, ClusterTarget)
        if needs_zoom and self._zoom_unsubscribe is None:
            self._zoom_unsubscribe = self._surface.on_zoom(self._on_zoom)
        elif not needs_zoom and self._zoom_unsubscribe is not None:
            self._zoom_unsubscribe()
            self._zoom_unsubscribe = None

    def _on_zoom(self, zoom: float) -> None:
        if self._heatmap is not None:
            radius = heat_radius(zoom)
            self._heatmap.radius = radius
            self._heatmap.blur = heat_blur(radius)
            self._surface.update_layer(self._heatmap)
        if isinstance(self._target, ClusterTarget) and self._target.group is not None:
            group = self._target.group
            group.clusters = cluster_points(group.members, zoom, self._cluster_radius_px)
            self._surface.update_layer(group)

    # Teardown helpers

    def _clear_event_layers(self) -> None:
        for layer in self._target.layers():
            self._surface.remove_layer(layer)
        self._target = PointTarget()
        if self._heatmap is not None:
            self._surface.remove_layer(self._heatmap)
            self._heatmap = None

    def _render_location(self, user_location: UserLocation | None) -> None:
        if self._location_marker is not None:
            self._surface.remove_layer(self._location_marker)
            self._location_marker = None
        if user_location is None:
            return
        self._location_marker = LocationMarker(
            lat=user_location.lat,
            lng=user_location.lng,
            approximate=user_location.approximate,
        )
        self._surface.add_layer(self._location_marker)
        if not self._centered:
            self._centered = True
            zoom = max(USER_FOCUS_MIN_ZOOM, self._surface.zoom)
            self._surface.fly_to(user_location.lat, user_location.lng, zoom)
