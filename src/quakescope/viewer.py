"""Viewer session: wires data refresh, filters, playback, layers and location."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from quakescope.config import QuakeScopeConfig
from quakescope.errors import DataFetchError
from quakescope.fetchers.usgs import EventSource
from quakescope.geo import NearestEvent, nearest_event
from quakescope.geolocation import (
    CascadeOutcome,
    GeolocationCascade,
    IpLookup,
    NullPositionProvider,
    PositionProvider,
)
from quakescope.layers import LayerManager, SelectionSink
from quakescope.models import (
    EventStats,
    FilterOptions,
    Notification,
    PlaybackState,
    SeismicEvent,
    UserLocation,
)
from quakescope.playback import AsyncioFrameDriver, FrameDriver, PlaybackEngine, PlaybackStatus
from quakescope.stats import compute_stats
from quakescope.surface import InMemorySurface, MapLayer, MapSurface

logger = logging.getLogger(__name__)

Notifier = Callable[[Notification], None]


def _log_notification(note: Notification) -> None:
    level = logging.WARNING if note.level == "error" else logging.INFO
    logger.log(level, "%s: %s", note.title, note.description)


class QuakeScopeViewer:
    """One single-user viewing session over a map surface.

    The viewer is the only writer of the event list and filters. The
    playback engine and the geolocation cascade own their own state and
    report back through callbacks; every change ends in :meth:`_render`,
    which redraws only when its inputs actually changed.
    """

    def __init__(
        self,
        surface: MapSurface,
        source: EventSource,
        *,
        config: QuakeScopeConfig | None = None,
        filters: FilterOptions | None = None,
        position_provider: PositionProvider | None = None,
        ip_lookup: IpLookup | None = None,
        frame_driver: FrameDriver | None = None,
        notify: Notifier | None = None,
        on_select: SelectionSink | None = None,
        on_deselect: SelectionSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or QuakeScopeConfig()
        self.filters = filters or FilterOptions()
        self._source = source
        self._notify = notify or _log_notification
        self._on_select = on_select
        self._on_deselect = on_deselect

        self._events: tuple[SeismicEvent, ...] = ()
        self.last_error: str | None = None
        self.user_location: UserLocation | None = None
        self.selected: SeismicEvent | None = None

        self.layers = LayerManager(
            surface,
            on_select=self._handle_select,
            on_deselect=self._handle_deselect,
            cluster_radius_px=self.config.cluster_radius_px,
            recent_window_ms=self.config.recent_window_ms,
            clock=clock,
        )
        self.playback = PlaybackEngine(
            frame_driver or AsyncioFrameDriver(self.config.frame_interval_ms),
            duration_ms=self.config.playback_duration_ms,
            on_change=self._on_playback_change,
        )
        self.geolocation = GeolocationCascade(
            position_provider or NullPositionProvider(),
            ip_lookup=ip_lookup,
            on_location=self._on_location,
            notify=self._notify,
            single_fix_timeout=self.config.single_fix_timeout_s,
            single_fix_deadline=self.config.single_fix_deadline_s,
            watch_deadline=self.config.watch_deadline_s,
            ip_lookup_url=self.config.ip_lookup_url,
            ip_timeout=self.config.ip_lookup_timeout_s,
        )

        self._rendered_from: tuple[SeismicEvent, ...] | None = None
        self._render_key: tuple | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def events(self) -> tuple[SeismicEvent, ...]:
        return self._events

    @property
    def playback_state(self) -> PlaybackState:
        return self.playback.state

    def visible_events(self) -> list[SeismicEvent]:
        return self.playback.visible_events()

    # Data

    async def refresh(self) -> bool:
        """Fetch events for the current filters.

        On failure the previous event list stays on screen and one error
        notification is emitted.
        """
        try:
            events = await self._source.fetch_events(self.filters)
        except DataFetchError as exc:
            self.last_error = str(exc)
            logger.warning("Event refresh failed: %s", exc)
            self._notify(Notification("Error", str(exc), level="error"))
            return False
        if self._closed:
            return False
        self.last_error = None
        self.load_events(events)
        self._notify(
            Notification("Real-time Data Updated", f"Loaded {len(self._events)} recent earthquakes")
        )
        return True

    def load_events(self, events: Iterable[SeismicEvent]) -> None:
        """Replace the event list; playback restarts from the beginning."""
        self._events = tuple(events)
        self.playback.set_events(self._events)
        self._render()

    async def set_filters(self, filters: FilterOptions) -> None:
        """Apply new filters, refetching only when the query changed."""
        previous, self.filters = self.filters, filters
        if filters.query_key() != previous.query_key():
            await self.refresh()
        else:
            self._render()

    # Playback

    def toggle_playback(self) -> bool:
        was_playing = self.playback.status is PlaybackStatus.RUNNING
        playing = self.playback.toggle()
        if playing:
            self._notify(Notification("Timeline Playing", "Replaying seismic events chronologically"))
        elif not was_playing:
            self._notify(Notification("No Events", "Nothing to replay for the current filters"))
        else:
            self._notify(Notification("Timeline Paused", "Seismic playback stopped"))
        self._render()
        return playing

    def seek(self, progress: float) -> None:
        self.playback.seek(progress)
        self._render()

    # Location

    async def locate(self) -> CascadeOutcome:
        """Run (or join) a geolocation cascade on demand."""
        return await self.geolocation.run()

    def nearest_to_user(self) -> NearestEvent | None:
        return nearest_event(self.user_location, self._events)

    # Insights

    def stats(self) -> EventStats:
        return compute_stats(self._events)

    # Lifecycle

    async def start(self) -> None:
        """Initial fetch, automatic location attempt and periodic refresh."""
        await self.refresh()
        self.geolocation.start_automatic()
        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._auto_refresh())

    def close(self) -> None:
        """Tear down: no callback mutates the session after this returns."""
        self._closed = True
        self.playback.close()
        self.geolocation.cancel()
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None
        self.layers.teardown()

    async def _auto_refresh(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.config.refresh_interval_s)
            await self.refresh()

    # Callbacks

    def _on_playback_change(self, state: PlaybackState) -> None:
        self._render()

    def _on_location(self, location: UserLocation) -> None:
        if self._closed:
            return
        self.user_location = location
        self._render()

    def _handle_select(self, event: SeismicEvent) -> None:
        self.selected = event
        self._notify(Notification(f"M{event.magnitude:.1f} Earthquake", event.place))
        if self._on_select is not None:
            self._on_select(event)

    def _handle_deselect(self, event: SeismicEvent) -> None:
        if self.selected is not None and self.selected.id == event.id:
            self.selected = None
        if self._on_deselect is not None:
            self._on_deselect(event)

    def _render(self) -> None:
        if self._closed:
            return
        visible = self.playback.visible_events()
        key = (tuple(eq.id for eq in visible), self.filters.display_mode, self.user_location)
        if self._rendered_from is self._events and key == self._render_key:
            return
        self._rendered_from = self._events
        self._render_key = key
        self.layers.render(visible, self.filters.display_mode, self.user_location)


@dataclass(frozen=True)
class MapSnapshot:
    """A rendered viewer state, detached from the session that produced it."""

    events: tuple[SeismicEvent, ...]
    visible: tuple[SeismicEvent, ...]
    layers: tuple[MapLayer, ...]
    stats: EventStats
    center: tuple[float, float]
    zoom: float
    user_location: UserLocation | None = None
    nearest: NearestEvent | None = None
    location_outcome: CascadeOutcome | None = None


async def take_snapshot(
    source: EventSource,
    filters: FilterOptions | None = None,
    *,
    config: QuakeScopeConfig | None = None,
    position_provider: PositionProvider | None = None,
    ip_lookup: IpLookup | None = None,
    locate: bool = False,
    progress: float | None = None,
    notify: Notifier | None = None,
) -> MapSnapshot:
    """Fetch, optionally locate and scrub, render once and capture the result.

    Raises:
        DataFetchError: If the events could not be fetched.
    """
    config = config or QuakeScopeConfig()
    surface = InMemorySurface(zoom=config.initial_zoom, center=config.initial_center)
    viewer = QuakeScopeViewer(
        surface,
        source,
        config=config,
        filters=filters,
        position_provider=position_provider,
        ip_lookup=ip_lookup,
        notify=notify,
    )
    try:
        if not await viewer.refresh():
            raise DataFetchError(viewer.last_error or "Failed to fetch earthquake data")
        outcome = await viewer.locate() if locate else None
        if progress is not None:
            viewer.seek(progress)
        return MapSnapshot(
            events=viewer.events,
            visible=tuple(viewer.visible_events()),
            layers=tuple(viewer.layers.layers()),
            stats=viewer.stats(),
            center=surface.center,
            zoom=surface.zoom,
            user_location=viewer.user_location,
            nearest=viewer.nearest_to_user(),
            location_outcome=outcome,
        )
    finally:
        viewer.close()
