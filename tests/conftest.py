"""Shared fixtures for quakescope tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from quakescope.errors import GeolocationError
from quakescope.geolocation import Fix
from quakescope.models import FilterOptions, SeismicEvent
from quakescope.surface import InMemorySurface

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def make_event(
    event_id: str,
    magnitude: float = 4.0,
    time_ms: int = 1_700_000_000_000,
    latitude: float = 35.0,
    longitude: float = 139.0,
    depth_km: float = 10.0,
    place: str = "Test region",
) -> SeismicEvent:
    return SeismicEvent(
        id=event_id,
        magnitude=magnitude,
        longitude=longitude,
        latitude=latitude,
        depth_km=depth_km,
        time_ms=time_ms,
        place=place,
        url=f"https://earthquake.usgs.gov/earthquakes/eventpage/{event_id}",
    )


class ManualFrameDriver:
    """Frame driver the test advances by hand."""

    def __init__(self) -> None:
        self._next_handle = 0
        self.pending: dict[int, Callable[[float], None]] = {}
        self.requested = 0

    def request_frame(self, callback: Callable[[float], None]) -> int:
        self._next_handle += 1
        self.requested += 1
        self.pending[self._next_handle] = callback
        return self._next_handle

    def cancel_frame(self, handle: int) -> None:
        self.pending.pop(handle, None)

    def frame(self, now_ms: float) -> None:
        """Run every callback scheduled before this frame."""
        ready, self.pending = self.pending, {}
        for callback in ready.values():
            callback(now_ms)


class FakePositionProvider:
    """Scriptable position provider.

    ``single`` and ``watch`` are a :class:`Fix`, a :class:`GeolocationError`
    to raise, or ``"hang"`` to never answer.
    """

    def __init__(
        self,
        *,
        permission: str | None = "prompt",
        single: Any = "hang",
        watch: Any = "hang",
        available: bool = True,
    ) -> None:
        self.available = available
        self.permission = permission
        self.single = single
        self.watch = watch
        self.single_calls = 0
        self.watch_ids: list[int] = []
        self.cleared: list[int] = []
        self.watch_callbacks: dict[int, Callable[[Fix], None]] = {}

    async def permission_state(self) -> str | None:
        return self.permission

    async def current_position(self, *, high_accuracy: bool, timeout: float) -> Fix:
        self.single_calls += 1
        if isinstance(self.single, Fix):
            return self.single
        if isinstance(self.single, GeolocationError):
            raise self.single
        await asyncio.Event().wait()
        raise AssertionError("unreachable")

    def watch_position(
        self,
        on_fix: Callable[[Fix], None],
        on_error: Callable[[GeolocationError], None],
    ) -> int:
        watch_id = len(self.watch_ids) + 1
        self.watch_ids.append(watch_id)
        self.watch_callbacks[watch_id] = on_fix
        loop = asyncio.get_running_loop()
        if isinstance(self.watch, Fix):
            fix = self.watch
            loop.call_soon(on_fix, fix)
            loop.call_soon(on_fix, Fix(lat=fix.lat + 1, lng=fix.lng + 1, accuracy_m=None))
        elif isinstance(self.watch, GeolocationError):
            loop.call_soon(on_error, self.watch)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self.cleared.append(watch_id)


class StaticEventSource:
    """Event source returning canned results, or raising a queued error."""

    def __init__(self, events: list[SeismicEvent] | None = None) -> None:
        self.events = list(events or [])
        self.error: Exception | None = None
        self.calls: list[FilterOptions] = []

    async def fetch_events(self, filters: FilterOptions) -> list[SeismicEvent]:
        self.calls.append(filters)
        if self.error is not None:
            raise self.error
        return list(self.events)


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def sample_usgs_response() -> dict:
    return json.loads((FIXTURES_DIR / "usgs_sample.json").read_text())


@pytest.fixture
def timeline_events() -> list[SeismicEvent]:
    """Three events at t=1000, 2000, 3000 ms in bands minor, moderate, severe."""
    return [
        make_event("ev1", magnitude=2.0, time_ms=1000, latitude=10.0, longitude=10.0),
        make_event("ev2", magnitude=5.5, time_ms=2000, latitude=-20.0, longitude=60.0),
        make_event("ev3", magnitude=7.0, time_ms=3000, latitude=40.0, longitude=-120.0),
    ]


@pytest.fixture
def japan_events() -> list[SeismicEvent]:
    """Events close together near Tokyo plus one far away in Chile."""
    return [
        make_event("jp1", magnitude=5.2, time_ms=1_700_000_000_000,
                   latitude=35.70, longitude=139.70, depth_km=30.0),
        make_event("jp2", magnitude=4.1, time_ms=1_700_000_100_000,
                   latitude=35.72, longitude=139.75, depth_km=80.0),
        make_event("jp3", magnitude=3.2, time_ms=1_700_000_200_000,
                   latitude=35.68, longitude=139.68, depth_km=350.0),
        make_event("cl1", magnitude=6.4, time_ms=1_700_000_300_000,
                   latitude=-33.45, longitude=-70.66, depth_km=15.0),
    ]


@pytest.fixture
def surface() -> InMemorySurface:
    return InMemorySurface()


@pytest.fixture
def frame_driver() -> ManualFrameDriver:
    return ManualFrameDriver()


@pytest.fixture
def event_factory() -> Callable[..., SeismicEvent]:
    return make_event


@pytest.fixture
def provider_factory() -> type[FakePositionProvider]:
    return FakePositionProvider


@pytest.fixture
def event_source(timeline_events: list[SeismicEvent]) -> StaticEventSource:
    return StaticEventSource(timeline_events)
