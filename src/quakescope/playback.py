"""Timeline playback: a frame-driven clock that replays events in time order.

The engine is host-agnostic. A :class:`FrameDriver` delivers frame
timestamps; :func:`tick` turns one timestamp into the next state. Tests drive
frames by hand, the CLI uses :class:`AsyncioFrameDriver`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from enum import Enum
from typing import Any, Protocol

from quakescope.models import PlaybackState, SeismicEvent

logger = logging.getLogger(__name__)

PLAYBACK_DURATION_MS = 30_000.0

FrameCallback = Callable[[float], None]


class PlaybackStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class FrameDriver(Protocol):
    """Schedules one callback per display frame, like requestAnimationFrame."""

    def request_frame(self, callback: FrameCallback) -> Any: ...

    def cancel_frame(self, handle: Any) -> None: ...


class AsyncioFrameDriver:
    """Frame driver on the running asyncio loop at a fixed interval.

    Frame timestamps are ``loop.time()`` in milliseconds.
    """

    def __init__(
        self,
        interval_ms: float = 16.0,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._interval_s = interval_ms / 1000
        self._loop = loop

    def request_frame(self, callback: FrameCallback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(
            self._interval_s, lambda: callback(loop.time() * 1000)
        )

    def cancel_frame(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()


def compute_cutoff(min_time: float, max_time: float, progress: float) -> float:
    """Time threshold for *progress*: ``min + progress * (max - min)``."""
    if min_time == max_time:
        return max_time
    progress = max(0.0, min(1.0, progress))
    return min_time + progress * (max_time - min_time)


def tick(
    state: PlaybackState,
    now_ms: float,
    duration_ms: float = PLAYBACK_DURATION_MS,
) -> tuple[PlaybackState, bool]:
    """Advance *state* to the frame at *now_ms*.

    Returns the next state and whether another frame should be scheduled.
    The first frame of a run only records its timestamp. Progress never
    decreases and stops at exactly 1.0, which also ends the run.
    """
    if not state.is_playing:
        return state, False
    elapsed = 0.0 if state.last_tick_ms is None else max(0.0, now_ms - state.last_tick_ms)
    progress = min(1.0, state.progress + elapsed / duration_ms)
    if progress >= 1.0:
        return replace(state, progress=1.0, is_playing=False, last_tick_ms=None), False
    return replace(state, progress=progress, last_tick_ms=now_ms), True


class PlaybackEngine:
    """Idle/Running state machine over a set of event times."""

    def __init__(
        self,
        driver: FrameDriver,
        duration_ms: float = PLAYBACK_DURATION_MS,
        on_change: Callable[[PlaybackState], None] | None = None,
    ) -> None:
        self._driver = driver
        self._duration_ms = duration_ms
        self._on_change = on_change
        self._state = PlaybackState()
        self._events: tuple[SeismicEvent, ...] = ()
        self._min_time: float | None = None
        self._max_time: float | None = None
        self._handle: Any = None
        self._closed = False

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def status(self) -> PlaybackStatus:
        return PlaybackStatus.RUNNING if self._state.is_playing else PlaybackStatus.IDLE

    @property
    def progress(self) -> float:
        return self._state.progress

    @property
    def time_bounds(self) -> tuple[float, float] | None:
        if self._min_time is None or self._max_time is None:
            return None
        return self._min_time, self._max_time

    @property
    def cutoff(self) -> float | None:
        """Current time threshold, or None when there are no events."""
        if self._min_time is None or self._max_time is None:
            return None
        return compute_cutoff(self._min_time, self._max_time, self._state.progress)

    def set_events(self, events: Iterable[SeismicEvent]) -> None:
        """Swap the event set. Progress always restarts at 0."""
        self._events = tuple(events)
        times = [eq.time_ms for eq in self._events]
        self._min_time = min(times) if times else None
        self._max_time = max(times) if times else None
        engaged = self._state.engaged and self._state.is_playing
        self._set_state(replace(self._state, progress=0.0, engaged=engaged))
        if not self._events and self._state.is_playing:
            self.pause()

    def visible_events(self) -> list[SeismicEvent]:
        """Events shown right now.

        Before playback is engaged everything is visible; afterwards only
        events at or before the cutoff, frozen while paused.
        """
        cutoff = self.cutoff
        if not self._state.engaged or cutoff is None:
            return list(self._events)
        return [eq for eq in self._events if eq.time_ms <= cutoff]

    def play(self) -> bool:
        """Start or resume. A finished timeline restarts from the beginning."""
        if self._closed or self._state.is_playing:
            return self._state.is_playing
        if not self._events:
            logger.debug("Ignoring play request with no events")
            return False
        progress = 0.0 if self._state.progress >= 1.0 else self._state.progress
        self._set_state(
            replace(self._state, progress=progress, is_playing=True, engaged=True, last_tick_ms=None)
        )
        self._schedule()
        return True

    def pause(self) -> None:
        self._cancel_frame()
        if self._state.is_playing:
            self._set_state(replace(self._state, is_playing=False, last_tick_ms=None))

    def toggle(self) -> bool:
        """Flip between playing and paused; returns whether it is now playing."""
        if self._state.is_playing:
            self.pause()
            return False
        return self.play()

    def seek(self, progress: float) -> None:
        """Scrub to *progress* without changing Running/Idle."""
        if self._closed:
            return
        progress = max(0.0, min(1.0, progress))
        self._set_state(replace(self._state, progress=progress, engaged=True))

    def close(self) -> None:
        """Stop for good; no frame runs after this returns."""
        self.pause()
        self._closed = True

    def _schedule(self) -> None:
        self._handle = self._driver.request_frame(self._on_frame)

    def _cancel_frame(self) -> None:
        if self._handle is not None:
            self._driver.cancel_frame(self._handle)
            self._handle = None

    def _on_frame(self, now_ms: float) -> None:
        self._handle = None
        if self._closed or not self._state.is_playing:
            return
        state, keep_going = tick(self._state, now_ms, self._duration_ms)
        self._set_state(state)
        if keep_going and not self._closed and self._state.is_playing:
            self._schedule()
        elif not keep_going:
            logger.debug("Playback finished")

    def _set_state(self, state: PlaybackState) -> None:
        if state == self._state:
            return
        self._state = state
        if self._on_change is not None:
            self._on_change(state)
