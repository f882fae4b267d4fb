"""User location acquisition as a staged fallback cascade.

Stages run in order until one yields a position:

1. permission check (best effort; an explicit denial ends the run)
2. one high-accuracy fix, bounded by the provider timeout and a caller deadline
3. a continuous watch, first fix wins
4. IP-based lookup, marked approximate
5. terminal failure with a single descriptive reason

Results pass through a one-shot :class:`ResultCell`, so a run produces at most
one location no matter how many callbacks fire or how late they arrive.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Protocol, TypeVar

from quakescope.errors import (
    GeolocationDenied,
    GeolocationError,
    GeolocationTimeout,
    GeolocationUnavailable,
)
from quakescope.fetchers.ipgeo import IPAPI_URL, lookup_ip_location
from quakescope.models import Notification, UserLocation

logger = logging.getLogger(__name__)

T = TypeVar("T")

IpLookup = Callable[[], Awaitable["UserLocation | None"]]
Notifier = Callable[[Notification], None]

UNSUPPORTED_MESSAGE = "Geolocation is not supported on this platform"
BLOCKED_MESSAGE = (
    "Location permission is blocked. Enable it in the system or browser "
    "settings and retry."
)
FAILURE_MESSAGE = (
    "Failed to get location. Please ensure Location Services are enabled "
    "for your device and retry."
)


@dataclass(frozen=True)
class Fix:
    """A position reported by a device sensor."""

    lat: float
    lng: float
    accuracy_m: float | None = None


class PositionProvider(Protocol):
    """Platform position source, shaped like the browser Geolocation API.

    Watch callbacks must be invoked on the event loop thread.
    """

    available: bool

    async def permission_state(self) -> str | None: ...

    async def current_position(self, *, high_accuracy: bool, timeout: float) -> Fix: ...

    def watch_position(
        self,
        on_fix: Callable[[Fix], None],
        on_error: Callable[[GeolocationError], None],
    ) -> int: ...

    def clear_watch(self, watch_id: int) -> None: ...


class CascadeStage(str, Enum):
    PERMISSION = "permission"
    SINGLE_FIX = "single_fix"
    WATCH = "watch"
    NETWORK = "network"
    FAILED = "failed"


@dataclass(frozen=True)
class CascadeOutcome:
    """How one cascade run ended."""

    stage: CascadeStage
    location: UserLocation | None = None
    error: GeolocationError | None = None

    @property
    def succeeded(self) -> bool:
        return self.location is not None

    @property
    def reason(self) -> str | None:
        return str(self.error) if self.error is not None else None


class ResultCell(Generic[T]):
    """Write-once slot: the first :meth:`set` wins, later ones are refused."""

    def __init__(self) -> None:
        self._value: T | None = None
        self._closed = False

    @property
    def is_set(self) -> bool:
        return self._closed

    @property
    def value(self) -> T | None:
        return self._value

    def set(self, value: T) -> bool:
        if self._closed:
            return False
        self._value = value
        self._closed = True
        return True

    def close(self) -> None:
        """Refuse all future writes without storing a value."""
        self._closed = True


class GeolocationCascade:
    """Acquire the user's location once per run, falling back stage by stage.

    Calling :meth:`run` while a run is in flight joins that run instead of
    starting another. :meth:`start_automatic` fires at most once per instance;
    manual retries go through :meth:`run`.
    """

    def __init__(
        self,
        provider: PositionProvider,
        *,
        ip_lookup: IpLookup | None = None,
        on_location: Callable[[UserLocation], None] | None = None,
        notify: Notifier | None = None,
        single_fix_timeout: float = 20.0,
        single_fix_deadline: float = 23.0,
        watch_deadline: float = 20.0,
        ip_lookup_url: str = IPAPI_URL,
        ip_timeout: float = 8.0,
    ) -> None:
        self._provider = provider
        self._ip_lookup = ip_lookup or (
            lambda: asyncio.to_thread(lookup_ip_location, ip_lookup_url, ip_timeout)
        )
        self._on_location = on_location
        self._notify = notify
        self._single_fix_timeout = single_fix_timeout
        self._single_fix_deadline = single_fix_deadline
        self._watch_deadline = watch_deadline
        self._ip_timeout = ip_timeout

        self._task: asyncio.Task[CascadeOutcome] | None = None
        self._cell: ResultCell[UserLocation] | None = None
        self._watch_id: int | None = None
        self._auto_started = False
        self._location: UserLocation | None = None
        self._outcome: CascadeOutcome | None = None

    @property
    def location(self) -> UserLocation | None:
        return self._location

    @property
    def outcome(self) -> CascadeOutcome | None:
        return self._outcome

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_automatic(self) -> asyncio.Task[CascadeOutcome] | None:
        """Kick off the startup run. Later calls are no-ops."""
        if self._auto_started:
            return None
        self._auto_started = True
        return self._ensure_task()

    async def run(self) -> CascadeOutcome:
        """Run the cascade, or wait for the run already in progress."""
        return await asyncio.shield(self._ensure_task())

    def cancel(self) -> None:
        """Abort the in-flight run; it will not touch any state afterwards."""
        if self._cell is not None:
            self._cell.close()
        if self._watch_id is not None:
            self._provider.clear_watch(self._watch_id)
            self._watch_id = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _ensure_task(self) -> asyncio.Task[CascadeOutcome]:
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self._run_once())
        return self._task

    async def _run_once(self) -> CascadeOutcome:
        cell: ResultCell[UserLocation] = ResultCell()
        self._cell = cell
        try:
            outcome = await self._run_stages(cell)
        except asyncio.CancelledError:
            cell.close()
            logger.debug("Geolocation cascade cancelled")
            raise
        except Exception as exc:
            logger.warning("Geolocation cascade failed unexpectedly", exc_info=True)
            outcome = CascadeOutcome(CascadeStage.FAILED, error=GeolocationError(str(exc)))
        self._outcome = outcome
        self._report(outcome)
        return outcome

    async def _run_stages(self, cell: ResultCell[UserLocation]) -> CascadeOutcome:
        if not self._provider.available:
            return CascadeOutcome(
                CascadeStage.PERMISSION, error=GeolocationUnavailable(UNSUPPORTED_MESSAGE)
            )

        if await self._permission_denied():
            return CascadeOutcome(
                CascadeStage.PERMISSION, error=GeolocationDenied(BLOCKED_MESSAGE)
            )

        try:
            fix = await asyncio.wait_for(
                self._provider.current_position(
                    high_accuracy=True, timeout=self._single_fix_timeout
                ),
                timeout=self._single_fix_deadline,
            )
        except (GeolocationDenied, GeolocationUnavailable) as exc:
            return CascadeOutcome(CascadeStage.SINGLE_FIX, error=exc)
        except (GeolocationError, asyncio.TimeoutError) as exc:
            logger.debug("Precise fix failed: %r", exc)
        else:
            return self._accept(cell, CascadeStage.SINGLE_FIX, _from_fix(fix))

        try:
            fix = await self._watch_once()
        except (GeolocationDenied, GeolocationUnavailable) as exc:
            return CascadeOutcome(CascadeStage.WATCH, error=exc)
        except (GeolocationError, asyncio.TimeoutError) as exc:
            logger.debug("Continuous fix failed: %r", exc)
        else:
            return self._accept(cell, CascadeStage.WATCH, _from_fix(fix))

        try:
            approx = await asyncio.wait_for(self._ip_lookup(), timeout=self._ip_timeout)
        except asyncio.TimeoutError:
            logger.debug("IP lookup timed out")
            approx = None
        if approx is not None:
            return self._accept(
                cell,
                CascadeStage.NETWORK,
                UserLocation(lat=approx.lat, lng=approx.lng, approximate=True),
            )

        return CascadeOutcome(CascadeStage.FAILED, error=GeolocationError(FAILURE_MESSAGE))

    async def _permission_denied(self) -> bool:
        try:
            state = await self._provider.permission_state()
        except Exception:
            logger.debug("Permission query unsupported", exc_info=True)
            return False
        return state == "denied"

    async def _watch_once(self) -> Fix:
        loop = asyncio.get_running_loop()
        first: asyncio.Future[Fix] = loop.create_future()

        def on_fix(fix: Fix) -> None:
            if first.done():
                logger.debug("Discarding extra watch fix")
                return
            first.set_result(fix)

        def on_error(error: GeolocationError) -> None:
            if not first.done():
                first.set_exception(error)

        watch_id = self._provider.watch_position(on_fix, on_error)
        self._watch_id = watch_id
        try:
            return await asyncio.wait_for(first, timeout=self._watch_deadline)
        except asyncio.TimeoutError:
            raise GeolocationTimeout("Continuous location watch timed out") from None
        finally:
            if self._watch_id == watch_id:
                self._provider.clear_watch(watch_id)
                self._watch_id = None

    def _accept(
        self,
        cell: ResultCell[UserLocation],
        stage: CascadeStage,
        location: UserLocation,
    ) -> CascadeOutcome:
        if not cell.set(location):
            logger.debug("Discarding %s result; run already resolved", stage.value)
            return CascadeOutcome(stage, location=cell.value)
        self._location = location
        if self._on_location is not None:
            self._on_location(location)
        return CascadeOutcome(stage, location=location)

    def _report(self, outcome: CascadeOutcome) -> None:
        if self._notify is None:
            return
        if outcome.location is not None:
            if outcome.location.approximate:
                self._notify(Notification(
                    "Approximate location used",
                    "Based on your network location (lower accuracy)",
                ))
            else:
                self._notify(Notification("Location detected", "Centering near your position"))
            return
        if isinstance(outcome.error, GeolocationDenied):
            title = "Permission blocked"
        elif isinstance(outcome.error, GeolocationUnavailable):
            title = "Location unavailable"
        else:
            title = "Location error"
        self._notify(Notification(title, outcome.reason or FAILURE_MESSAGE, level="error"))


def _from_fix(fix: Fix) -> UserLocation:
    return UserLocation(lat=fix.lat, lng=fix.lng, approximate=False)


class UnsupportedPositionProvider:
    """A platform without any location API."""

    available = False

    async def permission_state(self) -> str | None:
        return None

    async def current_position(self, *, high_accuracy: bool, timeout: float) -> Fix:
        raise GeolocationUnavailable(UNSUPPORTED_MESSAGE)

    def watch_position(
        self,
        on_fix: Callable[[Fix], None],
        on_error: Callable[[GeolocationError], None],
    ) -> int:
        raise GeolocationUnavailable(UNSUPPORTED_MESSAGE)

    def clear_watch(self, watch_id: int) -> None:
        return None


class NullPositionProvider:
    """A host with a location API but no sensor behind it.

    Both sensor stages fail immediately, so the cascade goes straight to
    the IP lookup.
    """

    available = True

    async def permission_state(self) -> str | None:
        return None

    async def current_position(self, *, high_accuracy: bool, timeout: float) -> Fix:
        raise GeolocationError("No position sensor")

    def watch_position(
        self,
        on_fix: Callable[[Fix], None],
        on_error: Callable[[GeolocationError], None],
    ) -> int:
        on_error(GeolocationError("No position sensor"))
        return 0

    def clear_watch(self, watch_id: int) -> None:
        return None


class FixedPositionProvider:
    """A sensor that always reports the same coordinates."""

    available = True

    def __init__(self, lat: float, lng: float, accuracy_m: float | None = None) -> None:
        self._fix = Fix(lat=lat, lng=lng, accuracy_m=accuracy_m)

    async def permission_state(self) -> str | None:
        return "granted"

    async def current_position(self, *, high_accuracy: bool, timeout: float) -> Fix:
        return self._fix

    def watch_position(
        self,
        on_fix: Callable[[Fix], None],
        on_error: Callable[[GeolocationError], None],
    ) -> int:
        on_fix(self._fix)
        return 0

    def clear_watch(self, watch_id: int) -> None:
        return None
