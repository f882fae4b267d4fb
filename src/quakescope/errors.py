"""Exception taxonomy for the viewer core."""

from __future__ import annotations


class QuakeScopeError(Exception):
    """Base class for all QuakeScope errors."""


class DataFetchError(QuakeScopeError):
    """Fetching events failed; callers keep their last good event list."""


class GeolocationError(QuakeScopeError):
    """A position source failed. Transient: the cascade moves on."""


class GeolocationDenied(GeolocationError):
    """The user or platform refused location access. Terminal for a run."""


class GeolocationTimeout(GeolocationError):
    """A position source did not answer in time."""


class GeolocationUnavailable(GeolocationError):
    """No position source exists on this platform. Terminal for a run."""
