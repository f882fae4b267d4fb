"""Data models for the viewer core."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from quakescope.config import TimeRange


@dataclass(frozen=True)
class SeismicEvent:
    """A single earthquake record from the USGS feed.

    ``depth_km`` is always non-negative; the wire format may carry it
    negated and is normalized on parse.
    """

    id: str
    magnitude: float
    longitude: float
    latitude: float
    depth_km: float
    time_ms: int
    place: str
    url: str = ""
    title: str = ""
    felt: int | None = None
    alert: str | None = None
    tsunami: bool = False
    mag_type: str = ""
    status: str = "automatic"

    @property
    def coordinates(self) -> tuple[float, float, float]:
        """Return (longitude, latitude, depth_km)."""
        return (self.longitude, self.latitude, self.depth_km)

    @classmethod
    def from_geojson_feature(cls, feature: dict[str, Any]) -> SeismicEvent:
        """Build an event from a USGS GeoJSON feature."""
        props = feature.get("properties") or {}
        coords = (feature.get("geometry") or {}).get("coordinates") or [0.0, 0.0, 0.0]
        depth = coords[2] if len(coords) > 2 and coords[2] is not None else 0.0
        mag = props.get("mag")
        place = props.get("place") or "Unknown location"
        return cls(
            id=str(feature.get("id", "")),
            magnitude=float(mag) if mag is not None else 0.0,
            longitude=float(coords[0]),
            latitude=float(coords[1]),
            depth_km=abs(float(depth)),
            time_ms=int(props.get("time") or time.time() * 1000),
            place=place,
            url=props.get("url") or "",
            title=props.get("title") or f"M {mag} - {place}",
            felt=props.get("felt"),
            alert=props.get("alert"),
            tsunami=bool(props.get("tsunami") or 0),
            mag_type=props.get("magType") or "",
            status=props.get("status") or "automatic",
        )


@dataclass(frozen=True)
class DisplayMode:
    """Which grouping and overlay layers are active."""

    show_heatmap: bool = False
    show_clusters: bool = False


@dataclass(frozen=True)
class UserLocation:
    """Where the user is. ``approximate`` marks network-derived positions."""

    lat: float
    lng: float
    approximate: bool = False


@dataclass(frozen=True)
class PlaybackState:
    """Timeline position.

    ``engaged`` is set once playback starts or the timeline is scrubbed, and
    cleared when a refresh lands while idle. ``last_tick_ms`` is the previous
    frame timestamp while running.
    """

    progress: float = 0.0
    is_playing: bool = False
    engaged: bool = False
    last_tick_ms: float | None = None


@dataclass(frozen=True)
class FilterOptions:
    """User-selected query and display filters."""

    time_range: TimeRange = "1day"
    magnitude_range: tuple[float, float] = (0.0, 10.0)
    depth_range: tuple[float, float] = (0.0, 700.0)
    show_heatmap: bool = False
    show_clusters: bool = False

    @property
    def display_mode(self) -> DisplayMode:
        return DisplayMode(show_heatmap=self.show_heatmap, show_clusters=self.show_clusters)

    def query_key(self) -> tuple[Any, ...]:
        """The fields that change which events the data source returns."""
        return (self.time_range, self.magnitude_range, self.depth_range)

    def with_changes(self, **changes: Any) -> FilterOptions:
        return replace(self, **changes)


@dataclass(frozen=True)
class Notification:
    """A human-readable status message for the toast component."""

    title: str
    description: str
    level: Literal["info", "error"] = "info"


@dataclass
class EventStats:
    """Aggregates shown in the insights panel."""

    total_count: int = 0
    largest_magnitude: float = 0.0
    average_magnitude: float = 0.0
    deepest_depth_km: float = 0.0
    shallowest_depth_km: float = 0.0
    most_recent_time_ms: int = 0
    magnitude_distribution: dict[str, int] = field(default_factory=dict)
    depth_distribution: dict[str, int] = field(default_factory=dict)
