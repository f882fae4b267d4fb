"""Aggregate statistics for the insights panel."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from enum import Enum

import numpy as np

from quakescope.models import EventStats, SeismicEvent
from quakescope.styles import MagnitudeBand, magnitude_band


class DepthBand(str, Enum):
    SHALLOW = "shallow"
    INTERMEDIATE = "intermediate"
    DEEP = "deep"


# Upper edges (km) of shallow and intermediate; deep is open-ended.
DEPTH_EDGES_KM = (70.0, 300.0)

DEPTH_LABELS: dict[DepthBand, str] = {
    DepthBand.SHALLOW: "Shallow (0-70 km)",
    DepthBand.INTERMEDIATE: "Intermediate (70-300 km)",
    DepthBand.DEEP: "Deep (> 300 km)",
}

_DEPTH_ORDER = (DepthBand.SHALLOW, DepthBand.INTERMEDIATE, DepthBand.DEEP)


def depth_band(depth_km: float) -> DepthBand:
    """Classify a depth into shallow [0,70), intermediate [70,300), deep >=300."""
    return _DEPTH_ORDER[int(np.digitize(abs(depth_km), DEPTH_EDGES_KM))]


def magnitude_distribution(events: Sequence[SeismicEvent]) -> dict[str, int]:
    """Event count per magnitude band, every band present."""
    counts = Counter(magnitude_band(eq.magnitude) for eq in events)
    return {band.value: counts.get(band, 0) for band in MagnitudeBand}


def depth_distribution(events: Sequence[SeismicEvent]) -> dict[str, int]:
    """Event count per depth band computed from the events themselves."""
    if not events:
        return {band.value: 0 for band in DepthBand}
    depths = np.abs(np.array([eq.depth_km for eq in events], dtype=float))
    idx = np.digitize(depths, DEPTH_EDGES_KM)
    counts = np.bincount(idx, minlength=len(_DEPTH_ORDER))
    return {band.value: int(counts[i]) for i, band in enumerate(_DEPTH_ORDER)}


def compute_stats(events: Sequence[SeismicEvent]) -> EventStats:
    """Summarize magnitude, depth and recency over *events*.

    An empty list yields zeroed stats rather than an error.
    """
    if not events:
        return EventStats(
            magnitude_distribution=magnitude_distribution(events),
            depth_distribution=depth_distribution(events),
        )

    mags = np.array([eq.magnitude for eq in events], dtype=float)
    depths = np.abs(np.array([eq.depth_km for eq in events], dtype=float))
    times = np.array([eq.time_ms for eq in events], dtype=np.int64)

    finite_mags = mags[~np.isnan(mags)]
    return EventStats(
        total_count=len(events),
        largest_magnitude=float(finite_mags.max()) if finite_mags.size else 0.0,
        average_magnitude=round(float(finite_mags.mean()), 2) if finite_mags.size else 0.0,
        deepest_depth_km=float(depths.max()),
        shallowest_depth_km=float(depths.min()),
        most_recent_time_ms=int(times.max()),
        magnitude_distribution=magnitude_distribution(events),
        depth_distribution=depth_distribution(events),
    )
