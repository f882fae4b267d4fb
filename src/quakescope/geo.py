"""Geographic utilities: Haversine distance, felt-impact estimate, projection."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from quakescope.models import SeismicEvent, UserLocation

TILE_SIZE = 256
_MAX_MERCATOR_LAT = 85.0511287798


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the great-circle distance in km between two points on Earth."""
    earth_radius_km = 6371.0
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return earth_radius_km * 2 * math.asin(math.sqrt(a))


class ImpactLevel(str, Enum):
    NOT_FELT = "Not felt"
    WEAK = "Weak"
    LIGHT = "Light"
    MODERATE = "Moderate"
    STRONG = "Strong"
    SEVERE = "Severe"


_IMPACT_THRESHOLDS: tuple[tuple[float, ImpactLevel], ...] = (
    (2.5, ImpactLevel.NOT_FELT),
    (3.5, ImpactLevel.WEAK),
    (4.5, ImpactLevel.LIGHT),
    (5.5, ImpactLevel.MODERATE),
    (6.5, ImpactLevel.STRONG),
)


def effective_magnitude(magnitude: float, distance_km: float) -> float:
    """Magnitude attenuated by log distance (1 km floor)."""
    return magnitude - 1.1 * math.log10(max(1.0, distance_km))


def estimate_impact(magnitude: float, distance_km: float) -> ImpactLevel:
    """Rough felt-intensity at *distance_km* from an event of *magnitude*.

    A coarse attenuation heuristic for the "nearest event" card, not a
    ground-motion model.
    """
    m_eff = effective_magnitude(magnitude, distance_km)
    for upper, level in _IMPACT_THRESHOLDS:
        if m_eff < upper:
            return level
    return ImpactLevel.SEVERE


@dataclass(frozen=True)
class NearestEvent:
    """The closest event to the user and its estimated impact."""

    event: SeismicEvent
    distance_km: float
    impact: ImpactLevel


def nearest_event(
    location: UserLocation | None,
    events: Iterable[SeismicEvent],
) -> NearestEvent | None:
    """Find the event closest to *location*; None without a location or events."""
    if location is None:
        return None
    best: SeismicEvent | None = None
    best_d = math.inf
    for eq in events:
        d = haversine(location.lat, location.lng, eq.latitude, eq.longitude)
        if d < best_d:
            best, best_d = eq, d
    if best is None:
        return None
    return NearestEvent(
        event=best,
        distance_km=round(best_d, 1),
        impact=estimate_impact(best.magnitude, best_d),
    )


def project(lat: float, lng: float, zoom: float) -> tuple[float, float]:
    """Spherical Web Mercator pixel coordinates at *zoom* (256 px tiles)."""
    lat = max(-_MAX_MERCATOR_LAT, min(_MAX_MERCATOR_LAT, lat))
    scale = TILE_SIZE * 2.0**zoom
    x = (lng + 180.0) / 360.0 * scale
    sin_lat = math.sin(math.radians(lat))
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * scale
    return x, y
