"""Magnitude styling shared by map layers, the legend and statistics.

Every consumer goes through :func:`magnitude_band`, so the four bands can
never disagree between the map, the filter legend and the insights panel.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


class MagnitudeBand(str, Enum):
    MINOR = "minor"
    LIGHT = "light"
    MODERATE = "moderate"
    SEVERE = "severe"


@dataclass(frozen=True)
class MarkerStyle:
    """Visual treatment for one magnitude band."""

    color: str
    radius: int
    band: MagnitudeBand
    css_class: str


# Lower bounds, ascending. Bands are closed-open: [3.0, 5.0) is light.
BAND_THRESHOLDS: tuple[tuple[float, MagnitudeBand], ...] = (
    (3.0, MagnitudeBand.LIGHT),
    (5.0, MagnitudeBand.MODERATE),
    (6.0, MagnitudeBand.SEVERE),
)

_STYLES: dict[MagnitudeBand, MarkerStyle] = {
    MagnitudeBand.MINOR: MarkerStyle("hsl(142, 76%, 36%)", 6, MagnitudeBand.MINOR, "magnitude-low"),
    MagnitudeBand.LIGHT: MarkerStyle("hsl(48, 100%, 67%)", 8, MagnitudeBand.LIGHT, "magnitude-medium"),
    MagnitudeBand.MODERATE: MarkerStyle(
        "hsl(25, 95%, 53%)", 12, MagnitudeBand.MODERATE, "magnitude-high"
    ),
    MagnitudeBand.SEVERE: MarkerStyle(
        "hsl(0, 86%, 58%)", 16, MagnitudeBand.SEVERE, "magnitude-severe"
    ),
}

BAND_LABELS: dict[MagnitudeBand, str] = {
    MagnitudeBand.MINOR: "Minor (< 3.0)",
    MagnitudeBand.LIGHT: "Light (3.0-5.0)",
    MagnitudeBand.MODERATE: "Moderate (5.0-6.0)",
    MagnitudeBand.SEVERE: "Severe (>= 6.0)",
}

HEAT_GRADIENT: dict[float, str] = {
    0.2: "#0ea5e9",
    0.4: "#22c55e",
    0.6: "#eab308",
    0.8: "#f97316",
    1.0: "#ef4444",
}
HEAT_MIN_OPACITY = 0.3
HEAT_MAX_ZOOM = 18


def magnitude_band(magnitude: float | None) -> MagnitudeBand:
    """Return the severity band for a magnitude.

    Missing or NaN magnitudes fall into the minor band instead of raising.
    """
    if magnitude is None or math.isnan(magnitude):
        return MagnitudeBand.MINOR
    band = MagnitudeBand.MINOR
    for lower, candidate in BAND_THRESHOLDS:
        if magnitude >= lower:
            band = candidate
    return band


def classify_magnitude(magnitude: float | None) -> MarkerStyle:
    """Map a magnitude to its marker color, radius and band."""
    return _STYLES[magnitude_band(magnitude)]


def style_for_band(band: MagnitudeBand) -> MarkerStyle:
    return _STYLES[band]


def legend_entries() -> list[tuple[str, MarkerStyle]]:
    """Legend rows in ascending severity."""
    return [(BAND_LABELS[band], _STYLES[band]) for band in MagnitudeBand]


def heat_intensity(magnitude: float | None) -> float:
    """Heatmap sample weight: magnitude / 8 clamped to [0.1, 1.0]."""
    if magnitude is None or math.isnan(magnitude):
        return 0.1
    return max(0.1, min(1.0, magnitude / 8))


def heat_radius(zoom: float) -> float:
    """Heatmap decay radius for a zoom level, clamped to [18, 45] px."""
    return max(18.0, min(45.0, zoom * 3 + 12))


def heat_blur(radius: float) -> int:
    return round(radius * 0.8)
