"""GeoJSON exporter for map snapshots."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from quakescope.geo import NearestEvent
from quakescope.models import SeismicEvent, UserLocation
from quakescope.stats import depth_band
from quakescope.styles import classify_magnitude


def _make_event_feature(eq: SeismicEvent) -> dict[str, Any]:
    """Create a GeoJSON Feature for an earthquake, with its marker style."""
    style = classify_magnitude(eq.magnitude)
    return {
        "type": "Feature",
        "id": eq.id,
        "geometry": {
            "type": "Point",
            "coordinates": [eq.longitude, eq.latitude, eq.depth_km],
        },
        "properties": {
            "feature_type": "earthquake",
            "earthquake_id": eq.id,
            "magnitude": eq.magnitude,
            "mag_type": eq.mag_type,
            "depth_km": eq.depth_km,
            "depth_band": depth_band(eq.depth_km).value,
            "time": datetime.fromtimestamp(eq.time_ms / 1000, tz=timezone.utc).isoformat(),
            "time_ms": eq.time_ms,
            "place": eq.place,
            "url": eq.url,
            "felt": eq.felt,
            "alert": eq.alert,
            "tsunami": eq.tsunami,
            "band": style.band.value,
            "color": style.color,
            "radius": style.radius,
        },
    }


def _make_location_feature(
    location: UserLocation,
    nearest: NearestEvent | None,
) -> dict[str, Any]:
    properties: dict[str, Any] = {
        "feature_type": "user_location",
        "approximate": location.approximate,
    }
    if nearest is not None:
        properties.update({
            "nearest_earthquake_id": nearest.event.id,
            "nearest_distance_km": nearest.distance_km,
            "estimated_impact": nearest.impact.value,
        })
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [location.lng, location.lat]},
        "properties": properties,
    }


def build_feature_collection(
    events: Sequence[SeismicEvent],
    *,
    user_location: UserLocation | None = None,
    nearest: NearestEvent | None = None,
) -> dict[str, Any]:
    """Build a FeatureCollection of *events* plus the user's position.

    GeoJSON coordinates are [longitude, latitude(, depth)] per RFC 7946.
    """
    features = [_make_event_feature(eq) for eq in events]
    if user_location is not None:
        features.append(_make_location_feature(user_location, nearest))
    return {
        "type": "FeatureCollection",
        "metadata": {
            "generated": datetime.now(tz=timezone.utc).isoformat(),
            "source": "quakescope",
            "earthquake_count": len(events),
        },
        "features": features,
    }


def export_geojson(
    events: Sequence[SeismicEvent],
    output_path: Path,
    *,
    user_location: UserLocation | None = None,
    nearest: NearestEvent | None = None,
) -> Path:
    """Write the snapshot FeatureCollection to *output_path*."""
    geojson = build_feature_collection(events, user_location=user_location, nearest=nearest)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(geojson, f, indent=2, ensure_ascii=False)
    return output_path
