"""HTML/Leaflet.js exporter for map snapshots.

The page replays the primitives a :class:`~quakescope.layers.LayerManager`
placed on its surface, so the exported map matches the rendered state:
circle markers, a marker-cluster group, a heat layer and the user marker.
"""

from __future__ import annotations

import html
import json
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from quakescope.geo import NearestEvent
from quakescope.models import EventStats, SeismicEvent
from quakescope.stats import DEPTH_LABELS, DepthBand
from quakescope.styles import BAND_LABELS, MagnitudeBand, legend_entries
from quakescope.surface import ClusterGroup, HeatmapLayer, LocationMarker, MapLayer, PointMarker


def _event_properties(eq: SeismicEvent) -> dict[str, Any]:
    return {
        "id": eq.id,
        "magnitude": eq.magnitude,
        "depth_km": eq.depth_km,
        "place": html.escape(eq.place),
        "time": datetime.fromtimestamp(eq.time_ms / 1000, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M UTC"
        ),
        "url": html.escape(eq.url),
    }


def _marker_data(marker: PointMarker, events: dict[str, SeismicEvent]) -> dict[str, Any]:
    data: dict[str, Any] = {
        "lat": marker.lat,
        "lng": marker.lng,
        "radius": marker.radius,
        "color": marker.color,
        "className": marker.css_class,
        "weight": marker.weight,
        "opacity": marker.opacity,
        "fillOpacity": marker.fill_opacity,
    }
    eq = events.get(marker.event_id)
    if eq is not None:
        data["event"] = _event_properties(eq)
    return data


def build_map_data(
    layers: Iterable[MapLayer],
    events: Sequence[SeismicEvent],
) -> dict[str, Any]:
    """Convert surface primitives into the JSON the page script draws."""
    by_id = {eq.id: eq for eq in events}
    data: dict[str, Any] = {"points": [], "cluster": None, "heatmap": None, "location": None}
    for layer in layers:
        if isinstance(layer, PointMarker):
            data["points"].append(_marker_data(layer, by_id))
        elif isinstance(layer, ClusterGroup):
            data["cluster"] = {
                "radius": layer.radius_px,
                "members": [_marker_data(m, by_id) for m in layer.members],
            }
        elif isinstance(layer, HeatmapLayer):
            data["heatmap"] = {
                "points": [list(p) for p in layer.points],
                "radius": layer.radius,
                "blur": layer.blur,
                "minOpacity": layer.min_opacity,
                "maxZoom": layer.max_zoom,
                "gradient": {str(k): v for k, v in layer.gradient.items()},
            }
        elif isinstance(layer, LocationMarker):
            data["location"] = {
                "lat": layer.lat,
                "lng": layer.lng,
                "approximate": layer.approximate,
                "radius": layer.radius,
                "color": layer.color,
            }
    return data


def _legend_html() -> str:
    rows = [
        f'<div class="legend-row"><span class="swatch" style="background:{style.color};'
        f'width:{style.radius}px;height:{style.radius}px"></span>{label}</div>'
        for label, style in legend_entries()
    ]
    return "\n".join(rows)


def _stats_html(stats: EventStats, nearest: NearestEvent | None) -> str:
    rows = [
        ("Total events", f"{stats.total_count}"),
        ("Largest", f"M{stats.largest_magnitude:.1f}"),
        ("Average", f"M{stats.average_magnitude:.2f}"),
        ("Deepest", f"{stats.deepest_depth_km:.1f} km"),
    ]
    rows += [
        (BAND_LABELS[band], str(stats.magnitude_distribution.get(band.value, 0)))
        for band in MagnitudeBand
    ]
    rows += [
        (DEPTH_LABELS[band], str(stats.depth_distribution.get(band.value, 0)))
        for band in DepthBand
    ]
    if nearest is not None:
        rows.append(("Nearest event", f"{nearest.distance_km:.1f} km ({nearest.impact.value})"))
    return "\n".join(
        f'<div class="stat-row"><span>{label}</span><strong>{value}</strong></div>'
        for label, value in rows
    )


# HTML template with placeholders that won't conflict with CSS/JS braces
_HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>QuakeScope</title>
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css"
          integrity="sha256-p4NxAoJBhIIN+hmNHrzRCf9tD/miZyoHS5obTRR9BMY="
          crossorigin=""/>
    <link rel="stylesheet"
          href="https://unpkg.com/leaflet.markercluster@1.5.3/dist/MarkerCluster.css"/>
    <link rel="stylesheet"
          href="https://unpkg.com/leaflet.markercluster@1.5.3/dist/MarkerCluster.Default.css"/>
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"
            integrity="sha256-20nQCchB9co0qIjJZRGuk2/Z9VM+kNiyxNV1lvTlZBo="
            crossorigin=""></script>
    <script src="https://unpkg.com/leaflet.markercluster@1.5.3/dist/leaflet.markercluster.js"></script>
    <script src="https://unpkg.com/leaflet.heat@0.2.0/dist/leaflet-heat.js"></script>
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: -apple-system, BlinkMacSystemFont,
                'Segoe UI', Roboto, sans-serif;
            background: #0f172a;
        }
        #map { height: 100vh; width: 100%; }
        .panel {
            position: absolute; z-index: 1000;
            background: rgba(15, 23, 42, 0.9); color: #e2e8f0;
            padding: 12px 14px; border-radius: 8px;
            font-size: 13px; box-shadow: 0 2px 8px rgba(0,0,0,0.4);
        }
        #legend { bottom: 24px; left: 12px; }
        #stats { top: 12px; right: 12px; min-width: 220px; }
        .panel h3 { font-size: 14px; margin-bottom: 8px; }
        .legend-row { display: flex; align-items: center; gap: 8px; margin: 4px 0; }
        .swatch { display: inline-block; border-radius: 50%; }
        .stat-row { display: flex; justify-content: space-between; gap: 12px; margin: 3px 0; }
        .generated { margin-top: 8px; font-size: 11px; color: #94a3b8; }
        .pulse-glow { animation: pulse 2s ease-in-out infinite; }
        @keyframes pulse {
            0%, 100% { stroke-opacity: 0.8; }
            50% { stroke-opacity: 0.2; }
        }
        .eq-div-icon div {
            border-radius: 50%; border: 2px solid rgba(255,255,255,0.7);
        }
    </style>
</head>
<body>
    <div id="map"></div>
    <div id="legend" class="panel">
        <h3>Magnitude</h3>
        __LEGEND__
    </div>
    <div id="stats" class="panel">
        <h3>Seismic Insights</h3>
        __STATS__
        <div class="generated">Generated: __GENERATED_TIME__</div>
    </div>
    <script>
        var data = __MAP_DATA__;
        var view = __VIEW__;

        var map = L.map('map', { worldCopyJump: true })
            .setView(view.center, view.zoom);
        L.tileLayer(
            'https://{s}.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}{r}.png',
            {
                attribution: '&copy; OpenStreetMap contributors &copy; CARTO',
                maxZoom: 18,
            }
        ).addTo(map);

        function popupHtml(ev) {
            if (!ev) return '';
            return '<strong>M' + ev.magnitude.toFixed(1) + '</strong> '
                + ev.place
                + '<br>Depth: ' + ev.depth_km.toFixed(1) + ' km'
                + '<br>' + ev.time
                + (ev.url ? '<br><a href="' + ev.url
                    + '" target="_blank">USGS details</a>' : '');
        }

        data.points.forEach(function(p) {
            var marker = L.circleMarker([p.lat, p.lng], {
                radius: p.radius,
                color: p.color,
                fillColor: p.color,
                weight: p.weight,
                opacity: p.opacity,
                fillOpacity: p.fillOpacity,
                className: p.className,
            }).addTo(map);
            marker.bindPopup(popupHtml(p.event));
            marker.on('mouseover', function() {
                marker.setStyle({ weight: 3, opacity: 1, fillOpacity: 0.8 });
                marker.setRadius(p.radius * 1.5);
            });
            marker.on('mouseout', function() {
                marker.setStyle({
                    weight: p.weight, opacity: p.opacity,
                    fillOpacity: p.fillOpacity,
                });
                marker.setRadius(p.radius);
            });
        });

        if (data.cluster) {
            var group = L.markerClusterGroup({
                maxClusterRadius: data.cluster.radius,
            });
            data.cluster.members.forEach(function(m) {
                var size = m.radius * 2;
                var icon = L.divIcon({
                    className: m.className,
                    html: '<div style="width:' + size + 'px;height:' + size
                        + 'px;background:' + m.color
                        + ';opacity:' + m.opacity + '"></div>',
                    iconSize: [size, size],
                });
                group.addLayer(
                    L.marker([m.lat, m.lng], { icon: icon })
                        .bindPopup(popupHtml(m.event))
                );
            });
            map.addLayer(group);
        }

        if (data.heatmap) {
            var heat = L.heatLayer(data.heatmap.points, {
                radius: data.heatmap.radius,
                blur: data.heatmap.blur,
                minOpacity: data.heatmap.minOpacity,
                maxZoom: data.heatmap.maxZoom,
                gradient: data.heatmap.gradient,
            }).addTo(map);
            map.on('zoomend', function() {
                var r = Math.max(18, Math.min(45, map.getZoom() * 3 + 12));
                heat.setOptions({ radius: r, blur: Math.round(r * 0.8) });
            });
        }

        if (data.location) {
            L.circleMarker([data.location.lat, data.location.lng], {
                radius: data.location.radius,
                color: '#ffffff',
                weight: 2,
                fillColor: data.location.color,
                fillOpacity: 1,
            }).addTo(map).bindPopup(
                data.location.approximate
                    ? 'Approximate location (network)'
                    : 'Your location'
            );
        }
    </script>
</body>
</html>"""


def export_html(
    layers: Iterable[MapLayer],
    events: Sequence[SeismicEvent],
    stats: EventStats,
    output_path: Path,
    *,
    center: tuple[float, float] = (20.0, 0.0),
    zoom: float = 2,
    nearest: NearestEvent | None = None,
) -> Path:
    """Export a rendered map snapshot as a standalone Leaflet.js page."""
    html_content = render_html(
        layers, events, stats, center=center, zoom=zoom, nearest=nearest
    )
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(html_content)

    return output_path


def render_html(
    layers: Iterable[MapLayer],
    events: Sequence[SeismicEvent],
    stats: EventStats,
    *,
    center: tuple[float, float] = (20.0, 0.0),
    zoom: float = 2,
    nearest: NearestEvent | None = None,
) -> str:
    """Same page as :func:`export_html`, returned as a string."""
    return _HTML_TEMPLATE.replace(
        "__MAP_DATA__", json.dumps(build_map_data(layers, events)).replace("</", "<\\/")
    ).replace(
        "__VIEW__", json.dumps({"center": list(center), "zoom": zoom})
    ).replace(
        "__LEGEND__", _legend_html()
    ).replace(
        "__STATS__", _stats_html(stats, nearest)
    ).replace(
        "__GENERATED_TIME__", datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    )
