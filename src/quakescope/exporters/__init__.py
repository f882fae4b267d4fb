"""Exporters for map snapshots."""

from quakescope.exporters.geojson_export import build_feature_collection, export_geojson
from quakescope.exporters.html_export import build_map_data, export_html, render_html

__all__ = [
    "build_feature_collection",
    "build_map_data",
    "export_geojson",
    "export_html",
    "render_html",
]
