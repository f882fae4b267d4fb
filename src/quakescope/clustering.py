"""Greedy pixel-radius proximity clustering for the cluster layer."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from quakescope.geo import project
from quakescope.surface import Cluster, PointMarker


@dataclass
class _Bucket:
    x: float
    y: float
    markers: list[PointMarker] = field(default_factory=list)


def cluster_points(
    markers: Sequence[PointMarker],
    zoom: float,
    radius_px: float = 50.0,
) -> list[Cluster]:
    """Group markers whose screen positions fall within *radius_px*.

    Markers are visited in input order; each joins the first existing group
    whose seed lies within the radius at *zoom*, or seeds a new one. The
    result is deterministic for a given input order and zoom.
    """
    buckets: list[_Bucket] = []
    for marker in markers:
        if math.isnan(marker.lat) or math.isnan(marker.lng):
            continue
        x, y = project(marker.lat, marker.lng, zoom)
        for bucket in buckets:
            if math.hypot(bucket.x - x, bucket.y - y) <= radius_px:
                bucket.markers.append(marker)
                break
        else:
            buckets.append(_Bucket(x=x, y=y, markers=[marker]))

    clusters: list[Cluster] = []
    for bucket in buckets:
        n = len(bucket.markers)
        clusters.append(
            Cluster(
                lat=sum(m.lat for m in bucket.markers) / n,
                lng=sum(m.lng for m in bucket.markers) / n,
                event_ids=tuple(m.event_id for m in bucket.markers),
            )
        )
    return clusters
