"""Map surface abstraction and the visual primitives placed on it.

The layer engine only ever talks to a :class:`MapSurface`. A browser host
would forward these calls to Leaflet; :class:`InMemorySurface` keeps the
layers in a list so snapshots can be exported and tested.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field
from typing import Literal, Protocol, Union

logger = logging.getLogger(__name__)

InteractionKind = Literal["click", "mouseover", "mouseout"]
Handler = Callable[[], None]
ZoomHandler = Callable[[float], None]

_ids = itertools.count(1)


def _next_id() -> int:
    return next(_ids)


@dataclass(eq=False)
class PointMarker:
    """A circle marker (point mode) or icon marker (cluster member)."""

    event_id: str
    lat: float
    lng: float
    radius: float
    color: str
    css_class: str
    weight: float = 2.0
    opacity: float = 0.8
    fill_opacity: float = 0.6
    pulsing: bool = False
    icon: bool = False
    layer_id: int = field(default_factory=_next_id)

    def visual(self) -> tuple:
        """Everything a viewer can see, without the identity counter."""
        return (
            "point", self.event_id, self.lat, self.lng, self.radius, self.color,
            self.css_class, self.weight, self.opacity, self.fill_opacity,
            self.pulsing, self.icon,
        )


@dataclass(frozen=True)
class Cluster:
    """One proximity group inside a cluster layer."""

    lat: float
    lng: float
    event_ids: tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.event_ids)


@dataclass(eq=False)
class ClusterGroup:
    """Container layer holding every member marker and their grouping."""

    members: list[PointMarker]
    clusters: list[Cluster]
    radius_px: float = 50.0
    layer_id: int = field(default_factory=_next_id)

    def visual(self) -> tuple:
        return (
            "cluster",
            tuple(m.visual() for m in self.members),
            tuple(self.clusters),
            self.radius_px,
        )


@dataclass(eq=False)
class HeatmapLayer:
    """Weighted heat samples with zoom-dependent radius and blur."""

    points: list[tuple[float, float, float]]
    radius: float
    blur: int
    gradient: dict[float, str]
    min_opacity: float = 0.3
    max_zoom: int = 18
    layer_id: int = field(default_factory=_next_id)

    def visual(self) -> tuple:
        return (
            "heatmap", tuple(self.points), self.radius, self.blur,
            tuple(sorted(self.gradient.items())), self.min_opacity, self.max_zoom,
        )


@dataclass(eq=False)
class LocationMarker:
    lat: float
    lng: float
    approximate: bool = False
    radius: float = 7.0
    color: str = "#38bdf8"
    layer_id: int = field(default_factory=_next_id)

    def visual(self) -> tuple:
        return ("location", self.lat, self.lng, self.approximate, self.radius, self.color)


MapLayer = Union[PointMarker, ClusterGroup, HeatmapLayer, LocationMarker]


class MapSurface(Protocol):
    """What the layer engine needs from a hosting map."""

    @property
    def zoom(self) -> float: ...

    def add_layer(self, layer: MapLayer) -> None: ...

    def remove_layer(self, layer: MapLayer) -> None: ...

    def update_layer(self, layer: MapLayer) -> None: ...

    def bind(self, layer: MapLayer, kind: InteractionKind, handler: Handler) -> None: ...

    def on_zoom(self, handler: ZoomHandler) -> Callable[[], None]: ...

    def fly_to(self, lat: float, lng: float, zoom: float) -> None: ...

    def batch(self) -> AbstractContextManager[None]: ...


class InMemorySurface:
    """A map surface that records its layers and interaction bindings.

    Mutations inside :meth:`batch` are committed as a single frame, so
    ``frames`` shows exactly what a viewer could ever have seen.
    """

    def __init__(self, zoom: float = 2.0, center: tuple[float, float] = (20.0, 0.0)) -> None:
        self._zoom = float(zoom)
        self.center = center
        self.layers: list[MapLayer] = []
        self.frames: list[tuple[int, ...]] = []
        self.fly_to_calls: list[tuple[float, float, float]] = []
        self._handlers: dict[int, dict[str, Handler]] = {}
        self._zoom_handlers: list[ZoomHandler] = []
        self._batch_depth = 0

    @property
    def zoom(self) -> float:
        return self._zoom

    def add_layer(self, layer: MapLayer) -> None:
        if any(existing is layer for existing in self.layers):
            return
        self.layers.append(layer)
        self._commit()

    def remove_layer(self, layer: MapLayer) -> None:
        self.layers = [existing for existing in self.layers if existing is not layer]
        self._handlers.pop(layer.layer_id, None)
        if isinstance(layer, ClusterGroup):
            for member in layer.members:
                self._handlers.pop(member.layer_id, None)
        self._commit()

    def update_layer(self, layer: MapLayer) -> None:
        self._commit()

    def bind(self, layer: MapLayer, kind: InteractionKind, handler: Handler) -> None:
        self._handlers.setdefault(layer.layer_id, {})[kind] = handler

    def on_zoom(self, handler: ZoomHandler) -> Callable[[], None]:
        self._zoom_handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._zoom_handlers:
                self._zoom_handlers.remove(handler)

        return unsubscribe

    def fly_to(self, lat: float, lng: float, zoom: float) -> None:
        self.center = (lat, lng)
        self.fly_to_calls.append((lat, lng, zoom))
        self.set_zoom(zoom)

    @contextmanager
    def batch(self) -> Iterator[None]:
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            self._commit()

    # Host-side events

    def set_zoom(self, zoom: float) -> None:
        """Change zoom and notify subscribers, like a ``zoomend`` event."""
        if zoom == self._zoom:
            return
        self._zoom = float(zoom)
        for handler in list(self._zoom_handlers):
            handler(self._zoom)

    def fire(self, layer: MapLayer, kind: InteractionKind) -> None:
        """Dispatch a user interaction to the handler bound on *layer*."""
        handler = self._handlers.get(layer.layer_id, {}).get(kind)
        if handler is None:
            logger.debug("No %s handler bound on layer %d", kind, layer.layer_id)
            return
        handler()

    def has_zoom_subscribers(self) -> bool:
        return bool(self._zoom_handlers)

    def layers_of(self, kind: type) -> list:
        return [layer for layer in self.layers if isinstance(layer, kind)]

    def _commit(self) -> None:
        if self._batch_depth:
            return
        self.frames.append(tuple(layer.layer_id for layer in self.layers))
