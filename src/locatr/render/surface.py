"""Map surface: viewport, layers and event handlers.

A :class:`MapSurface` is a plain data model of what a Leaflet map shows.
It holds no rendering backend; :func:`locatr.render.html.render_page`
turns it into a browser page.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

_logger = logging.getLogger(__name__)

LatLng = tuple[float, float]
Handler = Callable[["MapSurface", dict[str, Any]], None]


@dataclass(frozen=True, slots=True)
class TileLayer:
    """Raster background layer."""

    url: str
    attribution: str
    max_zoom: int


@dataclass(frozen=True, slots=True)
class Marker:
    """Current-position marker with its popup lines."""

    position: LatLng
    label: str
    popup: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Polyline:
    """Path overlay connecting samples in sequence order."""

    points: tuple[LatLng, ...]
    color: str
    weight: int
    opacity: float


Layer = TileLayer | Marker | Polyline


@dataclass
class MapSurface:
    """Mutable map state owned by a renderer."""

    center: LatLng
    zoom: int
    max_zoom: int
    layers: dict[int, Layer] = field(default_factory=dict)
    handlers: dict[str, list[Handler]] = field(default_factory=dict)
    released: bool = False
    _layer_ids: Any = field(default_factory=lambda: itertools.count(1), repr=False)

    def add_layer(self, layer: Layer) -> int:
        self._ensure_live()
        layer_id = next(self._layer_ids)
        self.layers[layer_id] = layer
        return layer_id

    def remove_layer(self, layer_id: int | None) -> None:
        if layer_id is None:
            return
        self.layers.pop(layer_id, None)

    def layers_of(self, kind: type[Layer]) -> list[Layer]:
        return [layer for layer in self.layers.values() if isinstance(layer, kind)]

    def set_view(self, center: LatLng, zoom: int) -> None:
        self._ensure_live()
        self.center = center
        self.zoom = max(0, min(self.max_zoom, zoom))
        self.fire("moveend", {"center": self.center, "zoom": self.zoom})

    def on(self, event: str, handler: Handler) -> None:
        self._ensure_live()
        self.handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Handler | None = None) -> None:
        if handler is None:
            self.handlers.pop(event, None)
            return
        remaining = [h for h in self.handlers.get(event, []) if h is not handler]
        if remaining:
            self.handlers[event] = remaining
        else:
            self.handlers.pop(event, None)

    def fire(self, event: str, data: dict[str, Any] | None = None) -> None:
        for handler in list(self.handlers.get(event, [])):
            try:
                handler(self, data or {})
            except Exception:
                _logger.debug("Map handler for %s failed", event, exc_info=True)

    def release(self) -> None:
        """Drop every layer and handler; the surface cannot be reused."""
        self.layers.clear()
        self.handlers.clear()
        self.released = True

    def _ensure_live(self) -> None:
        if self.released:
            raise RuntimeError("map surface has been released")
