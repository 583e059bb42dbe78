"""Trail renderer: map state as a function of the ordered sample sequence."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC
from decimal import ROUND_HALF_UP, Decimal

from locatr.config import MapDefaults
from locatr.models.sample import LocationSample
from locatr.render.html import render_page
from locatr.render.surface import MapSurface, Marker, Polyline, TileLayer

_logger = logging.getLogger(__name__)


def format_accuracy(accuracy: float | None) -> str:
    if accuracy is None:
        return "Unknown"
    # Nearest metre with halves rounded up, so 2.5 reads as 3m.
    metres = Decimal(str(accuracy)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return f"{metres}m"


def format_coordinates(latitude: float, longitude: float) -> str:
    return f"{latitude:.6f}, {longitude:.6f}"


def build_popup(device_code: str, sample: LocationSample) -> tuple[str, ...]:
    """Popup lines summarizing the current position."""
    captured = sample.captured_at.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")
    lines = [
        f"Device: {device_code}",
        f"Last Update: {captured}",
        f"Accuracy: {format_accuracy(sample.accuracy)}",
    ]
    if sample.battery_level is not None:
        lines.append(f"Battery: {sample.battery_level}%")
    lines.append(f"Coordinates: {format_coordinates(sample.latitude, sample.longitude)}")
    return tuple(lines)


class TrailRenderer:
    """Keeps one map surface in sync with a device trail.

    ``update`` is deterministic: the same sequence always yields the same
    marker, popup, viewport center and path.
    """

    def __init__(self, defaults: MapDefaults | None = None) -> None:
        self._defaults = defaults or MapDefaults()
        self._surface: MapSurface | None = None
        self._marker_id: int | None = None
        self._path_id: int | None = None
        self.surfaces_created = 0

    @property
    def surface(self) -> MapSurface | None:
        return self._surface

    @property
    def is_ready(self) -> bool:
        return self._surface is not None

    def initialize(self) -> MapSurface:
        """Create the surface with the default viewport; no-op when already created."""
        if self._surface is not None:
            return self._surface
        defaults = self._defaults
        surface = MapSurface(center=defaults.center, zoom=defaults.zoom, max_zoom=defaults.max_zoom)
        surface.add_layer(TileLayer(url=defaults.tile_url, attribution=defaults.attribution, max_zoom=defaults.max_zoom))
        self._surface = surface
        self.surfaces_created += 1
        _logger.debug("Map surface created center=%s zoom=%s", surface.center, surface.zoom)
        return surface

    def update(self, device_code: str, samples: Sequence[LocationSample]) -> None:
        """Redraw marker, viewport and path for *samples*."""
        surface = self._surface
        if surface is None or not samples:
            return

        current = samples[-1]
        surface.remove_layer(self._marker_id)
        self._marker_id = surface.add_layer(
            Marker(
                position=current.position,
                label=device_code,
                popup=build_popup(device_code, current),
            )
        )

        # Zoom is never changed by an update.
        surface.set_view(current.position, surface.zoom)

        if len(samples) > 1:
            surface.remove_layer(self._path_id)
            self._path_id = surface.add_layer(
                Polyline(
                    points=tuple(sample.position for sample in samples),
                    color=self._defaults.path_color,
                    weight=self._defaults.path_weight,
                    opacity=self._defaults.path_opacity,
                )
            )
        else:
            surface.remove_layer(self._path_id)
            self._path_id = None

    def release(self) -> None:
        """Release the surface together with its layers and handlers."""
        surface = self._surface
        self._surface = None
        self._marker_id = None
        self._path_id = None
        if surface is not None:
            surface.release()
            _logger.debug("Map surface released")

    def to_html(self, *, title: str = "Live Location Map") -> str:
        """Standalone Leaflet page of the current surface."""
        surface = self.initialize()
        return render_page(surface, title=title)
