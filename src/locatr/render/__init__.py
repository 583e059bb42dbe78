"""Live map rendering of a device trail."""

from locatr.render.html import render_page
from locatr.render.surface import MapSurface, Marker, Polyline, TileLayer
from locatr.render.trail import TrailRenderer, build_popup

__all__ = [
    "MapSurface",
    "Marker",
    "Polyline",
    "TileLayer",
    "TrailRenderer",
    "build_popup",
    "render_page",
]
