"""Standalone Leaflet page generation for a :class:`MapSurface`."""

from __future__ import annotations

import html
import json
from typing import Any

from locatr._constants import LEAFLET_VERSION
from locatr.render.surface import MapSurface, Marker, Polyline, TileLayer

_LEAFLET_CDN = f"https://unpkg.com/leaflet@{LEAFLET_VERSION}/dist"

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{title}</title>
    <link rel="stylesheet" href="{cdn}/leaflet.css">
    <script src="{cdn}/leaflet.js"></script>
    <style>
        html, body, #map {{ height: 100%; margin: 0; }}
        .device-label {{
            background: rgba(0, 0, 0, 0.75);
            color: #fff;
            padding: 2px 6px;
            border-radius: 4px;
            font: 12px sans-serif;
            white-space: nowrap;
        }}
    </style>
</head>
<body>
    <div id="map"></div>
    <script>
        const state = {state};
        const map = L.map('map', {{center: state.center, zoom: state.zoom, zoomControl: true}});
        for (const tile of state.tiles) {{
            L.tileLayer(tile.url, {{attribution: tile.attribution, maxZoom: tile.maxZoom}}).addTo(map);
        }}
        for (const path of state.paths) {{
            L.polyline(path.points, {{color: path.color, weight: path.weight, opacity: path.opacity}}).addTo(map);
        }}
        for (const marker of state.markers) {{
            L.marker(marker.position)
                .addTo(map)
                .bindTooltip(marker.label, {{permanent: true, direction: 'bottom', className: 'device-label'}})
                .bindPopup(marker.popup.join('<br/>'));
        }}
    </script>
</body>
</html>
"""


def surface_state(surface: MapSurface) -> dict[str, Any]:
    """JSON-ready description of the layers on *surface*."""
    tiles: list[dict[str, Any]] = []
    paths: list[dict[str, Any]] = []
    markers: list[dict[str, Any]] = []
    for layer in surface.layers.values():
        if isinstance(layer, TileLayer):
            tiles.append({"url": layer.url, "attribution": layer.attribution, "maxZoom": layer.max_zoom})
        elif isinstance(layer, Polyline):
            paths.append(
                {
                    "points": [list(point) for point in layer.points],
                    "color": layer.color,
                    "weight": layer.weight,
                    "opacity": layer.opacity,
                }
            )
        elif isinstance(layer, Marker):
            markers.append(
                {
                    "position": list(layer.position),
                    "label": html.escape(layer.label),
                    "popup": [html.escape(line) for line in layer.popup],
                }
            )
    return {
        "center": list(surface.center),
        "zoom": surface.zoom,
        "tiles": tiles,
        "paths": paths,
        "markers": markers,
    }


def render_page(surface: MapSurface, *, title: str = "Live Location Map") -> str:
    """Render *surface* as a self-contained HTML document."""
    # "</" inside the inline script would terminate it early.
    state = json.dumps(surface_state(surface)).replace("</", "<\\/")
    return _PAGE_TEMPLATE.format(title=html.escape(title), cdn=_LEAFLET_CDN, state=state)
