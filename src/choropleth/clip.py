"""Viewport restriction applied to the display extent only."""

from __future__ import annotations

from dataclasses import replace

from .models import PolygonSet, Ring, Viewport


def clip(polygon_set: PolygonSet, bounds: Viewport) -> PolygonSet:
    """Attach a display viewport to ``polygon_set``.

    Ring point lists are returned untouched. Truncating a ring to the
    rectangle would make the renderer close the ring with an edge across the
    excluded interior; the bounds are applied as axis limits instead.
    """
    return replace(polygon_set, viewport=bounds)


def visible_rings(polygon_set: PolygonSet) -> tuple[Ring, ...]:
    """Whole rings whose bounding box intersects the attached viewport."""
    if polygon_set.viewport is None:
        return polygon_set.rings
    viewport = polygon_set.viewport
    return tuple(ring for ring in polygon_set if viewport.intersects(ring.bounds))


def display_extent(
    polygon_set: PolygonSet,
    *,
    padding_ratio: float = 0.0,
) -> tuple[float, float, float, float] | None:
    """(lon_min, lon_max, lat_min, lat_max) the renderer should show.

    The viewport wins when one is attached; otherwise the data bounds are
    padded by ``padding_ratio`` of their span.
    """
    viewport = polygon_set.viewport
    if viewport is not None:
        return (viewport.lon_min, viewport.lon_max, viewport.lat_min, viewport.lat_max)
    bounds = polygon_set.bounds
    if bounds is None:
        return None
    lon_min, lon_max, lat_min, lat_max = bounds
    pad_x = (lon_max - lon_min) * padding_ratio
    pad_y = (lat_max - lat_min) * padding_ratio
    return (lon_min - pad_x, lon_max + pad_x, max(lat_min - pad_y, -90.0), min(lat_max + pad_y, 90.0))
