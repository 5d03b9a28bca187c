"""
geometry.py - Exterior ring extraction, simplification and bounding boxes

All rings are lists of ``[lon, lat]`` pairs (GeoJSON order).
"""

from typing import Any, List, Optional, Sequence

import numpy as np
from loguru import logger
from shapely.errors import ShapelyError
from shapely.geometry import MultiPolygon, Polygon, shape
from shapely.geometry.base import BaseGeometry

from .models import BoundingBox, Ring

# ~0.001 degrees is ~100 m at Bolivian latitudes
DEFAULT_TOLERANCE = 0.001


def _to_shape(geometry: Any) -> Optional[BaseGeometry]:
    if geometry is None:
        return None
    if isinstance(geometry, BaseGeometry):
        return geometry
    if not isinstance(geometry, dict):
        return None
    if geometry.get("type") == "Feature":
        return _to_shape(geometry.get("geometry"))
    try:
        return shape(geometry)
    except (ShapelyError, KeyError, IndexError, TypeError, ValueError) as e:
        logger.debug(f"  Unreadable geometry ({geometry.get('type')}): {e}")
        return None


def _multipolygon_parts(geometry: Any) -> Optional[List[Polygon]]:
    """Readable parts of a GeoJSON MultiPolygon mapping, or None for any other input."""
    if isinstance(geometry, dict) and geometry.get("type") == "Feature":
        return _multipolygon_parts(geometry.get("geometry"))
    if not isinstance(geometry, dict) or geometry.get("type") != "MultiPolygon":
        return None

    parts: List[Polygon] = []
    for coordinates in geometry.get("coordinates") or []:
        part = _to_shape({"type": "Polygon", "coordinates": coordinates})
        # skip unreadable parts
        if isinstance(part, Polygon) and not part.is_empty:
            parts.append(part)
    return parts


def _ring_coords(polygon: Polygon) -> Ring:
    return [[float(x), float(y)] for x, y, *_ in polygon.exterior.coords]


def extract_exterior_ring(geometry: Any) -> Optional[Ring]:
    """
    Return the exterior ring of a Polygon, or the ring with the most vertices
    of a MultiPolygon. Holes and secondary parts are dropped. MultiPolygon
    parts are read one by one, so an empty or malformed part is skipped
    instead of discarding the whole geometry.

    Args:
        geometry: GeoJSON geometry/Feature mapping or shapely geometry

    Returns:
        Ring of [lon, lat] pairs, or None when the geometry is unsupported or empty
    """
    parts = _multipolygon_parts(geometry)
    if parts is None:
        geom = _to_shape(geometry)
        if geom is None or geom.is_empty:
            return None
        if isinstance(geom, Polygon):
            return _ring_coords(geom)
        if not isinstance(geom, MultiPolygon):
            logger.debug(f"  Unsupported geometry type: {geom.geom_type}")
            return None
        parts = [part for part in geom.geoms if not part.is_empty]

    rings = [_ring_coords(part) for part in parts]
    if not rings:
        return None
    # max() keeps the first ring on ties
    return max(rings, key=len)


def _perpendicular_distances(points: np.ndarray, start: np.ndarray, end: np.ndarray) -> np.ndarray:
    """Distance from each point to the line through start and end."""
    dx, dy = end - start
    if dx == 0 and dy == 0:
        return np.hypot(points[:, 0] - start[0], points[:, 1] - start[1])
    t = ((points[:, 0] - start[0]) * dx + (points[:, 1] - start[1]) * dy) / (dx * dx + dy * dy)
    closest_x = start[0] + t * dx
    closest_y = start[1] + t * dy
    return np.hypot(points[:, 0] - closest_x, points[:, 1] - closest_y)


def simplify_ring(ring: Sequence[Sequence[float]], tolerance: float = DEFAULT_TOLERANCE) -> Ring:
    """
    Douglas-Peucker simplification of a closed ring.

    Rings of four points or fewer are returned unchanged. The split points are
    processed from an explicit stack, so very large rings cannot hit the
    recursion limit. The result is re-closed if its endpoints diverge.
    Shapely's ``simplify`` is not used because it may return a ring of fewer
    than four points and does not keep short rings untouched.
    """
    if len(ring) <= 4:
        return [list(pt) for pt in ring]

    points = np.asarray(ring, dtype=float)[:, :2]
    keep = np.zeros(len(points), dtype=bool)
    keep[0] = keep[-1] = True

    stack = [(0, len(points) - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        distances = _perpendicular_distances(points[first + 1:last], points[first], points[last])
        offset = int(np.argmax(distances))
        if distances[offset] > tolerance:
            split = first + 1 + offset
            keep[split] = True
            stack.append((split, last))
            stack.append((first, split))

    simplified = [[float(x), float(y)] for x, y in points[keep]]
    if simplified[0] != simplified[-1]:
        simplified.append(list(simplified[0]))
    return simplified


def compute_bbox(ring: Sequence[Sequence[float]]) -> BoundingBox:
    """
    Axis-aligned bounding box of a ring.

    Raises:
        ValueError: if the ring is empty
    """
    if len(ring) == 0:
        raise ValueError("Cannot compute the bounding box of an empty ring")

    lon, lat = ring[0][0], ring[0][1]
    min_lon = max_lon = lon
    min_lat = max_lat = lat
    for lon, lat in ((pt[0], pt[1]) for pt in ring):
        if lat < min_lat:
            min_lat = lat
        if lat > max_lat:
            max_lat = lat
        if lon < min_lon:
            min_lon = lon
        if lon > max_lon:
            max_lon = lon
    return BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lon=min_lon, max_lon=max_lon)


def ring_to_polygon(ring: Sequence[Sequence[float]]) -> Polygon:
    """Shapely polygon for a [lon, lat] ring (used for previews)."""
    return Polygon([(pt[0], pt[1]) for pt in ring])
