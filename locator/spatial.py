"""
Point-in-polygon lookup over the Geo-Index.

Public functions take ``(lat, lon)`` in the order geolocation APIs report
them. Index rings store ``[lon, lat]``. ``GeoPoint.as_lon_lat()`` is the one
place the order is swapped.

Boundary behavior of ``point_in_ring`` (even-odd rule, half-open edges): for
the unit square [[0,0],[0,1],[1,1],[1,0],[0,0]] the corner (lat=0, lon=0) is
inside while (lat=1, lon=1), (lat=1, lon=0) and (lat=0, lon=1) are outside.
"""

from typing import List, NamedTuple, Optional, Sequence, Tuple

from processing.models import BoundingBox, MunicipalityEntry


class GeoPoint(NamedTuple):
    lat: float
    lon: float

    def as_lon_lat(self) -> Tuple[float, float]:
        """(x, y) in ring order."""
        return self.lon, self.lat


def bbox_contains(bbox: BoundingBox, point: GeoPoint) -> bool:
    return bbox.min_lat <= point.lat <= bbox.max_lat and bbox.min_lon <= point.lon <= bbox.max_lon


def point_in_ring(point: GeoPoint, ring: Sequence[Sequence[float]]) -> bool:
    """Ray-casting test of a point against a closed ring of [lon, lat] pairs."""
    x, y = point.as_lon_lat()
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def candidates_for(index: Sequence[MunicipalityEntry], point: GeoPoint) -> List[MunicipalityEntry]:
    """Entries whose bounding box contains the point, in index order."""
    return [entry for entry in index if bbox_contains(entry.bbox, point)]


def locate(index: Sequence[MunicipalityEntry], lat: float, lon: float) -> Optional[MunicipalityEntry]:
    """
    Municipality containing the point, or None.

    Bounding boxes discard most entries before the exact ray-casting test. If
    polygons overlap, the first match in index order wins.
    """
    point = GeoPoint(lat, lon)
    for candidate in candidates_for(index, point):
        if point_in_ring(point, candidate.polygon):
            return candidate
    return None
