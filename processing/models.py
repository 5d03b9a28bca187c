"""
Geo-Index record types.

The JSON wire format (municipalities-index.json) uses camelCase keys; the
dataclasses below keep snake_case attributes and convert at the edges.
Coordinates inside ``polygon`` are always ``[lon, lat]`` (GeoJSON order).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

Ring = List[List[float]]

DEFAULT_DEPARTMENT = "Bolivia"

# First two digits of the INE code -> department name
DEPARTMENT_NAME_BY_CODE: Dict[str, str] = {
    "01": "Chuquisaca",
    "02": "La Paz",
    "03": "Cochabamba",
    "04": "Oruro",
    "05": "Potosí",
    "06": "Tarija",
    "07": "Santa Cruz",
    "08": "Beni",
    "09": "Pando",
}


def department_for_code(ine_code: str) -> str:
    """Department name for an INE code, or the national sentinel if unknown."""
    return DEPARTMENT_NAME_BY_CODE.get(str(ine_code)[:2], DEFAULT_DEPARTMENT)


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "minLat": self.min_lat,
            "maxLat": self.max_lat,
            "minLon": self.min_lon,
            "maxLon": self.max_lon,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoundingBox":
        try:
            bbox = cls(
                min_lat=float(data["minLat"]),
                max_lat=float(data["maxLat"]),
                min_lon=float(data["minLon"]),
                max_lon=float(data["maxLon"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid bbox {data!r}: {e}") from e
        if bbox.min_lat > bbox.max_lat or bbox.min_lon > bbox.max_lon:
            raise ValueError(f"Inverted bbox {data!r}")
        return bbox


@dataclass
class MunicipalityEntry:
    """One row of the Geo-Index."""

    id: str
    name: str
    ine_code: str
    department: str
    bbox: BoundingBox
    polygon: Ring = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "ineCode": self.ine_code,
            "department": self.department,
            "bbox": self.bbox.to_dict(),
            "polygon": self.polygon,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MunicipalityEntry":
        """
        Build an entry from its JSON form.

        Raises:
            ValueError: if a required field is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Index row must be an object, got {type(data).__name__}")
        missing = [k for k in ("id", "name", "ineCode", "department", "bbox", "polygon") if k not in data]
        if missing:
            raise ValueError(f"Index row missing fields: {missing}")
        if not data["id"]:
            raise ValueError("Index row has an empty id")

        polygon = data["polygon"]
        if not isinstance(polygon, list) or len(polygon) < 4:
            raise ValueError(f"Polygon for {data['ineCode']} must be a closed ring of at least 4 points")
        try:
            ring = [[float(pt[0]), float(pt[1])] for pt in polygon]
        except (IndexError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid polygon for {data['ineCode']}: {e}") from e

        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            ine_code=str(data["ineCode"]),
            department=str(data["department"]),
            bbox=BoundingBox.from_dict(data["bbox"]),
            polygon=ring,
        )


def entries_to_json(entries: Sequence[MunicipalityEntry]) -> List[Dict[str, Any]]:
    return [entry.to_dict() for entry in entries]


def entries_from_json(rows: Any) -> List[MunicipalityEntry]:
    """Parse a decoded Geo-Index array. Raises ValueError if it is not one."""
    if not isinstance(rows, list):
        raise ValueError(f"Geo-Index must be a JSON array, got {type(rows).__name__}")
    return [MunicipalityEntry.from_dict(row) for row in rows]
