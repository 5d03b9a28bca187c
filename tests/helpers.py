"""
Test helpers: ring builders and a fake requests session.
"""

import json
from typing import Any, Dict, List, Optional

import requests

from processing.geometry import compute_bbox
from processing.models import MunicipalityEntry

UNIT_SQUARE = [[0.0, 0.0], [0.0, 1.0], [1.0, 1.0], [1.0, 0.0], [0.0, 0.0]]


def square_ring(min_lon: float, min_lat: float, size: float) -> List[List[float]]:
    return [
        [min_lon, min_lat],
        [min_lon, min_lat + size],
        [min_lon + size, min_lat + size],
        [min_lon + size, min_lat],
        [min_lon, min_lat],
    ]


def make_entry(
    entity_id: str, name: str, ine_code: str, ring: List[List[float]], department: str = "La Paz"
) -> MunicipalityEntry:
    return MunicipalityEntry(
        id=entity_id,
        name=name,
        ine_code=ine_code,
        department=department,
        bbox=compute_bbox(ring),
        polygon=ring,
    )


def polygon_feature(ine_code: Optional[str], nombre: Optional[str], ring: List[List[float]]) -> Dict[str, Any]:
    return {
        "type": "Feature",
        "properties": {"id": ine_code, "nombre": nombre},
        "geometry": {"type": "Polygon", "coordinates": [ring]},
    }


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload: Any = None, status_code: int = 200, text: Optional[str] = None):
        self.payload = payload
        self.status_code = status_code
        if text is None:
            text = "" if isinstance(payload, Exception) else json.dumps(payload)
        self.text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """Records GET calls and replays queued responses in order."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.headers: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response
