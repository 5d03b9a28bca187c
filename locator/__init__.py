"""
Locator package for the Municipality Geo-Index

Runtime side of the geo-index: a layered cache around municipalities-index.json
plus GPS point lookup and name search over it.

    from locator import GeoIndexClient
"""

from .cache import GeoIndexCache, GeoIndexLoadError, PersistentStore, build_index_url
from .client import GeoIndexClient
from .search import group_by_department, search
from .spatial import GeoPoint, locate, point_in_ring

__all__ = [
    "GeoIndexCache",
    "GeoIndexLoadError",
    "PersistentStore",
    "build_index_url",
    "GeoIndexClient",
    "search",
    "group_by_department",
    "GeoPoint",
    "locate",
    "point_in_ring",
]
