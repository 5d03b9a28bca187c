"""
Geo-Index client used by the UI layer.

Usage:
    client = GeoIndexClient.from_config(Config())
    municipality = await client.find_by_coordinates(-16.5, -68.15)
    index = await client.get_index()
    suggestions = client.search(index, "la paz")
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger

from processing.models import MunicipalityEntry

from .cache import DEFAULT_TTL_SECONDS, GeoIndexCache, PersistentStore, build_index_url
from .search import DEFAULT_LIMIT, group_by_department, search
from .spatial import locate


class GeoIndexClient:
    """Point lookup and name search over a cached Geo-Index."""

    def __init__(self, cache: GeoIndexCache, search_limit: int = DEFAULT_LIMIT):
        self.cache = cache
        self.search_limit = search_limit

    @classmethod
    def from_config(cls, config: Any, transport: Optional[httpx.AsyncBaseTransport] = None) -> "GeoIndexClient":
        """
        Wire the cache from configuration.

        A non-HTTP base URL means the index is read from the builder's output
        path on this machine. That file is read directly, so a rebuild is
        picked up immediately and no persistent copy is kept.
        """
        base_url = str(config.get("client.base_url") or "/")
        store: Optional[PersistentStore] = None
        if base_url.startswith(("http://", "https://")):
            index_url = build_index_url(
                base_url, config.get("client.base_route"), config.get("client.index_filename")
            )
            ttl_hours = config.get("client.cache_ttl_hours")
            store = PersistentStore(
                cache_dir=config.get_cache_dir(),
                cache_key=config.get("client.cache_key"),
                ttl_seconds=float(ttl_hours) * 3600 if ttl_hours is not None else DEFAULT_TTL_SECONDS,
            )
        else:
            index_url = str(config.get_index_output_path())

        cache = GeoIndexCache(
            index_url,
            store=store,
            timeout=float(config.get("client.fetch_timeout")),
            transport=transport,
        )
        logger.debug(f"Geo-Index source: {index_url} (cache: {store.path if store else 'memory only'})")
        return cls(cache, search_limit=int(config.get("client.search_limit")))

    async def get_index(self) -> List[MunicipalityEntry]:
        return await self.cache.get_index()

    async def find_by_coordinates(self, lat: float, lon: float) -> Optional[MunicipalityEntry]:
        """Municipality containing (lat, lon); no network access once the index is loaded."""
        index = await self.cache.get_index()
        return locate(index, lat, lon)

    def search(
        self, index: Sequence[MunicipalityEntry], query: str, limit: Optional[int] = None
    ) -> List[MunicipalityEntry]:
        return search(index, query, self.search_limit if limit is None else limit)

    async def municipalities_by_department(self) -> Dict[str, List[str]]:
        return group_by_department(await self.cache.get_index())
