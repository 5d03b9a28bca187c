"""
Layered cache for the municipality Geo-Index.

Lookup order for ``GeoIndexCache.get_index()``:
    1. memory (one load per process)
    2. persistent store on disk, if younger than the TTL
    3. network fetch of municipalities-index.json

Concurrent callers that miss both caches share a single in-flight fetch.
"""

import asyncio
import json
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, List, Optional, Union

import httpx
from loguru import logger

from processing.models import MunicipalityEntry, entries_from_json, entries_to_json

DEFAULT_CACHE_KEY = "municipality_index_v1"
DEFAULT_TTL_SECONDS = 24 * 60 * 60
INDEX_FILENAME = "municipalities-index.json"


class GeoIndexLoadError(RuntimeError):
    """The Geo-Index could not be loaded; lookups and search are unavailable."""


def build_index_url(base_url: str = "/", base_route: str = "/", filename: str = INDEX_FILENAME) -> str:
    """
    Join the deployment base URL, base route and index file name.

    Examples:
        build_index_url("https://example.org/", "/app/") -> "https://example.org/app/municipalities-index.json"
        build_index_url("/", "/")                        -> "/municipalities-index.json"
    """
    base = (base_url or "").rstrip("/")
    route = (base_route or "").strip("/")
    parts = [base] + ([route] if route else []) + [filename.lstrip("/")]
    return "/".join(parts)


class PersistentStore:
    """
    On-disk copy of the Geo-Index that survives restarts.

    The file holds the entries plus the time they were written; entries older
    than ``ttl_seconds`` are ignored. Anything unreadable counts as a miss.
    """

    def __init__(
        self,
        cache_dir: Union[str, Path],
        cache_key: str = DEFAULT_CACHE_KEY,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = Path(cache_dir)
        self.cache_key = cache_key
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    @property
    def path(self) -> Path:
        return self.cache_dir / f"{self.cache_key}.json"

    def read(self) -> Optional[List[MunicipalityEntry]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                payload = json.load(f)
            written_at = float(payload["written_at"])
            if self.clock() - written_at > self.ttl_seconds:
                logger.debug(f"Persistent index cache expired ({self.path})")
                return None
            return entries_from_json(payload["entries"])
        except (OSError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"Ignoring unreadable index cache {self.path}: {e}")
            return None

    def write(self, entries: List[MunicipalityEntry]) -> bool:
        """Store entries with the current timestamp. Failures are logged, not raised."""
        payload = {"written_at": self.clock(), "entries": entries_to_json(entries)}
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{self.cache_key}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, separators=(",", ":"))
            os.replace(tmp_name, self.path)
            return True
        except OSError as e:
            logger.warning(f"⚠️ Could not persist index cache to {self.path}: {e}")
            return False

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class GeoIndexCache:
    """
    Owns the in-memory Geo-Index, its persistent copy and the in-flight fetch.

    Create one per process and pass it to whatever needs the index; nothing
    else writes to either tier.
    """

    def __init__(
        self,
        index_url: str,
        store: Optional[PersistentStore] = None,
        timeout: Optional[float] = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.index_url = index_url
        self.store = store
        self.timeout = timeout
        self.transport = transport
        self.fetch_count = 0
        self._memory: Optional[List[MunicipalityEntry]] = None
        self._inflight: Optional["asyncio.Task[List[MunicipalityEntry]]"] = None

    def peek(self) -> Optional[List[MunicipalityEntry]]:
        """The in-memory index, if it has been loaded, without awaiting anything."""
        return self._memory

    async def get_index(self) -> List[MunicipalityEntry]:
        """
        Return the full Geo-Index.

        Raises:
            GeoIndexLoadError: if it had to be fetched and the fetch failed
        """
        if self._memory is not None:
            return self._memory

        if self.store is not None and self._inflight is None:
            stored = self.store.read()
            if stored is not None:
                logger.debug(f"Loaded {len(stored):,} municipalities from persistent cache")
                self._memory = stored
                return stored

        task = self._inflight
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store())
            self._inflight = task
        else:
            logger.debug("Joining in-flight Geo-Index fetch")
        # Shield so one cancelled caller does not cancel the fetch for the others
        return await asyncio.shield(task)

    def invalidate(self) -> None:
        """Drop the memory and persistent tiers; the next call fetches again."""
        self._memory = None
        if self.store is not None:
            self.store.clear()

    async def _fetch_and_store(self) -> List[MunicipalityEntry]:
        try:
            entries = await self._fetch()
            self._memory = entries
            if self.store is not None:
                self.store.write(entries)
            return entries
        finally:
            self._inflight = None

    def _read_local(self, path: Path) -> List[MunicipalityEntry]:
        logger.info(f"📂 Loading Geo-Index from {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                entries = entries_from_json(json.load(f))
        except OSError as e:
            raise GeoIndexLoadError(f"Failed to load {path}: {e}") from e
        except ValueError as e:
            raise GeoIndexLoadError(f"Invalid {path.name}: {e}") from e
        logger.success(f"  ✅ Geo-Index loaded: {len(entries):,} municipalities")
        return entries

    async def _fetch(self) -> List[MunicipalityEntry]:
        self.fetch_count += 1
        if not self.index_url.startswith(("http://", "https://")):
            return self._read_local(Path(self.index_url))

        logger.info(f"📥 Fetching Geo-Index from {self.index_url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.index_url)
        except httpx.TimeoutException as e:
            raise GeoIndexLoadError(f"Timed out loading {INDEX_FILENAME}: {e}") from e
        except httpx.RequestError as e:
            raise GeoIndexLoadError(f"Failed to load {INDEX_FILENAME}: {e}") from e

        if response.status_code >= 400:
            raise GeoIndexLoadError(
                f"Failed to load {INDEX_FILENAME}: {response.status_code} {response.reason_phrase}"
            )

        try:
            entries = entries_from_json(response.json())
        except ValueError as e:
            raise GeoIndexLoadError(f"Invalid {INDEX_FILENAME}: {e}") from e

        logger.success(f"  ✅ Geo-Index loaded: {len(entries):,} municipalities")
        return entries
