"""Upstream feeds consumed by the index builder: entity registry and municipal GeoJSON."""

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import requests
from loguru import logger

from processing.name_matching import build_registry_keys


class FeedError(RuntimeError):
    """An upstream feed could not be fetched or decoded. Fatal for a build."""


class EntityRegistryClient:
    """
    Read-only client for the entity registry (Appwrite documents API).

    Documents are paged with a cursor: every request asks for ``page_size``
    documents ordered by ``$sequence`` and, after the first page, for the ones
    after the last id seen. A short page ends the scan.

    Example:
        registry = EntityRegistryClient(endpoint, project_id, database_id)
        keys = registry.fetch_municipality_keys()
    """

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        database_id: str,
        collection: str = "entities",
        page_size: int = 500,
        label_marker: str = "municipio",
        timeout: float = 60,
        session: Optional[requests.Session] = None,
    ):
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id
        self.database_id = database_id
        self.collection = collection
        self.page_size = page_size
        self.label_marker = label_marker
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"X-Appwrite-Project": self.project_id})

    @classmethod
    def from_config(cls, config: Any, session: Optional[requests.Session] = None) -> "EntityRegistryClient":
        project_id = config.get("registry.project_id")
        database_id = config.get("registry.database_id")
        if not project_id or not database_id:
            raise ValueError("registry.project_id and registry.database_id must be configured")
        return cls(
            endpoint=config.get("registry.endpoint"),
            project_id=str(project_id),
            database_id=str(database_id),
            collection=config.get("registry.collection"),
            page_size=int(config.get("registry.page_size")),
            label_marker=config.get("registry.label_marker"),
            timeout=float(config.get("registry.timeout")),
            session=session,
        )

    @property
    def documents_url(self) -> str:
        return f"{self.endpoint}/databases/{self.database_id}/collections/{self.collection}/documents"

    def _page_queries(self, cursor: Optional[str]) -> List[str]:
        queries = [
            json.dumps({"method": "limit", "values": [self.page_size]}),
            json.dumps({"method": "orderAsc", "attribute": "$sequence"}),
            json.dumps({"method": "search", "attribute": "label", "values": [self.label_marker]}),
        ]
        if cursor is not None:
            queries.append(json.dumps({"method": "cursorAfter", "values": [cursor]}))
        return queries

    def _request_page(self, cursor: Optional[str]) -> List[Dict[str, Any]]:
        params = [("queries[]", q) for q in self._page_queries(cursor)]
        try:
            response = self.session.get(self.documents_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.HTTPError as e:
            raise FeedError(
                f"Entities fetch error {e.response.status_code}: {e.response.text}"
            ) from e
        except requests.exceptions.RequestException as e:
            raise FeedError(f"Entities fetch failed: {e}") from e
        except ValueError as e:
            raise FeedError(f"Entities response is not valid JSON: {e}") from e

        documents = payload.get("documents") if isinstance(payload, dict) else None
        if documents is None:
            documents = []
        if not isinstance(documents, list):
            raise FeedError(f"Unexpected entities payload: documents is {type(documents).__name__}")
        return documents

    def iter_documents(self) -> Iterator[Dict[str, Any]]:
        """Yield every registry document matching the label marker, page by page."""
        cursor: Optional[str] = None
        page = 0
        total = 0
        while True:
            documents = self._request_page(cursor)
            page += 1
            total += len(documents)
            logger.debug(f"  Page {page}: got {len(documents)} docs ({total} so far)")
            yield from documents

            if len(documents) < self.page_size:
                break
            last_id = documents[-1].get("$id")
            if not last_id:
                raise FeedError(f"Page {page} ended with a document without $id; cannot continue")
            cursor = str(last_id)

    def fetch_municipality_keys(self) -> Dict[str, str]:
        """Normalized municipality key -> entity id for every municipality document."""
        logger.info(f'📡 Fetching municipality entities (search: "{self.label_marker}" in label)...')
        keys = build_registry_keys(self.iter_documents(), marker=self.label_marker)
        logger.success(f"  ✅ Municipality entities fetched: {len(keys):,}")
        return keys


def _features_from_payload(payload: Any, source: str) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        raise FeedError(f"GeoJSON from {source} is not an object")
    features = payload.get("features")
    if features is None:
        features = []
    if not isinstance(features, list):
        raise FeedError(f"GeoJSON from {source} has a non-list 'features' member")
    return features


def fetch_geometry_feed(
    url: str, timeout: float = 120, session: Optional[requests.Session] = None
) -> List[Dict[str, Any]]:
    """Download the municipal boundary FeatureCollection and return its features."""
    logger.info("📥 Fetching municipal GeoJSON...")
    logger.debug(f"   URL: {url}")
    http = session or requests.Session()
    try:
        response = http.get(url, headers={"Accept": "application/json"}, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except requests.exceptions.HTTPError as e:
        raise FeedError(f"GeoJSON fetch failed: {e.response.status_code}") from e
    except requests.exceptions.RequestException as e:
        raise FeedError(f"GeoJSON fetch failed: {e}") from e
    except ValueError as e:
        raise FeedError(f"GeoJSON response is not valid JSON: {e}") from e

    features = _features_from_payload(payload, url)
    logger.success(f"  ✅ GeoJSON loaded: {len(features):,} features")
    return features


def load_geometry_file(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read the municipal boundary FeatureCollection from a local file."""
    path = Path(path)
    logger.info(f"🗺️ Loading GeoJSON from {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except OSError as e:
        raise FeedError(f"Cannot read GeoJSON file {path}: {e}") from e
    except ValueError as e:
        raise FeedError(f"GeoJSON file {path} is not valid JSON: {e}") from e

    features = _features_from_payload(payload, str(path))
    logger.success(f"  ✅ Loaded {len(features):,} features")
    return features
