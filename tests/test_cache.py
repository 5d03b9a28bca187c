"""
Tests for the layered Geo-Index cache: memory, persistent store, fetch coalescing.
"""

import asyncio
import json

import httpx
import pytest

from locator.cache import GeoIndexCache, GeoIndexLoadError, PersistentStore, build_index_url

INDEX_URL = "https://example.org/app/municipalities-index.json"


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def counting_transport(payload=None, status_code=200, content=None, delay=0.01):
    """MockTransport answering every request the same way, and counting them."""
    calls = []

    async def handler(request):
        calls.append(request)
        await asyncio.sleep(delay)
        if content is not None:
            return httpx.Response(status_code, content=content)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler), calls


@pytest.mark.parametrize(
    "base_url, base_route, expected",
    [
        ("/", "/", "/municipalities-index.json"),
        ("https://example.org/", "/app/", "https://example.org/app/municipalities-index.json"),
        ("https://example.org", "", "https://example.org/municipalities-index.json"),
        ("https://example.org", "app", "https://example.org/app/municipalities-index.json"),
    ],
)
def test_build_index_url(base_url, base_route, expected):
    assert build_index_url(base_url, base_route) == expected


class TestPersistentStore:
    def test_write_then_read(self, tmp_path, sample_index):
        store = PersistentStore(tmp_path, clock=FakeClock())
        assert store.write(sample_index) is True
        assert [e.id for e in store.read()] == ["lp1", "ea1", "cb1"]

    def test_missing_file_is_a_miss(self, tmp_path):
        assert PersistentStore(tmp_path).read() is None

    def test_expired_entry_is_a_miss(self, tmp_path, sample_index):
        clock = FakeClock()
        store = PersistentStore(tmp_path, ttl_seconds=24 * 3600, clock=clock)
        store.write(sample_index)

        clock.now += 24 * 3600 - 1
        assert store.read() is not None
        clock.now += 2
        assert store.read() is None

    @pytest.mark.parametrize(
        "content",
        ["{not json", json.dumps({"entries": []}), json.dumps({"written_at": 1, "entries": {"a": 1}}), "[]"],
    )
    def test_malformed_file_is_a_miss(self, tmp_path, content):
        store = PersistentStore(tmp_path, clock=FakeClock(2.0))
        store.path.write_text(content, encoding="utf-8")
        assert store.read() is None

    def test_write_failure_is_not_raised(self, tmp_path, sample_index):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x", encoding="utf-8")
        assert PersistentStore(blocker / "cache").write(sample_index) is False

    def test_clear(self, tmp_path, sample_index):
        store = PersistentStore(tmp_path)
        store.write(sample_index)
        store.clear()
        store.clear()
        assert not store.path.exists()


class TestGeoIndexCache:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, index_payload):
        transport, calls = counting_transport(index_payload)
        cache = GeoIndexCache(INDEX_URL, transport=transport)

        first, second = await asyncio.gather(cache.get_index(), cache.get_index())

        assert len(calls) == 1
        assert cache.fetch_count == 1
        assert first is second
        assert [e.id for e in first] == ["lp1", "ea1", "cb1"]

    @pytest.mark.asyncio
    async def test_memory_hit_skips_network(self, index_payload):
        transport, calls = counting_transport(index_payload)
        cache = GeoIndexCache(INDEX_URL, transport=transport)

        assert cache.peek() is None
        loaded = await cache.get_index()
        again = await cache.get_index()

        assert again is loaded
        assert cache.peek() is loaded
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_fresh_store_avoids_fetch(self, tmp_path, sample_index, index_payload):
        store = PersistentStore(tmp_path, clock=FakeClock())
        store.write(sample_index)
        transport, calls = counting_transport(index_payload)
        cache = GeoIndexCache(INDEX_URL, store=store, transport=transport)

        index = await cache.get_index()

        assert len(index) == 3
        assert calls == []
        assert cache.fetch_count == 0

    @pytest.mark.asyncio
    async def test_expired_store_fetches_and_rewrites(self, tmp_path, sample_index, index_payload):
        clock = FakeClock()
        store = PersistentStore(tmp_path, ttl_seconds=60, clock=clock)
        store.write(sample_index[:1])
        clock.now += 120

        transport, calls = counting_transport(index_payload)
        cache = GeoIndexCache(INDEX_URL, store=store, transport=transport)
        index = await cache.get_index()

        assert len(calls) == 1
        assert len(index) == 3
        assert len(store.read()) == 3

    @pytest.mark.asyncio
    async def test_fetch_writes_through_to_store(self, tmp_path, index_payload):
        store = PersistentStore(tmp_path)
        transport, _ = counting_transport(index_payload)
        await GeoIndexCache(INDEX_URL, store=store, transport=transport).get_index()

        fresh_cache = GeoIndexCache(INDEX_URL, store=store, transport=transport)
        await fresh_cache.get_index()
        assert fresh_cache.fetch_count == 0

    @pytest.mark.asyncio
    async def test_http_error_clears_inflight_and_allows_retry(self, index_payload):
        responses = [httpx.Response(500), httpx.Response(200, json=index_payload)]

        async def handler(request):
            return responses.pop(0)

        cache = GeoIndexCache(INDEX_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(GeoIndexLoadError, match="500"):
            await cache.get_index()
        assert cache._inflight is None
        assert cache.peek() is None

        index = await cache.get_index()
        assert len(index) == 3
        assert cache.fetch_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_failure(self):
        transport, calls = counting_transport(status_code=503, content=b"down")
        cache = GeoIndexCache(INDEX_URL, transport=transport)

        results = await asyncio.gather(cache.get_index(), cache.get_index(), return_exceptions=True)

        assert len(calls) == 1
        assert all(isinstance(r, GeoIndexLoadError) for r in results)

    @pytest.mark.asyncio
    async def test_invalid_payload_is_a_load_error(self):
        transport, _ = counting_transport(content=b"<html>not json</html>")
        with pytest.raises(GeoIndexLoadError):
            await GeoIndexCache(INDEX_URL, transport=transport).get_index()

        transport, _ = counting_transport({"not": "an array"})
        with pytest.raises(GeoIndexLoadError):
            await GeoIndexCache(INDEX_URL, transport=transport).get_index()

    @pytest.mark.asyncio
    async def test_network_error_is_a_load_error(self):
        async def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        cache = GeoIndexCache(INDEX_URL, transport=httpx.MockTransport(handler))
        with pytest.raises(GeoIndexLoadError):
            await cache.get_index()

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, tmp_path, index_payload):
        store = PersistentStore(tmp_path)
        transport, calls = counting_transport(index_payload)
        cache = GeoIndexCache(INDEX_URL, store=store, transport=transport)

        await cache.get_index()
        cache.invalidate()
        assert not store.path.exists()
        await cache.get_index()

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_local_file_source(self, tmp_path, index_payload):
        path = tmp_path / "municipalities-index.json"
        path.write_text(json.dumps(index_payload), encoding="utf-8")

        index = await GeoIndexCache(str(path)).get_index()
        assert [e.ine_code for e in index] == ["020101", "020105", "030101"]

    @pytest.mark.asyncio
    async def test_missing_local_file_is_a_load_error(self, tmp_path):
        with pytest.raises(GeoIndexLoadError):
            await GeoIndexCache(str(tmp_path / "missing.json")).get_index()
