"""
Tests for the Geo-Index client facade.
"""

import json

import httpx
import pytest

from locator.cache import GeoIndexCache
from locator.client import GeoIndexClient
from ops.config_loader import Config


@pytest.fixture
def client(index_payload):
    async def handler(request):
        return httpx.Response(200, json=index_payload)

    cache = GeoIndexCache("https://example.org/municipalities-index.json", transport=httpx.MockTransport(handler))
    return GeoIndexClient(cache)


@pytest.mark.asyncio
async def test_find_by_coordinates(client):
    match = await client.find_by_coordinates(-16.2, -68.1)
    assert match is not None
    assert (match.id, match.name) == ("ea1", "EL ALTO")
    assert await client.find_by_coordinates(0.0, 0.0) is None
    assert client.cache.fetch_count == 1


@pytest.mark.asyncio
async def test_search_uses_default_limit(client):
    index = await client.get_index()
    assert [e.id for e in client.search(index, "")] == ["lp1", "ea1", "cb1"]
    assert [e.id for e in client.search(index, "", limit=1)] == ["lp1"]
    assert [e.id for e in client.search(index, "cocha")] == ["cb1"]


@pytest.mark.asyncio
async def test_municipalities_by_department(client):
    groups = await client.municipalities_by_department()
    assert groups["La Paz"] == ["lp1", "ea1"]


def write_config(tmp_path, client_section):
    path = tmp_path / "config.yaml"
    path.write_text("client:\n" + "".join(f"  {k}: {v!r}\n" for k, v in client_section.items()), encoding="utf-8")
    return Config(path, project_root_override=tmp_path)


@pytest.mark.asyncio
async def test_from_config_remote_source(tmp_path, index_payload):
    seen = []

    async def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json=index_payload)

    config = write_config(tmp_path, {"base_url": "https://example.org/", "base_route": "/app/"})
    client = GeoIndexClient.from_config(config, transport=httpx.MockTransport(handler))

    await client.get_index()
    assert seen == ["https://example.org/app/municipalities-index.json"]
    assert client.cache.store.path.parent == tmp_path / ".cache" / "geoindex"
    assert client.cache.store.path.exists()


@pytest.mark.asyncio
async def test_from_config_local_source(tmp_path, index_payload):
    config = write_config(tmp_path, {"base_url": "/", "search_limit": 2})
    output = config.get_index_output_path()
    output.parent.mkdir(parents=True)
    output.write_text(json.dumps(index_payload), encoding="utf-8")

    client = GeoIndexClient.from_config(config)
    index = await client.get_index()

    assert client.cache.index_url == str(output)
    assert client.cache.store is None
    assert len(client.search(index, "")) == 2
