"""
Tests for the YAML configuration loader.
"""

from pathlib import Path

import pytest

from ops.config_loader import BUNDLED_CONFIG, Config


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "registry:\n"
        "  project_id: \"proj\"\n"
        "  database_id: \"db\"\n"
        "geometry:\n"
        "  simplify_tolerance: 0.002\n"
        "output:\n"
        "  index_path: \"build/index.json\"\n",
        encoding="utf-8",
    )
    return path


def test_bundled_config_loads():
    config = Config(BUNDLED_CONFIG)
    assert config.get("registry.project_id") == "697ea96f003c3264105c"
    assert config.get("geometry.simplify_tolerance") == 0.001
    assert config.get_overrides_path().name == "overrides.yaml"
    assert config.get_overrides_path().exists()


def test_values_and_defaults(config_file, tmp_path):
    config = Config(config_file, project_root_override=tmp_path)
    assert config.get("geometry.simplify_tolerance") == 0.002
    assert config.get("registry.page_size") == 500
    assert config.get("client.search_limit") == 8
    assert config.get("missing.key", "fallback") == "fallback"
    assert config.get_index_output_path() == tmp_path / "build" / "index.json"


def test_set_creates_nested_keys(config_file, tmp_path):
    config = Config(config_file, project_root_override=tmp_path)
    config.set("client.cache_dir", "/var/cache/geoindex")
    config.set("new.section.value", 3)
    assert config.get_cache_dir() == Path("/var/cache/geoindex")
    assert config.get("new.section.value") == 3


def test_environment_overrides_yaml(config_file, tmp_path, monkeypatch):
    monkeypatch.setenv("PUBLIC_APPWRITE_PROJECT_ID", "'from-env'")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://example.org/")
    config = Config(config_file, project_root_override=tmp_path)
    assert config.get("registry.project_id") == "from-env"
    assert config.get("client.base_url") == "https://example.org/"


def test_dotenv_file_is_loaded(config_file, tmp_path, monkeypatch):
    # Registers the variable with monkeypatch so the value loaded from .env is removed afterwards
    monkeypatch.setenv("PUBLIC_BASE_ROUTE", "placeholder")
    monkeypatch.delenv("PUBLIC_BASE_ROUTE")
    (tmp_path / ".env").write_text("PUBLIC_BASE_ROUTE=/app/\n", encoding="utf-8")

    config = Config(config_file, project_root_override=tmp_path)
    assert config.get("client.base_route") == "/app/"


def test_config_path_from_environment(config_file, monkeypatch):
    monkeypatch.setenv("GEOINDEX_CONFIG_PATH", str(config_file))
    assert Config().config_path == config_file.resolve()


def test_geometry_feed_url_built_from_storage_ids(config_file, tmp_path):
    config = Config(config_file, project_root_override=tmp_path)
    config.set("geometry.bucket_id", "bucket")
    config.set("geometry.file_id", "file")
    assert config.get_geometry_feed_url() == (
        "https://appwrite.sociest.org/v1/storage/buckets/bucket/files/file/view?project=proj"
    )

    config.set("geometry.feed_url", "https://example.org/municipios.geojson")
    assert config.get_geometry_feed_url() == "https://example.org/municipios.geojson"


def test_geometry_feed_url_requires_a_source(config_file, tmp_path):
    config = Config(config_file, project_root_override=tmp_path)
    with pytest.raises(ValueError):
        config.get_geometry_feed_url()


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config(tmp_path / "nope.yaml")
