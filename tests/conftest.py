"""
Shared pytest fixtures for the geo-index tests.
"""

import pytest
from loguru import logger

from ops.config_loader import ENV_OVERRIDES
from tests.helpers import make_entry, square_ring


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep deployment variables from the developer's shell out of the tests."""
    for env_name in list(ENV_OVERRIDES.values()) + ["GEOINDEX_CONFIG_PATH"]:
        monkeypatch.delenv(env_name, raising=False)


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    # CLI runs add sinks bound to captured streams
    logger.remove()


@pytest.fixture
def la_paz_ring():
    return square_ring(-68.3, -16.6, 0.3)


@pytest.fixture
def sample_index():
    """Three non-overlapping municipalities in index order."""
    return [
        make_entry("lp1", "LA PAZ", "020101", square_ring(-68.3, -16.6, 0.3)),
        make_entry("ea1", "EL ALTO", "020105", square_ring(-68.3, -16.3, 0.3)),
        make_entry("cb1", "COCHABAMBA", "030101", square_ring(-66.3, -17.5, 0.3), department="Cochabamba"),
    ]


@pytest.fixture
def index_payload(sample_index):
    return [entry.to_dict() for entry in sample_index]
