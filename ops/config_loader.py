"""
Configuration Loader for the Municipality Geo-Index

This module provides a centralized way to load and access configuration
settings from the config.yaml file.

Usage:
    from ops import Config

    config = Config()
    output_path = config.get_index_output_path()
    tolerance = config.get("geometry.simplify_tolerance")
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml  # type: ignore[import-untyped]
from dotenv import load_dotenv
from loguru import logger

OPS_DIR = Path(__file__).parent
BUNDLED_CONFIG = OPS_DIR / "config.yaml"

# Environment variables that override config values (dot path -> variable)
ENV_OVERRIDES: Dict[str, str] = {
    "registry.endpoint": "PUBLIC_APPWRITE_ENDPOINT",
    "registry.project_id": "PUBLIC_APPWRITE_PROJECT_ID",
    "registry.database_id": "PUBLIC_APPWRITE_DATABASE_ID",
    "geometry.feed_url": "MUNICIPAL_GEOJSON_URL",
    "client.base_url": "PUBLIC_BASE_URL",
    "client.base_route": "PUBLIC_BASE_ROUTE",
}


class Config:
    """Configuration manager for the geo-index builder and locator."""

    # Default values that can be overridden in config
    DEFAULTS: Dict[str, Any] = {
        "registry": {
            "endpoint": "https://appwrite.sociest.org/v1",
            "collection": "entities",
            "page_size": 500,
            "label_marker": "municipio",
            "timeout": 60,
        },
        "geometry": {
            "simplify_tolerance": 0.001,
            "name_prefixes": ["TIOC-", "PUERTO MAYOR DE ", "PUERTO MENOR DE "],
        },
        "matching": {
            "overrides_file": "ops/overrides.yaml",
        },
        "output": {
            "index_path": "public/municipalities-index.json",
            "unmatched_preview": 30,
            "unused_keys_preview": 20,
        },
        "client": {
            "base_url": "/",
            "base_route": "/",
            "index_filename": "municipalities-index.json",
            "cache_dir": ".cache/geoindex",
            "cache_key": "municipality_index_v1",
            "cache_ttl_hours": 24,
            "fetch_timeout": 30.0,
            "search_limit": 8,
        },
    }

    def __init__(
        self,
        config_file: Optional[Union[str, Path]] = None,
        project_root_override: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file. If None, looks for:
                        1. Environment variable GEOINDEX_CONFIG_PATH
                        2. config.yaml in current directory
                        3. the bundled ops/config.yaml
            project_root_override: Override project root detection
        """
        if config_file is None:
            env_config = os.environ.get("GEOINDEX_CONFIG_PATH")
            if env_config and Path(env_config).exists():
                config_file = env_config
                logger.debug(f"Using config from environment: {config_file}")
            elif Path("config.yaml").exists():
                config_file = "config.yaml"
            elif BUNDLED_CONFIG.exists():
                config_file = BUNDLED_CONFIG
            else:
                raise FileNotFoundError(
                    "No config.yaml found. Check current directory or set GEOINDEX_CONFIG_PATH"
                )

        self.config_path = Path(config_file).resolve()
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")
        self.config_dir = self.config_path.parent

        if project_root_override:
            self.project_root = Path(project_root_override).resolve()
            logger.debug(f"Using project root override: {self.project_root}")
        else:
            self.project_root = self._find_project_root()

        self._load_env_file()

        logger.debug(f"Loading config from: {self.config_path}")
        logger.debug(f"Project root: {self.project_root}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            self.data = yaml.safe_load(f) or {}

        self._apply_env_overrides()

    def _load_env_file(self) -> None:
        """Load a .env file from the project root."""
        env_path = self.project_root / ".env"
        if env_path.exists():
            # Existing environment variables win over the file
            load_dotenv(env_path, override=False)
            logger.debug(f"✅ Loaded environment variables from {env_path}")

    def _apply_env_overrides(self) -> None:
        """Copy known environment variables over the loaded YAML values."""
        for key_path, env_name in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                self.set(key_path, value.strip().strip("'\""))
                logger.debug(f"Config override from ${env_name}: {key_path}")

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation with intelligent defaults.

        Args:
            key_path: Dot-separated path to the configuration value
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key_path.split(".")

        value: Any = self.data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                value = None
                break

        if value is None:
            value = self.DEFAULTS
            for key in keys:
                if isinstance(value, dict) and key in value:
                    value = value[key]
                else:
                    return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set a configuration value using dot notation."""
        keys = key_path.split(".")
        current = self.data
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def resolve_path(self, relative: Union[str, Path]) -> Path:
        """Resolve a config-relative path against the project root."""
        path = Path(relative)
        if path.is_absolute():
            return path
        return self.project_root / path

    def get_index_output_path(self) -> Path:
        """Get path to the generated municipalities-index.json."""
        return self.resolve_path(self.get("output.index_path"))

    def get_overrides_path(self) -> Path:
        """Get path to the manual override tables."""
        return self.resolve_path(self.get("matching.overrides_file"))

    def get_cache_dir(self) -> Path:
        """Get the directory used by the persistent client cache."""
        return self.resolve_path(self.get("client.cache_dir"))

    def get_geometry_feed_url(self) -> str:
        """Get the municipal boundary GeoJSON URL."""
        url = self.get("geometry.feed_url")
        if url:
            return str(url)
        file_id = self.get("geometry.file_id")
        bucket_id = self.get("geometry.bucket_id")
        if not (file_id and bucket_id):
            raise ValueError("geometry.feed_url (or geometry.bucket_id + geometry.file_id) must be set")
        endpoint = str(self.get("registry.endpoint")).rstrip("/")
        return (
            f"{endpoint}/storage/buckets/{bucket_id}/files/{file_id}/view"
            f"?project={self.get('registry.project_id')}"
        )

    def print_config_summary(self) -> None:
        """Print a summary of the current configuration."""
        logger.debug("📋 Configuration Summary")
        logger.debug("=" * 50)
        logger.debug(f"Config file: {self.config_path}")
        logger.debug(f"Project root: {self.project_root}")
        logger.debug(f"Registry: {self.get('registry.endpoint')} (project {self.get('registry.project_id')})")
        logger.debug(f"Index output: {self.get_index_output_path()}")
        logger.debug(f"Overrides: {self.get_overrides_path()}")
        logger.debug(f"Client cache: {self.get_cache_dir()}")

    def _find_project_root(self) -> Path:
        """Find the project root directory by looking for characteristic files/directories."""
        current = self.config_path.parent

        project_markers = ["ops", "processing", "locator", "pyproject.toml", ".git"]

        for _ in range(5):  # Limit to 5 levels up
            markers_found = sum(1 for marker in project_markers if (current / marker).exists())

            if markers_found >= 2:
                return current

            parent = current.parent
            if parent == current:
                break
            current = parent

        # Fallback: if config is in ops/, project root is parent
        if self.config_path.parent.name == "ops":
            return self.config_path.parent.parent

        logger.warning(
            f"Could not reliably detect project root, using config directory: {self.config_path.parent}"
        )
        return self.config_path.parent

