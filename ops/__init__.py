"""
Operations package for the Municipality Geo-Index

This package centralizes the operational tools:
- Configuration management
- Upstream feed clients (entity registry, municipal GeoJSON)
- The geoindex command line

The Config class is exposed at the package level for convenient imports:
    from ops import Config
"""

from .config_loader import Config

__all__ = ["Config"]
