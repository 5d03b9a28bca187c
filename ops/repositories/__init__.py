"""Upstream data feeds used by the geo-index builder."""

from .feeds import EntityRegistryClient, FeedError, fetch_geometry_feed, load_geometry_file

__all__ = ["EntityRegistryClient", "FeedError", "fetch_geometry_feed", "load_geometry_file"]
