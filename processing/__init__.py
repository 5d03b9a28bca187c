"""
Processing package for the Municipality Geo-Index

This package contains the offline index builder: name normalization and
entity resolution, geometry simplification, index assembly and the QA exports.
"""

__version__ = "0.1.0"

from .build_municipality_index import BuildReport, MunicipalityIndexBuilder, write_index
from .geometry import compute_bbox, extract_exterior_ring, simplify_ring
from .models import BoundingBox, MunicipalityEntry, department_for_code
from .name_matching import (
    EntityResolver,
    OverrideTable,
    Resolution,
    build_registry_keys,
    clean_geometry_name,
    entity_key_from_label,
    normalize,
)

__all__ = [
    "BoundingBox",
    "MunicipalityEntry",
    "department_for_code",
    "normalize",
    "entity_key_from_label",
    "clean_geometry_name",
    "build_registry_keys",
    "OverrideTable",
    "Resolution",
    "EntityResolver",
    "extract_exterior_ring",
    "simplify_ring",
    "compute_bbox",
    "MunicipalityIndexBuilder",
    "BuildReport",
    "write_index",
]
