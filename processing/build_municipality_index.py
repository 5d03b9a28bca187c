"""
build_municipality_index.py

Municipality Geo-Index builder

Joins the municipal boundary GeoJSON to the entity registry and writes
public/municipalities-index.json, one entry per municipality:

    id          registry entity id
    name        GeoJSON ``nombre`` (display only)
    ineCode     6-digit INE code from GeoJSON ``properties.id``
    department  derived from the first two digits of the INE code
    bbox        bounding box of the simplified ring
    polygon     simplified exterior ring, [lon, lat] pairs

Matching strategy:
    1. Fetch every registry document whose label contains "municipio"
    2. Strip the "Municipio de " prefix and any parenthetical, normalize
    3. Match GeoJSON features by normalized ``nombre``, with the manual
       override tables in ops/overrides.yaml taking precedence

The build is all-or-nothing: a feed failure aborts it before anything is
written. Run it through the CLI:

    geoindex build
    geoindex build --geojson data/municipios.geojson --output public/municipalities-index.json
"""

import json
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from loguru import logger

from .geometry import DEFAULT_TOLERANCE, compute_bbox, extract_exterior_ring, simplify_ring
from .models import MunicipalityEntry, department_for_code, entries_to_json
from .name_matching import DEFAULT_GEOMETRY_PREFIXES, EXCLUDED, EntityResolver, OverrideTable

MIN_RING_POINTS = 4


@dataclass
class BuildReport:
    """Diagnostics collected while assembling the index."""

    input_features: int = 0
    indexed: int = 0
    skipped_incomplete: int = 0
    unmatched: List[str] = field(default_factory=list)
    degenerate: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    unused_registry_keys: List[str] = field(default_factory=list)
    resolution_methods: Dict[str, int] = field(default_factory=dict)
    processing_time: float = 0.0

    def log_summary(self, unmatched_preview: int = 30, unused_preview: int = 20) -> None:
        logger.info("📊 Results:")
        logger.info(f"  Municipalities indexed: {self.indexed:,} of {self.input_features:,} features")
        logger.info(f"  Unmatched GeoJSON features: {len(self.unmatched):,}")
        if self.degenerate:
            logger.info(f"  Degenerate geometries skipped: {len(self.degenerate):,}")
        if self.excluded:
            logger.info(f"  Excluded by override (no registry entity): {len(self.excluded):,}")
        if self.skipped_incomplete:
            logger.info(f"  Features without code, name or geometry: {self.skipped_incomplete:,}")
        for method, count in sorted(self.resolution_methods.items()):
            logger.debug(f"    matched via {method}: {count:,}")

        if self.unmatched:
            if len(self.unmatched) <= unmatched_preview:
                logger.warning("  Unmatched:")
            else:
                logger.warning(f"  First {unmatched_preview} unmatched:")
            for item in self.unmatched[:unmatched_preview]:
                logger.warning(f"    - {item}")

        for item in self.degenerate[:unmatched_preview]:
            logger.debug(f"    degenerate: {item}")

        if self.unused_registry_keys:
            logger.info(f"  Registry names with no GeoJSON match ({len(self.unused_registry_keys):,}):")
            for key in self.unused_registry_keys[:unused_preview]:
                logger.info(f'    - "{key}"')


class MunicipalityIndexBuilder:
    """
    Assemble Geo-Index entries from GeoJSON features and a registry key map.

    Example:
        builder = MunicipalityIndexBuilder(overrides=OverrideTable.from_yaml(path))
        entries = builder.build(features, registry_keys)
        builder.report.log_summary()
    """

    def __init__(
        self,
        overrides: Optional[OverrideTable] = None,
        tolerance: float = DEFAULT_TOLERANCE,
        name_prefixes: Iterable[str] = DEFAULT_GEOMETRY_PREFIXES,
    ):
        self.overrides = overrides or OverrideTable()
        self.tolerance = tolerance
        self.name_prefixes = tuple(name_prefixes)
        self.report = BuildReport()

    @classmethod
    def from_config(cls, config: Any, overrides_path: Optional[Union[str, Path]] = None,
                    tolerance: Optional[float] = None) -> "MunicipalityIndexBuilder":
        overrides = OverrideTable.from_yaml(overrides_path or config.get_overrides_path())
        return cls(
            overrides=overrides,
            tolerance=float(tolerance if tolerance is not None else config.get("geometry.simplify_tolerance")),
            name_prefixes=config.get("geometry.name_prefixes"),
        )

    def build(self, features: List[Mapping[str, Any]], registry_keys: Mapping[str, str]) -> List[MunicipalityEntry]:
        """
        Resolve, simplify and assemble every feature, in feed order.

        Args:
            features: GeoJSON features (``properties.id``, ``properties.nombre``, ``geometry``)
            registry_keys: normalized municipality key -> registry id

        Returns:
            Index entries; diagnostics are left in ``self.report``
        """
        start_time = time.time()
        self.report = BuildReport(input_features=len(features))
        resolver = EntityResolver(registry_keys, self.overrides, self.name_prefixes)
        logger.info(f"🔗 Matching {len(features):,} features against {len(registry_keys):,} registry names...")

        entries: List[MunicipalityEntry] = []
        for feature in features:
            entry = self._build_entry(feature, resolver)
            if entry is not None:
                entries.append(entry)

        self.report.indexed = len(entries)
        self.report.unused_registry_keys = resolver.unused_registry_keys()
        self.report.processing_time = time.time() - start_time
        logger.success(f"  ✅ Indexed {len(entries):,} municipalities in {self.report.processing_time:.2f}s")
        return entries

    def _build_entry(self, feature: Mapping[str, Any], resolver: EntityResolver) -> Optional[MunicipalityEntry]:
        if not isinstance(feature, Mapping) or not isinstance(feature.get("properties"), Mapping):
            self.report.skipped_incomplete += 1
            return None

        props = feature["properties"]
        ine_code = str(props.get("id") or "").strip()
        raw_name = str(props.get("nombre") or "").strip()
        geometry = feature.get("geometry")

        if not ine_code or not raw_name or not geometry:
            self.report.skipped_incomplete += 1
            return None

        resolution = resolver.resolve(ine_code, raw_name)
        if resolution.status == EXCLUDED:
            self.report.excluded.append(ine_code)
            return None
        if not resolution.matched:
            self.report.unmatched.append(f"{raw_name} ({ine_code})")
            return None
        methods = self.report.resolution_methods
        methods[resolution.method] = methods.get(resolution.method, 0) + 1

        ring = extract_exterior_ring(geometry)
        if ring is None or len(ring) < MIN_RING_POINTS:
            self.report.degenerate.append(f"{raw_name} ({ine_code})")
            return None

        simplified = simplify_ring(ring, self.tolerance)
        if len(simplified) < MIN_RING_POINTS:
            logger.debug(f"  {raw_name} ({ine_code}) collapsed to {len(simplified)} points")
            self.report.degenerate.append(f"{raw_name} ({ine_code})")
            return None

        return MunicipalityEntry(
            id=resolution.entity_id,
            name=raw_name,
            ine_code=ine_code,
            department=department_for_code(ine_code),
            bbox=compute_bbox(simplified),
            polygon=simplified,
        )


def write_index(entries: List[MunicipalityEntry], output_path: Union[str, Path]) -> int:
    """
    Write the Geo-Index as a compact JSON array, atomically.

    Returns:
        Number of bytes written
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(entries_to_json(entries), ensure_ascii=False, separators=(",", ":"))
    data = payload.encode("utf-8")

    fd, tmp_name = tempfile.mkstemp(dir=output_path.parent, prefix=f".{output_path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, output_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.success(f"💾 Wrote {len(entries):,} entries to {output_path} ({len(data) / 1024:.1f} KB)")
    return len(data)
