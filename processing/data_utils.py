"""
data_utils.py - Build diagnostics and QA exports

Helpers that turn a finished build into files a person can review:
- a CSV listing every feature that did not make it into the index
- a GeoJSON preview of the simplified polygons for a quick visual check
"""

from pathlib import Path
from typing import List, Sequence, Union

import geopandas as gpd
import pandas as pd
from loguru import logger

from .build_municipality_index import BuildReport
from .geometry import ring_to_polygon
from .models import MunicipalityEntry

REPORT_COLUMNS = ["category", "item"]


def build_report_frame(report: BuildReport) -> pd.DataFrame:
    """One row per feature or registry key that needs attention."""
    rows: List[dict] = []
    rows += [{"category": "unmatched", "item": item} for item in report.unmatched]
    rows += [{"category": "degenerate", "item": item} for item in report.degenerate]
    rows += [{"category": "excluded", "item": code} for code in report.excluded]
    rows += [{"category": "unused_registry_key", "item": key} for key in report.unused_registry_keys]
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def export_build_report(report: BuildReport, output_path: Union[str, Path]) -> Path:
    """Write the build diagnostics as CSV."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    df = build_report_frame(report)
    df.to_csv(output_path, index=False)

    if len(df):
        counts = df["category"].value_counts().to_dict()
        logger.info(f"📝 Build report: {counts}")
    logger.success(f"  ✅ Saved build report to {output_path} ({len(df):,} rows)")
    return output_path


def entries_to_geodataframe(entries: Sequence[MunicipalityEntry]) -> gpd.GeoDataFrame:
    """GeoDataFrame (EPSG:4326) of the simplified index polygons."""
    records = [
        {
            "id": entry.id,
            "name": entry.name,
            "ine_code": entry.ine_code,
            "department": entry.department,
            "vertices": len(entry.polygon),
        }
        for entry in entries
    ]
    geometries = [ring_to_polygon(entry.polygon) for entry in entries]
    return gpd.GeoDataFrame(
        pd.DataFrame(records, columns=["id", "name", "ine_code", "department", "vertices"]),
        geometry=geometries,
        crs="EPSG:4326",
    )


def export_preview_geojson(entries: Sequence[MunicipalityEntry], output_path: Union[str, Path]) -> Path:
    """Write the simplified polygons as a GeoJSON FeatureCollection for visual QA."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"🗺️ Exporting preview GeoJSON to {output_path}")

    gdf = entries_to_geodataframe(entries)
    invalid = int((~gdf.geometry.is_valid).sum()) if len(gdf) else 0
    if invalid:
        logger.warning(f"  ⚠️ {invalid} simplified polygons are not valid (self-intersections after simplification)")

    output_path.write_text(gdf.to_json(), encoding="utf-8")
    logger.success(f"  ✅ Exported {len(gdf):,} polygons ({output_path.stat().st_size:,} bytes)")
    return output_path
