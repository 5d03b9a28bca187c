#!/usr/bin/env python3
"""
Municipality Geo-Index command line

Builds municipalities-index.json from the municipal GeoJSON and the entity
registry, and queries it the way the web client does.

Usage:
    geoindex build                                      # fetch both feeds, write the index
    geoindex build --geojson data/municipios.geojson    # use a local boundary file
    geoindex build --report build/report.csv --preview-geojson build/preview.geojson
    geoindex locate -- -16.4955 -68.1336                # which municipality contains this point
    geoindex search "la paz" --limit 5

    # Config overrides and logging:
    geoindex --set geometry.simplify_tolerance=0.0005 build
    geoindex --verbose build                            # DEBUG level logging
    geoindex --trace --log-file build.log build         # TRACE level, also to a file
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Optional, Tuple

import click
from loguru import logger

from locator.cache import GeoIndexLoadError
from locator.client import GeoIndexClient
from ops.config_loader import Config
from ops.repositories.feeds import EntityRegistryClient, FeedError, fetch_geometry_feed, load_geometry_file
from processing.build_municipality_index import MunicipalityIndexBuilder, write_index
from processing.data_utils import export_build_report, export_preview_geojson


class ConfigOverride(click.ParamType):
    """Custom parameter type for config overrides."""

    name = "config_override"

    def convert(self, value, param, ctx) -> Tuple[str, Any]:
        if "=" not in value:
            self.fail(f"Invalid format: {value}. Use KEY=VALUE", param, ctx)

        key, val = value.split("=", 1)

        parsed_val: Any
        if val.lower() in ("true", "false"):
            parsed_val = val.lower() == "true"
        elif val.isdigit():
            parsed_val = int(val)
        else:
            try:
                parsed_val = float(val)
            except ValueError:
                parsed_val = val

        return key, parsed_val


@click.group()
@click.option("--config", "config_file", type=click.Path(dir_okay=False), help="Path to config.yaml")
@click.option(
    "--set",
    "config_overrides",
    multiple=True,
    type=ConfigOverride(),
    help="Set config values using dot notation (e.g., output.index_path=build/index.json)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable DEBUG level logging")
@click.option(
    "--trace", is_flag=True, help="Enable TRACE level logging for deep debugging (maximum detail)"
)
@click.option("--log-file", type=str, help="Also log to specified file")
@click.pass_context
def cli(ctx, config_file, config_overrides, verbose, trace, log_file):
    """
    Municipality Geo-Index builder and locator.

    \b
    Examples:
      geoindex build                          # Regenerate municipalities-index.json
      geoindex locate -- -17.3935 -66.1570    # Point lookup (lat lon)
      geoindex search cocha                   # Name search
    """
    setup_logging(verbose=verbose, enable_trace=trace)

    if log_file:
        log_level = "TRACE" if trace else ("DEBUG" if verbose else "INFO")
        logger.add(
            log_file,
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )
        logger.info(f"📄 Also logging to file: {log_file}")

    try:
        config = Config(config_file)
    except (FileNotFoundError, OSError, ValueError) as e:
        logger.critical(f"Configuration error: {e}")
        logger.info("💡 Make sure config.yaml exists and is valid")
        ctx.exit(1)

    for key, value in config_overrides:
        config.set(key, value)
        logger.debug(f"Added override: {key} = {value}")

    config.print_config_summary()
    ctx.obj = config


@cli.command()
@click.option("--geojson", type=click.Path(exists=True, dir_okay=False), help="Local municipal GeoJSON instead of the feed URL")
@click.option("--output", type=click.Path(dir_okay=False), help="Override output index path")
@click.option("--tolerance", type=float, help="Simplification tolerance in degrees")
@click.option("--overrides", "overrides_file", type=click.Path(exists=True, dir_okay=False), help="Override tables YAML")
@click.option("--report", "report_path", type=click.Path(dir_okay=False), help="Write build diagnostics CSV")
@click.option("--preview-geojson", type=click.Path(dir_okay=False), help="Write simplified polygons as GeoJSON")
@click.pass_obj
def build(config: Config, geojson, output, tolerance, overrides_file, report_path, preview_geojson):
    """Build municipalities-index.json from the GeoJSON and the entity registry."""
    logger.info("🚀 Generating municipalities-index.json...")
    output_path = Path(output) if output else config.get_index_output_path()

    try:
        builder = MunicipalityIndexBuilder.from_config(config, overrides_path=overrides_file, tolerance=tolerance)

        if geojson:
            features = load_geometry_file(geojson)
        else:
            features = fetch_geometry_feed(config.get_geometry_feed_url())

        registry = EntityRegistryClient.from_config(config)
        registry_keys = registry.fetch_municipality_keys()

        entries = builder.build(features, registry_keys)
        builder.report.log_summary(
            unmatched_preview=int(config.get("output.unmatched_preview")),
            unused_preview=int(config.get("output.unused_keys_preview")),
        )
        write_index(entries, output_path)
    except (FeedError, FileNotFoundError, ValueError, OSError) as e:
        handle_critical_error(e, "municipality index generation")
        sys.exit(1)

    if report_path:
        export_build_report(builder.report, report_path)
    if preview_geojson:
        export_preview_geojson(entries, preview_geojson)


def _client(config: Config) -> GeoIndexClient:
    return GeoIndexClient.from_config(config)


@cli.command()
@click.argument("lat", type=float)
@click.argument("lon", type=float)
@click.pass_obj
def locate(config: Config, lat: float, lon: float):
    """Find the municipality containing LAT LON (put -- before negative values)."""
    client = _client(config)
    try:
        match = asyncio.run(client.find_by_coordinates(lat, lon))
    except GeoIndexLoadError as e:
        logger.error(f"❌ Map unavailable: {e}")
        sys.exit(1)

    if match is None:
        click.echo(f"No municipality contains ({lat}, {lon})")
        sys.exit(2)
    click.echo(f"{match.name}\t{match.department}\t{match.ine_code}\t{match.id}")


@cli.command()
@click.argument("query", default="")
@click.option("--limit", type=int, help="Maximum number of results")
@click.pass_obj
def search(config: Config, query: str, limit: Optional[int]):
    """Search municipalities by name (accent-insensitive)."""
    client = _client(config)
    try:
        index = asyncio.run(client.get_index())
    except GeoIndexLoadError as e:
        logger.error(f"❌ Search unavailable: {e}")
        sys.exit(1)

    for entry in client.search(index, query, limit):
        click.echo(f"{entry.name}\t{entry.department}\t{entry.ine_code}\t{entry.id}")


def setup_logging(verbose: bool = False, enable_trace: bool = False) -> None:
    """
    Configure loguru logging with appropriate levels.

    Args:
        verbose: If True, set log level to DEBUG
        enable_trace: If True, enable TRACE level logging for deep debugging
    """
    logger.remove()

    if enable_trace:
        log_level = "TRACE"
        log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    elif verbose:
        log_level = "DEBUG"
        log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    else:
        log_level = "INFO"
        log_format = (
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
        )

    logger.add(
        sys.stderr,
        format=log_format,
        level=log_level,
        colorize=True,
        backtrace=enable_trace,
        diagnose=enable_trace,
    )

    os.environ["LOGURU_LEVEL"] = log_level

    if verbose:
        logger.debug("🔧 Verbose logging enabled (DEBUG level)")
    if enable_trace:
        logger.trace("🔍 Trace logging enabled - maximum detail mode")


def handle_critical_error(error: Exception, context: str = "") -> None:
    """
    Handle critical errors with optional trace logging.

    Args:
        error: The exception that occurred
        context: Additional context about where the error occurred
    """
    current_level = os.environ.get("LOGURU_LEVEL", "INFO")
    enable_trace = current_level == "TRACE"

    if enable_trace:
        logger.trace("💥 TRACE MODE: Analyzing critical error with full context")
        logger.trace(f"Error context: {context}")
        logger.trace(f"Error type: {type(error).__name__}")
        logger.opt(exception=error).trace("Full traceback:")

    logger.critical(f"💥 Fatal error in {context}")
    logger.critical(f"Exception: {type(error).__name__}: {error}")

    if not enable_trace:
        logger.info("💡 For detailed debugging, run with --trace flag")


if __name__ == "__main__":
    cli()
