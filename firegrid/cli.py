"""
Command-line interface for firegrid.

Commands:
- firegrid init: Generate configuration template
- firegrid validate: Validate configuration
- firegrid build: Import data, build tile meshes and write outputs
- firegrid query: Evaluate fuel behavior curves
- firegrid sample: Write a synthetic sample map snapshot
- firegrid info: Summarize a grid snapshot
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

logger = logging.getLogger(__name__)

MOISTURE_CHOICES = ["very_low", "low", "medium", "high"]

CONFIG_TEMPLATE = """\
# firegrid configuration
project:
  name: my_landscape
  description: ""
  output_dir: ./output

grid:
  pixel_width: 244
  pixel_height: 244
  tile_size: 122
  origin_longitude_meter: 0
  origin_latitude_meter: 0
  longitude_step_meter: 30
  latitude_step_meter: 30

inputs:
  # Elevation/fuel pairs: give both XYZ files or both GeoTIFFs
  # elevation_xyz: ./data/elevation.xyz
  # fuel_xyz: ./data/fuel.xyz
  # elevation_raster: ./data/elevation.tif
  # fuel_raster: ./data/fuel.tif
  # fuel_catalog: ./data/fuel_codes.json
  # snapshot: ./output/grid_snapshot.json
  auto_detect_bounds: true
  negative_latitude_step: false

fill:
  enabled: true
  elevation: 0
  fuel_code: 98

environment:
  wind_speed: 10.0
  moisture: medium

mesh:
  height_scale: 0.0333333

output:
  save_snapshot: true
  export_obj: false
  export_geotiff: false
  generate_plots: false
  log_level: INFO
"""


def _configure_logging(verbose: bool, quiet: bool) -> None:
    if quiet:
        log_level = logging.ERROR
    elif verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.version_option(package_name="firegrid")
def main():
    """
    firegrid: tiled terrain and fuel behavior engine.

    \b
    Quick Start:
        firegrid init                      # Create config template
        firegrid build firegrid.yaml       # Import data and build meshes
        firegrid query fuels.json 101      # Evaluate behavior curves
    """
    pass


# =============================================================================
# Init Command
# =============================================================================

@main.command()
@click.option("--output", "-o", type=click.Path(path_type=Path), default=Path("firegrid.yaml"),
              help="Output path for configuration")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing file")
def init(output: Path, force: bool):
    """Generate a configuration template."""
    output = Path(output)
    if output.exists() and not force:
        click.echo(f"File exists: {output}. Use --force to overwrite.", err=True)
        sys.exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(CONFIG_TEMPLATE)
    click.echo(f"Created configuration: {output}")


# =============================================================================
# Validate Command
# =============================================================================

@main.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
def validate(config_path: Path):
    """Check a configuration file and its input paths."""
    from firegrid.config import load_config, validate_paths

    click.echo(f"Validating: {config_path}")
    try:
        config = load_config(config_path)
        warnings = validate_paths(config)
    except Exception as e:
        click.echo(f"Validation failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"Project: {config.project.name}")
    for warning in warnings:
        click.echo(f"  warning: {warning}")
    click.echo("Configuration is valid")


# =============================================================================
# Build Command
# =============================================================================

@main.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Output directory")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress output")
def build(config_path: Path, output: Path | None, verbose: bool, quiet: bool):
    """
    Import terrain and fuel data, build all tile meshes and write outputs.

    \b
    Examples:
        firegrid build firegrid.yaml
        firegrid build firegrid.yaml -o ./results -v
    """
    from firegrid.config import load_config, setup_logging, validate_paths
    from firegrid.io import export_obj, save_grid, write_layer_geotiff
    from firegrid.landscape import Landscape

    try:
        config = load_config(config_path)
        if verbose or quiet:
            _configure_logging(verbose, quiet)
        else:
            setup_logging(config)

        if output is not None:
            config.project.output_dir = Path(output)
        output_dir = Path(config.project.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        for warning in validate_paths(config):
            logger.warning(warning)

        landscape = Landscape.from_config(config)
        landscape.flush()
        meshes = landscape.rebuild_all()

        if config.output.save_snapshot:
            save_grid(landscape.grid, output_dir / "grid_snapshot.json")
        if config.output.export_obj:
            export_obj(meshes.values(), output_dir / "terrain.obj")
        if config.output.export_geotiff:
            write_layer_geotiff(landscape.grid.elevation, output_dir / "elevation.tif", config.output.crs)
            write_layer_geotiff(landscape.grid.fuel, output_dir / "fuel_code.tif", config.output.crs)
        if config.output.generate_plots:
            _write_plots(landscape, output_dir)

        if not quiet:
            t = landscape.transform
            click.echo(f"Grid: {t.pixel_width}x{t.pixel_height} px, tiles {t.tile_count_x}x{t.tile_count_z}")
            click.echo(f"Meshes built: {len(meshes)}")
            click.echo(f"Outputs: {output_dir}")

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.exception("Build failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _write_plots(landscape, output_dir: Path) -> None:
    import matplotlib.pyplot as plt

    from firegrid.terrain import build_terrain_grids, compute_behavior_grids
    from firegrid.visualization import plot_behavior, plot_fuel_codes, plot_terrain

    grid = landscape.grid
    terrain = build_terrain_grids(grid)
    fuel = grid.fuel.to_array()
    behavior = compute_behavior_grids(terrain.dem, fuel, landscape.catalog, landscape.environment)

    for fig in (
        plot_terrain(terrain, grid.transform, output_dir / "terrain.png"),
        plot_fuel_codes(fuel, landscape.catalog, landscape.environment, grid.transform, output_dir / "fuel_codes.png"),
        plot_behavior(behavior, grid.transform, output_dir / "behavior.png"),
    ):
        plt.close(fig)


# =============================================================================
# Query Command
# =============================================================================

@main.command()
@click.argument("catalog_path", type=click.Path(exists=True, path_type=Path))
@click.argument("fuel_code", type=int)
@click.option("--wind", "-w", type=float, default=10.0, show_default=True, help="Wind speed")
@click.option("--slope", "-s", type=float, default=0.0, show_default=True, help="Slope angle (degrees)")
@click.option("--moisture", "-m", type=click.Choice(MOISTURE_CHOICES, case_sensitive=False),
              default="medium", show_default=True)
def query(catalog_path: Path, fuel_code: int, wind: float, slope: float, moisture: str):
    """Evaluate the behavior curves of one fuel code."""
    from firegrid.cell import flame_length_to_intensity
    from firegrid.fuels import FuelBehavior
    from firegrid.io import load_fuel_catalog

    try:
        catalog = load_fuel_catalog(catalog_path)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    profile = catalog.lookup(fuel_code)
    if profile is None:
        click.echo(f"Fuel code {fuel_code} not in catalog; defaults shown")
    else:
        click.echo(f"Fuel code {fuel_code}: {profile.title} ({profile.family})")

    behavior = FuelBehavior(catalog)
    ros = behavior.rate_of_spread(fuel_code, wind, moisture)
    flame = behavior.flame_length(fuel_code, wind, moisture)
    factor = behavior.slope_factor(fuel_code, slope, moisture)

    click.echo(f"  rate of spread: {ros:.3f}")
    click.echo(f"  flame length:   {flame:.3f} m")
    click.echo(f"  slope factor:   {factor:.3f}")
    click.echo(f"  intensity:      {flame_length_to_intensity(flame):.1f} kW/m")


# =============================================================================
# Sample Command
# =============================================================================

@main.command()
@click.argument("output", type=click.Path(path_type=Path))
@click.option("--catalog", "-c", "catalog_path", type=click.Path(exists=True, path_type=Path),
              required=True, help="Fuel catalog supplying the fuel codes")
@click.option("--width", type=int, default=244, show_default=True)
@click.option("--height", type=int, default=244, show_default=True)
@click.option("--tile-size", type=int, default=122, show_default=True)
@click.option("--seed", type=int, default=None, help="Random seed")
@click.option("--amplitude", type=float, default=800.0, show_default=True, help="Peak elevation (m)")
def sample(output: Path, catalog_path: Path, width: int, height: int, tile_size: int,
           seed: int | None, amplitude: float):
    """Write a snapshot with sample hills and fuel bands."""
    from firegrid.grid import MapGrid
    from firegrid.io import load_fuel_catalog, save_grid
    from firegrid.sample import generate_sample_map

    try:
        catalog = load_fuel_catalog(catalog_path)
        grid = MapGrid.create(width, height, tile_size)
        generate_sample_map(grid, catalog, seed=seed, amplitude=amplitude)
        save_grid(grid, output)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Sample map {width}x{height} written to {output}")


# =============================================================================
# Info Command
# =============================================================================

@main.command()
@click.argument("snapshot_path", type=click.Path(exists=True, path_type=Path))
def info(snapshot_path: Path):
    """Summarize a grid snapshot."""
    import numpy as np

    from firegrid.io import load_grid

    try:
        grid = load_grid(snapshot_path)
    except (FileNotFoundError, ValueError, KeyError, TypeError, OverflowError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    t = grid.transform
    click.echo(f"Grid: {t.pixel_width}x{t.pixel_height} px, tile size {t.tile_size}")
    click.echo(f"Tiles: {t.tile_count_x}x{t.tile_count_z}")
    click.echo(f"Origin: ({t.origin_longitude_meter}, {t.origin_latitude_meter}) m")
    click.echo(f"Step: ({t.longitude_step_meter}, {t.latitude_step_meter}) m")
    click.echo(f"Stored tiles: elevation={len(grid.elevation.snapshot)}, fuel_code={len(grid.fuel.snapshot)}")

    if t.has_extent:
        dem = grid.elevation.to_array()
        codes, counts = np.unique(grid.fuel.to_array(), return_counts=True)
        click.echo(f"Elevation: {int(dem.min())} to {int(dem.max())} m")
        click.echo("Fuel codes:")
        for code, count in sorted(zip(codes.tolist(), counts.tolist()), key=lambda c: -c[1])[:10]:
            click.echo(f"  {code}: {count} cells")


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    main()
