"""
File import and export for firegrid.

This module reads the external formats the core consumes and writes the
formats it produces:

- XYZ point clouds (``lon_m lat_m value`` per line) into raster layers
- GeoTIFF elevation/fuel pairs into a grid, and layers back to GeoTIFF
- fuel catalog JSON
- grid snapshots (transform + persisted tile records) as JSON
- tile meshes as Wavefront OBJ with vertex colors
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.transform import Affine

from firegrid.fuels import FuelCatalog
from firegrid.geo import GeoTransform
from firegrid.grid import MapGrid
from firegrid.mesh import TileMesh
from firegrid.raster import (
    INT16_MAX,
    INT16_MIN,
    RasterLayer,
    elevation_layer,
    fuel_code_layer,
    to_int16,
)

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "firegrid-snapshot"
SNAPSHOT_VERSION = 1


class DimensionMismatchError(ValueError):
    """Elevation and fuel sources do not align cell for cell."""


# =============================================================================
# XYZ Point Clouds
# =============================================================================

_SEPARATORS = re.compile(r"[ \t,]+")
_INT_TOKEN = re.compile(r"^[+-]?\d+$")


@dataclass
class ImportReport:
    """Outcome of importing one source into one layer."""

    layer: str
    points: int = 0
    skipped: int = 0
    out_of_bounds: int = 0

    def __str__(self) -> str:
        return (
            f"{self.layer}: {self.points} points, {self.skipped} skipped, "
            f"{self.out_of_bounds} out of bounds"
        )


@dataclass
class XYZBounds:
    """Geographic extent of the parsable points in one or more XYZ sources."""

    min_x: int
    max_x: int
    min_z: int
    max_z: int
    count: int

    def merge(self, other: "XYZBounds | None") -> "XYZBounds":
        if other is None:
            return self
        return XYZBounds(
            min(self.min_x, other.min_x),
            max(self.max_x, other.max_x),
            min(self.min_z, other.min_z),
            max(self.max_z, other.max_z),
            self.count + other.count,
        )


def parse_xyz_line(line: str) -> tuple[int, int, float] | None:
    """
    Parse ``lon_m lat_m value`` separated by spaces, tabs or commas.

    Returns None when fewer than three tokens are present, the first two
    are not integers, or the third is not a finite number.
    """
    tokens = [t for t in _SEPARATORS.split(line.strip()) if t]
    if len(tokens) < 3:
        return None
    if not (_INT_TOKEN.match(tokens[0]) and _INT_TOKEN.match(tokens[1])):
        return None
    try:
        value = float(tokens[2])
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return int(tokens[0]), int(tokens[1]), value


def _lines(source: str | Iterable[str]) -> Iterable[str]:
    if isinstance(source, str):
        return source.splitlines()
    return source


def scan_xyz_bounds(source: str | Iterable[str]) -> XYZBounds | None:
    """Extent of all parsable points, or None if there are none."""
    bounds = None
    for line in _lines(source):
        parsed = parse_xyz_line(line)
        if parsed is None:
            continue
        x, z, _ = parsed
        if bounds is None:
            bounds = XYZBounds(x, x, z, z, 1)
        else:
            bounds.min_x = min(bounds.min_x, x)
            bounds.max_x = max(bounds.max_x, x)
            bounds.min_z = min(bounds.min_z, z)
            bounds.max_z = max(bounds.max_z, z)
            bounds.count += 1
    return bounds


def import_xyz(
    source: str | Iterable[str],
    layer: RasterLayer,
    transform: GeoTransform | None = None,
    clamp_negative: bool = False,
    flush: bool = True,
) -> ImportReport:
    """
    Import XYZ points into a layer.

    Malformed lines are skipped and points outside the transform's extent
    are dropped; neither aborts the import. Values are rounded to int16
    and, with ``clamp_negative``, raised to at least 0.

    Parameters
    ----------
    source : str or iterable of str
        XYZ text or lines.
    layer : RasterLayer
        Target layer.
    transform : GeoTransform, optional
        Placement of the grid; defaults to the layer's transform.
    clamp_negative : bool
        Clamp negative values to 0 (used for elevation).
    flush : bool
        Call ``layer.mark_dirty()`` after the batch.
    """
    transform = transform if transform is not None else layer.transform
    report = ImportReport(layer=layer.name)

    for line in _lines(source):
        if not line.strip():
            continue
        parsed = parse_xyz_line(line)
        if parsed is None:
            report.skipped += 1
            continue

        lon_m, lat_m, raw = parsed
        x, z = transform.pixel_of_geo(lon_m, lat_m)
        if not transform.contains(x, z):
            report.out_of_bounds += 1
            continue

        value = to_int16(raw)
        if clamp_negative and value < 0:
            value = 0
        layer.set(x, z, value)
        report.points += 1

    if flush:
        layer.mark_dirty()

    logger.info(f"XYZ import {report}")
    return report


def import_xyz_pair(
    elevation_source: str | Iterable[str],
    fuel_source: str | Iterable[str],
    grid: MapGrid,
    meter_step: int = 30,
    auto_detect_bounds: bool = True,
    negative_latitude_step: bool = False,
    origin_longitude_meter: int = 0,
    origin_latitude_meter: int = 0,
    tile_size: int | None = None,
) -> tuple[ImportReport, ImportReport]:
    """
    Size the grid from an elevation/fuel XYZ pair and import both.

    With ``auto_detect_bounds`` the origin is the minimum longitude and the
    minimum latitude (maximum when the latitude step is negative, so row 0
    is the northern edge). Otherwise the given origin is used and the
    extent grows to the largest pixel index found.
    """
    empty = (ImportReport("elevation"), ImportReport("fuel_code"))
    if not grid.has_layers:
        logger.warning("import_xyz_pair: elevation and fuel code layers must both be attached")
        return empty

    elevation_lines = list(_lines(elevation_source))
    fuel_lines = list(_lines(fuel_source))

    if meter_step <= 0:
        meter_step = 1
    latitude_step = -meter_step if negative_latitude_step else meter_step

    if auto_detect_bounds:
        bounds = scan_xyz_bounds(elevation_lines)
        fuel_bounds = scan_xyz_bounds(fuel_lines)
        bounds = fuel_bounds if bounds is None else bounds.merge(fuel_bounds)
        if bounds is None:
            logger.warning("import_xyz_pair: no valid points found in XYZ sources")
            return empty

        origin_longitude_meter = bounds.min_x
        origin_latitude_meter = bounds.max_z if negative_latitude_step else bounds.min_z
        width = max(1, math.ceil((bounds.max_x - bounds.min_x) / meter_step) + 1)
        height = max(1, math.ceil((bounds.max_z - bounds.min_z) / meter_step) + 1)
    else:
        probe = GeoTransform(
            origin_longitude_meter=origin_longitude_meter,
            origin_latitude_meter=origin_latitude_meter,
            longitude_step_meter=meter_step,
            latitude_step_meter=latitude_step,
        )
        max_x = max_z = 0
        for line in elevation_lines + fuel_lines:
            parsed = parse_xyz_line(line)
            if parsed is None:
                continue
            x, z = probe.pixel_of_geo(parsed[0], parsed[1])
            max_x = max(max_x, x)
            max_z = max(max_z, z)
        width, height = max_x + 1, max_z + 1

    grid.initialize(
        width,
        height,
        origin_longitude_meter,
        origin_latitude_meter,
        meter_step,
        latitude_step,
        tile_size,
    )

    elevation_report = import_xyz(elevation_lines, grid.elevation, grid.transform, clamp_negative=True)
    fuel_report = import_xyz(fuel_lines, grid.fuel, grid.transform)
    return elevation_report, fuel_report


# =============================================================================
# GeoTIFF
# =============================================================================


def _read_band(path: str | Path, band: int, fill_value: int) -> tuple[np.ndarray, Affine, Any, int]:
    with rasterio.open(path) as src:
        data = src.read(band, masked=True)
        valid = int(np.ma.count(data))
        filled = np.ma.filled(data.astype(np.float64), float(fill_value))
        return filled, src.transform, src.crs, valid


def import_rasters(
    elevation_path: str | Path,
    fuel_path: str | Path,
    grid: MapGrid,
    band: int = 1,
    tile_size: int | None = None,
) -> tuple[ImportReport, ImportReport]:
    """
    Replace the grid contents with an elevation/fuel GeoTIFF pair.

    Both rasters must have identical dimensions; otherwise
    ``DimensionMismatchError`` is raised before anything is written. The
    grid origin and steps come from the elevation raster's transform.
    """
    if not grid.has_layers:
        logger.warning("import_rasters: elevation and fuel code layers must both be attached")
        return ImportReport("elevation"), ImportReport("fuel_code")

    logger.debug(f"Reading raster pair: {elevation_path}, {fuel_path}")
    elevation, transform, crs, n_elev = _read_band(elevation_path, band, grid.elevation.default_value)
    fuel, _, _, n_fuel = _read_band(fuel_path, band, grid.fuel.default_value)

    if elevation.shape != fuel.shape:
        raise DimensionMismatchError(
            f"Elevation raster is {elevation.shape[1]}x{elevation.shape[0]} but fuel raster is "
            f"{fuel.shape[1]}x{fuel.shape[0]}; both must have the same dimensions"
        )

    height, width = elevation.shape
    longitude_step = int(round(transform.a)) or 1
    latitude_step = int(round(transform.e)) or -1
    grid.initialize(
        width,
        height,
        int(round(transform.c)),
        int(round(transform.f)),
        longitude_step,
        latitude_step,
        tile_size,
    )
    grid.reset()

    grid.elevation.from_array(np.clip(elevation, INT16_MIN, INT16_MAX))
    grid.fuel.from_array(np.clip(fuel, INT16_MIN, INT16_MAX))

    logger.info(f"Imported {width}x{height} raster pair (CRS: {crs})")
    return (
        ImportReport("elevation", points=n_elev, skipped=elevation.size - n_elev),
        ImportReport("fuel_code", points=n_fuel, skipped=fuel.size - n_fuel),
    )


def write_layer_geotiff(
    layer: RasterLayer,
    path: str | Path,
    crs: CRS | str | None = None,
) -> None:
    """Write a layer's extent as a single-band int16 GeoTIFF."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    t = layer.transform
    data = layer.to_array()
    if isinstance(crs, str):
        crs = CRS.from_string(crs)

    profile = {
        "driver": "GTiff",
        "dtype": "int16",
        "width": data.shape[1],
        "height": data.shape[0],
        "count": 1,
        "crs": crs,
        "transform": Affine(
            t.longitude_step_meter, 0.0, t.origin_longitude_meter,
            0.0, t.latitude_step_meter, t.origin_latitude_meter,
        ),
        "nodata": None,
        "compress": "lzw",
    }

    logger.debug(f"Writing raster: {path}")
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data, 1)


# =============================================================================
# Fuel Catalog
# =============================================================================


def load_fuel_catalog(path: str | Path) -> FuelCatalog:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Fuel catalog not found: {path}")
    logger.info(f"Loading fuel catalog from {path}")
    return FuelCatalog.from_json_text(path.read_text())


def save_fuel_catalog(catalog: FuelCatalog, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"items": catalog.to_items()}, indent=2))


# =============================================================================
# Grid Snapshots
# =============================================================================


def save_grid(grid: MapGrid, path: str | Path) -> None:
    """
    Write the grid's persisted state as JSON.

    Only flushed tiles are written: call ``grid.flush()`` first to include
    pending cell writes.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    layers = {}
    for layer in (grid.elevation, grid.fuel):
        if layer is None:
            continue
        layers[layer.name] = {
            "default": layer.default_value,
            "tiles": list(layer.iter_records()),
        }

    document = {
        "format": SNAPSHOT_FORMAT,
        "version": SNAPSHOT_VERSION,
        "transform": grid.transform.to_dict(),
        "layers": layers,
    }
    with open(path, "w") as f:
        json.dump(document, f)
    logger.info(f"Saved grid snapshot to {path}")


def load_grid(path: str | Path) -> MapGrid:
    """Rebuild a grid from a snapshot written by ``save_grid``."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Snapshot not found: {path}")

    with open(path, "r") as f:
        document = json.load(f)
    if document.get("format") != SNAPSHOT_FORMAT:
        raise ValueError(f"Not a firegrid snapshot: {path}")

    transform = GeoTransform.from_dict(document["transform"])
    elevation = elevation_layer(transform)
    fuel = fuel_code_layer(transform)
    layers = document.get("layers", {})
    for layer in (elevation, fuel):
        if layer.name in layers:
            layer.load_snapshot(layers[layer.name].get("tiles", []))

    logger.info(f"Loaded grid snapshot from {path}")
    return MapGrid(transform, elevation, fuel)


# =============================================================================
# Mesh Export
# =============================================================================


def export_obj(meshes: Iterable[TileMesh], path: str | Path) -> int:
    """
    Write tile meshes to a Wavefront OBJ file in world coordinates.

    Vertex colors use the common ``v x y z r g b`` extension. Returns the
    number of meshes written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    offset = 1
    n_meshes = 0
    with open(path, "w") as f:
        f.write("# firegrid terrain\n")
        for mesh in meshes:
            f.write(f"o tile_{mesh.tile_x}_{mesh.tile_z}\n")
            for (x, y, z), (r, g, b, _) in zip(mesh.world_vertices(), mesh.colors):
                f.write(f"v {x:.4f} {y:.4f} {z:.4f} {r:.4f} {g:.4f} {b:.4f}\n")
            for u, v in mesh.uvs:
                f.write(f"vt {u:.5f} {v:.5f}\n")
            for nx, ny, nz in mesh.normals:
                f.write(f"vn {nx:.5f} {ny:.5f} {nz:.5f}\n")
            for a, b, c in mesh.triangles + offset:
                f.write(f"f {a}/{a}/{a} {b}/{b}/{b} {c}/{c}/{c}\n")
            offset += mesh.vertex_count
            n_meshes += 1

    logger.info(f"Exported {n_meshes} tile meshes to {path}")
    return n_meshes
