"""
Tile mesh synthesis for firegrid.

Each tile of the grid becomes a triangulated height field:

- one vertex per cell corner, ``(w + 1) x (h + 1)`` vertices for a tile
  whose covered extent is ``w x h`` cells;
- vertex position ``(x, elevation * height_scale, -z)`` in tile-local
  world units (the z axis is inverted);
- two triangles per cell, wound so that face normals point up (+y);
- a per-vertex RGBA color derived from the fuel code under the vertex and
  the fire behavior of that fuel at the current wind and moisture.

A rebuild always regenerates the whole tile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
from matplotlib.colors import hsv_to_rgb, rgb_to_hsv

from firegrid.environment import EnvironmentContext
from firegrid.fuels import NEUTRAL_COLOR, BehaviorOutput, FuelCatalog, lerp
from firegrid.geo import METERS_PER_UNIT, GeoTransform
from firegrid.raster import NO_FUEL_CODE, RasterLayer, is_road, is_water

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

HEIGHT_SCALE = 1.0 / METERS_PER_UNIT

ROAD_COLOR = (0.0, 0.0, 0.0, 1.0)
WATER_COLOR = (0.3, 0.5, 0.9, 1.0)

SATURATION_RANGE = (0.3, 1.0)
VALUE_RANGE = (0.4, 1.0)

# Used when a fuel has no profile or curve to normalize against
FALLBACK_OUTPUT_MAX = 10.0


# =============================================================================
# Mesh Container
# =============================================================================


@dataclass
class TileMesh:
    """
    Geometry for one tile.

    Attributes
    ----------
    tile_x, tile_z : int
        Tile coordinate.
    width, height : int
        Covered cells along x and z (clipped to the grid extent).
    origin : tuple
        World position of the tile's first vertex.
    vertices : np.ndarray
        (N, 3) float32 positions, row-major over z then x.
    uvs : np.ndarray
        (N, 2) float32 texture coordinates in [0, 1].
    colors : np.ndarray
        (N, 4) float32 RGBA colors.
    triangles : np.ndarray
        (M, 3) int32 vertex indices.
    normals : np.ndarray
        (N, 3) float32 unit vertex normals.
    """

    tile_x: int
    tile_z: int
    width: int
    height: int
    origin: tuple[float, float, float]
    vertices: np.ndarray
    uvs: np.ndarray
    colors: np.ndarray
    triangles: np.ndarray
    normals: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.float32))

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.triangles.shape[0])

    @property
    def heights(self) -> np.ndarray:
        """Vertex heights as a ``(height + 1, width + 1)`` grid."""
        return self.vertices[:, 1].reshape(self.height + 1, self.width + 1)

    def world_vertices(self) -> np.ndarray:
        return self.vertices + np.asarray(self.origin, dtype=np.float32)


# =============================================================================
# Vertex Coloring
# =============================================================================


def fuel_vertex_color(
    fuel_code: int,
    catalog: FuelCatalog | None,
    environment: EnvironmentContext,
) -> tuple[float, float, float, float]:
    """
    RGBA color of a vertex over ``fuel_code``.

    Fixed categories come first (no fuel, road, water); road codes
    include the urban ones. Burnable fuels start from the profile's base
    color; saturation follows flame length and brightness follows rate of
    spread, each relative to its curve's ``max``.
    """
    if fuel_code == NO_FUEL_CODE:
        return NEUTRAL_COLOR
    if is_road(fuel_code):
        return ROAD_COLOR
    if is_water(fuel_code):
        return WATER_COLOR

    profile = catalog.lookup(fuel_code) if catalog is not None else None
    wind, moisture = environment.wind_speed, environment.moisture

    if profile is None:
        base = NEUTRAL_COLOR
        flame = ros = 1.0
        flame_max = ros_max = FALLBACK_OUTPUT_MAX
    else:
        base = profile.base_color
        flame = profile.flame_length(wind, moisture)
        ros = profile.rate_of_spread(wind, moisture)
        flame_curve = profile.curve_for(BehaviorOutput.FLAME_LENGTH, moisture)
        ros_curve = profile.curve_for(BehaviorOutput.ROS, moisture)
        flame_max = flame_curve.max if flame_curve is not None else FALLBACK_OUTPUT_MAX
        ros_max = ros_curve.max if ros_curve is not None else FALLBACK_OUTPUT_MAX

    sat = min(1.0, max(0.0, flame / flame_max if flame_max > 0 else 0.5))
    val = min(1.0, max(0.0, ros / ros_max if ros_max > 0 else 0.5))

    h, _, _ = rgb_to_hsv(np.asarray(base[:3], dtype=np.float64))
    rgb = hsv_to_rgb(np.array([h, lerp(*SATURATION_RANGE, sat), lerp(*VALUE_RANGE, val)]))
    return float(rgb[0]), float(rgb[1]), float(rgb[2]), 1.0


def _color_grid(
    codes: np.ndarray,
    catalog: FuelCatalog | None,
    environment: EnvironmentContext,
) -> np.ndarray:
    """Colors for an array of fuel codes, evaluating each distinct code once."""
    flat = codes.ravel()
    unique, inverse = np.unique(flat, return_inverse=True)
    palette = np.array(
        [fuel_vertex_color(int(code), catalog, environment) for code in unique],
        dtype=np.float32,
    ).reshape(-1, 4)
    return palette[inverse.reshape(-1)]


# =============================================================================
# Geometry
# =============================================================================


def grid_triangles(width: int, height: int) -> np.ndarray:
    """
    Index buffer for a ``width x height`` cell grid.

    Cell corners ``i0 (x, z)``, ``i1 (x+1, z)``, ``i2 (x, z+1)``,
    ``i3 (x+1, z+1)`` produce triangles ``(i0, i1, i2)`` and
    ``(i1, i3, i2)``.
    """
    zz, xx = np.meshgrid(np.arange(height), np.arange(width), indexing="ij")
    i0 = (zz * (width + 1) + xx).ravel()
    i1 = i0 + 1
    i2 = i0 + width + 1
    i3 = i2 + 1

    triangles = np.empty((2 * i0.size, 3), dtype=np.int32)
    triangles[0::2] = np.stack([i0, i1, i2], axis=1)
    triangles[1::2] = np.stack([i1, i3, i2], axis=1)
    return triangles


def compute_vertex_normals(vertices: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """Area-weighted unit vertex normals."""
    v0 = vertices[triangles[:, 0]]
    v1 = vertices[triangles[:, 1]]
    v2 = vertices[triangles[:, 2]]
    face = np.cross(v1 - v0, v2 - v0)

    normals = np.zeros_like(vertices, dtype=np.float64)
    for k in range(3):
        np.add.at(normals, triangles[:, k], face)

    length = np.linalg.norm(normals, axis=1, keepdims=True)
    length[length == 0] = 1.0
    return (normals / length).astype(np.float32)


def build_tile_mesh(
    tile_x: int,
    tile_z: int,
    transform: GeoTransform,
    elevation: RasterLayer | None,
    fuel: RasterLayer | None = None,
    catalog: FuelCatalog | None = None,
    environment: EnvironmentContext | None = None,
    height_scale: float = HEIGHT_SCALE,
) -> TileMesh:
    """
    Build the height-field mesh of one tile.

    Parameters
    ----------
    tile_x, tile_z : int
        Tile coordinate.
    transform : GeoTransform
        Grid extent and tile size.
    elevation : RasterLayer or None
        Elevation source. None produces a flat tile.
    fuel : RasterLayer, optional
        Fuel code source. None colors every vertex neutral.
    catalog : FuelCatalog, optional
        Behavior curves for vertex coloring.
    environment : EnvironmentContext, optional
        Wind and moisture used for coloring.
    height_scale : float
        World units per elevation meter.

    Returns
    -------
    TileMesh
    """
    environment = environment or EnvironmentContext()
    size = transform.tile_size
    width, height = transform.tile_extent(tile_x, tile_z)

    xs = np.arange(width + 1)
    zs = np.arange(height + 1)
    # Edge vertices reuse the last cell of the tile
    sx = np.minimum(xs, size - 1)
    sz = np.minimum(zs, size - 1)

    if elevation is not None:
        heights = elevation.get_tile(tile_x, tile_z)
    else:
        heights = np.zeros((size, size), dtype=np.int16)
    hx = np.minimum(sx, heights.shape[0] - 1)
    hz = np.minimum(sz, heights.shape[1] - 1)
    grid_h = heights[np.ix_(hx, hz)].T.astype(np.float32) * np.float32(height_scale)

    gx, gz = np.meshgrid(xs, zs)
    vertices = np.stack(
        [gx.astype(np.float32), grid_h, -gz.astype(np.float32)], axis=-1
    ).reshape(-1, 3)
    uvs = np.stack([gx / width, gz / height], axis=-1).reshape(-1, 2).astype(np.float32)

    if fuel is not None:
        fuels = fuel.get_tile(tile_x, tile_z)
        fx = np.minimum(sx, fuels.shape[0] - 1)
        fz = np.minimum(sz, fuels.shape[1] - 1)
        colors = _color_grid(fuels[np.ix_(fx, fz)].T, catalog, environment)
    else:
        colors = np.tile(np.asarray(NEUTRAL_COLOR, dtype=np.float32), (vertices.shape[0], 1))

    triangles = grid_triangles(width, height)
    normals = compute_vertex_normals(vertices, triangles)

    return TileMesh(
        tile_x=tile_x,
        tile_z=tile_z,
        width=width,
        height=height,
        origin=(float(tile_x * size), 0.0, float(-tile_z * size)),
        vertices=vertices,
        uvs=uvs,
        colors=colors,
        triangles=triangles,
        normals=normals,
    )


# =============================================================================
# Mesher
# =============================================================================


class TerrainMesher:
    """
    Builds and caches tile meshes for a grid.

    All references are required; pass an empty ``FuelCatalog`` when no
    behavior data is available.
    """

    def __init__(
        self,
        transform: GeoTransform,
        elevation: RasterLayer,
        fuel: RasterLayer,
        catalog: FuelCatalog,
        environment: EnvironmentContext | None = None,
        height_scale: float = HEIGHT_SCALE,
    ):
        missing = [
            name
            for name, ref in (
                ("transform", transform),
                ("elevation", elevation),
                ("fuel", fuel),
                ("catalog", catalog),
            )
            if ref is None
        ]
        if missing:
            raise ValueError(f"TerrainMesher missing references: {', '.join(missing)}")

        self.transform = transform
        self.elevation = elevation
        self.fuel = fuel
        self.catalog = catalog
        self.environment = environment or EnvironmentContext()
        self.height_scale = height_scale
        self.tiles: dict[tuple[int, int], TileMesh] = {}

    def rebuild_tile(
        self,
        tile_x: int,
        tile_z: int,
        environment: EnvironmentContext | None = None,
    ) -> TileMesh:
        """Regenerate one tile. The environment, if given, becomes current."""
        if environment is not None:
            self.environment = environment
        mesh = build_tile_mesh(
            tile_x,
            tile_z,
            self.transform,
            self.elevation,
            self.fuel,
            self.catalog,
            self.environment,
            self.height_scale,
        )
        self.tiles[(tile_x, tile_z)] = mesh
        logger.debug(
            f"Rebuilt tile ({tile_x}, {tile_z}): "
            f"{mesh.vertex_count} vertices, {mesh.triangle_count} triangles"
        )
        return mesh

    def rebuild_all(self, environment: EnvironmentContext | None = None) -> dict[tuple[int, int], TileMesh]:
        """Discard every tile and rebuild the whole extent."""
        if environment is not None:
            self.environment = environment
        self.tiles.clear()

        t = self.transform
        if not t.has_extent:
            logger.warning(f"rebuild_all: extent is {t.pixel_width}x{t.pixel_height}; nothing to build")
            return self.tiles

        for tile_z in range(t.tile_count_z):
            for tile_x in range(t.tile_count_x):
                self.rebuild_tile(tile_x, tile_z)

        logger.info(f"Built {len(self.tiles)} tile meshes ({t.tile_count_x}x{t.tile_count_z})")
        return self.tiles

    def tile_at(self, x: int, z: int) -> tuple[int, int]:
        return self.transform.tile_coord_of(x, z)

    def on_elevation_changed(self, x: int, z: int) -> TileMesh | None:
        """Rebuild the tile containing a cell, if it has been built."""
        key = self.tile_at(x, z)
        if key in self.tiles:
            return self.rebuild_tile(*key)
        return None

    def on_fuel_code_changed(self, x: int, z: int) -> TileMesh | None:
        key = self.tile_at(x, z)
        if key in self.tiles:
            return self.rebuild_tile(*key)
        return None
