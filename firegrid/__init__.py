"""
firegrid: Tiled Terrain and Fuel Behavior Engine
================================================

Stores elevation and fuel-type rasters for large wildland maps in
sparse fixed-size tiles, evaluates per-fuel fire behavior curves under
wind, slope and moisture, and turns each tile into a colored triangle
mesh.

Modules
-------
geo : Grid authority math (tile/local/geographic coordinates)
raster : Sparse tiled int16 layers and their persisted form
fuels : Fuel profiles, Bezier behavior curves and the fuel catalog
environment : Wind speed and moisture state
grid : MapGrid, the extent plus elevation and fuel layers
mesh : Tile mesh synthesis and vertex coloring
cell : Single-cell facade and intensity conversion
landscape : Wires grid, catalog and mesher into one query surface
io : XYZ, GeoTIFF, snapshot, catalog and OBJ files
terrain : Dense slope and behavior grids
sample : Synthetic sample maps
visualization : Plotting
config : Configuration loading and validation
"""

__version__ = "0.1.0"
__author__ = "Fire Engine Framework Contributors"

from firegrid.cell import Cell, CellState, flame_length_to_intensity, intensity_to_flame_length
from firegrid.config import FiregridConfig, load_config
from firegrid.environment import EnvironmentContext
from firegrid.fuels import (
    BehaviorOutput,
    BezierCurve,
    FuelBehavior,
    FuelCatalog,
    FuelProfile,
    MoistureState,
)
from firegrid.geo import GeoLocation, GeoTransform
from firegrid.grid import MapGrid
from firegrid.landscape import Landscape
from firegrid.mesh import TerrainMesher, TileMesh, build_tile_mesh
from firegrid.raster import RasterLayer, TileRecord

# io is not imported here so that rasterio loads only when files are touched

__all__ = [
    "Cell",
    "CellState",
    "flame_length_to_intensity",
    "intensity_to_flame_length",
    "FiregridConfig",
    "load_config",
    "EnvironmentContext",
    "BehaviorOutput",
    "BezierCurve",
    "FuelBehavior",
    "FuelCatalog",
    "FuelProfile",
    "MoistureState",
    "GeoLocation",
    "GeoTransform",
    "MapGrid",
    "Landscape",
    "TerrainMesher",
    "TileMesh",
    "build_tile_mesh",
    "RasterLayer",
    "TileRecord",
    "__version__",
]
