"""
Landscape: the query surface used by gameplay and editor tools.

Wires one ``MapGrid`` (transform + elevation + fuel layers), a
``FuelCatalog`` and a ``TerrainMesher`` together and exposes the cell,
behavior and rebuild operations callers need.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from firegrid.cell import Cell
from firegrid.environment import EnvironmentContext
from firegrid.fuels import FuelBehavior, FuelCatalog, MoistureState
from firegrid.geo import GeoLocation
from firegrid.grid import MapGrid
from firegrid.mesh import HEIGHT_SCALE, TerrainMesher, TileMesh

if TYPE_CHECKING:
    from firegrid.config import FiregridConfig

logger = logging.getLogger(__name__)


class Landscape:
    """
    Terrain and fuel behavior for one map.

    Parameters
    ----------
    grid : MapGrid
        Grid with both layers attached.
    catalog : FuelCatalog, optional
        Behavior curves; an empty catalog is used if omitted.
    environment : EnvironmentContext, optional
        Initial wind and moisture for mesh coloring.
    height_scale : float
        World units per elevation meter.
    """

    def __init__(
        self,
        grid: MapGrid,
        catalog: FuelCatalog | None = None,
        environment: EnvironmentContext | None = None,
        height_scale: float = HEIGHT_SCALE,
    ):
        if not grid.has_layers:
            raise ValueError("Landscape requires a grid with elevation and fuel layers")
        self.grid = grid
        self.catalog = catalog if catalog is not None else FuelCatalog()
        self.behavior = FuelBehavior(self.catalog)
        self.mesher = TerrainMesher(
            grid.transform,
            grid.elevation,
            grid.fuel,
            self.catalog,
            environment,
            height_scale,
        )

    @classmethod
    def create(cls, pixel_width: int, pixel_height: int, tile_size: int = 122, **kwargs: Any) -> "Landscape":
        catalog = kwargs.pop("catalog", None)
        environment = kwargs.pop("environment", None)
        grid = MapGrid.create(pixel_width, pixel_height, tile_size, **kwargs)
        return cls(grid, catalog, environment)

    @classmethod
    def from_config(cls, config: FiregridConfig) -> "Landscape":
        """
        Build a landscape from configuration.

        Loads the snapshot if present, otherwise imports the XYZ or raster
        pair, otherwise fills the configured extent.
        """
        from firegrid.io import import_rasters, import_xyz_pair, load_fuel_catalog, load_grid

        catalog = None
        if config.inputs.fuel_catalog is not None:
            catalog = load_fuel_catalog(config.inputs.fuel_catalog)

        inputs = config.inputs
        g = config.grid
        if inputs.snapshot is not None and Path(inputs.snapshot).exists():
            grid = load_grid(inputs.snapshot)
        else:
            grid = MapGrid.create(
                g.pixel_width,
                g.pixel_height,
                g.tile_size,
                g.origin_longitude_meter,
                g.origin_latitude_meter,
                g.longitude_step_meter,
                g.latitude_step_meter,
            )
            if inputs.elevation_xyz is not None:
                import_xyz_pair(
                    Path(inputs.elevation_xyz).read_text(),
                    Path(inputs.fuel_xyz).read_text(),
                    grid,
                    meter_step=g.longitude_step_meter,
                    auto_detect_bounds=inputs.auto_detect_bounds,
                    negative_latitude_step=inputs.negative_latitude_step,
                    tile_size=g.tile_size,
                )
            elif inputs.elevation_raster is not None:
                import_rasters(inputs.elevation_raster, inputs.fuel_raster, grid, tile_size=g.tile_size)
            elif config.fill.enabled:
                grid.fill(config.fill.elevation, config.fill.fuel_code)

        environment = EnvironmentContext(
            wind_speed=config.environment.wind_speed,
            moisture=config.environment.moisture,
        )
        return cls(grid, catalog, environment, config.mesh.height_scale)

    @property
    def transform(self):
        return self.grid.transform

    @property
    def environment(self) -> EnvironmentContext:
        return self.mesher.environment

    # -------------------------------------------------------------------------
    # Cells
    # -------------------------------------------------------------------------

    def get_elevation(self, x: int, z: int) -> int:
        return self.grid.get_elevation(x, z)

    def set_elevation(self, x: int, z: int, value: int) -> None:
        self.grid.set_elevation(x, z, value)
        self.mesher.on_elevation_changed(x, z)

    def get_fuel_code(self, x: int, z: int) -> int:
        return self.grid.get_fuel_code(x, z)

    def set_fuel_code(self, x: int, z: int, value: int) -> None:
        self.grid.set_fuel_code(x, z, value)
        self.mesher.on_fuel_code_changed(x, z)

    def cell(self, x: int, z: int) -> Cell:
        """A fresh cell view; do not hold on to it across edits."""
        return Cell(
            x,
            z,
            elevation=self.grid.elevation,
            fuel=self.grid.fuel,
            catalog=self.catalog,
            mesher=self.mesher,
        )

    def geo_coord_of(self, x: int, z: int) -> GeoLocation:
        return self.grid.geo_coord_of(x, z)

    def fill(self, elevation_value: int, fuel_value: int) -> None:
        self.grid.fill(elevation_value, fuel_value)

    def flush(self) -> None:
        self.grid.flush()

    # -------------------------------------------------------------------------
    # Behavior
    # -------------------------------------------------------------------------

    def rate_of_spread(self, fuel_code_id: int, wind_speed: float, moisture: Any = MoistureState.MEDIUM) -> float:
        return self.behavior.rate_of_spread(fuel_code_id, wind_speed, moisture)

    def flame_length(self, fuel_code_id: int, wind_speed: float, moisture: Any = MoistureState.MEDIUM) -> float:
        return self.behavior.flame_length(fuel_code_id, wind_speed, moisture)

    def slope_factor(self, fuel_code_id: int, slope_angle: float, moisture: Any = MoistureState.MEDIUM) -> float:
        return self.behavior.slope_factor(fuel_code_id, slope_angle, moisture)

    # -------------------------------------------------------------------------
    # Meshes
    # -------------------------------------------------------------------------

    def rebuild_tile(self, tile_x: int, tile_z: int, environment: EnvironmentContext | None = None) -> TileMesh:
        return self.mesher.rebuild_tile(tile_x, tile_z, environment)

    def rebuild_all(self, environment: EnvironmentContext | None = None) -> dict[tuple[int, int], TileMesh]:
        return self.mesher.rebuild_all(environment)
