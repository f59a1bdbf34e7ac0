"""
Single-cell facade over the raster layers.

A ``Cell`` is a short-lived view of one pixel. Elevation, fuel code and
slope are read lazily and memoized for the life of the view; writes go
straight to the backing layer and ask the mesher to rebuild the tile
that contains the cell.
"""

from __future__ import annotations

import logging
import math
from enum import IntEnum
from typing import TYPE_CHECKING

from firegrid.environment import EnvironmentContext
from firegrid.fuels import FuelCatalog
from firegrid.geo import METERS_PER_UNIT, GeoLocation
from firegrid.raster import RasterLayer

if TYPE_CHECKING:
    from firegrid.mesh import TerrainMesher

logger = logging.getLogger(__name__)


# =============================================================================
# Fire Intensity Conversion
# =============================================================================

# Byram-style power law fitted for 30 m cells
INTENSITY_COEFFICIENT = 259.833
INTENSITY_EXPONENT = 2.174
CELL_SIZE_M = 30.0


def flame_length_to_intensity(flame_length: float) -> float:
    """Fire intensity (kW/m) from flame length (m)."""
    if flame_length <= 0:
        return 0.0
    return INTENSITY_COEFFICIENT * flame_length ** INTENSITY_EXPONENT * CELL_SIZE_M


def intensity_to_flame_length(intensity: float) -> float:
    """Inverse of ``flame_length_to_intensity``."""
    if intensity <= 0:
        return 0.0
    return ((intensity / CELL_SIZE_M) / INTENSITY_COEFFICIENT) ** (1.0 / INTENSITY_EXPONENT)


# =============================================================================
# Cell
# =============================================================================


class CellState(IntEnum):
    ALIVE = 0
    FIRE = 1
    DEAD = 2


class Cell:
    """
    Lazy read/write view of pixel ``(x, z)``.

    Parameters
    ----------
    x, z : int
        Pixel coordinate.
    elevation, fuel : RasterLayer
        Backing layers. Both are required.
    catalog : FuelCatalog
        Behavior curves used by ``update_behavior``.
    mesher : TerrainMesher, optional
        Notified when the cell is written.
    """

    def __init__(
        self,
        x: int,
        z: int,
        *,
        elevation: RasterLayer,
        fuel: RasterLayer,
        catalog: FuelCatalog,
        mesher: TerrainMesher | None = None,
    ):
        if elevation is None or fuel is None or catalog is None:
            raise ValueError("Cell requires elevation and fuel layers and a fuel catalog")

        self.x = x
        self.z = z
        self._elevation_layer = elevation
        self._fuel_layer = fuel
        self._catalog = catalog
        self._mesher = mesher

        self.state = CellState.ALIVE
        self.fire_intensity = 0.0  # kW/m
        self.flame_length = 0.0  # m
        self.ros = 0.0

        self._elevation: int | None = None
        self._fuel_code: int | None = None
        self._slope: float | None = None

    def __repr__(self) -> str:
        return f"Cell(x={self.x}, z={self.z}, state={self.state.name})"

    # -------------------------------------------------------------------------
    # Cached layer values
    # -------------------------------------------------------------------------

    @property
    def elevation(self) -> int:
        if self._elevation is None:
            self._elevation = self._elevation_layer.get(self.x, self.z)
        return self._elevation

    @elevation.setter
    def elevation(self, value: int) -> None:
        self._elevation_layer.set(self.x, self.z, value)
        self._elevation = None
        self._slope = None
        if self._mesher is not None:
            self._mesher.on_elevation_changed(self.x, self.z)

    @property
    def fuel_code(self) -> int:
        if self._fuel_code is None:
            self._fuel_code = self._fuel_layer.get(self.x, self.z)
        return self._fuel_code

    @fuel_code.setter
    def fuel_code(self, value: int) -> None:
        self._fuel_layer.set(self.x, self.z, value)
        self._fuel_code = None
        if self._mesher is not None:
            self._mesher.on_fuel_code_changed(self.x, self.z)

    @property
    def slope(self) -> float:
        """Slope in degrees from the four direct neighbours."""
        if self._slope is None:
            self._slope = self._compute_slope()
        return self._slope

    def _compute_slope(self) -> float:
        layer = self._elevation_layer
        north = layer.get(self.x, self.z - 1)
        west = layer.get(self.x - 1, self.z)
        east = layer.get(self.x + 1, self.z)
        south = layer.get(self.x, self.z + 1)

        slope_x = (east - west) / CELL_SIZE_M
        slope_z = (south - north) / CELL_SIZE_M
        return math.degrees(math.atan(math.hypot(slope_x, slope_z)))

    # -------------------------------------------------------------------------
    # Positions
    # -------------------------------------------------------------------------

    @property
    def position(self) -> tuple[float, float, float]:
        return float(self.x), self.elevation / METERS_PER_UNIT, float(-self.z)

    @property
    def location(self) -> tuple[int, int]:
        return self.x, self.z

    @property
    def geo_coord(self) -> GeoLocation:
        return self._elevation_layer.transform.geo_coord_of(self.x, self.z)

    # -------------------------------------------------------------------------
    # Fire state
    # -------------------------------------------------------------------------

    def update_fire_intensity_from_flame_length(self) -> None:
        self.fire_intensity = flame_length_to_intensity(self.flame_length)

    def update_flame_length_from_fire_intensity(self) -> None:
        self.flame_length = intensity_to_flame_length(self.fire_intensity)

    def update_behavior(self, environment: EnvironmentContext) -> None:
        """
        Refresh ``ros``, ``flame_length`` and ``fire_intensity``.

        Rate of spread is scaled by the fuel's slope factor at this cell.
        Fuels missing from the catalog burn with zero spread.
        """
        profile = self._catalog.lookup(self.fuel_code)
        if profile is None:
            self.ros = 0.0
            self.flame_length = 0.0
        else:
            wind, moisture = environment.wind_speed, environment.moisture
            self.ros = profile.rate_of_spread(wind, moisture) * profile.slope_factor(self.slope, moisture)
            self.flame_length = profile.flame_length(wind, moisture)
        self.update_fire_intensity_from_flame_length()

    def ignite(self) -> None:
        if self.state == CellState.ALIVE:
            self.state = CellState.FIRE

    def extinguish(self) -> None:
        if self.state == CellState.FIRE:
            self.state = CellState.DEAD
            self.fire_intensity = 0.0
            self.flame_length = 0.0
            self.ros = 0.0
