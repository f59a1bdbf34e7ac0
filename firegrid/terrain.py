"""
Dense terrain and behavior grids for firegrid.

These functions work on whole ``[z, x]`` arrays exported from the raster
layers (``RasterLayer.to_array``) and are used for plotting, GeoTIFF export
and summaries. Per-cell values agree with the ``Cell`` facade.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from firegrid.cell import CELL_SIZE_M, INTENSITY_COEFFICIENT, INTENSITY_EXPONENT
from firegrid.environment import EnvironmentContext
from firegrid.fuels import SLOPE_DOMAIN, BehaviorOutput, FuelCatalog
from firegrid.grid import MapGrid
from firegrid.raster import DEFAULT_ELEVATION

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class TerrainGrids:
    """Container for terrain-derived grids."""

    dem: np.ndarray
    slope_deg: np.ndarray
    aspect_deg: np.ndarray

    @property
    def shape(self) -> tuple[int, int]:
        """Return (height, width) of the grids."""
        return self.dem.shape


@dataclass
class BehaviorGrids:
    """Fire behavior evaluated for every cell at one environment."""

    ros: np.ndarray
    flame_length: np.ndarray
    intensity: np.ndarray
    environment: EnvironmentContext

    @property
    def shape(self) -> tuple[int, int]:
        return self.ros.shape


# =============================================================================
# Slope and Aspect Calculation
# =============================================================================


def _neighbour_differences(
    dem: np.ndarray,
    cell_size: float,
    edge_value: float,
) -> tuple[np.ndarray, np.ndarray]:
    z = np.asarray(dem, dtype=np.float64)
    padded = np.pad(z, 1, mode="constant", constant_values=edge_value)
    north = padded[:-2, 1:-1]
    south = padded[2:, 1:-1]
    west = padded[1:-1, :-2]
    east = padded[1:-1, 2:]
    return (east - west) / cell_size, (south - north) / cell_size


def compute_slope_grid(
    dem: np.ndarray,
    cell_size: float = CELL_SIZE_M,
    edge_value: float = DEFAULT_ELEVATION,
) -> np.ndarray:
    """
    Slope in degrees for every cell of a ``[z, x]`` elevation array.

    Each cell uses its four direct neighbours,
    ``atan(hypot(east - west, south - north) / cell_size)``. Neighbours
    outside the array read ``edge_value``, the elevation layer default.

    Parameters
    ----------
    dem : np.ndarray
        2D array of elevations in meters, indexed ``[z, x]``.
    cell_size : float
        Divisor applied to the neighbour differences.
    edge_value : float
        Elevation assumed beyond the array edge.

    Returns
    -------
    np.ndarray
        Slope in degrees (0 = flat).
    """
    dzdx, dzdz = _neighbour_differences(dem, cell_size, edge_value)
    return np.degrees(np.arctan(np.hypot(dzdx, dzdz)))


def compute_aspect_grid(
    dem: np.ndarray,
    cell_size: float = CELL_SIZE_M,
    edge_value: float = DEFAULT_ELEVATION,
) -> np.ndarray:
    """
    Downslope direction in degrees clockwise from north (row 0).

    NaN where the terrain is flat.
    """
    dzdx, dzdz = _neighbour_differences(dem, cell_size, edge_value)
    # Rows grow southward, so the downhill vector is (-dzdx, -dzdz) in (east, south)
    aspect = np.mod(np.degrees(np.arctan2(-dzdx, dzdz)), 360.0)
    aspect[np.hypot(dzdx, dzdz) < 1e-9] = np.nan
    return aspect


def build_terrain_grids(grid: MapGrid, cell_size: float = CELL_SIZE_M) -> TerrainGrids:
    """Slope and aspect over the grid's extent."""
    if grid.elevation is None:
        raise ValueError("build_terrain_grids requires an elevation layer")

    dem = grid.elevation.to_array()
    slope = compute_slope_grid(dem, cell_size, grid.elevation.default_value)
    aspect = compute_aspect_grid(dem, cell_size, grid.elevation.default_value)

    if slope.size:
        logger.info(
            f"Slope: min={slope.min():.1f}, max={slope.max():.1f}, mean={slope.mean():.1f} deg"
        )
    return TerrainGrids(dem=dem, slope_deg=slope, aspect_deg=aspect)


# =============================================================================
# Behavior Grids
# =============================================================================


def compute_behavior_grids(
    elevation: np.ndarray,
    fuel: np.ndarray,
    catalog: FuelCatalog,
    environment: EnvironmentContext | None = None,
    cell_size: float = CELL_SIZE_M,
) -> BehaviorGrids:
    """
    Rate of spread, flame length and intensity for every cell.

    Wind-driven outputs are evaluated once per distinct fuel code; the
    slope factor is evaluated per cell and multiplies the rate of spread.
    Codes missing from the catalog yield zero spread and flame length.

    Parameters
    ----------
    elevation, fuel : np.ndarray
        ``[z, x]`` arrays of the same shape.
    catalog : FuelCatalog
        Behavior curves.
    environment : EnvironmentContext, optional
        Wind and moisture; defaults to ``EnvironmentContext()``.
    cell_size : float
        Divisor for the slope calculation.

    Returns
    -------
    BehaviorGrids
    """
    environment = environment or EnvironmentContext()
    elevation = np.asarray(elevation)
    fuel = np.asarray(fuel)
    if elevation.shape != fuel.shape:
        raise ValueError(
            f"Elevation shape {elevation.shape} does not match fuel shape {fuel.shape}"
        )

    slope = compute_slope_grid(elevation, cell_size)
    ros = np.zeros(fuel.shape, dtype=np.float64)
    flame = np.zeros(fuel.shape, dtype=np.float64)
    wind, moisture = environment.wind_speed, environment.moisture

    for code in np.unique(fuel):
        profile = catalog.lookup(int(code))
        if profile is None:
            continue
        mask = fuel == code
        slope_curve = profile.curve_for(BehaviorOutput.SLOPE, moisture)
        if slope_curve is None:
            factor = 1.0
        else:
            evaluate = np.vectorize(
                lambda s: slope_curve.evaluate_with_input(s, *SLOPE_DOMAIN), otypes=[np.float64]
            )
            factor = evaluate(slope[mask])
        ros[mask] = profile.rate_of_spread(wind, moisture) * factor
        flame[mask] = profile.flame_length(wind, moisture)

    intensity = np.where(
        flame > 0,
        INTENSITY_COEFFICIENT * np.power(flame, INTENSITY_EXPONENT) * CELL_SIZE_M,
        0.0,
    )

    logger.info(
        f"Behavior grids at wind={wind}, moisture={moisture.name}: "
        f"{int(np.count_nonzero(ros))} burnable cells"
    )
    return BehaviorGrids(ros=ros, flame_length=flame, intensity=intensity, environment=environment)
