"""
Synthetic sample maps for demos and tests.

Elevation is a field of smooth hills; fuel codes are laid out in bands
that follow a second, finer noise field and cycle through the catalog.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.ndimage import gaussian_filter

from firegrid.fuels import FuelCatalog
from firegrid.grid import MapGrid

logger = logging.getLogger(__name__)

DEFAULT_AMPLITUDE = 800.0
DEFAULT_FEATURE_SCALE = 0.008  # noise frequency per cell
FUEL_SCALE_FACTOR = 1.7


def smooth_noise(
    shape: tuple[int, int],
    feature_scale: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """
    Smooth random field normalized to ``[0, 1]``.

    White noise is low-pass filtered with a Gaussian whose width is a
    quarter of the feature wavelength ``1 / feature_scale``.
    """
    sigma = max(1.0, 0.25 / feature_scale)
    field = gaussian_filter(rng.standard_normal(shape), sigma=sigma, mode="reflect")
    lo, hi = float(field.min()), float(field.max())
    if hi - lo < 1e-12:
        return np.full(shape, 0.5)
    return (field - lo) / (hi - lo)


def generate_sample_map(
    grid: MapGrid,
    catalog: FuelCatalog,
    seed: int | None = None,
    amplitude: float = DEFAULT_AMPLITUDE,
    feature_scale: float = DEFAULT_FEATURE_SCALE,
) -> None:
    """
    Overwrite the grid's extent with sample hills and fuel bands.

    Parameters
    ----------
    grid : MapGrid
        Initialized grid with both layers attached.
    catalog : FuelCatalog
        Source of the fuel code ids; must not be empty.
    seed : int, optional
        Random seed for reproducibility.
    amplitude : float
        Peak elevation in meters.
    feature_scale : float
        Noise frequency per cell; smaller values give broader hills.

    Raises
    ------
    ValueError
        If the grid has no extent or layers, or the catalog is empty.
    """
    t = grid.transform
    if not t.has_extent:
        raise ValueError(f"Grid extent is {t.pixel_width}x{t.pixel_height}; set positive dimensions")
    if not grid.has_layers:
        raise ValueError("Grid needs elevation and fuel code layers")
    codes = catalog.ids
    if not codes:
        raise ValueError("Fuel catalog is empty; import fuel codes first")

    rng = np.random.default_rng(seed)
    shape = (t.pixel_height, t.pixel_width)

    hills = smooth_noise(shape, feature_scale, rng)
    elevation = np.round(np.power(hills, 1.5) * amplitude)

    bands = smooth_noise(shape, feature_scale * FUEL_SCALE_FACTOR, rng)
    idx = np.clip(np.floor(bands * len(codes)).astype(int), 0, len(codes) - 1)
    fuel = np.asarray(codes, dtype=np.int64)[idx]

    grid.elevation.from_array(elevation)
    grid.fuel.from_array(fuel)

    logger.info(
        f"Generated sample map {t.pixel_width}x{t.pixel_height}: "
        f"elevation 0-{int(elevation.max())} m, {len(set(codes))} fuel codes"
    )
