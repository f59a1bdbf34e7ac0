"""
Visualization module for firegrid.

This module provides functions for plotting terrain, fuel code maps,
behavior grids and tile meshes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np
from matplotlib import cm
from matplotlib.colors import ListedColormap
from mpl_toolkits.mplot3d.art3d import Poly3DCollection

from firegrid.environment import EnvironmentContext
from firegrid.fuels import FuelCatalog
from firegrid.mesh import fuel_vertex_color

if TYPE_CHECKING:
    from firegrid.geo import GeoTransform
    from firegrid.mesh import TileMesh
    from firegrid.terrain import BehaviorGrids, TerrainGrids

logger = logging.getLogger(__name__)


# =============================================================================
# Color Maps and Styles
# =============================================================================

DEM_CMAP = cm.terrain
SLOPE_CMAP = cm.YlOrRd
ASPECT_CMAP = cm.hsv
ROS_CMAP = cm.inferno
FLAME_CMAP = cm.hot_r


def _extent(transform: GeoTransform | None, shape: tuple[int, int]) -> list[float]:
    """imshow extent ``[left, right, bottom, top]`` with row 0 at the top."""
    height, width = shape
    if transform is None:
        return [0, width, height, 0]
    left = transform.origin_longitude_meter
    top = transform.origin_latitude_meter
    right = left + width * transform.longitude_step_meter
    bottom = top + height * transform.latitude_step_meter
    return [left, right, bottom, top]


def _save(fig: plt.Figure, output_path: Path | None, dpi: int, what: str) -> None:
    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=dpi, bbox_inches="tight")
        logger.info(f"Saved {what} plot to {output_path}")


# =============================================================================
# Static Plotting Functions
# =============================================================================


def plot_terrain(
    terrain: TerrainGrids,
    transform: GeoTransform | None = None,
    output_path: Path | None = None,
    figsize: tuple[float, float] = (15, 5),
    dpi: int = 150,
) -> plt.Figure:
    """
    Plot terrain grids (elevation, slope, aspect).

    Parameters
    ----------
    terrain : TerrainGrids
        Terrain data container.
    transform : GeoTransform, optional
        Geographic placement for axis labels; pixel axes if omitted.
    output_path : Path, optional
        If provided, save figure to this path.
    figsize : tuple
        Figure size in inches.
    dpi : int
        Figure resolution.

    Returns
    -------
    Figure
        Matplotlib figure object.
    """
    fig, axes = plt.subplots(1, 3, figsize=figsize)
    extent = _extent(transform, terrain.shape)

    panels = [
        (terrain.dem, DEM_CMAP, "Elevation (m)", None, None),
        (terrain.slope_deg, SLOPE_CMAP, "Slope (degrees)", 0, 45),
        (terrain.aspect_deg, ASPECT_CMAP, "Aspect (degrees from N)", 0, 360),
    ]
    for ax, (data, cmap, title, vmin, vmax) in zip(axes, panels):
        im = ax.imshow(data, extent=extent, cmap=cmap, aspect="equal", vmin=vmin, vmax=vmax)
        ax.set_title(title)
        ax.set_xlabel("Longitude (m)")
        plt.colorbar(im, ax=ax)
    axes[0].set_ylabel("Latitude (m)")

    plt.tight_layout()
    _save(fig, output_path, dpi, "terrain")
    return fig


def plot_fuel_codes(
    fuel: np.ndarray,
    catalog: FuelCatalog | None = None,
    environment: EnvironmentContext | None = None,
    transform: GeoTransform | None = None,
    output_path: Path | None = None,
    figsize: tuple[float, float] = (10, 8),
    dpi: int = 150,
) -> plt.Figure:
    """
    Plot a ``[z, x]`` fuel code array in the mesh vertex colors.

    Each distinct code gets the color its vertices would have at the
    given environment.
    """
    environment = environment or EnvironmentContext()
    codes, inverse = np.unique(np.asarray(fuel), return_inverse=True)
    palette = [fuel_vertex_color(int(c), catalog, environment) for c in codes]
    index = inverse.reshape(np.shape(fuel))

    fig, ax = plt.subplots(figsize=figsize)
    ax.imshow(
        index,
        extent=_extent(transform, index.shape),
        cmap=ListedColormap(palette),
        vmin=-0.5,
        vmax=len(codes) - 0.5,
        interpolation="nearest",
        aspect="equal",
    )
    ax.set_title(f"Fuel codes ({len(codes)} distinct)")
    ax.set_xlabel("Longitude (m)")
    ax.set_ylabel("Latitude (m)")

    _save(fig, output_path, dpi, "fuel code")
    return fig


def plot_behavior(
    behavior: BehaviorGrids,
    transform: GeoTransform | None = None,
    output_path: Path | None = None,
    figsize: tuple[float, float] = (12, 5),
    dpi: int = 150,
) -> plt.Figure:
    """Side-by-side rate of spread and flame length grids."""
    fig, axes = plt.subplots(1, 2, figsize=figsize)
    extent = _extent(transform, behavior.shape)

    panels = [
        (behavior.ros, ROS_CMAP, "Rate of spread"),
        (behavior.flame_length, FLAME_CMAP, "Flame length (m)"),
    ]
    for ax, (data, cmap, title) in zip(axes, panels):
        vmax = float(np.nanpercentile(data, 99)) if data.size else 1.0
        im = ax.imshow(data, extent=extent, cmap=cmap, aspect="equal", vmin=0, vmax=vmax or 1.0)
        ax.set_title(title)
        ax.set_xlabel("Longitude (m)")
        plt.colorbar(im, ax=ax)

    env = behavior.environment
    fig.suptitle(f"Wind {env.wind_speed:g}, moisture {env.moisture.name}")
    plt.tight_layout()
    _save(fig, output_path, dpi, "behavior")
    return fig


def plot_tile_mesh(
    mesh: TileMesh,
    output_path: Path | None = None,
    figsize: tuple[float, float] = (10, 8),
    dpi: int = 150,
    elev: float = 35.0,
    azim: float = -60.0,
) -> plt.Figure:
    """
    3D view of one tile mesh with per-face colors.

    Face colors are the mean of their three vertex colors.
    """
    fig = plt.figure(figsize=figsize)
    ax = fig.add_subplot(projection="3d")

    verts = mesh.vertices
    # Plot in (x, -z, y) so height is up
    xyz = np.column_stack([verts[:, 0], -verts[:, 2], verts[:, 1]])
    faces = xyz[mesh.triangles]
    face_colors = mesh.colors[mesh.triangles].mean(axis=1)

    ax.add_collection3d(Poly3DCollection(faces, facecolors=face_colors, edgecolors="none"))
    ax.set_xlim(xyz[:, 0].min(), xyz[:, 0].max())
    ax.set_ylim(xyz[:, 1].min(), xyz[:, 1].max())
    zmin, zmax = float(xyz[:, 2].min()), float(xyz[:, 2].max())
    ax.set_zlim(zmin, zmax if zmax > zmin else zmin + 1.0)
    ax.view_init(elev=elev, azim=azim)
    ax.set_title(f"Tile ({mesh.tile_x}, {mesh.tile_z}): {mesh.triangle_count} triangles")

    _save(fig, output_path, dpi, "tile mesh")
    return fig
