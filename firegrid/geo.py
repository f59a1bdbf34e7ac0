"""
Coordinate transforms for firegrid.

This module holds the single source of truth tying three coordinate
spaces together:

- pixel space: integer ``(x, z)`` cell indices, ``z`` growing southward
- tile space: ``(tile_x, tile_z)`` plus a local offset inside the tile
- geographic meters: east/north offsets in the source projection

All raster layers and mesh builders share one ``GeoTransform`` instance
owned by the grid authority.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_TILE_SIZE = 122
DEFAULT_METER_STEP = 30

# Geographic meters per world unit on the vertical axis
METERS_PER_UNIT = 30.0


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class GeoLocation:
    """A geographic position in meters."""

    longitude_meter: int
    latitude_meter: int

    def __str__(self) -> str:
        return f"({self.longitude_meter}, {self.latitude_meter})"


@dataclass
class GeoTransform:
    """
    Pixel/tile/geographic coordinate authority.

    Attributes
    ----------
    origin_longitude_meter : int
        Longitude (easting) of pixel (0, 0) in meters.
    origin_latitude_meter : int
        Latitude (northing) of pixel (0, 0) in meters.
    longitude_step_meter : int
        Meters per pixel along x. May be negative.
    latitude_step_meter : int
        Meters per pixel along z. Negative for north-up rasters.
    tile_size : int
        Edge length of a square tile in pixels.
    pixel_width : int
        Extent of the grid along x.
    pixel_height : int
        Extent of the grid along z.
    """

    origin_longitude_meter: int = 0
    origin_latitude_meter: int = 0
    longitude_step_meter: int = DEFAULT_METER_STEP
    latitude_step_meter: int = DEFAULT_METER_STEP
    tile_size: int = DEFAULT_TILE_SIZE
    pixel_width: int = 0
    pixel_height: int = 0

    def __post_init__(self):
        if self.tile_size <= 0:
            raise ValueError(f"tile_size must be positive, got {self.tile_size}")

    # -------------------------------------------------------------------------
    # Extent
    # -------------------------------------------------------------------------

    @property
    def tile_count_x(self) -> int:
        """Number of tiles needed to cover the x extent."""
        return _ceil_div(self.pixel_width, self.tile_size)

    @property
    def tile_count_z(self) -> int:
        """Number of tiles needed to cover the z extent."""
        return _ceil_div(self.pixel_height, self.tile_size)

    @property
    def tile_count(self) -> tuple[int, int]:
        return self.tile_count_x, self.tile_count_z

    @property
    def has_extent(self) -> bool:
        return self.pixel_width > 0 and self.pixel_height > 0

    def resize(self, pixel_width: int, pixel_height: int, tile_size: int | None = None) -> None:
        """Change the pixel extent and optionally the tile size."""
        if tile_size is not None:
            if tile_size <= 0:
                raise ValueError(f"tile_size must be positive, got {tile_size}")
            self.tile_size = tile_size
        self.pixel_width = pixel_width
        self.pixel_height = pixel_height
        logger.debug(
            f"Grid resized to {pixel_width}x{pixel_height} px, "
            f"tile_size={self.tile_size}, tiles={self.tile_count}"
        )

    def contains(self, x: int, z: int) -> bool:
        """Return True if the pixel lies within the configured extent."""
        return 0 <= x < self.pixel_width and 0 <= z < self.pixel_height

    # -------------------------------------------------------------------------
    # Pixel <-> tile
    # -------------------------------------------------------------------------

    def tile_coord_of(self, x: int, z: int) -> tuple[int, int]:
        """Tile containing a pixel. Floors toward negative infinity."""
        return x // self.tile_size, z // self.tile_size

    def local_coord_of(self, x: int, z: int) -> tuple[int, int]:
        """Offset of a pixel inside its tile, always non-negative."""
        return x % self.tile_size, z % self.tile_size

    def tile_origin(self, tile_x: int, tile_z: int) -> tuple[int, int]:
        """Pixel coordinate of a tile's first cell."""
        return tile_x * self.tile_size, tile_z * self.tile_size

    def tile_extent(self, tile_x: int, tile_z: int) -> tuple[int, int]:
        """
        Width and height of a tile clipped to the grid extent.

        Tiles on the far edge may be only partially covered. The result is
        never smaller than 1x1.
        """
        ox, oz = self.tile_origin(tile_x, tile_z)
        width = min(self.tile_size, self.pixel_width - ox)
        height = min(self.tile_size, self.pixel_height - oz)
        if width <= 0 or height <= 0:
            return 1, 1
        return width, height

    # -------------------------------------------------------------------------
    # Pixel <-> geographic
    # -------------------------------------------------------------------------

    def geo_coord_of(self, x: int, z: int) -> GeoLocation:
        """
        Geographic meters of a pixel.

        Computed through the tile decomposition so that it matches the
        persisted tile layout exactly.
        """
        tile_x, tile_z = self.tile_coord_of(x, z)
        local_x = x - tile_x * self.tile_size
        local_z = z - tile_z * self.tile_size

        longitude = (
            self.origin_longitude_meter
            + tile_x * self.tile_size * self.longitude_step_meter
            + local_x * self.longitude_step_meter
        )
        latitude = (
            self.origin_latitude_meter
            + tile_z * self.tile_size * self.latitude_step_meter
            + local_z * self.latitude_step_meter
        )
        return GeoLocation(longitude, latitude)

    def pixel_of_geo(self, longitude_meter: float, latitude_meter: float) -> tuple[int, int]:
        """Pixel containing a geographic position (may be outside the extent)."""
        if self.longitude_step_meter == 0 or self.latitude_step_meter == 0:
            raise ValueError("Meter steps must be non-zero")
        x = math.floor((longitude_meter - self.origin_longitude_meter) / self.longitude_step_meter)
        z = math.floor((latitude_meter - self.origin_latitude_meter) / self.latitude_step_meter)
        return x, z

    # -------------------------------------------------------------------------
    # Pixel <-> world
    # -------------------------------------------------------------------------

    @staticmethod
    def pixel_to_world(x: int, z: int, elevation: float = 0.0) -> tuple[float, float, float]:
        """World position of a pixel; the z axis is inverted."""
        return float(x), elevation / METERS_PER_UNIT, float(-z)

    @staticmethod
    def world_to_pixel(world_x: float, world_y: float, world_z: float) -> tuple[int, int]:
        return math.floor(world_x), math.floor(-world_z)

    def to_dict(self) -> dict[str, int]:
        return {
            "origin_longitude_meter": self.origin_longitude_meter,
            "origin_latitude_meter": self.origin_latitude_meter,
            "longitude_step_meter": self.longitude_step_meter,
            "latitude_step_meter": self.latitude_step_meter,
            "tile_size": self.tile_size,
            "pixel_width": self.pixel_width,
            "pixel_height": self.pixel_height,
        }

    @classmethod
    def from_dict(cls, data: dict[str, int]) -> "GeoTransform":
        return cls(**{k: int(v) for k, v in data.items() if k in cls.__dataclass_fields__})


def _ceil_div(a: int, b: int) -> int:
    if a <= 0:
        return 0
    return -(-a // b)
