"""
Grid authority for firegrid.

``MapGrid`` owns the ``GeoTransform`` and delegates cell reads and writes
to the attached elevation and fuel code layers. Layers may be attached
after construction; operations invoked before that log a warning and
return safe defaults.
"""

from __future__ import annotations

import logging
from typing import Iterator

from firegrid.geo import DEFAULT_METER_STEP, DEFAULT_TILE_SIZE, GeoLocation, GeoTransform
from firegrid.raster import (
    DEFAULT_ELEVATION,
    NO_FUEL_CODE,
    RasterLayer,
    elevation_layer,
    fuel_code_layer,
)

logger = logging.getLogger(__name__)


class MapGrid:
    """
    Map dimensions plus the two raster layers.

    Parameters
    ----------
    transform : GeoTransform, optional
        Coordinate authority. A default 0x0 transform is created if omitted.
    elevation : RasterLayer, optional
        Elevation layer sharing ``transform``.
    fuel : RasterLayer, optional
        Fuel code layer sharing ``transform``.
    """

    def __init__(
        self,
        transform: GeoTransform | None = None,
        elevation: RasterLayer | None = None,
        fuel: RasterLayer | None = None,
    ):
        self.transform = transform if transform is not None else GeoTransform()
        self.elevation: RasterLayer | None = None
        self.fuel: RasterLayer | None = None
        self.attach_layers(elevation, fuel)

    @classmethod
    def create(
        cls,
        pixel_width: int = 0,
        pixel_height: int = 0,
        tile_size: int = DEFAULT_TILE_SIZE,
        origin_longitude_meter: int = 0,
        origin_latitude_meter: int = 0,
        longitude_step_meter: int = DEFAULT_METER_STEP,
        latitude_step_meter: int = DEFAULT_METER_STEP,
    ) -> "MapGrid":
        """Grid with fresh elevation and fuel layers."""
        transform = GeoTransform(
            origin_longitude_meter=origin_longitude_meter,
            origin_latitude_meter=origin_latitude_meter,
            longitude_step_meter=longitude_step_meter,
            latitude_step_meter=latitude_step_meter,
            tile_size=tile_size,
            pixel_width=pixel_width,
            pixel_height=pixel_height,
        )
        return cls(transform, elevation_layer(transform), fuel_code_layer(transform))

    def __repr__(self) -> str:
        t = self.transform
        return (
            f"MapGrid({t.pixel_width}x{t.pixel_height} px, tile_size={t.tile_size}, "
            f"tiles={t.tile_count})"
        )

    def attach_layers(self, elevation: RasterLayer | None, fuel: RasterLayer | None) -> None:
        """Attach layers; each layer is re-pointed at this grid's transform."""
        for layer in (elevation, fuel):
            if layer is not None and layer.transform is not self.transform:
                layer.transform = self.transform
        self.elevation = elevation
        self.fuel = fuel

    @property
    def has_layers(self) -> bool:
        return self.elevation is not None and self.fuel is not None

    # -------------------------------------------------------------------------
    # Dimensions
    # -------------------------------------------------------------------------

    def initialize(
        self,
        pixel_width: int,
        pixel_height: int,
        origin_longitude_meter: int,
        origin_latitude_meter: int,
        longitude_step_meter: int,
        latitude_step_meter: int,
        tile_size: int | None = None,
    ) -> None:
        """Set extent and geographic placement; tile counts follow."""
        t = self.transform
        t.origin_longitude_meter = origin_longitude_meter
        t.origin_latitude_meter = origin_latitude_meter
        t.longitude_step_meter = longitude_step_meter
        t.latitude_step_meter = latitude_step_meter
        t.resize(pixel_width, pixel_height, tile_size)
        logger.info(
            f"Grid initialized: {pixel_width}x{pixel_height} px, "
            f"origin=({origin_longitude_meter}, {origin_latitude_meter}) m, "
            f"step=({longitude_step_meter}, {latitude_step_meter}) m, "
            f"tiles={t.tile_count_x}x{t.tile_count_z}"
        )

    @property
    def pixel_width(self) -> int:
        return self.transform.pixel_width

    @property
    def pixel_height(self) -> int:
        return self.transform.pixel_height

    @property
    def tile_size(self) -> int:
        return self.transform.tile_size

    @property
    def tile_count(self) -> tuple[int, int]:
        return self.transform.tile_count

    def tiles(self) -> Iterator[tuple[int, int]]:
        """Tile coordinates covering the extent, row by row."""
        for tile_z in range(self.transform.tile_count_z):
            for tile_x in range(self.transform.tile_count_x):
                yield tile_x, tile_z

    def geo_coord_of(self, x: int, z: int) -> GeoLocation:
        return self.transform.geo_coord_of(x, z)

    # -------------------------------------------------------------------------
    # Cell access
    # -------------------------------------------------------------------------

    def get_elevation(self, x: int, z: int) -> int:
        if self.elevation is None:
            logger.warning("get_elevation: no elevation layer attached")
            return DEFAULT_ELEVATION
        return self.elevation.get(x, z)

    def set_elevation(self, x: int, z: int, value: int) -> None:
        if self.elevation is None:
            logger.warning("set_elevation: no elevation layer attached")
            return
        self.elevation.set(x, z, value)

    def get_fuel_code(self, x: int, z: int) -> int:
        if self.fuel is None:
            logger.warning("get_fuel_code: no fuel code layer attached")
            return NO_FUEL_CODE
        return self.fuel.get(x, z)

    def set_fuel_code(self, x: int, z: int, value: int) -> None:
        if self.fuel is None:
            logger.warning("set_fuel_code: no fuel code layer attached")
            return
        self.fuel.set(x, z, value)

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    def fill(self, elevation_value: int, fuel_value: int) -> None:
        """Write both values to every cell of the extent, then flush."""
        t = self.transform
        if not t.has_extent:
            logger.warning(
                f"fill: extent is {t.pixel_width}x{t.pixel_height}; initialize the grid first"
            )
            return
        if not self.has_layers:
            logger.warning("fill: elevation and fuel code layers must both be attached")
            return

        self.elevation.fill_region(t.pixel_width, t.pixel_height, elevation_value)
        self.fuel.fill_region(t.pixel_width, t.pixel_height, fuel_value)
        self.flush()
        logger.info(f"Filled {t.pixel_width}x{t.pixel_height} px with ({elevation_value}, {fuel_value})")

    def flush(self) -> None:
        """Persist pending writes on both layers."""
        for layer in (self.elevation, self.fuel):
            if layer is not None:
                layer.mark_dirty()

    def reset(self) -> None:
        """Drop all stored cells on both layers."""
        for layer in (self.elevation, self.fuel):
            if layer is not None:
                layer.clear()
