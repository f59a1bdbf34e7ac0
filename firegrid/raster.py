"""
Sparse tiled raster storage for firegrid.

A ``RasterLayer`` stores signed 16-bit cells in square tiles that are
allocated on first write and pre-filled with the layer's default value.
The same class backs both the elevation layer (default 0) and the fuel
code layer (default 98, "no fuel").

Persistence follows an explicit flush contract:

- writes are visible in memory immediately;
- the persisted snapshot (a list of ``TileRecord``) is only regenerated by
  ``mark_dirty()``;
- ``clear_cache()`` drops the in-memory tiles so that the next access
  rehydrates from the snapshot.

A batch of writes that is never followed by ``mark_dirty()`` is lost when
the cache is cleared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

import numpy as np

from firegrid.geo import GeoTransform

logger = logging.getLogger(__name__)

INT16_MIN = int(np.iinfo(np.int16).min)
INT16_MAX = int(np.iinfo(np.int16).max)


# =============================================================================
# Fuel Code Categories
# =============================================================================

DEFAULT_ELEVATION = 0
NO_FUEL_CODE = 98

ROAD_CODES = frozenset({7296, 7297, 7298, 7299})
URBAN_CODES = frozenset({7296, 7297, 7298})
WATER_CODES = frozenset({91, 7292})


def is_road(fuel_code: int) -> bool:
    return fuel_code in ROAD_CODES


def is_urban(fuel_code: int) -> bool:
    return fuel_code in URBAN_CODES


def is_water(fuel_code: int) -> bool:
    return fuel_code in WATER_CODES


def is_special(fuel_code: int) -> bool:
    """True for codes that render as a fixed category instead of a fuel."""
    return (
        fuel_code == NO_FUEL_CODE
        or is_road(fuel_code)
        or is_urban(fuel_code)
        or is_water(fuel_code)
    )


def to_int16(value: Any) -> int:
    """Round half-to-even and clip into the int16 range."""
    v = int(round(float(value)))
    return max(INT16_MIN, min(INT16_MAX, v))


# =============================================================================
# Persisted Form
# =============================================================================


@dataclass
class TileRecord:
    """
    One persisted tile.

    ``data`` is the tile buffer flattened row-major over ``[local_x, local_z]``
    and must contain ``size * size`` elements.
    """

    tile_x: int
    tile_z: int
    size: int
    data: np.ndarray

    def to_dict(self) -> dict[str, Any]:
        return {
            "tileX": self.tile_x,
            "tileZ": self.tile_z,
            "size": self.size,
            "data": [int(v) for v in self.data],
        }

    @classmethod
    def from_dict(cls, record: dict[str, Any]) -> "TileRecord":
        data = np.asarray(record["data"], dtype=np.int64).ravel()
        if data.size and (data.min() < INT16_MIN or data.max() > INT16_MAX):
            raise ValueError("tile data outside the int16 range")
        return cls(
            tile_x=int(record["tileX"]),
            tile_z=int(record["tileZ"]),
            size=int(record["size"]),
            data=data.astype(np.int16),
        )

    @classmethod
    def from_tile(cls, tile_x: int, tile_z: int, tile: np.ndarray) -> "TileRecord":
        return cls(tile_x, tile_z, int(tile.shape[0]), tile.ravel(order="C").copy())

    def to_tile(self) -> np.ndarray:
        expected = self.size * self.size
        if self.size <= 0 or self.data.size != expected:
            raise ValueError(
                f"Tile ({self.tile_x}, {self.tile_z}) has {self.data.size} cells, "
                f"expected {expected}"
            )
        return self.data.astype(np.int16).reshape((self.size, self.size)).copy()


# =============================================================================
# Raster Layer
# =============================================================================


class RasterLayer:
    """
    Sparse tiled store of int16 values.

    Parameters
    ----------
    name : str
        Layer name used in log messages and files.
    transform : GeoTransform
        Shared coordinate authority. Its ``tile_size`` is the layer's
        current tile size.
    default_value : int
        Value returned for unallocated cells and used to pre-fill new tiles.
    """

    def __init__(self, name: str, transform: GeoTransform, default_value: int = 0):
        self.name = name
        self.transform = transform
        self.default_value = to_int16(default_value)
        self._tiles: dict[tuple[int, int], np.ndarray] | None = {}
        self._snapshot: list[TileRecord] = []

    def __repr__(self) -> str:
        return (
            f"RasterLayer(name={self.name!r}, default={self.default_value}, "
            f"tiles={len(self.tiles)})"
        )

    @property
    def tile_size(self) -> int:
        return self.transform.tile_size

    @property
    def tiles(self) -> dict[tuple[int, int], np.ndarray]:
        """In-memory sparse map, rehydrated from the snapshot on demand."""
        if self._tiles is None:
            self._tiles = self._rehydrate(self._snapshot)
        return self._tiles

    def tile_keys(self) -> list[tuple[int, int]]:
        return sorted(self.tiles)

    def new_tile(self, size: int | None = None) -> np.ndarray:
        size = self.tile_size if size is None else size
        return np.full((size, size), self.default_value, dtype=np.int16)

    # -------------------------------------------------------------------------
    # Cell access
    # -------------------------------------------------------------------------

    def get(self, x: int, z: int) -> int:
        """Stored value, or the default for unallocated or out-of-tile cells."""
        tile = self.tiles.get(self.transform.tile_coord_of(x, z))
        if tile is None:
            return self.default_value
        lx, lz = self.transform.local_coord_of(x, z)
        if lx >= tile.shape[0] or lz >= tile.shape[1]:
            return self.default_value
        return int(tile[lx, lz])

    def set(self, x: int, z: int, value: Any) -> None:
        """Write one cell. Does not touch the persisted snapshot."""
        tile = self._ensure_tile(self.transform.tile_coord_of(x, z))
        lx, lz = self.transform.local_coord_of(x, z)
        tile[lx, lz] = to_int16(value)

    def _ensure_tile(self, key: tuple[int, int]) -> np.ndarray:
        """Return a writable tile at the current size, allocating if needed."""
        size = self.tile_size
        tile = self.tiles.get(key)
        if tile is None:
            tile = self.new_tile(size)
            self.tiles[key] = tile
        elif tile.shape != (size, size):
            # Tile predates a resize: keep the overlapping cells
            resized = self.new_tile(size)
            ox = min(size, tile.shape[0])
            oz = min(size, tile.shape[1])
            resized[:ox, :oz] = tile[:ox, :oz]
            logger.debug(
                f"{self.name}: reallocated tile {key} from {tile.shape} to {resized.shape}"
            )
            self.tiles[key] = resized
            tile = resized
        return tile

    # -------------------------------------------------------------------------
    # Tile access
    # -------------------------------------------------------------------------

    def get_tile(self, tile_x: int, tile_z: int) -> np.ndarray:
        """
        Stored tile buffer indexed ``[local_x, local_z]``.

        Unallocated tiles return a fresh default-filled buffer that is not
        stored in the layer.
        """
        tile = self.tiles.get((tile_x, tile_z))
        if tile is None:
            return self.new_tile()
        return tile

    def has_tile(self, tile_x: int, tile_z: int) -> bool:
        return (tile_x, tile_z) in self.tiles

    def set_tile(self, tile_x: int, tile_z: int, data: Any) -> None:
        """Replace a whole tile. The buffer must be square."""
        tile = np.array(data, dtype=np.int16, copy=True)
        if tile.ndim != 2 or tile.shape[0] != tile.shape[1]:
            raise ValueError(f"Tile buffer must be square 2D, got shape {tile.shape}")
        self.tiles[(tile_x, tile_z)] = tile

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    def fill_region(self, width: int, height: int, value: Any) -> None:
        """Write ``value`` to every cell of ``[0, width) x [0, height)``."""
        if width <= 0 or height <= 0:
            return
        value = to_int16(value)
        size = self.tile_size
        for tile_x in range(-(-width // size)):
            for tile_z in range(-(-height // size)):
                tile = self._ensure_tile((tile_x, tile_z))
                ox, oz = tile_x * size, tile_z * size
                tile[: min(size, width - ox), : min(size, height - oz)] = value

    def to_array(self, width: int | None = None, height: int | None = None) -> np.ndarray:
        """Dense ``(height, width)`` array indexed ``[z, x]``."""
        width = self.transform.pixel_width if width is None else width
        height = self.transform.pixel_height if height is None else height
        out = np.full((max(height, 0), max(width, 0)), self.default_value, dtype=np.int16)
        size = self.tile_size

        for (tile_x, tile_z), tile in self.tiles.items():
            ox, oz = tile_x * size, tile_z * size
            visible = tile[:size, :size]
            x0, z0 = max(ox, 0), max(oz, 0)
            x1 = min(ox + visible.shape[0], width)
            z1 = min(oz + visible.shape[1], height)
            if x0 >= x1 or z0 >= z1:
                continue
            block = visible[x0 - ox : x1 - ox, z0 - oz : z1 - oz]
            out[z0:z1, x0:x1] = block.T
        return out

    def from_array(self, array: np.ndarray, flush: bool = True) -> None:
        """Write a dense ``[z, x]`` array starting at pixel (0, 0)."""
        data = np.clip(np.rint(np.asarray(array, dtype=np.float64)), INT16_MIN, INT16_MAX)
        data = data.astype(np.int16)
        height, width = data.shape
        size = self.tile_size
        for tile_x in range(-(-width // size)):
            for tile_z in range(-(-height // size)):
                tile = self._ensure_tile((tile_x, tile_z))
                ox, oz = tile_x * size, tile_z * size
                block = data[oz : oz + size, ox : ox + size]
                tile[: block.shape[1], : block.shape[0]] = block.T
        if flush:
            self.mark_dirty()

    def clear(self) -> None:
        """Drop all tiles in memory and in the snapshot."""
        self._tiles = {}
        self._snapshot = []

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> list[TileRecord]:
        """The persisted form as of the last ``mark_dirty()``."""
        return self._snapshot

    def mark_dirty(self) -> None:
        """Regenerate the persisted snapshot from the in-memory tiles."""
        self._snapshot = [
            TileRecord.from_tile(tile_x, tile_z, tile)
            for (tile_x, tile_z), tile in sorted(self.tiles.items())
        ]
        logger.debug(f"{self.name}: flushed {len(self._snapshot)} tiles")

    def clear_cache(self) -> None:
        """Forget the in-memory tiles; the next access reloads the snapshot."""
        self._tiles = None

    def load_snapshot(self, records: Iterable[TileRecord | dict[str, Any]]) -> None:
        """Replace the persisted data and invalidate the in-memory cache."""
        snapshot = []
        for r in records:
            if isinstance(r, TileRecord):
                snapshot.append(r)
                continue
            try:
                snapshot.append(TileRecord.from_dict(r))
            except (KeyError, TypeError, ValueError, OverflowError) as e:
                logger.warning(f"{self.name}: skipping persisted tile: {e!r}")
        self._snapshot = snapshot
        self.clear_cache()

    def iter_records(self) -> Iterator[dict[str, Any]]:
        for record in self._snapshot:
            yield record.to_dict()

    def _rehydrate(self, records: list[TileRecord]) -> dict[tuple[int, int], np.ndarray]:
        tiles: dict[tuple[int, int], np.ndarray] = {}
        for record in records:
            try:
                tiles[(record.tile_x, record.tile_z)] = record.to_tile()
            except ValueError as e:
                logger.warning(f"{self.name}: skipping persisted tile: {e}")
        logger.debug(f"{self.name}: rehydrated {len(tiles)} tiles")
        return tiles


# =============================================================================
# Layer Factories
# =============================================================================


def elevation_layer(transform: GeoTransform) -> RasterLayer:
    """Elevation layer in meters; unset cells read 0."""
    return RasterLayer("elevation", transform, DEFAULT_ELEVATION)


def fuel_code_layer(transform: GeoTransform) -> RasterLayer:
    """Fuel code layer; unset cells read 98 (no fuel)."""
    return RasterLayer("fuel_code", transform, NO_FUEL_CODE)
