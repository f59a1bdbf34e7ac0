"""
Tests for the raster module.
"""

import numpy as np
import pytest

from firegrid.geo import GeoTransform
from firegrid.raster import (
    NO_FUEL_CODE,
    RasterLayer,
    TileRecord,
    elevation_layer,
    fuel_code_layer,
    is_road,
    is_special,
    is_urban,
    is_water,
    to_int16,
)


@pytest.fixture
def transform():
    return GeoTransform(tile_size=122, pixel_width=244, pixel_height=244)


class TestCellAccess:
    """Tests for set/get on a layer."""

    @pytest.mark.parametrize(
        "x, z, value",
        [(0, 0, 1), (121, 121, -5), (122, 0, 32767), (243, 200, -32768), (-1, -1, 77), (-500, 300, 12)],
    )
    def test_set_then_get(self, transform, x, z, value):
        """A written value reads back exactly."""
        layer = elevation_layer(transform)
        layer.set(x, z, value)
        assert layer.get(x, z) == value

    def test_unset_cells_read_default(self, transform):
        """Cells never written read the layer default, inside or outside touched tiles."""
        elevation = elevation_layer(transform)
        fuel = fuel_code_layer(transform)
        elevation.set(10, 10, 500)
        fuel.set(10, 10, 101)

        assert elevation.get(11, 10) == 0
        assert elevation.get(200, 200) == 0
        assert elevation.get(-50, 3) == 0
        assert fuel.get(11, 10) == NO_FUEL_CODE
        assert fuel.get(200, 200) == NO_FUEL_CODE

    def test_tiles_allocated_lazily(self, transform):
        layer = elevation_layer(transform)
        assert layer.tiles == {}
        layer.set(130, 5, 1)
        assert layer.tile_keys() == [(1, 0)]
        assert not layer.has_tile(0, 0)

    def test_values_rounded_and_clipped(self, transform):
        layer = elevation_layer(transform)
        layer.set(0, 0, 2.5)
        layer.set(1, 0, 3.5)
        layer.set(2, 0, 1e9)
        assert layer.get(0, 0) == 2
        assert layer.get(1, 0) == 4
        assert layer.get(2, 0) == 32767

    def test_tile_buffer_layout(self, transform):
        """Tile buffers are indexed [local_x, local_z]."""
        layer = elevation_layer(transform)
        layer.set(130, 7, 42)
        tile = layer.get_tile(1, 0)
        assert tile.shape == (122, 122)
        assert tile[8, 7] == 42

    def test_missing_tile_is_not_stored(self, transform):
        layer = fuel_code_layer(transform)
        tile = layer.get_tile(3, 3)
        assert np.all(tile == NO_FUEL_CODE)
        assert not layer.has_tile(3, 3)

    def test_set_tile_requires_square(self, transform):
        layer = elevation_layer(transform)
        with pytest.raises(ValueError):
            layer.set_tile(0, 0, np.zeros((4, 5)))

    def test_resize_keeps_overlap(self):
        """A tile written before a tile-size change keeps its overlapping cells."""
        transform = GeoTransform(tile_size=4, pixel_width=8, pixel_height=8)
        layer = elevation_layer(transform)
        layer.set(1, 2, 9)
        transform.resize(8, 8, tile_size=8)
        layer.set(5, 5, 3)
        assert layer.get(1, 2) == 9
        assert layer.get(5, 5) == 3


class TestBulkOperations:
    """Tests for fill and dense array conversion."""

    def test_fill_region(self, transform):
        layer = elevation_layer(transform)
        layer.fill_region(244, 244, 55)
        assert layer.get(0, 0) == 55
        assert layer.get(243, 243) == 55
        assert len(layer.tiles) == 4

    def test_to_array_orientation(self, transform):
        """Dense arrays are indexed [z, x]."""
        layer = elevation_layer(transform)
        layer.set(3, 1, 7)
        dense = layer.to_array(5, 4)
        assert dense.shape == (4, 5)
        assert dense[1, 3] == 7
        assert dense.sum() == 7

    def test_from_array_round_trip(self, transform):
        data = np.arange(244 * 244, dtype=np.int64).reshape(244, 244) % 1000
        layer = elevation_layer(transform)
        layer.from_array(data)
        np.testing.assert_array_equal(layer.to_array(), data)
        assert layer.get(200, 10) == data[10, 200]

    def test_clear(self, transform):
        layer = elevation_layer(transform)
        layer.set(0, 0, 1)
        layer.mark_dirty()
        layer.clear()
        assert layer.get(0, 0) == 0
        assert layer.snapshot == []


class TestFlushContract:
    """Tests for explicit persistence via mark_dirty."""

    def test_write_visible_before_flush(self, transform):
        """Writes are visible in memory but not in the snapshot until flushed."""
        layer = elevation_layer(transform)
        layer.set(5, 5, 120)
        assert layer.get(5, 5) == 120
        assert layer.snapshot == []

    def test_unflushed_writes_lost_on_reload(self, transform):
        layer = elevation_layer(transform)
        layer.set(5, 5, 120)
        layer.clear_cache()
        assert layer.get(5, 5) == 0

    def test_flushed_writes_survive_reload(self, transform):
        layer = elevation_layer(transform)
        layer.set(5, 5, 120)
        layer.set(130, 140, -3)
        layer.mark_dirty()
        layer.set(6, 6, 99)  # after the flush

        layer.clear_cache()

        assert layer.get(5, 5) == 120
        assert layer.get(130, 140) == -3
        assert layer.get(6, 6) == 0

    def test_load_snapshot_into_new_layer(self, transform):
        source = fuel_code_layer(transform)
        source.set(50, 60, 7299)
        source.mark_dirty()

        target = fuel_code_layer(transform)
        target.load_snapshot(list(source.iter_records()))
        assert target.get(50, 60) == 7299
        assert target.get(51, 60) == NO_FUEL_CODE

    def test_bad_record_skipped(self, transform, caplog):
        layer = elevation_layer(transform)
        layer.load_snapshot([
            {"tileX": 0, "tileZ": 0, "size": 2, "data": [1, 2, 3]},
            {"tileX": 1, "tileZ": 0, "size": 122, "data": [4] * (122 * 122)},
        ])
        assert layer.get(0, 0) == 0
        assert layer.get(122, 0) == 4
        assert "skipping persisted tile" in caplog.text

    def test_malformed_records_skipped_individually(self, transform, caplog):
        """Out-of-range, non-numeric and keyless records do not abort the load."""
        layer = elevation_layer(transform)
        layer.load_snapshot([
            {"tileX": 0, "tileZ": 0, "size": 1, "data": [40000]},
            {"tileX": 0, "tileZ": 1, "size": 1, "data": ["x"]},
            {"tileZ": 0, "size": 1, "data": [1]},
            {"tileX": 1, "tileZ": 0, "size": 122, "data": [4] * (122 * 122)},
        ])
        assert len(layer.snapshot) == 1
        assert layer.get(0, 0) == 0
        assert layer.get(122, 0) == 4
        assert caplog.text.count("skipping persisted tile") == 3


class TestTileRecord:
    """Tests for the persisted tile form."""

    def test_dict_keys(self):
        record = TileRecord.from_tile(2, 3, np.full((2, 2), 5, dtype=np.int16))
        d = record.to_dict()
        assert d == {"tileX": 2, "tileZ": 3, "size": 2, "data": [5, 5, 5, 5]}

    def test_row_major_flattening(self):
        tile = np.array([[1, 2], [3, 4]], dtype=np.int16)
        record = TileRecord.from_tile(0, 0, tile)
        assert list(record.data) == [1, 2, 3, 4]
        np.testing.assert_array_equal(record.to_tile(), tile)

    def test_size_mismatch(self):
        record = TileRecord(0, 0, 3, np.zeros(4, dtype=np.int16))
        with pytest.raises(ValueError):
            record.to_tile()


class TestFuelCategories:
    """Tests for special fuel code predicates."""

    def test_roads(self):
        assert all(is_road(c) for c in (7296, 7297, 7298, 7299))
        assert not is_road(91)

    def test_urban_subset_of_roads(self):
        assert is_urban(7296) and is_urban(7298)
        assert not is_urban(7299)

    def test_water(self):
        assert is_water(91) and is_water(7292)
        assert not is_water(98)

    def test_special(self):
        assert is_special(98)
        assert is_special(7299)
        assert not is_special(102)

    def test_to_int16(self):
        assert to_int16(-0.5) == 0
        assert to_int16(-40000) == -32768
