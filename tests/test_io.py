"""
Tests for file import and export.
"""

import json

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

from firegrid.environment import EnvironmentContext
from firegrid.fuels import FuelCatalog
from firegrid.grid import MapGrid
from firegrid.io import (
    DimensionMismatchError,
    export_obj,
    import_rasters,
    import_xyz,
    import_xyz_pair,
    load_fuel_catalog,
    load_grid,
    parse_xyz_line,
    save_fuel_catalog,
    save_grid,
    scan_xyz_bounds,
    write_layer_geotiff,
)
from firegrid.mesh import TerrainMesher

XYZ_SAMPLE = "0 0 100\n30 0 150\nBADLINE\n0 30 200\n"


def write_raster(path, data, origin=(1000.0, 9000.0), step=30.0, nodata=None):
    profile = {
        "driver": "GTiff",
        "dtype": str(data.dtype),
        "width": data.shape[1],
        "height": data.shape[0],
        "count": 1,
        "crs": "EPSG:3005",
        "transform": from_origin(origin[0], origin[1], step, step),
        "nodata": nodata,
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data, 1)


class TestParseXYZ:
    """Tests for single-line parsing."""

    @pytest.mark.parametrize(
        "line, expected",
        [
            ("0 0 100", (0, 0, 100.0)),
            ("30\t60\t12.5", (30, 60, 12.5)),
            ("30,60,-4", (30, 60, -4.0)),
            ("  -90 , 15  7 extra", (-90, 15, 7.0)),
        ],
    )
    def test_valid(self, line, expected):
        assert parse_xyz_line(line) == expected

    @pytest.mark.parametrize("line", ["BADLINE", "1 2", "1.5 2 3", "a b c", "1 2 nan", "1 2 x"])
    def test_invalid(self, line):
        assert parse_xyz_line(line) is None

    def test_scan_bounds(self):
        bounds = scan_xyz_bounds(XYZ_SAMPLE)
        assert (bounds.min_x, bounds.max_x, bounds.min_z, bounds.max_z) == (0, 30, 0, 30)
        assert bounds.count == 3

    def test_scan_bounds_empty(self):
        assert scan_xyz_bounds("junk\n") is None


class TestImportXYZ:
    """Tests for XYZ import into layers."""

    def test_import_scenario(self):
        """Three points land, one line is skipped."""
        grid = MapGrid.create(2, 2, 122)
        report = import_xyz(XYZ_SAMPLE, grid.elevation, grid.transform)

        assert report.points == 3
        assert report.skipped == 1
        assert grid.get_elevation(0, 0) == 100
        assert grid.get_elevation(1, 0) == 150
        assert grid.get_elevation(0, 1) == 200

    def test_import_flushes(self):
        grid = MapGrid.create(2, 2, 122)
        import_xyz(XYZ_SAMPLE, grid.elevation)
        assert len(grid.elevation.snapshot) == 1
        grid.elevation.clear_cache()
        assert grid.get_elevation(1, 0) == 150

    def test_out_of_bounds_dropped(self):
        grid = MapGrid.create(2, 2, 122)
        report = import_xyz("0 0 1\n90 0 2\n0 -30 3\n", grid.elevation)
        assert report.points == 1
        assert report.out_of_bounds == 2

    def test_rounding_and_clamp(self):
        grid = MapGrid.create(4, 1, 122)
        import_xyz("0 0 2.5\n30 0 3.5\n60 0 -12\n90 0 99999\n", grid.elevation, clamp_negative=True)
        assert grid.get_elevation(0, 0) == 2
        assert grid.get_elevation(1, 0) == 4
        assert grid.get_elevation(2, 0) == 0
        assert grid.get_elevation(3, 0) == 32767

    def test_pair_auto_bounds(self):
        grid = MapGrid.create()
        elev, fuel = import_xyz_pair(XYZ_SAMPLE, "0 0 102\n30 30 91\n", grid, meter_step=30)

        assert (grid.pixel_width, grid.pixel_height) == (2, 2)
        assert elev.points == 3 and elev.skipped == 1
        assert fuel.points == 2
        assert grid.get_fuel_code(1, 1) == 91
        assert grid.get_fuel_code(1, 0) == 98

    def test_pair_negative_latitude_step(self):
        """Row 0 is the northern edge."""
        grid = MapGrid.create()
        text = "1000 5030 10\n1030 5030 20\n1000 5000 30\n"
        import_xyz_pair(text, "", grid, meter_step=30, negative_latitude_step=True)

        t = grid.transform
        assert (t.origin_longitude_meter, t.origin_latitude_meter) == (1000, 5030)
        assert t.latitude_step_meter == -30
        assert grid.get_elevation(0, 0) == 10
        assert grid.get_elevation(1, 0) == 20
        assert grid.get_elevation(0, 1) == 30

    def test_pair_explicit_origin(self):
        grid = MapGrid.create()
        import_xyz_pair(
            "60 30 7\n", "60 30 102\n", grid,
            meter_step=30, auto_detect_bounds=False, tile_size=16,
        )
        assert (grid.pixel_width, grid.pixel_height) == (3, 2)
        assert grid.tile_size == 16
        assert grid.get_elevation(2, 1) == 7

    def test_pair_without_points(self, caplog):
        grid = MapGrid.create()
        elev, fuel = import_xyz_pair("junk", "", grid)
        assert elev.points == 0 and fuel.points == 0
        assert "no valid points" in caplog.text


class TestRasters:
    """Tests for GeoTIFF import and export."""

    def test_import_pair(self, tmp_path):
        dem = np.arange(12, dtype=np.float32).reshape(3, 4) * 10
        fuel = np.full((3, 4), 102, dtype=np.int16)
        fuel[0, 0] = 91
        write_raster(tmp_path / "dem.tif", dem)
        write_raster(tmp_path / "fuel.tif", fuel)

        grid = MapGrid.create()
        elev_report, fuel_report = import_rasters(tmp_path / "dem.tif", tmp_path / "fuel.tif", grid)

        t = grid.transform
        assert (t.pixel_width, t.pixel_height) == (4, 3)
        assert (t.origin_longitude_meter, t.origin_latitude_meter) == (1000, 9000)
        assert (t.longitude_step_meter, t.latitude_step_meter) == (30, -30)
        assert grid.get_elevation(3, 2) == 110
        assert grid.get_fuel_code(0, 0) == 91
        assert elev_report.points == 12
        assert fuel_report.points == 12
        assert len(grid.elevation.snapshot) == 1

    def test_nodata_reads_default(self, tmp_path):
        dem = np.full((2, 2), 50, dtype=np.int16)
        fuel = np.full((2, 2), 102, dtype=np.int16)
        fuel[1, 1] = -9999
        write_raster(tmp_path / "dem.tif", dem)
        write_raster(tmp_path / "fuel.tif", fuel, nodata=-9999)

        grid = MapGrid.create()
        _, fuel_report = import_rasters(tmp_path / "dem.tif", tmp_path / "fuel.tif", grid)
        assert grid.get_fuel_code(1, 1) == 98
        assert fuel_report.skipped == 1

    def test_dimension_mismatch(self, tmp_path):
        """Mismatched rasters are rejected before anything is written."""
        write_raster(tmp_path / "dem.tif", np.ones((3, 4), dtype=np.int16))
        write_raster(tmp_path / "fuel.tif", np.ones((4, 4), dtype=np.int16))

        grid = MapGrid.create(2, 2, 122)
        grid.fill(7, 102)
        with pytest.raises(DimensionMismatchError):
            import_rasters(tmp_path / "dem.tif", tmp_path / "fuel.tif", grid)
        assert (grid.pixel_width, grid.pixel_height) == (2, 2)
        assert grid.get_elevation(0, 0) == 7

    def test_write_round_trip(self, tmp_path):
        grid = MapGrid.create(5, 3, 4, 1000, 9000, 30, -30)
        grid.set_elevation(4, 2, 321)
        write_layer_geotiff(grid.elevation, tmp_path / "out.tif", "EPSG:3005")

        with rasterio.open(tmp_path / "out.tif") as src:
            data = src.read(1)
            assert src.transform.c == 1000
            assert src.transform.f == 9000
        assert data.shape == (3, 5)
        assert data[2, 4] == 321


class TestSnapshots:
    """Tests for grid snapshot files."""

    def test_save_and_load(self, grid, tmp_path):
        grid.fill(5, 102)
        grid.set_elevation(200, 10, 999)
        grid.flush()
        save_grid(grid, tmp_path / "grid.json")

        loaded = load_grid(tmp_path / "grid.json")
        assert loaded.transform == grid.transform
        assert loaded.get_elevation(200, 10) == 999
        assert loaded.get_elevation(0, 0) == 5
        assert loaded.get_fuel_code(100, 100) == 102

    def test_only_flushed_writes_saved(self, grid, tmp_path):
        grid.set_elevation(1, 1, 11)
        grid.flush()
        grid.set_elevation(2, 2, 22)
        save_grid(grid, tmp_path / "grid.json")

        loaded = load_grid(tmp_path / "grid.json")
        assert loaded.get_elevation(1, 1) == 11
        assert loaded.get_elevation(2, 2) == 0

    def test_document_layout(self, grid, tmp_path):
        grid.set_fuel_code(0, 0, 161)
        grid.flush()
        save_grid(grid, tmp_path / "grid.json")
        document = json.loads((tmp_path / "grid.json").read_text())

        assert document["format"] == "firegrid-snapshot"
        assert document["transform"]["tile_size"] == 122
        record = document["layers"]["fuel_code"]["tiles"][0]
        assert set(record) == {"tileX", "tileZ", "size", "data"}
        assert len(record["data"]) == 122 * 122

    def test_load_rejects_other_json(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"hello": "world"}))
        with pytest.raises(ValueError):
            load_grid(path)

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_grid(tmp_path / "missing.json")


class TestCatalogFiles:
    """Tests for fuel catalog files."""

    def test_load(self, catalog_file):
        catalog = load_fuel_catalog(catalog_file)
        assert catalog.ids == [102, 161]

    def test_save_and_reload(self, catalog, tmp_path):
        save_fuel_catalog(catalog, tmp_path / "cat.json")
        assert load_fuel_catalog(tmp_path / "cat.json").ids == catalog.ids

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_fuel_catalog(tmp_path / "nope.json")


class TestExportOBJ:
    """Tests for Wavefront OBJ export."""

    def test_export(self, catalog, tmp_path):
        grid = MapGrid.create(4, 2, 2)
        mesher = TerrainMesher(grid.transform, grid.elevation, grid.fuel, catalog, EnvironmentContext())
        meshes = mesher.rebuild_all()

        n = export_obj(meshes.values(), tmp_path / "terrain.obj")
        lines = (tmp_path / "terrain.obj").read_text().splitlines()

        assert n == 2
        assert sum(1 for line in lines if line.startswith("o ")) == 2
        assert sum(1 for line in lines if line.startswith("v ")) == 2 * 9
        faces = [line for line in lines if line.startswith("f ")]
        assert len(faces) == 2 * 8
        assert max(int(tok.split("/")[0]) for f in faces for tok in f.split()[1:]) == 18

    def test_vertex_colors_written(self, tmp_path):
        grid = MapGrid.create(1, 1, 1)
        mesher = TerrainMesher(grid.transform, grid.elevation, grid.fuel, FuelCatalog())
        export_obj(mesher.rebuild_all().values(), tmp_path / "one.obj")
        vertex = next(
            line for line in (tmp_path / "one.obj").read_text().splitlines() if line.startswith("v ")
        )
        assert vertex.split()[4:] == ["0.6000", "0.7000", "0.6000"]