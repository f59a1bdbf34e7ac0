"""
Shared fixtures for the firegrid test suite.
"""

import json

import pytest

from firegrid.fuels import FuelCatalog
from firegrid.grid import MapGrid


# Rate of spread / flame length: t=0.5 evaluates to 4.25
WIND_CURVE = {"x1": 10.0, "y1": 2.0, "x2": 30.0, "y2": 6.0, "min": 0.0, "max": 10.0}
# Slope factor: 1 on flat ground, 4 at 90 degrees
SLOPE_CURVE = {"x1": 20.0, "y1": 1.5, "x2": 60.0, "y2": 2.5, "min": 1.0, "max": 4.0}


def catalog_items():
    return [
        {
            "title": "GR2 Low Load Dry Climate Grass",
            "codeGIS": "102",
            "hour1": 0.1,
            "hour10": 0.0,
            "hour100": 0.0,
            "rosMedium": WIND_CURVE,
            "flameMedium": WIND_CURVE,
            "slopeMedium": SLOPE_CURVE,
            "rosHigh": {"x1": 10.0, "y1": 1.0, "x2": 30.0, "y2": 2.0, "min": 0.0, "max": 5.0},
        },
        {
            "title": "TU1 Low Load Dry Climate Timber-Grass-Shrub",
            "codeGIS": 161,
            "rosMedium": {"x1": 10.0, "y1": 0.5, "x2": 30.0, "y2": 1.0, "min": 0.0, "max": 2.0},
            "flameMedium": {"x1": 10.0, "y1": 0.5, "x2": 30.0, "y2": 1.5, "min": 0.0, "max": 3.0},
        },
    ]


@pytest.fixture
def catalog() -> FuelCatalog:
    return FuelCatalog.from_items(catalog_items())


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "fuel_codes.json"
    path.write_text(json.dumps({"items": catalog_items()}))
    return path


@pytest.fixture
def grid() -> MapGrid:
    """244x244 grid with 122-cell tiles (2x2 tiles)."""
    return MapGrid.create(244, 244, 122)
