"""
Configuration loading and validation for firegrid.

This module provides Pydantic models for validating the firegrid.yaml
configuration file and utility functions for loading configurations.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from firegrid.fuels import MoistureState
from firegrid.geo import DEFAULT_METER_STEP, DEFAULT_TILE_SIZE
from firegrid.mesh import HEIGHT_SCALE
from firegrid.raster import DEFAULT_ELEVATION, NO_FUEL_CODE

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================


class ProjectConfig(BaseModel):
    """Project metadata configuration."""

    name: str = Field(..., description="Project name")
    description: str = Field("", description="Project description")
    output_dir: Path = Field(Path("./output"), description="Output directory")


class GridConfig(BaseModel):
    """Grid extent and geographic placement."""

    pixel_width: int = Field(0, ge=0, description="Cells along longitude")
    pixel_height: int = Field(0, ge=0, description="Cells along latitude")
    tile_size: int = Field(DEFAULT_TILE_SIZE, gt=0, description="Cells per tile side")
    origin_longitude_meter: int = Field(0)
    origin_latitude_meter: int = Field(0)
    longitude_step_meter: int = Field(DEFAULT_METER_STEP, description="Meters per cell along x")
    latitude_step_meter: int = Field(DEFAULT_METER_STEP, description="Meters per cell along z")

    @field_validator("longitude_step_meter", "latitude_step_meter")
    @classmethod
    def nonzero_step(cls, v: int) -> int:
        if v == 0:
            raise ValueError("meter step must be non-zero")
        return v


class InputsConfig(BaseModel):
    """Input data sources."""

    elevation_xyz: Path | None = Field(None, description="Elevation XYZ point file")
    fuel_xyz: Path | None = Field(None, description="Fuel code XYZ point file")
    elevation_raster: Path | None = Field(None, description="Elevation GeoTIFF")
    fuel_raster: Path | None = Field(None, description="Fuel code GeoTIFF")
    fuel_catalog: Path | None = Field(None, description="Fuel catalog JSON")
    snapshot: Path | None = Field(None, description="Grid snapshot JSON (loaded if it exists)")
    auto_detect_bounds: bool = Field(True, description="Size the grid from the XYZ extent")
    negative_latitude_step: bool = Field(False, description="Row 0 is the northern edge")

    @model_validator(mode="after")
    def check_pairs(self) -> "InputsConfig":
        """XYZ and raster inputs come as elevation/fuel pairs."""
        if (self.elevation_xyz is None) != (self.fuel_xyz is None):
            raise ValueError("elevation_xyz and fuel_xyz must be given together")
        if (self.elevation_raster is None) != (self.fuel_raster is None):
            raise ValueError("elevation_raster and fuel_raster must be given together")
        return self


class FillConfig(BaseModel):
    """Uniform fill of the configured extent when no inputs are given."""

    enabled: bool = Field(False)
    elevation: int = Field(DEFAULT_ELEVATION, ge=-32768, le=32767)
    fuel_code: int = Field(NO_FUEL_CODE, ge=-32768, le=32767)


class EnvironmentConfig(BaseModel):
    """Wind and moisture used for behavior queries and mesh coloring."""

    wind_speed: float = Field(10.0, ge=0, description="Wind speed")
    moisture: MoistureState = Field(MoistureState.MEDIUM)

    @field_validator("moisture", mode="before")
    @classmethod
    def parse_moisture(cls, v: Any) -> MoistureState:
        return MoistureState.parse(v)


class MeshConfig(BaseModel):
    """Mesh generation configuration."""

    height_scale: float = Field(HEIGHT_SCALE, gt=0, description="World units per elevation meter")


class OutputConfig(BaseModel):
    """Output configuration."""

    save_snapshot: bool = Field(True)
    export_obj: bool = Field(False)
    export_geotiff: bool = Field(False)
    generate_plots: bool = Field(False)
    crs: str | None = Field(None, description="CRS written to exported GeoTIFFs")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("INFO")
    log_file: Path | None = Field(None)


class FiregridConfig(BaseModel):
    """Root configuration model for firegrid."""

    project: ProjectConfig
    grid: GridConfig = Field(default_factory=GridConfig)
    inputs: InputsConfig = Field(default_factory=InputsConfig)
    fill: FillConfig = Field(default_factory=FillConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    mesh: MeshConfig = Field(default_factory=MeshConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @field_validator("project", mode="before")
    @classmethod
    def ensure_output_dir(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Ensure output_dir is a Path."""
        if isinstance(v, dict) and "output_dir" in v:
            v["output_dir"] = Path(v["output_dir"])
        return v


# =============================================================================
# Loading Functions
# =============================================================================


def load_config(config_path: str | Path) -> FiregridConfig:
    """
    Load and validate configuration from a YAML file.

    Parameters
    ----------
    config_path : str or Path
        Path to the firegrid.yaml configuration file.

    Returns
    -------
    FiregridConfig
        Validated configuration object.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If the configuration is invalid.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, "r") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raise ValueError(f"Empty configuration file: {config_path}")

    # Relative paths are relative to the config file
    raw_config = _resolve_paths(raw_config, config_path.parent)

    config = FiregridConfig.model_validate(raw_config)

    logger.info(f"Configuration loaded: {config.project.name}")

    return config


def _resolve_paths(config: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    """
    Recursively resolve ``./`` and ``../`` string values against ``base_dir``.
    """

    def resolve(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: resolve(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [resolve(item) for item in obj]
        elif isinstance(obj, str):
            if obj.startswith("./") or obj.startswith("../"):
                return str(base_dir / obj)
            return obj
        return obj

    return resolve(config)


def validate_paths(config: FiregridConfig) -> list[str]:
    """
    Validate that configured input files exist.

    Returns
    -------
    list[str]
        Warnings for optional files (empty if all present).

    Raises
    ------
    FileNotFoundError
        If a required input is missing.
    """
    errors = []
    warnings = []
    inputs = config.inputs

    required = [
        ("inputs.elevation_xyz", inputs.elevation_xyz),
        ("inputs.fuel_xyz", inputs.fuel_xyz),
        ("inputs.elevation_raster", inputs.elevation_raster),
        ("inputs.fuel_raster", inputs.fuel_raster),
        ("inputs.fuel_catalog", inputs.fuel_catalog),
    ]
    for name, path in required:
        if path is not None and not Path(path).exists():
            errors.append(f"Required file not found: {name} = {path}")

    if inputs.snapshot is not None and not Path(inputs.snapshot).exists():
        warnings.append(f"Snapshot not found, grid will be built from inputs: {inputs.snapshot}")

    has_source = (
        inputs.elevation_xyz is not None
        or inputs.elevation_raster is not None
        or (inputs.snapshot is not None and Path(inputs.snapshot).exists())
    )
    if not has_source and not config.fill.enabled:
        warnings.append("No inputs and fill disabled: every cell will read its default value")
    if inputs.fuel_catalog is None:
        warnings.append("No fuel catalog: behavior queries return defaults")

    if errors:
        raise FileNotFoundError("\n".join(errors))

    return warnings


def setup_logging(config: FiregridConfig) -> None:
    """
    Configure logging based on configuration.

    Parameters
    ----------
    config : FiregridConfig
        Configuration object.
    """
    level = getattr(logging, config.output.log_level)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if config.output.log_file:
        log_path = Path(config.output.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )
