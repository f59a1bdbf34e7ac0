"""
Fuel behavior catalog for firegrid.

Each fuel code carries twelve calibrated cubic Bezier curves: rate of
spread, flame length and slope effect, each for four moisture states.
A curve maps an environmental driver (wind speed or slope angle) onto a
behavior output.

Curve anchors
-------------
A curve is defined by two free control points ``(x1, y1)`` and
``(x2, y2)`` plus ``min`` and ``max``::

    P0 = (0, min)   P1 = (x1, y1)   P2 = (x2, y2)   P3 = (max, max)

``max`` is both the x position of the last anchor and the output
ceiling. Mesh coloring normalizes outputs by ``curve.max``, so the two
roles stay coupled.

Input domains
-------------
- rate of spread, flame length: wind speed in ``[0, 50]``
- slope factor: slope angle in degrees, ``[0, 90]``
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Iterable, Iterator

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

WIND_DOMAIN = (0.0, 50.0)
SLOPE_DOMAIN = (0.0, 90.0)

NEUTRAL_COLOR = (0.6, 0.7, 0.6, 1.0)

# Base colors by two-letter fuel family prefix (RGBA)
FAMILY_COLORS: dict[str, tuple[float, float, float, float]] = {
    "GR": (1.0, 0.9, 0.1, 1.0),    # grass
    "GS": (0.85, 0.95, 0.2, 1.0),  # grass-shrub
    "SH": (0.5, 0.85, 0.3, 1.0),   # shrub
    "TU": (0.2, 0.6, 0.2, 1.0),    # timber understory
    "TL": (0.15, 0.5, 0.15, 1.0),  # timber litter
    "SB": (0.55, 0.4, 0.2, 1.0),   # slash/blowdown
    "NB": (0.6, 0.6, 0.6, 1.0),    # nonburnable
    "AG": (1.0, 0.6, 0.8, 1.0),    # agriculture
    "UR": (0.5, 0.0, 0.6, 1.0),    # urban
    "RO": (0.1, 0.1, 0.1, 1.0),    # roads
    "WA": (0.3, 0.5, 0.9, 1.0),    # water
}


# =============================================================================
# Enumerations
# =============================================================================


class MoistureState(IntEnum):
    """Discrete fuel dryness levels, driest first."""

    VERY_LOW = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @classmethod
    def parse(cls, value: Any) -> "MoistureState":
        """
        Coerce names ("very_low", "VeryLow"), ints or members.

        Anything unrecognised resolves to MEDIUM.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().replace("-", "_").replace(" ", "_")
            if key.upper() in cls.__members__:
                return cls[key.upper()]
            # CamelCase form used by the catalog JSON
            compact = key.replace("_", "").lower()
            for member in cls:
                if member.name.replace("_", "").lower() == compact:
                    return member
            return cls.MEDIUM
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.MEDIUM

    @property
    def json_suffix(self) -> str:
        return "".join(part.capitalize() for part in self.name.split("_"))


class BehaviorOutput(Enum):
    """Which behavior a curve predicts."""

    ROS = "ros"
    FLAME_LENGTH = "flame"
    SLOPE = "slope"


# =============================================================================
# Bezier Curve
# =============================================================================


def inverse_lerp(a: float, b: float, value: float) -> float:
    """Position of ``value`` in ``[a, b]`` clamped to ``[0, 1]``."""
    if a == b:
        return 0.0
    return min(1.0, max(0.0, (value - a) / (b - a)))


def lerp(a: float, b: float, t: float) -> float:
    t = min(1.0, max(0.0, t))
    return a + (b - a) * t


@dataclass
class BezierCurve:
    """Cubic Bezier lookup curve with fixed end anchors."""

    x1: float = 0.0
    y1: float = 0.0
    x2: float = 0.0
    y2: float = 0.0
    min: float = 0.0
    max: float = 100.0

    def evaluate(self, t: float) -> float:
        """
        Output of the curve at parameter ``t``.

        ``t`` is clamped to ``[0, 1]`` and the result to ``[min, max]``.
        Only the y component of the blend is used.
        """
        t = min(1.0, max(0.0, float(t)))
        u = 1.0 - t
        y = (
            u * u * u * self.min
            + 3.0 * u * u * t * self.y1
            + 3.0 * u * t * t * self.y2
            + t * t * t * self.max
        )
        if y < self.min:
            return float(self.min)
        if y > self.max:
            return float(self.max)
        return float(y)

    def evaluate_with_input(self, value: float, input_min: float, input_max: float) -> float:
        """Evaluate after normalizing ``value`` against an input domain."""
        return self.evaluate(inverse_lerp(input_min, input_max, value))

    def to_dict(self) -> dict[str, float]:
        return {
            "x1": self.x1, "y1": self.y1,
            "x2": self.x2, "y2": self.y2,
            "min": self.min, "max": self.max,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BezierCurve":
        return cls(**{k: float(data.get(k, 0.0)) for k in ("x1", "y1", "x2", "y2", "min", "max")})


# =============================================================================
# Fuel Profile
# =============================================================================


def family_prefix(title: str | None, code_gis: str | None = None) -> str:
    """Two-letter upper-case family of a fuel, from its title or GIS code."""
    for source in (title, code_gis):
        if source and len(source.strip()) >= 2:
            return source.strip()[:2].upper()
    return "??"


def base_color_for_family(title: str | None, code_gis: str | None = None) -> tuple[float, float, float, float]:
    return FAMILY_COLORS.get(family_prefix(title, code_gis), NEUTRAL_COLOR)


def parse_fuel_code_id(code_gis: Any) -> int:
    """Integer id from a GIS code string; unparsable or out of int16 -> 0."""
    try:
        value = int(str(code_gis).strip())
    except (TypeError, ValueError):
        return 0
    if -32768 <= value <= 32767:
        return value
    return 0


@dataclass
class FuelProfile:
    """
    Behavior curves and metadata for one fuel code.

    Missing curves are allowed: rate of spread and flame length then
    evaluate to 0 and the slope factor to 1.
    """

    fuel_code_id: int
    title: str = ""
    code_gis: str = ""
    hour1: float = 0.0
    hour10: float = 0.0
    hour100: float = 0.0
    curves: dict[tuple[BehaviorOutput, MoistureState], BezierCurve] = field(default_factory=dict)
    base_color: tuple[float, float, float, float] | None = None

    def __post_init__(self):
        if self.base_color is None:
            self.base_color = base_color_for_family(self.title, self.code_gis)

    @property
    def family(self) -> str:
        return family_prefix(self.title, self.code_gis)

    def curve_for(self, output: BehaviorOutput, moisture: Any = MoistureState.MEDIUM) -> BezierCurve | None:
        return self.curves.get((output, MoistureState.parse(moisture)))

    def set_curve(self, output: BehaviorOutput, moisture: MoistureState, curve: BezierCurve | None) -> None:
        key = (output, MoistureState.parse(moisture))
        if curve is None:
            self.curves.pop(key, None)
        else:
            self.curves[key] = curve

    def rate_of_spread(self, wind_speed: float, moisture: Any = MoistureState.MEDIUM) -> float:
        curve = self.curve_for(BehaviorOutput.ROS, moisture)
        if curve is None:
            return 0.0
        return curve.evaluate_with_input(wind_speed, *WIND_DOMAIN)

    def flame_length(self, wind_speed: float, moisture: Any = MoistureState.MEDIUM) -> float:
        curve = self.curve_for(BehaviorOutput.FLAME_LENGTH, moisture)
        if curve is None:
            return 0.0
        return curve.evaluate_with_input(wind_speed, *WIND_DOMAIN)

    def slope_factor(self, slope_angle: float, moisture: Any = MoistureState.MEDIUM) -> float:
        curve = self.curve_for(BehaviorOutput.SLOPE, moisture)
        if curve is None:
            return 1.0
        return curve.evaluate_with_input(slope_angle, *SLOPE_DOMAIN)

    def to_item(self) -> dict[str, Any]:
        """Serialize in the catalog import format."""
        item: dict[str, Any] = {
            "title": self.title,
            "codeGIS": self.code_gis,
            "hour1": self.hour1,
            "hour10": self.hour10,
            "hour100": self.hour100,
        }
        for output in BehaviorOutput:
            for moisture in MoistureState:
                curve = self.curve_for(output, moisture)
                if curve is not None:
                    item[f"{output.value}{moisture.json_suffix}"] = curve.to_dict()
        return item


# =============================================================================
# Catalog Import Models
# =============================================================================


class CurveItem(BaseModel):
    """One curve object in the catalog JSON."""

    x1: float = 0.0
    y1: float = 0.0
    x2: float = 0.0
    y2: float = 0.0
    min: float = 0.0
    max: float = 0.0


class FuelCodeItem(BaseModel):
    """One fuel code entry in the catalog JSON."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    codeGIS: str = ""
    hour1: float = 0.0
    hour10: float = 0.0
    hour100: float = 0.0

    rosVeryLow: CurveItem | None = None
    rosLow: CurveItem | None = None
    rosMedium: CurveItem | None = None
    rosHigh: CurveItem | None = None
    flameVeryLow: CurveItem | None = None
    flameLow: CurveItem | None = None
    flameMedium: CurveItem | None = None
    flameHigh: CurveItem | None = None
    slopeVeryLow: CurveItem | None = None
    slopeLow: CurveItem | None = None
    slopeMedium: CurveItem | None = None
    slopeHigh: CurveItem | None = None

    @field_validator("codeGIS", "title", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, (int, float)):
            return str(v)
        return v

    def to_profile(self) -> FuelProfile:
        profile = FuelProfile(
            fuel_code_id=parse_fuel_code_id(self.codeGIS),
            title=self.title,
            code_gis=self.codeGIS,
            hour1=self.hour1,
            hour10=self.hour10,
            hour100=self.hour100,
        )
        for output in BehaviorOutput:
            for moisture in MoistureState:
                item = getattr(self, f"{output.value}{moisture.json_suffix}")
                if item is not None:
                    profile.set_curve(output, moisture, BezierCurve(**item.model_dump()))
        return profile


# =============================================================================
# Catalog
# =============================================================================


class FuelCatalog:
    """
    Ordered collection of fuel profiles with an id index.

    Unknown ids return None; callers choose their own default.
    """

    def __init__(self, profiles: Iterable[FuelProfile] = ()):
        self._profiles: list[FuelProfile] = []
        self._index: dict[int, FuelProfile] = {}
        self.last_load_skipped = 0
        for profile in profiles:
            self.add(profile)

    def __len__(self) -> int:
        return len(self._profiles)

    def __iter__(self) -> Iterator[FuelProfile]:
        return iter(self._profiles)

    def __contains__(self, fuel_code_id: object) -> bool:
        return fuel_code_id in self._index

    def __repr__(self) -> str:
        return f"FuelCatalog(n_profiles={len(self)})"

    @property
    def profiles(self) -> list[FuelProfile]:
        return list(self._profiles)

    @property
    def ids(self) -> list[int]:
        return [p.fuel_code_id for p in self._profiles]

    def add(self, profile: FuelProfile) -> None:
        """Append a profile; a later profile with the same id wins lookups."""
        self._profiles.append(profile)
        self._index[profile.fuel_code_id] = profile

    def lookup(self, fuel_code_id: int) -> FuelProfile | None:
        return self._index.get(int(fuel_code_id))

    def rebuild_index(self) -> None:
        self._index = {p.fuel_code_id: p for p in self._profiles}

    @classmethod
    def from_items(cls, items: Any) -> "FuelCatalog":
        """
        Build a catalog from decoded catalog JSON.

        Accepts a bare list or a ``{"items": [...]}`` wrapper. Malformed
        items are skipped; the count is kept in ``last_load_skipped``.
        """
        if isinstance(items, dict):
            items = items.get("items")
        if not isinstance(items, list):
            raise ValueError("Fuel catalog must be a list of items or {'items': [...]}")

        catalog = cls()
        skipped = 0
        for i, raw in enumerate(items):
            try:
                item = FuelCodeItem.model_validate(raw)
            except ValidationError as e:
                skipped += 1
                logger.warning(f"Skipping malformed fuel code item {i}: {e.error_count()} errors")
                continue
            catalog.add(item.to_profile())

        catalog.last_load_skipped = skipped
        logger.info(f"Loaded {len(catalog)} fuel codes ({skipped} skipped)")
        return catalog

    @classmethod
    def from_json_text(cls, text: str) -> "FuelCatalog":
        if not text or not text.strip():
            raise ValueError("Fuel catalog JSON text is empty")
        return cls.from_items(json.loads(text))

    def to_items(self) -> list[dict[str, Any]]:
        return [p.to_item() for p in self._profiles]


# =============================================================================
# Behavior Queries
# =============================================================================


class FuelBehavior:
    """
    Behavior lookups by fuel code id.

    Unknown ids yield 0 for rate of spread and flame length and 1 for the
    slope factor. Queries made before a catalog is attached log a warning
    and return the same defaults.
    """

    def __init__(self, catalog: FuelCatalog | None = None):
        self.catalog = catalog

    def _profile(self, fuel_code_id: int, query: str) -> FuelProfile | None:
        if self.catalog is None:
            logger.warning(f"{query}: no fuel catalog attached")
            return None
        return self.catalog.lookup(fuel_code_id)

    def rate_of_spread(self, fuel_code_id: int, wind_speed: float, moisture: Any = MoistureState.MEDIUM) -> float:
        profile = self._profile(fuel_code_id, "rate_of_spread")
        return profile.rate_of_spread(wind_speed, moisture) if profile else 0.0

    def flame_length(self, fuel_code_id: int, wind_speed: float, moisture: Any = MoistureState.MEDIUM) -> float:
        profile = self._profile(fuel_code_id, "flame_length")
        return profile.flame_length(wind_speed, moisture) if profile else 0.0

    def slope_factor(self, fuel_code_id: int, slope_angle: float, moisture: Any = MoistureState.MEDIUM) -> float:
        profile = self._profile(fuel_code_id, "slope_factor")
        return profile.slope_factor(slope_angle, moisture) if profile else 1.0
