"""
Environmental drivers passed into behavior queries and mesh rebuilds.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from firegrid.fuels import MoistureState


@dataclass(frozen=True)
class EnvironmentContext:
    """Wind speed and fuel moisture state for one evaluation."""

    wind_speed: float = 10.0
    moisture: MoistureState = MoistureState.MEDIUM

    def __post_init__(self):
        object.__setattr__(self, "moisture", MoistureState.parse(self.moisture))

    def with_wind(self, wind_speed: float) -> "EnvironmentContext":
        return replace(self, wind_speed=wind_speed)

    def with_moisture(self, moisture: MoistureState | str | int) -> "EnvironmentContext":
        return replace(self, moisture=MoistureState.parse(moisture))
