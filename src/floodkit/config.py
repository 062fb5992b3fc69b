"""Run configuration for the solver translators.

Configuration values are passed explicitly into every translator call:
- RainUnits: Unit of rain intensities supplied by the caller
- FloodRunConfig: Raster flood solver (.par) parameters and defaults
- NetworkRunConfig: Pipe network solver (.inp) options and defaults
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RainUnits(str, Enum):
    """Unit of a rain intensity value."""

    mm_per_hour = "mm/h"
    liters_per_second_hectare = "l/(s*ha)"

    @property
    def mm_per_hour_factor(self) -> float:
        return {
            RainUnits.mm_per_hour: 1.0,
            RainUnits.liters_per_second_hectare: 0.36,
        }[self]

    def to_mm_per_hour(self, value: float) -> float:
        """Convert an intensity in this unit to mm/h."""
        return value * self.mm_per_hour_factor


class FloodRunConfig(BaseModel):
    """Parameters for a raster flood solver run.

    Boolean flags are written as bare keys when True and omitted when False.

    Attributes:
        demfile: Terrain grid file name.
        resroot: Result file prefix.
        dirroot: Result directory.
        sim_time: Simulated duration [s].
        initial_tstep: Initial time step [s].
        massint: Mass balance output interval [s].
        saveint: Grid output interval [s].
        fpfric: Default floodplain Manning coefficient.
        acceleration: Use the acceleration (inertial) solver.
        adaptoff: Disable adaptive time stepping.
        elevoff: Suppress water surface elevation output.
        depthoff: Suppress depth output.
        extra: Additional parameters appended verbatim.
        rain_units: Unit of rain intensities handed to the translator.
        building_height: Default building height [m].
        default_roughness: Manning coefficient outside roughness zones.
    """

    model_config = ConfigDict(frozen=True)

    demfile: str = "terrain.asc"
    resroot: str = "res"
    dirroot: str = "results"
    sim_time: float = 3600.0
    initial_tstep: float = 1.0
    massint: float = 60.0
    saveint: float = 60.0
    fpfric: float = 0.035
    acceleration: bool = True
    adaptoff: bool = False
    elevoff: bool = False
    depthoff: bool = False
    extra: dict[str, str | float] = Field(default_factory=dict)
    rain_units: RainUnits = RainUnits.mm_per_hour
    building_height: float = 10.0  # [m]
    default_roughness: float = 0.035

    @field_validator("sim_time", "initial_tstep", "massint", "saveint", "fpfric", "default_roughness")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            msg = f"value must be positive, got {v}"
            raise ValueError(msg)
        return v


class NetworkRunConfig(BaseModel):
    """Options for a pipe network solver run.

    Attributes:
        title: Text for the [TITLE] section.
        start: Simulation start.
        duration_hours: Simulated duration [h].
        flow_units: Flow unit keyword (CMS = m3/s).
        routing: Flow routing method.
        infiltration: Infiltration model.
        report_step: Reporting step (HH:MM:SS).
        wet_step: Runoff step during rain (HH:MM:SS).
        dry_step: Runoff step without rain (HH:MM:SS).
        routing_step: Routing step (HH:MM:SS).
        gauge_name: Rain gauge id.
        timeseries_name: Rain timeseries id.
        rain_units: Unit of rain intensities handed to the translator.
        rain_interval: Gauge interval override (minutes or ``H:MM``).
        default_roughness: Manning n for conduits without roughness.
        default_profile_height: Profile height when missing [m].
        default_profile_width: Profile width when missing [m].
        default_max_depth: Node depth when rim and depth are missing [m].
        sealed_surcharge_depth: Surcharge depth of sealed manholes [m].
        default_length: Conduit length when neither length nor positions give one [m].
        default_storage_volume: Storage volume when a storage node has none [m3].
    """

    model_config = ConfigDict(frozen=True)

    title: str = "floodkit network simulation"
    start: datetime = datetime(2024, 1, 1)
    duration_hours: float = 6.0
    flow_units: str = "CMS"
    routing: str = "DYNWAVE"
    infiltration: str = "HORTON"
    report_step: str = "00:01:00"
    wet_step: str = "00:01:00"
    dry_step: str = "00:01:00"
    routing_step: str = "00:00:05"
    gauge_name: str = "RG1"
    timeseries_name: str = "default_rain"
    rain_units: RainUnits = RainUnits.liters_per_second_hectare
    rain_interval: float | str | None = None
    default_roughness: float = 0.011
    default_profile_height: float = 1.0
    default_profile_width: float = 1.0
    default_max_depth: float = 2.0
    sealed_surcharge_depth: float = 100.0
    default_length: float = 10.0
    default_storage_volume: float = 10.0

    @field_validator("duration_hours", "default_roughness", "default_profile_height", "default_profile_width")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            msg = f"value must be positive, got {v}"
            raise ValueError(msg)
        return v

    @property
    def end(self) -> datetime:
        """Simulation end."""
        return self.start + timedelta(hours=self.duration_hours)
