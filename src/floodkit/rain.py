"""Synthetic rainfall series.

This module defines the rain containers and generators:
- RainEventPoint: One step of a piecewise-constant rainfall series
- DepthDurationTable: Intensity-by-duration lookup for one return period
- block_series: Constant-intensity storm
- design_storm_series: Alternating-block (Euler type II) design storm

Depth and intensity are linked by ``depth [mm] = intensity * minutes * 0.006``,
the conversion for intensities given in l/(s*ha).
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

# mm per (l/(s*ha) * minute)
DEPTH_FACTOR: float = 0.006

# Fraction of the storm duration at which the peak block sits
PEAK_POSITION: float = 0.3


@dataclass(frozen=True)
class RainEventPoint:
    """One step of a rainfall series.

    Attributes:
        time_minutes: Step start, minutes from the storm start.
        intensity: Rain rate held until the next step.
        height_mm: Depth fallen during the step [mm], when known.
    """

    time_minutes: float
    intensity: float
    height_mm: float | None = None

    @property
    def time_seconds(self) -> float:
        return self.time_minutes * 60.0


class DepthDurationTable(BaseModel):
    """Rain intensity by duration for a fixed return period (a KOSTRA row).

    Durations need not be contiguous or evenly spaced.

    Attributes:
        rows: Mapping of duration [min] to intensity.
    """

    model_config = ConfigDict(frozen=True)

    rows: dict[float, float]

    @field_validator("rows")
    @classmethod
    def validate_rows(cls, v: dict[float, float]) -> dict[float, float]:
        """Require at least one row with positive durations and finite, non-negative intensities."""
        if not v:
            msg = "depth-duration table must have at least one row"
            raise ValueError(msg)
        for duration, intensity in v.items():
            if not duration > 0:
                msg = f"durations must be positive, got {duration}"
                raise ValueError(msg)
            if not math.isfinite(intensity) or intensity < 0:
                msg = f"intensity for duration {duration} must be finite and non-negative, got {intensity}"
                raise ValueError(msg)
        return dict(sorted(v.items()))

    @classmethod
    def from_mapping(cls, rows: Mapping[Any, float]) -> DepthDurationTable:
        """Build a table from a mapping whose keys may be duration strings."""
        return cls(rows={float(k): float(val) for k, val in rows.items()})

    @property
    def durations(self) -> list[float]:
        return list(self.rows)

    def intensity(self, duration: float) -> float:
        """Intensity at ``duration``.

        Exact keys are returned as-is, durations between two keys are linearly
        interpolated, and durations outside the table take the nearest edge value.
        """
        if duration in self.rows:
            return self.rows[duration]
        lower: float | None = None
        upper: float | None = None
        for d in self.rows:
            if d <= duration:
                lower = d
            elif upper is None:
                upper = d
        if lower is not None and upper is not None:
            i_lo = self.rows[lower]
            i_hi = self.rows[upper]
            return i_lo + (i_hi - i_lo) * (duration - lower) / (upper - lower)
        if lower is not None:
            return self.rows[lower]
        return self.rows[upper]  # type: ignore[index]

    def depth(self, duration: float) -> float:
        """Cumulative depth [mm] after ``duration`` minutes."""
        if duration <= 0:
            return 0.0
        return self.intensity(duration) * duration * DEPTH_FACTOR


def _steps(duration: float, interval: float) -> int:
    if not interval > 0:
        msg = f"interval must be positive, got {interval}"
        raise ValueError(msg)
    if not duration > 0:
        msg = f"duration must be positive, got {duration}"
        raise ValueError(msg)
    return math.ceil(duration / interval)


def block_series(intensity: float, duration: float, interval: float) -> list[RainEventPoint]:
    """Constant-intensity storm.

    Args:
        intensity: Rain rate for every step.
        duration: Storm duration [min].
        interval: Step length [min].

    Returns:
        ``ceil(duration / interval)`` points at 0, interval, 2 * interval, ...
    """
    steps = _steps(duration, interval)
    height = intensity * interval * DEPTH_FACTOR
    return [RainEventPoint(time_minutes=i * interval, intensity=intensity, height_mm=height) for i in range(steps)]


def _place_blocks(blocks: Sequence[float], steps: int) -> list[float | None]:
    """Arrange blocks (sorted descending) around the peak index.

    The largest block goes to ``floor(steps * 0.3)``. Each following block
    goes left on odd ranks and right on even ranks; once one side is full,
    the rest fill the other side.
    """
    placed: list[float | None] = [None] * steps
    peak = math.floor(steps * PEAK_POSITION)
    placed[peak] = blocks[0]
    left = peak - 1
    right = peak + 1
    for rank in range(1, len(blocks)):
        if left >= 0 and (rank % 2 != 0 or right >= steps):
            placed[left] = blocks[rank]
            left -= 1
        elif right < steps:
            placed[right] = blocks[rank]
            right += 1
        elif left >= 0:
            placed[left] = blocks[rank]
            left -= 1
    return placed


def design_storm_series(
    table: DepthDurationTable | Mapping[Any, float],
    duration: float,
    interval: float = 5.0,
) -> list[RainEventPoint]:
    """Alternating-block (Euler type II) design storm.

    Block depths are increments of the cumulative depth curve
    ``depth(d) = intensity(d) * d * 0.006``, floored at zero. Blocks are sorted
    by depth (largest first, ties keep step order) and redistributed around a
    peak 30% into the storm.

    Args:
        table: Depth-duration table, or a raw duration-to-intensity mapping.
        duration: Storm duration [min].
        interval: Step length [min].

    Returns:
        One point per step with intensity in the table's units and the
        block depth in ``height_mm``.
    """
    if not isinstance(table, DepthDurationTable):
        table = DepthDurationTable.from_mapping(table)
    steps = _steps(duration, interval)

    heights: list[float] = []
    for i in range(1, steps + 1):
        block = table.depth(i * interval) - table.depth((i - 1) * interval)
        heights.append(max(block, 0.0))

    ordered = sorted(heights, reverse=True)
    placed = _place_blocks(ordered, steps)

    series = []
    for idx, height in enumerate(placed):
        h = height if height is not None else 0.0
        series.append(
            RainEventPoint(
                time_minutes=idx * interval,
                intensity=h / (interval * DEPTH_FACTOR),
                height_mm=h,
            )
        )
    logger.debug(
        "Design storm: %d steps of %.1f min, peak at step %d, total depth %.2f mm",
        steps,
        interval,
        math.floor(steps * PEAK_POSITION),
        sum(heights),
    )
    return series


def return_period_key(return_period: int) -> str:
    """KOSTRA column name for a return period in years, e.g. 100 -> 'RN_100A'."""
    return f"RN_{return_period:03d}A"


def kostra_row(raw: Mapping[Any, Mapping[str, float]], return_period: int) -> DepthDurationTable:
    """Extract one return period from a raw KOSTRA grid.

    Args:
        raw: Mapping of duration key to ``{"RN_XXXA": intensity, ...}``.
        return_period: Return period in years.

    Raises:
        KeyError: If no duration carries the return period.
    """
    key = return_period_key(return_period)
    rows = {}
    for duration, entry in raw.items():
        if entry and entry.get(key) is not None:
            try:
                rows[float(duration)] = float(entry[key])
            except (TypeError, ValueError):
                logger.debug("Skipping KOSTRA duration %r", duration)
    if not rows:
        msg = f"No data found for return period {return_period} years ({key})"
        raise KeyError(msg)
    return DepthDurationTable(rows=rows)


def series_to_dataframe(series: Sequence[RainEventPoint]) -> pd.DataFrame:
    """Tabulate a rainfall series.

    Returns:
        DataFrame indexed by ``time_minutes`` with ``intensity`` and
        ``height_mm`` columns (NaN where no depth is known).
    """
    return pd.DataFrame(
        {
            "intensity": np.array([p.intensity for p in series], dtype=np.float64),
            "height_mm": np.array(
                [np.nan if p.height_mm is None else p.height_mm for p in series], dtype=np.float64
            ),
        },
        index=pd.Index([p.time_minutes for p in series], name="time_minutes", dtype=np.float64),
    )
