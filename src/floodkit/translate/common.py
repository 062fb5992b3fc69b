"""Rain series helpers shared by the solver translators."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Union

from floodkit.errors import TranslationError
from floodkit.rain import RainEventPoint

# A series step: a RainEventPoint, or a (time, intensity) pair whose time is
# minutes from the start or an "H:MM" clock string
RainStep = Union[RainEventPoint, tuple[Union[float, str], float]]


def parse_minutes(value: float | int | str) -> float:
    """Minutes from the start for a minute offset or an ``H:MM`` clock string.

    Raises:
        TranslationError: If the value is neither.
    """
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        if ":" in text:
            hours, minutes = text.split(":", 1)
            return int(hours) * 60 + float(minutes)
        return float(text)
    except ValueError as e:
        msg = f"Cannot read time '{value}' as minutes or H:MM"
        raise TranslationError(msg, ident=str(value)) from e


def _whole_minutes(minutes: float) -> int:
    """Round ``minutes`` to an int, rejecting values that are not whole minutes.

    Raises:
        TranslationError: If ``minutes`` is more than 1e-6 away from an integer.
    """
    total = round(minutes)
    if abs(minutes - total) > 1e-6:
        msg = f"HH:MM times need whole minutes, got {minutes} min"
        raise TranslationError(msg, ident=str(minutes))
    return total


def format_clock(value: float | int | str) -> str:
    """Format a time as zero-padded ``HH:MM``.

    Hours are elapsed hours and may exceed 23.

    Raises:
        TranslationError: If the time is not a whole number of minutes.
    """
    total = _whole_minutes(parse_minutes(value))
    return f"{total // 60:02d}:{total % 60:02d}"


def format_interval(minutes: float) -> str:
    """Format a duration in minutes as ``H:MM``.

    Raises:
        TranslationError: If the duration is not a whole number of minutes.
    """
    total = _whole_minutes(minutes)
    return f"{total // 60}:{total % 60:02d}"


def rain_steps(series: Sequence[RainStep]) -> list[tuple[float, float]]:
    """Normalize a rain series to (minutes, intensity) pairs.

    Raises:
        TranslationError: If the series has fewer than two points or its
            times are not strictly increasing.
    """
    steps: list[tuple[float, float]] = []
    for point in series:
        if isinstance(point, RainEventPoint):
            steps.append((point.time_minutes, point.intensity))
        else:
            time, intensity = point
            steps.append((parse_minutes(time), float(intensity)))
    if len(steps) < 2:
        msg = f"Rain series needs at least two points to define an interval, got {len(steps)}"
        raise TranslationError(msg)
    for (t0, _), (t1, _) in zip(steps, steps[1:]):
        if t1 <= t0:
            msg = f"Rain series times must be strictly increasing, got {t0} then {t1}"
            raise TranslationError(msg, ident=str(t1))
    return steps


def min_gap(steps: Sequence[tuple[float, float]]) -> float:
    """Smallest gap between consecutive step times [min]."""
    return min(t1 - t0 for (t0, _), (t1, _) in zip(steps, steps[1:]))
