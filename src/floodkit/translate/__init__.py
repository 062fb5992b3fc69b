"""Solver input translators.

Renders grids, rain series, network topology, and run parameters into the
text formats read by the raster flood solver and the pipe network solver.
"""

from floodkit.translate.common import format_clock, format_interval, parse_minutes, rain_steps
from floodkit.translate.lisflood import (
    Boundary,
    BoundaryFiles,
    LisfloodInputs,
    build_lisflood_inputs,
    render_boundaries,
    render_constant_rain,
    render_par,
    render_rain,
)
from floodkit.translate.swmm import SwmmInput, gauge_interval, render_inp

__all__ = [
    "Boundary",
    "BoundaryFiles",
    "LisfloodInputs",
    "SwmmInput",
    "build_lisflood_inputs",
    "format_clock",
    "format_interval",
    "gauge_interval",
    "parse_minutes",
    "rain_steps",
    "render_boundaries",
    "render_constant_rain",
    "render_inp",
    "render_par",
    "render_rain",
]
