"""Raster flood solver (LISFLOOD-FP) input rendering.

Produces the parameter file, the rain file (m/s keyed by elapsed seconds),
the boundary file with its per-boundary flow series, and the terrain and
friction grids, all as text keyed by file name.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from floodkit.asc import serialize_asc
from floodkit.config import FloodRunConfig, RainUnits
from floodkit.errors import PartialDataWarning
from floodkit.grid import Grid
from floodkit.rasterize import burn_buildings, cells_in_polygon, line_cells, point_cell, roughness_grid
from floodkit.translate.common import RainStep, min_gap, rain_steps

logger = logging.getLogger(__name__)

PAR_FILE = "run.par"
RAIN_FILE = "rain.txt"
FRICTION_FILE = "friction.asc"
BOUNDARY_FILE = "flow.bdy"

_KEY_WIDTH = 20

# mm/h -> m/s
_MM_PER_HOUR_TO_M_PER_S = 1.0 / 1000.0 / 3600.0

# Cells searched around an invalid boundary cell
RESCUE_RADIUS = 3


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return np.format_float_positional(value, trim="-")
    return str(value)


def render_par(
    config: FloodRunConfig,
    frictionfile: str | None = None,
    rainfile: str | None = None,
    bdyfile: str | None = None,
) -> str:
    """Render the solver parameter file.

    Keys are left-aligned in a 20-character column. Boolean flags appear as a
    bare key when set and are omitted otherwise.
    """
    entries: list[tuple[str, Any]] = [
        ("demfile", config.demfile),
        ("resroot", config.resroot),
        ("dirroot", config.dirroot),
        ("sim_time", config.sim_time),
        ("initial_tstep", config.initial_tstep),
        ("massint", config.massint),
        ("saveint", config.saveint),
        ("FPfric", config.fpfric),
    ]
    flags = {
        "acceleration": config.acceleration,
        "adaptoff": config.adaptoff,
        "elevoff": config.elevoff,
        "depthoff": config.depthoff,
    }
    entries.extend(config.extra.items())
    for key, path in (("frictionfile", frictionfile), ("rainfile", rainfile), ("bdyfile", bdyfile)):
        if path:
            entries.append((key, path))

    lines = [f"{key:<{_KEY_WIDTH}} {_format_value(value)}" for key, value in entries]
    lines.extend(key for key, enabled in flags.items() if enabled)
    return "\n".join(lines) + "\n"


def _rain_file(rows: Sequence[tuple[float, float]]) -> str:
    lines = [str(len(rows))]
    lines.extend(f"{t:.1f}\t{v:.8f}" for t, v in rows)
    return "\n".join(lines) + "\n"


def render_constant_rain(intensity_mm_h: float, duration_s: float = 3600.0) -> str:
    """Rain file for a constant-intensity pulse of ``duration_s`` seconds."""
    rate = intensity_mm_h * _MM_PER_HOUR_TO_M_PER_S
    return _rain_file([(0.0, rate), (duration_s, rate)])


def render_rain(series: Sequence[RainStep], units: RainUnits | str = RainUnits.mm_per_hour) -> str:
    """Rain file for a piecewise-constant series.

    One row per point at its elapsed time [s], plus a closing row one
    minimal step after the last point that holds the last rate.

    Args:
        series: Rain steps; times in minutes or ``H:MM``.
        units: Unit of the intensities.

    Raises:
        TranslationError: If the series has fewer than two points or times
            are not strictly increasing.
    """
    units = RainUnits(units)
    steps = rain_steps(series)
    gap = min_gap(steps)
    rows = [(t * 60.0, units.to_mm_per_hour(v) * _MM_PER_HOUR_TO_M_PER_S) for t, v in steps]
    last_t, last_v = rows[-1]
    rows.append((last_t + gap * 60.0, last_v))
    return _rain_file(rows)


@dataclass(frozen=True)
class Boundary:
    """Inflow or outflow boundary.

    Attributes:
        name: Label written to the boundary file.
        geometry: GeoJSON-like Point, LineString, or Polygon geometry.
        value: Total flow [m3/s], split evenly over the boundary's cells.
        outflow: Withdraw instead of inject.
        duration: Length of the steady flow series [s].
        active: Inactive boundaries are skipped.
    """

    name: str
    geometry: Mapping[str, Any]
    value: float
    outflow: bool = False
    duration: float = 3600.0
    active: bool = True

    @property
    def signed_value(self) -> float:
        return -abs(self.value) if self.outflow else abs(self.value)


@dataclass
class BoundaryFiles:
    """Rendered boundary file plus its flow series files."""

    bdy: str = ""
    series: dict[str, str] = field(default_factory=dict)
    diagnostics: list[PartialDataWarning] = field(default_factory=list)


def _is_valid(grid: Grid, row: int, col: int) -> bool:
    return 0 <= row < grid.nrows and 0 <= col < grid.ncols and not np.isnan(grid.data[row, col])


def find_nearest_valid_cell(
    grid: Grid, row: int, col: int, max_radius: int = RESCUE_RADIUS
) -> tuple[int, int] | None:
    """Search square rings around (row, col) for a cell with data.

    Returns:
        The first valid (row, col), the start cell itself when valid, or None.
    """
    if _is_valid(grid, row, col):
        return row, col
    for r in range(1, max_radius + 1):
        for dc in range(-r, r + 1):
            for dr in range(-r, r + 1):
                if abs(dc) != r and abs(dr) != r:
                    continue
                if _is_valid(grid, row + dr, col + dc):
                    return row + dr, col + dc
    return None


def _centroid(ring: Sequence[Sequence[float]]) -> tuple[float, float]:
    pts = np.asarray(ring, dtype=np.float64)[:, :2]
    if len(pts) > 1 and np.array_equal(pts[0], pts[-1]):
        pts = pts[:-1]
    cx, cy = pts.mean(axis=0)
    return float(cx), float(cy)


def _boundary_cells(boundary: Boundary, grid: Grid, files: BoundaryFiles) -> list[tuple[int, int]]:
    geometry = boundary.geometry
    gtype = geometry.get("type")
    coords = geometry.get("coordinates")
    header = grid.header

    if gtype == "Polygon":
        ring = coords[0]
        cells = [(int(r), int(c)) for r, c in cells_in_polygon(header, ring)]
        if not cells:
            # Polygon smaller than a cell: use its centroid
            cells = [point_cell(header, *_centroid(ring))]
    elif gtype == "LineString":
        cells = line_cells(header, coords)
    elif gtype == "Point":
        cells = [point_cell(header, coords[0], coords[1])]
    else:
        logger.warning("Boundary '%s' has unsupported geometry type %r; skipped", boundary.name, gtype)
        return []

    valid = [cell for cell in cells if _is_valid(grid, *cell)]
    if len(cells) == 1 and not valid:
        rescued = find_nearest_valid_cell(grid, *cells[0])
        if rescued is not None:
            logger.warning("Boundary '%s' moved from NODATA to cell %s", boundary.name, rescued)
            valid = [rescued]
    elif gtype == "Polygon" and not valid:
        rescued = find_nearest_valid_cell(grid, *point_cell(header, *_centroid(coords[0])))
        if rescued is not None:
            logger.warning("Boundary '%s' covers only NODATA; snapped to cell %s", boundary.name, rescued)
            valid = [rescued]

    dropped = len(cells) - len(valid)
    if not valid:
        msg = f"Boundary '{boundary.name}' has no valid cell and was dropped"
        logger.warning(msg)
        files.diagnostics.append(PartialDataWarning(msg, row=boundary.name))
    elif dropped > 0 and len(cells) > 1:
        logger.debug("Boundary '%s': %d NODATA cells ignored", boundary.name, dropped)
    return valid


def _steady_series(value: float, duration: float) -> str:
    return f"2\n0.0 {value:.8f}\n{duration:.1f} {value:.8f}\n"


def render_boundaries(boundaries: Sequence[Boundary], grid: Grid) -> BoundaryFiles:
    """Render point-source boundaries onto the terrain grid.

    Each active boundary's flow is split evenly over its valid cells and
    written to a steady series file ``bc_N.txt``. NODATA cells never receive
    flow. A single-cell boundary on NODATA, or a polygon covering only
    NODATA, is moved to the nearest valid cell within RESCUE_RADIUS cells.
    """
    files = BoundaryFiles()
    lines: list[str] = []
    counter = 0
    for boundary in boundaries:
        if not boundary.active:
            continue
        cells = _boundary_cells(boundary, grid, files)
        if not cells:
            continue
        per_cell = boundary.signed_value / len(cells)
        name = f"bc_{counter}.txt"
        counter += 1
        files.series[name] = _steady_series(per_cell, boundary.duration)
        lines.append(boundary.name or "Boundary")
        lines.extend(f"P {col} {row} {name}" for row, col in cells)
    files.bdy = "\n".join(lines) + "\n" if lines else ""
    return files


@dataclass
class LisfloodInputs:
    """Rendered solver input files keyed by file name."""

    files: dict[str, str] = field(default_factory=dict)
    diagnostics: list[PartialDataWarning] = field(default_factory=list)

    def __getitem__(self, name: str) -> str:
        return self.files[name]

    def __contains__(self, name: object) -> bool:
        return name in self.files


def build_lisflood_inputs(
    terrain: Grid,
    config: FloodRunConfig | None = None,
    rain: float | Sequence[RainStep] | None = None,
    buildings: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
    roughness: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
    boundaries: Sequence[Boundary] | None = None,
) -> LisfloodInputs:
    """Render a complete solver input set.

    The terrain grid is copied before buildings are burned into it.

    Args:
        terrain: Terrain grid.
        config: Run parameters; defaults when None.
        rain: Constant intensity held for ``config.sim_time``, or a series,
            in ``config.rain_units``.
        buildings: Building footprints burned into the terrain.
        roughness: Roughness zones for the friction grid.
        boundaries: Inflow and outflow boundaries.

    Returns:
        LisfloodInputs with the terrain, parameter, and optional friction,
        rain, and boundary files.
    """
    config = config or FloodRunConfig()
    inputs = LisfloodInputs()

    dem = terrain.copy()
    if buildings:
        burn_buildings(dem, buildings, default_height=config.building_height)
    inputs.files[config.demfile] = serialize_asc(dem)
    inputs.diagnostics.extend(dem.diagnostics)

    frictionfile = None
    if roughness:
        friction = roughness_grid(dem.header, roughness, default=config.default_roughness)
        if friction is not None:
            inputs.files[FRICTION_FILE] = serialize_asc(friction)
            frictionfile = FRICTION_FILE

    rainfile = None
    if rain is not None:
        if isinstance(rain, (int, float)):
            intensity = config.rain_units.to_mm_per_hour(float(rain))
            inputs.files[RAIN_FILE] = render_constant_rain(intensity, config.sim_time)
        else:
            inputs.files[RAIN_FILE] = render_rain(rain, config.rain_units)
        rainfile = RAIN_FILE

    bdyfile = None
    if boundaries:
        rendered = render_boundaries(boundaries, dem)
        inputs.diagnostics.extend(rendered.diagnostics)
        if rendered.bdy:
            inputs.files[BOUNDARY_FILE] = rendered.bdy
            inputs.files.update(rendered.series)
            bdyfile = BOUNDARY_FILE

    inputs.files[PAR_FILE] = render_par(config, frictionfile=frictionfile, rainfile=rainfile, bdyfile=bdyfile)
    logger.debug("Rendered %d solver input files", len(inputs.files))
    return inputs
