"""ESRI ASCII grid (.asc) codec.

Parses and serializes the six-line-header ASCII raster format used for the
flood solver's terrain, friction, and result grids.

Parsing is a single forward pass: the header is read line by line, then the
body is scanned for numeric tokens without splitting it into lines. A body
with fewer values than ``ncols * nrows`` is recoverable: the short grid is
returned (missing cells are NODATA) and the scanned count is logged and
recorded as a PartialDataWarning on ``Grid.diagnostics``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from itertools import islice
from pathlib import Path

import numpy as np

from floodkit.errors import FormatError, PartialDataWarning
from floodkit.grid import DEFAULT_NODATA, NODATA_TOLERANCE, Grid, GridHeader

logger = logging.getLogger(__name__)

# Integers, decimals, and exponential notation
_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_HEADER_LINES = 6

_HEADER_KEYS: tuple[str, ...] = (
    "ncols",
    "nrows",
    "xllcorner",
    "yllcorner",
    "xllcenter",
    "yllcenter",
    "cellsize",
    "nodata_value",
)


def _is_number(token: str) -> bool:
    return _NUMBER.fullmatch(token) is not None


def _format_number(value: float) -> str:
    """Shortest decimal text that reads back to the same value."""
    return np.format_float_positional(value, trim="-")


def _read_header(text: str) -> tuple[dict[str, float], int]:
    """Read up to six ``key value`` lines.

    Returns:
        Tuple of (header mapping keyed by lowercase token, offset of the body).
    """
    header: dict[str, float] = {}
    pos = 0
    while len(header) < _HEADER_LINES and pos < len(text):
        end = text.find("\n", pos)
        if end == -1:
            end = len(text)
        parts = text[pos:end].split()
        if parts and _is_number(parts[0]):
            # Body starts early (e.g. no NODATA_value line)
            break
        pos = end + 1
        if len(parts) < 2:
            continue
        key = parts[0].lower()
        if key not in _HEADER_KEYS:
            logger.debug("Ignoring unrecognized ASC header key '%s'", parts[0])
        try:
            header[key] = float(parts[1])
        except ValueError as e:
            msg = f"Invalid ASC header: value '{parts[1]}' for '{parts[0]}' is not numeric"
            raise FormatError(msg, key=key) from e
    return header, min(pos, len(text))


def parse_header(header: dict[str, float]) -> GridHeader:
    """Build a GridHeader from a raw lowercase-keyed header mapping.

    Raises:
        FormatError: If ncols or nrows is missing or invalid.
    """
    for key in ("ncols", "nrows"):
        if key not in header:
            msg = f"Invalid ASC header: missing {key}"
            raise FormatError(msg, key=key)
        if header[key] <= 0 or header[key] != int(header[key]):
            msg = f"Invalid ASC header: {key} must be a positive integer, got {header[key]}"
            raise FormatError(msg, key=key)

    cellsize = header.get("cellsize", 1.0)
    if cellsize <= 0:
        msg = f"Invalid ASC header: cellsize must be positive, got {cellsize}"
        raise FormatError(msg, key="cellsize")

    xll = header.get("xllcorner")
    if xll is None:
        xll = header.get("xllcenter", cellsize / 2.0) - cellsize / 2.0
    yll = header.get("yllcorner")
    if yll is None:
        yll = header.get("yllcenter", cellsize / 2.0) - cellsize / 2.0

    return GridHeader(
        ncols=int(header["ncols"]),
        nrows=int(header["nrows"]),
        xllcorner=xll,
        yllcorner=yll,
        cellsize=cellsize,
        nodata_value=header.get("nodata_value", DEFAULT_NODATA),
    )


def parse_asc(text: str) -> Grid:
    """Parse ESRI ASCII grid text into a Grid.

    Body values within 1e-5 of the header's NODATA value are stored as NaN.

    Args:
        text: Full file content.

    Returns:
        Parsed grid. ``grid.diagnostics`` holds a PartialDataWarning when the
        body is shorter than ``ncols * nrows``.

    Raises:
        FormatError: If the text is empty or the header lacks ncols/nrows.
    """
    if not text or not text.strip():
        msg = "Empty ASC text"
        raise FormatError(msg)

    raw_header, body_start = _read_header(text)
    header = parse_header(raw_header)

    expected = header.size
    tokens = islice(_NUMBER.finditer(text, body_start), expected)
    values = np.fromiter((float(m.group()) for m in tokens), dtype=np.float64)
    scanned = values.size

    values = np.where(np.abs(values - header.nodata_value) < NODATA_TOLERANCE, np.nan, values)

    data = np.full(expected, np.nan, dtype=np.float32)
    data[:scanned] = values
    grid = Grid(header=header, data=data.reshape(header.shape))

    if scanned < expected:
        msg = f"ASC body holds {scanned} values, expected {expected}"
        logger.warning("ASC body short: scanned %d of %d values", scanned, expected)
        grid.diagnostics.append(PartialDataWarning(msg, row=scanned // header.ncols))
    else:
        logger.debug("Parsed ASC grid %dx%d", header.nrows, header.ncols)

    return grid


def serialize_asc(grid: Grid) -> str:
    """Serialize a Grid to ESRI ASCII grid text.

    Emits the six header lines, then ``nrows`` lines of space-joined values.
    NODATA cells are written with the exact header nodata text.
    """
    h = grid.header
    nodata = _format_number(h.nodata_value)
    lines = [
        f"ncols         {h.ncols}",
        f"nrows         {h.nrows}",
        f"xllcorner     {_format_number(h.xllcorner)}",
        f"yllcorner     {_format_number(h.yllcorner)}",
        f"cellsize      {_format_number(h.cellsize)}",
        f"NODATA_value  {nodata}",
    ]
    for row in grid.data:
        lines.append(" ".join(nodata if np.isnan(v) else _format_number(v) for v in row))
    return "\n".join(lines) + "\n"


def read_asc(path: str | Path) -> Grid:
    """Read and parse an .asc file.

    Raises:
        FileNotFoundError: If the file does not exist.
        FormatError: If the header is invalid.
    """
    path = Path(path)
    if not path.exists():
        msg = f"ASC file not found: {path}"
        raise FileNotFoundError(msg)
    return parse_asc(path.read_text())


def write_asc(grid: Grid, path: str | Path) -> Path:
    """Serialize a grid to ``path`` and return the path."""
    path = Path(path)
    path.write_text(serialize_asc(grid))
    return path


@dataclass(frozen=True)
class DepthSummary:
    """Summary of a water-depth result grid.

    Attributes:
        max_depth: Maximum depth over valid cells [m].
        wet_cells: Number of cells deeper than the wet threshold.
        wet_area: Area of wet cells [m2].
        volume: Stored water volume over wet cells [m3].
        has_negative_depth: True if any cell is below the instability threshold.
    """

    max_depth: float
    wet_cells: int
    wet_area: float
    volume: float
    has_negative_depth: bool


def summarize_depth_grid(
    grid: Grid,
    wet_threshold: float = 0.001,
    unstable_threshold: float = -0.1,
) -> DepthSummary:
    """Summarize a solver depth grid.

    Negative depths below ``unstable_threshold`` indicate a numerically
    unstable run.
    """
    depth = grid.data[~np.isnan(grid.data)].astype(np.float64)
    wet = depth[depth > wet_threshold]
    cell_area = grid.header.cellsize**2
    summary = DepthSummary(
        max_depth=grid.max,
        wet_cells=int(wet.size),
        wet_area=float(wet.size * cell_area),
        volume=float(wet.sum() * cell_area),
        has_negative_depth=bool(np.any(depth < unstable_threshold)),
    )
    if summary.has_negative_depth:
        logger.warning("Depth grid contains values below %.3f m; run may be unstable", unstable_threshold)
    return summary
