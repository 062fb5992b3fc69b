"""Terrain grid construction from scattered elevation points.

Points are binned into a regular grid whose lower-left corner is the
minimum x/y of the point cloud. When several points fall into one cell the
last one in input order wins. Empty cells are then filled according to an
explicit, deterministic GapFill policy.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from enum import Enum

import numpy as np
from scipy.spatial import cKDTree

from floodkit.asc import serialize_asc
from floodkit.grid import DEFAULT_NODATA, Grid, GridHeader

logger = logging.getLogger(__name__)

# Minimum x spacing treated as a real grid step when estimating cell size [m]
MIN_SPACING: float = 0.001

# Decimals kept when snapping offset/cellsize quotients before floor or ceil
SNAP_DECIMALS: int = 9


class GapFill(str, Enum):
    """Policy for cells that received no point."""

    nearest = "nearest"  # value of the nearest populated cell
    constant = "constant"  # fallback elevation
    neighbor_mean = "neighbor_mean"  # mean of populated 8-neighbours, then fallback


def _as_points(points: Iterable[Iterable[float]] | np.ndarray) -> np.ndarray:
    """Coerce points to a finite (N, 3) float64 array."""
    arr = np.asarray(points if isinstance(points, np.ndarray) else list(points), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] < 3:
        msg = f"points must have shape (N, 3), got {arr.shape}"
        raise ValueError(msg)
    if arr.shape[0] == 0:
        msg = "Empty point cloud"
        raise ValueError(msg)
    arr = arr[:, :3]
    if not np.all(np.isfinite(arr)):
        msg = "points contain non-finite coordinates"
        raise ValueError(msg)
    return arr


def parse_xyz(text: str) -> np.ndarray:
    """Parse whitespace-separated ``x y z`` lines.

    Lines with fewer than three tokens or non-numeric values are skipped.

    Returns:
        Array of shape (N, 3).
    """
    rows: list[tuple[float, float, float]] = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 3:
            continue
        try:
            rows.append((float(parts[0]), float(parts[1]), float(parts[2])))
        except ValueError:
            logger.debug("Skipping non-numeric XYZ line: %r", line)
    return np.array(rows, dtype=np.float64).reshape(-1, 3)


def estimate_cellsize(points: Iterable[Iterable[float]] | np.ndarray) -> float:
    """Estimate the grid spacing of a roughly regular point cloud.

    Returns the smallest gap between sorted x coordinates that exceeds
    MIN_SPACING, rounded to millimetres, or 1.0 if there is none.
    """
    xs = np.unique(_as_points(points)[:, 0])
    gaps = np.diff(xs)
    gaps = gaps[gaps > MIN_SPACING]
    if gaps.size == 0:
        return 1.0
    return round(float(gaps.min()) * 1000.0) / 1000.0


def _cell_steps(offsets: np.ndarray, cellsize: float) -> np.ndarray:
    """Whole cells covered by each offset, with quotients like 0.3/0.1 snapped to 3."""
    return np.floor(np.round(offsets / cellsize, SNAP_DECIMALS)).astype(np.int64)


def _fill_nearest(data: np.ndarray, empty: np.ndarray) -> None:
    filled_idx = np.argwhere(~empty)
    empty_idx = np.argwhere(empty)
    tree = cKDTree(filled_idx)
    _, nearest = tree.query(empty_idx, k=1)
    src = filled_idx[nearest]
    data[empty_idx[:, 0], empty_idx[:, 1]] = data[src[:, 0], src[:, 1]]


def _fill_neighbor_mean(data: np.ndarray, empty: np.ndarray) -> None:
    nrows, ncols = data.shape
    values = np.pad(np.where(empty, 0.0, data).astype(np.float64), 1)
    counts = np.pad((~empty).astype(np.float64), 1)
    total = np.zeros((nrows, ncols), dtype=np.float64)
    n = np.zeros((nrows, ncols), dtype=np.float64)
    for dr in (-1, 0, 1):
        for dc in (-1, 0, 1):
            if dr == 0 and dc == 0:
                continue
            total += values[1 + dr : 1 + dr + nrows, 1 + dc : 1 + dc + ncols]
            n += counts[1 + dr : 1 + dr + nrows, 1 + dc : 1 + dc + ncols]
    target = empty & (n > 0)
    data[target] = total[target] / n[target]


def build_grid(
    points: Iterable[Iterable[float]] | np.ndarray,
    cellsize: float,
    gap_fill: GapFill | str = GapFill.nearest,
    fallback_elevation: float | None = None,
    nodata_value: float = DEFAULT_NODATA,
) -> Grid:
    """Bin (x, y, z) points into a regular grid.

    ``ncols``/``nrows`` are the ceiling of the bounding-box extent divided by
    ``cellsize`` (at least 1 each). Points on the upper x/y edge of the box
    belong to the last column/top row.

    Args:
        points: Iterable of (x, y, z) triples or an (N, 3) array.
        cellsize: Cell edge length [m].
        gap_fill: Policy for cells without any point.
        fallback_elevation: Elevation for GapFill.constant (required) and for
            cells GapFill.neighbor_mean cannot reach (left NODATA if None).
        nodata_value: Header NODATA sentinel.

    Returns:
        Grid with row 0 at the north edge.

    Raises:
        ValueError: If points are empty/invalid, cellsize is not positive, or
            GapFill.constant is requested without a fallback elevation.
    """
    if not cellsize > 0:
        msg = f"cellsize must be positive, got {cellsize}"
        raise ValueError(msg)
    gap_fill = GapFill(gap_fill)
    if gap_fill is GapFill.constant and fallback_elevation is None:
        msg = "fallback_elevation is required for GapFill.constant"
        raise ValueError(msg)

    pts = _as_points(points)
    min_x, min_y = pts[:, 0].min(), pts[:, 1].min()
    max_x, max_y = pts[:, 0].max(), pts[:, 1].max()

    ncols = max(1, math.ceil(round((max_x - min_x) / cellsize, SNAP_DECIMALS)))
    nrows = max(1, math.ceil(round((max_y - min_y) / cellsize, SNAP_DECIMALS)))
    header = GridHeader(
        ncols=ncols,
        nrows=nrows,
        xllcorner=float(min_x),
        yllcorner=float(min_y),
        cellsize=cellsize,
        nodata_value=nodata_value,
    )

    cols = np.minimum(_cell_steps(pts[:, 0] - min_x, cellsize), ncols - 1)
    rows_up = np.minimum(_cell_steps(pts[:, 1] - min_y, cellsize), nrows - 1)
    rows = (nrows - 1) - rows_up

    # Keep the last point per cell: first occurrence in reversed order
    flat = rows * ncols + cols
    rev_flat = flat[::-1]
    unique_flat, first_rev = np.unique(rev_flat, return_index=True)
    z = pts[::-1, 2][first_rev]

    data = np.full(nrows * ncols, np.nan, dtype=np.float64)
    data[unique_flat] = z
    data = data.reshape(nrows, ncols)

    empty = np.isnan(data)
    n_empty = int(empty.sum())
    logger.debug(
        "Binned %d points into %dx%d grid, %d empty cells, gap fill '%s'",
        pts.shape[0],
        nrows,
        ncols,
        n_empty,
        gap_fill.value,
    )

    if n_empty:
        if gap_fill is GapFill.nearest:
            _fill_nearest(data, empty)
        elif gap_fill is GapFill.neighbor_mean:
            _fill_neighbor_mean(data, empty)
            if fallback_elevation is not None:
                data[np.isnan(data)] = fallback_elevation
        else:
            data[empty] = fallback_elevation

    return Grid(header=header, data=data)


class TerrainGridBuilder:
    """Builds terrain grids from point clouds and exposes them as ASC text.

    Args:
        cellsize: Cell edge length [m]. Estimated from the points when None.
        gap_fill: Policy for cells that receive no point.
        fallback_elevation: Elevation used by the constant and neighbour-mean policies.
        nodata_value: Header NODATA sentinel.
    """

    def __init__(
        self,
        cellsize: float | None = None,
        gap_fill: GapFill | str = GapFill.nearest,
        fallback_elevation: float | None = None,
        nodata_value: float = DEFAULT_NODATA,
    ) -> None:
        self.cellsize = cellsize
        self.gap_fill = GapFill(gap_fill)
        self.fallback_elevation = fallback_elevation
        self.nodata_value = nodata_value
        self._grid: Grid | None = None

    @property
    def grid(self) -> Grid:
        """The most recently built grid."""
        if self._grid is None:
            msg = "No grid built yet; call build() first"
            raise RuntimeError(msg)
        return self._grid

    def build(self, points: Iterable[Iterable[float]] | np.ndarray) -> Grid:
        """Build the grid for ``points`` and keep it on the builder."""
        pts = _as_points(points)
        cellsize = self.cellsize if self.cellsize is not None else estimate_cellsize(pts)
        self._grid = build_grid(
            pts,
            cellsize,
            gap_fill=self.gap_fill,
            fallback_elevation=self.fallback_elevation,
            nodata_value=self.nodata_value,
        )
        return self._grid

    def build_from_xyz(self, text: str) -> Grid:
        """Parse XYZ text and build the grid."""
        return self.build(parse_xyz(text))

    def to_ascii(self) -> str:
        """Serialize the built grid as ESRI ASCII grid text."""
        return serialize_asc(self.grid)
