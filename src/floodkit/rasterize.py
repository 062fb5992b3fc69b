"""Polygon rasterization onto grids.

Each cell is tested at its reference point ``(xllcorner + col * cellsize,
yllcorner + (nrows - 1 - row) * cellsize)`` with an even-odd ray cast.
Points lying on the ring boundary count as inside. Rings are closed
implicitly, so open and self-intersecting rings are accepted.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import numpy as np
from numba import njit

from floodkit.grid import Grid, GridHeader

logger = logging.getLogger(__name__)

DEFAULT_BUILDING_HEIGHT: float = 10.0  # [m]
DEFAULT_MANNING: float = 0.035  # [s/m^(1/3)]

# Relative tolerance for the on-boundary test
_EDGE_EPS: float = 1e-9


@njit(cache=True)
def _point_in_ring(px: float, py: float, xs: np.ndarray, ys: np.ndarray) -> bool:
    """Even-odd test with inclusive boundary."""
    n = xs.shape[0]
    inside = False
    j = n - 1
    for i in range(n):
        xi = xs[i]
        yi = ys[i]
        xj = xs[j]
        yj = ys[j]
        cross = (xj - xi) * (py - yi) - (yj - yi) * (px - xi)
        scale = max(1.0, abs(xj - xi) + abs(yj - yi))
        if (
            abs(cross) <= _EDGE_EPS * scale
            and min(xi, xj) - _EDGE_EPS <= px <= max(xi, xj) + _EDGE_EPS
            and min(yi, yj) - _EDGE_EPS <= py <= max(yi, yj) + _EDGE_EPS
        ):
            return True
        if (yi > py) != (yj > py):
            x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
            if px < x_cross:
                inside = not inside
        j = i
    return inside


@njit(cache=True)
def _ring_mask(
    nrows: int,
    ncols: int,
    xll: float,
    yll: float,
    cellsize: float,
    xs: np.ndarray,
    ys: np.ndarray,
    r0: int,
    r1: int,
    c0: int,
    c1: int,
) -> np.ndarray:
    mask = np.zeros((nrows, ncols), dtype=np.bool_)
    for r in range(r0, r1 + 1):
        cy = yll + (nrows - 1 - r) * cellsize
        for c in range(c0, c1 + 1):
            cx = xll + c * cellsize
            if _point_in_ring(cx, cy, xs, ys):
                mask[r, c] = True
    return mask


def _close_ring(polygon: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """Return the ring as an (N, 2) float64 array with first point repeated last."""
    ring = np.asarray(polygon, dtype=np.float64)
    if ring.ndim != 2 or ring.shape[1] < 2:
        msg = f"polygon must be a sequence of (x, y) pairs, got shape {ring.shape}"
        raise ValueError(msg)
    ring = ring[:, :2]
    if ring.shape[0] < 3:
        msg = f"polygon needs at least 3 vertices, got {ring.shape[0]}"
        raise ValueError(msg)
    if not np.array_equal(ring[0], ring[-1]):
        ring = np.vstack([ring, ring[:1]])
    return np.ascontiguousarray(ring)


def point_in_polygon(x: float, y: float, polygon: Sequence[Sequence[float]] | np.ndarray) -> bool:
    """Test whether (x, y) lies inside or on the boundary of ``polygon``."""
    ring = _close_ring(polygon)
    return bool(_point_in_ring(float(x), float(y), ring[:, 0].copy(), ring[:, 1].copy()))


def polygon_mask(header: GridHeader, polygon: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """Boolean (nrows, ncols) mask of cells whose reference point is in ``polygon``."""
    ring = _close_ring(polygon)
    xs = ring[:, 0].copy()
    ys = ring[:, 1].copy()
    cs = header.cellsize

    # Only scan the polygon's bounding box, padded by one cell
    c0 = max(0, math.floor((xs.min() - header.xllcorner) / cs) - 1)
    c1 = min(header.ncols - 1, math.ceil((xs.max() - header.xllcorner) / cs) + 1)
    top = header.yllcorner + (header.nrows - 1) * cs
    r0 = max(0, math.floor((top - ys.max()) / cs) - 1)
    r1 = min(header.nrows - 1, math.ceil((top - ys.min()) / cs) + 1)
    if c0 > c1 or r0 > r1:
        return np.zeros(header.shape, dtype=bool)

    return _ring_mask(
        header.nrows,
        header.ncols,
        float(header.xllcorner),
        float(header.yllcorner),
        float(cs),
        xs,
        ys,
        int(r0),
        int(r1),
        int(c0),
        int(c1),
    )


def cells_in_polygon(header: GridHeader, polygon: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """(K, 2) array of (row, col) indices covered by ``polygon``, row-major order."""
    return np.argwhere(polygon_mask(header, polygon))


def point_cell(header: GridHeader, x: float, y: float) -> tuple[int, int]:
    """Nearest (row, col) to a world coordinate. May lie outside the grid."""
    col = round((x - header.xllcorner) / header.cellsize)
    row = (header.nrows - 1) - round((y - header.yllcorner) / header.cellsize)
    return row, col


def _bresenham(c0: int, r0: int, c1: int, r1: int) -> list[tuple[int, int]]:
    cells = []
    dc = abs(c1 - c0)
    dr = abs(r1 - r0)
    sc = 1 if c0 < c1 else -1
    sr = 1 if r0 < r1 else -1
    err = dc - dr
    while True:
        cells.append((r0, c0))
        if c0 == c1 and r0 == r1:
            break
        e2 = 2 * err
        if e2 > -dr:
            err -= dr
            c0 += sc
        if e2 < dc:
            err += dc
            r0 += sr
    return cells


def line_cells(header: GridHeader, coords: Sequence[Sequence[float]]) -> list[tuple[int, int]]:
    """Cells traversed by a polyline, in order and without repeats.

    Vertices are snapped to their nearest cell and consecutive vertices are
    joined with Bresenham segments. Cells may lie outside the grid.
    """
    seen: set[tuple[int, int]] = set()
    cells: list[tuple[int, int]] = []
    snapped = [point_cell(header, p[0], p[1]) for p in coords]
    if len(snapped) == 1:
        return snapped
    for (r0, c0), (r1, c1) in zip(snapped, snapped[1:]):
        for cell in _bresenham(c0, r0, c1, r1):
            if cell not in seen:
                seen.add(cell)
                cells.append(cell)
    return cells


def burn(grid: Grid, polygon: Sequence[Sequence[float]] | np.ndarray, delta_elevation: float) -> None:
    """Add ``delta_elevation`` to every covered cell, in place.

    NODATA cells stay NODATA. Repeated calls compose additively.
    """
    mask = polygon_mask(grid.header, polygon)
    grid.data[mask] += np.float32(delta_elevation)


def fill_polygon(grid: Grid, polygon: Sequence[Sequence[float]] | np.ndarray, value: float) -> None:
    """Overwrite every covered cell with ``value``, in place."""
    mask = polygon_mask(grid.header, polygon)
    grid.data[mask] = np.float32(value)


def _outer_rings(geometry: Mapping[str, Any]) -> list[Sequence[Sequence[float]]]:
    """Outer rings of a GeoJSON-like Polygon or MultiPolygon geometry."""
    gtype = geometry.get("type")
    coords = geometry.get("coordinates") or []
    if gtype == "Polygon":
        return [coords[0]] if coords else []
    if gtype == "MultiPolygon":
        return [poly[0] for poly in coords if poly]
    return []


def _iter_features(features: Mapping[str, Any] | Iterable[Mapping[str, Any]]) -> Iterable[Mapping[str, Any]]:
    if isinstance(features, Mapping):
        return features.get("features", [])
    return features


def burn_buildings(
    grid: Grid,
    features: Mapping[str, Any] | Iterable[Mapping[str, Any]],
    default_height: float = DEFAULT_BUILDING_HEIGHT,
) -> int:
    """Raise building footprints by their height, in place.

    Args:
        grid: Terrain grid to modify.
        features: GeoJSON-like FeatureCollection or iterable of features. Each
            feature's ``properties.height`` [m] is used, else ``default_height``.
        default_height: Height for features without one [m].

    Returns:
        Number of footprints burned.
    """
    burned = 0
    for feature in _iter_features(features):
        rings = _outer_rings(feature.get("geometry") or {})
        if not rings:
            logger.debug("Skipping building feature without polygon geometry")
            continue
        props = feature.get("properties") or {}
        height = props.get("height") or default_height
        for ring in rings:
            burn(grid, ring, float(height))
            burned += 1
    logger.debug("Burned %d building footprints", burned)
    return burned


def roughness_grid(
    header: GridHeader,
    features: Mapping[str, Any] | Iterable[Mapping[str, Any]],
    default: float = DEFAULT_MANNING,
) -> Grid | None:
    """Build a Manning roughness grid from zone polygons.

    Cells start at ``default``; each feature with a ``manning`` or
    ``roughness`` property overwrites the cells it covers, later features
    winning.

    Returns:
        The roughness grid, or None if no feature carries a roughness value.
    """
    grid = Grid.empty(header, fill=default)
    applied = 0
    for feature in _iter_features(features):
        props = feature.get("properties") or {}
        value = props.get("manning") or props.get("roughness")
        if not value:
            continue
        for ring in _outer_rings(feature.get("geometry") or {}):
            fill_polygon(grid, ring, float(value))
            applied += 1
    if applied == 0:
        return None
    return grid
