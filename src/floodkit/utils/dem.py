"""DEM (Digital Elevation Model) raster interop and statistics.

This module moves terrain grids between floodkit's Grid and raster files
readable by rasterio (e.g. GeoTIFF), and computes elevation statistics and
hypsometric curves for them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import rasterio
from rasterio.errors import RasterioIOError

from floodkit.grid import DEFAULT_NODATA, Grid, GridHeader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DEMStatistics:
    """Statistics computed from a terrain grid.

    Attributes:
        min_elevation: Minimum elevation value [m].
        max_elevation: Maximum elevation value [m].
        mean_elevation: Mean elevation value [m].
        median_elevation: Median elevation value [m].
        valid_cells: Number of cells with data.
        hypsometric_curve: Array of shape (101,) containing elevation values
            at percentiles 0-100.
    """

    min_elevation: float
    max_elevation: float
    mean_elevation: float
    median_elevation: float
    valid_cells: int
    hypsometric_curve: np.ndarray

    def __repr__(self) -> str:
        return (
            f"DEMStatistics(\n"
            f"  min_elevation={self.min_elevation:.2f},\n"
            f"  max_elevation={self.max_elevation:.2f},\n"
            f"  mean_elevation={self.mean_elevation:.2f},\n"
            f"  median_elevation={self.median_elevation:.2f},\n"
            f"  valid_cells={self.valid_cells},\n"
            f"  hypsometric_curve=<array shape={self.hypsometric_curve.shape}>\n"
            f")"
        )


def read_dem(dem_path: str | Path) -> Grid:
    """Read the first band of a north-up raster with square cells into a Grid.

    Raises:
        FileNotFoundError: If the specified file does not exist.
        ValueError: If the file cannot be read, is rotated, or has
            non-square cells.
    """
    dem_path = Path(dem_path)
    if not dem_path.exists():
        raise FileNotFoundError(f"DEM file not found: {dem_path}")

    try:
        with rasterio.open(dem_path) as src:
            data = src.read(1).astype(np.float64)
            nodata = src.nodata
            transform = src.transform
    except RasterioIOError as e:
        raise ValueError(f"Invalid raster file: {dem_path}") from e

    if transform.b != 0 or transform.d != 0:
        raise ValueError(f"Rotated rasters are not supported: {dem_path}")
    if not np.isclose(transform.a, -transform.e):
        raise ValueError(f"Raster cells must be square, got {transform.a} x {-transform.e}: {dem_path}")

    nrows, ncols = data.shape
    cellsize = float(transform.a)
    header = GridHeader(
        ncols=ncols,
        nrows=nrows,
        xllcorner=float(transform.c),
        yllcorner=float(transform.f) - nrows * cellsize,
        cellsize=cellsize,
        nodata_value=DEFAULT_NODATA if nodata is None or np.isnan(nodata) else float(nodata),
    )
    if nodata is not None and not np.isnan(nodata):
        data[data == nodata] = np.nan
    data[~np.isfinite(data)] = np.nan

    logger.debug("Read DEM %s: %dx%d cells of %.3f m", dem_path.name, nrows, ncols, cellsize)
    return Grid(header=header, data=data)


def write_dem(grid: Grid, dem_path: str | Path, crs: str | None = None, driver: str = "GTiff") -> Path:
    """Write a Grid as a single-band float32 raster.

    NODATA cells are written as the header's nodata value.
    """
    dem_path = Path(dem_path)
    profile = {
        "driver": driver,
        "height": grid.nrows,
        "width": grid.ncols,
        "count": 1,
        "dtype": "float32",
        "transform": grid.transform,
        "nodata": grid.header.nodata_value,
    }
    if crs is not None:
        profile["crs"] = crs
    with rasterio.open(dem_path, "w", **profile) as dst:
        dst.write(grid.filled().astype(np.float32), 1)
    return dem_path


def analyze_grid(grid: Grid) -> DEMStatistics:
    """Compute elevation statistics over the grid's cells with data.

    Raises:
        ValueError: If every cell is NODATA.
    """
    valid_data = grid.data[np.isfinite(grid.data)].astype(np.float64)
    if valid_data.size == 0:
        raise ValueError("All cells are NODATA")

    return DEMStatistics(
        min_elevation=float(np.min(valid_data)),
        max_elevation=float(np.max(valid_data)),
        mean_elevation=float(np.mean(valid_data)),
        median_elevation=float(np.median(valid_data)),
        valid_cells=int(valid_data.size),
        hypsometric_curve=np.percentile(valid_data, np.arange(101)),
    )


def analyze_dem(dem_path: str | Path) -> DEMStatistics:
    """Read a DEM raster file and compute its elevation statistics."""
    return analyze_grid(read_dem(dem_path))
