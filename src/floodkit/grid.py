"""Grid buffer data structures.

This module defines the raster containers shared by every other component:
- GridHeader: Validated ESRI ASCII grid header metadata
- Grid: Header plus an exclusively owned float32 cell buffer

Cells are stored row-major, north to south (row 0 is the top row, matching
the ASC convention). NODATA cells are NaN internally and are re-emitted as the
header's ``nodata_value`` on serialization.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from pydantic import BaseModel, ConfigDict, field_validator
from rasterio.transform import from_origin

from floodkit.errors import PartialDataWarning

if TYPE_CHECKING:
    from affine import Affine

DEFAULT_NODATA: float = -9999.0

# Absolute tolerance when comparing a value against the NODATA sentinel
NODATA_TOLERANCE: float = 1e-5


class GridHeader(BaseModel):
    """Validated grid header.

    Attributes:
        ncols: Number of columns (> 0).
        nrows: Number of rows (> 0).
        xllcorner: X coordinate of the lower-left corner [m].
        yllcorner: Y coordinate of the lower-left corner [m].
        cellsize: Cell edge length [m] (> 0).
        nodata_value: Sentinel value marking cells without data.
    """

    model_config = ConfigDict(frozen=True)

    ncols: int
    nrows: int
    xllcorner: float = 0.0
    yllcorner: float = 0.0
    cellsize: float = 1.0
    nodata_value: float = DEFAULT_NODATA

    @field_validator("ncols", "nrows")
    @classmethod
    def validate_dimension(cls, v: int) -> int:
        """Dimensions must be positive integers."""
        if v <= 0:
            msg = f"grid dimensions must be positive, got {v}"
            raise ValueError(msg)
        return v

    @field_validator("cellsize")
    @classmethod
    def validate_cellsize(cls, v: float) -> float:
        """Cell size must be positive and finite."""
        if not np.isfinite(v) or v <= 0:
            msg = f"cellsize must be positive, got {v}"
            raise ValueError(msg)
        return v

    @property
    def size(self) -> int:
        """Number of cells described by the header."""
        return self.ncols * self.nrows

    @property
    def shape(self) -> tuple[int, int]:
        """Buffer shape as (nrows, ncols)."""
        return (self.nrows, self.ncols)


@dataclass(eq=False)
class Grid:
    """Fixed-size 2-D raster with header metadata.

    The buffer is copied on construction so the grid exclusively owns it;
    its shape never changes afterwards.

    Attributes:
        header: Grid header metadata.
        data: float32 array of shape (nrows, ncols), NaN for NODATA cells.
        diagnostics: Recoverable problems met while building the grid.
    """

    header: GridHeader
    data: np.ndarray
    diagnostics: list[PartialDataWarning] = field(default_factory=list)

    def __post_init__(self) -> None:
        arr = np.array(self.data, dtype=np.float32, order="C", copy=True)
        if arr.shape != self.header.shape:
            msg = f"data shape {arr.shape} does not match header shape {self.header.shape}"
            raise ValueError(msg)
        self.data = arr

    @classmethod
    def empty(cls, header: GridHeader, fill: float = np.nan) -> Grid:
        """Create a grid with every cell set to ``fill`` (NODATA by default)."""
        return cls(header=header, data=np.full(header.shape, fill, dtype=np.float32))

    @classmethod
    def from_array(cls, array: np.ndarray, header: GridHeader) -> Grid:
        """Create a grid from an array that may contain the NODATA sentinel.

        Values within NODATA_TOLERANCE of ``header.nodata_value`` become NaN.
        """
        arr = np.asarray(array, dtype=np.float64)
        arr = np.where(np.abs(arr - header.nodata_value) < NODATA_TOLERANCE, np.nan, arr)
        return cls(header=header, data=arr)

    @property
    def nrows(self) -> int:
        return self.header.nrows

    @property
    def ncols(self) -> int:
        return self.header.ncols

    @property
    def shape(self) -> tuple[int, int]:
        return self.header.shape

    @property
    def size(self) -> int:
        return self.header.size

    def _check_bounds(self, row: int, col: int) -> None:
        if not (0 <= row < self.nrows and 0 <= col < self.ncols):
            msg = f"cell ({row}, {col}) outside grid of shape {self.shape}"
            raise IndexError(msg)

    def get(self, row: int, col: int) -> float:
        """Return the value at (row, col); NaN for NODATA."""
        self._check_bounds(row, col)
        return float(self.data[row, col])

    def set(self, row: int, col: int, value: float) -> None:
        """Set the value at (row, col)."""
        self._check_bounds(row, col)
        self.data[row, col] = value

    def is_nodata(self, row: int, col: int) -> bool:
        self._check_bounds(row, col)
        return bool(np.isnan(self.data[row, col]))

    def nodata_mask(self) -> np.ndarray:
        """Boolean mask of NODATA cells."""
        return np.isnan(self.data)

    @property
    def min(self) -> float:
        """Minimum over non-NODATA cells (0.0 for an all-NODATA grid)."""
        valid = self.data[~np.isnan(self.data)]
        return float(valid.min()) if valid.size else 0.0

    @property
    def max(self) -> float:
        """Maximum over non-NODATA cells (0.0 for an all-NODATA grid)."""
        valid = self.data[~np.isnan(self.data)]
        return float(valid.max()) if valid.size else 0.0

    def cell_center(self, row: int, col: int) -> tuple[float, float]:
        """World coordinates of a cell's reference point.

        Uses ``x = xllcorner + col * cellsize`` and
        ``y = yllcorner + (nrows - 1 - row) * cellsize``.
        """
        h = self.header
        return (h.xllcorner + col * h.cellsize, h.yllcorner + (h.nrows - 1 - row) * h.cellsize)

    def cell_index(self, x: float, y: float) -> tuple[int, int] | None:
        """Nearest (row, col) for a world coordinate, or None if outside the grid."""
        h = self.header
        col = int(round((x - h.xllcorner) / h.cellsize))
        row = (h.nrows - 1) - int(round((y - h.yllcorner) / h.cellsize))
        if 0 <= row < h.nrows and 0 <= col < h.ncols:
            return row, col
        return None

    @property
    def transform(self) -> Affine:
        """Affine transform of the grid (top-left origin, north-up)."""
        h = self.header
        return from_origin(h.xllcorner, h.yllcorner + h.nrows * h.cellsize, h.cellsize, h.cellsize)

    def filled(self) -> np.ndarray:
        """Copy of the buffer with NODATA cells replaced by the sentinel value."""
        return np.where(np.isnan(self.data), np.float32(self.header.nodata_value), self.data)

    def copy(self) -> Grid:
        return Grid(header=self.header, data=self.data, diagnostics=list(self.diagnostics))

    def __repr__(self) -> str:
        return (
            f"Grid(nrows={self.nrows}, ncols={self.ncols}, cellsize={self.header.cellsize}, "
            f"min={self.min:.3f}, max={self.max:.3f})"
        )
