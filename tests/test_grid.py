"""Tests for the grid buffer: GridHeader and Grid.

Tests cover header validation, buffer ownership, bounds-checked access,
NODATA handling, and min/max over valid cells.
"""

import numpy as np
import pytest
from pydantic import ValidationError

from floodkit.grid import DEFAULT_NODATA, Grid, GridHeader


def _header(ncols: int = 3, nrows: int = 2, cellsize: float = 10.0) -> GridHeader:
    return GridHeader(ncols=ncols, nrows=nrows, xllcorner=100.0, yllcorner=200.0, cellsize=cellsize)


class TestGridHeader:
    """Tests for the GridHeader validated Pydantic model."""

    def test_defaults(self) -> None:
        """Origin defaults to zero, cellsize to 1 and nodata to -9999."""
        header = GridHeader(ncols=2, nrows=3)

        assert header.xllcorner == 0.0
        assert header.yllcorner == 0.0
        assert header.cellsize == 1.0
        assert header.nodata_value == DEFAULT_NODATA

    def test_shape_and_size(self) -> None:
        header = _header(ncols=4, nrows=5)

        assert header.shape == (5, 4)
        assert header.size == 20

    @pytest.mark.parametrize("field", ["ncols", "nrows"])
    def test_rejects_non_positive_dimensions(self, field: str) -> None:
        """Zero or negative dimensions raise ValidationError."""
        kwargs = {"ncols": 2, "nrows": 2, field: 0}
        with pytest.raises(ValidationError, match="positive"):
            GridHeader(**kwargs)

    def test_rejects_non_positive_cellsize(self) -> None:
        with pytest.raises(ValidationError, match="cellsize"):
            GridHeader(ncols=2, nrows=2, cellsize=-1.0)

    def test_is_frozen(self) -> None:
        header = _header()
        with pytest.raises(ValidationError):
            header.ncols = 10


class TestGrid:
    """Tests for the Grid container."""

    def test_buffer_is_float32_copy(self) -> None:
        """Grid copies the input buffer to a C-contiguous float32 array."""
        source = np.arange(6, dtype=np.float64).reshape(2, 3)
        grid = Grid(header=_header(), data=source)

        assert grid.data.dtype == np.float32
        assert grid.data.flags["C_CONTIGUOUS"]
        source[0, 0] = 99.0
        assert grid.get(0, 0) == 0.0

    def test_rejects_shape_mismatch(self) -> None:
        with pytest.raises(ValueError, match="does not match header shape"):
            Grid(header=_header(), data=np.zeros((3, 3)))

    def test_empty_is_all_nodata(self) -> None:
        grid = Grid.empty(_header())

        assert grid.nodata_mask().all()

    def test_empty_with_fill(self) -> None:
        grid = Grid.empty(_header(), fill=5.0)

        np.testing.assert_array_equal(grid.data, np.full((2, 3), 5.0))

    def test_from_array_converts_sentinel(self) -> None:
        """Values within tolerance of the nodata value become NaN."""
        arr = np.array([[1.0, -9999.0, 2.0], [-9999.000001, 3.0, 4.0]])
        grid = Grid.from_array(arr, _header())

        assert grid.is_nodata(0, 1)
        assert grid.is_nodata(1, 0)
        assert not grid.is_nodata(0, 0)

    def test_get_set_round_trip(self) -> None:
        grid = Grid.empty(_header(), fill=0.0)
        grid.set(1, 2, 7.5)

        assert grid.get(1, 2) == 7.5

    @pytest.mark.parametrize(("row", "col"), [(-1, 0), (0, -1), (2, 0), (0, 3)])
    def test_accessors_are_bounds_checked(self, row: int, col: int) -> None:
        grid = Grid.empty(_header(), fill=0.0)

        with pytest.raises(IndexError):
            grid.get(row, col)
        with pytest.raises(IndexError):
            grid.set(row, col, 1.0)

    def test_min_max_ignore_nodata(self) -> None:
        arr = np.array([[1.0, np.nan, 5.0], [-2.0, np.nan, 3.0]])
        grid = Grid(header=_header(), data=arr)

        assert grid.min == -2.0
        assert grid.max == 5.0
        valid = grid.data[~grid.nodata_mask()]
        assert np.all((valid >= grid.min) & (valid <= grid.max))

    def test_all_nodata_min_max_are_zero(self) -> None:
        grid = Grid.empty(_header())

        assert grid.min == 0.0
        assert grid.max == 0.0

    def test_cell_center_row_zero_is_north(self) -> None:
        """Row 0 maps to the top row: y = yll + (nrows - 1) * cellsize."""
        grid = Grid.empty(_header())

        assert grid.cell_center(0, 0) == (100.0, 210.0)
        assert grid.cell_center(1, 2) == (120.0, 200.0)

    def test_cell_index_inverts_cell_center(self) -> None:
        grid = Grid.empty(_header())

        for row in range(grid.nrows):
            for col in range(grid.ncols):
                assert grid.cell_index(*grid.cell_center(row, col)) == (row, col)

    def test_cell_index_outside_is_none(self) -> None:
        grid = Grid.empty(_header())

        assert grid.cell_index(0.0, 0.0) is None

    def test_filled_restores_sentinel(self) -> None:
        grid = Grid(header=_header(), data=np.array([[1.0, np.nan, 2.0], [3.0, 4.0, np.nan]]))
        filled = grid.filled()

        assert filled[0, 1] == -9999.0
        assert filled[1, 2] == -9999.0
        assert np.isnan(grid.data[0, 1])

    def test_transform_origin_is_top_left(self) -> None:
        grid = Grid.empty(_header())
        transform = grid.transform

        assert transform.c == 100.0
        assert transform.f == 220.0
        assert transform.a == 10.0
        assert transform.e == -10.0

    def test_copy_is_independent(self) -> None:
        grid = Grid.empty(_header(), fill=1.0)
        clone = grid.copy()
        clone.set(0, 0, 9.0)

        assert grid.get(0, 0) == 1.0

    def test_repr(self) -> None:
        grid = Grid.empty(_header(), fill=1.0)

        assert repr(grid).startswith("Grid(nrows=2, ncols=3")
