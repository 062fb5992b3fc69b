"""Tests for terrain grid construction from point clouds.

Tests cover grid geometry, last-write-wins binning, the gap-fill policies,
XYZ parsing, cell size estimation, and the builder facade.
"""

import numpy as np
import pytest

from floodkit.asc import parse_asc
from floodkit.terrain import GapFill, TerrainGridBuilder, build_grid, estimate_cellsize, parse_xyz


def _regular_points(ncols: int = 3, nrows: int = 3, spacing: float = 1.0) -> np.ndarray:
    """Points at the lower-left corner of each cell of a regular grid, z = x + 10 * y."""
    xs, ys = np.meshgrid(np.arange(ncols) * spacing, np.arange(nrows) * spacing)
    xs = xs.ravel()
    ys = ys.ravel()
    return np.column_stack([xs, ys, xs + 10.0 * ys])


class TestBuildGrid:
    """Tests for build_grid."""

    def test_geometry_uses_ceiling_division(self) -> None:
        points = [(0.0, 0.0, 1.0), (2.5, 1.1, 2.0)]
        grid = build_grid(points, cellsize=1.0)

        assert grid.ncols == 3
        assert grid.nrows == 2
        assert grid.header.xllcorner == 0.0
        assert grid.header.yllcorner == 0.0

    def test_single_point_gives_one_cell(self) -> None:
        grid = build_grid([(5.0, 7.0, 42.0)], cellsize=2.0)

        assert grid.shape == (1, 1)
        assert grid.get(0, 0) == 42.0

    def test_rows_run_north_to_south(self) -> None:
        """The northernmost point lands in row 0."""
        points = [(0.0, 0.0, 1.0), (0.0, 1.0, 2.0), (0.0, 2.0, 3.0)]
        grid = build_grid(points, cellsize=1.0)

        assert grid.shape == (2, 1)
        # y=2.0 sits on the upper edge and is clipped into the top row
        assert grid.get(0, 0) == 3.0
        assert grid.get(1, 0) == 1.0

    def test_last_write_wins(self) -> None:
        points = [(0.1, 0.1, 1.0), (0.2, 0.2, 2.0), (0.3, 0.3, 3.0), (1.5, 1.5, 9.0)]
        grid = build_grid(points, cellsize=1.0)

        assert grid.get(1, 0) == 3.0

    def test_decimal_lattice_bins_one_point_per_cell(self) -> None:
        """0.3 / 0.1 falls just below 3 in floating point but belongs to column 3."""
        points = [(x, 0.0, round(x * 10)) for x in (0.0, 0.1, 0.2, 0.3, 0.4)] + [(0.5, 0.0, 5.0)]
        grid = build_grid(points, cellsize=0.1, gap_fill=GapFill.constant, fallback_elevation=-1.0)

        assert grid.shape == (1, 5)
        np.testing.assert_array_equal(grid.data, [[0.0, 1.0, 2.0, 3.0, 5.0]])

    def test_decimal_lattice_extent(self) -> None:
        """An extent of 1.1 m in 0.1 m cells gives 11 columns, not 12."""
        grid = build_grid([(0.0, 0.0, 0.0), (1.1, 0.3, 0.0)], cellsize=0.1)

        assert grid.ncols == 11
        assert grid.nrows == 3

    def test_nearest_gap_fill(self) -> None:
        points = [(0.0, 0.0, 1.0), (4.0, 0.0, 4.0)]
        grid = build_grid(points, cellsize=1.0, gap_fill=GapFill.nearest)

        np.testing.assert_array_equal(grid.data, [[1.0, 1.0, 4.0, 4.0]])

    def test_constant_gap_fill(self) -> None:
        points = [(0.0, 0.0, 1.0), (3.0, 0.0, 4.0)]
        grid = build_grid(points, cellsize=1.0, gap_fill="constant", fallback_elevation=-1.0)

        np.testing.assert_array_equal(grid.data, [[1.0, -1.0, 4.0]])

    def test_constant_gap_fill_requires_fallback(self) -> None:
        with pytest.raises(ValueError, match="fallback_elevation"):
            build_grid([(0.0, 0.0, 1.0)], cellsize=1.0, gap_fill=GapFill.constant)

    def test_neighbor_mean_gap_fill(self) -> None:
        points = [(0.0, 0.0, 2.0), (3.0, 0.0, 4.0)]
        grid = build_grid(points, cellsize=1.0, gap_fill=GapFill.neighbor_mean)

        np.testing.assert_allclose(grid.data, [[2.0, 3.0, 4.0]])

    def test_neighbor_mean_leaves_unreachable_cells_nodata(self) -> None:
        points = [(0.0, 0.0, 2.0), (5.0, 0.0, 4.0)]
        grid = build_grid(points, cellsize=1.0, gap_fill=GapFill.neighbor_mean)

        assert grid.shape == (1, 5)
        assert grid.get(0, 1) == 2.0
        assert grid.is_nodata(0, 2)
        assert grid.get(0, 3) == 4.0

    def test_neighbor_mean_uses_fallback_for_leftovers(self) -> None:
        points = [(0.0, 0.0, 2.0), (5.0, 0.0, 4.0)]
        grid = build_grid(points, cellsize=1.0, gap_fill=GapFill.neighbor_mean, fallback_elevation=0.0)

        assert grid.get(0, 2) == 0.0

    def test_gap_fill_is_deterministic(self) -> None:
        rng = np.random.default_rng(0)
        points = rng.uniform(0.0, 20.0, size=(40, 3))

        first = build_grid(points, cellsize=1.0)
        second = build_grid(points, cellsize=1.0)

        np.testing.assert_array_equal(first.data, second.data)
        assert not first.nodata_mask().any()

    def test_rejects_empty_points(self) -> None:
        with pytest.raises(ValueError, match="Empty"):
            build_grid(np.empty((0, 3)), cellsize=1.0)

    def test_rejects_non_positive_cellsize(self) -> None:
        with pytest.raises(ValueError, match="cellsize"):
            build_grid([(0.0, 0.0, 0.0)], cellsize=0.0)

    def test_rejects_non_finite_points(self) -> None:
        with pytest.raises(ValueError, match="non-finite"):
            build_grid([(0.0, np.nan, 0.0)], cellsize=1.0)


class TestParseXyz:
    """Tests for parse_xyz."""

    def test_parses_whitespace_lines(self) -> None:
        points = parse_xyz("0 0 1.5\n1\t0\t2.5\n\n# comment\n2 0\n")

        np.testing.assert_array_equal(points, [[0.0, 0.0, 1.5], [1.0, 0.0, 2.5]])

    def test_empty_text_gives_empty_array(self) -> None:
        assert parse_xyz("").shape == (0, 3)


class TestEstimateCellsize:
    """Tests for estimate_cellsize."""

    def test_smallest_x_spacing(self) -> None:
        assert estimate_cellsize(_regular_points(spacing=0.5)) == 0.5

    def test_rounds_to_millimetres(self) -> None:
        points = [(0.0, 0.0, 0.0), (1.00049, 0.0, 0.0)]
        assert estimate_cellsize(points) == 1.0

    def test_defaults_to_one_without_spacing(self) -> None:
        assert estimate_cellsize([(3.0, 0.0, 0.0), (3.0, 5.0, 0.0)]) == 1.0


class TestTerrainGridBuilder:
    """Tests for the TerrainGridBuilder facade."""

    def test_build_and_to_ascii(self) -> None:
        builder = TerrainGridBuilder(cellsize=1.0)
        grid = builder.build(_regular_points())

        parsed = parse_asc(builder.to_ascii())
        np.testing.assert_array_equal(parsed.data, grid.data)

    def test_estimates_cellsize_when_unset(self) -> None:
        builder = TerrainGridBuilder()
        grid = builder.build(_regular_points(ncols=5, nrows=5, spacing=2.0))

        assert grid.header.cellsize == 2.0
        assert grid.shape == (4, 4)

    def test_build_from_xyz(self) -> None:
        builder = TerrainGridBuilder(cellsize=1.0)
        grid = builder.build_from_xyz("0 0 1\n1 0 2\n0 1 3\n1 1 4\n")

        assert grid.shape == (1, 1)
        assert grid.get(0, 0) == 4.0

    def test_grid_before_build_raises(self) -> None:
        with pytest.raises(RuntimeError, match="build"):
            TerrainGridBuilder().to_ascii()
