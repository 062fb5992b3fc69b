"""Utility modules for floodkit."""

from floodkit.utils.dem import DEMStatistics, analyze_dem, analyze_grid, read_dem, write_dem

__all__ = [
    "DEMStatistics",
    "analyze_dem",
    "analyze_grid",
    "read_dem",
    "write_dem",
]
