"""floodkit terrain, rain, and solver I/O engine.

Builds raster terrain from elevation points and polygon overlays, synthesizes
design-storm rainfall, renders inputs for a 2-D raster flood solver and a
1-D pipe network solver, and parses the network solver's tabular report.
"""

from floodkit.asc import DepthSummary, parse_asc, read_asc, serialize_asc, summarize_depth_grid, write_asc
from floodkit.config import FloodRunConfig, NetworkRunConfig, RainUnits
from floodkit.errors import FloodkitError, FormatError, PartialDataWarning, TranslationError
from floodkit.grid import Grid, GridHeader
from floodkit.network import Edge, NetworkTopology, Node, NodeKind, Profile, ProfileShape
from floodkit.rain import (
    DepthDurationTable,
    RainEventPoint,
    block_series,
    design_storm_series,
    kostra_row,
    series_to_dataframe,
)
from floodkit.rasterize import burn, burn_buildings, cells_in_polygon, fill_polygon, point_in_polygon, roughness_grid
from floodkit.report import (
    disambiguate_day_time,
    get_row_type,
    list_row_types,
    parse_report,
    parse_row,
    parse_table,
    register_row_type,
)
from floodkit.terrain import GapFill, TerrainGridBuilder, build_grid, parse_xyz
from floodkit.translate import build_lisflood_inputs, render_inp

__version__ = "0.1.0"

__all__ = [
    "DepthDurationTable",
    "DepthSummary",
    "Edge",
    "FloodRunConfig",
    "FloodkitError",
    "FormatError",
    "GapFill",
    "Grid",
    "GridHeader",
    "NetworkRunConfig",
    "NetworkTopology",
    "Node",
    "NodeKind",
    "PartialDataWarning",
    "Profile",
    "ProfileShape",
    "RainEventPoint",
    "RainUnits",
    "TerrainGridBuilder",
    "TranslationError",
    "block_series",
    "build_grid",
    "build_lisflood_inputs",
    "burn",
    "burn_buildings",
    "cells_in_polygon",
    "design_storm_series",
    "disambiguate_day_time",
    "fill_polygon",
    "get_row_type",
    "kostra_row",
    "list_row_types",
    "parse_asc",
    "parse_report",
    "parse_row",
    "parse_table",
    "parse_xyz",
    "point_in_polygon",
    "read_asc",
    "register_row_type",
    "render_inp",
    "roughness_grid",
    "serialize_asc",
    "series_to_dataframe",
    "summarize_depth_grid",
    "write_asc",
]
