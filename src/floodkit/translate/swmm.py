"""Pipe network solver (SWMM) input rendering.

Renders a NetworkTopology and a rain series into ``.inp`` text. Nodes are
classified into junctions, outfalls, and storage units; when no outfall is
declared the lowest junction becomes one. Conduit roughness is given as a
Strickler coefficient and written as Manning's n.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from floodkit.config import NetworkRunConfig
from floodkit.errors import TranslationError
from floodkit.network import Edge, NetworkTopology, Node, NodeKind, ProfileShape
from floodkit.translate.common import (
    RainStep,
    format_clock,
    format_interval,
    min_gap,
    parse_minutes,
    rain_steps,
)

logger = logging.getLogger(__name__)

__all__ = [
    "SwmmInput",
    "format_clock",
    "gauge_interval",
    "parse_minutes",
    "render_inp",
]

# Nodes deeper than this are given their rim-derived depth [m]
_MIN_DEPTH = 0.001


@dataclass
class SwmmInput:
    """Rendered ``.inp`` text and the defaults applied while rendering it."""

    text: str
    warnings: list[str] = field(default_factory=list)


def gauge_interval(series: Sequence[RainStep], override: float | str | None = None) -> str:
    """Rain gauge recording interval as ``H:MM``.

    Uses ``override`` when given, else the smallest gap between consecutive
    series times.

    Raises:
        TranslationError: If the series has fewer than two points, times are
            not strictly increasing, or the interval is under one minute.
    """
    if override is not None:
        minutes = parse_minutes(override)
    else:
        minutes = min_gap(rain_steps(series))
    if round(minutes) < 1:
        msg = f"Rain gauge interval must be at least one minute, got {minutes} min"
        raise TranslationError(msg)
    return format_interval(minutes)


def _section(name: str, columns: str | None = None, rule: str | None = None) -> list[str]:
    lines = [f"[{name}]"]
    if columns:
        lines.append(f";;{columns}")
    if rule:
        lines.append(f";;{rule}")
    return lines


def _classify(topology: NetworkTopology, warnings: list[str]) -> tuple[list[Node], list[Node], list[Node]]:
    junctions: list[Node] = []
    outfalls: list[Node] = []
    storage: list[Node] = []
    for node in topology.nodes.values():
        if node.kind is NodeKind.storage:
            storage.append(node)
        elif node.kind is NodeKind.outfall:
            outfalls.append(node)
        else:
            junctions.append(node)

    if not outfalls and junctions:
        lowest = min(junctions, key=lambda n: n.invert)
        junctions.remove(lowest)
        outfalls.append(lowest)
        msg = f"No outfall defined; node {lowest.id} (invert {lowest.invert:.3f}) used as outfall"
        logger.warning(msg)
        warnings.append(msg)
    return junctions, outfalls, storage


def _max_depth(node: Node, config: NetworkRunConfig) -> float:
    depth = config.default_max_depth
    if node.rim is not None and node.rim - node.invert > _MIN_DEPTH:
        depth = node.rim - node.invert
    if node.depth is not None and node.depth > 0:
        depth = node.depth
    return depth


def _conduit_geometry(
    edge: Edge, topology: NetworkTopology, config: NetworkRunConfig, warnings: list[str]
) -> tuple[float, float, float, float]:
    """Length, Manning n, inlet offset, outlet offset."""
    length = edge.length or 0.0
    if length <= 0:
        length = topology.edge_span(edge)
        if length <= 0:
            length = config.default_length

    if edge.roughness is None or edge.roughness <= 0:
        manning = config.default_roughness
        msg = f"Conduit {edge.id}: roughness missing, set to {manning}"
        logger.warning(msg)
        warnings.append(msg)
    else:
        manning = 1.0 / edge.roughness

    in_offset = 0.0
    out_offset = 0.0
    if edge.z1 is not None:
        in_offset = max(0.0, edge.z1 - topology.nodes[edge.from_node].invert)
    if edge.z2 is not None:
        out_offset = max(0.0, edge.z2 - topology.nodes[edge.to_node].invert)
    return length, manning, in_offset, out_offset


def _xsection(edge: Edge, config: NetworkRunConfig, warnings: list[str]) -> tuple[ProfileShape, list[float]]:
    profile = edge.profile
    height = profile.height or 0.0
    width = profile.width or 0.0

    shape = profile.shape
    if shape is None:
        shape = ProfileShape.rect_closed if width > height else ProfileShape.circular

    geom = [height, 0.0, 0.0, 0.0]
    if shape is ProfileShape.trapezoidal:
        geom[1] = width
        geom[2] = geom[3] = profile.side_slope
    elif shape.needs_width:
        geom[1] = width if width > 0 else height

    if geom[0] <= _MIN_DEPTH:
        geom[0] = config.default_profile_height
        msg = f"Conduit {edge.id}: profile height missing, set to {geom[0]:.3f} m"
        logger.warning(msg)
        warnings.append(msg)
    if shape.needs_width and geom[1] <= _MIN_DEPTH:
        geom[1] = config.default_profile_width
        msg = f"Conduit {edge.id}: profile width missing, set to {geom[1]:.3f} m"
        logger.warning(msg)
        warnings.append(msg)
    return shape, geom


def render_inp(
    topology: NetworkTopology,
    rain: Sequence[RainStep],
    config: NetworkRunConfig | None = None,
) -> SwmmInput:
    """Render a complete ``.inp`` file.

    Args:
        topology: Network nodes and edges.
        rain: Rain series in ``config.rain_units``; written as mm/h intensities.
        config: Run options; defaults when None.

    Returns:
        SwmmInput with the file text and the list of applied defaults.

    Raises:
        TranslationError: If an edge references a missing node, or the rain
            series has fewer than two points or non-increasing times.
    """
    config = config or NetworkRunConfig()
    topology.validate()
    steps = rain_steps(rain)
    interval = gauge_interval(rain, override=config.rain_interval)

    warnings: list[str] = []
    junctions, outfalls, storage = _classify(topology, warnings)

    start, end = config.start, config.end
    out: list[str] = []

    out += ["[TITLE]", config.title, ""]

    out += _section("OPTIONS")
    out += [
        f"FLOW_UNITS           {config.flow_units}",
        f"INFILTRATION         {config.infiltration}",
        f"FLOW_ROUTING         {config.routing}",
        f"START_DATE           {start:%m/%d/%Y}",
        f"START_TIME           {start:%H:%M:%S}",
        f"END_DATE             {end:%m/%d/%Y}",
        f"END_TIME             {end:%H:%M:%S}",
        f"REPORT_STEP          {config.report_step}",
        f"WET_STEP             {config.wet_step}",
        f"DRY_STEP             {config.dry_step}",
        f"ROUTING_STEP         {config.routing_step}",
        "ALLOW_PONDING        YES",
        "SKIP_STEADY_STATE    NO",
        "",
    ]

    out += _section("REPORT")
    out += ["INPUT NO", "NODES ALL", "LINKS ALL", ""]

    out += _section(
        "RAINGAGES",
        "Name           Format    Interval SCF      Source",
        "-------------- --------- -------- -------- ----------",
    )
    out.append(
        f"{config.gauge_name:<16} INTENSITY {interval:<8} 1.0      TIMESERIES {config.timeseries_name}"
    )
    out.append("")

    inflows: list[str] = []

    out += _section(
        "JUNCTIONS",
        "Name           Elevation  MaxDepth   InitDepth  SurDepth   Aponded",
        "-------------- ---------- ---------- ---------- ---------- ----------",
    )
    for node in junctions:
        surcharge = config.sealed_surcharge_depth if node.sealed else 0.0
        out.append(
            f"{node.id:<16} {node.invert:<10.3f} {_max_depth(node, config):<10.3f} 0          {surcharge:<10.3f} 0"
        )
        net = node.inflow - node.outflow
        if net != 0:
            inflows.append(f'{node.id:<16} FLOW             ""               FLOW     1.0      1.0      {net / 1000.0:.6f}')
    out.append("")

    out += _section(
        "OUTFALLS",
        "Name           Elevation  Type       Stage Data       Gated    RouteTo",
        "-------------- ---------- ---------- ---------------- -------- ----------------",
    )
    out += [f"{node.id:<16} {node.invert:<10.3f} FREE" for node in outfalls]
    out.append("")

    out += _section(
        "STORAGE",
        "Name           Elev       MaxDepth   InitDepth  Shape      Curve Name/Params",
        "-------------- ---------- ---------- ---------- ---------- ----------------------------",
    )
    for node in storage:
        depth = _max_depth(node, config)
        volume = node.volume if node.volume and node.volume > 0 else config.default_storage_volume
        area = volume / depth
        out.append(
            f"{node.id:<16} {node.invert:<10.3f} {depth:<10.3f} 0          FUNCTIONAL {area:.2f}      0          0"
        )
        if node.inflow > 0:
            inflows.append(
                f'{node.id:<16} FLOW             ""               FLOW     1.0      1.0      {node.inflow / 1000.0:.6f}'
            )
    out.append("")

    out += _section("COORDINATES", "Node           X-Coord    Y-Coord", "-------------- ---------- ----------")
    out += [f"{node.id:<16} {node.x:<10.3f} {node.y:.3f}" for node in (*junctions, *outfalls, *storage)]
    out.append("")

    conduits = _section(
        "CONDUITS",
        "Name           Node1          Node2          Length     Roughness  InOffset   OutOffset  InitFlow   MaxFlow",
        "-------------- -------------- -------------- ---------- ---------- ---------- ---------- ---------- ----------",
    )
    xsections = _section(
        "XSECTIONS",
        "Link           Shape      Geom1      Geom2      Geom3      Geom4      Barrels",
        "-------------- ---------- ---------- ---------- ---------- ---------- ----------",
    )
    for edge in topology.edges.values():
        length, manning, in_offset, out_offset = _conduit_geometry(edge, topology, config, warnings)
        conduits.append(
            f"{edge.id:<16} {edge.from_node:<14} {edge.to_node:<14} {length:<10.3f} {manning:<10.4f} "
            f"{in_offset:<10.3f} {out_offset:<10.3f} 0          0"
        )
        shape, geom = _xsection(edge, config, warnings)
        xsections.append(
            f"{edge.id:<16} {shape.value:<10} {geom[0]:<10.3f} {geom[1]:<10.3f} {geom[2]:<10.3f} {geom[3]:<10.3f} 1"
        )
    out += conduits + [""] + xsections + [""]

    if inflows:
        out += _section(
            "INFLOWS",
            "Node           Constituent      Time Series      Type     Mfactor  Sfactor  Baseline",
            "-------------- ---------------- ---------------- -------- -------- -------- --------",
        )
        out += inflows + [""]

    out += _section("TIMESERIES", "Name           Time       Value", "-------------- ---------- ----------")
    for minutes, intensity in steps:
        value = config.rain_units.to_mm_per_hour(intensity)
        out.append(f"{config.timeseries_name:<16} {format_clock(minutes):<10} {value:.4f}")
    out.append("")

    logger.debug(
        "Rendered network input: %d junctions, %d outfalls, %d storage, %d conduits, %d rain steps",
        len(junctions),
        len(outfalls),
        len(storage),
        len(topology.edges),
        len(steps),
    )
    return SwmmInput(text="\n".join(out), warnings=warnings)
