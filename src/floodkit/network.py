"""Pipe network topology consumed by the network-solver translator.

This module defines static network containers:
- Node: Manhole, outfall, or storage node
- Edge: Conduit between two nodes
- Profile: Conduit cross-section
- NetworkTopology: Nodes and edges keyed by id
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from floodkit.errors import TranslationError


class NodeKind(str, Enum):
    """Role of a node in the network."""

    junction = "junction"
    outfall = "outfall"
    storage = "storage"


class ProfileShape(str, Enum):
    """Conduit cross-section shapes, named as the network solver spells them."""

    circular = "CIRCULAR"
    egg = "EGG"
    rect_closed = "RECT_CLOSED"
    rect_open = "RECT_OPEN"
    trapezoidal = "TRAPEZOIDAL"
    arch = "ARCH"

    @classmethod
    def from_code(cls, code: int | str | None) -> ProfileShape | None:
        """Map an ISYBAU profile code to a shape; None for unknown codes."""
        try:
            return _PROFILE_CODES.get(int(code))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None

    @property
    def needs_width(self) -> bool:
        """Whether the shape's second geometry value is a width."""
        return self in (ProfileShape.rect_closed, ProfileShape.rect_open, ProfileShape.trapezoidal, ProfileShape.arch)


_PROFILE_CODES: dict[int, ProfileShape] = {
    0: ProfileShape.circular,
    1: ProfileShape.egg,
    2: ProfileShape.arch,
    3: ProfileShape.rect_closed,
    5: ProfileShape.rect_open,
    7: ProfileShape.arch,
    8: ProfileShape.trapezoidal,
}


@dataclass(frozen=True)
class Profile:
    """Conduit cross-section.

    Attributes:
        shape: Cross-section shape. None picks RECT_CLOSED when the profile is
            wider than high and CIRCULAR otherwise.
        height: Height or diameter [m].
        width: Width [m] (bottom width for trapezoids).
        side_slope: Side slope of trapezoidal sections [run/rise].
    """

    shape: ProfileShape | None = None
    height: float | None = None
    width: float | None = None
    side_slope: float = 1.5


@dataclass(frozen=True)
class Node:
    """Network node.

    Attributes:
        id: Unique node id.
        x: Easting [m].
        y: Northing [m].
        invert: Invert (bottom) elevation [m].
        rim: Rim (cover) elevation [m], if known.
        depth: Explicit node depth [m]; overrides ``rim - invert``.
        kind: Junction, outfall, or storage.
        sealed: Pressure-tight manhole cover (no surface overflow).
        volume: Storage volume [m3] for storage nodes.
        inflow: Constant inflow [l/s].
        outflow: Constant withdrawal [l/s].
    """

    id: str
    x: float = 0.0
    y: float = 0.0
    invert: float = 0.0
    rim: float | None = None
    depth: float | None = None
    kind: NodeKind = NodeKind.junction
    sealed: bool = False
    volume: float | None = None
    inflow: float = 0.0
    outflow: float = 0.0


@dataclass(frozen=True)
class Edge:
    """Conduit between two nodes.

    Attributes:
        id: Unique edge id.
        from_node: Upstream node id.
        to_node: Downstream node id.
        length: Conduit length [m]; derived from node positions when missing.
        profile: Cross-section.
        roughness: Strickler coefficient kst [m^(1/3)/s]; converted to Manning n.
        z1: Upstream pipe invert [m], for the inlet offset.
        z2: Downstream pipe invert [m], for the outlet offset.
    """

    id: str
    from_node: str
    to_node: str
    length: float | None = None
    profile: Profile = field(default_factory=Profile)
    roughness: float | None = None
    z1: float | None = None
    z2: float | None = None


@dataclass
class NetworkTopology:
    """Nodes and edges keyed by id."""

    nodes: dict[str, Node] = field(default_factory=dict)
    edges: dict[str, Edge] = field(default_factory=dict)

    @classmethod
    def from_items(cls, nodes: Iterable[Node], edges: Iterable[Edge]) -> NetworkTopology:
        """Build a topology from node and edge lists.

        Raises:
            TranslationError: If a node or edge id is repeated.
        """
        topo = cls()
        for node in nodes:
            if node.id in topo.nodes:
                msg = f"Duplicate node id '{node.id}'"
                raise TranslationError(msg, ident=node.id)
            topo.nodes[node.id] = node
        for edge in edges:
            if edge.id in topo.edges:
                msg = f"Duplicate edge id '{edge.id}'"
                raise TranslationError(msg, ident=edge.id)
            topo.edges[edge.id] = edge
        return topo

    def validate(self) -> None:
        """Check that every edge endpoint exists.

        Raises:
            TranslationError: Naming the first edge with a dangling endpoint.
        """
        for edge in self.edges.values():
            for node_id in (edge.from_node, edge.to_node):
                if node_id not in self.nodes:
                    msg = f"Edge '{edge.id}' references unknown node '{node_id}'"
                    raise TranslationError(msg, ident=edge.id)

    def edge_span(self, edge: Edge) -> float:
        """Straight-line distance between an edge's endpoints [m]."""
        a = self.nodes[edge.from_node]
        b = self.nodes[edge.to_node]
        return math.hypot(a.x - b.x, a.y - b.y)

    def __len__(self) -> int:
        return len(self.nodes)
