"""
Graph materializer — dataset in, render-ready element set out.

``materialize`` turns (stakeholders, relationships, layout entries) into a
``MapElements`` of positioned, styled nodes and styled edges.  It is pure:
the same input always yields the same output, down to the serialized JSON.

Filtering
---------
1. Archived stakeholders are dropped.
2. Optionally, a stakeholder whose trimmed name equals its company's name
   (case-insensitive) is dropped.  Such rows are placeholder "company as
   person" records from imports; ``suppress_company_named`` turns this off.
3. A relationship is dropped unless both endpoints survived 1 and 2.

Positions
---------
Persisted entry if there is one, otherwise the radial fallback computed over
the *filtered* list.  Filtering therefore shifts fallback positions.

Styling
-------
    fill    ← sentiment            (themes.SENTIMENT_COLORS)
    shape   ← seniority            (themes.SENIORITY_SHAPES, "rounded" unset)
    border  ← company, first-seen  (themes.COMPANY_RING_COLORS, wraps at 48)
    size    ← influence            (geometry.influence_to_size)
    edge    ← relation type        (themes.RELATION_STYLES), width ← strength
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .geometry import MAX_NODE_SIZE, MIN_NODE_SIZE, convex_hull, influence_to_size
from .layout import PositionTable
from .models import (
    CompanyHull,
    Directionality,
    EdgeStyle,
    LayoutEntry,
    MapEdge,
    MapElements,
    MapNode,
    NodeStyle,
    Relationship,
    Stakeholder,
)
from .themes import (
    NO_COMPANY_COLOR,
    company_ring_color,
    relation_style,
    sentiment_color,
    seniority_shape,
)


@dataclass
class MaterializeOptions:
    """Knobs for ``materialize``."""
    suppress_company_named: bool = True
    fallback_radius: float = 300.0
    min_node_size: float = MIN_NODE_SIZE
    max_node_size: float = MAX_NODE_SIZE
    border_width: float = 4.0

    @classmethod
    def from_settings(cls, settings) -> "MaterializeOptions":
        return cls(
            suppress_company_named=settings.suppress_company_named,
            fallback_radius=settings.layout.fallback_radius,
            min_node_size=settings.layout.min_node_size,
            max_node_size=settings.layout.max_node_size,
        )


def is_company_placeholder(stakeholder: Stakeholder) -> bool:
    """True when the stakeholder's name is just its company's name."""
    if not stakeholder.company_name:
        return False
    return stakeholder.full_name.strip().lower() == stakeholder.company_name.strip().lower()


def build_company_color_map(stakeholders: Iterable[Stakeholder]) -> dict[str, str]:
    """Assign ring colors to companies in first-seen order."""
    colors: dict[str, str] = {}
    for s in stakeholders:
        if not s.company_id or s.company_id in colors:
            continue
        colors[s.company_id] = company_ring_color(len(colors))
    return colors


def graph_stakeholders(
    stakeholders: Iterable[Stakeholder], options: Optional[MaterializeOptions] = None
) -> list[Stakeholder]:
    """Stakeholders that get a node, in input order."""
    opts = options or MaterializeOptions()
    result = []
    for s in stakeholders:
        if not s.is_active:
            continue
        if opts.suppress_company_named and is_company_placeholder(s):
            continue
        result.append(s)
    return result


def edge_width(strength: Optional[int]) -> float:
    return max(1.0, (strength or 3) * 0.8)


def style_node(
    stakeholder: Stakeholder, company_colors: dict[str, str], options: MaterializeOptions
) -> NodeStyle:
    return NodeStyle(
        fill_color=sentiment_color(stakeholder.sentiment),
        shape=seniority_shape(stakeholder.seniority_level),
        border_color=company_colors.get(stakeholder.company_id or "", NO_COMPANY_COLOR),
        border_width=options.border_width,
        size=influence_to_size(
            stakeholder.influence_score, options.min_node_size, options.max_node_size
        ),
    )


def style_edge(relationship: Relationship) -> EdgeStyle:
    rs = relation_style(relationship.relation_type)
    return EdgeStyle(
        line_color=rs.color,
        dash=rs.dash,
        width=edge_width(relationship.strength),
        target_arrow=True,
        source_arrow=relationship.directionality == Directionality.BIDIRECTIONAL,
    )


def materialize(
    stakeholders: Iterable[Stakeholder],
    relationships: Iterable[Relationship],
    layouts: Iterable[LayoutEntry],
    options: Optional[MaterializeOptions] = None,
) -> MapElements:
    """Build the styled node/edge set for one dataset."""
    opts = options or MaterializeOptions()
    active = [s for s in stakeholders if s.is_active]
    company_colors = build_company_color_map(active)
    members = graph_stakeholders(active, opts)

    positions = PositionTable(map_id=None, fallback_radius=opts.fallback_radius)
    positions.load(layouts)
    positions.reconcile(s.id for s in members)

    nodes = []
    for s in members:
        x, y = positions.get_position(s.id)
        nodes.append(MapNode(
            id=s.id,
            label=s.full_name,
            company_id=s.company_id,
            company_name=s.company_name,
            x=x,
            y=y,
            persisted=positions.has_persisted(s.id),
            style=style_node(s, company_colors, opts),
        ))

    node_ids = {n.id for n in nodes}
    edges = []
    for r in relationships:
        if r.from_stakeholder_id not in node_ids or r.to_stakeholder_id not in node_ids:
            continue
        edges.append(MapEdge(
            id=r.id,
            source=r.from_stakeholder_id,
            target=r.to_stakeholder_id,
            relation_type=r.relation_type.value,
            strength=r.strength,
            style=style_edge(r),
        ))

    return MapElements(nodes=nodes, edges=edges)


# ---------------------------------------------------------------------------
# Overlays
# ---------------------------------------------------------------------------

def company_hulls(elements: MapElements, padding: float = 40.0) -> list[CompanyHull]:
    """One padded outline per company with at least 3 nodes.

    Companies appear in first-seen node order.  Hulls that collapse below 3
    vertices (collinear members) are skipped.
    """
    groups: dict[str, list[MapNode]] = {}
    for node in elements.nodes:
        if node.company_id:
            groups.setdefault(node.company_id, []).append(node)

    hulls = []
    for company_id, members in groups.items():
        if len(members) < 3:
            continue
        points = convex_hull([(n.x, n.y) for n in members], padding=padding)
        if len(points) < 3:
            continue
        hulls.append(CompanyHull(
            company_id=company_id,
            company_name=members[0].company_name,
            color=members[0].style.border_color,
            points=points,
        ))
    return hulls


def neighborhood(elements: MapElements, node_id: str) -> tuple[set[str], set[str]]:
    """Node ids and edge ids within one hop of ``node_id`` (itself included)."""
    nodes = {node_id}
    edges = set()
    for edge in elements.edges:
        if edge.source == node_id or edge.target == node_id:
            edges.add(edge.id)
            nodes.add(edge.source)
            nodes.add(edge.target)
    return nodes, edges
