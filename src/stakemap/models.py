"""
Data models for StakeMap — the stakeholder map ontology.

The map is built from four record kinds owned by the external data store:

    Company        — an organisation (read-only here; used for grouping)
    Stakeholder    — a person tracked within a company
    Relationship   — a directed, typed, strength-weighted link between two
                     stakeholders
    LayoutEntry    — a persisted 2D position for a stakeholder within a map

Everything the core produces for display is also modelled here: ``NodeStyle``
and ``EdgeStyle`` are the concrete style records picked from the styling
tables in ``themes``, and ``MapNode`` / ``MapEdge`` / ``MapElements`` are the
render-ready element set emitted by the materializer.

Enumerations
------------
The three fixed enumerations drive styling:

    Sentiment      — ALLY, NEUTRAL, OPPONENT, UNKNOWN      → node fill color
    Seniority      — C_LEVEL, VP, DIRECTOR, MANAGER, IC    → node shape
    RelationType   — eight relation categories             → edge color/dash
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


DEFAULT_MAP_ID = "00000000-0000-0000-0000-000000000001"


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Seniority(str, Enum):
    C_LEVEL = "C_LEVEL"
    VP = "VP"
    DIRECTOR = "DIRECTOR"
    MANAGER = "MANAGER"
    IC = "IC"


class Sentiment(str, Enum):
    ALLY = "ALLY"
    NEUTRAL = "NEUTRAL"
    OPPONENT = "OPPONENT"
    UNKNOWN = "UNKNOWN"


class RelationType(str, Enum):
    REPORTS_TO = "REPORTS_TO"
    PEER_OF = "PEER_OF"
    INFLUENCES = "INFLUENCES"
    COLLABORATES_WITH = "COLLABORATES_WITH"
    ADVISES = "ADVISES"
    BLOCKS = "BLOCKS"
    SPONSORS = "SPONSORS"
    GATEKEEPER_FOR = "GATEKEEPER_FOR"


class Directionality(str, Enum):
    DIRECTIONAL = "directional"
    BIDIRECTIONAL = "bidirectional"


class StakeholderStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


# ---------------------------------------------------------------------------
# Stored entities
# ---------------------------------------------------------------------------

class Company(BaseModel):
    """A company.  Only ``id`` and ``name`` matter to the map."""
    id: str
    name: str
    industry: Optional[str] = None
    region: Optional[str] = None


class Stakeholder(BaseModel):
    """A person tracked within a company.

    ``company_name`` is the display name joined in from the companies table
    when stakeholders are listed; it is ``None`` when the join was not made.

    Archived stakeholders are excluded from every graph view.
    """
    id: str
    company_id: Optional[str] = None
    full_name: str
    company_name: Optional[str] = None
    title: Optional[str] = None
    department: Optional[str] = None
    seniority_level: Optional[Seniority] = None
    influence_score: Optional[int] = Field(default=None, ge=1, le=5)
    sentiment: Sentiment = Sentiment.UNKNOWN
    sentiment_confidence: Optional[int] = Field(default=None, ge=1, le=5)
    status: StakeholderStatus = StakeholderStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == StakeholderStatus.ACTIVE

    def initials(self) -> str:
        """Two-letter avatar initials for the detail panel."""
        parts = [p for p in self.full_name.split(" ") if p]
        return "".join(p[0] for p in parts)[:2].upper()


class Relationship(BaseModel):
    """A typed link from one stakeholder to another.

    ``from_stakeholder_id`` and ``to_stakeholder_id`` are ordered: relation
    types are directional unless ``directionality`` says otherwise.  A
    stakeholder cannot be related to itself, and a (from, to, type) triple is
    unique in the store.
    """
    id: str
    from_stakeholder_id: str
    to_stakeholder_id: str
    relation_type: RelationType
    directionality: Directionality = Directionality.DIRECTIONAL
    strength: int = Field(default=3, ge=1, le=5)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _no_self_relationship(self) -> "Relationship":
        if self.from_stakeholder_id == self.to_stakeholder_id:
            raise ValueError("a stakeholder cannot be related to itself")
        return self

    def involves(self, stakeholder_id: str) -> bool:
        return stakeholder_id in (self.from_stakeholder_id, self.to_stakeholder_id)


class LayoutEntry(BaseModel):
    """A persisted position for one stakeholder within one map.

    At most one entry exists per (map_id, stakeholder_id); writes are upserts
    keyed on that pair.
    """
    id: Optional[str] = None
    map_id: str = DEFAULT_MAP_ID
    stakeholder_id: str
    x: float
    y: float
    zoom_context: Optional[float] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.map_id, self.stakeholder_id)


class Dataset(BaseModel):
    """Everything one map load fetches from the store."""
    companies: list[Company] = Field(default_factory=list)
    stakeholders: list[Stakeholder] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    layouts: list[LayoutEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Styling
# ---------------------------------------------------------------------------

class NodeStyle(BaseModel):
    """Visual styling for a stakeholder node.

    Attributes:
        fill_color:   Interior color, picked by sentiment.
        shape:        Outline shape, picked by seniority.
        border_color: Ring color, picked by company.
        border_width: Ring width in pixels (before scaling).
        size:         Node diameter in pixels, picked by influence.
    """
    fill_color: str
    shape: str
    border_color: str
    border_width: float = 4.0
    size: float = 36.0


class EdgeStyle(BaseModel):
    """Visual styling for a relationship edge.

    Attributes:
        line_color:    Stroke color, picked by relation type.
        dash:          ``"solid"``, ``"dashed"`` or ``"dotted"``.
        width:         Stroke width in pixels, grows with strength.
        target_arrow:  Arrowhead at the ``to`` end (always drawn).
        source_arrow:  Arrowhead at the ``from`` end (bidirectional only).
        opacity:       Line opacity, 0..1.
    """
    line_color: str
    dash: str = "solid"
    width: float = 2.4
    target_arrow: bool = True
    source_arrow: bool = False
    opacity: float = 0.7


# ---------------------------------------------------------------------------
# Render-ready elements
# ---------------------------------------------------------------------------

class MapNode(BaseModel):
    """A positioned, styled stakeholder node."""
    id: str
    label: str
    company_id: Optional[str] = None
    company_name: Optional[str] = None
    x: float
    y: float
    persisted: bool = False
    style: NodeStyle


class MapEdge(BaseModel):
    """A styled relationship edge from ``source`` to ``target``."""
    id: str
    source: str
    target: str
    relation_type: str
    strength: int = 3
    style: EdgeStyle


class CompanyHull(BaseModel):
    """Padded convex outline around one company's nodes."""
    company_id: str
    company_name: Optional[str] = None
    color: str
    points: list[tuple[float, float]] = Field(default_factory=list)


class MapElements(BaseModel):
    """The render-ready element set for one dataset generation.

    Flat Access
    -----------
    ``get_node(id)`` gives O(1) lookup; the map is rebuilt after init.
    """
    nodes: list[MapNode] = Field(default_factory=list)
    edges: list[MapEdge] = Field(default_factory=list)

    _node_map: dict[str, MapNode] = {}

    def model_post_init(self, __context):
        """Build lookup maps after initialization."""
        self._node_map = {node.id: node for node in self.nodes}

    def get_node(self, node_id: str) -> Optional[MapNode]:
        return self._node_map.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[MapEdge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def node_ids(self) -> set[str]:
        return set(self._node_map)
