"""
Theme and styling tables for StakeMap.

Two layers live here:

- ``ThemePalette`` — canvas-level colors (background, text, hull fill,
  selection, dimming) with light and dark variants for the rasterizer.
- The styling tables — fixed mappings keyed by the domain enumerations.
  Each lookup returns a concrete value, so styling never depends on the shape
  of the element being styled:

      SENTIMENT_COLORS     Sentiment     → node fill
      SENIORITY_SHAPES     Seniority     → node shape ("rounded" when unset)
      COMPANY_RING_COLORS  first-seen company index → node border
      RELATION_STYLES      RelationType  → (edge color, dash)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import RelationType, Seniority, Sentiment


@dataclass
class ThemePalette:
    """Color palette for a theme."""

    # Canvas
    background: str

    # Text
    title_color: str
    label_color: str
    label_outline: str
    muted_text_color: str

    # Company hulls
    hull_fill_alpha: int
    hull_border_width: int

    # Selection and focus
    selection_color: str
    dim_factor: float  # 0 = unchanged, 1 = fully background


LIGHT_THEME = ThemePalette(
    background="#ffffff",
    title_color="#0f172a",
    label_color="#334155",
    label_outline="#ffffff",
    muted_text_color="#94a3b8",
    hull_fill_alpha=28,
    hull_border_width=2,
    selection_color="#059669",
    dim_factor=0.8,
)


DARK_THEME = ThemePalette(
    background="#11111b",
    title_color="#cdd6f4",
    label_color="#cdd6f4",
    label_outline="#11111b",
    muted_text_color="#6c7086",
    hull_fill_alpha=40,
    hull_border_width=2,
    selection_color="#a6e3a1",
    dim_factor=0.75,
)


THEMES: dict[str, ThemePalette] = {
    "light": LIGHT_THEME,
    "dark": DARK_THEME,
}


def get_theme(name: str) -> ThemePalette:
    """Get a theme palette by name.

    Raises:
        ValueError: If theme name is not recognized
    """
    if name not in THEMES:
        valid = ", ".join(THEMES.keys())
        raise ValueError(f"Unknown theme '{name}'. Valid themes: {valid}")
    return THEMES[name]


# ---------------------------------------------------------------------------
# Node styling tables
# ---------------------------------------------------------------------------

SENTIMENT_COLORS: dict[Sentiment, str] = {
    Sentiment.ALLY: "#059669",      # Emerald
    Sentiment.NEUTRAL: "#64748b",   # Slate
    Sentiment.OPPONENT: "#dc2626",  # Red
    Sentiment.UNKNOWN: "#d97706",   # Amber
}

SENIORITY_SHAPES: dict[Seniority, str] = {
    Seniority.C_LEVEL: "star",
    Seniority.VP: "hexagon",
    Seniority.DIRECTOR: "pentagon",
    Seniority.MANAGER: "diamond",
    Seniority.IC: "triangle",
}
DEFAULT_SHAPE = "rounded"

# 48 ring colors, six shades per hue
COMPANY_RING_COLORS: list[str] = [
    "#2563eb", "#1d4ed8", "#3b82f6", "#60a5fa", "#93c5fd", "#bfdbfe",  # blues
    "#7c3aed", "#6d28d9", "#8b5cf6", "#a78bfa", "#c4b5fd", "#ddd6fe",  # violets
    "#db2777", "#be185d", "#ec4899", "#f472b6", "#f9a8d4", "#fbcfe8",  # pinks
    "#dc2626", "#b91c1c", "#ef4444", "#f87171", "#fca5a5", "#fecaca",  # reds
    "#ea580c", "#c2410c", "#f97316", "#fb923c", "#fdba74", "#fed7aa",  # oranges
    "#ca8a04", "#a16207", "#eab308", "#facc15", "#fde047", "#fef08a",  # yellows
    "#059669", "#047857", "#10b981", "#34d399", "#6ee7b7", "#a7f3d0",  # greens
    "#0d9488", "#0f766e", "#14b8a6", "#2dd4bf", "#5eead4", "#99f6e4",  # teals
]
NO_COMPANY_COLOR = "#94a3b8"


def sentiment_color(sentiment: Optional[Sentiment]) -> str:
    return SENTIMENT_COLORS.get(sentiment, SENTIMENT_COLORS[Sentiment.UNKNOWN])


def seniority_shape(seniority: Optional[Seniority]) -> str:
    if seniority is None:
        return DEFAULT_SHAPE
    return SENIORITY_SHAPES.get(seniority, DEFAULT_SHAPE)


def company_ring_color(index: int) -> str:
    """Ring color for the ``index``-th distinct company; wraps past 48."""
    return COMPANY_RING_COLORS[index % len(COMPANY_RING_COLORS)]


# ---------------------------------------------------------------------------
# Edge styling table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RelationStyle:
    """Color and dash pattern for one relation type."""
    color: str
    dash: str = "solid"


RELATION_STYLES: dict[RelationType, RelationStyle] = {
    RelationType.REPORTS_TO:        RelationStyle("#475569"),
    RelationType.PEER_OF:           RelationStyle("#0ea5e9"),
    RelationType.INFLUENCES:        RelationStyle("#7c3aed"),
    RelationType.COLLABORATES_WITH: RelationStyle("#059669"),
    RelationType.ADVISES:           RelationStyle("#0d9488", "dashed"),
    RelationType.BLOCKS:            RelationStyle("#dc2626", "dashed"),
    RelationType.SPONSORS:          RelationStyle("#ca8a04"),
    RelationType.GATEKEEPER_FOR:    RelationStyle("#ea580c", "dotted"),
}
DEFAULT_RELATION_STYLE = RelationStyle("#cbd5e1")


def relation_style(relation_type) -> RelationStyle:
    """Style for a relation type; anything outside the table gets the default."""
    try:
        return RELATION_STYLES[RelationType(relation_type)]
    except (KeyError, ValueError):
        return DEFAULT_RELATION_STYLE
