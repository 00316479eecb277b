"""
Interaction controller for the stakeholder map.

The controller owns the live render handle and turns pointer and keyboard
events into map actions: select, focus, drag-and-persist, context menu
dispatch, hover tooltips and image export.

Render handle
-------------
``GraphHandle`` is the mutable render instance for one dataset generation.
Exactly one is alive at a time: ``InteractionController.mount`` destroys the
previous handle before it builds the next one, and a destroyed handle
raises ``GraphHandleDestroyed`` on any further mutation.

States
------
    idle               nothing selected, no menu open
    node-selected      a node is selected, nothing dimmed
    focus-mode         a node and its 1-hop neighbourhood highlighted,
                       everything else dimmed
    context-menu-open  a node or edge menu is showing

Transitions
-----------
    tap empty canvas        → idle (clears focus dimming)
    tap node N              → node-selected + focus-mode on N, unless N is
                              already focused, in which case focus is left
                              and N stays selected
    drag end                → one position persist; selection unchanged
    secondary press         → context-menu-open, remembering the prior state
    primary tap / action    → closes the menu back to the prior state; the
                              tap that closes a menu does nothing else
    hover enter / leave     → tooltip only; never a transition

Events are handled synchronously in arrival order.  The only await points
are store calls (drag persist, host actions), and every state change is made
before the await, so no transition is ever seen half-applied.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from .errors import GraphHandleDestroyed, ValidationError
from .geometry import distance_to_segment, point_in_polygon
from .layout import LayoutStore
from .materialize import company_hulls, neighborhood
from .models import CompanyHull, MapElements, Relationship, Stakeholder
from .renderer import MapRenderer

logger = logging.getLogger(__name__)


NODE_MENU_ACTIONS = ("focus", "add_relationship", "edit", "archive")
EDGE_MENU_ACTIONS = ("edit", "delete")

EDGE_HIT_TOLERANCE = 4.0


class InteractionState(str, Enum):
    IDLE = "idle"
    NODE_SELECTED = "node-selected"
    FOCUS_MODE = "focus-mode"
    CONTEXT_MENU_OPEN = "context-menu-open"


@dataclass
class ContextMenu:
    """An open context menu and what it was opened on."""
    kind: str  # 'node' or 'edge'
    target_id: str
    actions: tuple[str, ...]
    prior_state: InteractionState


@dataclass
class Tooltip:
    """Hover text for a node, edge or company outline."""
    kind: str
    target_id: str
    lines: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Render handle
# ---------------------------------------------------------------------------

class GraphHandle:
    """The live, exclusively owned render state for one dataset generation."""

    def __init__(self, elements: MapElements, generation: int, hull_padding: float = 40.0):
        self.elements = elements
        self.generation = generation
        self.hull_padding = hull_padding
        self.destroyed = False

    def _check_alive(self) -> None:
        if self.destroyed:
            raise GraphHandleDestroyed(f"graph generation {self.generation} was destroyed")

    def has_node(self, node_id: str) -> bool:
        return self.elements.get_node(node_id) is not None

    def has_edge(self, edge_id: str) -> bool:
        return self.elements.get_edge(edge_id) is not None

    def position(self, node_id: str) -> tuple[float, float]:
        node = self.elements.get_node(node_id)
        if node is None:
            raise KeyError(node_id)
        return (node.x, node.y)

    def move_node(self, node_id: str, x: float, y: float) -> None:
        self._check_alive()
        node = self.elements.get_node(node_id)
        if node is None:
            raise KeyError(node_id)
        node.x = x
        node.y = y

    def hulls(self) -> list[CompanyHull]:
        return company_hulls(self.elements, self.hull_padding)

    def neighborhood(self, node_id: str) -> tuple[set[str], set[str]]:
        return neighborhood(self.elements, node_id)

    def destroy(self) -> None:
        if not self.destroyed:
            logger.debug(f"Destroying graph generation {self.generation}")
        self.destroyed = True


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

async def _call(callback: Optional[Callable], *args) -> Any:
    """Invoke a host callback that may or may not be a coroutine function."""
    if callback is None:
        return None
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class InteractionController:
    """Interprets pointer/keyboard events against the mounted graph.

    Host callbacks:
        on_node_selected(stakeholder | None)  — selection changed
        on_layout_change()                    — a dragged position was saved
        on_context_action(action, kind, id)   — a menu action other than focus
        on_error(message)                     — a mutation failed
    """

    def __init__(
        self,
        layout_store: LayoutStore,
        on_node_selected: Optional[Callable] = None,
        on_layout_change: Optional[Callable] = None,
        on_context_action: Optional[Callable] = None,
        on_error: Optional[Callable] = None,
        hull_padding: float = 40.0,
        theme: str = "light",
    ):
        self.layout_store = layout_store
        self.on_node_selected = on_node_selected
        self.on_layout_change = on_layout_change
        self.on_context_action = on_context_action
        self.on_error = on_error
        self.hull_padding = hull_padding
        self.theme = theme

        self.handle: Optional[GraphHandle] = None
        self._generation = 0
        self._stakeholders: dict[str, Stakeholder] = {}
        self._relationships: dict[str, Relationship] = {}

        self.selected_node: Optional[str] = None
        self.selected_edge: Optional[str] = None
        self.focused_node: Optional[str] = None
        self.menu: Optional[ContextMenu] = None
        self.tooltip: Optional[Tooltip] = None
        self.dragging: Optional[str] = None

    # --- Mounting ---

    def mount(
        self,
        elements: MapElements,
        stakeholders: Iterable[Stakeholder] = (),
        relationships: Iterable[Relationship] = (),
    ) -> GraphHandle:
        """Tear down the current handle and build one for ``elements``.

        Selection and focus survive when their targets are still present.
        """
        if self.handle is not None:
            self.handle.destroy()
        self._generation += 1
        self.handle = GraphHandle(elements, self._generation, self.hull_padding)
        self._stakeholders = {s.id: s for s in stakeholders}
        self._relationships = {r.id: r for r in relationships}

        self.menu = None
        self.tooltip = None
        self.dragging = None
        if self.selected_node and not self.handle.has_node(self.selected_node):
            self.selected_node = None
        if self.focused_node and not self.handle.has_node(self.focused_node):
            self.focused_node = None
        if self.selected_edge and not self.handle.has_edge(self.selected_edge):
            self.selected_edge = None
        logger.debug(f"Mounted graph generation {self._generation}: "
                     f"{len(elements.nodes)} nodes, {len(elements.edges)} edges")
        return self.handle

    def unmount(self) -> None:
        if self.handle is not None:
            self.handle.destroy()
        self.handle = None
        self.selected_node = None
        self.selected_edge = None
        self.focused_node = None
        self.menu = None
        self.tooltip = None
        self.dragging = None

    def _require_handle(self) -> GraphHandle:
        if self.handle is None:
            raise GraphHandleDestroyed("no graph is mounted")
        self.handle._check_alive()
        return self.handle

    # --- State ---

    @property
    def state(self) -> InteractionState:
        if self.menu is not None:
            return InteractionState.CONTEXT_MENU_OPEN
        if self.focused_node is not None:
            return InteractionState.FOCUS_MODE
        if self.selected_node is not None:
            return InteractionState.NODE_SELECTED
        return InteractionState.IDLE

    def dimmed(self) -> tuple[set[str], set[str]]:
        """(node ids, edge ids) drawn faded; empty outside focus mode."""
        if self.handle is None or self.focused_node is None:
            return set(), set()
        keep_nodes, keep_edges = self.handle.neighborhood(self.focused_node)
        nodes = {n.id for n in self.handle.elements.nodes} - keep_nodes
        edges = {e.id for e in self.handle.elements.edges} - keep_edges
        return nodes, edges

    def selected_stakeholder(self) -> Optional[Stakeholder]:
        if self.selected_node is None:
            return None
        return self._stakeholders.get(self.selected_node)

    def _close_menu_if_open(self) -> bool:
        if self.menu is None:
            return False
        logger.debug(f"Closing {self.menu.kind} menu on {self.menu.target_id}")
        self.menu = None
        return True

    # --- Primary taps ---

    def tap_background(self) -> None:
        self._require_handle()
        if self._close_menu_if_open():
            return
        had_selection = self.selected_node is not None
        self.selected_node = None
        self.selected_edge = None
        self.focused_node = None
        if had_selection and self.on_node_selected:
            self.on_node_selected(None)

    def tap_node(self, node_id: str) -> None:
        handle = self._require_handle()
        if self._close_menu_if_open():
            return
        if not handle.has_node(node_id):
            logger.debug(f"Ignoring tap on unknown node {node_id}")
            return
        self.selected_edge = None
        if self.focused_node == node_id:
            # Same focused node again: leave focus, keep the selection
            self.focused_node = None
            return
        self.selected_node = node_id
        self.focused_node = node_id
        if self.on_node_selected:
            self.on_node_selected(self._stakeholders.get(node_id))

    def tap_edge(self, edge_id: str) -> None:
        handle = self._require_handle()
        if self._close_menu_if_open():
            return
        if not handle.has_edge(edge_id):
            logger.debug(f"Ignoring tap on unknown edge {edge_id}")
            return
        self.selected_edge = edge_id

    def key_press(self, key: str) -> None:
        """Escape behaves like tapping empty canvas."""
        if key == "Escape":
            self.tap_background()

    # --- Dragging ---

    def drag_start(self, node_id: str) -> None:
        handle = self._require_handle()
        if not handle.has_node(node_id):
            return
        self.dragging = node_id
        self.tooltip = None

    def drag_move(self, node_id: str, x: float, y: float) -> None:
        handle = self._require_handle()
        handle.move_node(node_id, x, y)

    async def drag_end(self, node_id: str, x: Optional[float] = None, y: Optional[float] = None) -> bool:
        """Drop a node and persist its position once.

        Returns False when the persist failed; the node stays where it was
        dropped either way.
        """
        handle = self._require_handle()
        if not handle.has_node(node_id):
            return False
        if x is not None and y is not None:
            handle.move_node(node_id, x, y)
        if self.dragging == node_id:
            self.dragging = None
        px, py = handle.position(node_id)

        ok = await self.layout_store.set_position(node_id, px, py)
        if ok:
            await _call(self.on_layout_change)
        else:
            await _call(self.on_error, "Failed to save layout.")
        return ok

    # --- Context menu ---

    def secondary_press(self, kind: str, target_id: str) -> Optional[ContextMenu]:
        handle = self._require_handle()
        if kind == "node" and handle.has_node(target_id):
            actions = NODE_MENU_ACTIONS
        elif kind == "edge" and handle.has_edge(target_id):
            actions = EDGE_MENU_ACTIONS
        else:
            logger.debug(f"Ignoring secondary press on {kind} {target_id}")
            return None
        prior = self.state
        if self.menu is not None:
            prior = self.menu.prior_state
        self.menu = ContextMenu(kind=kind, target_id=target_id, actions=actions, prior_state=prior)
        self.tooltip = None
        return self.menu

    def close_menu(self) -> None:
        self._close_menu_if_open()

    async def menu_action(self, action: str) -> Any:
        """Run a menu action; the menu closes first.

        ``focus`` is handled here.  Everything else goes to
        ``on_context_action(action, kind, target_id)``.
        """
        menu = self.menu
        if menu is None:
            raise ValidationError("no context menu is open")
        if action not in menu.actions:
            raise ValidationError(f"'{action}' is not available for a {menu.kind}")
        self.menu = None

        if menu.kind == "node" and action == "focus":
            self.selected_node = menu.target_id
            self.focused_node = menu.target_id
            self.selected_edge = None
            if self.on_node_selected:
                self.on_node_selected(self._stakeholders.get(menu.target_id))
            return None
        return await _call(self.on_context_action, action, menu.kind, menu.target_id)

    # --- Hover ---

    def hover_enter(self, kind: str, target_id: str) -> Optional[Tooltip]:
        if self.handle is None or self.dragging is not None or self.menu is not None:
            return None
        lines = self._tooltip_lines(kind, target_id)
        if not lines:
            return None
        self.tooltip = Tooltip(kind=kind, target_id=target_id, lines=lines)
        return self.tooltip

    def hover_leave(self) -> None:
        self.tooltip = None

    def _tooltip_lines(self, kind: str, target_id: str) -> list[str]:
        handle = self.handle
        if kind == "node":
            node = handle.elements.get_node(target_id)
            if node is None:
                return []
            s = self._stakeholders.get(target_id)
            lines = [node.label]
            if s is not None:
                if s.title:
                    lines.append(s.title)
                lines.append(s.company_name or "Unknown company")
                lines.append(f"Sentiment: {s.sentiment.value}")
                lines.append(f"Influence: {s.influence_score or 0}/5")
            return lines
        if kind == "edge":
            edge = handle.elements.get_edge(target_id)
            if edge is None:
                return []
            source = handle.elements.get_node(edge.source)
            target = handle.elements.get_node(edge.target)
            lines = [
                f"{source.label if source else '?'} → {target.label if target else '?'}",
                edge.relation_type.replace("_", " "),
                f"Strength: {edge.strength}/5",
            ]
            rel = self._relationships.get(target_id)
            if rel is not None and rel.notes:
                lines.append(rel.notes)
            return lines
        if kind == "company":
            members = [n for n in handle.elements.nodes if n.company_id == target_id]
            if not members:
                return []
            name = members[0].company_name or target_id
            return [name, f"{len(members)} stakeholders"]
        return []

    # --- Hit testing ---

    def hit_test(self, x: float, y: float) -> Optional[tuple[str, str]]:
        """What sits under a map-space point: ('node'|'edge'|'company', id)."""
        handle = self._require_handle()
        elements = handle.elements
        # Nodes are drawn last, so the last one hit is on top
        for node in reversed(elements.nodes):
            if (x - node.x) ** 2 + (y - node.y) ** 2 <= (node.style.size / 2) ** 2:
                return ("node", node.id)
        for edge in reversed(elements.edges):
            source = elements.get_node(edge.source)
            target = elements.get_node(edge.target)
            if source is None or target is None:
                continue
            tolerance = max(EDGE_HIT_TOLERANCE, edge.style.width / 2 + 2)
            if distance_to_segment((x, y), (source.x, source.y), (target.x, target.y)) <= tolerance:
                return ("edge", edge.id)
        for hull in handle.hulls():
            if point_in_polygon((x, y), hull.points):
                return ("company", hull.company_id)
        return None

    def tap_at(self, x: float, y: float) -> None:
        """Primary click at a map-space point."""
        hit = self.hit_test(x, y)
        if hit is None or hit[0] == "company":
            self.tap_background()
        elif hit[0] == "node":
            self.tap_node(hit[1])
        else:
            self.tap_edge(hit[1])

    # --- Export ---

    def export_png(self, scale: float = 2.0, title: Optional[str] = None) -> Optional[bytes]:
        """Snapshot of the current view, dimming and selection included."""
        if self.handle is None or self.handle.destroyed:
            return None
        dimmed_nodes, dimmed_edges = self.dimmed()
        renderer = MapRenderer(scale=scale, theme=self.theme)
        return renderer.render(
            self.handle.elements,
            title=title,
            hulls=self.handle.hulls(),
            dimmed_nodes=dimmed_nodes,
            dimmed_edges=dimmed_edges,
            selected=self.selected_node,
        )
