"""
Map page controller.

Orchestrates the stakeholder map: loads the dataset, applies the company and
attribute filters, materializes and mounts a graph generation in the
interaction controller, and runs the page-level actions (archive, cluster,
relationship edits, exports).

Error surfaces
--------------
- Load failures set ``error``; the previous dataset is kept and nothing
  from the failed load is applied.
- Mutation failures append to ``alerts``; optimistic local state is kept.
- Validation failures raise ``ValidationError`` before any store call.

Concurrent reloads are not serialized: the last one to resolve wins.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .config import Settings
from .errors import StoreError, ValidationError
from .export import export_filename, relationships_to_csv, stakeholders_to_csv
from .interaction import InteractionController
from .layout import LayoutStore
from .materialize import MaterializeOptions, materialize
from .models import (
    Directionality,
    MapElements,
    Relationship,
    RelationType,
    Seniority,
    Sentiment,
    Stakeholder,
)
from .organize import ClusterOptions, cluster_by_company
from .store import DataStore

logger = logging.getLogger(__name__)


@dataclass
class CompanyOption:
    """A company in the filter list with its active stakeholder count."""
    id: str
    name: str
    count: int


@dataclass
class MapFilterState:
    """Attribute filters; an empty set means "any"."""
    sentiments: set[Sentiment] = field(default_factory=set)
    seniorities: set[Seniority] = field(default_factory=set)
    min_influence: int = 0

    @property
    def active_count(self) -> int:
        return len(self.sentiments) + len(self.seniorities) + (1 if self.min_influence > 0 else 0)

    def matches(self, stakeholder: Stakeholder) -> bool:
        if self.sentiments and stakeholder.sentiment not in self.sentiments:
            return False
        if self.seniorities and stakeholder.seniority_level not in self.seniorities:
            return False
        if self.min_influence > 0 and (stakeholder.influence_score or 0) < self.min_influence:
            return False
        return True


@dataclass
class RelationshipRow:
    """One line of the selected stakeholder's relationship list."""
    relationship: Relationship
    other_name: str
    direction: str  # '→' outgoing, '←' incoming

    @property
    def label(self) -> str:
        return self.relationship.relation_type.value.replace("_", " ")


def validate_relationship_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Check relationship input locally; returns normalized fields."""
    from_id = fields.get("from_stakeholder_id")
    to_id = fields.get("to_stakeholder_id")
    if "from_stakeholder_id" in fields or "to_stakeholder_id" in fields:
        if not from_id or not to_id or from_id == to_id:
            raise ValidationError("Select different From and To stakeholders.")

    clean = dict(fields)
    if "relation_type" in fields:
        try:
            clean["relation_type"] = RelationType(fields["relation_type"])
        except ValueError as e:
            raise ValidationError(f"Unknown relation type: {fields['relation_type']}") from e
    if "directionality" in fields and fields["directionality"] is not None:
        try:
            clean["directionality"] = Directionality(fields["directionality"])
        except ValueError as e:
            raise ValidationError(f"Unknown directionality: {fields['directionality']}") from e
    if "strength" in fields and fields["strength"] is not None:
        try:
            strength = int(fields["strength"])
        except (TypeError, ValueError) as e:
            raise ValidationError("Strength must be a number from 1 to 5.") from e
        if not 1 <= strength <= 5:
            raise ValidationError("Strength must be a number from 1 to 5.")
        clean["strength"] = strength
    return clean


class MapPage:
    """State and actions behind the stakeholder map page."""

    def __init__(self, store: DataStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or Settings()
        self.layout_store = LayoutStore(
            store,
            map_id=self.settings.map_id,
            fallback_radius=self.settings.layout.fallback_radius,
        )
        self.controller = InteractionController(
            self.layout_store,
            on_node_selected=self._on_node_selected,
            on_layout_change=self.load,
            on_context_action=self._on_context_action,
            on_error=self._alert,
            hull_padding=self.settings.layout.hull_padding,
            theme=self.settings.theme,
        )
        self.materialize_options = MaterializeOptions.from_settings(self.settings)

        self.stakeholders: list[Stakeholder] = []
        self.relationships: list[Relationship] = []
        self.elements = MapElements()

        self.loading = True
        self.error: Optional[str] = None
        self.alerts: list[str] = []
        self.clustering = False

        self.selected_companies: set[str] = set()
        self.filters = MapFilterState()

        self.selected: Optional[Stakeholder] = None
        self.show_add_relationship = False
        self.relationship_form_from: Optional[str] = None
        self.edit_request: Optional[tuple[str, str]] = None

    # --- Loading ---

    async def load(self) -> bool:
        """Fetch the dataset; on failure keep the previous one and set ``error``."""
        try:
            stakeholders, relationships, layouts = await asyncio.gather(
                self.store.list_active_stakeholders(),
                self.store.list_relationships(),
                self.store.list_layout_entries(self.settings.map_id),
            )
        except StoreError as e:
            logger.error(f"Failed to load map data: {e}")
            self.error = f"Failed to load map data: {e}"
            self.loading = False
            return False

        self.stakeholders = stakeholders
        self.relationships = relationships
        self.layout_store.load(layouts)
        self.error = None
        self.loading = False

        known = {c.id for c in self.company_list()}
        self.selected_companies &= known
        if not self.selected_companies:
            self.selected_companies = set(known)
        if self.selected is not None:
            self.selected = next((s for s in stakeholders if s.id == self.selected.id), None)

        logger.info(f"Loaded {len(stakeholders)} stakeholders, {len(relationships)} relationships, "
                    f"{len(layouts)} layout entries")
        self.refresh()
        return True

    # --- Filters ---

    def company_list(self) -> list[CompanyOption]:
        """Companies with their stakeholder counts, sorted by name."""
        counts: dict[str, CompanyOption] = {}
        for s in self.stakeholders:
            if not s.company_id or not s.company_name:
                continue
            option = counts.get(s.company_id)
            if option:
                option.count += 1
            else:
                counts[s.company_id] = CompanyOption(s.company_id, s.company_name, 1)
        return sorted(counts.values(), key=lambda c: c.name.lower())

    def toggle_company(self, company_id: str) -> None:
        self.selected_companies ^= {company_id}
        self.refresh()

    def select_all_companies(self) -> None:
        self.selected_companies = {c.id for c in self.company_list()}
        self.refresh()

    def clear_companies(self) -> None:
        self.selected_companies = set()
        self.refresh()

    def set_filters(self, filters: MapFilterState) -> None:
        self.filters = filters
        self.refresh()

    def visible_stakeholders(self) -> list[Stakeholder]:
        """Stakeholders passing the company and attribute filters.

        No companies selected, or all of them, shows every company.
        """
        known = {c.id for c in self.company_list()}
        by_company = (
            self.stakeholders
            if not self.selected_companies or known <= self.selected_companies
            else [s for s in self.stakeholders if s.company_id in self.selected_companies]
        )
        return [s for s in by_company if self.filters.matches(s)]

    # --- Rendering ---

    def refresh(self) -> MapElements:
        """Materialize the visible set and mount it as a new graph generation."""
        visible = self.visible_stakeholders()
        self.layout_store.reconcile(s.id for s in visible)
        self.elements = materialize(
            visible,
            self.relationships,
            self.layout_store.entries(),
            self.materialize_options,
        )
        self.controller.mount(self.elements, visible, self.relationships)
        return self.elements

    # --- Selection / detail panel ---

    def _on_node_selected(self, stakeholder: Optional[Stakeholder]) -> None:
        self.selected = stakeholder

    def selected_relationships(self) -> list[RelationshipRow]:
        if self.selected is None:
            return []
        names = {s.id: s.full_name for s in self.stakeholders}
        rows = []
        for r in self.relationships:
            if not r.involves(self.selected.id):
                continue
            outgoing = r.from_stakeholder_id == self.selected.id
            other = r.to_stakeholder_id if outgoing else r.from_stakeholder_id
            rows.append(RelationshipRow(
                relationship=r,
                other_name=names.get(other, "Unknown"),
                direction="→" if outgoing else "←",
            ))
        return rows

    def _alert(self, message: str) -> None:
        self.alerts.append(message)

    def dismiss_alerts(self) -> None:
        self.alerts = []

    # --- Actions ---

    async def _on_context_action(self, action: str, kind: str, target_id: str) -> Any:
        if kind == "node":
            if action == "archive":
                return await self.archive_stakeholder(target_id)
            if action == "add_relationship":
                self.open_relationship_form(target_id)
                return None
            if action == "edit":
                self.edit_request = ("stakeholder", target_id)
                return None
        elif kind == "edge":
            if action == "delete":
                return await self.delete_relationship(target_id)
            if action == "edit":
                self.edit_request = ("relationship", target_id)
                return None
        logger.debug(f"Unhandled context action {action} on {kind} {target_id}")
        return None

    def open_relationship_form(self, from_stakeholder_id: Optional[str] = None) -> None:
        self.show_add_relationship = True
        self.relationship_form_from = from_stakeholder_id

    async def archive_stakeholder(self, stakeholder_id: str) -> bool:
        try:
            await self.store.archive_stakeholder(stakeholder_id)
        except StoreError as e:
            logger.error(f"Archive failed: {e}")
            self._alert("Failed to archive stakeholder.")
            return False
        if self.selected is not None and self.selected.id == stakeholder_id:
            self.selected = None
        await self.load()
        return True

    async def cluster_by_company(self) -> bool:
        """Relayout every active stakeholder by company and reload."""
        if not self.stakeholders or self.clustering:
            return False
        self.clustering = True
        try:
            result = await cluster_by_company(
                self.stakeholders,
                self.layout_store,
                ClusterOptions.from_settings(self.settings),
            )
            if not result.ok:
                self._alert("Cluster by company failed.")
                return False
            await self.load()
            return True
        finally:
            self.clustering = False

    async def add_relationship(
        self,
        from_stakeholder_id: str,
        to_stakeholder_id: str,
        relation_type: str = RelationType.COLLABORATES_WITH.value,
        strength: int = 3,
        directionality: str = Directionality.DIRECTIONAL.value,
        notes: Optional[str] = None,
    ) -> Optional[Relationship]:
        fields = validate_relationship_fields({
            "from_stakeholder_id": from_stakeholder_id,
            "to_stakeholder_id": to_stakeholder_id,
            "relation_type": relation_type,
            "strength": strength,
            "directionality": directionality,
            "notes": notes,
        })
        try:
            rel = await self.store.create_relationship(fields)
        except StoreError as e:
            logger.error(f"Failed to add relationship: {e}")
            self._alert(f"Failed to add relationship: {e}")
            return None
        self.show_add_relationship = False
        self.relationship_form_from = None
        await self.load()
        return rel

    async def update_relationship(self, relationship_id: str, fields: dict[str, Any]) -> Optional[Relationship]:
        current = next((r for r in self.relationships if r.id == relationship_id), None)
        merged = dict(fields)
        if current is not None and ("from_stakeholder_id" in fields or "to_stakeholder_id" in fields):
            merged.setdefault("from_stakeholder_id", current.from_stakeholder_id)
            merged.setdefault("to_stakeholder_id", current.to_stakeholder_id)
        clean = validate_relationship_fields(merged)
        try:
            rel = await self.store.update_relationship(relationship_id, clean)
        except StoreError as e:
            logger.error(f"Failed to update relationship {relationship_id}: {e}")
            self._alert("Failed to update relationship.")
            return None
        await self.load()
        return rel

    async def delete_relationship(self, relationship_id: str) -> bool:
        try:
            await self.store.delete_relationship(relationship_id)
        except StoreError as e:
            logger.error(f"Failed to delete relationship {relationship_id}: {e}")
            self._alert("Failed to delete relationship.")
            return False
        await self.load()
        return True

    # --- Exports ---

    def export_png(self, scale: float = 2.0) -> Optional[tuple[str, bytes]]:
        png = self.controller.export_png(scale=scale)
        if png is None:
            return None
        return export_filename("", "png"), png

    def export_stakeholders_csv(self) -> tuple[str, str]:
        visible_ids = self.elements.node_ids()
        rows = [s for s in self.stakeholders if s.id in visible_ids]
        return export_filename("stakeholders", "csv"), stakeholders_to_csv(rows)

    def export_relationships_csv(self) -> tuple[str, str]:
        edge_ids = {e.id for e in self.elements.edges}
        rows = [r for r in self.relationships if r.id in edge_ids]
        return export_filename("relationships", "csv"), relationships_to_csv(rows, self.stakeholders)
