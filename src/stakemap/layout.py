"""
Layout store — the in-memory view of stakeholder positions for one map.

Positions come from two sources:

  1. persisted ``LayoutEntry`` rows loaded from the data store
  2. a deterministic fallback: slot ``i`` of ``n`` on a circle of radius
     ``fallback_radius``, where ``i`` / ``n`` are the stakeholder's index and
     the count in the most recent ``reconcile`` ordering

``PositionTable`` holds both and answers ``get_position``, which never fails.
``LayoutStore`` adds persistence through a ``DataStore``.  A stakeholder only
counts as persisted once a drag or a cluster run writes its entry.

Write policy
------------
``set_position`` is optimistic: the local value changes before the upsert is
awaited and is NOT rolled back when the upsert fails.  The node stays where
the user dropped it; the failure is logged and reported to the caller.
Writes are keyed per stakeholder, so two drags in flight at once can
complete in any order without touching each other's entries.  A reload that
lands while a write is still in flight keeps that write's local position.

``apply_bulk`` is the opposite: nothing changes locally unless the atomic
batch succeeds, and the caller is expected to reload from the store.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .errors import StoreError
from .geometry import Point, radial_position
from .models import DEFAULT_MAP_ID, LayoutEntry
from .store import DataStore

logger = logging.getLogger(__name__)


class PositionTable:
    """Persisted positions plus the radial fallback for everything else.

    With ``map_id`` set, ``load`` ignores entries belonging to other maps.
    """

    def __init__(self, map_id: Optional[str] = DEFAULT_MAP_ID, fallback_radius: float = 300.0):
        self.map_id = map_id
        self.fallback_radius = fallback_radius
        self._positions: dict[str, Point] = {}
        self._order: dict[str, int] = {}
        self._extra: dict[str, int] = {}

    def load(self, entries: Iterable[LayoutEntry]) -> None:
        """Replace all persisted positions with ``entries``."""
        self._positions = {
            e.stakeholder_id: (e.x, e.y)
            for e in entries
            if self.map_id is None or e.map_id == self.map_id
        }

    def reconcile(self, stakeholder_ids: Iterable[str]) -> None:
        """Set the ordering used for fallback slots."""
        self._order = {}
        self._extra = {}
        for sid in stakeholder_ids:
            if sid not in self._order:
                self._order[sid] = len(self._order)

    def has_persisted(self, stakeholder_id: str) -> bool:
        return stakeholder_id in self._positions

    def fallback_position(self, stakeholder_id: str) -> Point:
        """Slot ``i`` of ``n`` for reconciled ids.

        An id outside the ordering gets slot ``n + k`` of ``n + k + 1``, where
        ``k`` counts the unknown ids asked about since the last ``reconcile``.
        Those angles are all different, so unknown ids never share a point,
        and each keeps its slot until the next ``reconcile``.
        """
        total = len(self._order)
        index = self._order.get(stakeholder_id)
        if index is not None:
            return radial_position(index, total, self.fallback_radius)
        k = self._extra.setdefault(stakeholder_id, len(self._extra))
        return radial_position(total + k, total + k + 1, self.fallback_radius)

    def get_position(self, stakeholder_id: str) -> Point:
        """Persisted position if there is one, else the fallback slot."""
        position = self._positions.get(stakeholder_id)
        if position is not None:
            return position
        return self.fallback_position(stakeholder_id)

    def entries(self) -> list[LayoutEntry]:
        """Persisted positions as layout entries (fallbacks excluded)."""
        map_id = self.map_id or DEFAULT_MAP_ID
        return [
            LayoutEntry(map_id=map_id, stakeholder_id=sid, x=x, y=y)
            for sid, (x, y) in self._positions.items()
        ]


class LayoutStore(PositionTable):
    """Positions for one map, persisted through a ``DataStore``."""

    def __init__(
        self,
        store: DataStore,
        map_id: str = DEFAULT_MAP_ID,
        fallback_radius: float = 300.0,
    ):
        super().__init__(map_id=map_id, fallback_radius=fallback_radius)
        self.store = store
        self._pending: dict[str, Point] = {}

    def load(self, entries: Iterable[LayoutEntry]) -> None:
        """Replace persisted positions, keeping any write still in flight."""
        super().load(entries)
        self._positions.update(self._pending)

    async def set_position(self, stakeholder_id: str, x: float, y: float) -> bool:
        """Move a stakeholder and persist it.  Returns False if the upsert failed."""
        position = (x, y)
        self._positions[stakeholder_id] = position
        self._pending[stakeholder_id] = position
        try:
            await self.store.upsert_layout_entry(self.map_id, stakeholder_id, x, y)
        except StoreError as e:
            logger.error(f"Failed to save layout for {stakeholder_id}: {e}")
            return False
        finally:
            # A newer drag of the same stakeholder owns the entry now
            if self._pending.get(stakeholder_id) == position:
                del self._pending[stakeholder_id]
        return True

    async def apply_bulk(self, entries: list[LayoutEntry]) -> bool:
        """Persist many positions in one atomic batch.

        Local positions are left untouched; on success the caller reloads.
        """
        try:
            await self.store.batch_upsert_layout_entries(entries)
        except StoreError as e:
            logger.error(f"Bulk layout save failed ({len(entries)} entries): {e}")
            return False
        return True
