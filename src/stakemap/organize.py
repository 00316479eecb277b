"""
Cluster-by-company layout for StakeMap.

A full, deterministic relayout run on demand (never automatically):

  1. Partition active stakeholders by company, companies in first-seen order.
  2. Put company ``ci`` of ``N`` on a ring of radius R at angle 2π·ci/N.
  3. Put member ``mi`` of ``M`` on a sub-ring around its company at angle
     2π·mi/M, radius ``min(sub_radius, per_member_radius · M)``.  Small
     companies stay tight; big ones stop growing before they reach their
     neighbours.
  4. Batch-upsert every (map, stakeholder, x, y) in one atomic request.
  5. On success the caller reloads from the store.

Spacing constants (defaults, see ``config.LayoutSettings``):
  - Company ring radius R: 350px
  - Member sub-ring ceiling: 48px (0.6 × an 80px cluster radius)
  - Member sub-ring growth: 25px per member
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

from .layout import LayoutStore
from .models import LayoutEntry, Stakeholder

logger = logging.getLogger(__name__)


CLUSTER_RING_RADIUS = 350.0
CLUSTER_SUB_RADIUS = 0.6 * 80.0
PER_MEMBER_RADIUS = 25.0


@dataclass
class ClusterOptions:
    """Layout options for the cluster algorithm."""
    ring_radius: float = CLUSTER_RING_RADIUS
    sub_radius: float = CLUSTER_SUB_RADIUS
    per_member_radius: float = PER_MEMBER_RADIUS

    @classmethod
    def from_settings(cls, settings) -> "ClusterOptions":
        return cls(
            ring_radius=settings.layout.cluster_ring_radius,
            sub_radius=settings.layout.cluster_sub_radius,
            per_member_radius=settings.layout.per_member_radius,
        )


@dataclass
class LayoutPosition:
    """Computed position for a stakeholder."""
    x: float
    y: float


@dataclass
class ClusterResult:
    """Outcome of a cluster run."""
    ok: bool
    positions: dict[str, LayoutPosition]
    companies: int


def partition_by_company(stakeholders: Iterable[Stakeholder]) -> dict[Optional[str], list[Stakeholder]]:
    """Group active stakeholders by company id, keeping first-seen order."""
    groups: dict[Optional[str], list[Stakeholder]] = {}
    for s in stakeholders:
        if not s.is_active:
            continue
        groups.setdefault(s.company_id, []).append(s)
    return groups


def company_center(index: int, count: int, ring_radius: float) -> LayoutPosition:
    angle = 2 * math.pi * index / max(1, count)
    return LayoutPosition(ring_radius * math.cos(angle), ring_radius * math.sin(angle))


def member_radius(member_count: int, options: ClusterOptions) -> float:
    return min(options.sub_radius, options.per_member_radius * member_count)


def compute_cluster_layout(
    stakeholders: Iterable[Stakeholder],
    options: Optional[ClusterOptions] = None,
) -> dict[str, LayoutPosition]:
    """Nested-ring positions for every active stakeholder, keyed by id."""
    opts = options or ClusterOptions()
    groups = partition_by_company(stakeholders)
    company_ids = list(groups.keys())

    positions: dict[str, LayoutPosition] = {}
    for ci, company_id in enumerate(company_ids):
        center = company_center(ci, len(company_ids), opts.ring_radius)
        members = groups[company_id]
        r = member_radius(len(members), opts)
        for mi, s in enumerate(members):
            angle = 2 * math.pi * mi / max(1, len(members))
            positions[s.id] = LayoutPosition(
                center.x + r * math.cos(angle),
                center.y + r * math.sin(angle),
            )
    return positions


async def cluster_by_company(
    stakeholders: Iterable[Stakeholder],
    layout_store: LayoutStore,
    options: Optional[ClusterOptions] = None,
) -> ClusterResult:
    """Compute the cluster layout and persist it in one batch.

    Nothing is committed if the batch fails; the previous layout stays
    authoritative and ``ok`` is False.
    """
    stakeholders = list(stakeholders)
    positions = compute_cluster_layout(stakeholders, options)
    companies = len(partition_by_company(stakeholders))
    if not positions:
        return ClusterResult(ok=True, positions={}, companies=0)

    entries = [
        LayoutEntry(map_id=layout_store.map_id, stakeholder_id=sid, x=p.x, y=p.y)
        for sid, p in positions.items()
    ]
    ok = await layout_store.apply_bulk(entries)
    if ok:
        logger.info(f"Clustered {len(entries)} stakeholders across {companies} companies")
    return ClusterResult(ok=ok, positions=positions, companies=companies)
