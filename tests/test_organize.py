"""Tests for the cluster-by-company layout."""

import math

import pytest

from stakemap.layout import LayoutStore
from stakemap.models import DEFAULT_MAP_ID, Stakeholder, StakeholderStatus
from stakemap.organize import (
    ClusterOptions,
    cluster_by_company,
    company_center,
    compute_cluster_layout,
    member_radius,
    partition_by_company,
)

from conftest import RecordingStore


def _company(company_id, count):
    return [
        Stakeholder(id=f"{company_id}-{i}", company_id=company_id, full_name=f"Person {i}")
        for i in range(count)
    ]


class TestClusterLayout:
    def test_members_sit_on_their_company_ring(self):
        people = _company("a", 4) + _company("b", 1) + _company("c", 2)
        options = ClusterOptions()
        positions = compute_cluster_layout(people, options)
        groups = partition_by_company(people)

        for ci, (company_id, members) in enumerate(groups.items()):
            center = company_center(ci, len(groups), options.ring_radius)
            r = member_radius(len(members), options)
            assert r <= options.sub_radius
            for s in members:
                p = positions[s.id]
                assert math.hypot(p.x - center.x, p.y - center.y) == pytest.approx(r)

    def test_company_centers_distinct(self):
        people = _company("a", 2) + _company("b", 2) + _company("c", 2)
        centers = {
            (round(company_center(i, 3, 350).x, 6), round(company_center(i, 3, 350).y, 6))
            for i in range(3)
        }
        assert len(centers) == 3
        positions = compute_cluster_layout(people)
        assert len(positions) == 6

    def test_member_radius_caps_at_sub_radius(self):
        options = ClusterOptions()
        assert member_radius(1, options) == 25
        assert member_radius(10, options) == pytest.approx(48)

    def test_archived_stakeholders_skipped(self):
        people = _company("a", 3)
        people[1] = people[1].model_copy(update={"status": StakeholderStatus.ARCHIVED})
        positions = compute_cluster_layout(people)
        assert set(positions) == {"a-0", "a-2"}

    def test_stakeholders_without_company_form_one_group(self):
        people = [Stakeholder(id="x", full_name="X"), Stakeholder(id="y", full_name="Y")]
        groups = partition_by_company(people)
        assert list(groups) == [None]

    def test_empty_input(self):
        assert compute_cluster_layout([]) == {}


class TestClusterByCompany:
    @pytest.mark.asyncio
    async def test_persists_one_batch(self, store, stakeholders):
        layout = LayoutStore(store)
        result = await cluster_by_company(stakeholders, layout)

        assert result.ok
        assert result.companies == 2
        assert store.calls.count("batch_upsert_layout_entries") == 1
        assert "upsert_layout_entry" not in store.calls
        for s in stakeholders:
            entry = store.layouts[(DEFAULT_MAP_ID, s.id)]
            assert (entry.x, entry.y) == pytest.approx(
                (result.positions[s.id].x, result.positions[s.id].y)
            )

    @pytest.mark.asyncio
    async def test_failed_batch_leaves_previous_layout(self, dataset, stakeholders):
        store = RecordingStore(dataset, fail={"batch_upsert_layout_entries"})
        layout = LayoutStore(store)
        before = dict(store.layouts)

        result = await cluster_by_company(stakeholders, layout)

        assert not result.ok
        assert store.layouts == before

    @pytest.mark.asyncio
    async def test_unknown_stakeholder_rejects_whole_batch(self, store, stakeholders):
        layout = LayoutStore(store)
        stranger = Stakeholder(id="stranger", company_id="acme", full_name="Stranger")
        before = dict(store.layouts)

        result = await cluster_by_company(stakeholders + [stranger], layout)

        assert not result.ok
        assert store.layouts == before
