"""Shared fixtures for the StakeMap test suite."""

import asyncio

import pytest

from stakemap.errors import StoreError
from stakemap.models import (
    Company,
    Dataset,
    LayoutEntry,
    Relationship,
    RelationType,
    Seniority,
    Sentiment,
    Stakeholder,
)
from stakemap.store import InMemoryStore


class RecordingStore(InMemoryStore):
    """In-memory store that records every call and can fail chosen methods."""

    def __init__(self, dataset=None, fail=()):
        super().__init__(dataset)
        self.calls: list[str] = []
        self.fail = set(fail)

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise StoreError(f"{name} failed", status=500)

    async def list_companies(self):
        self._record("list_companies")
        return await super().list_companies()

    async def list_active_stakeholders(self, company_ids=None):
        self._record("list_active_stakeholders")
        return await super().list_active_stakeholders(company_ids)

    async def list_relationships(self):
        self._record("list_relationships")
        return await super().list_relationships()

    async def list_layout_entries(self, map_id):
        self._record("list_layout_entries")
        return await super().list_layout_entries(map_id)

    async def upsert_layout_entry(self, map_id, stakeholder_id, x, y):
        self._record("upsert_layout_entry")
        return await super().upsert_layout_entry(map_id, stakeholder_id, x, y)

    async def batch_upsert_layout_entries(self, entries):
        self._record("batch_upsert_layout_entries")
        return await super().batch_upsert_layout_entries(entries)

    async def archive_stakeholder(self, stakeholder_id):
        self._record("archive_stakeholder")
        return await super().archive_stakeholder(stakeholder_id)

    async def create_relationship(self, fields):
        self._record("create_relationship")
        return await super().create_relationship(fields)

    async def update_relationship(self, relationship_id, fields):
        self._record("update_relationship")
        return await super().update_relationship(relationship_id, fields)

    async def delete_relationship(self, relationship_id):
        self._record("delete_relationship")
        return await super().delete_relationship(relationship_id)

    @property
    def mutations(self) -> list[str]:
        return [c for c in self.calls if not c.startswith("list_")]


class GatedStore(RecordingStore):
    """Recording store that holds layout upserts for chosen stakeholders until released."""

    def __init__(self, dataset=None, hold=(), fail=()):
        super().__init__(dataset, fail)
        self.gates = {sid: asyncio.Event() for sid in hold}

    def release(self, stakeholder_id: str) -> None:
        self.gates[stakeholder_id].set()

    async def upsert_layout_entry(self, map_id, stakeholder_id, x, y):
        gate = self.gates.get(stakeholder_id)
        if gate is not None:
            await gate.wait()
        return await super().upsert_layout_entry(map_id, stakeholder_id, x, y)


# ── Sample data ───────────────────────────────────────────────────────────

def _acme(sid, name, **kwargs):
    return Stakeholder(id=sid, company_id="acme", company_name="Acme Corp", full_name=name, **kwargs)


@pytest.fixture
def stakeholders():
    """Company A with three unplaced members plus a placeholder, company B with one."""
    return [
        _acme("a1", "Alice Ng", seniority_level=Seniority.C_LEVEL,
              sentiment=Sentiment.ALLY, influence_score=5, title="COO"),
        _acme("a2", "Bob Keller", seniority_level=Seniority.VP,
              sentiment=Sentiment.NEUTRAL, influence_score=3),
        _acme("a3", "Carol Diaz", seniority_level=Seniority.DIRECTOR,
              sentiment=Sentiment.OPPONENT, influence_score=1),
        _acme("a-company", "Acme Corp"),
        Stakeholder(id="b1", company_id="globex", company_name="Globex",
                    full_name="Dan Okafor", seniority_level=Seniority.IC),
    ]


@pytest.fixture
def relationships():
    return [
        Relationship(id="r1", from_stakeholder_id="a2", to_stakeholder_id="a1",
                     relation_type=RelationType.REPORTS_TO, strength=5),
        Relationship(id="r2", from_stakeholder_id="a1", to_stakeholder_id="b1",
                     relation_type=RelationType.PEER_OF, directionality="bidirectional"),
        Relationship(id="r3", from_stakeholder_id="a3", to_stakeholder_id="a2",
                     relation_type=RelationType.BLOCKS, strength=2, notes="Budget, timing"),
    ]


@pytest.fixture
def layouts():
    return [LayoutEntry(stakeholder_id="b1", x=10, y=20)]


@pytest.fixture
def dataset(stakeholders, relationships, layouts):
    return Dataset(
        companies=[Company(id="acme", name="Acme Corp"), Company(id="globex", name="Globex")],
        stakeholders=stakeholders,
        relationships=relationships,
        layouts=layouts,
    )


@pytest.fixture
def store(dataset):
    return RecordingStore(dataset)
