"""Tests for the in-memory and PostgREST data stores."""

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from stakemap.config import Settings
from stakemap.errors import StoreError
from stakemap.models import DEFAULT_MAP_ID, LayoutEntry, RelationType
from stakemap.store import InMemoryStore, PostgrestStore, create_store


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_lists_only_active_stakeholders(self, dataset):
        store = InMemoryStore(dataset)
        await store.archive_stakeholder("a3")
        ids = [s.id for s in await store.list_active_stakeholders()]
        assert "a3" not in ids
        assert len(ids) == 4

    @pytest.mark.asyncio
    async def test_filters_by_company(self, dataset):
        store = InMemoryStore(dataset)
        rows = await store.list_active_stakeholders(company_ids=["globex"])
        assert [s.id for s in rows] == ["b1"]
        assert rows[0].company_name == "Globex"

    @pytest.mark.asyncio
    async def test_layout_entries_scoped_to_map(self, dataset):
        store = InMemoryStore(dataset)
        await store.upsert_layout_entry("other-map", "a1", 1, 1)
        entries = await store.list_layout_entries(DEFAULT_MAP_ID)
        assert [e.stakeholder_id for e in entries] == ["b1"]
        assert all(e.id for e in entries)

    @pytest.mark.asyncio
    async def test_layout_for_unknown_stakeholder_rejected(self, dataset):
        store = InMemoryStore(dataset)
        with pytest.raises(StoreError) as exc:
            await store.upsert_layout_entry(DEFAULT_MAP_ID, "ghost", 1, 1)
        assert exc.value.status == 409

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, dataset):
        store = InMemoryStore(dataset)
        with pytest.raises(StoreError):
            await store.batch_upsert_layout_entries([
                LayoutEntry(stakeholder_id="a1", x=1, y=1),
                LayoutEntry(stakeholder_id="ghost", x=2, y=2),
            ])
        assert (DEFAULT_MAP_ID, "a1") not in store.layouts

    @pytest.mark.asyncio
    async def test_relationship_constraints(self, dataset):
        store = InMemoryStore(dataset)
        with pytest.raises(StoreError) as exc:
            await store.create_relationship({
                "from_stakeholder_id": "a2", "to_stakeholder_id": "a1",
                "relation_type": "REPORTS_TO",
            })
        assert exc.value.status == 409

        with pytest.raises(StoreError):
            await store.create_relationship({
                "from_stakeholder_id": "a1", "to_stakeholder_id": "a1",
                "relation_type": "ADVISES",
            })

        with pytest.raises(StoreError):
            await store.create_relationship({
                "from_stakeholder_id": "a1", "to_stakeholder_id": "ghost",
                "relation_type": "ADVISES",
            })

    @pytest.mark.asyncio
    async def test_same_pair_different_type_allowed(self, dataset):
        store = InMemoryStore(dataset)
        rel = await store.create_relationship({
            "from_stakeholder_id": "a2", "to_stakeholder_id": "a1",
            "relation_type": "INFLUENCES", "strength": 4,
        })
        assert rel.relation_type == RelationType.INFLUENCES
        assert rel.id in store.relationships

    @pytest.mark.asyncio
    async def test_update_and_delete(self, dataset):
        store = InMemoryStore(dataset)
        rel = await store.update_relationship("r3", {"strength": 5, "notes": None})
        assert rel.strength == 5
        assert rel.notes is None

        await store.delete_relationship("r3")
        assert "r3" not in store.relationships
        with pytest.raises(StoreError) as exc:
            await store.delete_relationship("r3")
        assert exc.value.status == 404

    @pytest.mark.asyncio
    async def test_archive_unknown(self, dataset):
        store = InMemoryStore(dataset)
        with pytest.raises(StoreError):
            await store.archive_stakeholder("ghost")


class FakePostgrest:
    """Minimal PostgREST endpoint recording what it receives."""

    def __init__(self):
        self.requests = []
        self.fail_status = None
        self.delay = 0.0
        self.archive_rows = [{"id": "a1"}]

    async def handle(self, request):
        body = await request.json() if request.can_read_body else None
        self.requests.append({
            "method": request.method,
            "table": request.match_info["table"],
            "query": dict(request.query),
            "headers": dict(request.headers),
            "body": body,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_status:
            return web.json_response({"message": "boom"}, status=self.fail_status)

        table = request.match_info["table"]
        if request.method == "GET" and table == "stakeholders":
            return web.json_response([
                {"id": "a1", "company_id": "acme", "full_name": "Alice Ng",
                 "status": "active", "sentiment": "ALLY", "companies": {"name": "Acme Corp"}},
            ])
        if request.method == "GET" and table == "map_layouts":
            return web.json_response([
                {"id": "l1", "map_id": DEFAULT_MAP_ID, "stakeholder_id": "a1",
                 "x": 1.5, "y": 2.5, "updated_at": "2025-01-01T00:00:00Z"},
            ])
        if request.method == "POST" and table == "map_layouts":
            if request.headers.get("Prefer", "").endswith("return=minimal"):
                return web.Response(status=201)
            return web.json_response([{"id": "l1", **body}], status=201)
        if request.method == "PATCH" and table == "stakeholders":
            return web.json_response(self.archive_rows)
        if request.method == "POST" and table == "relationships":
            return web.json_response([{"id": "new", **body}], status=201)
        if request.method == "DELETE":
            return web.Response(status=204)
        return web.json_response([])


@pytest.fixture
def fake():
    return FakePostgrest()


def _app(fake):
    app = web.Application()
    app.router.add_route("*", "/rest/v1/{table}", fake.handle)
    return app


class TestPostgrestStore:
    @pytest.mark.asyncio
    async def test_lists_active_stakeholders_with_company_name(self, fake):
        async with TestServer(_app(fake)) as server:
            async with PostgrestStore(str(server.make_url("/")), "anon-key") as store:
                rows = await store.list_active_stakeholders(company_ids=["acme", "globex"])

        assert rows[0].company_name == "Acme Corp"
        req = fake.requests[0]
        assert req["query"]["status"] == "eq.active"
        assert req["query"]["company_id"] == "in.(acme,globex)"
        assert req["query"]["select"] == "*,companies(name)"
        assert req["headers"]["apikey"] == "anon-key"
        assert req["headers"]["Authorization"] == "Bearer anon-key"

    @pytest.mark.asyncio
    async def test_layout_entries_filtered_by_map(self, fake):
        async with TestServer(_app(fake)) as server:
            async with PostgrestStore(str(server.make_url("/")), "k") as store:
                entries = await store.list_layout_entries(DEFAULT_MAP_ID)

        assert entries[0].x == 1.5
        assert fake.requests[0]["query"]["map_id"] == f"eq.{DEFAULT_MAP_ID}"

    @pytest.mark.asyncio
    async def test_upsert_uses_conflict_target(self, fake):
        async with TestServer(_app(fake)) as server:
            async with PostgrestStore(str(server.make_url("/")), "k") as store:
                entry = await store.upsert_layout_entry(DEFAULT_MAP_ID, "a1", 3, 4)
                await store.batch_upsert_layout_entries([
                    LayoutEntry(stakeholder_id="a1", x=5, y=6),
                    LayoutEntry(stakeholder_id="a2", x=7, y=8),
                ])

        assert (entry.x, entry.y) == (3, 4)
        single, batch = fake.requests
        assert single["query"]["on_conflict"] == "map_id,stakeholder_id"
        assert "resolution=merge-duplicates" in single["headers"]["Prefer"]
        assert isinstance(batch["body"], list) and len(batch["body"]) == 2

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self, fake):
        async with TestServer(_app(fake)) as server:
            async with PostgrestStore(str(server.make_url("/")), "k") as store:
                await store.batch_upsert_layout_entries([])
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_error_status_raises(self, fake):
        fake.fail_status = 500
        async with TestServer(_app(fake)) as server:
            async with PostgrestStore(str(server.make_url("/")), "k") as store:
                with pytest.raises(StoreError) as exc:
                    await store.list_relationships()
        assert exc.value.status == 500

    @pytest.mark.asyncio
    async def test_timeout_raises(self, fake):
        fake.delay = 1.0
        async with TestServer(_app(fake)) as server:
            async with PostgrestStore(str(server.make_url("/")), "k", timeout=0.1) as store:
                with pytest.raises(StoreError, match="timed out"):
                    await store.list_companies()

    @pytest.mark.asyncio
    async def test_archive_missing_row_is_not_found(self, fake):
        fake.archive_rows = []
        async with TestServer(_app(fake)) as server:
            async with PostgrestStore(str(server.make_url("/")), "k") as store:
                with pytest.raises(StoreError) as exc:
                    await store.archive_stakeholder("ghost")
        assert exc.value.status == 404
        assert fake.requests[0]["query"]["id"] == "eq.ghost"
        assert fake.requests[0]["body"] == {"status": "archived"}

    @pytest.mark.asyncio
    async def test_create_and_delete_relationship(self, fake):
        async with TestServer(_app(fake)) as server:
            async with PostgrestStore(str(server.make_url("/")), "k") as store:
                rel = await store.create_relationship({
                    "from_stakeholder_id": "a1", "to_stakeholder_id": "a2",
                    "relation_type": "SPONSORS", "strength": 4, "notes": None,
                })
                await store.delete_relationship(rel.id)

        assert rel.id == "new"
        assert "notes" not in fake.requests[0]["body"]
        assert fake.requests[1]["method"] == "DELETE"
        assert fake.requests[1]["query"]["id"] == "eq.new"


class TestCreateStore:
    def test_postgrest_when_configured(self):
        settings = Settings(supabase_url="https://example.test", supabase_key="k")
        assert isinstance(create_store(settings), PostgrestStore)

    def test_seeded_in_memory(self):
        from pathlib import Path

        seed = Path(__file__).parent.parent / "data" / "demo.yaml"
        store = create_store(Settings(), str(seed))
        assert isinstance(store, InMemoryStore)
        assert "alice" in store.stakeholders

    def test_empty_in_memory(self):
        store = create_store(Settings())
        assert isinstance(store, InMemoryStore)
        assert store.stakeholders == {}
