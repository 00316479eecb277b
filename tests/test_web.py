"""Tests for the aiohttp web surface."""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from stakemap.config import Settings
from stakemap.web import create_app


def _client(store):
    return TestClient(TestServer(create_app(store, Settings())))


class TestWebApp:
    @pytest.mark.asyncio
    async def test_status_and_map(self, store):
        async with _client(store) as client:
            resp = await client.get("/api/status")
            assert resp.status == 200
            status = await resp.json()
            assert status["stakeholders"] == 5

            resp = await client.get("/api/map")
            state = await resp.json()
            assert {n["id"] for n in state["elements"]["nodes"]} == {"a1", "a2", "a3", "b1"}
            assert state["state"] == "idle"
            assert [h["company_id"] for h in state["hulls"]] == ["acme"]

    @pytest.mark.asyncio
    async def test_tap_focuses_node(self, store):
        async with _client(store) as client:
            resp = await client.post("/api/tap", json={"kind": "node", "id": "a1"})
            state = await resp.json()
            assert state["state"] == "focus-mode"
            assert state["selected"]["id"] == "a1"
            assert state["dimmed"] == {"nodes": ["a3"], "edges": ["r3"]}

            resp = await client.post("/api/key", json={"key": "Escape"})
            assert (await resp.json())["state"] == "idle"

    @pytest.mark.asyncio
    async def test_bad_tap(self, store):
        async with _client(store) as client:
            resp = await client.post("/api/tap", json={})
            assert resp.status == 400

    @pytest.mark.asyncio
    async def test_drag_persists(self, store):
        async with _client(store) as client:
            resp = await client.post("/api/drag", json={"id": "a1", "x": 12, "y": 34})
            state = await resp.json()
            assert state["saved"] is True
        assert store.calls.count("upsert_layout_entry") == 1

    @pytest.mark.asyncio
    async def test_context_menu_flow(self, store):
        async with _client(store) as client:
            resp = await client.post("/api/menu", json={"kind": "edge", "id": "r3"})
            state = await resp.json()
            assert state["menu"]["actions"] == ["edit", "delete"]

            resp = await client.post("/api/menu/action", json={"action": "archive"})
            assert resp.status == 400

            resp = await client.post("/api/menu/action", json={"action": "delete"})
            state = await resp.json()
            assert "r3" not in {e["id"] for e in state["elements"]["edges"]}

    @pytest.mark.asyncio
    async def test_add_relationship_validation(self, store):
        async with _client(store) as client:
            resp = await client.post("/api/relationships", json={
                "from_stakeholder_id": "a1", "to_stakeholder_id": "a1",
            })
            assert resp.status == 400
            body = await resp.json()
            assert body["error"] == "Select different From and To stakeholders."
        assert store.mutations == []

    @pytest.mark.asyncio
    async def test_relationship_crud(self, store):
        async with _client(store) as client:
            resp = await client.post("/api/relationships", json={
                "from_stakeholder_id": "a1", "to_stakeholder_id": "a3",
                "relation_type": "GATEKEEPER_FOR", "strength": 2,
            })
            assert resp.status == 201
            rel = await resp.json()

            resp = await client.patch(f"/api/relationships/{rel['id']}", json={"strength": 5})
            assert (await resp.json())["strength"] == 5

            resp = await client.delete(f"/api/relationships/{rel['id']}")
            assert resp.status == 200

            resp = await client.delete(f"/api/relationships/{rel['id']}")
            assert resp.status == 502

    @pytest.mark.asyncio
    async def test_filters_and_cluster(self, store):
        async with _client(store) as client:
            resp = await client.post("/api/filters", json={"sentiments": ["ALLY"]})
            state = await resp.json()
            assert {n["id"] for n in state["elements"]["nodes"]} == {"a1"}
            assert state["filters"]["active_count"] == 1

            resp = await client.post("/api/filters", json={"sentiments": ["HAPPY"]})
            assert resp.status == 400

            resp = await client.post("/api/cluster")
            assert (await resp.json())["clustered"] is True

    @pytest.mark.asyncio
    async def test_exports(self, store):
        async with _client(store) as client:
            resp = await client.get("/api/export/png")
            assert resp.status == 200
            assert resp.content_type == "image/png"
            assert "attachment" in resp.headers["Content-Disposition"]
            assert (await resp.read())[:4] == b"\x89PNG"

            resp = await client.get("/api/export/stakeholders.csv")
            text = await resp.text()
            assert text.startswith("ID,Full Name")

            resp = await client.get("/api/export/relationships.csv")
            assert "Bob Keller" in await resp.text()

    @pytest.mark.asyncio
    async def test_archive(self, store):
        async with _client(store) as client:
            resp = await client.post("/api/stakeholders/a3/archive")
            state = await resp.json()
            assert "a3" not in {n["id"] for n in state["elements"]["nodes"]}

    @pytest.mark.asyncio
    async def test_load_failure_reported(self, store):
        store.fail.add("list_relationships")
        async with _client(store) as client:
            resp = await client.get("/api/map")
            state = await resp.json()
            assert state["error"].startswith("Failed to load map data")
            assert state["elements"]["nodes"] == []

            store.fail.clear()
            resp = await client.post("/api/reload")
            assert resp.status == 200
