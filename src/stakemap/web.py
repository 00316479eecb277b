#!/usr/bin/env python3
"""
StakeMap Web - HTTP interface for the stakeholder map page

A lightweight aiohttp server exposing the map page controller: the current
graph generation as JSON, pointer events, filters, relationship edits,
cluster-by-company and the PNG / CSV exports.

Usage:
    stakemap-web [--port 8766] [--host 0.0.0.0] [--seed data/demo.yaml]
"""

import asyncio
import logging
from typing import Optional

from aiohttp import web

from .config import Settings, load_settings
from .errors import GraphHandleDestroyed, StakeMapError, ValidationError
from .models import Seniority, Sentiment
from .page import MapFilterState, MapPage
from .store import DataStore, PostgrestStore, create_store

logger = logging.getLogger(__name__)

PAGE_KEY = web.AppKey("page", MapPage)


def _page(request: web.Request) -> MapPage:
    return request.app[PAGE_KEY]


def _error_response(e: Exception) -> web.Response:
    if isinstance(e, ValidationError):
        return web.json_response({"error": str(e)}, status=400)
    if isinstance(e, GraphHandleDestroyed):
        return web.json_response({"error": str(e)}, status=409)
    logger.error(f"Request failed: {e}")
    return web.json_response({"error": str(e)}, status=500)


def page_state(page: MapPage) -> dict:
    """JSON-ready snapshot of everything the page shows."""
    controller = page.controller
    dimmed_nodes, dimmed_edges = controller.dimmed()
    hulls = controller.handle.hulls() if controller.handle is not None else []
    selected = page.selected
    return {
        "loading": page.loading,
        "error": page.error,
        "alerts": list(page.alerts),
        "clustering": page.clustering,
        "state": controller.state.value,
        "elements": page.elements.model_dump(mode="json"),
        "hulls": [h.model_dump(mode="json") for h in hulls],
        "dimmed": {"nodes": sorted(dimmed_nodes), "edges": sorted(dimmed_edges)},
        "selected": selected.model_dump(mode="json") if selected else None,
        "selected_edge": controller.selected_edge,
        "selected_relationships": [
            {
                "id": row.relationship.id,
                "other_name": row.other_name,
                "direction": row.direction,
                "label": row.label,
                "strength": row.relationship.strength,
            }
            for row in page.selected_relationships()
        ],
        "menu": (
            {
                "kind": controller.menu.kind,
                "target_id": controller.menu.target_id,
                "actions": list(controller.menu.actions),
            }
            if controller.menu
            else None
        ),
        "tooltip": (
            {"kind": controller.tooltip.kind, "target_id": controller.tooltip.target_id,
             "lines": controller.tooltip.lines}
            if controller.tooltip
            else None
        ),
        "companies": [
            {"id": c.id, "name": c.name, "count": c.count,
             "selected": c.id in page.selected_companies}
            for c in page.company_list()
        ],
        "filters": {
            "sentiments": sorted(s.value for s in page.filters.sentiments),
            "seniorities": sorted(s.value for s in page.filters.seniorities),
            "min_influence": page.filters.min_influence,
            "active_count": page.filters.active_count,
        },
        "show_add_relationship": page.show_add_relationship,
        "relationship_form_from": page.relationship_form_from,
        "edit_request": list(page.edit_request) if page.edit_request else None,
    }


async def handle_status(request):
    """Health check."""
    page = _page(request)
    return web.json_response({
        "status": "ok",
        "map_id": page.settings.map_id,
        "stakeholders": len(page.stakeholders),
        "relationships": len(page.relationships),
    })


async def handle_map(request):
    return web.json_response(page_state(_page(request)))


async def handle_reload(request):
    page = _page(request)
    await page.load()
    return web.json_response(page_state(page), status=200 if page.error is None else 503)


async def handle_tap(request):
    """Primary tap: ``{"kind": "node"|"edge"|"background", "id": ...}`` or ``{"x", "y"}``."""
    page = _page(request)
    data = await request.json()
    kind = data.get("kind")
    try:
        if kind == "node":
            page.controller.tap_node(data.get("id", ""))
        elif kind == "edge":
            page.controller.tap_edge(data.get("id", ""))
        elif kind == "background":
            page.controller.tap_background()
        elif "x" in data and "y" in data:
            page.controller.tap_at(float(data["x"]), float(data["y"]))
        else:
            raise ValidationError("Tap needs a kind or x/y coordinates")
    except (TypeError, ValueError) as e:
        return _error_response(ValidationError(f"Bad tap request: {e}"))
    except StakeMapError as e:
        return _error_response(e)
    return web.json_response(page_state(page))


async def handle_key(request):
    page = _page(request)
    data = await request.json()
    try:
        page.controller.key_press(data.get("key", ""))
    except StakeMapError as e:
        return _error_response(e)
    return web.json_response(page_state(page))


async def handle_drag(request):
    """Drop a node at ``{"id", "x", "y"}``; persisted once."""
    page = _page(request)
    try:
        data = await request.json()
        node_id = data["id"]
        x, y = float(data["x"]), float(data["y"])
    except (KeyError, TypeError, ValueError) as e:
        return _error_response(ValidationError(f"Bad drag request: {e}"))
    try:
        page.controller.drag_start(node_id)
        ok = await page.controller.drag_end(node_id, x, y)
    except StakeMapError as e:
        return _error_response(e)
    state = page_state(page)
    state["saved"] = ok
    return web.json_response(state)


async def handle_menu_open(request):
    page = _page(request)
    data = await request.json()
    try:
        page.controller.secondary_press(data.get("kind", ""), data.get("id", ""))
    except StakeMapError as e:
        return _error_response(e)
    return web.json_response(page_state(page))


async def handle_menu_close(request):
    page = _page(request)
    page.controller.close_menu()
    return web.json_response(page_state(page))


async def handle_menu_action(request):
    page = _page(request)
    data = await request.json()
    try:
        await page.controller.menu_action(data.get("action", ""))
    except StakeMapError as e:
        return _error_response(e)
    return web.json_response(page_state(page))


async def handle_hover(request):
    """``{"kind", "id"}`` enters a hover target; an empty body leaves it."""
    page = _page(request)
    data = await request.json() if request.can_read_body else {}
    if data.get("kind") and data.get("id"):
        page.controller.hover_enter(data["kind"], data["id"])
    else:
        page.controller.hover_leave()
    return web.json_response(page_state(page))


async def handle_filters(request):
    """Set company and attribute filters."""
    page = _page(request)
    data = await request.json()
    try:
        filters = MapFilterState(
            sentiments={Sentiment(v) for v in data.get("sentiments", [])},
            seniorities={Seniority(v) for v in data.get("seniorities", [])},
            min_influence=int(data.get("min_influence", 0)),
        )
    except (TypeError, ValueError) as e:
        return _error_response(ValidationError(f"Bad filter: {e}"))
    if "companies" in data:
        page.selected_companies = set(data["companies"])
    page.set_filters(filters)
    return web.json_response(page_state(page))


async def handle_cluster(request):
    page = _page(request)
    ok = await page.cluster_by_company()
    state = page_state(page)
    state["clustered"] = ok
    return web.json_response(state)


async def handle_archive(request):
    page = _page(request)
    ok = await page.archive_stakeholder(request.match_info["stakeholder_id"])
    return web.json_response(page_state(page), status=200 if ok else 502)


async def handle_add_relationship(request):
    page = _page(request)
    data = await request.json()
    try:
        rel = await page.add_relationship(
            data.get("from_stakeholder_id", ""),
            data.get("to_stakeholder_id", ""),
            relation_type=data.get("relation_type", "COLLABORATES_WITH"),
            strength=data.get("strength", 3),
            directionality=data.get("directionality", "directional"),
            notes=data.get("notes"),
        )
    except StakeMapError as e:
        return _error_response(e)
    if rel is None:
        return web.json_response({"error": page.alerts[-1]}, status=502)
    return web.json_response(rel.model_dump(mode="json"), status=201)


async def handle_update_relationship(request):
    page = _page(request)
    data = await request.json()
    try:
        rel = await page.update_relationship(request.match_info["relationship_id"], data)
    except StakeMapError as e:
        return _error_response(e)
    if rel is None:
        return web.json_response({"error": page.alerts[-1]}, status=502)
    return web.json_response(rel.model_dump(mode="json"))


async def handle_delete_relationship(request):
    page = _page(request)
    ok = await page.delete_relationship(request.match_info["relationship_id"])
    if not ok:
        return web.json_response({"error": page.alerts[-1]}, status=502)
    return web.json_response({"status": "deleted"})


async def handle_dismiss_alerts(request):
    page = _page(request)
    page.dismiss_alerts()
    return web.json_response(page_state(page))


def _attachment(body, filename: str, content_type: str) -> web.Response:
    return web.Response(
        body=body.encode("utf-8") if isinstance(body, str) else body,
        content_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def handle_export_png(request):
    page = _page(request)
    scale = float(request.query.get("scale", 2.0))
    result = page.export_png(scale=scale)
    if result is None:
        return web.json_response({"error": "No map is mounted"}, status=409)
    filename, png = result
    return _attachment(png, filename, "image/png")


async def handle_export_stakeholders(request):
    filename, text = _page(request).export_stakeholders_csv()
    return _attachment(text, filename, "text/csv")


async def handle_export_relationships(request):
    filename, text = _page(request).export_relationships_csv()
    return _attachment(text, filename, "text/csv")


def create_app(store: DataStore, settings: Optional[Settings] = None) -> web.Application:
    """Create the aiohttp application around one map page."""
    app = web.Application()
    page = MapPage(store, settings)
    app[PAGE_KEY] = page

    async def on_startup(app):
        await page.load()

    async def on_cleanup(app):
        if isinstance(store, PostgrestStore):
            await store.close()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    app.router.add_get('/api/status', handle_status)
    app.router.add_get('/api/map', handle_map)
    app.router.add_post('/api/reload', handle_reload)
    app.router.add_post('/api/tap', handle_tap)
    app.router.add_post('/api/key', handle_key)
    app.router.add_post('/api/drag', handle_drag)
    app.router.add_post('/api/menu', handle_menu_open)
    app.router.add_post('/api/menu/close', handle_menu_close)
    app.router.add_post('/api/menu/action', handle_menu_action)
    app.router.add_post('/api/hover', handle_hover)
    app.router.add_post('/api/filters', handle_filters)
    app.router.add_post('/api/cluster', handle_cluster)
    app.router.add_post('/api/alerts/dismiss', handle_dismiss_alerts)
    app.router.add_post('/api/stakeholders/{stakeholder_id}/archive', handle_archive)
    app.router.add_post('/api/relationships', handle_add_relationship)
    app.router.add_patch('/api/relationships/{relationship_id}', handle_update_relationship)
    app.router.add_delete('/api/relationships/{relationship_id}', handle_delete_relationship)
    app.router.add_get('/api/export/png', handle_export_png)
    app.router.add_get('/api/export/stakeholders.csv', handle_export_stakeholders)
    app.router.add_get('/api/export/relationships.csv', handle_export_relationships)

    return app


async def serve(host: str = '0.0.0.0', port: int = 8766, seed: Optional[str] = None,
                config: Optional[str] = None):
    """Run the web server."""
    settings = load_settings(config)
    app = create_app(create_store(settings, seed), settings)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"StakeMap running at http://{host}:{port}")
    logger.info(f"Map: {settings.map_id}")

    # Keep running
    while True:
        await asyncio.sleep(3600)


def main():
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description='StakeMap Web Server')
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind to')
    parser.add_argument('--port', type=int, default=8766, help='Port to listen on')
    parser.add_argument('--seed', help='YAML dataset for the in-memory store')
    parser.add_argument('--config', help='Settings YAML (defaults to $STAKEMAP_CONFIG)')
    args = parser.parse_args()

    try:
        asyncio.run(serve(host=args.host, port=args.port, seed=args.seed, config=args.config))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == '__main__':
    main()
