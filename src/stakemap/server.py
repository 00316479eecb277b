"""StakeMap MCP server — MCP tools for inspecting and arranging a stakeholder map."""

from __future__ import annotations

import json
import logging
import os
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import load_settings
from .errors import DataFetchError, MutationError, StakeMapError, ValidationError
from .export import export_filename
from .models import RelationType
from .page import MapPage
from .store import create_store

logger = logging.getLogger(__name__)

# --- Constants ---
SEED_PATH = os.environ.get("STAKEMAP_SEED")

server = Server("stakemap")

_page: Optional[MapPage] = None


async def _get_page() -> MapPage:
    """The map page, created and loaded on first use."""
    global _page
    if _page is None:
        settings = load_settings()
        _page = MapPage(create_store(settings, SEED_PATH), settings)
    if not await _page.load():
        raise DataFetchError(_page.error or "Failed to load map data")
    return _page


def _raise_last_alert(page: MapPage, default: str) -> None:
    raise MutationError(page.alerts[-1] if page.alerts else default)


def _ensure_output_dir(page: MapPage):
    page.settings.output_dir.mkdir(parents=True, exist_ok=True)


def _json(data) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(data))]


# --- Tool definitions ---

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="render_map",
            description=(
                "Render the stakeholder map to a PNG snapshot. Nodes are colored by "
                "sentiment, shaped by seniority and sized by influence; companies with "
                "three or more stakeholders get an outline. Optionally focus one "
                "stakeholder to dim everything outside their direct relationships. "
                "Returns the path to the rendered PNG file."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "focus": {
                        "type": "string",
                        "description": "Stakeholder id to focus (optional).",
                    },
                    "companies": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Company ids to show. Default: all companies.",
                    },
                    "scale": {
                        "type": "number",
                        "description": "Render scale factor (default 2.0)",
                        "default": 2.0,
                    },
                    "title": {
                        "type": "string",
                        "description": "Optional title drawn above the map.",
                    },
                },
            },
        ),
        Tool(
            name="list_companies",
            description="List companies on the map with their active stakeholder counts.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="list_stakeholders",
            description=(
                "List active stakeholders with their current map position and whether "
                "that position is saved or a fallback slot."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "company_id": {"type": "string", "description": "Only this company."},
                },
            },
        ),
        Tool(
            name="cluster_by_company",
            description=(
                "Arrange all active stakeholders into company groups: company centres on "
                "a ring, members on a small ring around their centre. Saved as one batch."
            ),
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="move_stakeholder",
            description="Move one stakeholder to (x, y) and save the position.",
            inputSchema={
                "type": "object",
                "properties": {
                    "stakeholder_id": {"type": "string"},
                    "x": {"type": "number"},
                    "y": {"type": "number"},
                },
                "required": ["stakeholder_id", "x", "y"],
            },
        ),
        Tool(
            name="add_relationship",
            description="Create a relationship between two different stakeholders.",
            inputSchema={
                "type": "object",
                "properties": {
                    "from_stakeholder_id": {"type": "string"},
                    "to_stakeholder_id": {"type": "string"},
                    "relation_type": {
                        "type": "string",
                        "enum": [t.value for t in RelationType],
                        "default": RelationType.COLLABORATES_WITH.value,
                    },
                    "strength": {"type": "integer", "minimum": 1, "maximum": 5, "default": 3},
                    "directionality": {
                        "type": "string",
                        "enum": ["directional", "bidirectional"],
                        "default": "directional",
                    },
                    "notes": {"type": "string"},
                },
                "required": ["from_stakeholder_id", "to_stakeholder_id"],
            },
        ),
        Tool(
            name="delete_relationship",
            description="Delete a relationship by id.",
            inputSchema={
                "type": "object",
                "properties": {"relationship_id": {"type": "string"}},
                "required": ["relationship_id"],
            },
        ),
        Tool(
            name="archive_stakeholder",
            description="Archive a stakeholder; archived stakeholders leave the map.",
            inputSchema={
                "type": "object",
                "properties": {"stakeholder_id": {"type": "string"}},
                "required": ["stakeholder_id"],
            },
        ),
        Tool(
            name="export_csv",
            description="Write the visible stakeholders or relationships to a CSV file.",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": {"type": "string", "enum": ["stakeholders", "relationships"]},
                },
                "required": ["kind"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    handlers = {
        "render_map": _render_map,
        "list_companies": _list_companies,
        "list_stakeholders": _list_stakeholders,
        "cluster_by_company": _cluster_by_company,
        "move_stakeholder": _move_stakeholder,
        "add_relationship": _add_relationship,
        "delete_relationship": _delete_relationship,
        "archive_stakeholder": _archive_stakeholder,
        "export_csv": _export_csv,
    }
    handler = handlers.get(name)
    if handler is None:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]
    try:
        return await handler(arguments or {})
    except StakeMapError as e:
        logger.error(f"{name} failed: {e}")
        return [TextContent(type="text", text=f"{name} failed: {e}")]


async def _render_map(args: dict) -> list[TextContent]:
    """Render the current map to PNG.

    ``companies`` narrows this render only; the page goes back to its previous
    company selection afterwards.
    """
    page = await _get_page()
    _ensure_output_dir(page)

    previous = set(page.selected_companies)
    if args.get("companies"):
        page.selected_companies = set(args["companies"])
    else:
        page.selected_companies = {c.id for c in page.company_list()}
    page.refresh()
    try:
        focus = args.get("focus")
        if not focus:
            page.controller.tap_background()
        elif page.controller.focused_node != focus:
            page.controller.tap_node(focus)

        png = page.controller.export_png(scale=args.get("scale", 2.0), title=args.get("title"))
        if png is None:
            return [TextContent(type="text", text="Nothing to render")]
        output_path = page.settings.output_dir / export_filename("", "png")
        output_path.write_bytes(png)
        result = {
            "status": "success",
            "path": str(output_path),
            "nodes": len(page.elements.nodes),
            "edges": len(page.elements.edges),
            "focused": page.controller.focused_node,
        }
    finally:
        page.selected_companies = previous
        page.refresh()

    return _json(result)


async def _list_companies(args: dict) -> list[TextContent]:
    page = await _get_page()
    return _json({
        "companies": [
            {"id": c.id, "name": c.name, "stakeholders": c.count}
            for c in page.company_list()
        ],
    })


async def _list_stakeholders(args: dict) -> list[TextContent]:
    page = await _get_page()
    company_id = args.get("company_id")
    rows = []
    for node in page.elements.nodes:
        if company_id and node.company_id != company_id:
            continue
        rows.append({
            "id": node.id,
            "name": node.label,
            "company": node.company_name,
            "x": node.x,
            "y": node.y,
            "saved_position": node.persisted,
        })
    return _json({"stakeholders": rows})


async def _cluster_by_company(args: dict) -> list[TextContent]:
    page = await _get_page()
    if not await page.cluster_by_company():
        _raise_last_alert(page, "Nothing to cluster")
    return _json({
        "status": "success",
        "stakeholders": len(page.elements.nodes),
        "companies": len(page.company_list()),
    })


async def _move_stakeholder(args: dict) -> list[TextContent]:
    page = await _get_page()
    sid = args["stakeholder_id"]
    if page.elements.get_node(sid) is None:
        raise ValidationError(f"Stakeholder {sid} is not on the map")
    page.controller.drag_start(sid)
    if not await page.controller.drag_end(sid, float(args["x"]), float(args["y"])):
        _raise_last_alert(page, "Failed to save layout.")
    return _json({"status": "success", "stakeholder_id": sid, "x": args["x"], "y": args["y"]})


async def _add_relationship(args: dict) -> list[TextContent]:
    page = await _get_page()
    rel = await page.add_relationship(
        args.get("from_stakeholder_id", ""),
        args.get("to_stakeholder_id", ""),
        relation_type=args.get("relation_type", RelationType.COLLABORATES_WITH.value),
        strength=args.get("strength", 3),
        directionality=args.get("directionality", "directional"),
        notes=args.get("notes"),
    )
    if rel is None:
        _raise_last_alert(page, "Failed to add relationship.")
    return _json({"status": "success", "relationship": rel.model_dump(mode="json")})


async def _delete_relationship(args: dict) -> list[TextContent]:
    page = await _get_page()
    if not await page.delete_relationship(args["relationship_id"]):
        _raise_last_alert(page, "Failed to delete relationship.")
    return _json({"status": "success"})


async def _archive_stakeholder(args: dict) -> list[TextContent]:
    page = await _get_page()
    if not await page.archive_stakeholder(args["stakeholder_id"]):
        _raise_last_alert(page, "Failed to archive stakeholder.")
    return _json({"status": "success"})


async def _export_csv(args: dict) -> list[TextContent]:
    page = await _get_page()
    _ensure_output_dir(page)
    if args["kind"] == "relationships":
        filename, text = page.export_relationships_csv()
    else:
        filename, text = page.export_stakeholders_csv()
    output_path = page.settings.output_dir / filename
    output_path.write_text(text)
    return _json({"status": "success", "path": str(output_path)})


def main():
    """Entry point for the MCP server."""
    import asyncio

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(_run())


async def _run():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    main()
