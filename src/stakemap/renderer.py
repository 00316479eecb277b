"""Map renderer using Pillow — rasterizes a materialized stakeholder map to PNG."""

from __future__ import annotations

import math
from io import BytesIO
from pathlib import Path
from typing import Iterable, Optional

from PIL import Image, ImageDraw, ImageFont

from .geometry import Point, regular_polygon, star_polygon
from .models import CompanyHull, MapEdge, MapElements, MapNode, Sentiment
from .themes import SENTIMENT_COLORS, ThemePalette, get_theme


# --- Font handling ---

FONT_DIRS = [
    "/usr/share/fonts/truetype/dejavu",
    "/usr/share/fonts/TTF",
    "/Library/Fonts",
]
FONT_FILES = {
    False: "DejaVuSans.ttf",
    True: "DejaVuSans-Bold.ttf",
}


def _load_font(size: int, bold: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """DejaVu Sans at ``size``; Pillow's bundled font when it is not installed."""
    size = max(1, size)
    for font_dir in FONT_DIRS:
        path = Path(font_dir) / FONT_FILES[bold]
        if path.exists():
            return ImageFont.truetype(str(path), size)
    return ImageFont.load_default(size)


# --- Color helpers ---

def _hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Convert hex color to RGB tuple. Supports both 3-char and 6-char hex."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = hex_color[0]*2 + hex_color[1]*2 + hex_color[2]*2
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def _hex_to_rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    r, g, b = _hex_to_rgb(hex_color)
    return (r, g, b, alpha)


def _blend(hex_color: str, toward: str, factor: float) -> str:
    """Mix ``hex_color`` toward ``toward``; factor=0 keeps it, 1 replaces it."""
    r1, g1, b1 = _hex_to_rgb(hex_color)
    r2, g2, b2 = _hex_to_rgb(toward)
    r = int(r1 + (r2 - r1) * factor)
    g = int(g1 + (g2 - g1) * factor)
    b = int(b1 + (b2 - b1) * factor)
    return f"#{r:02x}{g:02x}{b:02x}"


# --- Drawing primitives ---

def _draw_arrowhead(
    draw: ImageDraw.ImageDraw,
    start: Point,
    end: Point,
    color: str,
    arrow_size: float = 10,
):
    """Filled triangle at ``end`` pointing away from ``start``."""
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length = math.hypot(dx, dy)
    if length == 0:
        return

    udx = dx / length
    udy = dy / length

    ax = end[0] - arrow_size * udx + (arrow_size / 2) * udy
    ay = end[1] - arrow_size * udy - (arrow_size / 2) * udx
    bx = end[0] - arrow_size * udx - (arrow_size / 2) * udy
    by = end[1] - arrow_size * udy + (arrow_size / 2) * udx

    draw.polygon([end, (ax, ay), (bx, by)], fill=color)


def _draw_patterned_line(
    draw: ImageDraw.ImageDraw,
    start: Point,
    end: Point,
    color: str,
    width: int,
    dash: str = "solid",
):
    """Straight line, optionally dashed or dotted."""
    if dash == "solid":
        draw.line([start, end], fill=color, width=width)
        return

    on, off = (12, 8) if dash == "dashed" else (2, 6)
    on *= max(1, width / 2)
    off *= max(1, width / 2)
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length = math.hypot(dx, dy)
    if length == 0:
        return
    ux, uy = dx / length, dy / length
    pos = 0.0
    while pos < length:
        seg_end = min(pos + on, length)
        draw.line(
            [(start[0] + ux * pos, start[1] + uy * pos),
             (start[0] + ux * seg_end, start[1] + uy * seg_end)],
            fill=color,
            width=width,
        )
        pos = seg_end + off


def shape_points(shape: str, cx: float, cy: float, size: float) -> Optional[list[Point]]:
    """Polygon vertices for a node shape, or None for round shapes."""
    r = size / 2
    if shape == "star":
        return star_polygon(cx, cy, r)
    if shape == "hexagon":
        return regular_polygon(cx, cy, r, 6, rotation=0.0)
    if shape == "pentagon":
        return regular_polygon(cx, cy, r, 5)
    if shape == "diamond":
        return regular_polygon(cx, cy, r, 4)
    if shape == "triangle":
        return regular_polygon(cx, cy, r, 3)
    return None


# --- Main renderer ---

class MapRenderer:
    """Renders ``MapElements`` to a PNG image."""

    PADDING = 60
    TITLE_HEIGHT = 50
    LABEL_GAP = 8
    LEGEND_ROW = 16

    def __init__(self, scale: float = 1.0, theme: str = "light"):
        self.scale = scale
        self.theme: ThemePalette = get_theme(theme)
        self.font_label = _load_font(int(12 * scale))
        self.font_title = _load_font(int(22 * scale), bold=True)
        self.font_small = _load_font(int(11 * scale))

    def render(
        self,
        elements: MapElements,
        output_path: Optional[str] = None,
        title: Optional[str] = None,
        hulls: Optional[list[CompanyHull]] = None,
        dimmed_nodes: Iterable[str] = (),
        dimmed_edges: Iterable[str] = (),
        selected: Optional[str] = None,
        legend: bool = True,
    ) -> bytes:
        """Render the element set to PNG bytes. Optionally save to file.

        Args:
            elements: Materialized nodes and edges.
            output_path: Optional path to save the PNG.
            title: Optional heading drawn at the top.
            hulls: Company outlines drawn behind everything else.
            dimmed_nodes / dimmed_edges: Ids drawn faded (focus mode).
            selected: Node id drawn with the selection ring.
            legend: Draw the sentiment legend in the top-left corner.
        """
        hulls = hulls or []
        dimmed_nodes = set(dimmed_nodes)
        dimmed_edges = set(dimmed_edges)

        bounds = self._calculate_bounds(elements, hulls)
        img_width = max(1, int(bounds["width"] * self.scale))
        img_height = max(1, int(bounds["height"] * self.scale))

        img = Image.new("RGBA", (img_width, img_height), _hex_to_rgba(self.theme.background))

        # Offset for translating map coordinates to image space
        ox = -bounds["min_x"]
        oy = -bounds["min_y"]

        if hulls:
            img = self._draw_hulls(img, hulls, ox, oy)

        draw = ImageDraw.Draw(img)

        if title:
            self._draw_title(draw, title, img_width)
        if legend:
            self._draw_legend(draw)

        # Edges behind nodes
        for edge in elements.edges:
            source = elements.get_node(edge.source)
            target = elements.get_node(edge.target)
            if not source or not target:
                continue
            self._draw_edge(draw, edge, source, target, ox, oy, edge.id in dimmed_edges)

        for node in elements.nodes:
            self._draw_node(draw, node, ox, oy, node.id in dimmed_nodes, node.id == selected)

        buf = BytesIO()
        img.save(buf, format="PNG", optimize=True)
        png_bytes = buf.getvalue()

        if output_path:
            Path(output_path).write_bytes(png_bytes)

        return png_bytes

    def _calculate_bounds(self, elements: MapElements, hulls: list[CompanyHull]) -> dict:
        """Bounding box of nodes (with labels) and hulls, plus padding and title room."""
        if not elements.nodes:
            return {"min_x": 0, "min_y": 0, "width": 400, "height": 300}

        label_room = 30
        xs = []
        ys = []
        for n in elements.nodes:
            half = n.style.size / 2
            xs.extend([n.x - half, n.x + half])
            ys.extend([n.y - half, n.y + half + label_room])
        for hull in hulls:
            xs.extend(p[0] for p in hull.points)
            ys.extend(p[1] for p in hull.points)

        min_x = min(xs) - self.PADDING
        min_y = min(ys) - self.PADDING - self.TITLE_HEIGHT
        max_x = max(xs) + self.PADDING
        max_y = max(ys) + self.PADDING
        return {
            "min_x": min_x,
            "min_y": min_y,
            "width": max_x - min_x,
            "height": max_y - min_y,
        }

    def _to_image(self, x: float, y: float, ox: float, oy: float) -> Point:
        return ((x + ox) * self.scale, (y + oy) * self.scale)

    def _draw_title(self, draw: ImageDraw.ImageDraw, title: str, img_width: int):
        """Draw the map title centered at the top."""
        bbox = self.font_title.getbbox(title)
        tw = bbox[2] - bbox[0]
        x = (img_width - tw) / 2
        draw.text((x, 15 * self.scale), title, fill=self.theme.title_color, font=self.font_title)

    def _draw_legend(self, draw: ImageDraw.ImageDraw):
        """Sentiment swatches in the top-left corner."""
        s = self.scale
        x = 16 * s
        y = 16 * s
        for sentiment in Sentiment:
            color = SENTIMENT_COLORS[sentiment]
            r = 5 * s
            draw.ellipse([x, y, x + 2 * r, y + 2 * r], fill=color)
            draw.text(
                (x + 2 * r + 6 * s, y - 2 * s),
                sentiment.value.title(),
                fill=self.theme.muted_text_color,
                font=self.font_small,
            )
            y += self.LEGEND_ROW * s

    def _draw_hulls(self, img: Image.Image, hulls: list[CompanyHull], ox: float, oy: float) -> Image.Image:
        """Translucent company outlines, composited under everything else."""
        overlay = Image.new("RGBA", img.size, (0, 0, 0, 0))
        odraw = ImageDraw.Draw(overlay)
        for hull in hulls:
            if len(hull.points) < 3:
                continue
            pts = [self._to_image(x, y, ox, oy) for x, y in hull.points]
            odraw.polygon(
                pts,
                fill=_hex_to_rgba(hull.color, self.theme.hull_fill_alpha),
                outline=_hex_to_rgba(hull.color, 160),
                width=max(1, int(self.theme.hull_border_width * self.scale)),
            )
            if hull.company_name:
                top = min(pts, key=lambda p: p[1])
                odraw.text(
                    (top[0], top[1] - 16 * self.scale),
                    hull.company_name,
                    fill=_hex_to_rgba(hull.color, 220),
                    font=self.font_small,
                )
        return Image.alpha_composite(img, overlay)

    def _draw_edge(
        self,
        draw: ImageDraw.ImageDraw,
        edge: MapEdge,
        source: MapNode,
        target: MapNode,
        ox: float,
        oy: float,
        dimmed: bool,
    ):
        """Straight edge trimmed to both node outlines, arrowheads per style."""
        style = edge.style
        fade = 1 - style.opacity
        if dimmed:
            fade = max(fade, self.theme.dim_factor)
        color = _blend(style.line_color, self.theme.background, fade)

        sx, sy = self._to_image(source.x, source.y, ox, oy)
        tx, ty = self._to_image(target.x, target.y, ox, oy)
        dx = tx - sx
        dy = ty - sy
        length = math.hypot(dx, dy)
        if length == 0:
            return
        ux, uy = dx / length, dy / length
        src_trim = source.style.size / 2 * self.scale
        tgt_trim = target.style.size / 2 * self.scale
        if length <= src_trim + tgt_trim:
            return
        start = (sx + ux * src_trim, sy + uy * src_trim)
        end = (tx - ux * tgt_trim, ty - uy * tgt_trim)

        width = max(1, int(round(style.width * self.scale)))
        _draw_patterned_line(draw, start, end, color, width, style.dash)

        arrow = (8 + 2 * style.width) * self.scale
        if style.target_arrow:
            _draw_arrowhead(draw, start, end, color, arrow)
        if style.source_arrow:
            _draw_arrowhead(draw, end, start, color, arrow)

    def _draw_node(
        self,
        draw: ImageDraw.ImageDraw,
        node: MapNode,
        ox: float,
        oy: float,
        dimmed: bool,
        selected: bool,
    ):
        """Draw one node shape with its company ring and label underneath."""
        style = node.style
        s = self.scale
        cx, cy = self._to_image(node.x, node.y, ox, oy)
        size = style.size * s

        fill = style.fill_color
        border = style.border_color
        border_w = style.border_width
        if selected:
            border = self.theme.selection_color
            border_w += 1
        if dimmed:
            fill = _blend(fill, self.theme.background, self.theme.dim_factor)
            border = _blend(border, self.theme.background, self.theme.dim_factor)
        width = max(1, int(round(border_w * s)))

        points = shape_points(style.shape, cx, cy, size)
        half = size / 2
        if points is not None:
            draw.polygon(points, fill=fill, outline=border, width=width)
        elif style.shape == "rounded":
            draw.rounded_rectangle(
                [cx - half, cy - half, cx + half, cy + half],
                radius=int(size / 4),
                fill=fill,
                outline=border,
                width=width,
            )
        else:
            draw.ellipse([cx - half, cy - half, cx + half, cy + half], fill=fill, outline=border, width=width)

        label_color = self.theme.label_color
        if dimmed:
            label_color = _blend(label_color, self.theme.background, self.theme.dim_factor)
        bbox = self.font_label.getbbox(node.label)
        tw = bbox[2] - bbox[0]
        outline = {}
        if isinstance(self.font_label, ImageFont.FreeTypeFont):
            outline = {"stroke_width": max(1, int(2 * s)), "stroke_fill": self.theme.label_outline}
        draw.text(
            (cx - tw / 2, cy + half + self.LABEL_GAP * s),
            node.label,
            fill=label_color,
            font=self.font_label,
            **outline,
        )
