"""
Geometry helpers for the stakeholder map.

Pure functions with no dependencies on the rest of the package:

  - ``convex_hull``        — padded monotone-chain hull (company outlines)
  - ``influence_to_size``  — influence score → node diameter
  - ``radial_position``    — fallback slot on a circle
  - ``regular_polygon`` / ``star_polygon`` — node shape vertices
  - ``point_in_polygon`` / ``distance_to_segment`` — hit testing

Points are plain ``(x, y)`` tuples.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

Point = tuple[float, float]

MIN_NODE_SIZE = 28.0
MAX_NODE_SIZE = 60.0
MISSING_INFLUENCE = 2


def _cross(o: Point, a: Point, b: Point) -> float:
    """Z component of (a - o) x (b - o); positive for a counter-clockwise turn."""
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def centroid(points: Sequence[Point]) -> Point:
    """Arithmetic mean of the points (origin for an empty sequence)."""
    if not points:
        return (0.0, 0.0)
    n = len(points)
    return (sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)


def convex_hull(points: Sequence[Point], padding: float = 0.0) -> list[Point]:
    """Convex hull of ``points``, pushed outward by ``padding``.

    Andrew's monotone chain: sort by (x, y), build the lower and upper chains
    dropping the last point while the last three do not turn
    counter-clockwise, then concatenate.  O(n log n).

    Each hull vertex is moved ``padding`` units away from the hull centroid
    along the centroid→vertex direction.

    Fewer than 3 input points are returned unchanged.  Collinear input can
    still produce fewer than 3 vertices; see ``is_drawable``.
    """
    if len(points) < 3:
        return list(points)

    pts = sorted(set((float(p[0]), float(p[1])) for p in points))
    if len(pts) < 3:
        return pts

    lower: list[Point] = []
    for p in pts:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper: list[Point] = []
    for p in reversed(pts):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    # Last point of each chain is the first point of the other
    hull = lower[:-1] + upper[:-1]

    if padding and len(hull) >= 3:
        cx, cy = centroid(hull)
        padded = []
        for x, y in hull:
            dx = x - cx
            dy = y - cy
            length = math.hypot(dx, dy)
            if length == 0:
                padded.append((x, y))
                continue
            padded.append((x + dx / length * padding, y + dy / length * padding))
        hull = padded

    return hull


def is_drawable(hull: Sequence[Point]) -> bool:
    """A hull is only drawn as a polygon when it has 3 or more vertices."""
    return len(hull) >= 3


def influence_to_size(
    score: Optional[int],
    min_size: float = MIN_NODE_SIZE,
    max_size: float = MAX_NODE_SIZE,
) -> float:
    """Linear map of influence 1..5 onto ``min_size``..``max_size``.

    A missing score is treated as 2.  Out-of-range scores are clamped.
    """
    if score is None:
        score = MISSING_INFLUENCE
    score = max(1, min(5, score))
    return min_size + (score - 1) / 4 * (max_size - min_size)


def radial_position(index: int, total: int, radius: float) -> Point:
    """Slot ``index`` of ``total`` evenly spaced slots on a circle."""
    total = max(1, total)
    angle = 2 * math.pi * index / total
    return (radius * math.cos(angle), radius * math.sin(angle))


def regular_polygon(
    cx: float, cy: float, radius: float, sides: int, rotation: float = -math.pi / 2
) -> list[Point]:
    """Vertices of a regular polygon; the default rotation puts a vertex on top."""
    return [
        (
            cx + radius * math.cos(rotation + 2 * math.pi * i / sides),
            cy + radius * math.sin(rotation + 2 * math.pi * i / sides),
        )
        for i in range(sides)
    ]


def star_polygon(
    cx: float, cy: float, radius: float, points: int = 5, inner_ratio: float = 0.45
) -> list[Point]:
    """Vertices of a star, alternating outer and inner radius."""
    result = []
    for i in range(points * 2):
        r = radius if i % 2 == 0 else radius * inner_ratio
        angle = -math.pi / 2 + math.pi * i / points
        result.append((cx + r * math.cos(angle), cy + r * math.sin(angle)))
    return result


def point_in_polygon(point: Point, polygon: Sequence[Point]) -> bool:
    """Even-odd ray casting test."""
    if len(polygon) < 3:
        return False
    x, y = point
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def distance_to_segment(point: Point, a: Point, b: Point) -> float:
    """Shortest distance from ``point`` to the segment ``a``–``b``."""
    px, py = point
    ax, ay = a
    bx, by = b
    dx = bx - ax
    dy = by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(px - ax, py - ay)
    t = max(0.0, min(1.0, ((px - ax) * dx + (py - ay) * dy) / length_sq))
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))
