"""CSV exports of the visible stakeholder and relationship sets.

Quoting follows standard CSV: a field containing a comma, a double quote or a
line break is wrapped in double quotes, and embedded quotes are doubled.
"""

from __future__ import annotations

import csv
import io
from datetime import date
from typing import Iterable, Optional

from .models import Relationship, Stakeholder

STAKEHOLDER_COLUMNS = [
    ("id", "ID"),
    ("full_name", "Full Name"),
    ("company_name", "Company"),
    ("title", "Title"),
    ("department", "Department"),
    ("seniority_level", "Seniority"),
    ("influence_score", "Influence Score"),
    ("sentiment", "Sentiment"),
    ("sentiment_confidence", "Sentiment Confidence"),
]

RELATIONSHIP_COLUMNS = [
    ("id", "ID"),
    ("from_name", "From"),
    ("to_name", "To"),
    ("relation_type", "Relation Type"),
    ("directionality", "Directionality"),
    ("strength", "Strength"),
    ("notes", "Notes"),
]


def _cell(value) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def _write(columns: list[tuple[str, str]], rows: Iterable[dict]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow([header for _, header in columns])
    for row in rows:
        writer.writerow([_cell(row.get(key)) for key, _ in columns])
    return buf.getvalue()


def stakeholders_to_csv(stakeholders: Iterable[Stakeholder]) -> str:
    return _write(STAKEHOLDER_COLUMNS, (s.model_dump() for s in stakeholders))


def relationships_to_csv(
    relationships: Iterable[Relationship], stakeholders: Iterable[Stakeholder]
) -> str:
    """Relationships with endpoint names resolved; unknown ids print as 'Unknown'."""
    names = {s.id: s.full_name for s in stakeholders}
    rows = []
    for r in relationships:
        row = r.model_dump()
        row["from_name"] = names.get(r.from_stakeholder_id, "Unknown")
        row["to_name"] = names.get(r.to_stakeholder_id, "Unknown")
        rows.append(row)
    return _write(RELATIONSHIP_COLUMNS, rows)


def export_filename(kind: str, extension: str, today: Optional[date] = None) -> str:
    """``stakemap-2025-02-12.png`` style names; ``kind`` is inserted when given."""
    day = (today or date.today()).isoformat()
    if kind:
        return f"stakemap-{kind}-{day}.{extension}"
    return f"stakemap-{day}.{extension}"
