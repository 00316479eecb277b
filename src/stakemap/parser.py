"""YAML dataset parser for StakeMap.

A dataset file seeds an ``InMemoryStore`` for demos, local runs and tests.
Stakeholders are nested under their company, relationships refer to
stakeholders by id, and optional ``layout`` blocks become layout entries::

    map_id: 00000000-0000-0000-0000-000000000001
    companies:
      - id: acme
        name: Acme Corp
        stakeholders:
          - id: alice
            full_name: Alice Ng
            seniority_level: C_LEVEL
            sentiment: ALLY
            influence_score: 5
            layout: {x: 10, y: 20}
    relationships:
      - from: alice
        to: bob
        type: INFLUENCES
        strength: 4
"""

from __future__ import annotations

from pathlib import Path

import yaml

from .models import (
    DEFAULT_MAP_ID,
    Company,
    Dataset,
    LayoutEntry,
    Relationship,
    Stakeholder,
)


def parse_yaml(yaml_str: str) -> Dataset:
    """Parse a YAML string into a Dataset."""
    data = yaml.safe_load(yaml_str)
    if not data:
        raise ValueError("Empty YAML input")
    if not isinstance(data, dict):
        raise ValueError("Dataset YAML must be a mapping")

    map_id = str(data.get("map_id", DEFAULT_MAP_ID))
    dataset = Dataset()

    for comp_data in data.get("companies", []):
        company = Company(
            id=str(comp_data["id"]),
            name=comp_data.get("name", str(comp_data["id"])),
            industry=comp_data.get("industry"),
            region=comp_data.get("region"),
        )
        dataset.companies.append(company)

        for s_data in comp_data.get("stakeholders", []):
            stakeholder, layout = _parse_stakeholder(s_data, company, map_id)
            dataset.stakeholders.append(stakeholder)
            if layout is not None:
                dataset.layouts.append(layout)

    for i, r_data in enumerate(data.get("relationships", [])):
        dataset.relationships.append(_parse_relationship(r_data, i))

    return dataset


def parse_file(path: str) -> Dataset:
    """Parse a YAML file into a Dataset."""
    content = Path(path).read_text()
    return parse_yaml(content)


def _parse_stakeholder(data: dict, company: Company, map_id: str):
    """Parse one stakeholder and its optional layout block."""
    fields = {k: v for k, v in data.items() if k != "layout"}
    fields["id"] = str(fields["id"])
    fields.setdefault("company_id", company.id)
    fields.setdefault("company_name", company.name)
    stakeholder = Stakeholder(**fields)

    layout = None
    if "layout" in data:
        pos = data["layout"]
        layout = LayoutEntry(
            map_id=map_id,
            stakeholder_id=stakeholder.id,
            x=float(pos.get("x", 0)),
            y=float(pos.get("y", 0)),
        )
    return stakeholder, layout


def _parse_relationship(data: dict, index: int) -> Relationship:
    """Parse a relationship; ``from``/``to``/``type`` are accepted as short keys."""
    return Relationship(
        id=str(data.get("id", f"rel-{index + 1}")),
        from_stakeholder_id=str(data.get("from", data.get("from_stakeholder_id"))),
        to_stakeholder_id=str(data.get("to", data.get("to_stakeholder_id"))),
        relation_type=data.get("type", data.get("relation_type")),
        directionality=data.get("directionality", "directional"),
        strength=int(data.get("strength", 3)),
        notes=data.get("notes"),
    )


def dataset_to_yaml(dataset: Dataset, map_id: str = DEFAULT_MAP_ID) -> str:
    """Serialize a Dataset back to the YAML seed format."""
    layouts = {e.stakeholder_id: e for e in dataset.layouts if e.map_id == map_id}
    by_company: dict[str, list[Stakeholder]] = {}
    for s in dataset.stakeholders:
        by_company.setdefault(s.company_id or "", []).append(s)

    data: dict = {"map_id": map_id, "companies": [], "relationships": []}

    for company in dataset.companies:
        comp_data: dict = {"id": company.id, "name": company.name}
        if company.industry:
            comp_data["industry"] = company.industry
        if company.region:
            comp_data["region"] = company.region
        members = []
        for s in by_company.get(company.id, []):
            s_data = s.model_dump(mode="json", exclude_none=True, exclude={"company_id", "company_name"})
            if s_data.get("sentiment") == "UNKNOWN":
                s_data.pop("sentiment")
            if s_data.get("status") == "active":
                s_data.pop("status")
            entry = layouts.get(s.id)
            if entry is not None:
                s_data["layout"] = {"x": entry.x, "y": entry.y}
            members.append(s_data)
        if members:
            comp_data["stakeholders"] = members
        data["companies"].append(comp_data)

    for r in dataset.relationships:
        r_data = {
            "id": r.id,
            "from": r.from_stakeholder_id,
            "to": r.to_stakeholder_id,
            "type": r.relation_type.value,
            "strength": r.strength,
        }
        if r.directionality.value != "directional":
            r_data["directionality"] = r.directionality.value
        if r.notes:
            r_data["notes"] = r.notes
        data["relationships"].append(r_data)

    return yaml.dump(data, default_flow_style=False, sort_keys=False)
