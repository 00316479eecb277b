"""Tests for YAML dataset files and CSV exports."""

import csv
import io
from datetime import date
from pathlib import Path

import pytest

from stakemap.export import (
    export_filename,
    relationships_to_csv,
    stakeholders_to_csv,
)
from stakemap.models import Directionality, RelationType, Seniority, Stakeholder
from stakemap.parser import dataset_to_yaml, parse_file, parse_yaml

DEMO = Path(__file__).parent.parent / "data" / "demo.yaml"


SAMPLE = """
companies:
  - id: acme
    name: Acme Corp
    stakeholders:
      - id: alice
        full_name: Alice Ng
        seniority_level: C_LEVEL
        influence_score: 5
        layout: {x: 10, y: 20}
      - id: bob
        full_name: Bob Keller
relationships:
  - from: bob
    to: alice
    type: REPORTS_TO
  - id: custom
    from: alice
    to: bob
    type: PEER_OF
    directionality: bidirectional
    strength: 2
"""


class TestParser:
    def test_parse_sample(self):
        ds = parse_yaml(SAMPLE)
        assert [c.id for c in ds.companies] == ["acme"]
        alice = ds.stakeholders[0]
        assert alice.company_id == "acme"
        assert alice.company_name == "Acme Corp"
        assert alice.seniority_level == Seniority.C_LEVEL
        assert [(e.stakeholder_id, e.x, e.y) for e in ds.layouts] == [("alice", 10, 20)]

    def test_relationship_short_keys_and_default_ids(self):
        ds = parse_yaml(SAMPLE)
        first, second = ds.relationships
        assert first.id == "rel-1"
        assert first.relation_type == RelationType.REPORTS_TO
        assert first.strength == 3
        assert second.id == "custom"
        assert second.directionality == Directionality.BIDIRECTIONAL

    def test_empty_input_rejected(self):
        with pytest.raises(ValueError, match="Empty YAML input"):
            parse_yaml("")

    def test_non_mapping_rejected(self):
        with pytest.raises(ValueError):
            parse_yaml("- just\n- a list\n")

    def test_self_relationship_rejected(self):
        bad = SAMPLE + "  - from: bob\n    to: bob\n    type: ADVISES\n"
        with pytest.raises(ValueError):
            parse_yaml(bad)

    def test_demo_file_parses(self):
        ds = parse_file(str(DEMO))
        assert len(ds.companies) == 2
        assert len(ds.relationships) == 4

    def test_yaml_export_parses_back(self):
        ds = parse_yaml(SAMPLE)
        again = parse_yaml(dataset_to_yaml(ds))
        assert [s.id for s in again.stakeholders] == ["alice", "bob"]
        assert again.layouts[0].x == 10
        assert again.relationships[1].directionality == Directionality.BIDIRECTIONAL


class TestCsvExport:
    def test_stakeholder_columns_and_quoting(self):
        s = Stakeholder(id="s1", full_name='Jane "JJ" Doe', company_name="Acme, Inc.",
                        title="Head of\nOps", seniority_level=Seniority.VP, influence_score=4)
        text = stakeholders_to_csv([s])
        lines = text.split("\n")
        assert lines[0].startswith("ID,Full Name,Company,Title")
        assert '"Jane ""JJ"" Doe"' in text
        assert '"Acme, Inc."' in text
        assert '"Head of\nOps"' in text

        rows = list(csv.DictReader(io.StringIO(text)))
        assert rows[0]["Full Name"] == 'Jane "JJ" Doe'
        assert rows[0]["Seniority"] == "VP"
        assert rows[0]["Sentiment"] == "UNKNOWN"
        assert rows[0]["Department"] == ""

    def test_relationship_names_resolved(self, relationships, stakeholders):
        rows = list(csv.DictReader(io.StringIO(relationships_to_csv(relationships, stakeholders))))
        assert rows[0]["From"] == "Bob Keller"
        assert rows[0]["To"] == "Alice Ng"
        assert rows[0]["Relation Type"] == "REPORTS_TO"
        assert rows[2]["Notes"] == "Budget, timing"

    def test_unknown_endpoint(self, relationships):
        rows = list(csv.DictReader(io.StringIO(relationships_to_csv(relationships, []))))
        assert rows[0]["From"] == "Unknown"

    def test_filenames(self):
        day = date(2025, 2, 12)
        assert export_filename("", "png", day) == "stakemap-2025-02-12.png"
        assert export_filename("relationships", "csv", day) == "stakemap-relationships-2025-02-12.csv"
