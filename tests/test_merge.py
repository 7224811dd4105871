"""Tests for batch-level merge, label reconciliation and row conversion."""
import pytest

from docgraph.extraction.base import parse_extraction
from docgraph.ingestion.merge import merge_extractions, reconcile_relationships
from docgraph.ingestion.rows import normalize_type, row_to_extraction


class TestMerge:
    def test_dedups_by_label_keeping_highest_confidence(self):
        merged = merge_extractions(
            [
                parse_extraction({"entities": [{"label": "Acme Corp", "type": "Concept", "confidence": 0.4}]}),
                parse_extraction({"entities": [{"label": " acme corp", "type": "Organization", "confidence": 0.9}]}),
            ]
        )
        assert len(merged.entities) == 1
        assert merged.entities[0].type == "Organization"

    def test_tie_keeps_first_seen(self):
        merged = merge_extractions(
            [
                parse_extraction({"entities": [{"label": "Acme", "type": "Organization"}]}),
                parse_extraction({"entities": [{"label": "ACME", "type": "Concept"}]}),
            ]
        )
        assert [(e.label, e.type) for e in merged.entities] == [("Acme", "Organization")]

    def test_drops_label_less_entities_and_incomplete_relationships(self):
        merged = merge_extractions(
            [
                parse_extraction(
                    {
                        "entities": [{"type": "Person"}, {"label": "  "}, {"label": "Bob"}],
                        "relationships": [
                            {"from": "Bob", "to": "Acme", "type": "WORKS_AT"},
                            {"from": "Bob", "type": "KNOWS"},
                            {"from": "Bob", "to": "Acme"},
                        ],
                    }
                )
            ]
        )
        assert [e.label for e in merged.entities] == ["Bob"]
        assert merged.dropped_entities == 2
        assert len(merged.relationships) == 1
        assert merged.dropped_relationships == 2


class TestReconcile:
    def test_maps_ids_and_label_variants_to_canonical_labels(self):
        extraction = parse_extraction(
            {
                "entities": [
                    {"id": "e1", "label": "Alice Smith", "type": "Person"},
                    {"label": "Acme Corp", "type": "Organization"},
                ],
                "relationships": [
                    {"from": "e1", "to": "ACME CORP", "type": "WORKS_AT"},
                ],
            }
        )
        kept, skipped = reconcile_relationships(extraction.relationships, extraction.entities)

        assert skipped == 0
        assert [(r.from_, r.to) for r in kept] == [("Alice Smith", "Acme Corp")]

    def test_unknown_endpoints_are_skipped(self):
        extraction = parse_extraction(
            {
                "entities": [{"label": "Alice"}],
                "relationships": [{"from": "Alice", "to": "Nobody", "type": "KNOWS"}],
            }
        )
        kept, skipped = reconcile_relationships(extraction.relationships, extraction.entities)
        assert kept == []
        assert skipped == 1


class TestRows:
    @pytest.mark.parametrize(
        "column, value, expected",
        [
            ("Activity", "Login", "Event"),
            ("notes", "Follow-up call", "Event"),
            ("Timestamp", "x", "Time"),
            ("when", "2024-03-01", "Time"),
            ("City", "Paris", "Location"),
            ("customer_name", "Alice", "Person"),
            ("dept_code", "Sales", "Organization"),
            ("sku", "A-100", "Concept"),
        ],
    )
    def test_normalize_type(self, column, value, expected):
        assert normalize_type(column, value) == expected

    def test_row_becomes_subject_with_has_relationships(self):
        extraction = row_to_extraction({"case_id": "C-1", "activity": "Call placed", "city": "Paris", "notes": ""})

        assert [(e.label, e.type) for e in extraction.entities] == [
            ("C-1", "Concept"),
            ("Call placed", "Event"),
            ("Paris", "Location"),
        ]
        assert extraction.entities[1].properties == {"original_column": "activity"}
        assert [(r.from_, r.to, r.type) for r in extraction.relationships] == [
            ("C-1", "Call placed", "HAS_ACTIVITY"),
            ("C-1", "Paris", "HAS_CITY"),
        ]
