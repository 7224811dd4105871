"""Tests for label normalization and id derivation."""
import pytest

from docgraph.text import (
    community_id_for_members,
    is_community_id,
    label_key,
    node_id_for_label,
    normalize_edge_type,
    normalize_label,
    split_id,
)


class TestNodeIds:
    @pytest.mark.parametrize("label", ["Acme Corp", "acme corp", " ACME-CORP ", "Acme.Corp"])
    def test_id_is_pure_function_of_normalized_label(self, label):
        assert node_id_for_label(label) == "entity:acme_corp"

    def test_empty_label_maps_to_unknown(self):
        assert normalize_label("   ") == "unknown"

    def test_label_key_collapses_case_and_whitespace(self):
        assert label_key("  Acme   Corp ") == label_key("acme corp")

    def test_non_ascii_labels_stay_distinct(self):
        assert node_id_for_label("Москва") != node_id_for_label("Берлин")
        assert node_id_for_label("Café") != node_id_for_label("Cafè")

    def test_non_ascii_label_is_still_case_and_whitespace_insensitive(self):
        assert node_id_for_label("Москва") == node_id_for_label("  москва ")

    def test_ascii_labels_carry_no_digest(self):
        assert normalize_label("Acme-Corp") == "acme_corp"

    def test_community_id_depends_on_members_only(self):
        cid = community_id_for_members(["entity:bob", "entity:alice"])
        assert cid == community_id_for_members(["entity:alice", "entity:bob", "entity:alice"])
        assert cid != community_id_for_members(["entity:alice", "entity:carol"])
        assert cid.startswith("entity:community-")

    def test_community_ids_never_collide_with_entity_ids(self):
        cid = community_id_for_members(["entity:acme_corp"])
        assert cid != node_id_for_label("community-acme corp")
        assert is_community_id(cid)
        assert not is_community_id(node_id_for_label("community acme"))


class TestEdgeTypes:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("works at", "WORKS_AT"),
            ("EMPLOYED-BY", "EMPLOYED_BY"),
            ("has  city", "HAS_CITY"),
            ("", "RELATED_TO"),
            ("2nd_degree", "REL_2ND_DEGREE"),
        ],
    )
    def test_normalize_edge_type(self, raw, expected):
        assert normalize_edge_type(raw) == expected


def test_split_id_handles_both_separators():
    assert split_id("entity:acme") == ("entity", "acme")
    assert split_id("entity/acme") == ("entity", "acme")
    assert split_id("acme") == ("", "acme")
