"""Tests for entity resolution."""
import pytest

from docgraph.errors import ExtractionError, ExtractionFormatError, StoreError
from docgraph.extraction.base import ExtractedEntity
from docgraph.graph.db.base import Node
from docgraph.graph.resolver import EntityResolver


def _entity(label, type_="Concept", **props):
    return ExtractedEntity(label=label, type=type_, properties=props)


def test_exact_id_hit_attaches_document(resolver, graph, service):
    first = resolver.resolve(_entity("Alice", "Person"), "document:1")
    again = resolver.resolve(_entity("ALICE", "Person"), "document:2")

    assert again.id == first.id == "entity:alice"
    assert again.documents == ["document:1", "document:2"]
    assert service.same_calls == []


def test_exact_id_hit_merges_new_properties(resolver):
    resolver.resolve(_entity("Alice", "Person", role="dev"))
    node = resolver.resolve(_entity("Alice", "Person", team="core"))
    assert node.properties == {"role": "dev", "team": "core"}


def test_legacy_node_is_found_by_exact_label(resolver, graph, service):
    graph.upsert_node(Node(id="entity:legacy_42", label="Acme Corp", type="Organization"))

    node = resolver.resolve(_entity("acme corp", "Organization"), "document:1")

    assert node.id == "entity:legacy_42"
    assert "document:1" in node.documents
    assert graph.get_node("entity:acme_corp") is None
    assert service.same_calls == []


def test_fuzzy_match_merges_into_top_candidate(resolver, graph, service):
    graph.upsert_node(Node(id="entity:acme_corporation", label="Acme Corporation", type="Organization"))
    service.same = True

    node = resolver.resolve(_entity("Acme", "Organization", hq="Berlin"), "document:1")

    assert node.id == "entity:acme_corporation"
    assert node.properties == {"hq": "Berlin"}
    (a, b), = service.same_calls
    assert a["label"] == "Acme" and b["label"] == "Acme Corporation"


def test_fuzzy_mismatch_creates_a_new_node(resolver, graph, service):
    graph.upsert_node(Node(id="entity:acme_corporation", label="Acme Corporation"))
    service.same = False

    node = resolver.resolve(_entity("Acme"), "document:1")

    assert node.id == "entity:acme"
    assert node.documents == ["document:1"]
    assert len(service.same_calls) == 1


def test_same_entity_error_counts_as_no_match(resolver, graph, service):
    graph.upsert_node(Node(id="entity:acme_corporation", label="Acme Corporation"))
    service.same = ExtractionError("timeout")

    node = resolver.resolve(_entity("Acme"))

    assert node.id == "entity:acme"


def test_community_nodes_are_never_candidates(resolver, graph, service):
    graph.upsert_node(Node(id="entity:community-acme_cluster", label="Acme cluster", type="Community"))
    service.same = True

    node = resolver.resolve(_entity("Acme"))

    assert node.id == "entity:acme"
    assert service.same_calls == []


def test_fuzzy_can_be_disabled(graph, service):
    graph.upsert_node(Node(id="entity:acme_corporation", label="Acme Corporation"))
    service.same = True
    resolver = EntityResolver(graph, service, fuzzy=False)

    assert resolver.resolve(_entity("Acme")).id == "entity:acme"
    assert service.same_calls == []


def test_new_node_records_confidence(resolver):
    node = resolver.resolve(ExtractedEntity(label="Bob", type="Person", confidence=0.8), "document:1")
    assert node.metadata["confidence"] == 0.8
    assert node.source == "document:1"


def test_label_is_required(resolver):
    with pytest.raises(ExtractionFormatError):
        resolver.resolve(ExtractedEntity(label=None))


class TestFailOpen:
    def _break_lookup(self, graph, monkeypatch):
        def boom(*args, **kwargs):
            raise StoreError("index unavailable")

        monkeypatch.setattr(graph, "find_nodes_by_label", boom)

    def test_lookup_failure_creates_the_node(self, graph, service, monkeypatch):
        self._break_lookup(graph, monkeypatch)
        resolver = EntityResolver(graph, service, fail_open=True)

        node = resolver.resolve(_entity("Bob", "Person"), "document:1")

        assert node.id == "entity:bob"
        assert graph.get_node("entity:bob") is not None

    def test_lookup_failure_propagates_when_closed(self, graph, service, monkeypatch):
        self._break_lookup(graph, monkeypatch)
        resolver = EntityResolver(graph, service, fail_open=False)

        with pytest.raises(StoreError):
            resolver.resolve(_entity("Bob", "Person"))
        assert graph.get_node("entity:bob") is None


def test_resolve_fast_never_calls_the_service(resolver, graph, service):
    graph.upsert_node(Node(id="entity:acme_corporation", label="Acme Corporation"))
    service.same = True

    node = resolver.resolve_fast("Acme", type="Organization", document_id="document:1")

    assert node.id == "entity:acme"
    assert node.type == "Organization"
    assert service.same_calls == []


def test_from_settings(graph, service):
    from docgraph.settings import DocGraphSettings

    resolver = EntityResolver.from_settings(
        graph, service, DocGraphSettings(resolver_fuzzy=False, resolver_fail_open=False)
    )
    assert resolver.fuzzy is False
    assert resolver.fail_open is False
