"""Tests for settings, engine wiring and the command line."""
import json

import pytest

from docgraph import __version__
from docgraph.cli import main as cli
from docgraph.engine import build_engine, build_store
from docgraph.extraction.llm import LLMExtractionService
from docgraph.extraction.rules import RuleBasedExtractionService
from docgraph.graph.db.memory import InMemoryDocumentStore
from docgraph.settings import DocGraphSettings


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("DOCGRAPH_VIEW_MAX_NODES", "7")
    monkeypatch.setenv("DOCGRAPH_ALLOW_SELF_LOOPS", "false")
    monkeypatch.setenv("DOCGRAPH_EXCLUDED_COLLECTIONS", '["audit_log"]')

    s = DocGraphSettings()

    assert s.view_max_nodes == 7
    assert s.allow_self_loops is False
    assert s.excluded_collections == ["audit_log"]


def test_unknown_backend_is_rejected():
    with pytest.raises(ValueError):
        build_store(DocGraphSettings(store_backend="sqlite"))


def test_engine_without_endpoint_uses_rules():
    engine = build_engine(DocGraphSettings(store_backend="memory", llm_endpoint=None))

    assert isinstance(engine.store, InMemoryDocumentStore)
    assert isinstance(engine.service, RuleBasedExtractionService)
    assert engine.store.has_collection("entity")
    assert engine.store.has_collection("document")


def test_engine_settings_flow_into_components():
    s = DocGraphSettings(
        store_backend="memory",
        llm_endpoint="https://llm.test/v1/chat/completions",
        view_max_nodes=5,
        allow_self_loops=False,
        community_min_size=4,
    )
    engine = build_engine(s)
    try:
        assert isinstance(engine.service, LLMExtractionService)
        assert engine.views.max_nodes == 5
        assert engine.pipeline.allow_self_loops is False
        assert engine.communities.min_size == 4
    finally:
        engine.close()


# ============================================================================
# CLI
# ============================================================================

@pytest.fixture
def engine(monkeypatch):
    shared = build_engine(DocGraphSettings(store_backend="memory", llm_endpoint=None))
    monkeypatch.setattr(cli, "_engine", lambda: shared)
    return shared


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        cli.app(argv)
    return exc.value.code


def test_version(capsys):
    assert _run(["version"]) == 0
    assert capsys.readouterr().out.strip() == __version__


def test_ingest_text_then_stats(engine, tmp_path, capsys):
    path = tmp_path / "notes.txt"
    path.write_text("Alice works at Acme Corp.\n", encoding="utf-8")

    assert _run(["ingest", str(path)]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["entities_inserted"] == 2
    assert result["relationships_inserted"] == 1

    assert _run(["stats"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["nodes"] == 2
    assert stats["edge_types"] == {"WORKS_AT": 1}

    assert _run(["documents"]) == 0
    docs = json.loads(capsys.readouterr().out)
    assert [d["filename"] for d in docs] == ["notes.txt"]


def test_ingest_rows(engine, tmp_path, capsys):
    path = tmp_path / "calls.csv"
    path.write_text("case_id,activity\nC-1,Call placed\nC-1,Call ended\n", encoding="utf-8")

    assert _run(["ingest", str(path), "--rows", "--filename", "calls"]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["units_total"] == 2
    assert engine.graph.find_document_by_filename("calls") is not None
    assert "NEXT" in engine.graph.list_edge_tables(refresh=True)


def test_delete_unknown_filename(engine, capsys):
    assert _run(["delete", "--filename", "missing.txt"]) == 1
    assert "missing.txt" in capsys.readouterr().err


def test_delete_by_filename(engine, tmp_path, capsys):
    path = tmp_path / "notes.txt"
    path.write_text("Alice works at Acme Corp.", encoding="utf-8")
    _run(["ingest", str(path)])
    capsys.readouterr()

    assert _run(["delete", "--filename", "notes.txt"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["documentDeleted"] is True
    assert engine.graph.stats()["nodes"] == 0


def test_view_and_search(engine, tmp_path, capsys):
    path = tmp_path / "notes.txt"
    path.write_text("Alice works at Acme Corp.", encoding="utf-8")
    _run(["ingest", str(path)])
    capsys.readouterr()

    assert _run(["view", "--max-nodes", "1"]) == 0
    view = json.loads(capsys.readouterr().out)
    assert len(view["nodes"]) == 2
    assert len(view["edges"]) == 1
    assert view["degraded"] is False

    assert _run(["search", "acme"]) == 0
    found = json.loads(capsys.readouterr().out)
    assert {n["label"] for n in found["nodes"]} == {"Acme Corp", "Alice"}


def test_clear_requires_confirmation(engine, capsys):
    assert _run(["clear"]) == 2
    assert _run(["clear", "--yes"]) == 0


def test_delete_needs_a_target():
    with pytest.raises(SystemExit) as exc:
        cli.app(["delete"])
    assert exc.value.code == 2
