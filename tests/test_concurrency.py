"""Concurrent writers sharing one adapter over the in-memory store."""
import threading
from concurrent.futures import ThreadPoolExecutor

from docgraph.graph.adapter import GraphStoreAdapter
from docgraph.graph.db.memory import InMemoryDocumentStore

WORKERS = 8


def _run_together(fn):
    barrier = threading.Barrier(WORKERS)

    def _worker(i):
        barrier.wait()
        return fn(i)

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        return [f.result() for f in [pool.submit(_worker, i) for i in range(WORKERS)]]


def _graph():
    store = InMemoryDocumentStore()
    graph = GraphStoreAdapter(store)
    graph.bootstrap()
    return store, graph


def test_same_label_from_many_threads_is_one_node():
    store, graph = _graph()

    nodes = _run_together(lambda i: graph.ensure_node("Acme", "Organization", document_id=f"document:{i}"))

    assert {n.id for n in nodes} == {"entity:acme"}
    assert store.count("entity") == 1
    acme = graph.get_node("entity:acme")
    assert sorted(acme.documents) == sorted(f"document:{i}" for i in range(WORKERS))
    assert acme.source in acme.documents


def test_new_edge_type_from_many_threads_is_one_table():
    store, graph = _graph()
    graph.ensure_node("Alice")
    graph.ensure_node("Acme")

    _run_together(lambda i: graph.create_edge("entity:alice", "entity:acme", "works at", source=f"document:{i}"))

    assert graph.list_edge_tables(refresh=True) == ["WORKS_AT"]
    assert store.count("WORKS_AT") == WORKERS


def test_keyed_edge_from_many_threads_is_written_once():
    store, graph = _graph()

    edges = _run_together(lambda i: graph.create_edge("entity:a", "entity:b", "KNOWS", confidence=1.0, key="a-b"))

    assert {e.id for e in edges} == {"KNOWS:a-b"}
    assert store.count("KNOWS") == 1
