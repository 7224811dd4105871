"""
Shared fixtures: an in-memory store, a graph adapter with a deterministic
clock, and a scripted extraction service.
"""
import itertools

import pytest

from docgraph.extraction.base import parse_extraction, parse_summary
from docgraph.graph.adapter import GraphStoreAdapter
from docgraph.graph.db.memory import InMemoryDocumentStore
from docgraph.graph.resolver import EntityResolver
from docgraph.ingestion.pipeline import IngestionPipeline


class FakeExtractionService:
    """Answers come from queues set up by the test; exceptions in a queue are raised."""

    def __init__(self, extractions=None, same=False, summaries=None):
        self.extractions = list(extractions or [])
        self.same = same
        self.summaries = list(summaries or [])
        self.extract_calls = []
        self.same_calls = []
        self.summarize_calls = []

    def extract(self, text):
        self.extract_calls.append(text)
        item = self.extractions.pop(0) if self.extractions else {"entities": [], "relationships": []}
        if isinstance(item, Exception):
            raise item
        return parse_extraction(item)

    def same_entity(self, a, b):
        self.same_calls.append((dict(a), dict(b)))
        if isinstance(self.same, Exception):
            raise self.same
        return self.same

    def summarize(self, context):
        self.summarize_calls.append(context)
        if self.summaries:
            item = self.summaries.pop(0)
        else:
            n = len(self.summarize_calls)
            item = {"theme": f"theme {n}", "summary": f"summary {n}", "label": f"Community {n}"}
        if isinstance(item, Exception):
            raise item
        return parse_summary(item)


def make_clock():
    """Strictly increasing fixed-width timestamps."""
    counter = itertools.count(1)
    return lambda: f"2026-01-01T00:00:00.{next(counter):06d}Z"


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def graph(store):
    adapter = GraphStoreAdapter(store, clock=make_clock())
    adapter.bootstrap()
    return adapter


@pytest.fixture
def service():
    return FakeExtractionService()


@pytest.fixture
def resolver(graph, service):
    return EntityResolver(graph, service)


@pytest.fixture
def pipeline(graph, resolver, service):
    return IngestionPipeline(graph, resolver, service)


@pytest.fixture
def new_document(graph):
    """Create a bare document record and return its id."""
    names = itertools.count(1)

    def _make(filename=None):
        return graph.create_document(filename or f"doc{next(names)}.txt").id

    return _make
