from __future__ import annotations

import logging
from dataclasses import dataclass

from .extraction.base import ExtractionService
from .extraction.llm import LLMExtractionService
from .extraction.rules import RuleBasedExtractionService
from .graph.adapter import GraphStoreAdapter
from .graph.cascade import CascadeDeleter
from .graph.communities import CommunityDetector
from .graph.db.base import DocumentStore
from .graph.resolver import EntityResolver
from .graph.view import GraphViewSynthesizer
from .ingestion.pipeline import IngestionPipeline
from .settings import DocGraphSettings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """Every component wired against one store and one extraction service."""
    store: DocumentStore
    service: ExtractionService
    graph: GraphStoreAdapter
    resolver: EntityResolver
    pipeline: IngestionPipeline
    views: GraphViewSynthesizer
    cascade: CascadeDeleter
    communities: CommunityDetector

    def close(self) -> None:
        closer = getattr(self.service, "close", None)
        if callable(closer):
            closer()
        self.store.close()


def build_store(s: DocGraphSettings = default_settings) -> DocumentStore:
    backend = (s.store_backend or "arango").lower()
    if backend == "memory":
        from .graph.db.memory import InMemoryDocumentStore

        store: DocumentStore = InMemoryDocumentStore()
    elif backend == "arango":
        from .graph.db.arango import ArangoDocumentStore

        store = ArangoDocumentStore(
            url=s.arango_url,
            username=s.arango_username,
            password=s.arango_password,
            database=s.arango_database,
        )
    else:
        raise ValueError(f"Unknown store backend: {s.store_backend!r} (expected arango|memory)")
    store.connect()
    return store


def build_extraction_service(s: DocGraphSettings = default_settings) -> ExtractionService:
    if s.llm_endpoint:
        return LLMExtractionService.from_settings(s)
    logger.info("No LLM endpoint configured; using the rule-based extraction service")
    return RuleBasedExtractionService()


def build_engine(
    s: DocGraphSettings = default_settings,
    *,
    store: DocumentStore | None = None,
    service: ExtractionService | None = None,
) -> Engine:
    store = store or build_store(s)
    service = service or build_extraction_service(s)

    graph = GraphStoreAdapter.from_settings(store, s)
    graph.bootstrap()
    resolver = EntityResolver.from_settings(graph, service, s)
    return Engine(
        store=store,
        service=service,
        graph=graph,
        resolver=resolver,
        pipeline=IngestionPipeline.from_settings(graph, resolver, service, s),
        views=GraphViewSynthesizer.from_settings(graph, s),
        cascade=CascadeDeleter(graph),
        communities=CommunityDetector.from_settings(graph, service, s),
    )
