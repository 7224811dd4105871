"""
Ingestion pipeline: text or table rows in, nodes and typed edges out.

Units (chunks of a text, or rows of a table) are processed strictly in order
so that event nodes can be chained into a per-document timeline with NEXT
edges. A failing unit is logged and skipped; it never aborts the document.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from ..extraction.base import ExtractedEntity, ExtractedRelationship, Extraction, ExtractionService, parse_extraction
from ..graph.adapter import GraphStoreAdapter
from ..graph.db.base import Node
from ..graph.resolver import EntityResolver
from ..settings import DocGraphSettings, settings as default_settings
from ..text import label_key
from .chunking import ChunkingConfig, chunk_text
from .merge import merge_extractions, reconcile_relationships
from .rows import row_to_extraction

logger = logging.getLogger(__name__)

EVENT_TYPE = "Event"
SEQUENCE_EDGE = "NEXT"

Row = Union[Mapping[str, Any], str]


@dataclass
class IngestResult:
    document_id: str
    entities_inserted: int = 0
    relationships_inserted: int = 0
    units_total: int = 0
    units_failed: int = 0
    relationships_skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class _Run:
    """Mutable bookkeeping for one ingestion call."""
    document_id: str
    result: IngestResult
    touched: Set[str] = field(default_factory=set)
    last_event: Optional[Node] = None


def first_event_label(extraction: Extraction) -> Optional[str]:
    for e in extraction.entities:
        if e.label and e.type == EVENT_TYPE:
            return e.label
    return None


class IngestionPipeline:
    def __init__(
        self,
        graph: GraphStoreAdapter,
        resolver: EntityResolver,
        service: Optional[ExtractionService] = None,
        *,
        chunking: Optional[ChunkingConfig] = None,
        allow_self_loops: bool = True,
    ):
        self.graph = graph
        self.resolver = resolver
        self.service = service
        self.chunking = chunking or ChunkingConfig()
        self.allow_self_loops = allow_self_loops

    @classmethod
    def from_settings(
        cls,
        graph: GraphStoreAdapter,
        resolver: EntityResolver,
        service: Optional[ExtractionService],
        s: DocGraphSettings = default_settings,
    ) -> "IngestionPipeline":
        return cls(
            graph,
            resolver,
            service,
            chunking=ChunkingConfig.from_settings(s),
            allow_self_loops=s.allow_self_loops,
        )

    def _extract(self, text: str) -> Extraction:
        if self.service is None:
            raise RuntimeError("no extraction service configured")
        return parse_extraction(self.service.extract(text))

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def ingest_text(self, text: str, filename: str, file_type: str = "text") -> IngestResult:
        document = self.graph.create_document(filename, content=text, file_type=file_type)
        run = _Run(document.id, IngestResult(document.id))

        chunks = chunk_text(text, self.chunking)
        run.result.units_total = len(chunks)
        logger.info(f"Ingesting {filename} as {document.id}: {len(chunks)} chunk(s)")

        extractions: List[Extraction] = []
        unit_events: List[Optional[str]] = []
        for i, chunk in enumerate(chunks):
            try:
                extraction = self._extract(chunk)
            except Exception as e:
                logger.warning(f"Skipping chunk {i + 1}/{len(chunks)} of {filename}: {e}")
                run.result.units_failed += 1
                continue
            extractions.append(extraction)
            unit_events.append(first_event_label(extraction))

        merged = merge_extractions(extractions)
        relationships, unreconciled = reconcile_relationships(merged.relationships, merged.entities)
        run.result.relationships_skipped += merged.dropped_relationships + unreconciled

        nodes: Dict[str, Node] = {}
        for entity in merged.entities:
            try:
                node = self.resolver.resolve(entity, document.id)
            except Exception as e:
                logger.warning(f"Skipping entity '{entity.label}': {e}")
                continue
            nodes[label_key(entity.label or "")] = node
            run.touched.add(node.id)

        self._write_relationships(run, relationships, nodes)

        for event_label in unit_events:
            if event_label is None:
                continue
            try:
                event = self._node_for(run, nodes, event_label, EVENT_TYPE)
            except Exception as e:
                logger.warning(f"Event node '{event_label}' unavailable, not chained: {e}")
                continue
            self._chain(run, event)

        return self._finish(run)

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def ingest_rows(
        self,
        rows: Iterable[Row],
        filename: str,
        *,
        content: Optional[str] = None,
        file_type: str = "csv",
    ) -> IngestResult:
        """Ingest pre-split rows, one unit per row.

        Mapping rows (column -> value) are converted deterministically; string
        rows go through the extraction service.
        """
        document = self.graph.create_document(filename, content=content, file_type=file_type)
        run = _Run(document.id, IngestResult(document.id))
        logger.info(f"Ingesting rows from {filename} as {document.id}")

        for i, row in enumerate(rows):
            run.result.units_total += 1
            try:
                event = self._ingest_row(run, row)
            except Exception as e:
                logger.warning(f"Skipping row {i + 1} of {filename}: {e}")
                run.result.units_failed += 1
                continue
            if event is not None:
                self._chain(run, event)

        return self._finish(run)

    def _ingest_row(self, run: _Run, row: Row) -> Optional[Node]:
        extraction = row_to_extraction(row) if isinstance(row, Mapping) else self._extract(str(row))
        merged = merge_extractions([extraction])
        relationships, unreconciled = reconcile_relationships(merged.relationships, merged.entities)
        run.result.relationships_skipped += merged.dropped_relationships + unreconciled

        nodes: Dict[str, Node] = {}
        for entity in merged.entities:
            self._materialize_fast(run, nodes, entity)

        self._write_relationships(run, relationships, nodes)

        event_label = first_event_label(extraction)
        return self._node_for(run, nodes, event_label, EVENT_TYPE) if event_label else None

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _materialize_fast(self, run: _Run, nodes: Dict[str, Node], entity: ExtractedEntity) -> Node:
        node = self.resolver.resolve_fast(
            entity.label or "", type=entity.type, document_id=run.document_id, properties=entity.properties
        )
        nodes[label_key(entity.label or "")] = node
        run.touched.add(node.id)
        return node

    def _node_for(self, run: _Run, nodes: Dict[str, Node], label: str, type_: str = "Concept") -> Node:
        """Materialized node for `label`, creating a placeholder if it is missing."""
        node = nodes.get(label_key(label))
        if node is None:
            logger.debug(f"Self-healing missing endpoint '{label}'")
            node = self.resolver.resolve_fast(label, type=type_, document_id=run.document_id)
            nodes[label_key(label)] = node
            run.touched.add(node.id)
        return node

    def _write_relationships(
        self,
        run: _Run,
        relationships: Iterable[ExtractedRelationship],
        nodes: Dict[str, Node],
    ) -> None:
        for rel in relationships:
            try:
                src = self._node_for(run, nodes, rel.from_ or "")
                dst = self._node_for(run, nodes, rel.to or "")
                if src.id == dst.id and not self.allow_self_loops:
                    logger.info(f"Dropping self-loop {rel.type} on {src.id}")
                    run.result.relationships_skipped += 1
                    continue
                self.graph.create_edge(
                    src.id,
                    dst.id,
                    rel.type or "RELATED_TO",
                    properties=rel.properties,
                    confidence=rel.confidence,
                    source=run.document_id,
                )
                run.result.relationships_inserted += 1
            except Exception as e:
                logger.warning(f"Failed to write relationship {rel.from_} -> {rel.to} ({rel.type}): {e}")
                run.result.relationships_skipped += 1

    def _chain(self, run: _Run, current: Node) -> None:
        previous, run.last_event = run.last_event, current
        if previous is None or previous.id == current.id:
            return
        try:
            self.graph.create_edge(
                previous.id,
                current.id,
                SEQUENCE_EDGE,
                properties={"kind": "sequence"},
                confidence=1.0,
                source=run.document_id,
            )
            run.result.relationships_inserted += 1
        except Exception as e:
            logger.warning(f"Failed to chain {previous.id} -> {current.id}: {e}")

    def _finish(self, run: _Run) -> IngestResult:
        run.result.entities_inserted = len(run.touched)
        self.graph.finalize_document(
            run.document_id,
            entity_count=run.result.entities_inserted,
            relationship_count=run.result.relationships_inserted,
        )
        logger.info(
            f"Finished {run.document_id}: {run.result.entities_inserted} entities, "
            f"{run.result.relationships_inserted} relationships, "
            f"{run.result.units_failed}/{run.result.units_total} units failed"
        )
        return run.result
