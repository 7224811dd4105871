"""
Document removal.

Nodes carry the set of documents that reference them, so deleting a document
only removes nodes nobody else references. Nodes that are removed take their
incident edges with them, whichever document those edges came from.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..errors import DocumentNotFoundError
from .adapter import GraphStoreAdapter, PartialFailure
from .db.base import RecordFilter

logger = logging.getLogger(__name__)


@dataclass
class CascadeReport:
    document_id: str
    edges_deleted: int = 0
    nodes_deleted: int = 0
    nodes_retained: int = 0
    document_deleted: bool = False
    failures: List[PartialFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentId": self.document_id,
            "edgesDeleted": self.edges_deleted,
            "nodesDeleted": self.nodes_deleted,
            "nodesRetained": self.nodes_retained,
            "documentDeleted": self.document_deleted,
            "failures": [{"table": f.table, "error": f.error} for f in self.failures],
        }


class CascadeDeleter:
    def __init__(self, graph: GraphStoreAdapter):
        self.graph = graph

    def delete_document(self, document_id: str) -> CascadeReport:
        report = CascadeReport(document_id)
        store = self.graph.store

        tables = self.graph.list_edge_tables(refresh=True)
        for table in tables:
            try:
                report.edges_deleted += store.delete_where(table, RecordFilter(equals={"source": document_id}))
            except Exception as e:
                logger.warning(f"Cascade: edge delete failed for table {table}: {e}")
                report.failures.append(PartialFailure(table, str(e)))

        doomed: List[str] = []
        for node in self.graph.nodes_referencing(document_id):
            remaining = [d for d in node.documents if d != document_id]
            if remaining:
                metadata = {**node.metadata, "documents": remaining}
                if metadata.get("source") == document_id:
                    metadata["source"] = remaining[0]
                self.graph.update_node(node.id, metadata=metadata)
                report.nodes_retained += 1
            else:
                doomed.append(node.id)

        if doomed:
            removed, failures = self.graph.delete_edges_touching(doomed)
            report.edges_deleted += removed
            report.failures.extend(failures)
            for node_id in doomed:
                if store.delete(self.graph.node_collection, self.graph.node_key(node_id)):
                    report.nodes_deleted += 1

        report.document_deleted = self.graph.delete_document_record(document_id)
        logger.info(
            f"Deleted {document_id}: {report.edges_deleted} edges, {report.nodes_deleted} nodes "
            f"({report.nodes_retained} shared nodes kept)"
        )
        return report

    def delete_document_by_filename(self, filename: str) -> CascadeReport:
        document = self.graph.find_document_by_filename(filename)
        if document is None:
            raise DocumentNotFoundError(f"No document named {filename!r}")
        return self.delete_document(document.id)

    def clear_all(self) -> List[str]:
        """Drop every collection, then recreate the empty node and document collections."""
        dropped = []
        for name in self.graph.store.list_collections():
            if name.startswith("_"):
                continue
            if self.graph.store.drop_collection(name):
                dropped.append(name)
        self.graph.registry.reset()
        self.graph.bootstrap()
        logger.warning(f"Cleared all data: dropped {len(dropped)} collection(s)")
        return dropped
