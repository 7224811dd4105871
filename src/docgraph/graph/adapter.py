"""
Graph store adapter.

Maps the graph model (nodes, typed edges, source documents) onto a
DocumentStore. Edge kinds are their own collections, so any read that spans
relationships fans out one sub-query per kind and merges the results.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

from ..settings import DocGraphSettings, settings as default_settings
from ..text import NODE_ID_PREFIX, join_id, node_id_for_label, normalize_edge_type, split_id
from .db.base import Document, DocumentStore, Edge, Node, RecordFilter, utcnow_iso
from .registry import EdgeKindRegistry

logger = logging.getLogger(__name__)

DOCUMENT_ID_PREFIX = "document"

T = TypeVar("T")


@dataclass
class PartialFailure:
    """One edge table that could not be read or written during a scan."""
    table: str
    error: str


@dataclass
class ScanResult(Generic[T]):
    items: List[T] = field(default_factory=list)
    failures: List[PartialFailure] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failures)


def _endpoint(doc: Dict[str, Any], *names: str) -> str:
    for name in names:
        value = doc.get(name)
        if value:
            # native links are `collection/key`
            _, key = split_id(str(value))
            return join_id(NODE_ID_PREFIX, key) if name.startswith("_") else str(value)
    return ""


class GraphStoreAdapter:
    def __init__(
        self,
        store: DocumentStore,
        *,
        node_collection: str = "entity",
        document_collection: str = "document",
        excluded_collections: Iterable[str] = (),
        registry_ttl_seconds: float = 30.0,
        registry: Optional[EdgeKindRegistry] = None,
        clock: Callable[[], str] = utcnow_iso,
    ):
        self.store = store
        self.node_collection = node_collection
        self.document_collection = document_collection
        self.registry = registry or EdgeKindRegistry(
            store,
            excluded={node_collection, document_collection, *excluded_collections},
            ttl_seconds=registry_ttl_seconds,
        )
        self.clock = clock

    @classmethod
    def from_settings(cls, store: DocumentStore, s: DocGraphSettings = default_settings) -> "GraphStoreAdapter":
        return cls(
            store,
            node_collection=s.node_collection,
            document_collection=s.document_collection,
            excluded_collections=s.excluded_collections,
            registry_ttl_seconds=s.edge_registry_ttl_seconds,
        )

    def bootstrap(self) -> None:
        """Create the node and document collections if missing."""
        self.store.create_collection(self.node_collection)
        self.store.create_collection(self.document_collection)

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    @staticmethod
    def node_key(node_id: str) -> str:
        return split_id(node_id)[1]

    def _node_ref(self, node_id: str) -> str:
        return f"{self.node_collection}/{self.node_key(node_id)}"

    def _doc_to_node(self, doc: Dict[str, Any]) -> Node:
        return Node(
            id=join_id(NODE_ID_PREFIX, doc["_key"]),
            label=doc.get("label") or "",
            type=doc.get("type") or "Concept",
            properties=doc.get("properties") or {},
            metadata=doc.get("metadata") or {},
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )

    def _node_to_doc(self, node: Node) -> Dict[str, Any]:
        return {
            "_key": self.node_key(node.id),
            "type": node.type,
            "label": node.label,
            "properties": node.properties,
            "metadata": node.metadata,
            "created_at": node.created_at,
            "updated_at": node.updated_at,
        }

    def _doc_to_edge(self, doc: Dict[str, Any], table: str) -> Edge:
        """Accepts `from`/`to`, legacy `in`/`out` and native `_from`/`_to` rows."""
        return Edge(
            id=join_id(table, doc["_key"]),
            from_id=_endpoint(doc, "from", "in", "_from"),
            to_id=_endpoint(doc, "to", "out", "_to"),
            type=doc.get("type") or table,
            properties=doc.get("properties") or {},
            confidence=doc.get("confidence"),
            source=doc.get("source"),
            created_at=doc.get("created_at"),
        )

    def _doc_to_document(self, doc: Dict[str, Any]) -> Document:
        return Document(
            id=join_id(DOCUMENT_ID_PREFIX, doc["_key"]),
            filename=doc.get("filename") or "",
            content=doc.get("content"),
            file_type=doc.get("file_type") or "text",
            entity_count=int(doc.get("entity_count") or 0),
            relationship_count=int(doc.get("relationship_count") or 0),
            created_at=doc.get("created_at"),
            processed_at=doc.get("processed_at"),
        )

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def upsert_node(self, node: Node, document_id: Optional[str] = None) -> Node:
        """Create the node, or merge into the existing one with the same id."""
        now = self.clock()
        metadata = dict(node.metadata)
        documents = list(metadata.get("documents") or [])
        if document_id:
            metadata.setdefault("source", document_id)
            if document_id not in documents:
                documents.append(document_id)
        metadata["documents"] = documents

        key = self.node_key(node.id)
        insert_doc = {
            "_key": key,
            "type": node.type,
            "label": node.label,
            "properties": node.properties,
            "metadata": metadata,
            "created_at": now,
            "updated_at": now,
        }
        merge_patch = {"properties": node.properties, "updated_at": now}
        union = {"metadata.documents": [document_id]} if document_id else None
        doc = self.store.upsert(self.node_collection, key, insert_doc, merge_patch, union)
        return self._doc_to_node(doc)

    def ensure_node(
        self,
        label: str,
        type: str = "Concept",
        document_id: Optional[str] = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> Node:
        """Fast exact-or-create path: no similarity search."""
        node_id = node_id_for_label(label)
        existing = self.get_node(node_id)
        if existing is not None:
            return self.attach_document(existing, document_id) if document_id else existing
        return self.upsert_node(
            Node(id=node_id, label=label, type=type or "Concept", properties=dict(properties or {})),
            document_id=document_id,
        )

    def attach_document(self, node: Node, document_id: str) -> Node:
        """Add `document_id` to the node's reference set."""
        insert_doc = self._node_to_doc(node)
        insert_doc["metadata"] = {**node.metadata, "documents": list(dict.fromkeys([*node.documents, document_id]))}
        insert_doc["metadata"].setdefault("source", document_id)
        doc = self.store.upsert(
            self.node_collection,
            self.node_key(node.id),
            insert_doc,
            {"updated_at": self.clock()},
            {"metadata.documents": [document_id]},
        )
        return self._doc_to_node(doc)

    def get_node(self, node_id: str) -> Optional[Node]:
        doc = self.store.get(self.node_collection, self.node_key(node_id))
        return self._doc_to_node(doc) if doc else None

    def get_nodes(self, node_ids: Iterable[str]) -> List[Node]:
        keys = list(dict.fromkeys(self.node_key(i) for i in node_ids))
        return [self._doc_to_node(d) for d in self.store.get_many(self.node_collection, keys)]

    def find_nodes_by_label(self, substring: str, type: Optional[str] = None, limit: Optional[int] = None) -> List[Node]:
        flt = RecordFilter(
            equals={"type": type} if type else {},
            contains=("label", substring),
        )
        docs = self.store.find(self.node_collection, flt, sort_by="updated_at", descending=True, limit=limit)
        return [self._doc_to_node(d) for d in docs]

    def recent_nodes(
        self,
        limit: int,
        exclude_ids: Iterable[str] = (),
        document_id: Optional[str] = None,
    ) -> List[Node]:
        """Most recently updated nodes, optionally only those referencing `document_id`."""
        if limit <= 0:
            return []
        exclude_keys = [self.node_key(i) for i in exclude_ids]
        if not document_id:
            flt = RecordFilter(exclude_keys=exclude_keys)
            docs = self.store.find(self.node_collection, flt, sort_by="updated_at", descending=True, limit=limit)
            return [self._doc_to_node(d) for d in docs]

        found: Dict[str, Dict[str, Any]] = {}
        for flt in (
            RecordFilter(has_item=("metadata.documents", document_id), exclude_keys=exclude_keys),
            RecordFilter(equals={"metadata.source": document_id}, exclude_keys=exclude_keys),
        ):
            for d in self.store.find(self.node_collection, flt, sort_by="updated_at", descending=True, limit=limit):
                found.setdefault(d["_key"], d)
        docs = sorted(found.values(), key=lambda d: d.get("updated_at") or "", reverse=True)[:limit]
        return [self._doc_to_node(d) for d in docs]

    def nodes_referencing(self, document_id: str) -> List[Node]:
        """Nodes whose reference set holds the document, plus legacy nodes owned by it."""
        found = {
            d["_key"]: d
            for d in self.store.find(self.node_collection, RecordFilter(has_item=("metadata.documents", document_id)))
        }
        legacy = self.store.find(self.node_collection, RecordFilter(equals={"metadata.source": document_id}))
        for d in legacy:
            found.setdefault(d["_key"], d)
        return [self._doc_to_node(d) for d in found.values()]

    def update_node(
        self,
        node_id: str,
        *,
        label: Optional[str] = None,
        type: Optional[str] = None,
        properties: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Node]:
        patch: Dict[str, Any] = {"updated_at": self.clock()}
        if label is not None:
            patch["label"] = label
        if type is not None:
            patch["type"] = type
        if properties is not None:
            patch["properties"] = properties
        if metadata is not None:
            patch["metadata"] = metadata
        doc = self.store.update(self.node_collection, self.node_key(node_id), patch)
        return self._doc_to_node(doc) if doc else None

    def delete_node(self, node_id: str) -> bool:
        """Delete a node together with its incident edges in every table."""
        removed, failures = self.delete_edges_touching([node_id])
        if failures:
            logger.warning(f"Node {node_id}: {len(failures)} edge tables could not be cleaned")
        logger.debug(f"Removed {removed} edges incident to {node_id}")
        return self.store.delete(self.node_collection, self.node_key(node_id))

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def create_edge(
        self,
        from_id: str,
        to_id: str,
        type: str,
        properties: Optional[Dict[str, Any]] = None,
        confidence: Optional[float] = None,
        source: Optional[str] = None,
        key: Optional[str] = None,
    ) -> Edge:
        """Insert a directed edge, creating its edge table on first use.

        With an explicit `key` the write is an idempotent upsert.
        """
        kind = normalize_edge_type(type)
        self.registry.ensure(kind)
        doc = {
            "_key": key or uuid.uuid4().hex,
            "_from": self._node_ref(from_id),
            "_to": self._node_ref(to_id),
            "from": from_id,
            "to": to_id,
            "type": kind,
            "properties": dict(properties or {}),
            "confidence": confidence,
            "source": source,
            "created_at": self.clock(),
        }
        if key:
            patch = {"properties": doc["properties"], "confidence": confidence, "source": source}
            stored = self.store.upsert(kind, key, doc, patch)
        else:
            stored = self.store.insert(kind, doc)
        return self._doc_to_edge(stored, kind)

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        table, key = split_id(edge_id)
        doc = self.store.get(table, key)
        return self._doc_to_edge(doc, table) if doc else None

    def update_edge(
        self,
        edge_id: str,
        *,
        properties: Optional[Dict[str, Any]] = None,
        confidence: Optional[float] = None,
    ) -> Optional[Edge]:
        table, key = split_id(edge_id)
        patch: Dict[str, Any] = {}
        if properties is not None:
            patch["properties"] = properties
        if confidence is not None:
            patch["confidence"] = confidence
        doc = self.store.update(table, key, patch)
        return self._doc_to_edge(doc, table) if doc else None

    def delete_edge(self, edge_id: str) -> bool:
        table, key = split_id(edge_id)
        return self.store.delete(table, key)

    def list_edge_tables(self, refresh: bool = False) -> List[str]:
        return self.registry.refresh(force=refresh)

    def query_edges_across_types(
        self,
        tables: Optional[Sequence[str]] = None,
        source: Optional[str] = None,
        limit: Optional[int] = None,
        newest_first: bool = True,
    ) -> ScanResult[Edge]:
        """Fan out one query per edge table, then merge, sort and truncate."""
        if tables is None:
            tables = self.list_edge_tables()
        if limit is not None and limit <= 0:
            return ScanResult()
        flt = RecordFilter(equals={"source": source}) if source else None
        result: ScanResult[Edge] = ScanResult()
        for table in tables:
            try:
                rows = self.store.find(table, flt, sort_by="created_at", descending=newest_first, limit=limit)
            except Exception as e:
                logger.warning(f"Edge scan failed for table {table}: {e}")
                result.failures.append(PartialFailure(table, str(e)))
                continue
            result.items.extend(self._doc_to_edge(r, table) for r in rows)
        result.items.sort(key=lambda e: e.created_at or "", reverse=newest_first)
        if limit is not None:
            result.items = result.items[:limit]
        return result

    def edges_touching(self, node_ids: Iterable[str], limit: Optional[int] = None) -> ScanResult[Edge]:
        ids = list(dict.fromkeys(node_ids))
        result: ScanResult[Edge] = ScanResult()
        if not ids:
            return result
        seen = set()
        for table in self.list_edge_tables():
            try:
                rows = self.store.find(table, RecordFilter(one_of={"from": ids}), limit=limit)
                rows += self.store.find(table, RecordFilter(one_of={"to": ids}), limit=limit)
            except Exception as e:
                logger.warning(f"Edge lookup failed for table {table}: {e}")
                result.failures.append(PartialFailure(table, str(e)))
                continue
            for r in rows:
                edge = self._doc_to_edge(r, table)
                if edge.id not in seen:
                    seen.add(edge.id)
                    result.items.append(edge)
        result.items.sort(key=lambda e: e.created_at or "", reverse=True)
        if limit is not None:
            result.items = result.items[:limit]
        return result

    def delete_edges_touching(self, node_ids: Iterable[str]) -> Tuple[int, List[PartialFailure]]:
        ids = list(dict.fromkeys(node_ids))
        removed = 0
        failures: List[PartialFailure] = []
        if not ids:
            return removed, failures
        for table in self.list_edge_tables():
            try:
                removed += self.store.delete_where(table, RecordFilter(one_of={"from": ids}))
                removed += self.store.delete_where(table, RecordFilter(one_of={"to": ids}))
            except Exception as e:
                logger.warning(f"Incident edge delete failed for table {table}: {e}")
                failures.append(PartialFailure(table, str(e)))
        return removed, failures

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(self, filename: str, content: Optional[str] = None, file_type: str = "text") -> Document:
        now = self.clock()
        doc = self.store.insert(
            self.document_collection,
            {
                "_key": uuid.uuid4().hex,
                "filename": filename,
                "content": content,
                "file_type": file_type,
                "entity_count": 0,
                "relationship_count": 0,
                "created_at": now,
                "processed_at": None,
            },
        )
        return self._doc_to_document(doc)

    def finalize_document(self, document_id: str, entity_count: int, relationship_count: int) -> Optional[Document]:
        doc = self.store.update(
            self.document_collection,
            split_id(document_id)[1],
            {
                "entity_count": entity_count,
                "relationship_count": relationship_count,
                "processed_at": self.clock(),
            },
        )
        return self._doc_to_document(doc) if doc else None

    def get_document(self, document_id: str) -> Optional[Document]:
        doc = self.store.get(self.document_collection, split_id(document_id)[1])
        return self._doc_to_document(doc) if doc else None

    def find_document_by_filename(self, filename: str) -> Optional[Document]:
        docs = self.store.find(
            self.document_collection,
            RecordFilter(equals={"filename": filename}),
            sort_by="created_at",
            descending=True,
            limit=1,
        )
        return self._doc_to_document(docs[0]) if docs else None

    def list_documents(self, limit: Optional[int] = None) -> List[Document]:
        docs = self.store.find(self.document_collection, sort_by="created_at", descending=True, limit=limit)
        out = []
        for d in docs:
            document = self._doc_to_document(d)
            document.content = None
            out.append(document)
        return out

    def delete_document_record(self, document_id: str) -> bool:
        return self.store.delete(self.document_collection, split_id(document_id)[1])

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        edge_types: Dict[str, int] = {}
        for table in self.list_edge_tables(refresh=True):
            try:
                edge_types[table] = self.store.count(table)
            except Exception as e:
                logger.warning(f"Count failed for edge table {table}: {e}")
        return {
            "nodes": self.store.count(self.node_collection),
            "edges": sum(edge_types.values()),
            "documents": self.store.count(self.document_collection),
            "edge_types": edge_types,
        }
