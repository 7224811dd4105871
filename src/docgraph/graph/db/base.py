"""
Base store abstractions for docgraph.

The graph lives in a document-oriented store: nodes and documents are plain
collections, and every relationship type is its own edge collection created on
demand. `DocumentStore` is the narrow contract the rest of the package relies
on; backends translate it to their native query language.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


def utcnow_iso() -> str:
    """UTC timestamp with a fixed width so string order equals time order."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


@dataclass
class Node:
    """A typed, labelled vertex."""
    id: str
    label: str
    type: str = "Concept"
    properties: Dict[str, Any] = field(default_factory=dict)
    # source (first owner), confidence, documents (every referencing document)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def source(self) -> Optional[str]:
        return self.metadata.get("source")

    @property
    def documents(self) -> List[str]:
        return list(self.metadata.get("documents") or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "properties": self.properties,
            "metadata": self.metadata,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class Edge:
    """A typed, directed edge; `type` doubles as the edge collection name."""
    id: str
    from_id: str
    to_id: str
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)
    confidence: Optional[float] = None
    source: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "type": self.type,
            "properties": self.properties,
            "confidence": self.confidence,
            "source": self.source,
            "createdAt": self.created_at,
        }


@dataclass
class Document:
    """One ingestion call's bookkeeping record."""
    id: str
    filename: str
    content: Optional[str] = None
    file_type: str = "text"
    entity_count: int = 0
    relationship_count: int = 0
    created_at: Optional[str] = None
    processed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "fileType": self.file_type,
            "entityCount": self.entity_count,
            "relationshipCount": self.relationship_count,
            "createdAt": self.created_at,
            "processedAt": self.processed_at,
        }


@dataclass(frozen=True)
class RecordFilter:
    """Conjunction of simple predicates over dotted field paths."""
    equals: Mapping[str, Any] = field(default_factory=dict)
    one_of: Mapping[str, Sequence[Any]] = field(default_factory=dict)
    # (path, substring), case-insensitive
    contains: Optional[Tuple[str, str]] = None
    # (path, value): the array at `path` holds `value`
    has_item: Optional[Tuple[str, Any]] = None
    exclude_keys: Sequence[str] = ()


class DocumentStore(ABC):
    """Abstract base class for the backing document store."""

    @abstractmethod
    def connect(self, **kwargs) -> None:
        """Establish connection to the store."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""
        pass

    # Catalog

    @abstractmethod
    def list_collections(self) -> List[str]:
        """Names of every non-system collection (catalog introspection)."""
        pass

    @abstractmethod
    def has_collection(self, name: str) -> bool:
        pass

    @abstractmethod
    def create_collection(self, name: str, *, edge: bool = False) -> bool:
        """Define the collection if it does not exist.

        Returns True when this call created it. Losing a creation race to a
        concurrent caller is not an error.
        """
        pass

    @abstractmethod
    def drop_collection(self, name: str) -> bool:
        pass

    # Reads

    @abstractmethod
    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_many(self, collection: str, keys: Sequence[str]) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def find(
        self,
        collection: str,
        flt: Optional[RecordFilter] = None,
        *,
        sort_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def count(self, collection: str, flt: Optional[RecordFilter] = None) -> int:
        pass

    # Writes

    @abstractmethod
    def insert(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new record; raises ConflictError if `_key` is taken."""
        pass

    @abstractmethod
    def upsert(
        self,
        collection: str,
        key: str,
        insert_doc: Dict[str, Any],
        merge_patch: Dict[str, Any],
        union: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> Dict[str, Any]:
        """Create-if-absent, else merge.

        On conflict `merge_patch` is merged recursively into the stored record
        (last writer wins per field) and every array at a `union` path gains the
        given values without duplicates. Idempotent under concurrent callers.
        """
        pass

    @abstractmethod
    def update(self, collection: str, key: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Recursively merge `patch` into an existing record; None if missing."""
        pass

    @abstractmethod
    def delete(self, collection: str, key: str) -> bool:
        pass

    @abstractmethod
    def delete_where(self, collection: str, flt: RecordFilter) -> int:
        """Delete every matching record and return how many went."""
        pass
