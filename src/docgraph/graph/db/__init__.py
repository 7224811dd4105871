"""Document store backends."""

from .base import Document, DocumentStore, Edge, Node, RecordFilter
from .arango import ArangoDocumentStore
from .memory import InMemoryDocumentStore

__all__ = [
    "Document",
    "DocumentStore",
    "Edge",
    "Node",
    "RecordFilter",
    "ArangoDocumentStore",
    "InMemoryDocumentStore",
]
