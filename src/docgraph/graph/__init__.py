"""
docgraph graph layer

Store adapter, entity resolution, bounded views, cascade delete and
community detection over a document store with dynamic edge tables.
"""

from .adapter import GraphStoreAdapter, PartialFailure, ScanResult
from .cascade import CascadeDeleter, CascadeReport
from .communities import CommunityDetector, CommunityReport, cluster_edges
from .registry import EdgeKindRegistry
from .resolver import EntityResolver
from .view import GraphView, GraphViewSynthesizer

__all__ = [
    "GraphStoreAdapter",
    "PartialFailure",
    "ScanResult",
    "CascadeDeleter",
    "CascadeReport",
    "CommunityDetector",
    "CommunityReport",
    "cluster_edges",
    "EdgeKindRegistry",
    "EntityResolver",
    "GraphView",
    "GraphViewSynthesizer",
]
