"""docgraph: knowledge graphs extracted from documents, stored one edge table per relationship type."""

__version__ = "0.1.0"
