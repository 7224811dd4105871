"""Text and row ingestion."""

from .chunking import ChunkingConfig, chunk_text
from .merge import merge_extractions, reconcile_relationships
from .pipeline import IngestionPipeline, IngestResult
from .rows import normalize_type, row_to_extraction

__all__ = [
    "ChunkingConfig",
    "chunk_text",
    "merge_extractions",
    "reconcile_relationships",
    "IngestionPipeline",
    "IngestResult",
    "normalize_type",
    "row_to_extraction",
]
