"""Exception hierarchy for docgraph.

Unit-level code (one chunk, one row, one cluster) catches these, logs them and
moves on; nothing here is meant to abort a whole batch.
"""

from __future__ import annotations


class DocGraphError(Exception):
    """Base class for all docgraph errors."""


class StoreError(DocGraphError):
    """The backing document store rejected or failed an operation."""


class ConflictError(StoreError):
    """A create-if-absent lost a race; callers merge instead of failing."""


class ExtractionError(DocGraphError):
    """The extraction service failed after its retry budget was spent."""


class ExtractionFormatError(ExtractionError):
    """The extraction service answered, but not in the agreed shape."""


class DocumentNotFoundError(DocGraphError):
    """No document matches the requested id or filename."""
