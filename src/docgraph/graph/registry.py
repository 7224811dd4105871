"""Edge-kind registry.

Relationship types are open-ended and each one is its own edge collection, so
the set of kinds is discovered from the store catalog rather than declared up
front. The registry caches that set, adds kinds as they get created, and
re-scans the catalog when the cache expires or an unknown kind is asked for.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional, Set

from .db.base import DocumentStore

logger = logging.getLogger(__name__)

# Collections that live in the same catalog but never hold edges.
RESERVED_COLLECTIONS = frozenset(
    {"entity", "document", "relationship_def", "data_source_config", "user", "session"}
)


class EdgeKindRegistry:
    def __init__(
        self,
        store: DocumentStore,
        *,
        excluded: Iterable[str] = (),
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.excluded: Set[str] = set(RESERVED_COLLECTIONS) | set(excluded)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._kinds: Set[str] = set()
        self._scanned_at: Optional[float] = None
        self._lock = threading.RLock()

    def is_edge_collection(self, name: str) -> bool:
        return bool(name) and not name.startswith("_") and name not in self.excluded

    def _expired(self) -> bool:
        if self._scanned_at is None:
            return True
        if self.ttl_seconds <= 0:
            return False
        return self._clock() - self._scanned_at >= self.ttl_seconds

    def refresh(self, force: bool = True) -> List[str]:
        """Re-read the catalog (always when `force`, else only when expired)."""
        with self._lock:
            if force or self._expired():
                names = self.store.list_collections()
                self._kinds = {n for n in names if self.is_edge_collection(n)}
                self._scanned_at = self._clock()
                logger.debug(f"Edge registry refreshed: {len(self._kinds)} kinds")
            return sorted(self._kinds)

    def kinds(self) -> List[str]:
        return self.refresh(force=False)

    def __contains__(self, kind: str) -> bool:
        with self._lock:
            if kind in self._kinds and not self._expired():
                return True
        return kind in self.refresh(force=True)

    def ensure(self, kind: str) -> bool:
        """Make sure the edge collection for `kind` exists. True if it was created now.

        A kind missing from the cache is looked up in the catalog first, so a
        table created by another process is reused rather than created again.
        """
        with self._lock:
            if kind in self:
                return False
            created = self.store.create_collection(kind, edge=True)
            if created:
                logger.info(f"Created edge table {kind}")
            self._kinds.add(kind)
            return created

    def reset(self) -> None:
        with self._lock:
            self._kinds = set()
            self._scanned_at = None
