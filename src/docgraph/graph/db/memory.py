"""In-process DocumentStore used for local runs and tests."""

from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ...errors import ConflictError
from .base import DocumentStore, RecordFilter

_MISSING = object()


def _lookup(doc: Mapping[str, Any], path: str) -> Any:
    cur: Any = doc
    for seg in path.split("."):
        if not isinstance(cur, Mapping) or seg not in cur:
            return _MISSING
        cur = cur[seg]
    return cur


def _deep_merge(target: Dict[str, Any], patch: Mapping[str, Any]) -> None:
    for k, v in patch.items():
        if isinstance(v, Mapping) and isinstance(target.get(k), dict):
            _deep_merge(target[k], v)
        else:
            target[k] = copy.deepcopy(v)


def _union_into(doc: Dict[str, Any], path: str, values: Sequence[Any]) -> None:
    *parents, leaf = path.split(".")
    cur = doc
    for seg in parents:
        if not isinstance(cur.get(seg), dict):
            cur[seg] = {}
        cur = cur[seg]
    merged = list(cur.get(leaf) or [])
    for v in values:
        if v not in merged:
            merged.append(v)
    cur[leaf] = merged


def matches(doc: Mapping[str, Any], flt: Optional[RecordFilter]) -> bool:
    if flt is None:
        return True
    for path, value in flt.equals.items():
        got = _lookup(doc, path)
        if got is _MISSING:
            got = None
        if got != value:
            return False
    for path, values in flt.one_of.items():
        if _lookup(doc, path) not in list(values):
            return False
    if flt.contains:
        path, needle = flt.contains
        got = _lookup(doc, path)
        if got is _MISSING or got is None or str(needle).lower() not in str(got).lower():
            return False
    if flt.has_item:
        path, value = flt.has_item
        got = _lookup(doc, path)
        if not isinstance(got, list) or value not in got:
            return False
    if flt.exclude_keys and doc.get("_key") in flt.exclude_keys:
        return False
    return True


class InMemoryDocumentStore(DocumentStore):
    """Dict-of-dicts store with the same semantics as the Arango backend."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._edge_collections: set[str] = set()
        self._lock = threading.RLock()

    def connect(self, **kwargs) -> None:
        pass

    def close(self) -> None:
        pass

    def is_edge_collection(self, name: str) -> bool:
        return name in self._edge_collections

    def list_collections(self) -> List[str]:
        with self._lock:
            return list(self._collections)

    def has_collection(self, name: str) -> bool:
        with self._lock:
            return name in self._collections

    def create_collection(self, name: str, *, edge: bool = False) -> bool:
        with self._lock:
            if name in self._collections:
                return False
            self._collections[name] = {}
            if edge:
                self._edge_collections.add(name)
            return True

    def drop_collection(self, name: str) -> bool:
        with self._lock:
            self._edge_collections.discard(name)
            return self._collections.pop(name, None) is not None

    def _col(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.get(name, {})

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._col(collection).get(key)
            return copy.deepcopy(doc) if doc is not None else None

    def get_many(self, collection: str, keys: Sequence[str]) -> List[Dict[str, Any]]:
        with self._lock:
            col = self._col(collection)
            return [copy.deepcopy(col[k]) for k in keys if k in col]

    def find(
        self,
        collection: str,
        flt: Optional[RecordFilter] = None,
        *,
        sort_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [copy.deepcopy(d) for d in self._col(collection).values() if matches(d, flt)]
        if sort_by:
            def _sort_key(d):
                v = _lookup(d, sort_by)
                return (v is not _MISSING and v is not None, "" if v is _MISSING or v is None else v)
            rows.sort(key=_sort_key, reverse=descending)
        if limit is not None:
            rows = rows[: max(0, int(limit))]
        return rows

    def count(self, collection: str, flt: Optional[RecordFilter] = None) -> int:
        with self._lock:
            return sum(1 for d in self._col(collection).values() if matches(d, flt))

    def insert(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            col = self._collections.setdefault(collection, {})
            key = doc["_key"]
            if key in col:
                raise ConflictError(f"{collection}/{key} already exists")
            col[key] = copy.deepcopy(doc)
            return copy.deepcopy(col[key])

    def upsert(
        self,
        collection: str,
        key: str,
        insert_doc: Dict[str, Any],
        merge_patch: Dict[str, Any],
        union: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            col = self._collections.setdefault(collection, {})
            existing = col.get(key)
            if existing is None:
                col[key] = {**copy.deepcopy(insert_doc), "_key": key}
            else:
                _deep_merge(existing, merge_patch)
                for path, values in (union or {}).items():
                    _union_into(existing, path, values)
            return copy.deepcopy(col[key])

    def update(self, collection: str, key: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            existing = self._col(collection).get(key)
            if existing is None:
                return None
            _deep_merge(existing, patch)
            return copy.deepcopy(existing)

    def delete(self, collection: str, key: str) -> bool:
        with self._lock:
            return self._col(collection).pop(key, None) is not None

    def delete_where(self, collection: str, flt: RecordFilter) -> int:
        with self._lock:
            col = self._col(collection)
            doomed = [k for k, d in col.items() if matches(d, flt)]
            for k in doomed:
                del col[k]
            return len(doomed)
