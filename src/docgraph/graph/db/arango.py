"""
ArangoDB backend for docgraph.

Nodes and documents are document collections; every relationship type is an
edge collection created on first use. Filters are compiled to AQL with bind
variables, field paths are whitelisted and backtick-quoted.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from arango import ArangoClient
from arango.database import StandardDatabase
from arango.exceptions import (
    AQLQueryExecuteError,
    ArangoError,
    CollectionCreateError,
    DocumentInsertError,
    DocumentUpdateError,
)

from ...errors import ConflictError, StoreError
from .base import DocumentStore, RecordFilter

logger = logging.getLogger(__name__)

_PATH_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

# ArangoDB server error numbers
ERR_DUPLICATE_NAME = 1207
ERR_UNIQUE_CONSTRAINT = 1210
ERR_DOCUMENT_NOT_FOUND = 1202


def _attr(path: str, var: str = "d") -> str:
    if not _PATH_RE.match(path):
        raise StoreError(f"Invalid field path: {path!r}")
    return var + "".join(f".`{seg}`" for seg in path.split("."))


def compile_filter(flt: Optional[RecordFilter], var: str = "d") -> Tuple[str, Dict[str, Any]]:
    """Render a RecordFilter as AQL FILTER lines plus bind vars."""
    if flt is None:
        return "", {}
    lines: List[str] = []
    bind: Dict[str, Any] = {}

    def _bind(value: Any) -> str:
        name = f"v{len(bind)}"
        bind[name] = value
        return f"@{name}"

    for path, value in flt.equals.items():
        lines.append(f"FILTER {_attr(path, var)} == {_bind(value)}")
    for path, values in flt.one_of.items():
        lines.append(f"FILTER {_attr(path, var)} IN {_bind(list(values))}")
    if flt.contains:
        path, needle = flt.contains
        lines.append(
            f"FILTER CONTAINS(LOWER(TO_STRING({_attr(path, var)})), {_bind(str(needle).lower())})"
        )
    if flt.has_item:
        path, value = flt.has_item
        lines.append(f"FILTER {_bind(value)} IN NOT_NULL({_attr(path, var)}, [])")
    if flt.exclude_keys:
        lines.append(f"FILTER {var}._key NOT IN {_bind(list(flt.exclude_keys))}")
    return "\n".join(lines), bind


def _nested(path: str, expr: str) -> str:
    """`a.b` + expr -> {`a`: {`b`: expr}}"""
    for seg in reversed(path.split(".")):
        expr = f"{{`{seg}`: {expr}}}"
    return expr


class ArangoDocumentStore(DocumentStore):
    """DocumentStore on top of python-arango."""

    def __init__(
        self,
        url: str = "http://localhost:8529",
        username: str = "root",
        password: str = "",
        database: str = "docgraph",
    ):
        self.url = url
        self.username = username
        self.password = password
        self.database_name = database

        self.client: Optional[ArangoClient] = None
        self.db: Optional[StandardDatabase] = None

    def connect(self, **kwargs) -> None:
        """Connect, creating the database if it does not exist yet."""
        try:
            self.client = ArangoClient(hosts=self.url)
            sys_db = self.client.db("_system", username=self.username, password=self.password)
            if not sys_db.has_database(self.database_name):
                sys_db.create_database(self.database_name)
            self.db = self.client.db(self.database_name, username=self.username, password=self.password)
            logger.info(f"Connected to ArangoDB at {self.url} (db={self.database_name})")
        except ArangoError as e:
            logger.error(f"Failed to connect to ArangoDB: {e}")
            raise StoreError(f"Failed to connect to ArangoDB: {e}") from e

    def close(self) -> None:
        if self.client:
            self.client.close()
            logger.info("Disconnected from ArangoDB")

    def _aql(self, query: str, bind_vars: Dict[str, Any]) -> List[Any]:
        try:
            return list(self.db.aql.execute(query, bind_vars=bind_vars))
        except AQLQueryExecuteError:
            raise
        except ArangoError as e:
            raise StoreError(str(e)) from e

    def _run(self, query: str, bind_vars: Dict[str, Any]) -> List[Any]:
        try:
            return self._aql(query, bind_vars)
        except AQLQueryExecuteError as e:
            raise StoreError(str(e)) from e

    # Catalog

    def list_collections(self) -> List[str]:
        try:
            return [c["name"] for c in self.db.collections() if not c.get("system") and not c["name"].startswith("_")]
        except ArangoError as e:
            raise StoreError(f"Failed to list collections: {e}") from e

    def has_collection(self, name: str) -> bool:
        try:
            return bool(self.db.has_collection(name))
        except ArangoError as e:
            raise StoreError(str(e)) from e

    def create_collection(self, name: str, *, edge: bool = False) -> bool:
        if self.has_collection(name):
            return False
        try:
            self.db.create_collection(name, edge=edge)
            logger.debug(f"Created {'edge ' if edge else ''}collection {name}")
            return True
        except CollectionCreateError as e:
            if e.error_code == ERR_DUPLICATE_NAME:
                return False
            raise StoreError(f"Failed to create collection {name}: {e}") from e

    def drop_collection(self, name: str) -> bool:
        try:
            return bool(self.db.delete_collection(name, ignore_missing=True))
        except ArangoError as e:
            raise StoreError(f"Failed to drop collection {name}: {e}") from e

    # Reads

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        try:
            return self.db.collection(collection).get(key)
        except ArangoError as e:
            raise StoreError(str(e)) from e

    def get_many(self, collection: str, keys: Sequence[str]) -> List[Dict[str, Any]]:
        if not keys:
            return []
        query = "FOR d IN @@col FILTER d._key IN @keys RETURN d"
        return self._run(query, {"@col": collection, "keys": list(keys)})

    def find(
        self,
        collection: str,
        flt: Optional[RecordFilter] = None,
        *,
        sort_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        filters, bind = compile_filter(flt)
        bind["@col"] = collection
        lines = ["FOR d IN @@col"]
        if filters:
            lines.append(filters)
        if sort_by:
            lines.append(f"SORT {_attr(sort_by)} {'DESC' if descending else 'ASC'}")
        if limit is not None:
            bind["limit"] = int(limit)
            lines.append("LIMIT @limit")
        lines.append("RETURN d")
        return self._run("\n".join(lines), bind)

    def count(self, collection: str, flt: Optional[RecordFilter] = None) -> int:
        filters, bind = compile_filter(flt)
        bind["@col"] = collection
        query = "\n".join(
            ["FOR d IN @@col", filters, "COLLECT WITH COUNT INTO n", "RETURN n"]
        )
        rows = self._run(query, bind)
        return int(rows[0]) if rows else 0

    # Writes

    def insert(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        try:
            result = self.db.collection(collection).insert(doc, return_new=True)
            return result.get("new", doc)
        except DocumentInsertError as e:
            if e.error_code == ERR_UNIQUE_CONSTRAINT:
                raise ConflictError(f"{collection}/{doc.get('_key')} already exists") from e
            logger.error(f"Failed to insert into {collection}: {e}")
            raise StoreError(str(e)) from e

    def upsert(
        self,
        collection: str,
        key: str,
        insert_doc: Dict[str, Any],
        merge_patch: Dict[str, Any],
        union: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> Dict[str, Any]:
        bind: Dict[str, Any] = {
            "@col": collection,
            "key": key,
            "insert": {**insert_doc, "_key": key},
            "patch": merge_patch,
        }
        parts = ["@patch"]
        for i, (path, values) in enumerate((union or {}).items()):
            bind[f"u{i}"] = list(values)
            parts.append(_nested(path, f"UNION_DISTINCT(NOT_NULL({_attr(path, 'OLD')}, []), @u{i})"))
        update_expr = parts[0] if len(parts) == 1 else f"MERGE_RECURSIVE({', '.join(parts)})"
        query = (
            "UPSERT {_key: @key}\n"
            "INSERT @insert\n"
            f"UPDATE {update_expr}\n"
            "IN @@col OPTIONS {mergeObjects: true}\n"
            "RETURN NEW"
        )
        # Two concurrent UPSERTs can both take the INSERT branch; the loser
        # sees a unique-constraint violation and succeeds as an UPDATE on retry.
        for attempt in (1, 2):
            try:
                rows = self._aql(query, bind)
                return rows[0] if rows else bind["insert"]
            except AQLQueryExecuteError as e:
                if e.error_code == ERR_UNIQUE_CONSTRAINT and attempt == 1:
                    logger.debug(f"Upsert race on {collection}/{key}; retrying as merge")
                    continue
                raise StoreError(f"Upsert failed for {collection}/{key}: {e}") from e
        raise StoreError(f"Upsert failed for {collection}/{key}")

    def update(self, collection: str, key: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            result = self.db.collection(collection).update(
                {**patch, "_key": key}, merge=True, return_new=True
            )
            return result.get("new")
        except DocumentUpdateError as e:
            if e.error_code == ERR_DOCUMENT_NOT_FOUND:
                return None
            raise StoreError(str(e)) from e

    def delete(self, collection: str, key: str) -> bool:
        try:
            return bool(self.db.collection(collection).delete(key, ignore_missing=True))
        except ArangoError as e:
            raise StoreError(str(e)) from e

    def delete_where(self, collection: str, flt: RecordFilter) -> int:
        filters, bind = compile_filter(flt)
        bind["@col"] = collection
        query = "\n".join(["FOR d IN @@col", filters, "REMOVE d IN @@col", "RETURN 1"])
        return len(self._run(query, bind))
