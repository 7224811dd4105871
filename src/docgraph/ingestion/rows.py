from __future__ import annotations

import re
from typing import Any, Mapping

from ..extraction.base import ExtractedEntity, ExtractedRelationship, Extraction
from ..text import normalize_edge_type

_YEAR_MONTH_RE = re.compile(r"\d{4}-\d{2}")

# First match wins; column-name substrings, checked against the lower-cased header.
_TYPE_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("Event", ("event", "activity", "action")),
    ("Time", ("time", "date")),
    ("Location", ("loc", "city", "region", "country")),
    ("Person", ("person", "user", "agent", "customer")),
    ("Organization", ("org", "company", "dept", "agency", "business")),
]


def normalize_type(column: str, value: str) -> str:
    """Entity type for a table cell, guessed from its column name and value."""
    col = (column or "").lower()
    val = (value or "").lower()
    for type_, needles in _TYPE_RULES:
        if any(n in col for n in needles):
            return type_
        if type_ == "Event" and "call" in val:
            return type_
        if type_ == "Time" and _YEAR_MONTH_RE.search(val):
            return type_
    return "Concept"


def row_to_extraction(row: Mapping[str, Any]) -> Extraction:
    """Deterministic graph data for one table row.

    Every non-empty cell becomes an entity; the first column is the subject
    and gets a HAS_<COLUMN> relationship to every other non-empty cell.
    """
    cells = [(str(k).strip(), str(v).strip()) for k, v in row.items() if k is not None and v is not None]

    entities: list[ExtractedEntity] = []
    for column, value in cells:
        if not value or not column:
            continue
        entities.append(
            ExtractedEntity(
                label=value,
                type=normalize_type(column, value),
                properties={"original_column": column},
                confidence=1.0,
            )
        )

    relationships: list[ExtractedRelationship] = []
    if cells and cells[0][1]:
        subject = cells[0][1]
        for column, value in cells[1:]:
            if value and column:
                relationships.append(
                    ExtractedRelationship(
                        from_=subject,
                        to=value,
                        type=normalize_edge_type(f"HAS_{column}"),
                        confidence=1.0,
                    )
                )
    return Extraction(entities=entities, relationships=relationships)
