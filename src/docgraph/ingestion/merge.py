"""Batch-level cleanup of extraction results before anything is written."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from ..extraction.base import ExtractedEntity, ExtractedRelationship, Extraction
from ..text import label_key

logger = logging.getLogger(__name__)


@dataclass
class MergedExtraction:
    entities: list[ExtractedEntity] = field(default_factory=list)
    relationships: list[ExtractedRelationship] = field(default_factory=list)
    dropped_entities: int = 0
    dropped_relationships: int = 0


def merge_extractions(results: Iterable[Extraction]) -> MergedExtraction:
    """Dedup entities by normalized label, keeping the most confident variant.

    Ties keep the first one seen. Label-less entities and relationships missing
    an endpoint or a type are dropped.
    """
    by_key: dict[str, ExtractedEntity] = {}
    out = MergedExtraction()

    for result in results:
        for entity in result.entities:
            key = label_key(entity.label or "")
            if not key:
                logger.warning(f"Skipping entity without label: {entity.model_dump()}")
                out.dropped_entities += 1
                continue
            existing = by_key.get(key)
            if existing is None or (entity.confidence or 0) > (existing.confidence or 0):
                by_key[key] = entity

        for rel in result.relationships:
            if rel.from_ and rel.to and rel.type:
                out.relationships.append(rel)
            else:
                logger.warning(f"Skipping invalid relationship: {rel.model_dump(by_alias=True)}")
                out.dropped_relationships += 1

    out.entities = list(by_key.values())
    return out


def reconcile_relationships(
    relationships: Iterable[ExtractedRelationship],
    entities: Iterable[ExtractedEntity],
) -> tuple[list[ExtractedRelationship], int]:
    """Point every endpoint at a canonical entity label.

    Endpoints are matched by raw entity id first, then by case-insensitive
    label. Relationships with an endpoint that matches neither are skipped.
    """
    by_id: dict[str, str] = {}
    by_label: dict[str, str] = {}
    for e in entities:
        if not e.label:
            continue
        if e.id:
            by_id[e.id] = e.label
        by_label[label_key(e.label)] = e.label

    def _canonical(ref: str) -> str | None:
        if ref in by_id:
            return by_id[ref]
        return by_label.get(label_key(ref))

    kept: list[ExtractedRelationship] = []
    skipped = 0
    for rel in relationships:
        src = _canonical(rel.from_ or "")
        dst = _canonical(rel.to or "")
        if src is None or dst is None:
            logger.warning(f"Skipping relationship {rel.from_} -> {rel.to} ({rel.type}): endpoint not found")
            skipped += 1
            continue
        kept.append(rel.model_copy(update={"from_": src, "to": dst}))
    return kept, skipped
