"""
Entity resolution.

Decides whether a freshly extracted entity is a node we already have. The
exact path is a pure id/label lookup; the fuzzy path asks the extraction
service to judge the best substring candidate. Edge endpoints only ever use
the fast path so per-edge latency stays bounded.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..errors import ExtractionFormatError
from ..extraction.base import ExtractedEntity, ExtractionService
from ..settings import DocGraphSettings, settings as default_settings
from ..text import label_key, node_id_for_label
from .adapter import GraphStoreAdapter
from .communities import COMMUNITY_TYPE
from .db.base import Node

logger = logging.getLogger(__name__)


class EntityResolver:
    def __init__(
        self,
        graph: GraphStoreAdapter,
        service: Optional[ExtractionService] = None,
        *,
        fuzzy: bool = True,
        fail_open: bool = True,
        merge_properties: bool = True,
        candidate_limit: int = 20,
    ):
        self.graph = graph
        self.service = service
        self.fuzzy = fuzzy
        self.fail_open = fail_open
        self.merge_properties = merge_properties
        self.candidate_limit = candidate_limit

    @classmethod
    def from_settings(
        cls,
        graph: GraphStoreAdapter,
        service: Optional[ExtractionService],
        s: DocGraphSettings = default_settings,
    ) -> "EntityResolver":
        return cls(
            graph,
            service,
            fuzzy=s.resolver_fuzzy,
            fail_open=s.resolver_fail_open,
            merge_properties=s.resolver_merge_properties,
        )

    def resolve(self, entity: ExtractedEntity, document_id: Optional[str] = None) -> Node:
        """Return the existing node for `entity`, or a newly created one.

        With fail-open on, any error along the way creates the node instead of
        losing it; with it off the error reaches the caller.
        """
        if not entity.label:
            raise ExtractionFormatError("cannot resolve an entity without a label")
        try:
            return self._resolve(entity, document_id)
        except Exception as e:
            if not self.fail_open:
                raise
            logger.warning(f"Resolver failed for '{entity.label}', creating it instead: {e}")
            return self._create(entity, document_id)

    def resolve_fast(
        self,
        label: str,
        type: str = "Concept",
        document_id: Optional[str] = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> Node:
        """Exact lookup or create; never calls the extraction service."""
        return self.graph.ensure_node(label, type=type, document_id=document_id, properties=properties)

    def _resolve(self, entity: ExtractedEntity, document_id: Optional[str]) -> Node:
        label = entity.label or ""

        existing = self.graph.get_node(node_id_for_label(label))
        if existing is not None:
            logger.debug(f"Exact id match for '{label}'")
            return self._merge_into(existing, entity, document_id)

        candidates = [
            c for c in self.graph.find_nodes_by_label(label, limit=self.candidate_limit)
            if c.type != COMMUNITY_TYPE
        ]
        wanted = label_key(label)
        for c in candidates:
            if label_key(c.label) == wanted:
                logger.debug(f"Exact label match for '{label}' -> {c.id}")
                return self._merge_into(c, entity, document_id)

        if self.fuzzy and candidates and self.service is not None:
            top = candidates[0]
            try:
                same = self.service.same_entity(
                    {"label": label, "type": entity.type, "properties": entity.properties},
                    {"label": top.label, "type": top.type, "properties": top.properties},
                )
            except Exception as e:
                logger.warning(f"Same-entity check failed for '{label}' vs '{top.label}': {e}")
                same = False
            if same:
                logger.info(f"Merging '{label}' into existing node '{top.label}' ({top.id})")
                return self._merge_into(top, entity, document_id)

        return self._create(entity, document_id)

    def _merge_into(self, node: Node, entity: ExtractedEntity, document_id: Optional[str]) -> Node:
        if self.merge_properties and entity.properties:
            patch = Node(id=node.id, label=node.label, type=node.type, properties=dict(entity.properties))
            return self.graph.upsert_node(patch, document_id=document_id)
        if document_id:
            return self.graph.attach_document(node, document_id)
        return node

    def _create(self, entity: ExtractedEntity, document_id: Optional[str]) -> Node:
        metadata: Dict[str, Any] = {}
        if entity.confidence is not None:
            metadata["confidence"] = entity.confidence
        node = Node(
            id=node_id_for_label(entity.label or ""),
            label=entity.label or "",
            type=entity.type or "Concept",
            properties=dict(entity.properties),
            metadata=metadata,
        )
        return self.graph.upsert_node(node, document_id=document_id)
