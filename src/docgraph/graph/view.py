"""
Bounded graph views.

Edges come first: the newest edges define a set of critical nodes that must be
present, and only the remaining node budget goes to recently updated filler
nodes. Every returned edge has both endpoints in the returned node set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..settings import DocGraphSettings, settings as default_settings
from .adapter import GraphStoreAdapter, PartialFailure
from .db.base import Edge, Node

logger = logging.getLogger(__name__)


@dataclass
class GraphView:
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    failures: List[PartialFailure] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "degraded": self.degraded,
            "failures": [{"table": f.table, "error": f.error} for f in self.failures],
        }


def _valid_edges(edges: List[Edge], nodes: List[Node]) -> List[Edge]:
    present = {n.id for n in nodes}
    return [e for e in edges if e.from_id in present and e.to_id in present]


class GraphViewSynthesizer:
    def __init__(self, graph: GraphStoreAdapter, *, max_nodes: int = 100, max_edges: int = 100):
        self.graph = graph
        self.max_nodes = max_nodes
        self.max_edges = max_edges

    @classmethod
    def from_settings(cls, graph: GraphStoreAdapter, s: DocGraphSettings = default_settings) -> "GraphViewSynthesizer":
        return cls(graph, max_nodes=s.view_max_nodes, max_edges=s.view_max_edges)

    def synthesize(
        self,
        document_id: Optional[str] = None,
        max_nodes: Optional[int] = None,
        max_edges: Optional[int] = None,
    ) -> GraphView:
        n_budget = max(0, self.max_nodes if max_nodes is None else max_nodes)
        e_budget = max(0, self.max_edges if max_edges is None else max_edges)

        scan = self.graph.query_edges_across_types(source=document_id, limit=e_budget)
        edges = scan.items

        critical_ids = list(dict.fromkeys(i for e in edges for i in (e.from_id, e.to_id)))
        critical = self.graph.get_nodes(critical_ids)

        # critical nodes are never dropped, so the view may overshoot n_budget
        filler = self.graph.recent_nodes(
            max(0, n_budget - len(critical)),
            exclude_ids=critical_ids,
            document_id=document_id,
        )
        nodes = critical + filler
        view = GraphView(nodes=nodes, edges=_valid_edges(edges, nodes), failures=scan.failures)
        if view.degraded:
            logger.warning(f"Graph view is degraded: {len(view.failures)} edge table(s) failed")
        return view

    def search(self, query: str, type: Optional[str] = None, limit: int = 20, edge_limit: int = 100) -> GraphView:
        """Nodes whose label contains `query`, their edges, and the neighbours on the other end."""
        matches = self.graph.find_nodes_by_label(query, type=type, limit=limit)
        if not matches:
            return GraphView()
        scan = self.graph.edges_touching([n.id for n in matches], limit=edge_limit)

        seen = {n.id for n in matches}
        neighbour_ids = [
            i for e in scan.items for i in (e.from_id, e.to_id) if i not in seen
        ]
        nodes = matches + self.graph.get_nodes(neighbour_ids)
        return GraphView(nodes=nodes, edges=_valid_edges(scan.items, nodes), failures=scan.failures)
