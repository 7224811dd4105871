"""
Community detection.

A single pass over the edge list groups nodes into connected clusters, each
cluster large enough gets summarized by the extraction service, and the
summary is written back as a Community node that every member BELONGS_TO.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..errors import DocGraphError
from ..extraction.base import ExtractionService, parse_summary
from ..settings import DocGraphSettings, settings as default_settings
from ..text import community_id_for_members, is_community_id
from .adapter import GraphStoreAdapter, PartialFailure
from .db.base import Node, utcnow_iso

logger = logging.getLogger(__name__)

COMMUNITY_TYPE = "Community"
MEMBERSHIP_EDGE = "BELONGS_TO"


def _cluster_order(cluster_id: str) -> int:
    return int(cluster_id.split("_", 1)[1])


def cluster_edges(pairs: Iterable[Tuple[str, str]], merge_clusters: bool = False) -> Dict[str, List[str]]:
    """Connected-components pass over (from, to) pairs, in the given order.

    Cluster ids are c_1, c_2, ... in creation order. An edge between two nodes
    that already sit in different clusters is ignored unless `merge_clusters`
    is set, in which case the clusters are unioned and the older id survives.
    The result depends on the input order when merging is off.
    """
    clusters: Dict[str, List[str]] = {}
    node_cluster: Dict[str, str] = {}
    parent: Dict[str, str] = {}
    created = 0

    def find(c: str) -> str:
        while parent[c] != c:
            parent[c] = parent[parent[c]]
            c = parent[c]
        return c

    for u, v in pairs:
        if not u or not v:
            continue
        cu = find(node_cluster[u]) if u in node_cluster else None
        cv = find(node_cluster[v]) if v in node_cluster else None

        if cu is None and cv is None:
            created += 1
            cid = f"c_{created}"
            parent[cid] = cid
            clusters[cid] = [u] if u == v else [u, v]
            node_cluster[u] = node_cluster[v] = cid
        elif cu is not None and cv is None:
            clusters[cu].append(v)
            node_cluster[v] = cu
        elif cu is None and cv is not None:
            clusters[cv].append(u)
            node_cluster[u] = cv
        elif cu != cv and merge_clusters:
            keep, gone = sorted((cu, cv), key=_cluster_order)
            parent[gone] = keep
            clusters[keep].extend(clusters.pop(gone))

    return clusters


def describe_member(node: Node) -> str:
    return f"{node.label} ({node.type}): {json.dumps(node.properties, default=str, sort_keys=True)}"


def membership_key(member_id: str, community_id: str) -> str:
    return hashlib.sha1(f"{member_id}->{community_id}".encode("utf-8")).hexdigest()


@dataclass
class CommunityReport:
    clusters_found: int = 0
    communities_created: int = 0
    communities: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: List[PartialFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clustersFound": self.clusters_found,
            "communitiesCreated": self.communities_created,
            "communities": self.communities,
            "skipped": self.skipped,
            "failures": [{"table": f.table, "error": f.error} for f in self.failures],
        }


class CommunityDetector:
    def __init__(
        self,
        graph: GraphStoreAdapter,
        service: ExtractionService,
        *,
        min_size: int = 3,
        merge_clusters: bool = False,
        context_chars: int = 6000,
        edge_limit: Optional[int] = None,
    ):
        self.graph = graph
        self.service = service
        self.min_size = min_size
        self.merge_clusters = merge_clusters
        self.context_chars = context_chars
        self.edge_limit = edge_limit

    @classmethod
    def from_settings(
        cls,
        graph: GraphStoreAdapter,
        service: ExtractionService,
        s: DocGraphSettings = default_settings,
    ) -> "CommunityDetector":
        return cls(
            graph,
            service,
            min_size=s.community_min_size,
            merge_clusters=s.community_merge_clusters,
            context_chars=s.community_context_chars,
            edge_limit=s.community_edge_limit,
        )

    def detect(self) -> CommunityReport:
        report = CommunityReport()
        if self.edge_limit is None:
            scan = self.graph.query_edges_across_types(newest_first=False)
            edges = scan.items
        else:
            # bounded scans keep the newest edges, still clustered oldest first
            scan = self.graph.query_edges_across_types(limit=self.edge_limit, newest_first=True)
            edges = list(reversed(scan.items))
        report.failures = scan.failures

        # never cluster our own output
        pairs = [
            (e.from_id, e.to_id)
            for e in edges
            if e.type != MEMBERSHIP_EDGE and not is_community_id(e.from_id) and not is_community_id(e.to_id)
        ]
        clusters = cluster_edges(pairs, self.merge_clusters)
        report.clusters_found = len(clusters)
        logger.info(f"Detected {len(clusters)} cluster(s) from {len(pairs)} edge(s)")

        for cluster_id, members in clusters.items():
            if len(members) < self.min_size:
                continue
            try:
                community = self._materialize(cluster_id, members)
            except Exception as e:
                logger.warning(f"Skipping cluster {cluster_id} ({len(members)} members): {e}")
                report.skipped.append(cluster_id)
                continue
            report.communities_created += 1
            report.communities.append(community.id)

        return report

    def _materialize(self, cluster_id: str, members: List[str]) -> Node:
        nodes = self.graph.get_nodes(members)
        if not nodes:
            raise DocGraphError("no cluster members could be loaded")

        context = "\n".join(describe_member(n) for n in nodes)[: self.context_chars]
        summary = parse_summary(self.service.summarize(context))
        logger.info(f"Cluster {cluster_id} summarized as '{summary.label}'")

        community = self.graph.upsert_node(
            Node(
                id=community_id_for_members(n.id for n in nodes),
                label=summary.label,
                type=COMMUNITY_TYPE,
                properties={
                    "theme": summary.theme,
                    "summary": summary.summary,
                    "member_count": len(nodes),
                    "generated_at": utcnow_iso(),
                },
                metadata={
                    "generated_by": "CommunityDetector",
                    "algorithm": "union_find" if self.merge_clusters else "connected_components",
                    "cluster": cluster_id,
                },
            )
        )
        for node in nodes:
            self.graph.create_edge(
                node.id,
                community.id,
                MEMBERSHIP_EDGE,
                confidence=1.0,
                key=membership_key(node.id, community.id),
            )
        return community
