"""In-memory arena for propagation nodes and edges.

Nodes are keyed by node id and edges are kept in an append-only list with
index maps by source, target, content item and event id. All traversals are
breadth-first with a visited set and a hard hop limit, so they terminate on
graphs that contain cycles.
"""

import logging
from collections import defaultdict, deque
from typing import Any, Iterable

from .schemas import PropagationEdge, PropagationNode

logger = logging.getLogger(__name__)


class GraphStore:
    """Node/edge storage and bounded traversals for the propagation graph."""

    def __init__(self) -> None:
        self._nodes: dict[str, PropagationNode] = {}
        self._edges: list[PropagationEdge] = []
        self._by_event: dict[str, int] = {}
        self._outgoing: defaultdict[str, list[int]] = defaultdict(list)
        self._incoming: defaultdict[str, list[int]] = defaultdict(list)
        self._by_content: defaultdict[str, list[int]] = defaultdict(list)

        # Derived-metric indexes
        self._targets: defaultdict[str, set[str]] = defaultdict(set)
        self._sent: defaultdict[str, set[str]] = defaultdict(set)
        self._received: defaultdict[str, set[str]] = defaultdict(set)

    # ------------------------------------------------------------------
    # Node operations
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> PropagationNode | None:
        """Get a node by ID, or None if not found."""
        return self._nodes.get(node_id)

    def put_node(self, node: PropagationNode) -> PropagationNode:
        """Insert or replace a node."""
        self._nodes[node.node_id] = node
        return node

    def node_count(self) -> int:
        return len(self._nodes)

    def nodes(self) -> list[PropagationNode]:
        return list(self._nodes.values())

    # ------------------------------------------------------------------
    # Edge operations
    # ------------------------------------------------------------------

    def has_event(self, event_id: str) -> bool:
        return event_id in self._by_event

    def add_edge(self, edge: PropagationEdge) -> None:
        """Append an edge. Event ids are unique; edges are never replaced."""
        if edge.event_id in self._by_event:
            raise ValueError(f"event {edge.event_id!r} already recorded")

        index = len(self._edges)
        self._edges.append(edge)
        self._by_event[edge.event_id] = index
        self._outgoing[edge.source].append(index)
        self._by_content[edge.content_id].append(index)
        self._sent[edge.source].add(edge.content_id)

        if edge.target is not None:
            self._incoming[edge.target].append(index)
            self._received[edge.target].add(edge.content_id)
            if edge.target != edge.source:
                self._targets[edge.source].add(edge.target)

        logger.debug(
            "Recorded edge %s: %s -> %s (%s, weight=%.4f)",
            edge.event_id,
            edge.source,
            edge.target,
            edge.content_id,
            edge.weight,
        )

    def get_edge(self, event_id: str) -> PropagationEdge | None:
        index = self._by_event.get(event_id)
        return self._edges[index] if index is not None else None

    def edge_count(self) -> int:
        return len(self._edges)

    def edges(self) -> list[PropagationEdge]:
        return list(self._edges)

    def edges_for_content(self, content_id: str) -> list[PropagationEdge]:
        """All edges recorded for a content item, in insertion order."""
        return [self._edges[i] for i in self._by_content.get(content_id, ())]

    def content_ids(self) -> list[str]:
        return list(self._by_content)

    def outgoing(
        self, node_id: str, content_id: str | None = None
    ) -> list[PropagationEdge]:
        return self._select(self._outgoing.get(node_id, ()), content_id)

    def incoming(
        self, node_id: str, content_id: str | None = None
    ) -> list[PropagationEdge]:
        return self._select(self._incoming.get(node_id, ()), content_id)

    def _select(
        self, indexes: Iterable[int], content_id: str | None
    ) -> list[PropagationEdge]:
        edges = [self._edges[i] for i in indexes]
        if content_id is not None:
            edges = [e for e in edges if e.content_id == content_id]
        return edges

    # ------------------------------------------------------------------
    # Derived-metric inputs
    # ------------------------------------------------------------------

    def distinct_targets(self, node_id: str) -> set[str]:
        """Identities this node has propagated content to."""
        return set(self._targets.get(node_id, ()))

    def sent_content(self, node_id: str) -> set[str]:
        """Content items this node has propagated."""
        return set(self._sent.get(node_id, ()))

    def received_content(self, node_id: str) -> set[str]:
        """Content items propagated to this node."""
        return set(self._received.get(node_id, ()))

    # ------------------------------------------------------------------
    # Traversals
    # ------------------------------------------------------------------

    def get_downstream(
        self,
        node_id: str,
        max_depth: int,
        content_id: str | None = None,
    ) -> list[tuple[str, int]]:
        """Nodes reachable by following outgoing edges.

        Returns:
            List of (node_id, depth) tuples at their shallowest depth.
        """
        return self._bfs(node_id, max_depth, content_id, downstream=True)

    def get_upstream(
        self,
        node_id: str,
        max_depth: int,
        content_id: str | None = None,
    ) -> list[tuple[str, int]]:
        """Nodes that reach this node via outgoing edges.

        Returns:
            List of (node_id, depth) tuples at their shallowest depth.
        """
        return self._bfs(node_id, max_depth, content_id, downstream=False)

    def _bfs(
        self,
        start: str,
        max_depth: int,
        content_id: str | None,
        *,
        downstream: bool,
    ) -> list[tuple[str, int]]:
        visited = {start}
        result: list[tuple[str, int]] = []
        frontier = deque([(start, 0)])

        while frontier:
            node_id, depth = frontier.popleft()
            if depth >= max_depth:
                continue
            if downstream:
                neighbours = [e.target for e in self.outgoing(node_id, content_id)]
            else:
                neighbours = [e.source for e in self.incoming(node_id, content_id)]
            for neighbour in neighbours:
                if neighbour is None or neighbour in visited:
                    continue
                visited.add(neighbour)
                result.append((neighbour, depth + 1))
                frontier.append((neighbour, depth + 1))

        return result

    def find_path(
        self,
        source: str,
        target: str,
        max_depth: int,
        content_id: str | None = None,
    ) -> list[str] | None:
        """Shortest directed path of at most max_depth hops, or None."""
        if source == target:
            return [source]

        parents: dict[str, str] = {}
        visited = {source}
        frontier = deque([(source, 0)])

        while frontier:
            node_id, depth = frontier.popleft()
            if depth >= max_depth:
                continue
            for edge in self.outgoing(node_id, content_id):
                nxt = edge.target
                if nxt is None or nxt in visited:
                    continue
                visited.add(nxt)
                parents[nxt] = node_id
                if nxt == target:
                    path = [target]
                    while path[-1] != source:
                        path.append(parents[path[-1]])
                    return list(reversed(path))
                frontier.append((nxt, depth + 1))

        return None

    def get_subgraph(
        self,
        node_id: str,
        depth: int,
        content_id: str | None = None,
    ) -> dict[str, Any]:
        """Local neighbourhood around a node in both directions.

        Returns:
            Dict with "nodes" (node ids) and "edges" (edge dicts).
        """
        members = {node_id}
        members.update(n for n, _ in self.get_downstream(node_id, depth, content_id))
        members.update(n for n, _ in self.get_upstream(node_id, depth, content_id))

        edges = []
        seen: set[str] = set()
        for member in sorted(members):
            for edge in self.outgoing(member, content_id):
                if edge.target in members and edge.event_id not in seen:
                    seen.add(edge.event_id)
                    edges.append({
                        "event_id": edge.event_id,
                        "source": edge.source,
                        "target": edge.target,
                        "content_id": edge.content_id,
                        "weight": edge.weight,
                    })

        return {"nodes": sorted(members), "edges": edges}
