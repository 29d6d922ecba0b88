"""
Dependency derivation for the resource graph.

Edges are never stored on the nodes themselves. They are derived here from
each node's reference fields plus the explicit ordering constraints, so the
same pass serves cycle checks during construction and the final
topological sort.
"""

from __future__ import annotations

import heapq
from collections import deque
from typing import Iterable, Sequence

from infragraph.core.errors import TopologyCycleError
from infragraph.graph.models import (
    EdgeKind,
    GraphEdge,
    OrderingConstraint,
    ResourceNode,
)


def collect_edges(
    nodes: Iterable[ResourceNode],
    constraints: Iterable[OrderingConstraint] = (),
) -> list[GraphEdge]:
    """
    Derive the full edge set of a graph.

    Reference edges come first, in node declaration order, followed by
    ordering constraints in the order they were added. An ordering
    constraint already implied by a reference edge is still reported,
    tagged ``ordering``.

    Args:
        nodes: Declared nodes in declaration order
        constraints: Explicit ordering constraints

    Returns:
        De-duplicated list of edges, each pointing from the node created
        first to the node created after it
    """
    edges: list[GraphEdge] = []
    seen: set[GraphEdge] = set()

    def add(edge: GraphEdge) -> None:
        if edge not in seen:
            seen.add(edge)
            edges.append(edge)

    for node in nodes:
        for ref in node.references():
            add(GraphEdge(source=ref.node_id, target=node.node_id, kind=EdgeKind.REFERENCE))

    for constraint in constraints:
        add(
            GraphEdge(
                source=constraint.before.node_id,
                target=constraint.after.node_id,
                kind=EdgeKind.ORDERING,
            )
        )

    return edges


def build_adjacency(edges: Iterable[GraphEdge]) -> dict[str, list[str]]:
    """Map each node id to the ids created after it."""
    adjacency: dict[str, list[str]] = {}
    for edge in edges:
        successors = adjacency.setdefault(edge.source, [])
        if edge.target not in successors:
            successors.append(edge.target)
    return adjacency


def find_path(adjacency: dict[str, list[str]], start: str, goal: str) -> list[str] | None:
    """
    Breadth-first search for a path from ``start`` to ``goal``.

    Returns:
        Node ids along the path (both ends included), or None
    """
    if start == goal:
        return [start]

    parents: dict[str, str] = {}
    queue: deque[str] = deque([start])
    visited = {start}

    while queue:
        current = queue.popleft()
        for successor in adjacency.get(current, []):
            if successor in visited:
                continue
            parents[successor] = current
            if successor == goal:
                path = [goal]
                while path[-1] != start:
                    path.append(parents[path[-1]])
                return list(reversed(path))
            visited.add(successor)
            queue.append(successor)

    return None


def check_new_edges(
    adjacency: dict[str, list[str]],
    new_edges: Sequence[tuple[str, str]],
) -> None:
    """
    Raise ``TopologyCycleError`` if adding ``new_edges`` would close a cycle.

    Each pair is ``(before, after)``. Edges are added to a copy of
    ``adjacency`` one at a time, so a batch that only cycles with itself is
    caught too. The caller's adjacency is left untouched.
    """
    working = {node_id: list(successors) for node_id, successors in adjacency.items()}

    for before, after in new_edges:
        path = find_path(working, after, before)
        if path is not None:
            cycle = [before, *path] if before != after else [before, after]
            raise TopologyCycleError(
                f"edge {before!r} -> {after!r} would create a cycle",
                cycle=cycle,
            )
        successors = working.setdefault(before, [])
        if after not in successors:
            successors.append(after)


def topological_order(node_ids: Sequence[str], edges: Iterable[GraphEdge]) -> list[str]:
    """
    Stable topological sort (Kahn's algorithm).

    Among nodes whose dependencies are all satisfied, the one declared
    earliest comes first, so independent branches keep declaration order.

    Raises:
        TopologyCycleError: If the edges contain a cycle
    """
    position = {node_id: index for index, node_id in enumerate(node_ids)}
    indegree = {node_id: 0 for node_id in node_ids}
    adjacency = build_adjacency(edges)

    for successors in adjacency.values():
        for successor in successors:
            indegree[successor] = indegree.get(successor, 0) + 1

    ready = [(position[n], n) for n, degree in indegree.items() if degree == 0 and n in position]
    heapq.heapify(ready)
    order: list[str] = []

    while ready:
        _, node_id = heapq.heappop(ready)
        order.append(node_id)
        for successor in adjacency.get(node_id, []):
            indegree[successor] -= 1
            if indegree[successor] == 0 and successor in position:
                heapq.heappush(ready, (position[successor], successor))

    if len(order) != len(node_ids):
        remaining = [n for n in node_ids if n not in set(order)]
        raise TopologyCycleError(
            f"resource graph contains a cycle through {len(remaining)} node(s)",
            cycle=remaining,
        )

    return order


def referrers(nodes: Iterable[ResourceNode]) -> dict[str, list[ResourceNode]]:
    """Map each node id to the nodes that reference it, in declaration order."""
    result: dict[str, list[ResourceNode]] = {}
    for node in nodes:
        for ref in node.references():
            bucket = result.setdefault(ref.node_id, [])
            if not any(existing is node for existing in bucket):
                bucket.append(node)
    return result
