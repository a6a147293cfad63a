"""Dependency graph utilities."""

from __future__ import annotations

import heapq
import logging
from typing import TYPE_CHECKING

from hetzner_provisioner.engine.errors import (
    DanglingReferenceError,
    DependencyCycleError,
    DuplicateResourceError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from hetzner_provisioner.resources.base import ResourceDescriptor

logger = logging.getLogger(__name__)


class DependencyGraph:
    """A directed graph where nodes depend on other nodes."""

    def __init__(self, nodes: Iterable[str], dependencies: Mapping[str, Iterable[str]]) -> None:
        self._nodes = set(nodes)
        self._deps: dict[str, set[str]] = {n: set(dependencies.get(n, [])) for n in self._nodes}
        self._dependents: dict[str, set[str]] = {n: set() for n in self._nodes}

        dangling = sorted(
            (node, dep) for node, deps in self._deps.items() for dep in deps if dep not in self._nodes
        )
        if dangling:
            raise DanglingReferenceError(dangling)

        for node, deps in self._deps.items():
            for dep in deps:
                self._dependents[dep].add(node)

    def dependencies(self, node: str) -> list[str]:
        return sorted(self._deps[node])

    def dependents(self, node: str) -> list[str]:
        return sorted(self._dependents[node])

    def descendants(self, node: str) -> set[str]:
        """All nodes that depend on *node*, directly or transitively."""
        seen: set[str] = set()
        stack = list(self._dependents[node])
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._dependents[current])
        return seen

    def topological_order(self) -> list[str]:
        """Return deterministic topo order (lexicographic tie-break)."""
        indegree = {n: len(deps) for n, deps in self._deps.items()}
        ready = [n for n, deg in indegree.items() if deg == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for child in sorted(self._dependents[node]):
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, child)

        if len(order) != len(self._nodes):
            raise DependencyCycleError(self._cycle_members(self._nodes - set(order)))

        return order

    def _cycle_members(self, remaining: set[str]) -> list[str]:
        """Nodes of *remaining* that can reach themselves.

        Kahn's algorithm leaves both cycle members and their downstream
        nodes unsorted; only the former are reported.
        """
        members: list[str] = []
        for start in sorted(remaining):
            stack = [d for d in self._deps[start] if d in remaining]
            seen: set[str] = set()
            while stack:
                current = stack.pop()
                if current == start:
                    members.append(start)
                    break
                if current in seen:
                    continue
                seen.add(current)
                stack.extend(d for d in self._deps[current] if d in remaining)
        return members


class ResourceGraph:
    """Validated descriptor set with a deterministic creation order."""

    def __init__(self, descriptors: Mapping[str, ResourceDescriptor], graph: DependencyGraph) -> None:
        self._descriptors = dict(descriptors)
        self._graph = graph
        self._order = graph.topological_order()

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._descriptors

    def __getitem__(self, resource_id: str) -> ResourceDescriptor:
        return self._descriptors[resource_id]

    @property
    def order(self) -> list[str]:
        return list(self._order)

    def reverse_order(self) -> list[str]:
        return list(reversed(self._order))

    def dependencies(self, resource_id: str) -> list[str]:
        return self._graph.dependencies(resource_id)

    def dependents(self, resource_id: str) -> list[str]:
        return self._graph.dependents(resource_id)

    def descendants(self, resource_id: str) -> set[str]:
        return self._graph.descendants(resource_id)


def build_graph(descriptors: Sequence[ResourceDescriptor]) -> ResourceGraph:
    """Build the dependency graph for a descriptor set.

    Edges come from ``depends_on`` and from every ``Ref`` in the inputs.

    Raises:
        DuplicateResourceError: Two descriptors share an id.
        DanglingReferenceError: A dependency names an id outside the set.
        DependencyCycleError: No topological order exists.
    """
    by_id: dict[str, ResourceDescriptor] = {}
    for d in descriptors:
        if d.id in by_id:
            raise DuplicateResourceError(d.id)
        by_id[d.id] = d

    graph = DependencyGraph(by_id, {rid: d.dependencies() for rid, d in by_id.items()})
    resource_graph = ResourceGraph(by_id, graph)
    logger.debug("Execution order: %s", ", ".join(resource_graph.order))
    return resource_graph
