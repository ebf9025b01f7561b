"""
Resource graph: an arena of declared nodes plus an explicit dependency edge list.

A node is a provider-agnostic declaration: a kind (e.g. "method"), a unique
logical name, and the properties the provider resource will be created with.
Cross references between nodes are written as Ref (attribute of another
node) or Concat (string built from refs and literals) inside the properties,
and every ordering constraint is an explicit edge. Nothing is ordered by
accident of construction: topological_order() is what the realizer walks.
"""

import heapq
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Ref:
    """Reference to an attribute of another node (``id`` unless stated)."""

    node: str
    attribute: str = "id"


@dataclass(frozen=True)
class Concat:
    """String concatenation of literals and Refs, resolved at realization time."""

    parts: tuple[Any, ...]


@dataclass(eq=False)
class Node:
    """
    One declared resource, compared and hashed by identity.

    Attributes:
        index: Arena position; also the tie-breaker for deterministic order.
        kind: Logical resource kind (e.g. "resource", "method", "stage").
        name: Unique logical name; becomes the provider resource name.
        props: Properties passed to the provider resource.
        parent: Tree parent for path nodes and attachment point for
            methods/integrations (the API root or a path node).
        meta: Planner bookkeeping that is not sent to the provider
            (e.g. the cumulative path of a path node).
    """

    index: int
    kind: str
    name: str
    props: dict[str, Any] = field(default_factory=dict)
    parent: "Node | None" = None
    meta: dict[str, Any] = field(default_factory=dict)


class GraphError(ValueError):
    """The graph itself is inconsistent (duplicate name, unknown node, cycle)."""


class ResourceGraph:
    """Arena of nodes keyed by logical name, with explicit dependency edges."""

    def __init__(self) -> None:
        self._nodes: list[Node] = []
        self._by_name: dict[str, Node] = {}
        # node index -> indexes it depends on, in declaration order.
        self._edges: dict[int, list[int]] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def add(
        self,
        kind: str,
        name: str,
        props: dict[str, Any] | None = None,
        *,
        parent: Node | None = None,
        depends_on: Iterable[Node] = (),
        meta: dict[str, Any] | None = None,
    ) -> Node:
        """
        Declare a node.

        An edge to ``parent`` is added implicitly; ``depends_on`` adds more.

        Raises:
            GraphError: If ``name`` is already declared or a dependency is
                not part of this graph.
        """
        if name in self._by_name:
            raise GraphError(f"node {name!r} is already declared")
        node = Node(
            index=len(self._nodes),
            kind=kind,
            name=name,
            props=dict(props or {}),
            parent=parent,
            meta=dict(meta or {}),
        )
        self._nodes.append(node)
        self._by_name[name] = node
        self._edges[node.index] = []
        if parent is not None:
            self.add_edge(parent, node)
        for dependency in depends_on:
            self.add_edge(dependency, node)
        return node

    def add_edge(self, dependency: Node, dependent: Node) -> None:
        """Declare that ``dependent`` must be created after ``dependency``."""
        for node in (dependency, dependent):
            if self._by_name.get(node.name) is not node:
                raise GraphError(f"node {node.name!r} is not part of this graph")
        edges = self._edges[dependent.index]
        if dependency.index not in edges:
            edges.append(dependency.index)

    def get(self, name: str) -> Node:
        try:
            return self._by_name[name]
        except KeyError:
            raise GraphError(f"unknown node {name!r}") from None

    def of_kind(self, kind: str) -> list[Node]:
        return [node for node in self._nodes if node.kind == kind]

    def dependencies(self, node: Node) -> list[Node]:
        """Direct dependencies of ``node``."""
        return [self._nodes[index] for index in self._edges[node.index]]

    def topological_order(self) -> list[Node]:
        """
        Return nodes so that every node follows all of its dependencies.

        Ties are broken by declaration order, so the result is deterministic.

        Raises:
            GraphError: If the edges contain a cycle.
        """
        pending = {index: len(deps) for index, deps in self._edges.items()}
        dependents: dict[int, list[int]] = {index: [] for index in self._edges}
        for dependent, dependencies in self._edges.items():
            for dependency in dependencies:
                dependents[dependency].append(dependent)

        ready = [index for index, count in pending.items() if count == 0]
        heapq.heapify(ready)
        order: list[Node] = []
        while ready:
            index = heapq.heappop(ready)
            order.append(self._nodes[index])
            for dependent in dependents[index]:
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(order) != len(self._nodes):
            stuck = sorted(self._nodes[index].name for index, count in pending.items() if count)
            raise GraphError(f"dependency cycle between {', '.join(stuck)}")
        return order
