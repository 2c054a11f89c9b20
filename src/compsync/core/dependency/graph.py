"""Component dependency graph and graph algorithms.

A name-level directed graph: one node per component, one edge per entry in
its ``registry_dependencies``. Provides strongly connected components
(cycle membership), transitive dependency computation (BFS), reverse
dependent computation, and a deterministic topological order.

The installer discovers cycles by noticing that a pass made no progress;
this module is what it uses afterwards to decide, per stuck component,
whether it is *on* a cycle or merely *behind* one.
"""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterable

from compsync.core.models import ComponentDescriptor


class ComponentGraph:
    """Directed dependency graph over component names.

    Edges point from a component to each of its registry dependencies.
    Dependencies that are referenced but never added as nodes are kept as
    edge targets, so missing components stay visible to callers.

    Thread safety: This class is NOT thread-safe. External synchronization is
    required for concurrent access.
    """

    def __init__(self) -> None:
        self._edges: dict[str, tuple[str, ...]] = {}

    @classmethod
    def from_descriptors(
        cls, descriptors: Iterable[ComponentDescriptor]
    ) -> ComponentGraph:
        """Build a graph from descriptors' ``registry_dependencies``."""
        graph = cls()
        for descriptor in descriptors:
            graph.add(descriptor.name, descriptor.registry_dependencies)
        return graph

    @property
    def nodes(self) -> set[str]:
        """Return the set of component names added to the graph."""
        return set(self._edges)

    def add(self, name: str, dependencies: Iterable[str] = ()) -> None:
        """Add a node with its dependency edges, replacing any existing entry.

        Args:
            name: Component name.
            dependencies: Names this component depends on.
        """
        self._edges[name] = tuple(dict.fromkeys(dependencies))

    def missing(self) -> set[str]:
        """Return names referenced as dependencies but never added as nodes."""
        referenced = {dep for deps in self._edges.values() for dep in deps}
        return referenced - set(self._edges)

    def strongly_connected_components(self) -> list[list[str]]:
        """Compute strongly connected components with iterative Tarjan.

        Only nodes added to the graph take part; edges to missing nodes are
        ignored. Each component is returned sorted, and the list of
        components is sorted by first member, so output is deterministic.

        Returns:
            List of SCCs, each a sorted list of names.
        """
        index_of: dict[str, int] = {}
        lowlink: dict[str, int] = {}
        on_stack: set[str] = set()
        stack: list[str] = []
        result: list[list[str]] = []
        counter = 0

        for root in sorted(self._edges):
            if root in index_of:
                continue
            work: list[tuple[str, int]] = [(root, 0)]
            while work:
                node, child_i = work.pop()
                if child_i == 0:
                    index_of[node] = lowlink[node] = counter
                    counter += 1
                    stack.append(node)
                    on_stack.add(node)
                children = [d for d in self._edges[node] if d in self._edges]
                recurse = False
                for i in range(child_i, len(children)):
                    child = children[i]
                    if child not in index_of:
                        work.append((node, i + 1))
                        work.append((child, 0))
                        recurse = True
                        break
                    if child in on_stack:
                        lowlink[node] = min(lowlink[node], index_of[child])
                if recurse:
                    continue
                if lowlink[node] == index_of[node]:
                    component: list[str] = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    result.append(sorted(component))
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])

        result.sort(key=lambda c: c[0])
        return result

    def cycles(self) -> list[list[str]]:
        """Return every cycle group: SCCs of size > 1, plus self-loops.

        Returns:
            List of sorted name groups. Empty if the graph is acyclic.
        """
        groups: list[list[str]] = []
        for component in self.strongly_connected_components():
            if len(component) > 1:
                groups.append(component)
            elif component[0] in self._edges.get(component[0], ()):
                groups.append(component)
        return groups

    def transitive_dependencies(self, name: str) -> set[str]:
        """Compute the transitive closure of dependencies for ``name`` (BFS).

        Args:
            name: Root component name.

        Returns:
            Set of names reachable through dependency edges, including
            missing ones. Does NOT include the root itself unless it sits on
            a cycle through itself.
        """
        visited: set[str] = set()
        queue: deque[str] = deque(self._edges.get(name, ()))
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            queue.extend(d for d in self._edges.get(current, ()) if d not in visited)
        return visited

    def dependents(self, names: Iterable[str]) -> set[str]:
        """Compute the reverse transitive closure of ``names``.

        Returns every node that depends, directly or transitively, on any
        of ``names``. The input names themselves are excluded.
        """
        reverse: dict[str, set[str]] = defaultdict(set)
        for node, deps in self._edges.items():
            for dep in deps:
                reverse[dep].add(node)

        sources = set(names)
        affected: set[str] = set()
        queue: deque[str] = deque(sources)
        while queue:
            current = queue.popleft()
            for dependent in reverse.get(current, ()):
                if dependent not in affected and dependent not in sources:
                    affected.add(dependent)
                    queue.append(dependent)
        return affected

    def topological_order(self) -> list[str]:
        """Return a dependency-first order using Kahn's algorithm.

        Ties are broken alphabetically. Nodes that cannot be ordered (cycle
        members and their dependents) are appended at the end, sorted.
        Missing dependencies are treated as already satisfied.
        """
        pending: dict[str, set[str]] = {
            node: {d for d in deps if d in self._edges and d != node}
            for node, deps in self._edges.items()
        }
        self_loops = {n for n, deps in self._edges.items() if n in deps}
        order: list[str] = []
        ready = sorted(n for n, deps in pending.items() if not deps and n not in self_loops)
        while ready:
            node = ready.pop(0)
            order.append(node)
            del pending[node]
            newly_ready = []
            for other, deps in pending.items():
                if node in deps:
                    deps.discard(node)
                    if not deps and other not in self_loops:
                        newly_ready.append(other)
            ready = sorted(ready + newly_ready)
        order.extend(sorted(pending))
        return order
