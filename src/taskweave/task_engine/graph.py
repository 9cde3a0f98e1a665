"""Dependency graph and cycle detection.

The graph is a snapshot of a :class:`~taskweave.task_engine.store.TaskStore`:
nodes are every task and subtask, edges point from a node to each dependency
that resolves.  Dangling edges are left out here and reported by the
validator instead.  Rebuild the graph after mutating the store.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable, Optional

from loguru import logger

from . import ids
from .ids import NodeId
from .store import TaskStore

# DFS colours
_WHITE, _GRAY, _BLACK = 0, 1, 2


class DependencyGraph:
    """Adjacency view of declared dependencies: ``{node: [dependency, ...]}``."""

    def __init__(self, edges: dict[NodeId, list[NodeId]]) -> None:
        self.edges = edges

    @classmethod
    def from_store(cls, store: TaskStore) -> "DependencyGraph":
        known = set(store.node_ids())
        edges: dict[NodeId, list[NodeId]] = {}
        for node_id, node in store.iter_nodes():
            edges[node_id] = [d for d in ids.unique(node.dependencies) if d in known]
        return cls(edges)

    @classmethod
    def from_edges(cls, edges: dict[NodeId, Iterable[NodeId]]) -> "DependencyGraph":
        """Build a graph restricted to the keys of ``edges``."""
        known = set(edges)
        return cls({n: [d for d in ids.unique(deps) if d in known] for n, deps in edges.items()})

    @property
    def nodes(self) -> list[NodeId]:
        return list(self.edges)

    def dependencies(self, node_id: NodeId) -> list[NodeId]:
        return self.edges.get(node_id, [])

    # ------------------------------------------------------------------
    # Reachability
    # ------------------------------------------------------------------

    def depends_on(self, node_id: NodeId, target: NodeId) -> bool:
        """Return True if ``target`` is reachable from ``node_id`` through dependency edges."""
        visited: set[NodeId] = set()
        stack = list(self.dependencies(node_id))
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in visited:
                continue
            visited.add(current)
            stack.extend(self.dependencies(current))
        return False

    def would_create_cycle(self, from_id: NodeId, to_id: NodeId) -> bool:
        """Return True if adding ``from_id -> to_id`` would close a cycle.

        Walks from ``to_id`` along existing dependency edges with a single
        visited set, so shared ancestors in diamond-shaped graphs are expanded
        once.  The candidate edge closes a cycle exactly when the walk gets
        back to ``from_id``.
        """
        if from_id == to_id:
            return True
        return self.depends_on(to_id, from_id)

    # ------------------------------------------------------------------
    # Cycle witnesses
    # ------------------------------------------------------------------

    def find_cycle_containing(self, node_id: NodeId) -> Optional[list[NodeId]]:
        """Return one cycle through ``node_id`` as ``[node_id, ..., node_id]``.

        Uses white/gray/black marking: gray nodes are on the current path,
        black nodes are fully explored and cannot lead back to ``node_id``.
        """
        if node_id not in self.edges:
            return None
        colour: dict[NodeId, int] = {node_id: _GRAY}
        path: list[NodeId] = [node_id]
        stack = [iter(self.dependencies(node_id))]
        while stack:
            advanced = False
            for dep in stack[-1]:
                if dep == node_id:
                    return path + [node_id]
                if colour.get(dep, _WHITE) != _WHITE:
                    continue
                colour[dep] = _GRAY
                path.append(dep)
                stack.append(iter(self.dependencies(dep)))
                advanced = True
                break
            if not advanced:
                colour[path.pop()] = _BLACK
                stack.pop()
        return None

    def cycle_members(self) -> set[NodeId]:
        """Return every node that lies on a cycle of two or more nodes.

        Tarjan's strongly connected components, iterative so deep chains do not
        hit the recursion limit.
        """
        index: dict[NodeId, int] = {}
        lowlink: dict[NodeId, int] = {}
        on_stack: set[NodeId] = set()
        scc_stack: list[NodeId] = []
        members: set[NodeId] = set()
        counter = 0

        for root in self.edges:
            if root in index:
                continue
            work: list[tuple[NodeId, int]] = [(root, 0)]
            while work:
                node, pos = work.pop()
                if pos == 0:
                    index[node] = lowlink[node] = counter
                    counter += 1
                    scc_stack.append(node)
                    on_stack.add(node)
                deps = self.dependencies(node)
                if pos < len(deps):
                    work.append((node, pos + 1))
                    dep = deps[pos]
                    if dep not in index:
                        work.append((dep, 0))
                    elif dep in on_stack:
                        lowlink[node] = min(lowlink[node], index[dep])
                    continue
                if lowlink[node] == index[node]:
                    component: list[NodeId] = []
                    while True:
                        top = scc_stack.pop()
                        on_stack.discard(top)
                        component.append(top)
                        if top == node:
                            break
                    if len(component) > 1:
                        members.update(component)
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])
        return members

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def execution_order(self) -> list[list[NodeId]]:
        """Topological sort into batches of independent nodes (Kahn's algorithm).

        Each batch only depends on nodes in earlier batches.  Nodes on or behind
        a cycle never reach in-degree zero and are left out.
        """
        in_degree: dict[NodeId, int] = {n: len(deps) for n, deps in self.edges.items()}
        dependents: dict[NodeId, list[NodeId]] = {n: [] for n in self.edges}
        for node, deps in self.edges.items():
            for dep in deps:
                dependents[dep].append(node)

        batches: list[list[NodeId]] = []
        queue = deque(ids.sort_ids(n for n, deg in in_degree.items() if deg == 0))
        while queue:
            batch = list(queue)
            batches.append(batch)
            queue.clear()
            ready: list[NodeId] = []
            for node in batch:
                for dependent in dependents[node]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        ready.append(dependent)
            queue.extend(ids.sort_ids(ready))

        remaining = [n for n, deg in in_degree.items() if deg > 0]
        if remaining:
            logger.warning("Dependency cycle blocks ordering of: {}", ", ".join(map(str, ids.sort_ids(remaining))))
        return batches
