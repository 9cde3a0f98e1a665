"""Validate dependency references across a task document.

Three defect kinds are reported:

``missing``
    a dependency does not resolve (or, in strict-sibling mode, is not a sibling
    subtask);
``self``
    a node depends on itself;
``circular``
    a node lies on a dependency cycle.  Every member of a cycle gets its own
    issue, so a three-node cycle yields three issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from .errors import ErrorCode, TaskGraphError
from .graph import DependencyGraph
from .ids import NodeId, SubtaskRef, TaskRef
from .store import TaskStore


class IssueType(str, Enum):
    MISSING = "missing"
    SELF = "self"
    CIRCULAR = "circular"


@dataclass(frozen=True)
class Issue:
    kind: IssueType
    node_id: NodeId
    message: str
    dependency_id: Optional[NodeId] = None
    cycle: tuple[NodeId, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        text = f"[{self.kind.value.upper()}] {self.node_id}: {self.message}"
        if self.dependency_id is not None:
            text += f" (dependency: {self.dependency_id})"
        return text

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.kind.value,
            "taskId": str(self.node_id),
            "message": self.message,
        }
        if self.dependency_id is not None:
            data["dependencyId"] = str(self.dependency_id)
        if self.cycle:
            data["cycle"] = [str(n) for n in self.cycle]
        return data


@dataclass(frozen=True)
class AllNodes:
    """General validation: dependencies may point anywhere in the document."""


@dataclass(frozen=True)
class SiblingsOf:
    """Strict-sibling validation of one parent's freshly created subtasks.

    A bare integer dependency ``n`` on subtask ``p.x`` names sibling ``p.n``.
    """

    parent_id: int


Scope = Union[AllNodes, SiblingsOf]


def _node_kind(node_id: NodeId) -> str:
    return "Subtask" if isinstance(node_id, SubtaskRef) else "Task"


def _check_node(
    node_id: NodeId,
    dependencies: list[NodeId],
    allowed: Any,
    missing_message: str,
    graph: DependencyGraph,
    members: set[NodeId],
) -> list[Issue]:
    issues: list[Issue] = []
    for dep in dependencies:
        if dep == node_id:
            issues.append(Issue(IssueType.SELF, node_id, f"{_node_kind(node_id)} cannot depend on itself.", dep))
        elif not allowed(dep):
            issues.append(Issue(IssueType.MISSING, node_id, missing_message.format(dep=dep), dep))
    if node_id in members:
        cycle = graph.find_cycle_containing(node_id) or ()
        path = " -> ".join(map(str, cycle))
        issues.append(
            Issue(
                IssueType.CIRCULAR,
                node_id,
                f"{_node_kind(node_id)} is part of a circular dependency: {path}",
                cycle=tuple(cycle),
            )
        )
    return issues


def _validate_all(store: TaskStore) -> list[Issue]:
    graph = DependencyGraph.from_store(store)
    members = graph.cycle_members()
    issues: list[Issue] = []
    for node_id, node in store.iter_nodes():
        issues.extend(
            _check_node(node_id, node.dependencies, store.exists, "Dependency '{dep}' does not exist.", graph, members)
        )
    return issues


def _validate_siblings(store: TaskStore, parent_id: int) -> list[Issue]:
    parent = store.get_task(parent_id)
    if parent is None:
        raise TaskGraphError(ErrorCode.NOT_FOUND, f"Task {parent_id} not found")

    # Freshly created subtasks name their siblings by bare local id.
    deps = {
        SubtaskRef(parent_id, s.id): [SubtaskRef(parent_id, d.id) if isinstance(d, TaskRef) else d for d in s.dependencies]
        for s in parent.subtasks
    }
    graph = DependencyGraph.from_edges(deps)
    members = graph.cycle_members()
    message = "Subtask dependency '{dep}' must be another subtask of task %d." % parent_id
    issues: list[Issue] = []
    for sid, sid_deps in deps.items():
        issues.extend(_check_node(sid, sid_deps, deps.__contains__, message, graph, members))
    return issues


def validate(store: TaskStore, scope: Optional[Scope] = None) -> list[Issue]:
    """Return every dependency defect in ``scope`` (the whole document by default)."""
    if scope is None or isinstance(scope, AllNodes):
        return _validate_all(store)
    if isinstance(scope, SiblingsOf):
        return _validate_siblings(store, scope.parent_id)
    raise TypeError(f"Unsupported validation scope: {scope!r}")
