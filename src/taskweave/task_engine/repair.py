"""Edge mutations and repair passes that keep the dependency graph healthy.

The passes are idempotent and meant to run in order:

1. :func:`deduplicate`
2. :func:`cleanup_containment_edges`
3. :func:`enforce_progress`

:func:`validate_and_fix` runs all three and re-validates.
:func:`fix_dependencies` is separate and only runs when asked for: it deletes
edges the validator flags as ``missing`` or ``self``.  Cycles are reported and
left alone because no edge of a cycle is the canonical one to drop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from loguru import logger

from . import ids
from .errors import ErrorCode, TaskGraphError
from .graph import DependencyGraph
from .ids import NodeId, RawId, SubtaskRef
from .store import TaskStore
from .validator import Issue, IssueType, validate


@dataclass
class EdgeChange:
    node_id: NodeId
    dependency_id: NodeId
    changed: bool
    warning: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": str(self.node_id),
            "dependencyId": str(self.dependency_id),
            "changed": self.changed,
        }


@dataclass
class FixReport:
    removed: list[Issue] = field(default_factory=list)
    unresolved: list[Issue] = field(default_factory=list)
    remaining: list[Issue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.remaining

    def to_dict(self) -> dict[str, Any]:
        return {
            "removed": [i.to_dict() for i in self.removed],
            "unresolved": [i.to_dict() for i in self.unresolved],
            "remaining": [i.to_dict() for i in self.remaining],
            "clean": self.clean,
        }


@dataclass
class RepairReport:
    deduplicated: int = 0
    containment_removed: int = 0
    progress_fixed: list[SubtaskRef] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    remaining: list[Issue] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.remaining

    def to_dict(self) -> dict[str, Any]:
        return {
            "deduplicated": self.deduplicated,
            "containmentRemoved": self.containment_removed,
            "progressFixed": [str(s) for s in self.progress_fixed],
            "remaining": [i.to_dict() for i in self.remaining],
            "clean": self.clean,
        }


# ---------------------------------------------------------------------------
# Edge operations
# ---------------------------------------------------------------------------

def _takes_last_independent_subtask(store: TaskStore, node_id: NodeId) -> bool:
    if not isinstance(node_id, SubtaskRef):
        return False
    parent = store.get_task(node_id.parent_id)
    if parent is None:
        return False
    independent = [s.id for s in parent.subtasks if not s.dependencies]
    return independent == [node_id.local_id]


def add_dependency(
    store: TaskStore,
    task_id: Union[NodeId, RawId],
    dependency_id: Union[NodeId, RawId],
) -> EdgeChange:
    """Make ``task_id`` depend on ``dependency_id``.

    Raises :class:`TaskGraphError` (``NOT_FOUND``, ``SELF_DEPENDENCY``,
    ``CIRCULAR_DEPENDENCY`` or ``NO_INDEPENDENT_SUBTASK``) before touching the
    store.  An edge that already exists is a no-op with a warning.
    """
    node_id = ids.parse(task_id)
    dep_id = ids.parse(dependency_id)
    logger.info("Adding dependency {} to {}", dep_id, node_id)

    node = store.require(node_id)
    if not store.exists(dep_id):
        raise TaskGraphError(ErrorCode.NOT_FOUND, f"Dependency target {dep_id} does not exist")
    if node_id == dep_id:
        raise TaskGraphError(ErrorCode.SELF_DEPENDENCY, f"{node_id} cannot depend on itself")
    if dep_id in node.dependencies:
        warning = f"Dependency {dep_id} already exists in {node_id}"
        logger.warning(warning)
        return EdgeChange(node_id, dep_id, changed=False, warning=warning)

    graph = DependencyGraph.from_store(store)
    if graph.would_create_cycle(node_id, dep_id):
        edges = dict(graph.edges)
        edges[node_id] = edges.get(node_id, []) + [dep_id]
        cycle = DependencyGraph(edges).find_cycle_containing(node_id) or [node_id, dep_id, node_id]
        raise TaskGraphError(
            ErrorCode.CIRCULAR_DEPENDENCY,
            f"Adding {dep_id} to {node_id} would create a circular dependency: "
            + " -> ".join(map(str, cycle)),
        )
    if _takes_last_independent_subtask(store, node_id):
        raise TaskGraphError(
            ErrorCode.NO_INDEPENDENT_SUBTASK,
            f"{node_id} is the only subtask of task {node_id.parent_id} without dependencies",
        )

    store.add_edge(node_id, dep_id)
    logger.success("Added dependency {} to {}", dep_id, node_id)
    return EdgeChange(node_id, dep_id, changed=True)


def remove_dependency(
    store: TaskStore,
    task_id: Union[NodeId, RawId],
    dependency_id: Union[NodeId, RawId],
) -> EdgeChange:
    node_id = ids.parse(task_id)
    dep_id = ids.parse(dependency_id)
    logger.info("Removing dependency {} from {}", dep_id, node_id)

    if not store.remove_edge(node_id, dep_id):
        warning = f"Dependency {dep_id} not found in {node_id}"
        logger.warning(warning)
        return EdgeChange(node_id, dep_id, changed=False, warning=warning)
    logger.success("Removed dependency {} from {}", dep_id, node_id)
    return EdgeChange(node_id, dep_id, changed=True)


# ---------------------------------------------------------------------------
# Repair passes
# ---------------------------------------------------------------------------

def deduplicate(store: TaskStore) -> int:
    """Collapse every dependency list to a set, keeping first-seen order."""
    changed = 0
    for node_id, node in store.iter_nodes():
        deduped = ids.unique(node.dependencies)
        if len(deduped) != len(node.dependencies):
            logger.debug("Removed {} duplicate dependencies from {}", len(node.dependencies) - len(deduped), node_id)
            node.dependencies = deduped
            changed += 1
    if changed:
        store.dirty = True
    return changed


def cleanup_containment_edges(store: TaskStore) -> int:
    """Drop dependencies a task declares on its own subtasks."""
    removed = 0
    for task in store.tasks:
        own = {SubtaskRef(task.id, s.id) for s in task.subtasks}
        kept = [d for d in task.dependencies if d not in own]
        if len(kept) != len(task.dependencies):
            removed += len(task.dependencies) - len(kept)
            logger.debug("Removed containment edges from task {}", task.id)
            task.dependencies = kept
    if removed:
        store.dirty = True
    return removed


def enforce_progress(store: TaskStore, apply: bool = True) -> tuple[list[SubtaskRef], list[str]]:
    """Make sure every parent has at least one subtask without dependencies.

    When no subtask of a parent is independent, the first subtask's
    dependencies are cleared.  With ``apply=False`` the offending parents are
    only reported.  Returns ``(changed_subtasks, warnings)``.
    """
    changed: list[SubtaskRef] = []
    warnings: list[str] = []
    for task in store.tasks:
        if not task.subtasks or any(not s.dependencies for s in task.subtasks):
            continue
        first = SubtaskRef(task.id, task.subtasks[0].id)
        if apply:
            task.subtasks[0].dependencies = []
            changed.append(first)
            store.dirty = True
            message = f"No independent subtask found for task {task.id}; cleared dependencies of subtask {first}"
        else:
            message = f"No independent subtask found for task {task.id}; subtask {first} left unchanged"
        logger.warning(message)
        warnings.append(message)
    return changed, warnings


def fix_dependencies(store: TaskStore) -> FixReport:
    """Remove ``missing`` and ``self`` edges; report cycles without touching them."""
    logger.info("Attempting to automatically fix dependency issues...")
    report = FixReport()
    issues = validate(store)
    if not issues:
        logger.success("No dependency issues to fix")
        return report

    for issue in issues:
        if issue.kind == IssueType.CIRCULAR:
            report.unresolved.append(issue)
            continue
        assert issue.dependency_id is not None
        if store.remove_edge(issue.node_id, issue.dependency_id):
            report.removed.append(issue)
            logger.info("Removed {} dependency {} from {}", issue.kind.value, issue.dependency_id, issue.node_id)

    if report.unresolved:
        message = "Circular dependencies detected; these must be resolved manually"
        logger.warning(message)
        report.warnings.append(message)
        for issue in report.unresolved:
            logger.warning("  - {}", issue)

    report.remaining = validate(store)
    if report.clean:
        logger.success("Dependency issues fixed")
    else:
        logger.warning("{} dependency issue(s) remain after fixing", len(report.remaining))
    return report


def validate_and_fix(store: TaskStore, enforce: bool = True) -> RepairReport:
    """Run the deduplicate, containment, and progress passes, then re-validate."""
    report = RepairReport()
    report.deduplicated = deduplicate(store)
    report.containment_removed = cleanup_containment_edges(store)
    report.progress_fixed, report.warnings = enforce_progress(store, apply=enforce)

    report.remaining = validate(store)
    if report.remaining:
        logger.warning("Some dependency issues remain after automatic fixing:")
        for issue in report.remaining:
            logger.warning("- {}", issue)
    else:
        logger.success("All dependency issues resolved")
    return report


__all__ = [
    "EdgeChange",
    "FixReport",
    "RepairReport",
    "add_dependency",
    "remove_dependency",
    "deduplicate",
    "cleanup_containment_edges",
    "enforce_progress",
    "fix_dependencies",
    "validate_and_fix",
]
