"""Pick the next unit of work.

Subtasks of in-progress parents come first, so work that has been started gets
finished; otherwise the best top-level task is returned.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from . import ids
from .ids import NodeId, SubtaskRef, TaskRef
from .model import Node, TaskPriority, TaskStatus
from .store import TaskStore


@dataclass
class WorkItem:
    id: str
    title: str
    status: TaskStatus
    priority: TaskPriority
    dependencies: list[str] = field(default_factory=list)
    parent_id: Optional[int] = None

    @property
    def is_subtask(self) -> bool:
        return self.parent_id is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority.value,
            "dependencies": list(self.dependencies),
        }
        if self.parent_id is not None:
            data["parentId"] = self.parent_id
        return data


def _unresolved(store: TaskStore, node: Node) -> int:
    count = 0
    for dep in node.dependencies:
        target = store.resolve(dep)
        if target is None or target.status != TaskStatus.DONE:
            count += 1
    return count


def is_eligible(store: TaskStore, node: Node) -> bool:
    """Not done, and every dependency resolves to a done node."""
    return node.status != TaskStatus.DONE and _unresolved(store, node) == 0


def _rank(candidate: tuple[NodeId, Node, TaskPriority], store: TaskStore) -> tuple[Any, ...]:
    node_id, node, priority = candidate
    return (priority.sort_key, _unresolved(store, node), ids.sort_key(node_id))


def find_next(store: TaskStore) -> Optional[WorkItem]:
    """Return the best eligible work item, or ``None`` when everything is done or blocked."""
    subtasks: list[tuple[NodeId, Node, TaskPriority]] = []
    tasks: list[tuple[NodeId, Node, TaskPriority]] = []
    for task in store.tasks:
        if is_eligible(store, task):
            tasks.append((TaskRef(task.id), task, task.priority))
        if task.status != TaskStatus.IN_PROGRESS:
            continue
        for subtask in task.subtasks:
            if is_eligible(store, subtask):
                subtasks.append((SubtaskRef(task.id, subtask.id), subtask, subtask.priority or task.priority))

    pool = subtasks or tasks
    if not pool:
        return None
    node_id, node, priority = min(pool, key=lambda c: _rank(c, store))
    return WorkItem(
        id=ids.format_id(node_id),
        title=node.title,
        status=node.status,
        priority=priority,
        dependencies=[ids.format_id(d) for d in node.dependencies],
        parent_id=node_id.parent_id if isinstance(node_id, SubtaskRef) else None,
    )
