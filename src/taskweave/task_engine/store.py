"""In-memory task store.

Holds every task and subtask of one document, answers lookups by
:data:`~taskweave.task_engine.ids.NodeId`, and provides the structural
mutation primitives the rest of the engine builds on.  Nothing here reads or
writes files; see :mod:`taskweave.io_utils` for that.
"""

from __future__ import annotations

from typing import Any, Iterator, Optional, Union

from loguru import logger

from ..constants import DOCUMENT_TASKS_KEY
from . import ids
from .errors import ErrorCode, TaskGraphError
from .ids import NodeId, RawId, SubtaskRef, TaskRef
from .model import Node, Subtask, Task, TaskStatus


def _not_found(node_id: NodeId) -> TaskGraphError:
    kind = "Subtask" if isinstance(node_id, SubtaskRef) else "Task"
    return TaskGraphError(ErrorCode.NOT_FOUND, f"{kind} {node_id} not found")


def parse_status(status: Union[TaskStatus, str]) -> TaskStatus:
    try:
        return TaskStatus(status)
    except ValueError:
        valid = [s.value for s in TaskStatus]
        raise TaskGraphError(ErrorCode.INVALID_STATUS, f"Invalid status {status!r}; expected one of {valid}")


class TaskStore:
    """Owns all tasks and subtasks of a loaded document.

    Every mutating method sets :attr:`dirty` so the persistence gateway knows
    whether a save is needed.
    """

    def __init__(self, tasks: Optional[list[Task]] = None, meta: Optional[dict[str, Any]] = None) -> None:
        self.tasks: list[Task] = []
        self.meta: dict[str, Any] = dict(meta or {})
        self.dirty = False
        self._index: dict[int, int] = {}
        for task in tasks or []:
            self._register(task)

    # -- construction ---------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskStore":
        raw_tasks = list(data.get(DOCUMENT_TASKS_KEY) or [])
        meta = {k: v for k, v in data.items() if k != DOCUMENT_TASKS_KEY}
        return cls([Task.from_dict(t) for t in raw_tasks], meta=meta)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {DOCUMENT_TASKS_KEY: [t.to_dict() for t in self.tasks]}
        payload.update(self.meta)
        return payload

    def _register(self, task: Task) -> None:
        if task.id in self._index:
            raise TaskGraphError(ErrorCode.DUPLICATE_ID, f"Task {task.id} already exists")
        seen: set[int] = set()
        for subtask in task.subtasks:
            if subtask.id in seen:
                raise TaskGraphError(
                    ErrorCode.DUPLICATE_ID,
                    f"Subtask {task.id}.{subtask.id} appears more than once",
                )
            seen.add(subtask.id)
        self._index[task.id] = len(self.tasks)
        self.tasks.append(task)

    def _reindex(self) -> None:
        self._index = {t.id: i for i, t in enumerate(self.tasks)}

    # -- lookups --------------------------------------------------------------

    def get_task(self, task_id: int) -> Optional[Task]:
        idx = self._index.get(task_id)
        return self.tasks[idx] if idx is not None else None

    def resolve(self, node_id: Union[NodeId, RawId]) -> Optional[Node]:
        """Return the task or subtask addressed by ``node_id``, or ``None``."""
        node_id = ids.parse(node_id)
        if isinstance(node_id, TaskRef):
            return self.get_task(node_id.id)
        parent = self.get_task(node_id.parent_id)
        if parent is None:
            return None
        return parent.get_subtask(node_id.local_id)

    def require(self, node_id: Union[NodeId, RawId]) -> Node:
        node_id = ids.parse(node_id)
        node = self.resolve(node_id)
        if node is None:
            raise _not_found(node_id)
        return node

    def exists(self, node_id: Union[NodeId, RawId]) -> bool:
        return self.resolve(node_id) is not None

    def dependencies_of(self, node_id: Union[NodeId, RawId]) -> list[NodeId]:
        return list(self.require(node_id).dependencies)

    def iter_nodes(self) -> Iterator[tuple[NodeId, Node]]:
        """Yield ``(node_id, node)`` in document order: each task, then its subtasks."""
        for task in self.tasks:
            yield TaskRef(task.id), task
            for subtask in task.subtasks:
                yield SubtaskRef(task.id, subtask.id), subtask

    def node_ids(self) -> list[NodeId]:
        return [node_id for node_id, _ in self.iter_nodes()]

    def count_dependencies(self) -> int:
        return sum(len(node.dependencies) for _, node in self.iter_nodes())

    def next_task_id(self) -> int:
        return max((t.id for t in self.tasks), default=0) + 1

    def next_subtask_id(self, parent_id: int) -> int:
        parent = self.get_task(parent_id)
        if parent is None:
            raise _not_found(TaskRef(parent_id))
        return max((s.id for s in parent.subtasks), default=0) + 1

    # -- edge primitives ------------------------------------------------------

    def add_edge(self, from_id: Union[NodeId, RawId], to_id: Union[NodeId, RawId]) -> None:
        """Append ``to_id`` to ``from_id``'s dependencies and re-sort them.

        No validation happens here; callers check existence and cycles first.
        """
        to_id = ids.parse(to_id)
        node = self.require(from_id)
        node.dependencies.append(to_id)
        node.dependencies = ids.sort_ids(node.dependencies)
        self.dirty = True

    def remove_edge(self, from_id: Union[NodeId, RawId], to_id: Union[NodeId, RawId]) -> bool:
        """Remove every occurrence of ``to_id``; return False if none existed."""
        to_id = ids.parse(to_id)
        node = self.require(from_id)
        kept = [d for d in node.dependencies if d != to_id]
        if len(kept) == len(node.dependencies):
            return False
        node.dependencies = kept
        self.dirty = True
        return True

    def _rewrite_references(self, old: NodeId, new: Optional[NodeId]) -> int:
        """Point every reference to ``old`` at ``new`` (or drop it when ``new`` is None)."""
        changed = 0
        for _, node in self.iter_nodes():
            if old not in node.dependencies:
                continue
            if new is None:
                node.dependencies = [d for d in node.dependencies if d != old]
            else:
                node.dependencies = ids.sort_ids(ids.unique(new if d == old else d for d in node.dependencies))
            changed += 1
        if changed:
            self.dirty = True
        return changed

    # -- structural mutations -------------------------------------------------

    def add_task(self, task: Task) -> Task:
        self._register(task)
        self.dirty = True
        logger.debug("Registered task {}", task.id)
        return task

    def add_subtask(self, parent_id: int, subtask: Subtask) -> SubtaskRef:
        parent = self.get_task(parent_id)
        if parent is None:
            raise _not_found(TaskRef(parent_id))
        if parent.get_subtask(subtask.id) is not None:
            raise TaskGraphError(ErrorCode.DUPLICATE_ID, f"Subtask {parent_id}.{subtask.id} already exists")
        parent.subtasks.append(subtask)
        self.dirty = True
        logger.debug("Registered subtask {}.{}", parent_id, subtask.id)
        return SubtaskRef(parent_id, subtask.id)

    def remove_node(self, node_id: Union[NodeId, RawId]) -> Node:
        """Delete a task (with its subtasks) or a subtask and purge inbound references."""
        node_id = ids.parse(node_id)
        node = self.require(node_id)
        if isinstance(node_id, TaskRef):
            assert isinstance(node, Task)
            removed = [node_id] + [SubtaskRef(node.id, s.id) for s in node.subtasks]
            self.tasks.pop(self._index[node.id])
            self._reindex()
        else:
            parent = self.get_task(node_id.parent_id)
            assert parent is not None
            parent.subtasks = [s for s in parent.subtasks if s.id != node_id.local_id]
            removed = [node_id]
        for gone in removed:
            self._rewrite_references(gone, None)
        self.dirty = True
        logger.info("Removed {} and purged references to {}", node_id, ", ".join(map(str, removed)))
        return node

    def set_status(self, node_id: Union[NodeId, RawId], status: Union[TaskStatus, str]) -> list[NodeId]:
        """Set a node's status; marking a task done also marks its subtasks done.

        Returns the ids whose status changed.
        """
        target = parse_status(status)
        node_id = ids.parse(node_id)
        node = self.require(node_id)
        changed: list[NodeId] = []
        if node.status != target:
            node.status = target
            changed.append(node_id)
        if target == TaskStatus.DONE and isinstance(node, Task):
            for subtask in node.subtasks:
                if subtask.status != TaskStatus.DONE:
                    subtask.status = TaskStatus.DONE
                    changed.append(SubtaskRef(node.id, subtask.id))
        if changed:
            self.dirty = True
        return changed

    def convert_subtask_to_task(self, parent_id: int, local_id: int) -> TaskRef:
        """Promote subtask ``parent_id.local_id`` to a top-level task."""
        old = SubtaskRef(parent_id, local_id)
        parent = self.get_task(parent_id)
        subtask = parent.get_subtask(local_id) if parent is not None else None
        if parent is None or subtask is None:
            raise _not_found(old)

        new = TaskRef(self.next_task_id())
        parent.subtasks = [s for s in parent.subtasks if s.id != local_id]
        task = Task(
            id=new.id,
            title=subtask.title,
            description=subtask.description,
            status=subtask.status,
            priority=subtask.priority or parent.priority,
            dependencies=ids.sort_ids(ids.unique(subtask.dependencies)),
            extra=dict(subtask.extra),
        )
        self._register(task)
        self._rewrite_references(old, new)
        self.dirty = True
        logger.info("Converted subtask {} to task {}", old, new)
        return new

    def convert_task_to_subtask(self, task_id: int, parent_id: int) -> SubtaskRef:
        """Demote task ``task_id`` to a subtask of ``parent_id``."""
        if task_id == parent_id:
            raise TaskGraphError(ErrorCode.INVALID_CONVERSION, f"Task {task_id} cannot become a subtask of itself")
        task = self.get_task(task_id)
        if task is None:
            raise _not_found(TaskRef(task_id))
        parent = self.get_task(parent_id)
        if parent is None:
            raise _not_found(TaskRef(parent_id))
        if task.subtasks:
            raise TaskGraphError(
                ErrorCode.INVALID_CONVERSION,
                f"Task {task_id} has {len(task.subtasks)} subtask(s) and cannot be nested",
            )

        old = TaskRef(task_id)
        new = SubtaskRef(parent_id, self.next_subtask_id(parent_id))
        self.tasks.pop(self._index[task_id])
        self._reindex()
        parent.subtasks.append(
            Subtask(
                id=new.local_id,
                title=task.title,
                description=task.description,
                status=task.status,
                priority=task.priority,
                dependencies=ids.sort_ids(ids.unique(task.dependencies)),
                extra=dict(task.extra),
            )
        )
        self._rewrite_references(old, new)
        # Containment already orders the parent after its subtasks.
        if new in parent.dependencies:
            parent.dependencies = [d for d in parent.dependencies if d != new]
            logger.debug("Dropped containment edge {} -> {}", parent_id, new)
        self.dirty = True
        logger.info("Converted task {} to subtask {}", old, new)
        return new
