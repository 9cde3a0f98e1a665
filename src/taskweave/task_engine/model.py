"""Task and subtask model for the dependency-graph engine.

Tasks own an ordered list of subtasks; both carry a dependency list of
:data:`~taskweave.task_engine.ids.NodeId` values.  Fields the engine does not
know about (``details``, ``testStrategy``, ...) are kept in ``extra`` so a
document survives a load/save round-trip unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from loguru import logger

from . import ids
from .ids import NodeId


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    REVIEW = "review"
    DEFERRED = "deferred"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    """Priority level; ``sort_key`` is lower for more urgent work."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def sort_key(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SUBTASK_FIELDS = ("id", "title", "description", "status", "priority", "dependencies")
_TASK_FIELDS = _SUBTASK_FIELDS + ("subtasks",)


def _enum(enum_cls: type[Enum], raw: Any, default: Enum, where: str) -> Enum:
    if raw is None:
        return default
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        logger.warning("Unknown {} {!r} on {}; using {}", enum_cls.__name__, raw, where, default.value)
        return default


def _parse_dependencies(raw: Any) -> list[NodeId]:
    return [ids.parse(item) for item in list(raw or [])]


def _extra(data: dict[str, Any], known: tuple[str, ...]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in known}


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class Subtask:
    """A unit of work inside a task; ``id`` is unique only within its parent."""

    id: int
    title: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    # None means "inherit the parent's priority" and is not written back.
    priority: Optional[TaskPriority] = None
    dependencies: list[NodeId] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
        }
        if self.priority is not None:
            data["priority"] = self.priority.value
        data["dependencies"] = [ids.to_raw(d) for d in self.dependencies]
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], parent_id: Optional[int] = None) -> "Subtask":
        where = f"subtask {parent_id}.{data.get('id')}" if parent_id else f"subtask {data.get('id')}"
        priority_raw = data.get("priority")
        return cls(
            id=int(data["id"]),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status=_enum(TaskStatus, data.get("status"), TaskStatus.PENDING, where),
            priority=(
                None
                if priority_raw is None
                else _enum(TaskPriority, priority_raw, TaskPriority.MEDIUM, where)
            ),
            dependencies=_parse_dependencies(data.get("dependencies")),
            extra=_extra(data, _SUBTASK_FIELDS),
        )


@dataclass
class Task:
    """A top-level task; ``id`` is unique across the whole document."""

    id: int
    title: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    dependencies: list[NodeId] = field(default_factory=list)
    subtasks: list[Subtask] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    def get_subtask(self, local_id: int) -> Optional[Subtask]:
        for subtask in self.subtasks:
            if subtask.id == local_id:
                return subtask
        return None

    def subtask_ids(self) -> set[int]:
        return {s.id for s in self.subtasks}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "dependencies": [ids.to_raw(d) for d in self.dependencies],
            "subtasks": [s.to_dict() for s in self.subtasks],
        }
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize from a plain dict, coercing enums gracefully."""
        task_id = int(data["id"])
        where = f"task {task_id}"
        return cls(
            id=task_id,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status=_enum(TaskStatus, data.get("status"), TaskStatus.PENDING, where),
            priority=_enum(TaskPriority, data.get("priority"), TaskPriority.MEDIUM, where),
            dependencies=_parse_dependencies(data.get("dependencies")),
            subtasks=[Subtask.from_dict(s, parent_id=task_id) for s in list(data.get("subtasks") or [])],
            extra=_extra(data, _TASK_FIELDS),
        )


Node = Union[Task, Subtask]
