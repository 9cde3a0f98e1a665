"""Parse and format task/subtask identifiers.

Tasks are addressed by a positive integer (``7``); subtasks by their parent id
and a local id joined with a dot (``"7.2"``).  The canonical string form is the
only thing used for equality, display, and sorting input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Union

from .errors import ErrorCode, TaskGraphError


@dataclass(frozen=True)
class TaskRef:
    id: int

    def __str__(self) -> str:
        return str(self.id)


@dataclass(frozen=True)
class SubtaskRef:
    parent_id: int
    local_id: int

    def __str__(self) -> str:
        return f"{self.parent_id}.{self.local_id}"

    @property
    def parent(self) -> TaskRef:
        return TaskRef(self.parent_id)


NodeId = Union[TaskRef, SubtaskRef]
RawId = Union[int, str]


def _invalid(raw: object, reason: str) -> TaskGraphError:
    return TaskGraphError(ErrorCode.INVALID_ID_FORMAT, f"Invalid task id {raw!r}: {reason}")


def _segment(raw: object, text: str) -> int:
    text = text.strip()
    if not re.fullmatch(r"[0-9]+", text):
        raise _invalid(raw, f"segment {text!r} is not numeric")
    value = int(text)
    if value <= 0:
        raise _invalid(raw, "ids must be positive")
    return value


def parse(raw: Union[RawId, NodeId]) -> NodeId:
    """Parse ``raw`` into a :data:`NodeId`.

    Accepts an int, a numeric string, a ``"parent.local"`` string, or an
    already-parsed id.  Raises :class:`TaskGraphError` with
    ``INVALID_ID_FORMAT`` for anything else.
    """
    if isinstance(raw, (TaskRef, SubtaskRef)):
        return raw
    # bool is an int subclass; True is not a task id.
    if isinstance(raw, bool):
        raise _invalid(raw, "expected an int or string")
    if isinstance(raw, int):
        if raw <= 0:
            raise _invalid(raw, "ids must be positive")
        return TaskRef(raw)
    if not isinstance(raw, str):
        raise _invalid(raw, "expected an int or string")

    parts = raw.strip().split(".")
    if len(parts) > 2:
        raise _invalid(raw, "more than one '.'")
    if len(parts) == 2:
        return SubtaskRef(_segment(raw, parts[0]), _segment(raw, parts[1]))
    return TaskRef(_segment(raw, parts[0]))


def parse_many(raw: Union[RawId, NodeId, Iterable[Union[RawId, NodeId]]]) -> list[NodeId]:
    """Parse a comma-separated id string (``"5,6.1, 7"``), a single id, or an iterable of ids."""
    if isinstance(raw, (int, TaskRef, SubtaskRef)):
        return [parse(raw)]
    if isinstance(raw, str):
        items: Iterable[Union[RawId, NodeId]] = [p for p in raw.split(",") if p.strip()]
    else:
        items = raw
    return [parse(item) for item in items]


def format_id(node_id: NodeId) -> str:
    """Return the canonical string form of ``node_id``."""
    return str(node_id)


def to_raw(node_id: NodeId) -> RawId:
    """Return the persisted form: int for tasks, ``"p.l"`` for subtasks."""
    if isinstance(node_id, TaskRef):
        return node_id.id
    return format_id(node_id)


def sort_key(node_id: NodeId) -> tuple[int, int, int]:
    """Total order: tasks by value, then subtasks by ``(parent, local)``."""
    if isinstance(node_id, TaskRef):
        return (0, node_id.id, 0)
    return (1, node_id.parent_id, node_id.local_id)


def sort_ids(ids: Iterable[NodeId]) -> list[NodeId]:
    return sorted(ids, key=sort_key)


def unique(ids: Iterable[NodeId]) -> list[NodeId]:
    """De-duplicate keeping first-seen order."""
    seen: set[NodeId] = set()
    out: list[NodeId] = []
    for node_id in ids:
        if node_id in seen:
            continue
        seen.add(node_id)
        out.append(node_id)
    return out
