"""Pydantic models describing the on-disk task document.

Used by the persistence gateway to reject structurally broken documents
before they reach the store.  Status and priority stay plain strings here;
the model layer coerces unknown values on load.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SubtaskDocument(BaseModel):
    """Subtask entry."""

    model_config = ConfigDict(extra="allow")

    id: int = Field(gt=0)
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    dependencies: Optional[list[Union[int, str]]] = None


class TaskDocumentEntry(SubtaskDocument):
    """Top-level task entry."""

    subtasks: Optional[list[SubtaskDocument]] = None


class TasksDocument(BaseModel):
    """Whole document: ``{"tasks": [...]}`` plus any extra top-level keys."""

    model_config = ConfigDict(extra="allow")

    tasks: list[TaskDocumentEntry] = Field(default_factory=list)
