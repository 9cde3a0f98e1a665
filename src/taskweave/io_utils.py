"""Persistence gateway for task documents plus small JSON/YAML file helpers."""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import yaml
from loguru import logger
from pydantic import ValidationError

from .constants import JSON_INDENT
from .task_engine.errors import ErrorCode, TaskDocumentError, TaskGraphError
from .task_engine.schema import TasksDocument
from .task_engine.store import TaskStore


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    """Write ``data`` to a temp file next to ``path``, fsync, then rename over it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=path.name + ".", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=JSON_INDENT)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def _load_data_with_error(
    path: Path,
    default: dict[str, Any],
) -> tuple[dict[str, Any], str | None]:
    """
    Load JSON/YAML and return (data, error_message).

    Parse and IO failures are reported instead of raised so callers can avoid
    overwriting a corrupted file.
    """
    if not path.exists():
        return default, None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            if path.suffix in {".yaml", ".yml"}:
                data = yaml.safe_load(handle)
            else:
                data = json.load(handle)
        if data is None and path.suffix in {".yaml", ".yml"}:
            return default, None
        if not isinstance(data, dict):
            return default, f"{path.name}: expected object, got {type(data).__name__}"
        return data, None
    except OSError as exc:
        return default, f"{path.name}: {exc.__class__.__name__}: {exc}"
    except json.JSONDecodeError as exc:
        return default, f"{path.name}: JSONDecodeError: {exc}"
    except yaml.YAMLError as exc:
        return default, f"{path.name}: YAMLError: {exc}"


def _first_schema_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    where = ".".join(str(p) for p in err.get("loc", ()))
    return f"{where}: {err.get('msg')}" if where else str(err.get("msg"))


class TaskDocumentGateway:
    """Load and save one ``tasks.json`` document.

    Parameters
    ----------
    path:
        Location of the task document.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> TaskStore:
        """Read the document into a fresh :class:`TaskStore`.

        Raises :class:`TaskDocumentError` with ``FILE_NOT_FOUND`` or
        ``PARSE_ERROR``.
        """
        if not self.path.exists():
            raise TaskDocumentError(ErrorCode.FILE_NOT_FOUND, f"Tasks file not found at {self.path}")
        data, err = _load_data_with_error(self.path, {})
        if err:
            raise TaskDocumentError(ErrorCode.PARSE_ERROR, err)
        try:
            TasksDocument.model_validate(data)
        except ValidationError as exc:
            raise TaskDocumentError(
                ErrorCode.PARSE_ERROR,
                f"{self.path.name}: invalid task document ({_first_schema_error(exc)})",
            ) from exc
        try:
            store = TaskStore.from_dict(data)
        except TaskGraphError as exc:
            raise TaskDocumentError(ErrorCode.PARSE_ERROR, f"{self.path.name}: {exc.message}") from exc
        logger.debug("Loaded {} task(s) from {}", len(store.tasks), self.path)
        return store

    def save(self, store: TaskStore) -> None:
        """Atomically replace the document with ``store``'s contents."""
        try:
            _atomic_write_json(self.path, store.to_dict())
        except OSError as exc:
            raise TaskDocumentError(
                ErrorCode.WRITE_ERROR,
                f"Failed to write {self.path}: {exc.__class__.__name__}: {exc}",
            ) from exc
        store.dirty = False
        logger.debug("Saved {} task(s) to {}", len(store.tasks), self.path)

    @contextmanager
    def transaction(self) -> Iterator[TaskStore]:
        """Load the document, yield the store, and save on exit if it changed.

        Usage::

            with gateway.transaction() as store:
                TaskEngine(store).add_dependency("3", "1")
                # saved on exit when something was mutated
        """
        store = self.load()
        yield store
        if store.dirty:
            self.save(store)
