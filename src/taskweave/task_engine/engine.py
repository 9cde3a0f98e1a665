"""Task engine: the API boundary over the dependency-graph core.

Wraps a :class:`TaskStore` with the graph operations callers need and turns
core errors into :class:`OperationResult` values.  Validation, not-found, and
state-conflict errors never escape; persistence errors are not handled here
and reach the caller unchanged.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

from loguru import logger

from ..config import get_repair_config
from ..logging_utils import summarize_issues
from . import ids, repair, selector
from .errors import ErrorCategory, ErrorCode, OperationResult, TaskGraphError
from .graph import DependencyGraph
from .ids import NodeId, RawId, SubtaskRef, TaskRef
from .model import TaskStatus
from .store import TaskStore, parse_status
from .validator import AllNodes, Issue, IssueType, Scope, SiblingsOf, validate


def _targets(node_ids: Union[RawId, NodeId, list[Union[NodeId, RawId]]]) -> list[NodeId]:
    targets = ids.parse_many(node_ids)
    if not targets:
        raise TaskGraphError(ErrorCode.INVALID_ID_FORMAT, f"No task ids given in {node_ids!r}")
    return targets


def _residual_error(remaining: list[Issue]) -> tuple[ErrorCode, str]:
    kinds = {i.kind for i in remaining}
    code = ErrorCode.CIRCULAR_DEPENDENCY if IssueType.CIRCULAR in kinds else ErrorCode.MISSING_DEPENDENCY
    return code, f"{len(remaining)} dependency issue(s) remain and must be resolved manually"


class TaskEngine:
    """Run graph operations against one loaded task document.

    Parameters
    ----------
    store:
        The in-memory document; mutated in place.
    enforce_progress:
        Whether repair and structural operations may clear the first subtask's
        dependencies to keep every parent startable.  When False the problem is
        only reported.
    """

    def __init__(self, store: TaskStore, enforce_progress: bool = True) -> None:
        self.store = store
        self.enforce_progress = enforce_progress

    @classmethod
    def from_config(cls, store: TaskStore, config: dict[str, Any]) -> "TaskEngine":
        return cls(store, enforce_progress=get_repair_config(config)["enforce_progress"])

    def _run(self, action: str, fn: Callable[[], OperationResult]) -> OperationResult:
        try:
            return fn()
        except TaskGraphError as exc:
            if exc.category == ErrorCategory.IO:
                raise
            logger.error("{} failed: {}", action, exc)
            return OperationResult.from_error(exc)

    def _progress_warnings(self) -> list[str]:
        _, warnings = repair.enforce_progress(self.store, apply=self.enforce_progress)
        return warnings

    # ------------------------------------------------------------------
    # Dependency edges
    # ------------------------------------------------------------------

    def add_dependency(self, task_id: Union[NodeId, RawId], dependency_id: Union[NodeId, RawId]) -> OperationResult:
        def op() -> OperationResult:
            change = repair.add_dependency(self.store, task_id, dependency_id)
            return OperationResult.ok(change, warnings=[change.warning] if change.warning else None)

        return self._run("add_dependency", op)

    def remove_dependency(self, task_id: Union[NodeId, RawId], dependency_id: Union[NodeId, RawId]) -> OperationResult:
        def op() -> OperationResult:
            change = repair.remove_dependency(self.store, task_id, dependency_id)
            return OperationResult.ok(change, warnings=[change.warning] if change.warning else None)

        return self._run("remove_dependency", op)

    def is_dependent_on(self, task_id: Union[NodeId, RawId], target_id: Union[NodeId, RawId]) -> OperationResult:
        def op() -> OperationResult:
            node_id = ids.parse(task_id)
            self.store.require(node_id)
            graph = DependencyGraph.from_store(self.store)
            return OperationResult.ok(graph.depends_on(node_id, ids.parse(target_id)))

        return self._run("is_dependent_on", op)

    # ------------------------------------------------------------------
    # Validation and repair
    # ------------------------------------------------------------------

    def validate(self, scope: Optional[Scope] = None) -> OperationResult:
        """Report dependency issues; the result succeeds even when issues exist."""

        def op() -> OperationResult:
            logger.info("Running dependency validation...")
            issues = validate(self.store, scope or AllNodes())
            if issues:
                summary = summarize_issues(issues)
                logger.error("Found {} dependency issues:", summary["total"])
                for line in summary["lines"]:
                    logger.error("  {}", line)
            else:
                logger.success("No dependency issues found")
            return OperationResult.ok(issues)

        return self._run("validate", op)

    def validate_subtasks(self, parent_id: Union[int, str]) -> OperationResult:
        """Strict-sibling validation for a batch of subtasks created together."""
        try:
            parent = ids.parse(parent_id)
        except TaskGraphError as exc:
            return OperationResult.from_error(exc)
        if not isinstance(parent, TaskRef):
            return OperationResult.fail(ErrorCode.INVALID_ID_FORMAT, f"{parent} is not a task id")
        return self.validate(SiblingsOf(parent.id))

    def fix_dependencies(self) -> OperationResult:
        """Remove missing and self edges; succeed only if re-validation is clean."""

        def op() -> OperationResult:
            report = repair.fix_dependencies(self.store)
            if report.clean:
                return OperationResult.ok(report, warnings=report.warnings)
            code, message = _residual_error(report.remaining)
            return OperationResult.fail(code, message, data=report, warnings=report.warnings)

        return self._run("fix_dependencies", op)

    def validate_and_fix(self) -> OperationResult:
        def op() -> OperationResult:
            report = repair.validate_and_fix(self.store, enforce=self.enforce_progress)
            if report.clean:
                return OperationResult.ok(report, warnings=report.warnings)
            code, message = _residual_error(report.remaining)
            return OperationResult.fail(code, message, data=report, warnings=report.warnings)

        return self._run("validate_and_fix", op)

    # ------------------------------------------------------------------
    # Selection and ordering
    # ------------------------------------------------------------------

    def find_next(self) -> OperationResult:
        def op() -> OperationResult:
            item = selector.find_next(self.store)
            if item is None:
                logger.info("No eligible task found; everything is done or blocked")
            else:
                logger.info("Next task: {} ({})", item.id, item.title)
            return OperationResult.ok(item)

        return self._run("find_next", op)

    def execution_order(self) -> OperationResult:
        def op() -> OperationResult:
            batches = DependencyGraph.from_store(self.store).execution_order()
            return OperationResult.ok([[ids.format_id(n) for n in batch] for batch in batches])

        return self._run("execution_order", op)

    def count_dependencies(self) -> OperationResult:
        return self._run("count_dependencies", lambda: OperationResult.ok(self.store.count_dependencies()))

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def convert_subtask_to_task(self, subtask_id: Union[NodeId, str]) -> OperationResult:
        def op() -> OperationResult:
            node_id = ids.parse(subtask_id)
            if not isinstance(node_id, SubtaskRef):
                raise TaskGraphError(ErrorCode.INVALID_CONVERSION, f"{node_id} is already a task")
            new_id = self.store.convert_subtask_to_task(node_id.parent_id, node_id.local_id)
            return OperationResult.ok({"id": ids.format_id(new_id)}, warnings=self._progress_warnings())

        return self._run("convert_subtask_to_task", op)

    def convert_task_to_subtask(self, task_id: Union[NodeId, RawId], parent_id: Union[NodeId, RawId]) -> OperationResult:
        def op() -> OperationResult:
            node_id = ids.parse(task_id)
            parent = ids.parse(parent_id)
            if not isinstance(node_id, TaskRef):
                raise TaskGraphError(ErrorCode.INVALID_CONVERSION, f"{node_id} is already a subtask")
            if not isinstance(parent, TaskRef):
                raise TaskGraphError(ErrorCode.INVALID_CONVERSION, f"Subtask {parent} cannot own subtasks")
            new_id = self.store.convert_task_to_subtask(node_id.id, parent.id)
            return OperationResult.ok({"id": ids.format_id(new_id)}, warnings=self._progress_warnings())

        return self._run("convert_task_to_subtask", op)

    def remove_nodes(self, node_ids: Union[RawId, NodeId, list[Union[NodeId, RawId]]]) -> OperationResult:
        """Delete tasks/subtasks (``"5,6.1"``) and purge references to them.

        Every id is checked before anything is removed.
        """

        def op() -> OperationResult:
            targets = _targets(node_ids)
            for node_id in targets:
                self.store.require(node_id)
            removed: list[str] = []
            for node_id in targets:
                # A subtask may already be gone with its parent.
                if self.store.exists(node_id):
                    self.store.remove_node(node_id)
                    removed.append(ids.format_id(node_id))
            return OperationResult.ok({"removed": removed}, warnings=self._progress_warnings())

        return self._run("remove_nodes", op)

    def set_status(self, node_ids: Union[RawId, NodeId, list[Union[NodeId, RawId]]], status: Union[TaskStatus, str]) -> OperationResult:
        def op() -> OperationResult:
            target = parse_status(status)
            targets = _targets(node_ids)
            for node_id in targets:
                self.store.require(node_id)
            changed: list[str] = []
            for node_id in targets:
                changed.extend(ids.format_id(n) for n in self.store.set_status(node_id, target))
            logger.success("Set status of {} to {}", ", ".join(map(str, targets)), target.value)
            return OperationResult.ok({"updated": changed})

        return self._run("set_status", op)
