"""Tests for the task engine API boundary (task_engine/engine.py)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from taskweave.io_utils import TaskDocumentGateway
from taskweave.task_engine.engine import TaskEngine
from taskweave.task_engine.errors import ErrorCode, TaskDocumentError
from taskweave.task_engine.ids import SubtaskRef, TaskRef
from taskweave.task_engine.model import TaskStatus
from taskweave.task_engine.repair import FixReport, RepairReport
from taskweave.task_engine.store import TaskStore


def _store(*tasks: dict[str, Any]) -> TaskStore:
    return TaskStore.from_dict({"tasks": list(tasks)})


@pytest.fixture
def store() -> TaskStore:
    return _store(
        {"id": 1, "title": "Setup", "status": "done"},
        {"id": 2, "title": "Models", "dependencies": [1]},
        {
            "id": 3,
            "title": "API",
            "priority": "high",
            "dependencies": [2],
            "subtasks": [
                {"id": 1, "title": "Routes"},
                {"id": 2, "title": "Handlers", "dependencies": ["3.1"]},
            ],
        },
    )


@pytest.fixture
def engine(store: TaskStore) -> TaskEngine:
    return TaskEngine(store)


@pytest.fixture
def tasks_file(tmp_path: Path, store: TaskStore) -> Path:
    path = tmp_path / ".taskweave" / "tasks.json"
    path.parent.mkdir()
    path.write_text(json.dumps(store.to_dict(), indent=2), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------

class TestEdges:
    def test_add_dependency(self, engine: TaskEngine) -> None:
        result = engine.add_dependency("3.2", 1)
        assert result.success
        assert result.to_dict() == {
            "success": True,
            "data": {"taskId": "3.2", "dependencyId": "1", "changed": True},
        }

    def test_cycle_is_a_failed_result(self, engine: TaskEngine) -> None:
        result = engine.add_dependency(1, 3)
        assert not result.success
        assert result.error.code == ErrorCode.CIRCULAR_DEPENDENCY
        assert result.error.category.value == "VALIDATION"
        assert engine.store.dependencies_of(1) == []

    def test_not_found_is_a_failed_result(self, engine: TaskEngine) -> None:
        result = engine.add_dependency(9, 1)
        assert result.error.code == ErrorCode.NOT_FOUND
        assert result.to_dict()["error"]["category"] == "NOT_FOUND"

    def test_malformed_id(self, engine: TaskEngine) -> None:
        assert engine.add_dependency("1.2.3", 1).error.code == ErrorCode.INVALID_ID_FORMAT

    def test_non_ascii_digit_id(self, engine: TaskEngine) -> None:
        result = engine.add_dependency("²", 1)
        assert result.error.code == ErrorCode.INVALID_ID_FORMAT
        assert engine.remove_dependency(3, "1.²").error.code == ErrorCode.INVALID_ID_FORMAT

    def test_self(self, engine: TaskEngine) -> None:
        assert engine.add_dependency(2, "2").error.code == ErrorCode.SELF_DEPENDENCY

    def test_duplicate_carries_warning(self, engine: TaskEngine) -> None:
        result = engine.add_dependency(2, 1)
        assert result.success
        assert result.data.changed is False
        assert result.warnings == ["Dependency 1 already exists in 2"]

    def test_no_independent_subtask(self, engine: TaskEngine) -> None:
        result = engine.add_dependency("3.1", 2)
        assert result.error.code == ErrorCode.NO_INDEPENDENT_SUBTASK

    def test_remove_dependency(self, engine: TaskEngine) -> None:
        assert engine.remove_dependency(3, 2).data.changed is True
        absent = engine.remove_dependency(3, 2)
        assert absent.success
        assert absent.warnings == ["Dependency 2 not found in 3"]

    def test_is_dependent_on(self, engine: TaskEngine) -> None:
        assert engine.is_dependent_on(3, 1).data is True
        assert engine.is_dependent_on(1, 3).data is False
        assert engine.is_dependent_on(42, 1).error.code == ErrorCode.NOT_FOUND


# ---------------------------------------------------------------------------
# Validation and repair
# ---------------------------------------------------------------------------

class TestValidation:
    def test_clean(self, engine: TaskEngine) -> None:
        result = engine.validate()
        assert result.success
        assert result.data == []

    def test_issues_are_data(self) -> None:
        engine = TaskEngine(_store({"id": 1, "dependencies": [1, 7]}))
        result = engine.validate()
        assert result.success
        assert [i["type"] for i in result.to_dict()["data"]] == ["self", "missing"]

    def test_validate_subtasks(self) -> None:
        engine = TaskEngine(_store({"id": 1}, {"id": 2, "subtasks": [{"id": 1, "dependencies": [5]}]}))
        result = engine.validate_subtasks(2)
        assert result.success
        assert [str(i.dependency_id) for i in result.data] == ["2.5"]

    def test_validate_subtasks_bad_parent(self, engine: TaskEngine) -> None:
        assert engine.validate_subtasks(99).error.code == ErrorCode.NOT_FOUND
        assert engine.validate_subtasks("3.1").error.code == ErrorCode.INVALID_ID_FORMAT

    def test_fix_dependencies_clean(self) -> None:
        engine = TaskEngine(_store({"id": 1, "dependencies": [5]}))
        result = engine.fix_dependencies()
        assert result.success
        assert isinstance(result.data, FixReport)
        assert engine.store.dependencies_of(1) == []

    def test_fix_dependencies_leaves_cycles(self) -> None:
        engine = TaskEngine(_store({"id": 1, "dependencies": [2]}, {"id": 2, "dependencies": [1]}))
        result = engine.fix_dependencies()
        assert not result.success
        assert result.error.code == ErrorCode.CIRCULAR_DEPENDENCY
        assert len(result.data.unresolved) == 2
        assert result.warnings

    def test_validate_and_fix(self) -> None:
        engine = TaskEngine(_store({"id": 1}, {"id": 2, "subtasks": [{"id": 1, "dependencies": [1]}]}))
        result = engine.validate_and_fix()
        assert result.success
        assert isinstance(result.data, RepairReport)
        assert result.data.progress_fixed == [SubtaskRef(2, 1)]

    def test_validate_and_fix_with_progress_disabled(self) -> None:
        store = _store({"id": 1}, {"id": 2, "subtasks": [{"id": 1, "dependencies": [1]}]})
        engine = TaskEngine.from_config(store, {"repair": {"enforce_progress": False}})
        result = engine.validate_and_fix()
        assert result.success
        assert result.data.progress_fixed == []
        assert "left unchanged" in result.warnings[0]
        assert store.dependencies_of("2.1") == [TaskRef(1)]

    def test_validate_and_fix_reports_missing(self) -> None:
        engine = TaskEngine(_store({"id": 1, "dependencies": [3]}))
        result = engine.validate_and_fix()
        assert result.error.code == ErrorCode.MISSING_DEPENDENCY
        assert result.to_dict()["data"]["clean"] is False


# ---------------------------------------------------------------------------
# Selection and ordering
# ---------------------------------------------------------------------------

class TestSelection:
    def test_find_next(self, engine: TaskEngine) -> None:
        result = engine.find_next()
        assert result.data.id == "2"

    def test_find_next_prefers_started_work(self, engine: TaskEngine) -> None:
        engine.set_status(2, "done")
        engine.set_status(3, "in-progress")
        assert engine.find_next().data.id == "3.1"

    def test_find_next_nothing_left(self, engine: TaskEngine) -> None:
        engine.set_status("2,3", "done")
        result = engine.find_next()
        assert result.success
        assert result.data is None
        assert result.to_dict() == {"success": True}

    def test_execution_order(self) -> None:
        engine = TaskEngine(_store({"id": 1}, {"id": 2, "dependencies": [1]}, {"id": 3, "dependencies": [1]}))
        assert engine.execution_order().data == [["1"], ["2", "3"]]

    def test_count_dependencies(self, engine: TaskEngine) -> None:
        result = engine.count_dependencies()
        assert result.success
        assert result.data == 3
        assert result.to_dict() == {"success": True, "data": 3}


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

class TestStructure:
    def test_set_status_comma_list(self, engine: TaskEngine) -> None:
        result = engine.set_status("2, 3", TaskStatus.DONE)
        assert result.data == {"updated": ["2", "3", "3.1", "3.2"]}

    def test_set_status_invalid(self, engine: TaskEngine) -> None:
        assert engine.set_status(2, "finished").error.code == ErrorCode.INVALID_STATUS

    def test_set_status_invalid_status_with_no_ids(self, engine: TaskEngine) -> None:
        assert engine.set_status(",", "bogus").error.code == ErrorCode.INVALID_STATUS

    @pytest.mark.parametrize("node_ids", ["", ",", " , ", []])
    def test_set_status_without_ids(self, engine: TaskEngine, node_ids: Any) -> None:
        result = engine.set_status(node_ids, "done")
        assert result.error.code == ErrorCode.INVALID_ID_FORMAT
        assert not engine.store.dirty

    def test_set_status_checks_all_ids_first(self, engine: TaskEngine) -> None:
        result = engine.set_status("2,9", "done")
        assert result.error.code == ErrorCode.NOT_FOUND
        assert engine.store.get_task(2).status == TaskStatus.PENDING

    def test_remove_nodes(self, engine: TaskEngine) -> None:
        result = engine.remove_nodes("2")
        assert result.data == {"removed": ["2"]}
        assert engine.store.dependencies_of(3) == []

    def test_remove_parent_and_child(self, engine: TaskEngine) -> None:
        assert engine.remove_nodes("3,3.1").data == {"removed": ["3"]}

    @pytest.mark.parametrize("node_ids", ["", ",", []])
    def test_remove_nodes_without_ids(self, engine: TaskEngine, node_ids: Any) -> None:
        before = engine.store.to_dict()
        result = engine.remove_nodes(node_ids)
        assert result.error.code == ErrorCode.INVALID_ID_FORMAT
        assert engine.store.to_dict() == before

    def test_remove_nodes_is_all_or_nothing(self, engine: TaskEngine) -> None:
        result = engine.remove_nodes("2,3.7")
        assert result.error.code == ErrorCode.NOT_FOUND
        assert engine.store.get_task(2) is not None

    def test_remove_keeps_parent_startable(self, engine: TaskEngine) -> None:
        engine.store.add_edge("3.2", 1)
        result = engine.remove_nodes("3.1")
        assert result.success
        # 3.2 was left depending on task 1 only; it is the first subtask now.
        assert engine.store.dependencies_of("3.2") == []
        assert result.warnings

    def test_convert_subtask_to_task(self, engine: TaskEngine) -> None:
        result = engine.convert_subtask_to_task("3.2")
        assert result.data == {"id": "4"}
        assert engine.store.get_task(4).dependencies == [SubtaskRef(3, 1)]

    def test_convert_task_id_to_task(self, engine: TaskEngine) -> None:
        assert engine.convert_subtask_to_task("3").error.code == ErrorCode.INVALID_CONVERSION

    def test_convert_task_to_subtask(self, engine: TaskEngine) -> None:
        result = engine.convert_task_to_subtask(2, 3)
        assert result.data == {"id": "3.3"}
        assert engine.store.dependencies_of(3) == []
        assert engine.store.dependencies_of("3.3") == [TaskRef(1)]

    def test_convert_task_to_subtask_of_subtask(self, engine: TaskEngine) -> None:
        assert engine.convert_task_to_subtask(2, "3.1").error.code == ErrorCode.INVALID_CONVERSION

    def test_convert_task_with_subtasks(self, engine: TaskEngine) -> None:
        result = engine.convert_task_to_subtask(3, 2)
        assert result.error.code == ErrorCode.INVALID_CONVERSION
        assert result.error.category.value == "STATE_CONFLICT"


# ---------------------------------------------------------------------------
# With the persistence gateway
# ---------------------------------------------------------------------------

class TestWithGateway:
    def test_changes_are_saved(self, tasks_file: Path) -> None:
        gateway = TaskDocumentGateway(tasks_file)
        with gateway.transaction() as store:
            assert TaskEngine(store).add_dependency(3, 1).success
        data = json.loads(tasks_file.read_text(encoding="utf-8"))
        assert data["tasks"][2]["dependencies"] == [1, 2]

    def test_rejected_change_leaves_file_untouched(self, tasks_file: Path) -> None:
        before = tasks_file.read_bytes()
        with TaskDocumentGateway(tasks_file).transaction() as store:
            assert not TaskEngine(store).add_dependency(1, 3).success
        assert tasks_file.read_bytes() == before

    def test_missing_file_is_raised(self, tmp_path: Path) -> None:
        with pytest.raises(TaskDocumentError) as excinfo:
            with TaskDocumentGateway(tmp_path / "nope.json").transaction():
                pass
        assert excinfo.value.code == ErrorCode.FILE_NOT_FOUND
