"""Tests for the dependency graph and cycle detection (task_engine/graph.py)."""

from __future__ import annotations

from typing import Any

import pytest
from loguru import logger

from taskweave.task_engine.graph import DependencyGraph
from taskweave.task_engine.ids import NodeId, SubtaskRef, TaskRef
from taskweave.task_engine.store import TaskStore


def _graph(edges: dict[int, list[int]]) -> DependencyGraph:
    return DependencyGraph.from_edges({TaskRef(n): [TaskRef(d) for d in deps] for n, deps in edges.items()})


def _chain(length: int) -> DependencyGraph:
    # n depends on n - 1
    return _graph({n: ([n - 1] if n > 1 else []) for n in range(1, length + 1)})


@pytest.fixture
def log_messages() -> Any:
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


class TestFromStore:
    def test_dangling_edges_are_skipped(self) -> None:
        store = TaskStore.from_dict(
            {"tasks": [{"id": 1, "dependencies": [99, "1.1"], "subtasks": [{"id": 1, "dependencies": ["1.5"]}]}]}
        )
        graph = DependencyGraph.from_store(store)
        assert graph.nodes == [TaskRef(1), SubtaskRef(1, 1)]
        assert graph.dependencies(TaskRef(1)) == [SubtaskRef(1, 1)]
        assert graph.dependencies(SubtaskRef(1, 1)) == []

    def test_from_edges_restricts_to_keys(self) -> None:
        graph = _graph({1: [2, 3], 2: []})
        assert graph.dependencies(TaskRef(1)) == [TaskRef(2)]


class TestWouldCreateCycle:
    def test_self_edge(self) -> None:
        assert _graph({1: []}).would_create_cycle(TaskRef(1), TaskRef(1))

    def test_closing_a_chain(self) -> None:
        graph = _chain(4)
        assert graph.would_create_cycle(TaskRef(1), TaskRef(4))
        assert not graph.would_create_cycle(TaskRef(4), TaskRef(1))

    def test_unrelated_nodes(self) -> None:
        assert not _graph({1: [], 2: []}).would_create_cycle(TaskRef(1), TaskRef(2))

    def test_diamond(self) -> None:
        # 4 -> 2 -> 1, 4 -> 3 -> 1
        graph = _graph({1: [], 2: [1], 3: [1], 4: [2, 3]})
        assert graph.would_create_cycle(TaskRef(1), TaskRef(4))
        assert not graph.would_create_cycle(TaskRef(3), TaskRef(2))

    def test_deep_chain_does_not_recurse(self) -> None:
        graph = _chain(5000)
        assert graph.would_create_cycle(TaskRef(1), TaskRef(5000))

    def test_depends_on_is_transitive(self) -> None:
        graph = _chain(3)
        assert graph.depends_on(TaskRef(3), TaskRef(1))
        assert not graph.depends_on(TaskRef(1), TaskRef(3))


class TestCycles:
    def test_members_of_two_cycles(self) -> None:
        graph = _graph({1: [2], 2: [3], 3: [1], 4: [5], 5: [4], 6: [1]})
        members = graph.cycle_members()
        assert members == {TaskRef(1), TaskRef(2), TaskRef(3), TaskRef(4), TaskRef(5)}

    def test_self_loop_is_not_a_member(self) -> None:
        assert _graph({1: [1]}).cycle_members() == set()

    def test_acyclic_chain_has_no_members(self) -> None:
        assert _chain(3000).cycle_members() == set()

    def test_find_cycle_containing(self) -> None:
        graph = _graph({1: [2], 2: [3], 3: [1], 6: [1]})
        assert graph.find_cycle_containing(TaskRef(2)) == [TaskRef(2), TaskRef(3), TaskRef(1), TaskRef(2)]
        assert graph.find_cycle_containing(TaskRef(6)) is None
        assert graph.find_cycle_containing(TaskRef(42)) is None

    def test_find_cycle_skips_dead_ends(self) -> None:
        graph = _graph({1: [5, 2], 5: [6], 6: [], 2: [1]})
        cycle = graph.find_cycle_containing(TaskRef(1))
        assert cycle == [TaskRef(1), TaskRef(2), TaskRef(1)]


class TestExecutionOrder:
    def test_batches(self) -> None:
        graph = _graph({1: [], 2: [1], 3: [1], 4: [2, 3], 5: []})
        order: list[list[NodeId]] = graph.execution_order()
        assert order == [[TaskRef(1), TaskRef(5)], [TaskRef(2), TaskRef(3)], [TaskRef(4)]]

    def test_cycle_is_left_out(self, log_messages: list[str]) -> None:
        graph = _graph({1: [], 2: [3], 3: [2], 4: [2]})
        assert graph.execution_order() == [[TaskRef(1)]]
        assert any("2, 3, 4" in m for m in log_messages)
