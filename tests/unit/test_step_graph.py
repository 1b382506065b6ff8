"""Unit tests for the step dependency graph."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from lp_migration.step_graph import StepGraph


def _chain_graph() -> StepGraph[str]:
    graph: StepGraph[str] = StepGraph()
    graph.add("claim", "c", weight=30.0)
    graph.add("remove", "r", weight=45.0, depends_on=["claim"])
    graph.add("add", "a", weight=45.0, depends_on=["remove"])
    return graph


class TestConstruction:
    def test_duplicate_key_raises(self) -> None:
        graph: StepGraph[int] = StepGraph()
        graph.add("a", 1)
        with pytest.raises(ValueError, match="Duplicate"):
            graph.add("a", 2)

    def test_unknown_dependency_raises(self) -> None:
        graph: StepGraph[int] = StepGraph()
        graph.add("a", 1)
        with pytest.raises(ValueError, match="unknown step"):
            graph.add_dependency("a", "missing")

    def test_self_dependency_raises(self) -> None:
        graph: StepGraph[int] = StepGraph()
        graph.add("a", 1)
        with pytest.raises(ValueError, match="itself"):
            graph.add_dependency("a", "a")

    def test_from_steps(self) -> None:
        steps = [
            SimpleNamespace(id="s1", estimated_time=10.0, dependencies=()),
            SimpleNamespace(id="s2", estimated_time=20.0, dependencies=("s1",)),
        ]
        graph = StepGraph.from_steps(steps)
        assert len(graph) == 2
        assert "s2" in graph
        assert graph.dependencies(graph.index_of("s2")) == {graph.index_of("s1")}
        assert graph.payload(graph.index_of("s1")) is steps[0]


class TestOrdering:
    def test_chain_order(self) -> None:
        graph = _chain_graph()
        assert [graph.key(i) for i in graph.topological_order()] == ["claim", "remove", "add"]

    def test_priority_breaks_ties(self) -> None:
        graph: StepGraph[str] = StepGraph()
        graph.add("x", "x")
        graph.add("y", "y")
        order = graph.topological_order(priority=lambda i: -i)
        assert [graph.key(i) for i in order] == ["y", "x"]

    def test_cycle_raises(self) -> None:
        graph: StepGraph[str] = StepGraph()
        graph.add("a", "a")
        graph.add("b", "b", depends_on=["a"])
        graph.add_dependency("a", "b")
        with pytest.raises(ValueError, match="cycle"):
            graph.topological_order()

    def test_depths(self) -> None:
        assert _chain_graph().depths() == [0, 1, 2]


class TestCriticalPath:
    def test_chain(self) -> None:
        assert _chain_graph().critical_path() == 120.0

    def test_parallel_branches_take_max(self) -> None:
        graph: StepGraph[str] = StepGraph()
        graph.add("r1", "r1", weight=45.0)
        graph.add("r2", "r2", weight=75.0)
        graph.add("add", "a", weight=45.0, depends_on=["r1", "r2"])
        assert graph.critical_path() == 120.0

    def test_empty(self) -> None:
        assert StepGraph().critical_path() == 0.0
