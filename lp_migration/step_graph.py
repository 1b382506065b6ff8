"""Directed acyclic graph of migration steps.

Nodes live in a list (the arena) and dependencies are stored as sets of
node indices, so ordering and scheduling never chase object references.
"""
from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar

T = TypeVar("T")


@dataclass
class _Node(Generic[T]):
    key: str
    payload: T
    weight: float
    deps: set[int] = field(default_factory=set)
    dependents: set[int] = field(default_factory=set)


class StepGraph(Generic[T]):
    """Arena-backed DAG keyed by step id."""

    def __init__(self) -> None:
        self._nodes: list[_Node[T]] = []
        self._index: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    @classmethod
    def from_steps(cls, steps: Sequence[Any]) -> StepGraph[Any]:
        """Build a graph from objects exposing ``id``, ``estimated_time`` and
        ``dependencies``. Unknown dependency ids raise ``ValueError``."""
        graph: StepGraph[Any] = cls()
        for step in steps:
            graph.add(step.id, step, weight=step.estimated_time)
        for step in steps:
            for dep in step.dependencies:
                graph.add_dependency(step.id, dep)
        return graph

    def add(
        self,
        key: str,
        payload: T,
        weight: float = 0.0,
        depends_on: Iterable[str] = (),
    ) -> int:
        if key in self._index:
            raise ValueError(f"Duplicate step id: {key}")
        idx = len(self._nodes)
        self._nodes.append(_Node(key=key, payload=payload, weight=weight))
        self._index[key] = idx
        for dep in depends_on:
            self.add_dependency(key, dep)
        return idx

    def add_dependency(self, key: str, depends_on: str) -> None:
        if depends_on not in self._index:
            raise ValueError(f"Step {key} depends on unknown step {depends_on}")
        idx = self._index[key]
        dep_idx = self._index[depends_on]
        if idx == dep_idx:
            raise ValueError(f"Step {key} cannot depend on itself")
        self._nodes[idx].deps.add(dep_idx)
        self._nodes[dep_idx].dependents.add(idx)

    def index_of(self, key: str) -> int:
        return self._index[key]

    def key(self, idx: int) -> str:
        return self._nodes[idx].key

    def payload(self, idx: int) -> T:
        return self._nodes[idx].payload

    def dependencies(self, idx: int) -> frozenset[int]:
        return frozenset(self._nodes[idx].deps)

    def dependents(self, idx: int) -> frozenset[int]:
        return frozenset(self._nodes[idx].dependents)

    def depths(self) -> list[int]:
        """Longest dependency chain ending at each node (roots are 0)."""
        depths = [0] * len(self._nodes)
        for idx in self.topological_order():
            deps = self._nodes[idx].deps
            if deps:
                depths[idx] = 1 + max(depths[d] for d in deps)
        return depths

    def topological_order(
        self, priority: Callable[[int], Any] | None = None
    ) -> list[int]:
        """Kahn's algorithm; among ready nodes the lowest ``priority`` goes first.

        Default priority is insertion order. Raises ``ValueError`` on a cycle.
        """
        if priority is None:
            priority = int

        remaining = [len(n.deps) for n in self._nodes]
        ready = [(priority(i), i) for i, n in enumerate(self._nodes) if not n.deps]
        heapq.heapify(ready)

        order: list[int] = []
        while ready:
            _, idx = heapq.heappop(ready)
            order.append(idx)
            for child in self._nodes[idx].dependents:
                remaining[child] -= 1
                if remaining[child] == 0:
                    heapq.heappush(ready, (priority(child), child))

        if len(order) != len(self._nodes):
            placed = set(order)
            stuck = [n.key for i, n in enumerate(self._nodes) if i not in placed]
            raise ValueError(f"Dependency cycle among steps: {', '.join(stuck)}")
        return order

    def critical_path(self) -> float:
        """Sum of weights along the heaviest dependency chain."""
        finish = [0.0] * len(self._nodes)
        for idx in self.topological_order():
            node = self._nodes[idx]
            start = max((finish[d] for d in node.deps), default=0.0)
            finish[idx] = start + node.weight
        return max(finish, default=0.0)
