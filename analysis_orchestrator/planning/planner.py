"""
Execution Planner
=================
Turns a DependencyGraph into an ordered list of batches.

Algorithm: depth-first traversal with three-color marking. Reaching a node
that is still in progress means a cycle, and planning fails as a whole.
When a node finishes, it is placed in batch ``1 + max(batch of its
dependencies)``, or batch 0 when it has none. Within a batch, agents keep
the caller's request order, so the plan is a pure function of the graph and
the request order.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Tuple

from loguru import logger

from analysis_orchestrator.errors import CyclicDependencyError, PlanningError
from analysis_orchestrator.planning.graph import DependencyGraph


class _Mark(Enum):
    UNVISITED = 0
    IN_PROGRESS = 1
    DONE = 2


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered batches; members of one batch share no dependency edge."""
    batches: Tuple[Tuple[str, ...], ...] = ()

    def __iter__(self) -> Iterator[Tuple[str, ...]]:
        return iter(self.batches)

    def __len__(self) -> int:
        return len(self.batches)

    @property
    def agent_names(self) -> List[str]:
        return [name for batch in self.batches for name in batch]

    def batch_index(self, name: str) -> int:
        for i, batch in enumerate(self.batches):
            if name in batch:
                return i
        raise KeyError(name)

    def to_list(self) -> List[List[str]]:
        return [list(batch) for batch in self.batches]


def plan_execution(graph: DependencyGraph) -> ExecutionPlan:
    """
    Compute the batch plan for a dependency graph.

    Args:
        graph: Graph restricted to the requested agents

    Returns:
        ExecutionPlan (empty when the graph is empty)

    Raises:
        CyclicDependencyError: The graph contains a cycle; no partial plan is returned
    """
    marks: Dict[str, _Mark] = {name: _Mark.UNVISITED for name in graph.order}
    level: Dict[str, int] = {}
    path: List[str] = []

    def visit(name: str) -> None:
        if marks[name] is _Mark.DONE:
            return
        if marks[name] is _Mark.IN_PROGRESS:
            cycle = path[path.index(name):] + [name]
            raise CyclicDependencyError(name, cycle)

        marks[name] = _Mark.IN_PROGRESS
        path.append(name)
        deps = graph.nodes[name].dependencies
        for dep in deps:
            visit(dep)
        path.pop()
        marks[name] = _Mark.DONE
        level[name] = 1 + max((level[dep] for dep in deps), default=-1)

    for name in graph.order:
        visit(name)

    batches: List[List[str]] = [[] for _ in range(max(level.values(), default=-1) + 1)]
    for name in graph.order:
        batches[level[name]].append(name)

    plan = ExecutionPlan(batches=tuple(tuple(b) for b in batches))
    described = "; ".join(f"batch {i + 1}: {', '.join(b)}" for i, b in enumerate(plan.batches))
    logger.info(f"Execution plan: {len(plan)} batches for {len(graph)} agents ({described})")
    return plan


def verify_plan(plan: ExecutionPlan, graph: DependencyGraph) -> None:
    """
    Check the plan invariants against its graph.

    Raises:
        PlanningError: An agent is missing or duplicated, or a dependency is
            not in a strictly earlier batch
    """
    names = plan.agent_names
    if sorted(names) != sorted(graph.order) or len(set(names)) != len(names):
        raise PlanningError(f"Plan agents {names} do not match requested agents {list(graph.order)}")

    for index, batch in enumerate(plan.batches):
        for name in batch:
            for dep in graph.dependencies_of(name):
                if plan.batch_index(dep) >= index:
                    raise PlanningError(f"{name} is scheduled in batch {index} but depends on {dep}")
