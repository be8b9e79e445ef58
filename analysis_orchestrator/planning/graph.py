"""Dependency graph over the agents requested for one run.

Forward edges point from an agent to the dependencies it must wait for;
reverse edges (dependents) are kept for diagnostics. Only dependencies that
are themselves requested become edges. A dependency on a registered agent
that was not requested imposes no ordering. A dependency on an agent that
is not registered at all is a structural error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Tuple

from loguru import logger

from analysis_orchestrator.agents.registry import AgentDescriptor
from analysis_orchestrator.errors import MissingDependencyError


@dataclass
class GraphNode:
    name: str
    dependencies: List[str] = field(default_factory=list)
    dependents: List[str] = field(default_factory=list)


@dataclass
class DependencyGraph:
    """Nodes keyed by agent name; ``order`` is the de-duplicated request order."""
    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    order: Tuple[str, ...] = ()

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def dependencies_of(self, name: str) -> List[str]:
        return list(self.nodes[name].dependencies)

    def dependents_of(self, name: str) -> List[str]:
        return list(self.nodes[name].dependents)

    def to_dict(self) -> Dict[str, dict]:
        return {
            name: {"dependencies": list(node.dependencies), "dependents": list(node.dependents)}
            for name, node in self.nodes.items()
        }


def build_dependency_graph(
    requested: Iterable[str],
    descriptors: Mapping[str, AgentDescriptor],
) -> DependencyGraph:
    """
    Build the dependency graph for the requested agents.

    Args:
        requested: Agent names to run, in caller order (duplicates ignored)
        descriptors: Every registered agent's descriptor

    Returns:
        DependencyGraph restricted to the requested set

    Raises:
        MissingDependencyError: A requested agent, or a dependency it declares,
            is not registered
    """
    order = tuple(dict.fromkeys(requested))
    requested_set = set(order)

    for name in order:
        if name not in descriptors:
            raise MissingDependencyError(name, name)
        for dep in descriptors[name].dependencies:
            if dep not in descriptors:
                raise MissingDependencyError(name, dep)

    graph = DependencyGraph(order=order)
    for name in order:
        graph.nodes[name] = GraphNode(name=name)

    for name in order:
        declared = descriptors[name].dependencies
        ignored = [dep for dep in declared if dep not in requested_set]
        if ignored:
            logger.debug(f"{name}: dependencies {ignored} not requested, no ordering constraint")

        # Edges follow request order so traversal is independent of declaration order
        edges = [dep for dep in order if dep in declared]
        graph.nodes[name].dependencies = edges
        for dep in edges:
            graph.nodes[dep].dependents.append(name)

    logger.debug(f"Dependency graph built: {graph.to_dict()}")
    return graph
