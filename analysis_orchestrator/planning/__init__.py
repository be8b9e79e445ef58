"""Dependency graph building and execution planning."""

from .graph import DependencyGraph, GraphNode, build_dependency_graph
from .planner import ExecutionPlan, plan_execution, verify_plan

__all__ = [
    "DependencyGraph",
    "GraphNode",
    "build_dependency_graph",
    "ExecutionPlan",
    "plan_execution",
    "verify_plan",
]
