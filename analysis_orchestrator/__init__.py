"""
Analysis Orchestrator
=====================
Plugin-based orchestration of independent analysis agents: dependency-aware
batch planning, concurrent execution, result caching and cross-agent
correlation of recommendations.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from .agents import (
    AgentAdapter,
    AgentDescriptor,
    AgentRegistry,
    AgentStatus,
    AnalysisAgent,
    AnalysisContext,
    CancellationToken,
)
from .cache import ResultCache, make_cache_key
from .errors import (
    AgentExecutionFailure,
    AgentNotFoundError,
    AgentTimeoutError,
    CyclicDependencyError,
    MissingDependencyError,
    OrchestrationError,
    PlanningError,
    RegistrationError,
)
from .execution import Event, EventBus, EventType
from .models import AnalysisResult, Priority, Recommendation, ResultStatus, RunResult, SourceType
from .orchestrator import AnalysisOrchestrator, OrchestratorConfig
from .planning import DependencyGraph, ExecutionPlan, build_dependency_graph, plan_execution

__version__ = "0.1.0"

__all__ = [
    "AgentAdapter",
    "AgentDescriptor",
    "AgentRegistry",
    "AgentStatus",
    "AnalysisAgent",
    "AnalysisContext",
    "CancellationToken",
    "ResultCache",
    "make_cache_key",
    "AgentExecutionFailure",
    "AgentNotFoundError",
    "AgentTimeoutError",
    "CyclicDependencyError",
    "MissingDependencyError",
    "OrchestrationError",
    "PlanningError",
    "RegistrationError",
    "Event",
    "EventBus",
    "EventType",
    "AnalysisResult",
    "Priority",
    "Recommendation",
    "ResultStatus",
    "RunResult",
    "SourceType",
    "AnalysisOrchestrator",
    "OrchestratorConfig",
    "DependencyGraph",
    "ExecutionPlan",
    "build_dependency_graph",
    "plan_execution",
]
