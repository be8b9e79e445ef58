"""Error taxonomy for the analysis orchestrator.

Structural errors (``PlanningError`` and its subclasses) abort a run before any
agent executes. Per-agent errors (``AgentExecutionFailure``) never leave the
executor; they are folded into a failed ``AnalysisResult``.
"""

from __future__ import annotations

from typing import Sequence


class OrchestrationError(RuntimeError):
    """Base class for every error raised by the orchestrator."""


class RegistrationError(OrchestrationError):
    """An agent could not be constructed or initialized; it is left out of the registry."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Failed to register agent '{name}': {reason}")


class AgentNotFoundError(OrchestrationError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Agent '{name}' is not registered")


class PlanningError(OrchestrationError):
    """No valid execution order exists for the requested agents."""


class MissingDependencyError(PlanningError):
    def __init__(self, agent_name: str, dependency: str):
        self.agent_name = agent_name
        self.dependency = dependency
        if agent_name == dependency:
            message = f"Requested agent '{agent_name}' is not registered"
        else:
            message = f"Agent '{agent_name}' depends on unregistered agent '{dependency}'"
        super().__init__(message)


class CyclicDependencyError(PlanningError):
    def __init__(self, agent_name: str, cycle: Sequence[str] = ()):
        self.agent_name = agent_name
        self.cycle = list(cycle)
        detail = f" ({' -> '.join(self.cycle)})" if self.cycle else ""
        super().__init__(f"Cyclic dependency detected at agent '{agent_name}'{detail}")


class AgentExecutionFailure(OrchestrationError):
    """An agent's analyze() raised or returned an unusable result."""

    def __init__(self, agent_name: str, reason: str):
        self.agent_name = agent_name
        self.reason = reason
        super().__init__(f"Agent '{agent_name}' failed: {reason}")


class AgentTimeoutError(AgentExecutionFailure):
    def __init__(self, agent_name: str, timeout: float):
        self.timeout = timeout
        super().__init__(agent_name, f"analysis timed out after {timeout:g}s")
