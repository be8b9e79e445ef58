"""Agent contract, adapter and registry."""

from .base import AgentStatus, AnalysisAgent, AnalysisContext, CancellationToken
from .adapter import AgentAdapter
from .registry import AgentDescriptor, AgentFactory, AgentRegistry

__all__ = [
    "AgentStatus",
    "AnalysisAgent",
    "AnalysisContext",
    "CancellationToken",
    "AgentAdapter",
    "AgentDescriptor",
    "AgentFactory",
    "AgentRegistry",
]
