"""
Base Agent Classes
==================
The uniform contract every pluggable analysis agent satisfies:

- initialize(): idempotent setup, called once at registration
- analyze(context): the unit of work, returns a mapping payload
- cleanup(): releases resources, always called at orchestrator teardown
- get_capabilities() / get_dependencies(): static metadata

``analyze`` may be a plain function (run in a worker thread) or a coroutine
function (run on the event loop). Agents that do not subclass
``AnalysisAgent`` are wrapped by ``AgentAdapter``.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, FrozenSet, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from analysis_orchestrator.models import AnalysisResult


class AgentStatus(Enum):
    """Adapter lifecycle: inactive -> initializing -> active -> analyzing -> completed|failed."""
    INACTIVE = "inactive"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class CancellationToken:
    """
    Cooperative cancellation signal shared between a caller and a run.

    Thread-safe, so agents running in worker threads can poll it.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout; returns True if cancelled."""
        return self._event.wait(timeout)


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class AnalysisContext:
    """What an agent sees for one run. All mappings are read-only views."""
    target: str
    options: Mapping[str, Any] = field(default_factory=dict)
    upstream: Mapping[str, "AnalysisResult"] = field(default_factory=dict)
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    agent_name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "options", _frozen(self.options))
        object.__setattr__(self, "upstream", _frozen(self.upstream))


class AnalysisAgent(ABC):
    """
    Base class for analysis agents.

    Subclasses declare ``capabilities`` and ``dependencies`` as class
    attributes and implement ``analyze``. The returned mapping is the agent's
    payload; an optional ``recommendations`` key holds a list of
    recommendation dicts.
    """

    capabilities: Tuple[str, ...] = ()
    dependencies: Tuple[str, ...] = ()

    def initialize(self) -> None:
        """Prepare resources. Must be safe to call more than once."""

    @abstractmethod
    def analyze(self, context: AnalysisContext) -> Mapping[str, Any]:
        """Run the analysis for ``context.target``."""

    def cleanup(self) -> None:
        """Release resources acquired in initialize()."""

    def get_capabilities(self) -> FrozenSet[str]:
        return frozenset(self.capabilities)

    def get_dependencies(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(self.dependencies))
