"""
Agent Registry
==============
Holds the named agent adapters together with their descriptors
(capabilities, dependencies, reporting priority).

This enables:
- Agent lookup by name
- Capability-based agent selection
- Dependency metadata for graph building
- Guaranteed cleanup of every adapter at teardown

The registry is an owned instance, not a process-wide singleton; its
lifetime is the orchestrator's.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from loguru import logger
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from analysis_orchestrator.agents.adapter import AgentAdapter, release_agent
from analysis_orchestrator.config import EXECUTION
from analysis_orchestrator.errors import AgentNotFoundError, RegistrationError
from analysis_orchestrator.models import Priority


AgentFactory = Callable[[], Any]


@dataclass(frozen=True)
class AgentDescriptor:
    """Static description of an agent, fixed at registration time."""
    name: str
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    dependencies: Tuple[str, ...] = ()
    priority: Priority = Priority.MEDIUM    # Reporting tie-break only, never scheduling
    description: str = ""

    def __post_init__(self):
        if not self.name or not str(self.name).strip():
            raise ValueError("AgentDescriptor requires a non-empty name")
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))
        # De-duplicate while keeping declaration order
        object.__setattr__(self, "dependencies", tuple(dict.fromkeys(self.dependencies)))
        object.__setattr__(self, "priority", Priority.parse(self.priority))

    @classmethod
    def from_agent(cls, name: str, agent: Any, **kwargs: Any) -> "AgentDescriptor":
        """Read capabilities and dependencies from an agent's metadata methods."""
        get_caps = getattr(agent, "get_capabilities", None)
        get_deps = getattr(agent, "get_dependencies", None)
        capabilities = get_caps() if callable(get_caps) else getattr(agent, "capabilities", ())
        dependencies = get_deps() if callable(get_deps) else getattr(agent, "dependencies", ())
        return cls(
            name=name,
            capabilities=frozenset(capabilities or ()),
            dependencies=tuple(dependencies or ()),
            **kwargs,
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "capabilities": sorted(self.capabilities),
            "dependencies": list(self.dependencies),
            "priority": self.priority.value,
            "description": self.description,
        }


class AgentRegistry:
    """
    Registry of initialized agent adapters, keyed by unique name.

    Usage:
        registry = AgentRegistry()
        await registry.register("code_quality", descriptor, CodeQualityAgent)
        adapter = registry.get("code_quality")
        ...
        await registry.cleanup_all()
    """

    def __init__(self, init_attempts: Optional[int] = None, init_retry_max_wait: Optional[float] = None):
        """
        Args:
            init_attempts: Attempts for each agent's initialize() (default from config)
            init_retry_max_wait: Upper bound on the backoff between attempts, in seconds
        """
        self.init_attempts = max(1, init_attempts if init_attempts is not None else EXECUTION.INIT_ATTEMPTS)
        self.init_retry_max_wait = (
            init_retry_max_wait if init_retry_max_wait is not None else EXECUTION.INIT_RETRY_MAX_WAIT
        )
        self._adapters: Dict[str, AgentAdapter] = {}

    async def register(
        self,
        name: str,
        descriptor: Optional[AgentDescriptor],
        factory: AgentFactory,
    ) -> AgentAdapter:
        """
        Construct, initialize and store one agent.

        Args:
            name: Unique agent name
            descriptor: Agent metadata; derived from the agent itself when None
            factory: Zero-argument callable returning the agent object

        Returns:
            The registered AgentAdapter

        Raises:
            RegistrationError: On duplicate names, construction failure,
                unsupported agent shape or initialization failure. The
                registry is left unchanged.
        """
        if name in self._adapters:
            raise RegistrationError(name, "an agent with this name is already registered")
        if descriptor is not None and descriptor.name != name:
            raise RegistrationError(name, f"descriptor is named '{descriptor.name}'")

        try:
            agent = factory()
        except Exception as e:
            logger.error(f"Failed to construct agent {name}: {e}")
            raise RegistrationError(name, f"factory raised {type(e).__name__}: {e}") from e

        try:
            if descriptor is None:
                descriptor = AgentDescriptor.from_agent(name, agent)
            adapter = AgentAdapter(descriptor, agent)
        except Exception as e:
            logger.error(f"Rejected agent {name}: {type(e).__name__}: {e}")
            await release_agent(agent, name)
            raise RegistrationError(name, str(e)) from e

        try:
            await self._initialize_with_retry(adapter)
        except Exception as e:
            logger.error(f"Failed to initialize agent {name}: {e}")
            await self._release(adapter)
            raise RegistrationError(name, f"initialize() raised {type(e).__name__}: {e}") from e

        self._adapters[name] = adapter
        logger.info(
            f"Registered agent {name} "
            f"(capabilities={sorted(descriptor.capabilities)}, dependencies={list(descriptor.dependencies)})"
        )
        return adapter

    async def _initialize_with_retry(self, adapter: AgentAdapter) -> None:
        # reraise=True surfaces the agent's own exception after the last attempt
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.init_attempts),
            wait=wait_exponential(multiplier=0.5, max=self.init_retry_max_wait),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Retrying initialize() for {adapter.name} "
                        f"(attempt {attempt.retry_state.attempt_number}/{self.init_attempts})"
                    )
                await adapter.initialize()

    @staticmethod
    async def _release(adapter: AgentAdapter) -> None:
        try:
            await adapter.cleanup()
        except Exception as e:
            logger.warning(f"Cleanup failed for agent {adapter.name}: {e}")

    async def unregister(self, name: str) -> None:
        """Clean up and remove one agent."""
        adapter = self.get(name)
        del self._adapters[name]
        await self._release(adapter)
        logger.info(f"Unregistered agent {name}")

    def get(self, name: str) -> AgentAdapter:
        """Get adapter by name; raises AgentNotFoundError if absent."""
        adapter = self._adapters.get(name)
        if adapter is None:
            raise AgentNotFoundError(name)
        return adapter

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)

    def names(self) -> List[str]:
        """Registered names, in registration order."""
        return list(self._adapters.keys())

    def descriptors(self) -> Dict[str, AgentDescriptor]:
        return {name: adapter.descriptor for name, adapter in self._adapters.items()}

    def list_capable_of(self, capability: str) -> List[AgentAdapter]:
        """All adapters advertising ``capability``, in registration order."""
        return [a for a in self._adapters.values() if capability in a.descriptor.capabilities]

    def select(self, names: Optional[Iterable[str]] = None, capabilities: Optional[Iterable[str]] = None) -> List[str]:
        """
        Resolve a run's requested agent names.

        Explicit names come first in the given order, followed by agents
        matched by capability in registration order. With neither given,
        every registered agent is selected.
        """
        names = list(names or [])
        capabilities = list(capabilities or [])
        if not names and not capabilities:
            return self.names()

        selected = list(dict.fromkeys(names))
        for capability in capabilities:
            for adapter in self.list_capable_of(capability):
                if adapter.name not in selected:
                    selected.append(adapter.name)
        return selected

    async def cleanup_all(self) -> None:
        """Clean up every adapter regardless of its status, then empty the registry."""
        adapters = list(self._adapters.values())
        self._adapters.clear()
        for adapter in adapters:
            await self._release(adapter)
        if adapters:
            logger.info(f"Cleaned up {len(adapters)} agents")

    def get_status(self) -> Dict[str, dict]:
        return {name: adapter.get_status() for name, adapter in self._adapters.items()}

    def summary(self) -> str:
        """Generate a human-readable summary of all agents."""
        lines = ["# Agent Registry Summary", ""]
        lines.append("| Name | Status | Priority | Capabilities | Depends On |")
        lines.append("|------|--------|----------|--------------|------------|")
        for name, adapter in self._adapters.items():
            d = adapter.descriptor
            caps = ", ".join(sorted(d.capabilities)) or "-"
            deps = ", ".join(d.dependencies) or "-"
            lines.append(f"| {name} | {adapter.status.value} | {d.priority.value} | {caps} | {deps} |")
        lines.append("")
        return "\n".join(lines)
