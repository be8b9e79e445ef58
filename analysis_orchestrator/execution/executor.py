"""
Batch Executor
==============
Runs an ExecutionPlan batch by batch.

- Batches run strictly in order; the next batch starts only after every
  member of the current one has settled.
- Members of a batch run concurrently (coroutines on the event loop, plain
  callables in worker threads).
- A failing agent becomes a failed AnalysisResult and affects nobody else,
  unless it is listed as critical, in which case no later batch is launched.
- Cancellation is cooperative: once the token is cancelled no new batch is
  launched; agents already running are left to finish.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from loguru import logger

from analysis_orchestrator.agents.base import AnalysisContext, CancellationToken
from analysis_orchestrator.agents.registry import AgentRegistry
from analysis_orchestrator.execution.events import EventBus, EventType
from analysis_orchestrator.models import AnalysisResult
from analysis_orchestrator.planning.graph import DependencyGraph
from analysis_orchestrator.planning.planner import ExecutionPlan
from analysis_orchestrator.tracing import get_tracer, safe_set_span_attributes


@dataclass
class ExecutionOutcome:
    """Settled results of one plan execution."""
    results: Dict[str, AnalysisResult] = field(default_factory=dict)
    completed_batches: int = 0
    cancelled: bool = False
    halted_by: Optional[str] = None
    skipped: List[str] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        """True when every batch ran."""
        return not self.cancelled and self.halted_by is None


class BatchExecutor:
    """
    Drives agent adapters through an execution plan.

    The executor reads the registry and the plan; it never mutates either.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        event_bus: Optional[EventBus] = None,
        agent_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.agent_timeout = agent_timeout
        self.tracer = get_tracer("analysis-executor")

    async def execute(
        self,
        plan: ExecutionPlan,
        graph: DependencyGraph,
        target: str,
        options: Optional[Mapping[str, Any]] = None,
        cancellation: Optional[CancellationToken] = None,
        critical_agents: Iterable[str] = (),
    ) -> ExecutionOutcome:
        """
        Execute every batch of ``plan`` in order.

        Args:
            plan: Batches to run
            graph: Graph the plan was built from (supplies upstream results)
            target: Analysis target passed to every agent
            options: Run options passed read-only to every agent
            cancellation: Token checked before each batch
            critical_agents: Agents whose failure stops later batches

        Returns:
            ExecutionOutcome with one result per agent that ran
        """
        options = dict(options or {})
        cancellation = cancellation if cancellation is not None else CancellationToken()
        critical = set(critical_agents)
        outcome = ExecutionOutcome()

        for index, batch in enumerate(plan.batches):
            if cancellation.cancelled:
                outcome.cancelled = True
                logger.warning(f"Run cancelled before batch {index + 1}/{len(plan)}")
                break
            if outcome.halted_by is not None:
                break

            with self.tracer.start_as_current_span(f"batch_{index + 1}") as span:
                safe_set_span_attributes(span, {"batch.index": index, "batch.agents": list(batch)})
                logger.info(f"Batch {index + 1}/{len(plan)} started: {', '.join(batch)}")

                settled = await self._run_batch(batch, graph, target, options, cancellation, outcome.results)
                outcome.results.update(settled)
                outcome.completed_batches += 1

                failed = [name for name in batch if not settled[name].success]
                safe_set_span_attributes(span, {"batch.failed": failed})
                logger.info(
                    f"Batch {index + 1}/{len(plan)} settled: "
                    f"{len(batch) - len(failed)} succeeded, {len(failed)} failed"
                )

            halted = [name for name in failed if name in critical]
            if halted and index < len(plan.batches) - 1:
                outcome.halted_by = halted[0]
                logger.error(f"Critical agent {halted[0]} failed; no further batches will run")

        remaining = plan.batches[outcome.completed_batches:]
        outcome.skipped = [name for batch in remaining for name in batch]
        return outcome

    async def _run_batch(
        self,
        batch: Iterable[str],
        graph: DependencyGraph,
        target: str,
        options: Dict[str, Any],
        cancellation: CancellationToken,
        earlier: Mapping[str, AnalysisResult],
    ) -> Dict[str, AnalysisResult]:
        names = list(batch)
        contexts = [
            AnalysisContext(
                target=target,
                options=options,
                upstream={dep: earlier[dep] for dep in graph.dependencies_of(name) if dep in earlier},
                cancellation=cancellation,
                agent_name=name,
            )
            for name in names
        ]

        settled = await asyncio.gather(
            *(self._run_agent(name, ctx) for name, ctx in zip(names, contexts)),
            return_exceptions=True,
        )

        results: Dict[str, AnalysisResult] = {}
        for name, outcome in zip(names, settled):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                # _run_agent already isolates agent errors; this covers bus/tracing faults
                logger.error(f"Unexpected error while running {name}: {outcome}")
                outcome = AnalysisResult.failure(name, outcome)
                self.event_bus.publish(EventType.AGENT_FAILED, {"name": name, "error": outcome.error})
            results[name] = outcome
        return results

    async def _run_agent(self, name: str, context: AnalysisContext) -> AnalysisResult:
        adapter = self.registry.get(name)
        self.event_bus.publish(EventType.AGENT_STARTED, {"name": name})

        with self.tracer.start_as_current_span(f"agent_{name}") as span:
            result = await adapter.run(context, timeout=self.agent_timeout)
            safe_set_span_attributes(span, {
                "agent.name": name,
                "agent.status": result.status.value,
                "agent.duration_seconds": result.duration_seconds,
                "agent.error": result.error,
            })

        if result.success:
            self.event_bus.publish(EventType.AGENT_COMPLETED, {"name": name, "result": result})
        else:
            self.event_bus.publish(
                EventType.AGENT_FAILED,
                {"name": name, "error": result.error, "error_type": result.error_type},
            )
        return result
