"""
Analysis Orchestrator
=====================
Public entry point: registers agents, plans and executes runs, and ranks
the combined findings.

Run pipeline:
1. Cache lookup on (target, options)
2. Select requested agents (explicit names and/or capability tags)
3. Build the dependency graph and the batch plan (structural errors raise here,
   before any agent runs)
4. Execute batches
5. Correlate, rank and deduplicate recommendations; build the summary
6. Cache write (completed runs only) and optional history record

Key responsibilities:
- Own the registry, event bus, cache and history for its lifetime
- Serialize runs (one run at a time per orchestrator)
- Tear down every agent on cleanup, on all exit paths

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from analysis_orchestrator.agents.base import CancellationToken
from analysis_orchestrator.agents.registry import AgentDescriptor, AgentFactory, AgentRegistry
from analysis_orchestrator.cache import ResultCache, make_cache_key
from analysis_orchestrator.config import CACHE, EXECUTION, HISTORY, get_agent_timeout
from analysis_orchestrator.errors import PlanningError, RegistrationError
from analysis_orchestrator.execution.events import Event, EventBus, EventType, Unsubscribe
from analysis_orchestrator.execution.executor import BatchExecutor
from analysis_orchestrator.history import RunHistory
from analysis_orchestrator.models import AnalysisResult, RunResult
from analysis_orchestrator.planning.graph import build_dependency_graph
from analysis_orchestrator.planning.planner import ExecutionPlan, plan_execution
from analysis_orchestrator.recommendations.correlation import CorrelationRule
from analysis_orchestrator.recommendations.engine import RecommendationEngine, build_summary
from analysis_orchestrator.tracing import init_tracing, safe_set_span_attributes


@dataclass
class OrchestratorConfig:
    """Configuration for the orchestrator."""
    # Caching settings
    cache_enabled: bool = CACHE.ENABLED
    cache_ttl_seconds: float = CACHE.TTL_SECONDS

    # Timeout settings (None = no per-agent timeout)
    agent_timeout: Optional[float] = field(default_factory=get_agent_timeout)

    # Registration settings
    init_attempts: int = EXECUTION.INIT_ATTEMPTS
    init_retry_max_wait: float = EXECUTION.INIT_RETRY_MAX_WAIT

    # History settings (off by default)
    history_enabled: bool = HISTORY.ENABLED
    history_path: str = HISTORY.PATH
    history_max_runs: int = HISTORY.MAX_RUNS


class AnalysisOrchestrator:
    """
    Plugin-based analysis orchestrator.

    Usage:
        async with AnalysisOrchestrator() as orchestrator:
            await orchestrator.register_agent("code_quality", None, CodeQualityAgent)
            await orchestrator.register_agent("api_documentation", None, ApiDocAgent)
            result = await orchestrator.run("/path/to/project")

        for rec in result.recommendations:
            print(rec.priority.value, rec.title)
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        event_bus: Optional[EventBus] = None,
        cache: Optional[ResultCache] = None,
        history: Optional[RunHistory] = None,
        rules: Optional[Sequence[CorrelationRule]] = None,
    ):
        self.config = config if config is not None else OrchestratorConfig()
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.registry = AgentRegistry(
            init_attempts=self.config.init_attempts,
            init_retry_max_wait=self.config.init_retry_max_wait,
        )
        self.cache = cache if cache is not None else ResultCache(ttl_seconds=self.config.cache_ttl_seconds)
        self.history = history
        if self.history is None and self.config.history_enabled:
            self.history = RunHistory(self.config.history_path, max_runs=self.config.history_max_runs)
        self.engine = RecommendationEngine(rules)
        self.executor = BatchExecutor(self.registry, self.event_bus, self.config.agent_timeout)
        self.tracer = init_tracing()

        self._run_lock: Optional[asyncio.Lock] = None
        self._current_run: Optional[str] = None
        self._runs_completed = 0
        self._closed = False

        logger.debug(
            f"Orchestrator created (cache={'on' if self.config.cache_enabled else 'off'}, "
            f"timeout={self.config.agent_timeout}, history={'on' if self.history else 'off'})"
        )

    # ---- registration -------------------------------------------------

    async def register_agent(
        self,
        name: str,
        descriptor: Optional[AgentDescriptor],
        factory: AgentFactory,
    ) -> bool:
        """
        Register one agent.

        A failing agent is logged and left out; the rest of the registry is
        unaffected.

        Returns:
            True if the agent was registered
        """
        self._ensure_open()
        try:
            adapter = await self.registry.register(name, descriptor, factory)
        except RegistrationError as e:
            self.event_bus.publish(EventType.AGENT_REGISTRATION_FAILED, {"name": name, "error": str(e)})
            return False

        self.event_bus.publish(EventType.AGENT_REGISTERED, {"name": name, "descriptor": adapter.descriptor.to_dict()})
        return True

    async def unregister_agent(self, name: str) -> None:
        await self.registry.unregister(name)

    # ---- event subscriptions ------------------------------------------

    def on_agent_started(self, handler: Callable[[Event], Any]) -> Unsubscribe:
        return self.event_bus.subscribe(EventType.AGENT_STARTED, handler)

    def on_agent_completed(self, handler: Callable[[Event], Any]) -> Unsubscribe:
        return self.event_bus.subscribe(EventType.AGENT_COMPLETED, handler)

    def on_agent_failed(self, handler: Callable[[Event], Any]) -> Unsubscribe:
        return self.event_bus.subscribe(EventType.AGENT_FAILED, handler)

    def on_run_completed(self, handler: Callable[[Event], Any]) -> Unsubscribe:
        return self.event_bus.subscribe(EventType.RUN_COMPLETED, handler)

    # ---- planning and execution ---------------------------------------

    def plan(self, options: Optional[Mapping[str, Any]] = None) -> ExecutionPlan:
        """
        Compute the execution plan a run with ``options`` would use.

        Raises:
            MissingDependencyError: A requested or declared agent is unregistered
            CyclicDependencyError: The requested agents form a cycle
        """
        options = dict(options or {})
        requested = self.registry.select(options.get("agents"), options.get("capabilities"))
        graph = build_dependency_graph(requested, self.registry.descriptors())
        return plan_execution(graph)

    async def run(
        self,
        target: str,
        options: Optional[Mapping[str, Any]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> RunResult:
        """
        Run the requested agents against ``target``.

        Args:
            target: Path of the project to analyze
            options: Run options. Recognized keys:
                - agents: explicit agent names to run
                - capabilities: capability tags; every matching agent is added
                - use_cache: set False to bypass the cache lookup (default True)
                - critical_agents: agents whose failure stops later batches
                All options are also passed read-only to each agent.
            cancellation: Token that stops the launch of further batches

        Returns:
            RunResult, possibly containing failed or skipped agents

        Raises:
            MissingDependencyError, CyclicDependencyError: No valid plan exists;
                no agent has run
        """
        self._ensure_open()
        if self._run_lock is None:
            self._run_lock = asyncio.Lock()

        async with self._run_lock:
            return await self._run_locked(str(target), dict(options or {}), cancellation)

    async def _run_locked(
        self,
        target: str,
        options: Dict[str, Any],
        cancellation: Optional[CancellationToken],
    ) -> RunResult:
        use_cache = self.config.cache_enabled and bool(options.get("use_cache", True))
        cache_key = make_cache_key(target, options)

        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Returning cached result {cached.run_id} for {target}")
                self.event_bus.publish(EventType.RUN_COMPLETED, {
                    "run_id": cached.run_id, "target": target, "cached": True, "summary": cached.summary,
                })
                return cached

        run_id = f"run_{uuid.uuid4().hex[:12]}"
        start = time.perf_counter()
        self._current_run = run_id
        cancellation = cancellation if cancellation is not None else CancellationToken()

        try:
            with self.tracer.start_as_current_span("analysis_run") as span:
                safe_set_span_attributes(span, {"run.id": run_id, "run.target": target})
                self.event_bus.publish(EventType.RUN_STARTED, {"run_id": run_id, "target": target})
                logger.info(f"Starting run {run_id} on {target}")

                try:
                    requested = self.registry.select(options.get("agents"), options.get("capabilities"))
                    graph = build_dependency_graph(requested, self.registry.descriptors())
                    plan = plan_execution(graph)
                except PlanningError as e:
                    logger.error(f"Run {run_id} could not be planned: {e}")
                    self.event_bus.publish(EventType.RUN_FAILED, {
                        "run_id": run_id, "target": target, "error": str(e), "error_type": type(e).__name__,
                    })
                    raise

                outcome = await self.executor.execute(
                    plan,
                    graph,
                    target,
                    options=options,
                    cancellation=cancellation,
                    critical_agents=options.get("critical_agents") or (),
                )

                results: Dict[str, AnalysisResult] = dict(outcome.results)
                reason = "run cancelled" if outcome.cancelled else f"critical agent '{outcome.halted_by}' failed"
                for name in outcome.skipped:
                    results[name] = AnalysisResult.skipped(name, reason)

                agent_priorities = {name: d.priority for name, d in self.registry.descriptors().items()}
                recommendations = self.engine.generate(results, agent_priorities)
                summary = build_summary(
                    run_id,
                    results,
                    recommendations,
                    batch_count=len(plan),
                    duration_seconds=time.perf_counter() - start,
                    cancelled=outcome.cancelled,
                    halted_by=outcome.halted_by,
                )
                run_result = RunResult(
                    run_id=run_id,
                    target=target,
                    results=results,
                    recommendations=recommendations,
                    summary=summary,
                    execution_plan=plan.to_list(),
                )
                safe_set_span_attributes(span, {
                    "run.status": summary["status"],
                    "run.failed_agents": summary["failed_agent_names"],
                    "run.recommendations": summary["total_recommendations"],
                })
        finally:
            self._current_run = None

        if outcome.finished and self.config.cache_enabled:
            self.cache.put(cache_key, run_result)
        if self.history is not None:
            self.history.record(run_result)

        self._runs_completed += 1
        self.event_bus.publish(EventType.RUN_COMPLETED, {
            "run_id": run_id, "target": target, "cached": False, "summary": summary,
        })
        logger.info(
            f"Run {run_id} finished ({summary['status']}): "
            f"{summary['succeeded_agents']}/{summary['total_agents']} agents succeeded, "
            f"{summary['total_recommendations']} recommendations in {summary['duration_seconds']:.2f}s"
        )
        return run_result

    # ---- status and teardown ------------------------------------------

    def status(self) -> Dict[str, Any]:
        return {
            "agents": self.registry.get_status(),
            "current_run": self._current_run,
            "runs_completed": self._runs_completed,
            "cache": self.cache.stats(),
            "history_enabled": self.history is not None,
            "closed": self._closed,
        }

    def recent_runs(self) -> List[Dict[str, Any]]:
        """History entries, oldest first; empty when history is disabled."""
        return self.history.load() if self.history is not None else []

    async def cleanup(self) -> None:
        """Clean up every agent, clear the cache and close the event bus."""
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down analysis orchestrator")
        try:
            await self.registry.cleanup_all()
        finally:
            self.cache.clear()
            self.event_bus.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Orchestrator has been cleaned up")

    async def __aenter__(self) -> "AnalysisOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cleanup()
