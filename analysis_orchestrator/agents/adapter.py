"""
Agent Adapter
=============
Binds an AgentDescriptor to an executable agent object and exposes one
uniform lifecycle to the rest of the orchestrator.

Shape translation happens once, at construction: agents exposing the legacy
``analyze_project(target, options)`` entry point are bound to a shim, and
objects exposing neither entry point are rejected. The executor only ever
calls ``run()``, which never raises for agent-side errors; every failure is
captured into a failed AnalysisResult at this boundary.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from analysis_orchestrator.agents.base import AgentStatus, AnalysisContext
from analysis_orchestrator.errors import AgentExecutionFailure, AgentTimeoutError
from analysis_orchestrator.models import AnalysisResult, Recommendation, ResultStatus, SourceType

if TYPE_CHECKING:
    from analysis_orchestrator.agents.registry import AgentDescriptor


async def _invoke(func: Callable[..., Any], *args: Any) -> Any:
    """Await coroutine functions; run plain callables in a worker thread."""
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    result = await asyncio.to_thread(func, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def release_agent(agent: Any, name: str) -> None:
    """Call ``agent.cleanup()`` if it exists; failures are logged, not raised."""
    cleanup = getattr(agent, "cleanup", None)
    if not callable(cleanup):
        return
    try:
        await _invoke(cleanup)
    except Exception as e:
        logger.warning(f"Cleanup failed for agent {name}: {e}")


def _resolve_analyze(agent: Any, name: str) -> Callable[[AnalysisContext], Any]:
    analyze = getattr(agent, "analyze", None)
    if callable(analyze):
        return analyze

    legacy = getattr(agent, "analyze_project", None)
    if callable(legacy):
        if inspect.iscoroutinefunction(legacy):
            async def _legacy_async(context: AnalysisContext) -> Any:
                return await legacy(context.target, dict(context.options))
            return _legacy_async

        def _legacy(context: AnalysisContext) -> Any:
            return legacy(context.target, dict(context.options))
        return _legacy

    raise TypeError(f"Agent '{name}' exposes neither analyze() nor analyze_project()")


class AgentAdapter:
    """
    Runtime wrapper around one registered agent.

    Owned by the AgentRegistry. Status transitions are internal; other
    components only read ``status``.
    """

    def __init__(self, descriptor: "AgentDescriptor", agent: Any):
        self.descriptor = descriptor
        self.agent = agent
        self._analyze = _resolve_analyze(agent, descriptor.name)
        self._status = AgentStatus.INACTIVE
        self._status_lock = threading.Lock()
        self.last_error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def status(self) -> AgentStatus:
        return self._status

    def _set_status(self, status: AgentStatus) -> None:
        with self._status_lock:
            self._status = status

    async def initialize(self) -> None:
        """Call the agent's initialize(); raises whatever it raises."""
        self._set_status(AgentStatus.INITIALIZING)
        init = getattr(self.agent, "initialize", None)
        try:
            if callable(init):
                await _invoke(init)
        except Exception as e:
            self.last_error = str(e)
            self._set_status(AgentStatus.FAILED)
            raise
        self._set_status(AgentStatus.ACTIVE)

    async def run(self, context: AnalysisContext, timeout: Optional[float] = None) -> AnalysisResult:
        """
        Execute analyze() once and settle it into an AnalysisResult.

        Args:
            context: Run context for this agent
            timeout: Seconds before the agent is reported as timed out (None = no limit)

        Returns:
            AnalysisResult with status SUCCESS or FAILURE
        """
        started_at = datetime.now(timezone.utc).isoformat()
        start = time.perf_counter()
        self._set_status(AgentStatus.ANALYZING)

        try:
            call = _invoke(self._analyze, context)
            if timeout is not None:
                raw = await asyncio.wait_for(call, timeout=timeout)
            else:
                raw = await call
            payload, recommendations = self._normalize(raw)
        except asyncio.CancelledError:
            self._set_status(AgentStatus.FAILED)
            raise
        except asyncio.TimeoutError as e:
            # The agent's own TimeoutError surfaces before the deadline
            if timeout is None or time.perf_counter() - start < timeout:
                return self._failed(e, start, started_at)
            # Worker threads cannot be interrupted; a timed-out sync agent finishes in the background
            return self._failed(AgentTimeoutError(self.name, timeout), start, started_at)
        except Exception as e:
            return self._failed(e, start, started_at)

        self.last_error = None
        self._set_status(AgentStatus.COMPLETED)
        return AnalysisResult(
            agent_name=self.name,
            status=ResultStatus.SUCCESS,
            payload=payload,
            recommendations=recommendations,
            duration_seconds=round(time.perf_counter() - start, 4),
            started_at=started_at,
        )

    def _failed(self, error: BaseException, start: float, started_at: str) -> AnalysisResult:
        self.last_error = str(error)
        self._set_status(AgentStatus.FAILED)
        logger.warning(f"Agent {self.name} failed: {type(error).__name__}: {error}")
        return AnalysisResult.failure(
            self.name,
            error,
            duration_seconds=round(time.perf_counter() - start, 4),
            started_at=started_at,
        )

    def _normalize(self, raw: Any) -> Tuple[Dict[str, Any], Tuple[Recommendation, ...]]:
        """Split an agent's return value into payload and tagged recommendations."""
        if raw is None:
            return {}, ()
        if not isinstance(raw, Mapping):
            raise AgentExecutionFailure(
                self.name, f"analyze() returned {type(raw).__name__}, expected a mapping"
            )

        payload = dict(raw)
        raw_recs = payload.pop("recommendations", None) or []
        if not isinstance(raw_recs, (list, tuple)):
            raise AgentExecutionFailure(self.name, "'recommendations' must be a list")

        recommendations: List[Recommendation] = []
        for item in raw_recs:
            if isinstance(item, Recommendation):
                recommendations.append(replace(
                    item,
                    sources=item.sources | {self.name},
                    source_type=SourceType.AGENT,
                ))
            elif isinstance(item, Mapping):
                try:
                    recommendations.append(Recommendation.from_dict(
                        item, default_source=self.name, source_type=SourceType.AGENT,
                    ))
                except ValueError as e:
                    raise AgentExecutionFailure(self.name, f"invalid recommendation: {e}") from e
            else:
                raise AgentExecutionFailure(
                    self.name, f"unsupported recommendation type {type(item).__name__}"
                )

        return payload, tuple(recommendations)

    async def cleanup(self) -> None:
        """Call the agent's cleanup() if it has one; always ends INACTIVE."""
        cleanup = getattr(self.agent, "cleanup", None)
        try:
            if callable(cleanup):
                await _invoke(cleanup)
        finally:
            self._set_status(AgentStatus.INACTIVE)

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "status": self._status.value,
            "capabilities": sorted(self.descriptor.capabilities),
            "dependencies": list(self.descriptor.dependencies),
            "last_error": self.last_error,
        }
