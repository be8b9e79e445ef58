"""
Tests for Analysis Orchestrator
===============================
End-to-end runs: registration, planning errors, failure isolation, caching,
deduplication, events, cancellation, history and teardown.
"""

import asyncio
import threading

import pytest

from analysis_orchestrator import (
    AnalysisOrchestrator,
    CancellationToken,
    CyclicDependencyError,
    EventType,
    MissingDependencyError,
    OrchestratorConfig,
    Priority,
    ResultCache,
    ResultStatus,
    SourceType,
)
from analysis_orchestrator.history import RunHistory

from agent_stubs import AsyncStubAgent, FlakyInitAgent, StubAgent, descriptor


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_orchestrator(**config_overrides):
    config = OrchestratorConfig(agent_timeout=None, history_enabled=False, **config_overrides)
    return AnalysisOrchestrator(config)


async def register_all(orchestrator, agents, deps=None, capabilities=None):
    deps = deps or {}
    capabilities = capabilities or {}
    for name, agent in agents.items():
        registered = await orchestrator.register_agent(
            name,
            descriptor(name, dependencies=deps.get(name, ()), capabilities=capabilities.get(name, ())),
            lambda a=agent: a,
        )
        assert registered


class TestRegistration:
    """register_agent() is non-fatal for failing agents."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_registration_leaves_others(self):
        orchestrator = make_orchestrator(init_attempts=1)
        events = []
        orchestrator.event_bus.subscribe_all(lambda e: events.append((e.type, e.data.get("name"))))

        assert await orchestrator.register_agent("good", descriptor("good"), StubAgent)
        assert not await orchestrator.register_agent("bad", descriptor("bad"), lambda: FlakyInitAgent(failures=9))

        assert orchestrator.registry.names() == ["good"]
        assert (EventType.AGENT_REGISTERED, "good") in events
        assert (EventType.AGENT_REGISTRATION_FAILED, "bad") in events

        result = await orchestrator.run("/repo")
        assert list(result.results) == ["good"]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unregister_agent(self):
        orchestrator = make_orchestrator()
        agent = StubAgent()
        await register_all(orchestrator, {"a": agent, "b": StubAgent()})

        await orchestrator.unregister_agent("a")

        assert agent.cleaned_up == 1
        result = await orchestrator.run("/repo")
        assert list(result.results) == ["b"]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_metadata_error_is_non_fatal(self):
        class BrokenMetadata(StubAgent):
            def get_capabilities(self):
                raise RuntimeError("metadata backend down")

        orchestrator = make_orchestrator()
        failures = []
        orchestrator.event_bus.subscribe(EventType.AGENT_REGISTRATION_FAILED, failures.append)

        assert not await orchestrator.register_agent("bad", None, BrokenMetadata)

        assert len(failures) == 1
        assert "metadata backend down" in failures[0].data["error"]
        await orchestrator.cleanup()


class TestPlanning:
    """Structural errors abort the run before any agent executes."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_plan_scenario(self):
        orchestrator = make_orchestrator()
        await register_all(
            orchestrator,
            {"A": StubAgent(), "B": StubAgent(), "C": StubAgent()},
            deps={"C": ["A", "B"]},
        )

        plan = orchestrator.plan()
        result = await orchestrator.run("/repo")

        assert plan.to_list() == [["A", "B"], ["C"]]
        assert result.execution_plan == [["A", "B"], ["C"]]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cycle_aborts_run_before_execution(self):
        orchestrator = make_orchestrator()
        calls = []
        await register_all(
            orchestrator,
            {"X": StubAgent(calls=calls), "Y": StubAgent(calls=calls), "free": StubAgent(calls=calls)},
            deps={"X": ["Y"], "Y": ["X"]},
        )
        failures = []
        orchestrator.event_bus.subscribe(EventType.RUN_FAILED, failures.append)

        with pytest.raises(CyclicDependencyError):
            await orchestrator.run("/repo")

        assert calls == []
        assert len(failures) == 1
        assert failures[0].data["error_type"] == "CyclicDependencyError"
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unrequested_dependency_is_ignored(self):
        orchestrator = make_orchestrator()
        w, z = StubAgent(), StubAgent()
        await register_all(orchestrator, {"W": w, "Z": z}, deps={"Z": ["W"]})

        result = await orchestrator.run("/repo", {"agents": ["Z"]})

        assert result.execution_plan == [["Z"]]
        assert w.calls == []
        assert list(result.results) == ["Z"]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unregistered_dependency_aborts_run(self):
        orchestrator = make_orchestrator()
        await register_all(orchestrator, {"Z": StubAgent()}, deps={"Z": ["W"]})

        with pytest.raises(MissingDependencyError):
            await orchestrator.run("/repo")
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_requested_agent_aborts_run(self):
        orchestrator = make_orchestrator()
        await register_all(orchestrator, {"A": StubAgent()})

        with pytest.raises(MissingDependencyError):
            await orchestrator.run("/repo", {"agents": ["A", "ghost"]})
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_registry_runs_nothing(self):
        orchestrator = make_orchestrator()

        result = await orchestrator.run("/repo")

        assert result.results == {}
        assert result.execution_plan == []
        assert result.summary["status"] == "healthy"
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_selection_by_capability(self):
        orchestrator = make_orchestrator()
        await register_all(
            orchestrator,
            {"sec": StubAgent(), "docs": StubAgent(), "lint": StubAgent()},
            capabilities={"sec": ["security"], "docs": ["documentation"], "lint": ["quality"]},
        )

        result = await orchestrator.run("/repo", {"agents": ["lint"], "capabilities": ["security"]})

        assert list(result.results) == ["lint", "sec"]
        await orchestrator.cleanup()


class TestFailureIsolation:
    """One failing agent degrades the report instead of blocking it."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_agent_reported_and_others_run(self):
        orchestrator = make_orchestrator()
        await register_all(
            orchestrator,
            {
                "A": StubAgent(payload={"ok": 1}),
                "B": StubAgent(error=RuntimeError("analyzer crashed")),
                "C": StubAgent(payload={"ok": 3}),
            },
            deps={"C": ["A", "B"]},
        )

        result = await orchestrator.run("/repo")

        assert result.failed_agents == ["B"]
        assert result.results["B"].error == "analyzer crashed"
        assert result.results["C"].success
        assert result.summary["status"] == "degraded"
        assert result.summary["failed_agent_names"] == ["B"]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_critical_agent_halts_run(self):
        orchestrator = make_orchestrator()
        later = StubAgent()
        await register_all(
            orchestrator,
            {"A": StubAgent(error=RuntimeError("fatal")), "C": later},
            deps={"C": ["A"]},
        )

        result = await orchestrator.run("/repo", {"critical_agents": ["A"]})

        assert later.calls == []
        assert result.results["C"].status is ResultStatus.SKIPPED
        assert "A" in result.results["C"].error
        assert result.summary["status"] == "halted"
        assert result.summary["skipped_agent_names"] == ["C"]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_per_agent_timeout(self):
        orchestrator = make_orchestrator()
        orchestrator.executor.agent_timeout = 0.05
        await register_all(orchestrator, {"slow": AsyncStubAgent(delay=5), "fast": AsyncStubAgent()})

        result = await orchestrator.run("/repo")

        assert result.results["slow"].error_type == "AgentTimeoutError"
        assert result.results["fast"].success
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_critical_failure_in_last_batch_is_degraded_and_cached(self):
        orchestrator = make_orchestrator()
        failing = StubAgent(error=RuntimeError("fatal"))
        await register_all(orchestrator, {"A": StubAgent(), "B": failing}, deps={"B": ["A"]})

        result = await orchestrator.run("/repo", {"critical_agents": ["B"]})
        again = await orchestrator.run("/repo", {"critical_agents": ["B"]})

        assert result.summary["status"] == "degraded"
        assert result.summary["halted_by"] is None
        assert result.summary["skipped_agents"] == 0
        assert len(orchestrator.cache) == 1
        assert again == result
        assert failing.calls == ["B"]
        await orchestrator.cleanup()


class TestCaching:
    """Warm-cache runs return the same result without re-running agents."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_warm_cache_returns_equal_result_without_rerun(self):
        orchestrator = make_orchestrator()
        agent = StubAgent(payload={"score": 1}, recommendations=[{"title": "Fix it", "priority": "high"}])
        await register_all(orchestrator, {"a": agent})

        first = await orchestrator.run("/repo", {"depth": 1, "mode": "full"})
        second = await orchestrator.run("/repo", {"mode": "full", "depth": 1})

        assert agent.calls == ["a"]
        assert second == first
        assert second is not first
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_use_cache_false_reruns(self):
        orchestrator = make_orchestrator()
        agent = StubAgent()
        await register_all(orchestrator, {"a": agent})

        first = await orchestrator.run("/repo")
        second = await orchestrator.run("/repo", {"use_cache": False})

        assert agent.calls == ["a", "a"]
        assert second.run_id != first.run_id
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_expired_entry_reruns(self):
        clock = FakeClock()
        orchestrator = AnalysisOrchestrator(
            OrchestratorConfig(agent_timeout=None, history_enabled=False),
            cache=ResultCache(ttl_seconds=300, clock=clock),
        )
        agent = StubAgent()
        await register_all(orchestrator, {"a": agent})

        await orchestrator.run("/repo")
        clock.now = 299
        await orchestrator.run("/repo")
        clock.now = 300
        await orchestrator.run("/repo")

        assert agent.calls == ["a", "a"]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cache_disabled(self):
        orchestrator = make_orchestrator(cache_enabled=False)
        agent = StubAgent()
        await register_all(orchestrator, {"a": agent})

        await orchestrator.run("/repo")
        await orchestrator.run("/repo")

        assert agent.calls == ["a", "a"]
        assert len(orchestrator.cache) == 0
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancelled_run_not_cached(self):
        orchestrator = make_orchestrator()
        agent = StubAgent()
        await register_all(orchestrator, {"a": agent})
        token = CancellationToken()
        token.cancel()

        cancelled = await orchestrator.run("/repo", cancellation=token)
        fresh = await orchestrator.run("/repo")

        assert cancelled.summary["status"] == "cancelled"
        assert cancelled.results["a"].status is ResultStatus.SKIPPED
        assert fresh.results["a"].success
        assert agent.calls == ["a"]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_injected_cache_is_kept(self):
        cache = ResultCache(ttl_seconds=42)
        orchestrator = AnalysisOrchestrator(OrchestratorConfig(agent_timeout=None, history_enabled=False), cache=cache)

        assert orchestrator.cache is cache
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_uncopyable_payload_still_returns_result(self):
        orchestrator = make_orchestrator()
        handle = threading.Lock()
        agent = StubAgent(payload={"handle": handle})
        await register_all(orchestrator, {"a": agent})

        first = await orchestrator.run("/repo")
        second = await orchestrator.run("/repo")

        assert first.results["a"].payload["handle"] is handle
        assert second.results["a"].success
        assert agent.calls == ["a", "a"]
        assert len(orchestrator.cache) == 0
        await orchestrator.cleanup()


class TestRecommendations:
    """Ranking, correlation and deduplication across agents."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_identical_findings_merge_sources(self):
        orchestrator = make_orchestrator()
        finding = {"type": "security", "title": "Rotate credentials", "priority": "high"}
        await register_all(
            orchestrator,
            {"scan_a": StubAgent(recommendations=[finding]), "scan_b": StubAgent(recommendations=[dict(finding)])},
        )

        result = await orchestrator.run("/repo")

        assert len(result.recommendations) == 1
        assert result.recommendations[0].sources == frozenset({"scan_a", "scan_b"})
        assert result.recommendations[0].action_plan["prerequisites"]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_correlation_ranked_first(self):
        orchestrator = make_orchestrator()
        await register_all(
            orchestrator,
            {
                "code_quality": StubAgent(
                    payload={"scores": {"code_quality_score": 90}},
                    recommendations=[{"type": "code_quality", "title": "Trim helpers", "priority": "high"}],
                ),
                "api_documentation": StubAgent(payload={"scores": {"documentation_score": 20}}),
            },
        )

        result = await orchestrator.run("/repo")

        top = result.recommendations[0]
        assert top.source_type is SourceType.CORRELATION
        assert top.priority is Priority.HIGH
        assert result.summary["correlation_count"] == 1
        assert result.summary["top_recommendations"][0] == top.title
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_descriptor_priority_breaks_ties(self):
        orchestrator = make_orchestrator()
        finding = {"type": "general", "priority": "medium"}
        await orchestrator.register_agent(
            "style", descriptor("style", priority="low"), lambda: StubAgent(recommendations=[dict(finding, title="Style")])
        )
        await orchestrator.register_agent(
            "security", descriptor("security", priority="critical"),
            lambda: StubAgent(recommendations=[dict(finding, title="Security")]),
        )

        result = await orchestrator.run("/repo")

        assert [r.title for r in result.recommendations] == ["Security", "Style"]
        await orchestrator.cleanup()


class TestEventsAndStatus:
    """Event subscriptions, serialized runs and teardown."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_event_subscriptions(self):
        orchestrator = make_orchestrator()
        started, completed, failed, runs = [], [], [], []
        orchestrator.on_agent_started(lambda e: started.append(e.data["name"]))
        orchestrator.on_agent_completed(lambda e: completed.append(e.data["name"]))
        orchestrator.on_agent_failed(lambda e: failed.append(e.data["name"]))
        orchestrator.on_run_completed(lambda e: runs.append(e.data))
        await register_all(orchestrator, {"ok": StubAgent(), "bad": StubAgent(error=ValueError("x"))})

        result = await orchestrator.run("/repo")
        await orchestrator.run("/repo")  # cache hit

        assert sorted(started) == ["bad", "ok"]
        assert completed == ["ok"]
        assert failed == ["bad"]
        assert [r["cached"] for r in runs] == [False, True]
        assert runs[0]["run_id"] == result.run_id
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_handler_errors_do_not_affect_run(self):
        orchestrator = make_orchestrator()

        def broken(event):
            raise RuntimeError("subscriber bug")

        orchestrator.on_agent_started(broken)
        orchestrator.on_run_completed(broken)
        await register_all(orchestrator, {"a": StubAgent()})

        result = await orchestrator.run("/repo")

        assert result.results["a"].success
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_runs_are_serialized(self):
        orchestrator = make_orchestrator(cache_enabled=False)
        active = []
        overlap = []

        class Probe:
            async def analyze(self, context):
                active.append(1)
                overlap.append(len(active))
                await asyncio.sleep(0.02)
                active.pop()
                return {}

        await register_all(orchestrator, {"probe": Probe()})

        await asyncio.gather(orchestrator.run("/repo/a"), orchestrator.run("/repo/b"))

        assert overlap == [1, 1]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_status(self):
        orchestrator = make_orchestrator()
        await register_all(orchestrator, {"a": StubAgent()})
        await orchestrator.run("/repo")

        status = orchestrator.status()

        assert status["agents"]["a"]["status"] == "completed"
        assert status["runs_completed"] == 1
        assert status["current_run"] is None
        assert status["cache"]["entries"] == 1
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_context_manager_cleans_up_every_agent(self):
        good, failing = StubAgent(), StubAgent(error=RuntimeError("x"))

        async with make_orchestrator() as orchestrator:
            await register_all(orchestrator, {"good": good, "failing": failing})
            await orchestrator.run("/repo")

        assert good.cleaned_up == 1
        assert failing.cleaned_up == 1
        assert orchestrator.event_bus.closed
        with pytest.raises(RuntimeError):
            await orchestrator.run("/repo")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cleanup_runs_on_error_exit(self):
        agent = StubAgent()

        with pytest.raises(CyclicDependencyError):
            async with make_orchestrator() as orchestrator:
                await register_all(orchestrator, {"X": agent, "Y": StubAgent()}, deps={"X": ["Y"], "Y": ["X"]})
                await orchestrator.run("/repo")

        assert agent.cleaned_up == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self):
        orchestrator = make_orchestrator()
        agent = StubAgent()
        await register_all(orchestrator, {"a": agent})

        await orchestrator.cleanup()
        await orchestrator.cleanup()

        assert agent.cleaned_up == 1


class TestHistory:
    """Optional run history."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_runs_recorded_when_enabled(self, tmp_path):
        orchestrator = make_orchestrator(cache_enabled=False)
        orchestrator.history = RunHistory(str(tmp_path / "runs.json"), max_runs=2)
        await register_all(orchestrator, {"a": StubAgent()})

        ids = [(await orchestrator.run("/repo")).run_id for _ in range(3)]

        assert [e["run_id"] for e in orchestrator.recent_runs()] == ids[1:]
        await orchestrator.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_history_config_creates_store(self, tmp_path):
        orchestrator = make_orchestrator()
        assert orchestrator.history is None
        assert orchestrator.recent_runs() == []

        enabled = AnalysisOrchestrator(OrchestratorConfig(
            agent_timeout=None, history_enabled=True, history_path=str(tmp_path / "h.json"), history_max_runs=5,
        ))
        assert enabled.history is not None
        assert enabled.history.max_runs == 5
        await orchestrator.cleanup()
        await enabled.cleanup()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_run(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file")
        orchestrator = make_orchestrator()
        orchestrator.history = RunHistory(str(blocker / "runs.json"))
        await register_all(orchestrator, {"a": StubAgent()})

        result = await orchestrator.run("/repo")

        assert result.results["a"].success
        await orchestrator.cleanup()
