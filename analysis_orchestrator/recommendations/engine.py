"""
Recommendation Engine
=====================
Turns the settled per-agent results of a run into one ranked list.

Pipeline:
1. Collect every recommendation produced by a successful agent
2. Evaluate the correlation rules over the successful payloads
3. Sort by priority, then correlation before agent, then the contributing
   agents' descriptor priority, then declaration order
4. Deduplicate by (type, title), unioning the sources of colliding entries
5. Attach an action plan to each surviving recommendation

Also builds the run summary.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from analysis_orchestrator.models import (
    AnalysisResult,
    Priority,
    Recommendation,
    ResultStatus,
    SourceType,
    count_by_priority,
)
from analysis_orchestrator.recommendations.correlation import DEFAULT_CORRELATION_RULES, CorrelationRule


EFFORT_DURATION = {
    "low": "1-2 hours",
    "medium": "1-2 days",
    "high": "1-2 weeks",
    "critical": "immediate",
}

PREREQUISITES_BY_TYPE = {
    "security": ["Security team review", "Confirm vulnerability scanner results"],
    "api_documentation": ["Finalize the API specification", "Set up OpenAPI tooling"],
}

SUCCESS_METRICS_BY_TYPE = {
    "code_quality": ["Code quality score of 80 or higher", "50% fewer code smells"],
    "api_documentation": ["90% or more of the API documented", "Improved developer satisfaction"],
}

TOP_RECOMMENDATIONS = 5


def _source_weight(rec: Recommendation, agent_priorities: Mapping[str, Priority]) -> int:
    """Rank of the highest-priority contributing agent (medium when unknown)."""
    ranks = [agent_priorities.get(name, Priority.MEDIUM).rank for name in rec.sources]
    return min(ranks, default=Priority.MEDIUM.rank)


def _sort_key(rec: Recommendation, agent_priorities: Mapping[str, Priority]) -> Tuple[int, int, int]:
    source_rank = 0 if rec.source_type is SourceType.CORRELATION else 1
    return (rec.priority.rank, source_rank, _source_weight(rec, agent_priorities))


class RecommendationEngine:
    """
    Correlation and ranking over one run's results.

    Usage:
        engine = RecommendationEngine()
        recommendations = engine.generate(results)
    """

    def __init__(self, rules: Optional[Sequence[CorrelationRule]] = None):
        self.rules = list(DEFAULT_CORRELATION_RULES if rules is None else rules)

    def generate(
        self,
        results: Mapping[str, AnalysisResult],
        agent_priorities: Optional[Mapping[str, Priority]] = None,
    ) -> List[Recommendation]:
        """
        Produce the final ranked, deduplicated recommendation list.

        Args:
            results: Agent name -> settled AnalysisResult, in execution order
            agent_priorities: Agent name -> descriptor priority, used as a tie-break

        Returns:
            Recommendations with action plans attached
        """
        collected = self.collect(results)
        correlations = self.correlate(results)
        ranked = self.deduplicate(self.prioritize(collected + correlations, agent_priorities))
        final = self.add_action_plans(ranked)
        logger.info(
            f"Generated {len(final)} recommendations "
            f"({len(collected)} from agents, {len(correlations)} correlations)"
        )
        return final

    @staticmethod
    def collect(results: Mapping[str, AnalysisResult]) -> List[Recommendation]:
        """Agent-sourced recommendations of successful agents, in declaration order."""
        collected: List[Recommendation] = []
        for name, result in results.items():
            if not result.success:
                continue
            for rec in result.recommendations:
                collected.append(replace(rec, sources=rec.sources | {name}, source_type=SourceType.AGENT))
        return collected

    def correlate(self, results: Mapping[str, AnalysisResult]) -> List[Recommendation]:
        """Evaluate every rule whose agents all succeeded."""
        payloads = {name: r.payload for name, r in results.items() if r.success}
        found: List[Recommendation] = []
        for rule in self.rules:
            try:
                rec = rule.evaluate(payloads)
            except Exception as e:
                logger.warning(f"Correlation rule {rule.name} failed: {e}")
                continue
            if rec is not None:
                logger.debug(f"Correlation rule {rule.name} matched")
                found.append(rec)
        return found

    @staticmethod
    def prioritize(
        recommendations: Iterable[Recommendation],
        agent_priorities: Optional[Mapping[str, Priority]] = None,
    ) -> List[Recommendation]:
        """Stable sort: priority, then correlation before agent, then agent priority."""
        agent_priorities = agent_priorities or {}
        return sorted(recommendations, key=lambda rec: _sort_key(rec, agent_priorities))

    @staticmethod
    def deduplicate(recommendations: Iterable[Recommendation]) -> List[Recommendation]:
        """
        Keep the first recommendation per (type, title).

        Later duplicates are folded into it by unioning their sources, so no
        contributing agent is lost. Applying this twice changes nothing.
        """
        merged: Dict[Tuple[str, str], Recommendation] = {}
        for rec in recommendations:
            existing = merged.get(rec.dedup_key)
            if existing is None:
                merged[rec.dedup_key] = rec
            elif not rec.sources <= existing.sources:
                merged[rec.dedup_key] = replace(existing, sources=existing.sources | rec.sources)
        return list(merged.values())

    @staticmethod
    def add_action_plans(recommendations: Iterable[Recommendation]) -> List[Recommendation]:
        return [replace(rec, action_plan=build_action_plan(rec)) for rec in recommendations]


def build_action_plan(rec: Recommendation) -> Dict[str, Any]:
    """Duration, prerequisites, risks and success metrics for one recommendation."""
    effort = str(rec.estimated_effort or "medium").lower()
    risks = []
    if rec.priority is Priority.CRITICAL:
        risks.append("Delaying this leaves a security risk in the service")
    if rec.type == "architecture":
        risks.append("Large-scale refactoring may introduce bugs")

    return {
        "estimated_duration": EFFORT_DURATION.get(effort, EFFORT_DURATION["medium"]),
        "prerequisites": list(PREREQUISITES_BY_TYPE.get(rec.type, [])),
        "risks": risks,
        "success_metrics": list(SUCCESS_METRICS_BY_TYPE.get(rec.type, [])),
    }


def overall_status(
    results: Mapping[str, AnalysisResult],
    cancelled: bool = False,
    halted_by: Optional[str] = None,
) -> str:
    if cancelled:
        return "cancelled"
    if halted_by is not None:
        return "halted"
    statuses = [r.status for r in results.values()]
    if statuses and ResultStatus.SUCCESS not in statuses:
        return "failed"
    if any(s is not ResultStatus.SUCCESS for s in statuses):
        return "degraded"
    return "healthy"


def build_summary(
    run_id: str,
    results: Mapping[str, AnalysisResult],
    recommendations: Sequence[Recommendation],
    batch_count: int,
    duration_seconds: float,
    cancelled: bool = False,
    halted_by: Optional[str] = None,
) -> Dict[str, Any]:
    """Executive summary of one run."""
    failed = [n for n, r in results.items() if r.status is ResultStatus.FAILURE]
    skipped = [n for n, r in results.items() if r.status is ResultStatus.SKIPPED]
    succeeded = [n for n, r in results.items() if r.success]

    return {
        "run_id": run_id,
        "status": overall_status(results, cancelled, halted_by),
        "total_agents": len(results),
        "succeeded_agents": len(succeeded),
        "failed_agents": len(failed),
        "skipped_agents": len(skipped),
        "failed_agent_names": failed,
        "skipped_agent_names": skipped,
        "halted_by": halted_by,
        "total_recommendations": len(recommendations),
        "recommendations_by_priority": count_by_priority(recommendations),
        "critical_issues": sum(1 for r in recommendations if r.priority is Priority.CRITICAL),
        "correlation_count": sum(1 for r in recommendations if r.source_type is SourceType.CORRELATION),
        "top_recommendations": [r.title for r in recommendations[:TOP_RECOMMENDATIONS]],
        "batch_count": batch_count,
        "duration_seconds": round(duration_seconds, 4),
    }
