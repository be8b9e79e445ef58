"""
Orchestrator Data Model
=======================
Value objects exchanged between the executor, the recommendation engine,
the cache and callers:

- Priority / SourceType / ResultStatus enums
- Recommendation: one actionable finding, deduplicated by (type, title)
- AnalysisResult: settled outcome of one agent in one run
- RunResult: everything a run returns

All of them are immutable once produced and serialize to plain dicts.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Priority(Enum):
    """Recommendation priority, highest first."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank; lower sorts first."""
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        if isinstance(value, Priority):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MEDIUM


_PRIORITY_RANK = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class SourceType(Enum):
    """Where a recommendation came from."""
    AGENT = "agent"
    CORRELATION = "correlation"


class ResultStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Recommendation:
    """
    A single prioritized recommendation.

    ``sources`` holds every agent that contributed to it; two recommendations
    with the same ``(type, title)`` are the same finding and merge by
    unioning their sources.
    """
    type: str
    priority: Priority
    title: str
    description: str = ""
    sources: FrozenSet[str] = field(default_factory=frozenset)
    source_type: SourceType = SourceType.AGENT
    actions: Tuple[str, ...] = ()
    estimated_impact: Optional[str] = None
    estimated_effort: Optional[str] = None
    action_plan: Optional[Dict[str, Any]] = None

    @property
    def dedup_key(self) -> Tuple[str, str]:
        return (self.type, self.title)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "priority": self.priority.value,
            "title": self.title,
            "description": self.description,
            "sources": sorted(self.sources),
            "source_type": self.source_type.value,
            "actions": list(self.actions),
            "estimated_impact": self.estimated_impact,
            "estimated_effort": self.estimated_effort,
            "action_plan": self.action_plan,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        *,
        default_source: Optional[str] = None,
        source_type: Optional[SourceType] = None,
    ) -> "Recommendation":
        """
        Build a Recommendation from an agent-provided or serialized mapping.

        Args:
            data: Mapping with at least ``title``; ``type`` defaults to "general"
            default_source: Agent name added to ``sources``
            source_type: Overrides any ``source_type`` in ``data``
        """
        title = str(data.get("title") or "").strip()
        if not title:
            raise ValueError("Recommendation requires a non-empty title")

        sources = set(str(s) for s in (data.get("sources") or ()))
        if default_source:
            sources.add(default_source)

        if source_type is None:
            raw_type = data.get("source_type", data.get("sourceType", SourceType.AGENT.value))
            source_type = raw_type if isinstance(raw_type, SourceType) else SourceType(str(raw_type))

        return cls(
            type=str(data.get("type") or "general"),
            priority=Priority.parse(data.get("priority", Priority.MEDIUM)),
            title=title,
            description=str(data.get("description") or ""),
            sources=frozenset(sources),
            source_type=source_type,
            actions=tuple(str(a) for a in (data.get("actions") or ())),
            estimated_impact=data.get("estimated_impact"),
            estimated_effort=data.get("estimated_effort"),
            action_plan=data.get("action_plan"),
        )


@dataclass(frozen=True)
class AnalysisResult:
    """
    Settled outcome of one agent in one run.

    ``error`` is set if and only if the status is not SUCCESS.
    """
    agent_name: str
    status: ResultStatus
    payload: Dict[str, Any] = field(default_factory=dict)
    recommendations: Tuple[Recommendation, ...] = ()
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_seconds: float = 0.0
    started_at: str = field(default_factory=_utc_now_iso)

    def __post_init__(self):
        if self.status is ResultStatus.SUCCESS and self.error is not None:
            raise ValueError(f"Successful result for {self.agent_name} cannot carry an error")
        if self.status is not ResultStatus.SUCCESS and not self.error:
            raise ValueError(f"Unsuccessful result for {self.agent_name} requires an error")

    @property
    def success(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    @classmethod
    def failure(
        cls,
        agent_name: str,
        error: BaseException,
        duration_seconds: float = 0.0,
        started_at: Optional[str] = None,
    ) -> "AnalysisResult":
        return cls(
            agent_name=agent_name,
            status=ResultStatus.FAILURE,
            error=str(error) or type(error).__name__,
            error_type=type(error).__name__,
            duration_seconds=duration_seconds,
            started_at=started_at or _utc_now_iso(),
        )

    @classmethod
    def skipped(cls, agent_name: str, reason: str) -> "AnalysisResult":
        return cls(
            agent_name=agent_name,
            status=ResultStatus.SKIPPED,
            error=reason,
            error_type="Skipped",
        )

    def to_dict(self) -> dict:
        return {
            "agent_name": self.agent_name,
            "status": self.status.value,
            "payload": self.payload,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "error": self.error,
            "error_type": self.error_type,
            "duration_seconds": self.duration_seconds,
            "started_at": self.started_at,
        }


@dataclass(frozen=True)
class RunResult:
    """Final output of one orchestrator run."""
    run_id: str
    target: str
    results: Dict[str, AnalysisResult]
    recommendations: List[Recommendation]
    summary: Dict[str, Any]
    execution_plan: List[List[str]] = field(default_factory=list)
    created_at: str = field(default_factory=_utc_now_iso)

    @property
    def failed_agents(self) -> List[str]:
        return [name for name, r in self.results.items() if r.status is ResultStatus.FAILURE]

    @property
    def succeeded_agents(self) -> List[str]:
        return [name for name, r in self.results.items() if r.success]

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "target": self.target,
            "created_at": self.created_at,
            "execution_plan": [list(batch) for batch in self.execution_plan],
            "results": {name: r.to_dict() for name, r in self.results.items()},
            "recommendations": [r.to_dict() for r in self.recommendations],
            "summary": self.summary,
        }


def count_by_priority(recommendations: Iterable[Recommendation]) -> Dict[str, int]:
    counts = {p.value: 0 for p in Priority}
    for rec in recommendations:
        counts[rec.priority.value] += 1
    return counts
