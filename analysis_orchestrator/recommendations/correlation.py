"""
Correlation Rules
=================
Derived findings that only appear when two agents' results are read together.

Each rule names the agents it reads and a pure function over their payloads.
A rule is evaluated only when every agent it names succeeded in the run;
when its condition holds it emits exactly one Recommendation with
``source_type=correlation`` and ``sources`` set to the agents it read.

The table is fixed; callers that need a different set pass their own list of
rules to the RecommendationEngine.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from analysis_orchestrator.models import Priority, Recommendation, SourceType


Payloads = Mapping[str, Mapping[str, Any]]


def dig(payload: Any, *path: str, default: Any = None) -> Any:
    """Follow a key path through nested mappings; ``default`` on any gap."""
    current = payload
    for key in path:
        if not isinstance(current, Mapping) or key not in current:
            return default
        current = current[key]
    return default if current is None else current


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _count(value: Any) -> int:
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value)
    return 0


@dataclass(frozen=True)
class CorrelationRule:
    """
    One cross-agent check.

    ``condition`` receives the payloads of ``agents`` and returns either None
    (no finding) or a dict of facts used to render the description.
    """
    name: str
    agents: Tuple[str, ...]
    priority: Priority
    title: str
    description: str
    actions: Tuple[str, ...]
    condition: Callable[[Payloads], Optional[Dict[str, Any]]]

    def evaluate(self, payloads: Payloads) -> Optional[Recommendation]:
        if any(agent not in payloads for agent in self.agents):
            return None
        facts = self.condition(payloads)
        if facts is None:
            return None
        return Recommendation(
            type="correlation",
            priority=self.priority,
            title=self.title,
            description=self.description.format(**facts),
            sources=frozenset(self.agents),
            source_type=SourceType.CORRELATION,
            actions=self.actions,
            estimated_impact=self.priority.value,
        )


def _quality_vs_documentation(payloads: Payloads) -> Optional[Dict[str, Any]]:
    quality = _number(dig(payloads["code_quality"], "scores", "code_quality_score", default=0))
    doc_score = _number(dig(payloads["api_documentation"], "scores", "documentation_score", default=0))
    if quality > 80 and doc_score < 60:
        return {"quality": quality, "doc_score": doc_score}
    return None


def _vulnerabilities_vs_runtime(payloads: Payloads) -> Optional[Dict[str, Any]]:
    vulnerabilities = _count(dig(payloads["security_scan"], "vulnerabilities", default=[]))
    warnings = _number(dig(payloads["runtime_logs"], "analysis", "security_warnings", default=0))
    if vulnerabilities > 0 and warnings > 0:
        return {"vulnerabilities": vulnerabilities, "warnings": int(warnings)}
    return None


def _recurring_issues_vs_smells(payloads: Payloads) -> Optional[Dict[str, Any]]:
    recurring = _count(dig(payloads["troubleshooting"], "analysis", "patterns", "recurring", default=[]))
    smells = _count(dig(payloads["code_quality"], "results", "code_quality", "code_smells", default=[]))
    if recurring > 0 and smells > 0:
        return {"recurring": recurring, "smells": smells}
    return None


DEFAULT_CORRELATION_RULES: List[CorrelationRule] = [
    CorrelationRule(
        name="quality_vs_documentation",
        agents=("code_quality", "api_documentation"),
        priority=Priority.HIGH,
        title="High code quality with insufficient API documentation",
        description=(
            "Code quality scores {quality:g} but API documentation only scores {doc_score:g}. "
            "Documentation should be brought up to the level of the code."
        ),
        actions=(
            "Add detailed OpenAPI documentation for the main endpoints",
            "Document usage examples that match the code's quality",
            "Evaluate automated documentation generation",
        ),
        condition=_quality_vs_documentation,
    ),
    CorrelationRule(
        name="vulnerabilities_vs_runtime_warnings",
        agents=("security_scan", "runtime_logs"),
        priority=Priority.CRITICAL,
        title="Static vulnerabilities correlate with runtime security warnings",
        description=(
            "Static analysis found {vulnerabilities} vulnerabilities and the runtime logs "
            "contain {warnings} security warnings."
        ),
        actions=(
            "Patch the reported vulnerabilities immediately",
            "Strengthen runtime security monitoring",
            "Set up security logging and alerting",
        ),
        condition=_vulnerabilities_vs_runtime,
    ),
    CorrelationRule(
        name="recurring_issues_vs_code_smells",
        agents=("troubleshooting", "code_quality"),
        priority=Priority.MEDIUM,
        title="Recurring issues correlate with code smells",
        description=(
            "{recurring} recurring issues and {smells} code smells point to a structural problem."
        ),
        actions=(
            "Analyze the root cause of the recurring issues",
            "Refactor the affected code",
            "Write preventive coding guidelines",
        ),
        condition=_recurring_issues_vs_smells,
    ),
]
