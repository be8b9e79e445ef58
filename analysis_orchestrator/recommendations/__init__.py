"""
Recommendations
===============
Correlation rules and the ranking engine.
"""

from .correlation import DEFAULT_CORRELATION_RULES, CorrelationRule, dig
from .engine import RecommendationEngine, build_action_plan, build_summary, overall_status

__all__ = [
    "DEFAULT_CORRELATION_RULES",
    "CorrelationRule",
    "dig",
    "RecommendationEngine",
    "build_action_plan",
    "build_summary",
    "overall_status",
]
