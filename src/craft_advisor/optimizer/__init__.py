"""Recommendation search interfaces."""

from craft_advisor.optimizer.search import (
    ActionPlan,
    Advisor,
    Recommendation,
    SearchMetrics,
    recommend,
)
from craft_advisor.optimizer.session import RecommendationSession
from craft_advisor.optimizer.specs import AdvisorConfig, ScoringWeights

__all__ = [
    "ActionPlan",
    "Advisor",
    "AdvisorConfig",
    "Recommendation",
    "RecommendationSession",
    "ScoringWeights",
    "SearchMetrics",
    "recommend",
]
