"""
Rightsizer Analysis -- recommendation resolution and sizing decisions.
"""

from .resolver import RecommendationResolver, latest_values
from .evaluator import evaluate, POWERED_OFF_NO_STATS

__all__ = [
    "RecommendationResolver",
    "latest_values",
    "evaluate",
    "POWERED_OFF_NO_STATS",
]
