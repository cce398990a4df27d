"""Convenient exports for scoring components."""

from .composite import (
    DEFAULT_WEIGHTS,
    CompositeScorer,
    compute_scores,
    delta_score,
    linear_score,
    liquidity_score,
    trend_score,
)

__all__ = [
    "CompositeScorer",
    "DEFAULT_WEIGHTS",
    "compute_scores",
    "delta_score",
    "linear_score",
    "liquidity_score",
    "trend_score",
]
