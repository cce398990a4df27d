from __future__ import annotations

import pytest

from wheel_scanner.config import ScoringSettings
from wheel_scanner.scoring import (
    DEFAULT_WEIGHTS,
    CompositeScorer,
    compute_scores,
    delta_score,
    linear_score,
    liquidity_score,
    trend_score,
)


def test_default_weights_sum_to_one():
    assert sum(DEFAULT_WEIGHTS.values()) == pytest.approx(1.0)


def test_saturated_candidate_scores_100():
    scores = compute_scores(
        premium_yield=24.0,
        iv_rank=70.0,
        delta=-0.235,
        open_interest=2500,
        stock_price=120.0,
        sma200=100.0,
    )

    assert scores.yield_score == pytest.approx(100.0)
    assert scores.iv_score == pytest.approx(100.0)
    assert scores.delta_score == pytest.approx(100.0)
    assert scores.liquidity_score == pytest.approx(100.0)
    assert scores.trend_score == pytest.approx(100.0)
    assert scores.composite_score == pytest.approx(100.0)


def test_floor_candidate_scores_zero_for_range_components():
    scores = compute_scores(
        premium_yield=8.0,
        iv_rank=20.0,
        delta=-0.02,
        open_interest=0,
        stock_price=100.0,
        sma200=100.0,
    )

    assert scores.composite_score == pytest.approx(0.0)


def test_linear_score_clamps():
    assert linear_score(16.0, 8.0, 24.0) == pytest.approx(50.0)
    assert linear_score(40.0, 8.0, 24.0) == 100.0
    assert linear_score(2.0, 8.0, 24.0) == 0.0
    assert linear_score(5.0, 10.0, 10.0) == 0.0


@pytest.mark.parametrize(
    "delta, expected",
    [
        (-0.25, 100.0),
        (-0.22, 100.0),
        (-0.30, 0.0),
        (-0.02, 0.0),
        (-0.35, 0.0),
        (-0.01, 0.0),
        (-0.275, 50.0),
        (-0.12, 50.0),
    ],
)
def test_delta_score_shape(delta, expected):
    assert delta_score(delta) == pytest.approx(expected, abs=1e-9)


def test_delta_score_falls_monotonically_away_from_sweet_spot():
    steeper = [delta_score(-d / 100) for d in range(22, 31)]
    shallower = [delta_score(-d / 100) for d in range(2, 23)]

    assert steeper == sorted(steeper, reverse=True)
    assert shallower == sorted(shallower)


def test_liquidity_and_trend_scores():
    assert liquidity_score(250) == pytest.approx(50.0)
    assert liquidity_score(10_000) == 100.0
    assert trend_score(110.0, 100.0) == pytest.approx(50.0)
    assert trend_score(95.0, 100.0) == 0.0
    assert trend_score(100.0, None) == 0.0


def test_scorer_uses_configured_weights():
    settings = ScoringSettings(
        weights={"yield": 1.0, "iv": 0.0, "delta": 0.0, "liquidity": 0.0, "trend": 0.0},
        yield_range=(0.0, 20.0),
    )
    scorer = CompositeScorer(settings)

    scores = scorer.score(
        premium_yield=10.0,
        iv_rank=90.0,
        delta=-0.24,
        open_interest=5000,
        stock_price=150.0,
        sma200=100.0,
    )

    assert scores.composite_score == pytest.approx(50.0)
    assert scores.to_record()["yieldScore"] == pytest.approx(50.0)
