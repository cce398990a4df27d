"""Phase-4 sub-scores and the weighted composite used to rank candidates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Mapping, Optional, Tuple

from ..models.outcome import ScoreBreakdown

if TYPE_CHECKING:  # pragma: no cover
    from ..config import ScoringSettings

DEFAULT_WEIGHTS: Dict[str, float] = {
    "yield": 0.30,
    "iv": 0.25,
    "delta": 0.15,
    "liquidity": 0.15,
    "trend": 0.15,
}

DEFAULT_YIELD_RANGE = (8.0, 24.0)
DEFAULT_IV_RANK_RANGE = (20.0, 70.0)
DEFAULT_DELTA_SWEET_SPOT = (-0.25, -0.22)
DEFAULT_DELTA_RANGE = (-0.30, -0.02)
PREFERRED_OPEN_INTEREST = 500.0
MAX_TREND_DISTANCE_PCT = 20.0


def linear_score(value: float, low: float, high: float) -> float:
    """Scale ``value`` from ``[low, high]`` onto ``[0, 100]``, clamped."""

    if high <= low:
        return 0.0
    score = (value - low) / (high - low) * 100.0
    return max(0.0, min(100.0, score))


def delta_score(
    delta: float,
    sweet_spot: Tuple[float, float] = DEFAULT_DELTA_SWEET_SPOT,
    delta_range: Tuple[float, float] = DEFAULT_DELTA_RANGE,
) -> float:
    """100 inside the sweet spot, falling linearly to 0 at the filter edges."""

    magnitude = abs(delta)
    sweet_low, sweet_high = sorted(abs(bound) for bound in sweet_spot)
    edge_low, edge_high = sorted(abs(bound) for bound in delta_range)

    if sweet_low <= magnitude <= sweet_high:
        return 100.0
    if magnitude < edge_low or magnitude > edge_high:
        return 0.0
    if magnitude < sweet_low:
        return linear_score(magnitude, edge_low, sweet_low)
    return linear_score(edge_high - magnitude, 0.0, edge_high - sweet_high)


def liquidity_score(open_interest: float, preferred: float = PREFERRED_OPEN_INTEREST) -> float:
    if preferred <= 0:
        return 0.0
    return min(100.0, max(0.0, open_interest / preferred * 100.0))


def trend_score(
    stock_price: float,
    sma200: Optional[float],
    max_distance_pct: float = MAX_TREND_DISTANCE_PCT,
) -> float:
    """Distance above the 200-day SMA, capped at ``max_distance_pct``."""

    if sma200 is None or sma200 <= 0 or max_distance_pct <= 0:
        return 0.0
    pct_above = (stock_price - sma200) / sma200 * 100.0
    if pct_above <= 0:
        return 0.0
    return min(100.0, pct_above / max_distance_pct * 100.0)


class CompositeScorer:
    """Weighted blend of the five phase-4 sub-scores."""

    def __init__(
        self,
        settings: Optional["ScoringSettings"] = None,
        delta_range: Tuple[float, float] = DEFAULT_DELTA_RANGE,
    ):
        if settings is None:
            self.weights: Mapping[str, float] = dict(DEFAULT_WEIGHTS)
            self.yield_range = DEFAULT_YIELD_RANGE
            self.iv_rank_range = DEFAULT_IV_RANK_RANGE
            self.delta_sweet_spot = DEFAULT_DELTA_SWEET_SPOT
            self.preferred_open_interest = PREFERRED_OPEN_INTEREST
            self.max_trend_distance_pct = MAX_TREND_DISTANCE_PCT
        else:
            self.weights = dict(settings.weights)
            self.yield_range = tuple(settings.yield_range)
            self.iv_rank_range = tuple(settings.iv_rank_range)
            self.delta_sweet_spot = tuple(settings.delta_sweet_spot)
            self.preferred_open_interest = settings.preferred_open_interest
            self.max_trend_distance_pct = settings.max_trend_distance_pct
        self.delta_range = delta_range

    def score(
        self,
        *,
        premium_yield: float,
        iv_rank: float,
        delta: float,
        open_interest: float,
        stock_price: float,
        sma200: Optional[float],
    ) -> ScoreBreakdown:
        yield_part = linear_score(premium_yield, *self.yield_range)
        iv_part = linear_score(iv_rank, *self.iv_rank_range)
        delta_part = delta_score(delta, self.delta_sweet_spot, self.delta_range)
        liquidity_part = liquidity_score(open_interest, self.preferred_open_interest)
        trend_part = trend_score(stock_price, sma200, self.max_trend_distance_pct)

        composite = (
            yield_part * self.weights["yield"]
            + iv_part * self.weights["iv"]
            + delta_part * self.weights["delta"]
            + liquidity_part * self.weights["liquidity"]
            + trend_part * self.weights["trend"]
        )

        return ScoreBreakdown(
            yield_score=yield_part,
            iv_score=iv_part,
            delta_score=delta_part,
            liquidity_score=liquidity_part,
            trend_score=trend_part,
            composite_score=composite,
        )


def compute_scores(
    premium_yield: float,
    iv_rank: float,
    delta: float,
    open_interest: float,
    stock_price: float,
    sma200: Optional[float],
) -> ScoreBreakdown:
    """Score with the built-in weights and ranges."""

    return CompositeScorer().score(
        premium_yield=premium_yield,
        iv_rank=iv_rank,
        delta=delta,
        open_interest=open_interest,
        stock_price=stock_price,
        sma200=sma200,
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
