"""Pure phase logic for the ticker scanner.

Nothing here performs I/O; :mod:`wheel_scanner.scanner.ticker` fetches the
data and feeds it through these functions in order.
"""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..math.black_scholes import RISK_FREE_RATE, compute_iv, dte_to_years
from ..models.market import (
    IVDataPoint,
    OptionContract,
    OptionGreeksRecord,
    OptionPriceRecord,
    PriceBar,
)
from ..models.outcome import (
    CandidateContract,
    Phase1Metrics,
    Phase2Metrics,
    PortfolioCheck,
    TrendDirection,
)
from .indicators import average_volume, compute_sma, sma_trend

if TYPE_CHECKING:  # pragma: no cover
    from ..config import ScannerSettings

OPEN_CSP_FLAG = "Open CSP exists: skip or sell covered call instead"
ASSIGNED_SHARES_FLAG = "Holding assigned shares: consider covered call"


# ----------------------------------------------------------------------
# Phase 1
# ----------------------------------------------------------------------
def phase1_metrics(bars_desc: Sequence[PriceBar], settings: "ScannerSettings") -> Phase1Metrics:
    closes = [bar.close for bar in bars_desc]
    return Phase1Metrics(
        stock_price=closes[0],
        sma200=compute_sma(closes, settings.sma_long),
        sma50=compute_sma(closes, settings.sma_short),
        avg_volume=average_volume(bars_desc, settings.avg_volume_window),
        trend=sma_trend(
            closes,
            period=settings.sma_long,
            lookback=settings.trend_lookback,
            tolerance_pct=settings.sma_trend_tolerance_pct,
        ),
        bar_count=len(closes),
    )


def phase1_rejection(metrics: Phase1Metrics, settings: "ScannerSettings") -> Optional[str]:
    """Return the first failed stock-universe check, or ``None`` when all hold."""

    price = metrics.stock_price
    if price < settings.min_price or price > settings.max_price:
        return f"Price ${price:.2f} outside ${settings.min_price:g}-${settings.max_price:g} range"
    if metrics.avg_volume < settings.min_avg_volume:
        return (
            f"Avg volume {metrics.avg_volume:,.0f} below {settings.min_avg_volume:,.0f} minimum"
        )
    if metrics.bar_count < settings.sma_long or metrics.sma200 is None:
        return (
            f"Insufficient data for {settings.sma_long}-day SMA "
            f"({metrics.bar_count} bars)"
        )
    if price <= metrics.sma200:
        return f"Price ${price:.2f} not above {settings.sma_long}-day SMA ${metrics.sma200:.2f}"
    if metrics.trend is TrendDirection.FALLING:
        return f"{settings.sma_long}-day SMA is falling"
    return None


# ----------------------------------------------------------------------
# Phase 2
# ----------------------------------------------------------------------
def otm_puts(contracts: Iterable[OptionContract], stock_price: float) -> List[OptionContract]:
    """Puts struck at or below the current stock price."""

    return [contract for contract in contracts if contract.is_put and contract.strike <= stock_price]


def select_atm_put(puts: Sequence[OptionContract], stock_price: float) -> Optional[OptionContract]:
    """Closest strike to ``stock_price``.

    Ties prefer the lower strike, then the earlier expiration, then the
    contract name, so the choice does not depend on provider ordering.
    """

    if not puts:
        return None
    return min(
        puts,
        key=lambda contract: (
            abs(contract.strike - stock_price),
            contract.strike,
            contract.expiration,
            contract.contract_name,
        ),
    )


def build_iv_series(
    contract: OptionContract,
    price_records: Sequence[OptionPriceRecord],
    greeks_records: Sequence[OptionGreeksRecord],
    closes_by_date: Mapping[dt.date, float],
    *,
    lookback_days: int = 365,
    risk_free_rate: float = RISK_FREE_RATE,
) -> List[IVDataPoint]:
    """Implied volatility history for one contract, newest first.

    Each option close is paired with the stock close of the same date and
    inverted through Black-Scholes using the days remaining to expiration on
    that date. When the solver gives up, a provider-supplied IV on the
    matching greeks record is used instead. Points older than
    ``lookback_days`` before the newest point are dropped.
    """

    provider_iv: Dict[dt.date, float] = {}
    for record in greeks_records:
        if record.implied_volatility is not None and record.implied_volatility > 0:
            provider_iv.setdefault(record.date, record.implied_volatility)

    points: Dict[dt.date, float] = {}
    for record in price_records:
        if record.date in points:
            continue
        stock_close = closes_by_date.get(record.date)
        if stock_close is None:
            continue
        days = (contract.expiration - record.date).days
        if days <= 0:
            continue

        iv = compute_iv(record.close, stock_close, contract.strike, dte_to_years(days), risk_free_rate)
        if iv is None:
            iv = provider_iv.get(record.date)
        if iv is None:
            continue
        points[record.date] = iv

    if not points:
        return []

    newest = max(points)
    cutoff = newest - dt.timedelta(days=lookback_days)
    series = [
        IVDataPoint(date=day, implied_volatility=value)
        for day, value in points.items()
        if day >= cutoff
    ]
    series.sort(key=lambda point: point.date, reverse=True)
    return series


def iv_rank(current: float, low: float, high: float) -> Optional[float]:
    """Position of ``current`` within ``[low, high]`` in percent; ``None`` for a flat range."""

    if high <= low:
        return None
    return max(0.0, min(100.0, (current - low) / (high - low) * 100.0))


def phase2_metrics(contract: OptionContract, series: Sequence[IVDataPoint]) -> Phase2Metrics:
    if not series:
        return Phase2Metrics(
            atm_contract=contract.contract_name,
            current_iv=None,
            iv_high_52w=None,
            iv_low_52w=None,
            iv_rank=None,
            iv_points=0,
        )

    values = [point.implied_volatility for point in series]
    current = series[0].implied_volatility
    high = max(values)
    low = min(values)
    return Phase2Metrics(
        atm_contract=contract.contract_name,
        current_iv=current,
        iv_high_52w=high,
        iv_low_52w=low,
        iv_rank=iv_rank(current, low, high),
        iv_points=len(series),
    )


def phase2_rejection(metrics: Phase2Metrics, min_iv_rank: float) -> Optional[str]:
    if metrics.iv_points == 0:
        return "No IV data available"
    if metrics.iv_rank is None:
        return "IV Rank unavailable (no IV range over the lookback window)"
    if metrics.iv_rank < min_iv_rank:
        return f"IV Rank {metrics.iv_rank:.2f} below {min_iv_rank:g} minimum"
    return None


# ----------------------------------------------------------------------
# Phase 3
# ----------------------------------------------------------------------
def contracts_in_dte_window(
    puts: Iterable[OptionContract],
    as_of: dt.date,
    min_dte: int,
    max_dte: int,
) -> List[Tuple[OptionContract, int]]:
    """Puts expiring within ``[min_dte, max_dte]`` days, ordered by DTE then strike."""

    window = [
        (contract, contract.dte(as_of))
        for contract in puts
        if min_dte <= contract.dte(as_of) <= max_dte
    ]
    window.sort(key=lambda item: (item[1], item[0].strike, item[0].contract_name))
    return window


def premium_yield(bid: float, strike: float, dte: int) -> float:
    """Annualised premium as a percent of the strike."""

    if strike <= 0 or dte <= 0:
        return 0.0
    return bid / strike * (365 / dte) * 100.0


def evaluate_candidate(
    contract: OptionContract,
    dte: int,
    greeks: Optional[OptionGreeksRecord],
    price: Optional[OptionPriceRecord],
    stock_price: float,
    settings: "ScannerSettings",
    *,
    risk_free_rate: float = RISK_FREE_RATE,
) -> Optional[CandidateContract]:
    """Apply the delta, open interest, volume and yield filters to one contract."""

    if greeks is None or price is None:
        return None

    delta = greeks.delta
    if delta < settings.delta_min or delta > settings.delta_max:
        return None
    if price.open_interest < settings.min_open_interest:
        return None
    if price.volume < settings.min_option_volume:
        return None

    bid = price.close
    annual_yield = premium_yield(bid, contract.strike, dte)
    if annual_yield < settings.min_premium_yield:
        return None

    iv = compute_iv(bid, stock_price, contract.strike, dte_to_years(dte), risk_free_rate)
    if iv is None:
        iv = greeks.implied_volatility

    return CandidateContract(
        contract=contract,
        dte=dte,
        delta=delta,
        theta=greeks.theta,
        bid=bid,
        iv=iv,
        open_interest=price.open_interest,
        option_volume=price.volume,
        premium_yield=annual_yield,
    )


def select_best_contract(candidates: Sequence[CandidateContract]) -> Optional[CandidateContract]:
    """Strictly highest premium yield; ties keep the earliest candidate."""

    best: Optional[CandidateContract] = None
    for candidate in candidates:
        if best is None or candidate.premium_yield > best.premium_yield:
            best = candidate
    return best


# ----------------------------------------------------------------------
# Phase 5
# ----------------------------------------------------------------------
def portfolio_check(has_open_csp: bool, has_assigned_position: bool) -> PortfolioCheck:
    flag: Optional[str] = None
    if has_open_csp:
        flag = OPEN_CSP_FLAG
    elif has_assigned_position:
        flag = ASSIGNED_SHARES_FLAG
    return PortfolioCheck(
        has_open_csp=has_open_csp,
        has_assigned_position=has_assigned_position,
        flag=flag,
    )


__all__ = [
    "ASSIGNED_SHARES_FLAG",
    "OPEN_CSP_FLAG",
    "build_iv_series",
    "contracts_in_dte_window",
    "evaluate_candidate",
    "iv_rank",
    "otm_puts",
    "phase1_metrics",
    "phase1_rejection",
    "phase2_metrics",
    "phase2_rejection",
    "premium_yield",
    "portfolio_check",
    "select_atm_put",
    "select_best_contract",
]
