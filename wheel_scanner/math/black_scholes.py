"""Black-Scholes put pricing and implied volatility inversion.

Pure functions with no I/O. ``put_price`` and ``vega`` assume meaningful
inputs (positive spot, strike, time and volatility); input validation lives in
:func:`compute_iv`, which is total over its numeric domain and signals
"unavailable" by returning ``None`` rather than raising.
"""

from __future__ import annotations

import math
from typing import Optional

RISK_FREE_RATE = 0.05

# Newton-Raphson solver parameters
IV_INITIAL_GUESS = 0.30
IV_MIN = 0.001
IV_MAX = 5.0
IV_MAX_ITERATIONS = 100
IV_TOLERANCE = 1e-8
MIN_VEGA = 1e-12

# Abramowitz & Stegun 7.1.26 coefficients
_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429
_P = 0.3275911


def normal_cdf(x: float) -> float:
    """Standard normal CDF (Abramowitz & Stegun, accuracy ~1e-7)."""

    sign = -1.0 if x < 0 else 1.0
    z = abs(x) / math.sqrt(2.0)
    t = 1.0 / (1.0 + _P * z)
    poly = ((((_A5 * t + _A4) * t + _A3) * t + _A2) * t + _A1) * t
    y = 1.0 - poly * math.exp(-z * z)
    return 0.5 * (1.0 + sign * y)


def normal_pdf(x: float) -> float:
    """Standard normal density."""

    return math.exp(-0.5 * x * x) / math.sqrt(2.0 * math.pi)


def _d1(S: float, K: float, T: float, r: float, sigma: float) -> float:
    return (math.log(S) - math.log(K) + (r + 0.5 * sigma * sigma) * T) / (sigma * math.sqrt(T))


def put_price(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """European put price: ``K e^(-rT) N(-d2) - S N(-d1)``."""

    d1 = _d1(S, K, T, r, sigma)
    d2 = d1 - sigma * math.sqrt(T)
    return K * math.exp(-r * T) * normal_cdf(-d2) - S * normal_cdf(-d1)


def vega(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """Sensitivity of the option price to sigma (identical for puts and calls)."""

    d1 = _d1(S, K, T, r, sigma)
    return S * math.sqrt(T) * normal_pdf(d1)


def compute_iv(
    market_price: float,
    S: float,
    K: float,
    T: float,
    r: float = RISK_FREE_RATE,
) -> Optional[float]:
    """Invert :func:`put_price` for sigma with Newton-Raphson.

    Args:
        market_price: Observed put price.
        S: Underlying price.
        K: Strike price.
        T: Time to expiration in years.
        r: Risk-free rate.

    Returns:
        The implied volatility, or ``None`` when the inputs are out of domain,
        vega collapses or the iteration budget is exhausted.
    """

    values = (market_price, S, K, T, r)
    if not all(math.isfinite(value) for value in values):
        return None
    if market_price <= 0 or S <= 0 or K <= 0 or T <= 0:
        return None

    sigma = IV_INITIAL_GUESS
    for _ in range(IV_MAX_ITERATIONS):
        try:
            diff = put_price(S, K, T, r, sigma) - market_price
            v = vega(S, K, T, r, sigma)
        except (OverflowError, ValueError, ZeroDivisionError):
            return None
        if not math.isfinite(diff) or not math.isfinite(v):
            return None
        if abs(diff) < IV_TOLERANCE:
            return sigma
        if v < MIN_VEGA:
            return None

        sigma = max(IV_MIN, min(IV_MAX, sigma - diff / v))

    return None


def dte_to_years(days: float) -> float:
    """Convert days to expiration into a year fraction."""

    return days / 365


__all__ = [
    "RISK_FREE_RATE",
    "compute_iv",
    "dte_to_years",
    "normal_cdf",
    "normal_pdf",
    "put_price",
    "vega",
]
