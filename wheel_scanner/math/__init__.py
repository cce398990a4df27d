"""Closed-form option pricing helpers."""

from .black_scholes import (
    RISK_FREE_RATE,
    compute_iv,
    dte_to_years,
    normal_cdf,
    normal_pdf,
    put_price,
    vega,
)

__all__ = [
    "RISK_FREE_RATE",
    "compute_iv",
    "dte_to_years",
    "normal_cdf",
    "normal_pdf",
    "put_price",
    "vega",
]
