"""Options wheel scanner: screens watchlist tickers for cash-secured put candidates."""

from __future__ import annotations

from typing import Any


def run_full_scan(*args: Any, **kwargs: Any):  # pragma: no cover - thin wrapper
    """Lazily import the scan orchestrator."""

    from .scanner.service import run_full_scan as _impl

    return _impl(*args, **kwargs)


__all__ = ["run_full_scan"]
