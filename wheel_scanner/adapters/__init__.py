"""Adapter implementations for external market data providers."""

from __future__ import annotations

import os
from importlib import import_module
from typing import TYPE_CHECKING, Dict, Optional, Type

from .base import (
    AuthenticationError,
    DataNotAvailable,
    MarketDataAdapter,
    MarketDataError,
    MissingAPIKey,
    RateLimitError,
    RateLimiterTimeout,
)
from .financial_data import FinancialDataClient
from .rate_limiter import TokenBucket, get_rate_limiter, reset_rate_limiter

if TYPE_CHECKING:  # pragma: no cover
    from ..config import AppSettings

_ADAPTER_REGISTRY: Dict[str, str] = {
    "financialdata": "wheel_scanner.adapters.financial_data:FinancialDataClient",
}


def create_adapter(
    provider: str,
    settings: Optional["AppSettings"] = None,
    limiter: Optional[TokenBucket] = None,
) -> MarketDataAdapter:
    """Instantiate a market data adapter by name.

    Args:
        provider: The lowercase name of the provider to load.
        settings: Application settings; the cached settings are used when omitted.
        limiter: Token bucket to gate requests with; defaults to the process-wide one.

    Raises:
        KeyError: If the provider name is unknown.
        MissingAPIKey: If the configured API key variable is unset.
    """

    normalized = provider.lower()
    try:
        dotted_path = _ADAPTER_REGISTRY[normalized]
    except KeyError as exc:
        raise KeyError(f"Unknown market data provider: {provider}") from exc

    if settings is None:
        from ..config import get_settings

        settings = get_settings()

    market = settings.market_data
    api_key = os.getenv(market.api_key_env, "").strip()
    if not api_key:
        raise MissingAPIKey(f"{market.api_key_env} is not configured in environment variables")

    module_name, class_name = dotted_path.split(":", 1)
    module = import_module(module_name)
    adapter_cls: Type[MarketDataAdapter] = getattr(module, class_name)
    return adapter_cls(
        api_key,
        limiter or get_rate_limiter(settings.rate_limit),
        base_url=market.base_url,
        timeout_seconds=market.timeout_seconds,
        page_size=market.page_size,
        acquire_timeout=settings.rate_limit.acquire_timeout_seconds,
    )


def get_market_data_client(settings: Optional["AppSettings"] = None) -> MarketDataAdapter:
    """Return the adapter selected by ``market_data.provider``."""

    if settings is None:
        from ..config import get_settings

        settings = get_settings()
    return create_adapter(settings.market_data.provider, settings)


__all__ = [
    "AuthenticationError",
    "DataNotAvailable",
    "FinancialDataClient",
    "MarketDataAdapter",
    "MarketDataError",
    "MissingAPIKey",
    "RateLimitError",
    "RateLimiterTimeout",
    "TokenBucket",
    "create_adapter",
    "get_market_data_client",
    "get_rate_limiter",
    "reset_rate_limiter",
]
