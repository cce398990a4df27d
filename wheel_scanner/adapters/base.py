"""Core abstractions for market data adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from ..models.market import OptionContract, OptionGreeksRecord, OptionPriceRecord, PriceBar


class MarketDataError(Exception):
    """Base exception raised for market data failures."""


class AuthenticationError(MarketDataError):
    """Raised when the provider rejects the configured API key."""


class DataNotAvailable(MarketDataError):
    """Raised when requested data is not available from a provider."""


class RateLimitError(MarketDataError):
    """Raised when a provider reports rate limiting errors."""


class RateLimiterTimeout(MarketDataError):
    """Raised when the local token bucket does not grant a request in time."""


class MissingAPIKey(MarketDataError):
    """Raised when no API key is configured for the provider."""


class MarketDataAdapter(ABC):
    """Abstract base class for the four reads the scanner performs."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable provider name."""

    @abstractmethod
    def get_stock_prices(self, ticker: str) -> List[PriceBar]:
        """Return the daily price history for ``ticker`` in provider order."""

    @abstractmethod
    def get_option_chain(self, ticker: str) -> List[OptionContract]:
        """Return every listed contract for ``ticker``."""

    @abstractmethod
    def get_option_greeks(self, contract_name: str) -> List[OptionGreeksRecord]:
        """Return the greeks history for one contract."""

    @abstractmethod
    def get_option_prices(self, contract_name: str) -> List[OptionPriceRecord]:
        """Return the OHLCV and open interest history for one contract."""


__all__ = [
    "AuthenticationError",
    "DataNotAvailable",
    "MarketDataAdapter",
    "MarketDataError",
    "MissingAPIKey",
    "RateLimitError",
    "RateLimiterTimeout",
]
