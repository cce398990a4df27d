"""FinancialData.net REST client.

Expected environment variables:
    * ``FINANCIAL_DATA_API_KEY`` - API key appended to every request. The
      variable name can be overridden with ``market_data.api_key_env``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from ..models.market import OptionContract, OptionGreeksRecord, OptionPriceRecord, PriceBar
from .base import (
    AuthenticationError,
    DataNotAvailable,
    MarketDataAdapter,
    MarketDataError,
    RateLimitError,
    RateLimiterTimeout,
)
from .rate_limiter import TokenBucket

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://financialdata.net/api/v1"
DEFAULT_PAGE_SIZE = 300

ModelT = TypeVar("ModelT", bound=BaseModel)


class FinancialDataClient(MarketDataAdapter):
    """Rate limited reads against FinancialData.net.

    Every HTTP request, including each page of a paginated option chain,
    takes one token from ``limiter`` before it is sent. Failures surface as
    :class:`MarketDataError` subclasses; the client never retries.
    """

    def __init__(
        self,
        api_key: str,
        limiter: TokenBucket,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 30.0,
        page_size: int = DEFAULT_PAGE_SIZE,
        acquire_timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_key = api_key
        self._limiter = limiter
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.page_size = page_size
        self.acquire_timeout = acquire_timeout
        self.session = session or requests.Session()

    @property
    def name(self) -> str:
        return "financialdata"

    # ------------------------------------------------------------------
    # Public reads
    # ------------------------------------------------------------------
    def get_stock_prices(self, ticker: str) -> List[PriceBar]:
        payload = self._get("stock-prices", ticker.upper())
        return self._parse(payload, PriceBar, ticker)

    def get_option_chain(self, ticker: str) -> List[OptionContract]:
        symbol = ticker.upper()
        contracts: List[OptionContract] = []
        offset = 0
        while True:
            page = self._get("option-chain", symbol, offset=offset)
            contracts.extend(self._parse(page, OptionContract, symbol))
            if len(page) < self.page_size:
                break
            offset += self.page_size

        LOGGER.debug("Loaded %d option contracts for %s", len(contracts), symbol)
        return contracts

    def get_option_greeks(self, contract_name: str) -> List[OptionGreeksRecord]:
        payload = self._get("option-greeks", contract_name)
        return self._parse(payload, OptionGreeksRecord, contract_name)

    def get_option_prices(self, contract_name: str) -> List[OptionPriceRecord]:
        payload = self._get("option-prices", contract_name)
        return self._parse(payload, OptionPriceRecord, contract_name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _get(self, endpoint: str, identifier: str, **extra: Any) -> List[Dict[str, Any]]:
        if not self._limiter.acquire(timeout=self.acquire_timeout):
            raise RateLimiterTimeout(
                f"No rate limit token granted within {self.acquire_timeout}s for {endpoint}"
            )

        params: Dict[str, Any] = {"identifier": identifier, "key": self._api_key}
        params.update(extra)
        url = f"{self.base_url}/{endpoint}"

        try:
            response = self.session.get(url, params=params, timeout=self.timeout_seconds)
        except requests.Timeout as exc:
            raise MarketDataError(
                f"Request to {endpoint} timed out after {self.timeout_seconds}s"
            ) from exc
        except requests.RequestException as exc:
            raise MarketDataError(f"Request to {endpoint} failed: {exc}") from exc

        self._raise_for_status(response, identifier)

        try:
            payload = response.json()
        except ValueError as exc:
            raise MarketDataError(f"Invalid JSON from {endpoint} for {identifier}") from exc

        if payload is None:
            return []
        if not isinstance(payload, list):
            raise MarketDataError(
                f"Unexpected payload from {endpoint} for {identifier}: {type(payload).__name__}"
            )
        return payload

    @staticmethod
    def _raise_for_status(response: requests.Response, identifier: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        if status == 401:
            raise AuthenticationError("API authentication failed. Check FINANCIAL_DATA_API_KEY.")
        if status == 404:
            raise DataNotAvailable(f"No data found for identifier: {identifier}")
        if status == 429:
            raise RateLimitError("API rate limit exceeded. Please try again later.")
        raise MarketDataError(f"API server error: {status} {response.reason or ''}".rstrip())

    @staticmethod
    def _parse(rows: List[Dict[str, Any]], model: Type[ModelT], identifier: str) -> List[ModelT]:
        try:
            return [model.model_validate(row) for row in rows]
        except ValidationError as exc:
            raise MarketDataError(
                f"Malformed {model.__name__} payload for {identifier}: {exc.error_count()} errors"
            ) from exc


__all__ = ["DEFAULT_BASE_URL", "DEFAULT_PAGE_SIZE", "FinancialDataClient"]
