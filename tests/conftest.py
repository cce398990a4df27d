from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Set

import pytest

from wheel_scanner.adapters.base import DataNotAvailable, MarketDataAdapter, MarketDataError
from wheel_scanner.math.black_scholes import put_price
from wheel_scanner.models.market import (
    OptionContract,
    OptionGreeksRecord,
    OptionPriceRecord,
    PriceBar,
)

AS_OF = date(2024, 6, 3)
BAR_COUNT = 260
LATEST_CLOSE = 100.0
CLOSE_STEP = 20.0 / (BAR_COUNT - 1)
ATM_HISTORY_DAYS = 60


@dataclass
class FakeMarketData(MarketDataAdapter):
    """In-memory provider keyed by ticker / contract name."""

    prices: Dict[str, List[PriceBar]] = field(default_factory=dict)
    chains: Dict[str, List[OptionContract]] = field(default_factory=dict)
    greeks: Dict[str, List[OptionGreeksRecord]] = field(default_factory=dict)
    option_prices: Dict[str, List[OptionPriceRecord]] = field(default_factory=dict)
    failures: Set[str] = field(default_factory=set)
    calls: List[tuple] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def name(self) -> str:
        return "fake"

    def _lookup(self, endpoint: str, identifier: str, table: Dict[str, list]) -> list:
        with self._lock:
            self.calls.append((endpoint, identifier))
        if identifier in self.failures:
            raise MarketDataError(f"simulated outage for {identifier}")
        if identifier not in table:
            raise DataNotAvailable(f"No data found for identifier: {identifier}")
        return list(table[identifier])

    def get_stock_prices(self, ticker: str) -> List[PriceBar]:
        return self._lookup("stock-prices", ticker, self.prices)

    def get_option_chain(self, ticker: str) -> List[OptionContract]:
        return self._lookup("option-chain", ticker, self.chains)

    def get_option_greeks(self, contract_name: str) -> List[OptionGreeksRecord]:
        return self._lookup("option-greeks", contract_name, self.greeks)

    def get_option_prices(self, contract_name: str) -> List[OptionPriceRecord]:
        return self._lookup("option-prices", contract_name, self.option_prices)


def make_bars(as_of: date = AS_OF, count: int = BAR_COUNT, latest: float = LATEST_CLOSE,
              step: float = CLOSE_STEP, volume: float = 2_000_000) -> List[PriceBar]:
    """Steadily rising closes ending at ``latest`` on ``as_of``, oldest first."""

    bars = []
    for offset in reversed(range(count)):
        close = latest - offset * step
        bars.append(
            PriceBar(
                date=as_of - timedelta(days=offset),
                open=close,
                high=close + 0.5,
                low=close - 0.5,
                close=close,
                volume=volume,
            )
        )
    return bars


def contract_name(ticker: str, expiration: date, strike: float) -> str:
    return f"{ticker}{expiration:%y%m%d}P{int(strike * 1000):08d}"


def make_put(ticker: str, strike: float, expiration: date) -> OptionContract:
    return OptionContract(
        contract_name=contract_name(ticker, expiration, strike),
        ticker=ticker,
        option_type="put",
        strike=strike,
        expiration=expiration,
    )


def atm_sigma(offset: int) -> float:
    """Historical IV of the ATM put: 0.35 today, between 0.20 and 0.40 before."""

    if offset == 0:
        return 0.35
    return 0.20 + 0.20 * ((offset * 7) % 11) / 10


def build_ticker(data: FakeMarketData, ticker: str, as_of: date = AS_OF) -> Dict[str, OptionContract]:
    """Populate ``data`` with a ticker that passes every phase.

    The 95 strike put expiring in 30 days has the best premium yield.
    """

    bars = make_bars(as_of)
    data.prices[ticker] = bars
    closes = {bar.date: bar.close for bar in bars}

    atm = make_put(ticker, 100.0, as_of + timedelta(days=30))
    best = make_put(ticker, 95.0, as_of + timedelta(days=30))
    near = make_put(ticker, 95.0, as_of + timedelta(days=10))
    itm = make_put(ticker, 105.0, as_of + timedelta(days=30))
    call = OptionContract(
        contract_name=f"{ticker}CALL100",
        ticker=ticker,
        option_type="call",
        strike=100.0,
        expiration=as_of + timedelta(days=30),
    )
    data.chains[ticker] = [call, itm, near, best, atm]

    atm_prices = []
    for offset in range(ATM_HISTORY_DAYS):
        day = as_of - timedelta(days=offset)
        days_left = (atm.expiration - day).days
        premium = put_price(closes[day], atm.strike, days_left / 365, 0.05, atm_sigma(offset))
        atm_prices.append(
            OptionPriceRecord(date=day, close=premium, volume=500, open_interest=4000)
        )
    data.option_prices[atm.contract_name] = atm_prices
    data.greeks[atm.contract_name] = [
        OptionGreeksRecord(date=as_of, delta=-0.45, theta=-0.05),
        OptionGreeksRecord(date=as_of - timedelta(days=1), delta=-0.44, theta=-0.05),
    ]

    data.greeks[best.contract_name] = [
        OptionGreeksRecord(date=as_of - timedelta(days=1), delta=-0.28, theta=-0.03),
        OptionGreeksRecord(date=as_of, delta=-0.24, theta=-0.04),
    ]
    data.option_prices[best.contract_name] = [
        OptionPriceRecord(date=as_of - timedelta(days=1), close=1.20, volume=90, open_interest=2400),
        OptionPriceRecord(date=as_of, close=1.50, volume=150, open_interest=2500),
    ]

    data.greeks[near.contract_name] = [OptionGreeksRecord(date=as_of, delta=-0.20, theta=-0.06)]
    data.option_prices[near.contract_name] = [
        OptionPriceRecord(date=as_of, close=0.40, volume=50, open_interest=800)
    ]

    return {"atm": atm, "best": best, "near": near, "itm": itm}


@pytest.fixture
def market_data() -> FakeMarketData:
    return FakeMarketData()


@pytest.fixture
def fake_market_data_factory():
    return FakeMarketData


@pytest.fixture
def populate_ticker():
    return build_ticker
