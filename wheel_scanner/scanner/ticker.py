"""Five-phase screening of a single ticker."""

from __future__ import annotations

import datetime as dt
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..adapters.base import MarketDataAdapter, MarketDataError
from ..config import ScannerSettings, ScoringSettings
from ..models.market import (
    OptionContract,
    OptionGreeksRecord,
    OptionPriceRecord,
    PriceBar,
    most_recent,
)
from ..models.outcome import (
    CandidateContract,
    Passed,
    Phase1Failure,
    Phase2Failure,
    Phase3Failure,
    ScanOutcome,
)
from ..scoring.composite import CompositeScorer
from ..storage.base import Storage
from . import phases
from .indicators import close_lookup, sort_bars_desc

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractHistory:
    """Greeks and price history fetched for one contract."""

    contract: OptionContract
    dte: int
    greeks: Sequence[OptionGreeksRecord] = ()
    prices: Sequence[OptionPriceRecord] = ()
    error: Optional[str] = None


class TickerScanner:
    """Runs the stock filter, IV screen, contract selection, scoring and portfolio check.

    Market data errors end the phase they occur in with a ``Fetch error``
    reason. Storage errors are not caught here; they propagate to the caller.
    """

    def __init__(
        self,
        client: MarketDataAdapter,
        storage: Storage,
        settings: Optional[ScannerSettings] = None,
        scoring: Optional[ScoringSettings] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.storage = storage
        self.settings = settings or ScannerSettings()
        self.scorer = CompositeScorer(scoring, delta_range=(self.settings.delta_min, self.settings.delta_max))
        self.logger = logger or LOGGER

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def scan_ticker(self, ticker: str, user_id: str, as_of: Optional[dt.date] = None) -> ScanOutcome:
        symbol = ticker.upper()
        as_of = as_of or dt.date.today()

        with ThreadPoolExecutor(max_workers=self.settings.fetch_workers) as pool:
            outcome = self._run_phases(symbol, user_id, as_of, pool)

        if outcome.passed:
            self.logger.info(
                "%s passed all phases (composite %.1f, %s)",
                symbol,
                outcome.composite_score,
                outcome.selection.contract.contract_name,
            )
        else:
            self.logger.info("%s rejected: %s", symbol, outcome.final_reason)
        return outcome

    def _run_phases(
        self,
        symbol: str,
        user_id: str,
        as_of: dt.date,
        pool: ThreadPoolExecutor,
    ) -> ScanOutcome:
        settings = self.settings

        # Phase 1: stock universe filter
        try:
            raw_bars = self.client.get_stock_prices(symbol)
        except MarketDataError as exc:
            self.logger.warning("Price history fetch failed for %s: %s", symbol, exc)
            return Phase1Failure(symbol, f"Fetch error: {exc}")
        if not raw_bars:
            return Phase1Failure(symbol, "No price data")

        bars = sort_bars_desc(raw_bars)
        self.storage.replace_price_history(symbol, bars[: settings.price_history_keep])

        phase1 = phases.phase1_metrics(bars, settings)
        reason = phases.phase1_rejection(phase1, settings)
        if reason is not None:
            return Phase1Failure(symbol, reason, phase1)

        # Phase 2: IV screen on the ATM put
        try:
            chain = self.client.get_option_chain(symbol)
        except MarketDataError as exc:
            self.logger.warning("Option chain fetch failed for %s: %s", symbol, exc)
            return Phase2Failure(symbol, f"Fetch error: {exc}", phase1)

        puts = phases.otm_puts(chain, phase1.stock_price)
        atm = phases.select_atm_put(puts, phase1.stock_price)
        if atm is None:
            if not any(contract.is_put for contract in chain):
                return Phase2Failure(symbol, "No put contracts available", phase1)
            return Phase2Failure(
                symbol, f"No put contracts struck at or below ${phase1.stock_price:.2f}", phase1
            )

        history = self._fetch_contract_history(pool, [(atm, atm.dte(as_of))])[0]
        if history.error is not None:
            self.logger.warning("ATM history fetch failed for %s: %s", atm.contract_name, history.error)
            return Phase2Failure(symbol, f"Fetch error: {history.error}", phase1)

        series = phases.build_iv_series(
            atm,
            history.prices,
            history.greeks,
            close_lookup(bars),
            lookback_days=settings.iv_lookback_days,
        )
        phase2 = phases.phase2_metrics(atm, series)
        reason = phases.phase2_rejection(phase2, settings.min_iv_rank)
        if reason is not None:
            return Phase2Failure(symbol, reason, phase1, phase2)

        # Phase 3: contract selection
        window = phases.contracts_in_dte_window(puts, as_of, settings.min_dte, settings.max_dte)
        if not window:
            return Phase3Failure(
                symbol,
                f"No puts expiring in {settings.min_dte}-{settings.max_dte} days",
                phase1,
                phase2,
            )

        candidates: List[CandidateContract] = []
        failures = 0
        for item in self._fetch_contract_history(pool, window):
            if item.error is not None:
                failures += 1
                self.logger.warning("Skipping %s: %s", item.contract.contract_name, item.error)
                continue
            candidate = phases.evaluate_candidate(
                item.contract,
                item.dte,
                most_recent(item.greeks),
                most_recent(item.prices),
                phase1.stock_price,
                settings,
            )
            if candidate is not None:
                candidates.append(candidate)

        selection = phases.select_best_contract(candidates)
        if selection is None:
            if failures == len(window):
                reason = f"Fetch error: all {failures} contract fetches failed"
            else:
                reason = "No contracts meet DTE/delta/yield/liquidity criteria"
                if failures:
                    reason += f" ({failures} of {len(window)} contract fetches failed)"
            return Phase3Failure(symbol, reason, phase1, phase2)

        # Phase 4: scoring
        scores = self.scorer.score(
            premium_yield=selection.premium_yield,
            iv_rank=phase2.iv_rank,
            delta=selection.delta,
            open_interest=selection.open_interest,
            stock_price=phase1.stock_price,
            sma200=phase1.sma200,
        )

        # Phase 5: portfolio conflicts
        portfolio = phases.portfolio_check(
            self.storage.find_open_put_trade(user_id, symbol),
            self.storage.find_open_position(user_id, symbol),
        )

        return Passed(
            ticker=symbol,
            phase1=phase1,
            phase2=phase2,
            selection=selection,
            scores=scores,
            portfolio=portfolio,
        )

    # ------------------------------------------------------------------
    # Fan-out helpers
    # ------------------------------------------------------------------
    def _fetch_contract_history(
        self,
        pool: ThreadPoolExecutor,
        contracts: Sequence[Tuple[OptionContract, int]],
    ) -> List[ContractHistory]:
        """Fetch greeks and prices for every contract concurrently, preserving order."""

        pending: List[Tuple[OptionContract, int, Future, Future]] = []
        for contract, dte in contracts:
            greeks_future = pool.submit(self.client.get_option_greeks, contract.contract_name)
            prices_future = pool.submit(self.client.get_option_prices, contract.contract_name)
            pending.append((contract, dte, greeks_future, prices_future))

        results: List[ContractHistory] = []
        for contract, dte, greeks_future, prices_future in pending:
            payload: Dict[str, Sequence] = {}
            errors: List[str] = []
            for key, future in (("greeks", greeks_future), ("prices", prices_future)):
                try:
                    payload[key] = future.result()
                except MarketDataError as exc:
                    errors.append(f"{key}: {exc}")
            if errors:
                results.append(ContractHistory(contract, dte, error="; ".join(errors)))
            else:
                results.append(ContractHistory(contract, dte, payload["greeks"], payload["prices"]))
        return results


__all__ = ["ContractHistory", "TickerScanner"]
