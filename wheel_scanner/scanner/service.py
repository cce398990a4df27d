"""Full-scan orchestration for one user's watchlist."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import Dict, List, Optional

from ..adapters import MarketDataAdapter, get_market_data_client
from ..config import AppSettings, get_settings
from ..models.outcome import ScanErrored, ScanOutcome, ScanSummary
from ..storage import Storage, create_storage
from .ticker import TickerScanner

LOGGER = logging.getLogger(__name__)


class ScanCancelled(RuntimeError):
    """Raised when a scan is cancelled between tickers. Nothing is persisted."""

    def __init__(self, user_id: str, completed: int, total: int) -> None:
        super().__init__(f"Scan for '{user_id}' cancelled after {completed} of {total} tickers")
        self.user_id = user_id
        self.completed = completed
        self.total = total


def run_full_scan(
    user_id: str,
    *,
    storage: Optional[Storage] = None,
    client: Optional[MarketDataAdapter] = None,
    settings: Optional[AppSettings] = None,
    cancel_event: Optional[threading.Event] = None,
    now: Optional[dt.datetime] = None,
) -> ScanSummary:
    """Scan every watchlist ticker for ``user_id`` and replace the stored results.

    Tickers run one after another. The market data token bucket is shared by
    the whole process, so scanning tickers in parallel would not finish any
    sooner; only the per-contract reads inside a ticker fan out.

    A ticker that raises is recorded as :class:`ScanErrored` and the loop
    continues. The results of the run replace the user's previous results in
    a single transaction once every ticker has been scanned; a failure of that
    write propagates as :class:`~wheel_scanner.storage.StorageError`.
    """

    settings = settings or get_settings()
    storage = storage or create_storage(settings)
    client = client or get_market_data_client(settings)
    scan_date = now or dt.datetime.now(dt.timezone.utc)
    as_of = scan_date.date()

    scanner = TickerScanner(client, storage, settings.scanner, settings.scoring)
    tickers = storage.get_watchlist_tickers(user_id)
    LOGGER.info("Starting scan for user %s: %d tickers", user_id, len(tickers))

    results: List[ScanOutcome] = []
    for index, ticker in enumerate(tickers):
        if cancel_event is not None and cancel_event.is_set():
            LOGGER.warning("Scan for user %s cancelled before %s", user_id, ticker)
            raise ScanCancelled(user_id, index, len(tickers))
        try:
            results.append(scanner.scan_ticker(ticker, user_id, as_of))
        except Exception as exc:
            LOGGER.exception("Error scanning %s", ticker)
            results.append(ScanErrored(ticker.upper(), str(exc) or type(exc).__name__))

    storage.replace_scan_results(user_id, scan_date, [result.to_record() for result in results])

    summary = ScanSummary(
        total_scanned=len(results),
        total_passed=sum(1 for result in results if result.passed),
        scan_date=scan_date,
        results=tuple(results),
    )
    LOGGER.info(
        "Scan for user %s complete: %d scanned, %d candidates",
        user_id,
        summary.total_scanned,
        summary.total_passed,
    )
    return summary


def run_all_users(
    *,
    storage: Optional[Storage] = None,
    client: Optional[MarketDataAdapter] = None,
    settings: Optional[AppSettings] = None,
    cancel_event: Optional[threading.Event] = None,
    now: Optional[dt.datetime] = None,
) -> Dict[str, ScanSummary]:
    """Nightly job: scan every user who has a watchlist under one scan date."""

    settings = settings or get_settings()
    storage = storage or create_storage(settings)
    client = client or get_market_data_client(settings)
    scan_date = now or dt.datetime.now(dt.timezone.utc)

    users = storage.list_watchlist_users()
    if not users:
        LOGGER.info("No users with watchlists, nothing to scan")
        return {}

    summaries: Dict[str, ScanSummary] = {}
    for user_id in users:
        summaries[user_id] = run_full_scan(
            user_id,
            storage=storage,
            client=client,
            settings=settings,
            cancel_event=cancel_event,
            now=scan_date,
        )
    return summaries


__all__ = ["ScanCancelled", "run_all_users", "run_full_scan"]
