"""Command line interface for the wheel scanner job."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from .adapters import MarketDataError
from .config import get_settings
from .scanner import ScanCancelled, run_all_users, run_full_scan
from .scanner.indicators import bars_to_frame
from .storage import StorageError, create_storage

LOG_DIR = Path("logs/wheel_scanner")

LOGGER = logging.getLogger("wheel_scanner.cli")

RESULT_COLUMNS = [
    "ticker",
    "status",
    "compositeScore",
    "stockPrice",
    "ivRank",
    "contractName",
    "strike",
    "dte",
    "delta",
    "premiumYield",
    "portfolioNote",
    "finalReason",
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Screen watchlist tickers for cash-secured put candidates")
    parser.add_argument("command", choices=["scan", "results", "history"], help="Command to execute")
    parser.add_argument("--user", type=str, default=None, help="User whose watchlist to scan or report on")
    parser.add_argument(
        "--all-users",
        action="store_true",
        help="Scan every user that has watchlist tickers (nightly job)",
    )
    parser.add_argument("--ticker", type=str, default=None, help="Ticker for the history command")
    parser.add_argument("--env", type=str, default=None, help="Configuration environment (defaults to APP_ENV)")
    parser.add_argument("--top", type=int, default=25, help="Number of rows to display in the console")
    return parser


def _configure_logging() -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_path = LOG_DIR / "scan.log"
    handler = logging.FileHandler(log_path, encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    handler.setFormatter(formatter)
    root = logging.getLogger("wheel_scanner")
    if not any(isinstance(existing, logging.FileHandler) for existing in root.handlers):
        root.setLevel(logging.INFO)
        root.addHandler(handler)
    logging.basicConfig(level=logging.INFO)


def _install_cancel_handler(event: threading.Event) -> None:
    def _handle(signum, _frame) -> None:
        LOGGER.warning("Received signal %s, stopping after the current ticker", signum)
        event.set()

    signal.signal(signal.SIGTERM, _handle)


def _display_frame(df: pd.DataFrame, limit: int, empty_message: str) -> None:
    if df.empty:
        print(empty_message)
        return
    with pd.option_context("display.max_columns", None, "display.width", 200):
        print(df.head(limit).to_string(index=False))


def _results_frame(records: Sequence[dict]) -> pd.DataFrame:
    frame = pd.DataFrame(list(records))
    if frame.empty:
        return frame
    columns: List[str] = [column for column in RESULT_COLUMNS if column in frame.columns]
    frame = frame[columns].copy()
    numeric = [column for column in ("compositeScore", "ivRank", "premiumYield") if column in frame.columns]
    frame[numeric] = frame[numeric].astype(float).round(2)
    return frame


def _run_scan(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    if not args.user and not args.all_users:
        parser.error("scan requires --user or --all-users")

    settings = get_settings(args.env)
    cancel_event = threading.Event()
    _install_cancel_handler(cancel_event)

    try:
        if args.all_users:
            LOGGER.info("Starting nightly scan")
            summaries = run_all_users(settings=settings, cancel_event=cancel_event)
            for user_id, summary in summaries.items():
                print(f"User {user_id}: {summary.total_scanned} scanned, {summary.total_passed} candidates")
            LOGGER.info("Nightly scan complete for %d users", len(summaries))
            return 0

        summary = run_full_scan(args.user, settings=settings, cancel_event=cancel_event)
    except ScanCancelled as exc:
        LOGGER.warning("%s", exc)
        return 130
    except (MarketDataError, StorageError) as exc:
        LOGGER.error("Scan failed: %s", exc)
        return 1

    records = [result.to_record() for result in summary.results]
    records.sort(key=lambda record: (not record["passed"], -(record["compositeScore"] or 0.0)))
    _display_frame(_results_frame(records), args.top, "No watchlist tickers to scan.")
    print(
        f"Scanned {summary.total_scanned} tickers, {summary.total_passed} candidates "
        f"({summary.scan_date.isoformat()})"
    )
    return 0


def _run_results(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    if not args.user:
        parser.error("results requires --user")

    storage = create_storage(get_settings(args.env))
    metadata = storage.get_scan_metadata(args.user)
    if metadata.last_scan_date is None:
        print(f"No scan results stored for user {args.user}.")
        return 0

    results = storage.get_scan_results(args.user)
    _display_frame(_results_frame([result.data for result in results]), args.top, "No scan results.")
    print(
        f"Last scan {metadata.last_scan_date.isoformat()}: {metadata.total_scanned} scanned, "
        f"{metadata.passed_phase1} passed phase 1, {metadata.passed_phase2} passed phase 2, "
        f"{metadata.passed_phase3} passed phase 3, {metadata.total_passed} candidates"
    )
    return 0


def _run_history(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    if not args.ticker:
        parser.error("history requires --ticker")

    storage = create_storage(get_settings(args.env))
    frame = bars_to_frame(storage.get_price_history(args.ticker)).reset_index()
    _display_frame(frame, args.top, f"No stored price history for {args.ticker.upper()}.")
    return 0


def run_from_args(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "scan":
        return _run_scan(args, parser)
    if args.command == "results":
        return _run_results(args, parser)
    if args.command == "history":
        return _run_history(args, parser)
    parser.error("Unknown command")
    return 2


def main(argv: Optional[Sequence[str]] = None) -> int:
    _configure_logging()
    return run_from_args(argv)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
