import sqlite3
from datetime import date, datetime, timedelta, timezone

import numpy as np
import pytest

from wheel_scanner.config import AppSettings
from wheel_scanner.models import PriceBar
from wheel_scanner.storage import SQLiteStorage, Storage, StorageError, create_storage


@pytest.fixture
def storage(tmp_path):
    return SQLiteStorage(tmp_path / "nested" / "scanner.db")


def _record(ticker, status="FAILED_PHASE_1", passed=False, score=None, **extra):
    record = {
        "ticker": ticker,
        "status": status,
        "passed": passed,
        "passedPhase1": status != "FAILED_PHASE_1",
        "passedPhase2": status in ("FAILED_PHASE_3", "PASSED"),
        "passedPhase3": passed,
        "compositeScore": score,
        "finalReason": None if passed else f"Phase 1: {ticker} rejected",
    }
    record.update(extra)
    return record


def test_watchlist_preserves_insertion_order_and_uppercases(storage):
    storage.add_watchlist_tickers("alice", ["msft", "AAPL", "kO"])
    storage.add_watchlist_tickers("alice", ["AAPL"])
    storage.add_watchlist_tickers("bob", ["T"])

    assert storage.get_watchlist_tickers("alice") == ["MSFT", "AAPL", "KO"]
    assert storage.get_watchlist_tickers("nobody") == []
    assert storage.list_watchlist_users() == ["alice", "bob"]


def test_open_put_trade_lookup(storage):
    storage.add_trade("alice", "aapl", strike=180.0, expiration=date(2024, 7, 19), premium=2.5)
    storage.add_trade("alice", "msft", status="CLOSED")
    storage.add_trade("alice", "ko", option_type="CALL")
    storage.add_trade("alice", "t", action="BUY_TO_CLOSE")

    assert storage.find_open_put_trade("alice", "AAPL") is True
    assert storage.find_open_put_trade("alice", "MSFT") is False
    assert storage.find_open_put_trade("alice", "KO") is False
    assert storage.find_open_put_trade("alice", "T") is False
    assert storage.find_open_put_trade("bob", "AAPL") is False


def test_open_position_lookup(storage):
    storage.add_position("alice", "ko", cost_basis=58.0)
    storage.add_position("alice", "t", status="CLOSED")

    assert storage.find_open_position("alice", "KO") is True
    assert storage.find_open_position("alice", "T") is False
    assert storage.find_open_position("bob", "KO") is False


def test_replace_price_history_overwrites_ticker(storage):
    start = date(2024, 6, 3)
    first = [
        PriceBar(date=start - timedelta(days=i), open=10, high=11, low=9, close=10 + i, volume=1000)
        for i in range(5)
    ]
    storage.replace_price_history("xyz", first)
    storage.replace_price_history("abc", first[:1])

    second = first[:2]
    storage.replace_price_history("XYZ", second)

    history = storage.get_price_history("xyz")
    assert [bar.date for bar in history] == [start, start - timedelta(days=1)]
    assert history[1].close == 11
    assert len(storage.get_price_history("ABC")) == 1


def test_replace_scan_results_swaps_whole_batch(storage):
    first_run = datetime(2024, 6, 3, 22, 0, tzinfo=timezone.utc)
    storage.replace_scan_results("alice", first_run, [_record("AAPL"), _record("MSFT")])

    second_run = first_run + timedelta(days=1)
    storage.replace_scan_results(
        "alice",
        second_run,
        [
            _record("KO", status="PASSED", passed=True, score=55.0),
            _record("T", status="PASSED", passed=True, score=72.5),
            _record("XOM", status="FAILED_PHASE_3"),
        ],
    )

    results = storage.get_scan_results("alice")
    assert [result.ticker for result in results] == ["T", "KO", "XOM"]
    assert all(result.scan_date == second_run for result in results)
    assert results[0].passed is True
    assert results[0].data["compositeScore"] == 72.5
    assert results[2].final_reason == "Phase 1: XOM rejected"


def test_failed_scan_result_replace_keeps_previous_batch(storage):
    first_run = datetime(2024, 6, 3, 22, 0, tzinfo=timezone.utc)
    storage.replace_scan_results("alice", first_run, [_record("OLD")])

    with pytest.raises(StorageError):
        storage.replace_scan_results(
            "alice",
            first_run + timedelta(days=1),
            [_record("KO"), _record("T", status=None)],
        )

    results = storage.get_scan_results("alice")
    assert [result.ticker for result in results] == ["OLD"]
    assert results[0].scan_date == first_run


def test_failed_price_history_replace_keeps_previous_window(tmp_path):
    path = tmp_path / "history.db"
    storage = SQLiteStorage(path)
    start = date(2024, 6, 3)
    storage.replace_price_history(
        "KO", [PriceBar(date=start, open=60, high=61, low=59, close=60, volume=1000)]
    )
    conn = sqlite3.connect(path)
    try:
        conn.execute(
            """
            CREATE TRIGGER reject_negative_close BEFORE INSERT ON historical_stock_prices
            WHEN NEW.close < 0 BEGIN SELECT RAISE(ABORT, 'negative close'); END
            """
        )
        conn.commit()
    finally:
        conn.close()

    bars = [
        PriceBar(date=start + timedelta(days=1), open=61, high=62, low=60, close=61, volume=1000),
        PriceBar(date=start + timedelta(days=2), open=61, high=62, low=60, close=-1, volume=1000),
    ]
    with pytest.raises(StorageError, match="negative close"):
        storage.replace_price_history("KO", bars)

    history = storage.get_price_history("KO")
    assert [bar.date for bar in history] == [start]
    assert history[0].close == 60


def test_scan_results_are_isolated_per_user(storage):
    scan_date = datetime(2024, 6, 3, tzinfo=timezone.utc)
    storage.replace_scan_results("alice", scan_date, [_record("AAPL")])
    storage.replace_scan_results("bob", scan_date, [_record("KO")])
    storage.replace_scan_results("alice", scan_date, [])

    assert storage.get_scan_results("alice") == []
    assert [result.ticker for result in storage.get_scan_results("bob")] == ["KO"]


def test_delete_then_insert_scan_results(storage):
    scan_date = datetime(2024, 6, 3, tzinfo=timezone.utc)
    storage.insert_scan_results("alice", scan_date, [_record("AAPL")])
    storage.delete_scan_results("alice")
    storage.insert_scan_results("alice", scan_date, [_record("MSFT")])

    assert [result.ticker for result in storage.get_scan_results("alice")] == ["MSFT"]


def test_scan_metadata_counts(storage):
    scan_date = datetime(2024, 6, 3, 22, 0, tzinfo=timezone.utc)
    storage.replace_scan_results(
        "alice",
        scan_date,
        [
            _record("A"),
            _record("B", status="FAILED_PHASE_2"),
            _record("C", status="FAILED_PHASE_3"),
            _record("D", status="PASSED", passed=True, score=60.0),
        ],
    )

    metadata = storage.get_scan_metadata("alice")

    assert metadata.last_scan_date == scan_date
    assert metadata.total_scanned == 4
    assert metadata.passed_phase1 == 3
    assert metadata.passed_phase2 == 2
    assert metadata.passed_phase3 == 1
    assert metadata.total_passed == 1


def test_scan_metadata_without_results(storage):
    metadata = storage.get_scan_metadata("alice")

    assert metadata.last_scan_date is None
    assert metadata.total_scanned == 0


def test_record_payload_serialises_numpy_and_dates(storage):
    scan_date = datetime(2024, 6, 3, tzinfo=timezone.utc)
    record = _record("AAPL", ivRank=np.float64(42.5), expiration=date(2024, 7, 5))

    storage.replace_scan_results("alice", scan_date, [record])

    data = storage.get_scan_results("alice")[0].data
    assert data["ivRank"] == 42.5
    assert data["expiration"] == "2024-07-05"


def test_database_errors_surface_as_storage_error(tmp_path):
    with pytest.raises(StorageError):
        SQLiteStorage(tmp_path)


def test_create_storage_uses_configured_path(tmp_path):
    path = tmp_path / "configured.db"
    settings = AppSettings.model_validate({"env": "test", "storage": {"sqlite": {"path": str(path)}}})

    storage = create_storage(settings)

    assert isinstance(storage, SQLiteStorage)
    assert path.exists()


def test_unsupported_backend_is_rejected():
    settings = AppSettings.model_validate({"env": "test", "storage": {"backend": "postgres"}})

    with pytest.raises(ValueError):
        create_storage(settings)


def test_storage_interface_requires_read_methods():
    class WriteOnlyStorage(Storage):
        get_watchlist_tickers = replace_price_history = delete_scan_results = None
        insert_scan_results = replace_scan_results = None
        find_open_put_trade = find_open_position = None

    with pytest.raises(TypeError):
        WriteOnlyStorage()
