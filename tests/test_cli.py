from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from wheel_scanner import cli
from wheel_scanner.config import loader, reset_settings_cache
from wheel_scanner.models import PriceBar, ScanSummary
from wheel_scanner.scanner import ScanCancelled
from wheel_scanner.storage import SQLiteStorage, StorageError


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "cli.db"
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "cli.yaml").write_text(f"storage:\n  sqlite:\n    path: {path.as_posix()}\n", encoding="utf-8")
    monkeypatch.setattr(loader, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(cli.signal, "signal", lambda *args: None)
    reset_settings_cache()
    yield path
    reset_settings_cache()


def test_results_without_scan(db_path, capsys):
    assert cli.run_from_args(["results", "--user", "alice", "--env", "cli"]) == 0

    assert "No scan results stored for user alice." in capsys.readouterr().out


def test_results_prints_latest_scan(db_path, capsys):
    storage = SQLiteStorage(db_path)
    scan_date = datetime(2024, 6, 3, 22, 0, tzinfo=timezone.utc)
    storage.replace_scan_results(
        "alice",
        scan_date,
        [
            {
                "ticker": "KO",
                "status": "PASSED",
                "passed": True,
                "passedPhase1": True,
                "passedPhase2": True,
                "passedPhase3": True,
                "compositeScore": 71.2345,
                "ivRank": 48.0,
                "premiumYield": 12.3456,
                "contractName": "KO240628P00060000",
            },
            {
                "ticker": "MSFT",
                "status": "FAILED_PHASE_1",
                "passed": False,
                "finalReason": "Phase 1: Price $420.00 outside $13-$150 range",
            },
        ],
    )

    assert cli.run_from_args(["results", "--user", "alice", "--env", "cli"]) == 0

    out = capsys.readouterr().out
    assert "KO240628P00060000" in out
    assert "71.23" in out
    assert out.index("KO") < out.index("MSFT")
    assert "2 scanned, 1 passed phase 1" in out


def test_history_prints_stored_bars(db_path, capsys):
    storage = SQLiteStorage(db_path)
    storage.replace_price_history(
        "KO",
        [PriceBar(date=date(2024, 6, 3), open=60, high=61, low=59, close=60.5, volume=12_000_000)],
    )

    assert cli.run_from_args(["history", "--ticker", "ko", "--env", "cli"]) == 0

    out = capsys.readouterr().out
    assert "2024-06-03" in out
    assert "60.5" in out


def test_history_without_bars(db_path, capsys):
    assert cli.run_from_args(["history", "--ticker", "xyz", "--env", "cli"]) == 0

    assert "No stored price history for XYZ." in capsys.readouterr().out


def test_scan_requires_a_user(db_path):
    with pytest.raises(SystemExit):
        cli.run_from_args(["scan", "--env", "cli"])


def test_scan_prints_summary(db_path, monkeypatch, capsys):
    summary = ScanSummary(
        total_scanned=0,
        total_passed=0,
        scan_date=datetime(2024, 6, 3, 22, 0, tzinfo=timezone.utc),
    )
    calls = []

    def fake_scan(user_id, **kwargs):
        calls.append((user_id, kwargs))
        return summary

    monkeypatch.setattr(cli, "run_full_scan", fake_scan)

    assert cli.run_from_args(["scan", "--user", "alice", "--env", "cli"]) == 0

    out = capsys.readouterr().out
    assert "No watchlist tickers to scan." in out
    assert "Scanned 0 tickers, 0 candidates" in out
    assert calls[0][0] == "alice"
    assert calls[0][1]["settings"].env == "cli"
    assert not calls[0][1]["cancel_event"].is_set()


def test_cancelled_scan_exits_130(db_path, monkeypatch):
    def cancelled(user_id, **kwargs):
        raise ScanCancelled(user_id, 2, 5)

    monkeypatch.setattr(cli, "run_full_scan", cancelled)

    assert cli.run_from_args(["scan", "--user", "alice", "--env", "cli"]) == 130


def test_storage_failure_exits_1(db_path, monkeypatch):
    def broken(**kwargs):
        raise StorageError("disk full")

    monkeypatch.setattr(cli, "run_all_users", broken)

    assert cli.run_from_args(["scan", "--all-users", "--env", "cli"]) == 1
