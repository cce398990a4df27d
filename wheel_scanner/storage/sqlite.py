"""SQLite-backed storage implementation."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import numpy as np

from ..models.market import PriceBar
from .base import ScanMetadata, Storage, StorageError, StoredScanResult


def _default_json_serializer(obj: Any) -> Any:
    """Best-effort conversion for non-native JSON objects."""

    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, np.generic):
        return obj.item()
    return str(obj)


def _json_dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(dict(payload), default=_default_json_serializer)


def _json_loads(payload: str) -> Dict[str, Any]:
    return json.loads(payload) if payload else {}


def _ensure_parent_exists(path: Path) -> None:
    if path.name == ":memory:":
        return
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


class SQLiteStorage(Storage):
    """Persist watchlists, portfolio state and scan results in SQLite."""

    def __init__(
        self,
        database: str | Path,
        pragmas: Optional[Mapping[str, Any]] = None,
        *,
        uri: bool = False,
    ) -> None:
        self._database = str(database)
        self._uri = uri
        self._pragmas = dict(pragmas or {})
        if not uri and self._database != ":memory:":
            _ensure_parent_exists(Path(self._database))
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._database, uri=self._uri)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        for key, value in self._pragmas.items():
            conn.execute(f"PRAGMA {key}={value};")
        return conn

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        """Run the block in one transaction, wrapping database errors."""

        try:
            conn = self._connect()
        except sqlite3.DatabaseError as exc:
            raise StorageError(f"Failed to open database for {action}: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.DatabaseError as exc:
            raise StorageError(f"Failed to {action}: {exc}") from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        schema = """
        CREATE TABLE IF NOT EXISTS watchlist_tickers (
            user_id TEXT NOT NULL,
            ticker TEXT NOT NULL,
            added_at TEXT NOT NULL,
            PRIMARY KEY (user_id, ticker)
        );

        CREATE TABLE IF NOT EXISTS trades (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            ticker TEXT NOT NULL,
            type TEXT NOT NULL,
            action TEXT NOT NULL,
            status TEXT NOT NULL,
            strike REAL,
            expiration TEXT,
            premium REAL,
            contracts INTEGER DEFAULT 1
        );

        CREATE TABLE IF NOT EXISTS positions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            ticker TEXT NOT NULL,
            shares INTEGER NOT NULL,
            cost_basis REAL,
            status TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS historical_stock_prices (
            ticker TEXT NOT NULL,
            date TEXT NOT NULL,
            open REAL,
            high REAL,
            low REAL,
            close REAL NOT NULL,
            volume REAL,
            PRIMARY KEY (ticker, date)
        );

        CREATE TABLE IF NOT EXISTS scan_results (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            scan_date TEXT NOT NULL,
            ticker TEXT NOT NULL,
            status TEXT NOT NULL,
            passed INTEGER NOT NULL,
            passed_phase1 INTEGER NOT NULL,
            passed_phase2 INTEGER NOT NULL,
            passed_phase3 INTEGER NOT NULL,
            composite_score REAL,
            final_reason TEXT,
            data TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_scan_results_user ON scan_results(user_id, scan_date);
        CREATE INDEX IF NOT EXISTS idx_trades_user_ticker ON trades(user_id, ticker);
        CREATE INDEX IF NOT EXISTS idx_positions_user_ticker ON positions(user_id, ticker);
        """
        with self._transaction("create schema") as conn:
            conn.executescript(schema)

    # ------------------------------------------------------------------
    # Seeding helpers used by the web application layer and tests
    # ------------------------------------------------------------------
    def add_watchlist_tickers(self, user_id: str, tickers: Sequence[str]) -> None:
        added_at = datetime.now(timezone.utc).isoformat()
        rows = [(user_id, ticker.upper(), added_at) for ticker in tickers]
        with self._transaction(f"update watchlist for '{user_id}'") as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO watchlist_tickers(user_id, ticker, added_at) VALUES(?, ?, ?)",
                rows,
            )

    def add_trade(
        self,
        user_id: str,
        ticker: str,
        *,
        option_type: str = "PUT",
        action: str = "SELL_TO_OPEN",
        status: str = "OPEN",
        strike: Optional[float] = None,
        expiration: Optional[date] = None,
        premium: Optional[float] = None,
        contracts: int = 1,
    ) -> None:
        with self._transaction(f"record trade for '{ticker}'") as conn:
            conn.execute(
                """
                INSERT INTO trades(user_id, ticker, type, action, status, strike, expiration, premium, contracts)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    ticker.upper(),
                    option_type,
                    action,
                    status,
                    strike,
                    expiration.isoformat() if expiration else None,
                    premium,
                    contracts,
                ),
            )

    def add_position(
        self,
        user_id: str,
        ticker: str,
        *,
        shares: int = 100,
        cost_basis: Optional[float] = None,
        status: str = "OPEN",
    ) -> None:
        with self._transaction(f"record position for '{ticker}'") as conn:
            conn.execute(
                "INSERT INTO positions(user_id, ticker, shares, cost_basis, status) VALUES(?, ?, ?, ?, ?)",
                (user_id, ticker.upper(), shares, cost_basis, status),
            )

    # ------------------------------------------------------------------
    # Scanner gateway
    # ------------------------------------------------------------------
    def get_watchlist_tickers(self, user_id: str) -> List[str]:
        with self._transaction(f"load watchlist for '{user_id}'") as conn:
            rows = conn.execute(
                "SELECT ticker FROM watchlist_tickers WHERE user_id = ? ORDER BY rowid",
                (user_id,),
            ).fetchall()
        return [row["ticker"] for row in rows]

    def list_watchlist_users(self) -> List[str]:
        with self._transaction("list watchlist users") as conn:
            rows = conn.execute(
                "SELECT user_id FROM watchlist_tickers GROUP BY user_id ORDER BY MIN(rowid)"
            ).fetchall()
        return [row["user_id"] for row in rows]

    def replace_price_history(self, ticker: str, bars: Sequence[PriceBar]) -> None:
        symbol = ticker.upper()
        rows = [
            (symbol, bar.date.isoformat(), bar.open, bar.high, bar.low, bar.close, bar.volume)
            for bar in bars
        ]
        with self._transaction(f"replace price history for '{symbol}'") as conn:
            conn.execute("DELETE FROM historical_stock_prices WHERE ticker = ?", (symbol,))
            if rows:
                conn.executemany(
                    """
                    INSERT OR REPLACE INTO historical_stock_prices(ticker, date, open, high, low, close, volume)
                    VALUES(?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )

    def get_price_history(self, ticker: str) -> List[PriceBar]:
        with self._transaction(f"load price history for '{ticker}'") as conn:
            rows = conn.execute(
                """
                SELECT date, open, high, low, close, volume
                FROM historical_stock_prices
                WHERE ticker = ?
                ORDER BY date DESC
                """,
                (ticker.upper(),),
            ).fetchall()
        return [PriceBar.model_validate(dict(row)) for row in rows]

    def delete_scan_results(self, user_id: str) -> None:
        with self._transaction(f"delete scan results for '{user_id}'") as conn:
            conn.execute("DELETE FROM scan_results WHERE user_id = ?", (user_id,))

    def insert_scan_results(
        self,
        user_id: str,
        scan_date: datetime,
        records: Sequence[Mapping[str, Any]],
    ) -> None:
        with self._transaction(f"insert scan results for '{user_id}'") as conn:
            self._insert_results(conn, user_id, scan_date, records)

    def replace_scan_results(
        self,
        user_id: str,
        scan_date: datetime,
        records: Sequence[Mapping[str, Any]],
    ) -> None:
        with self._transaction(f"replace scan results for '{user_id}'") as conn:
            conn.execute("DELETE FROM scan_results WHERE user_id = ?", (user_id,))
            self._insert_results(conn, user_id, scan_date, records)

    @staticmethod
    def _insert_results(
        conn: sqlite3.Connection,
        user_id: str,
        scan_date: datetime,
        records: Sequence[Mapping[str, Any]],
    ) -> None:
        rows = [
            (
                user_id,
                scan_date.isoformat(),
                record["ticker"],
                record["status"],
                int(bool(record.get("passed"))),
                int(bool(record.get("passedPhase1"))),
                int(bool(record.get("passedPhase2"))),
                int(bool(record.get("passedPhase3"))),
                _optional_float(record.get("compositeScore")),
                record.get("finalReason"),
                _json_dumps(record),
            )
            for record in records
        ]
        if not rows:
            return
        conn.executemany(
            """
            INSERT INTO scan_results(
                user_id, scan_date, ticker, status, passed, passed_phase1, passed_phase2,
                passed_phase3, composite_score, final_reason, data
            )
            VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )

    def find_open_put_trade(self, user_id: str, ticker: str) -> bool:
        with self._transaction(f"check open puts for '{ticker}'") as conn:
            row = conn.execute(
                """
                SELECT 1 FROM trades
                WHERE user_id = ? AND ticker = ? AND type = 'PUT'
                  AND action = 'SELL_TO_OPEN' AND status = 'OPEN'
                LIMIT 1
                """,
                (user_id, ticker.upper()),
            ).fetchone()
        return row is not None

    def find_open_position(self, user_id: str, ticker: str) -> bool:
        with self._transaction(f"check open positions for '{ticker}'") as conn:
            row = conn.execute(
                "SELECT 1 FROM positions WHERE user_id = ? AND ticker = ? AND status = 'OPEN' LIMIT 1",
                (user_id, ticker.upper()),
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    def _latest_scan_date(self, conn: sqlite3.Connection, user_id: str) -> Optional[str]:
        row = conn.execute(
            "SELECT MAX(scan_date) AS scan_date FROM scan_results WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        return row["scan_date"] if row else None

    def get_scan_results(self, user_id: str) -> List[StoredScanResult]:
        with self._transaction(f"load scan results for '{user_id}'") as conn:
            latest = self._latest_scan_date(conn, user_id)
            if latest is None:
                return []
            rows = conn.execute(
                """
                SELECT user_id, scan_date, ticker, status, passed, composite_score, final_reason, data
                FROM scan_results
                WHERE user_id = ? AND scan_date = ?
                ORDER BY passed DESC, composite_score DESC, ticker ASC
                """,
                (user_id, latest),
            ).fetchall()

        return [
            StoredScanResult(
                user_id=row["user_id"],
                scan_date=datetime.fromisoformat(row["scan_date"]),
                ticker=row["ticker"],
                status=row["status"],
                passed=bool(row["passed"]),
                composite_score=row["composite_score"],
                final_reason=row["final_reason"],
                data=_json_loads(row["data"]),
            )
            for row in rows
        ]

    def get_scan_metadata(self, user_id: str) -> ScanMetadata:
        with self._transaction(f"load scan metadata for '{user_id}'") as conn:
            latest = self._latest_scan_date(conn, user_id)
            if latest is None:
                return ScanMetadata(last_scan_date=None)
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(passed_phase1), 0) AS phase1,
                    COALESCE(SUM(passed_phase2), 0) AS phase2,
                    COALESCE(SUM(passed_phase3), 0) AS phase3,
                    COALESCE(SUM(passed), 0) AS passed
                FROM scan_results
                WHERE user_id = ? AND scan_date = ?
                """,
                (user_id, latest),
            ).fetchone()

        return ScanMetadata(
            last_scan_date=datetime.fromisoformat(latest),
            total_scanned=int(row["total"]),
            passed_phase1=int(row["phase1"]),
            passed_phase2=int(row["phase2"]),
            passed_phase3=int(row["phase3"]),
            total_passed=int(row["passed"]),
        )


__all__ = ["SQLiteStorage"]
