"""Base definitions for storage backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence

from ..models.market import PriceBar


class StorageError(RuntimeError):
    """Raised when a storage backend encounters an unrecoverable error."""


@dataclass(frozen=True)
class StoredScanResult:
    """One persisted ScanResult row."""

    user_id: str
    scan_date: datetime
    ticker: str
    status: str
    passed: bool
    composite_score: Optional[float]
    final_reason: Optional[str]
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScanMetadata:
    """Funnel counts for the latest scan of a user."""

    last_scan_date: Optional[datetime]
    total_scanned: int = 0
    passed_phase1: int = 0
    passed_phase2: int = 0
    passed_phase3: int = 0
    total_passed: int = 0


class Storage(ABC):
    """Persistence gateway consumed by the scanner."""

    @abstractmethod
    def get_watchlist_tickers(self, user_id: str) -> List[str]:
        """Return the user's watchlist tickers in insertion order."""

    @abstractmethod
    def replace_price_history(self, ticker: str, bars: Sequence[PriceBar]) -> None:
        """Replace the stored chart window for ``ticker`` in one transaction."""

    @abstractmethod
    def delete_scan_results(self, user_id: str) -> None:
        """Remove every stored scan result for ``user_id``."""

    @abstractmethod
    def insert_scan_results(
        self,
        user_id: str,
        scan_date: datetime,
        records: Sequence[Mapping[str, Any]],
    ) -> None:
        """Bulk insert one scan's result records."""

    @abstractmethod
    def replace_scan_results(
        self,
        user_id: str,
        scan_date: datetime,
        records: Sequence[Mapping[str, Any]],
    ) -> None:
        """Delete prior results and insert ``records`` atomically."""

    @abstractmethod
    def find_open_put_trade(self, user_id: str, ticker: str) -> bool:
        """Whether the user has an open sell-to-open put on ``ticker``."""

    @abstractmethod
    def find_open_position(self, user_id: str, ticker: str) -> bool:
        """Whether the user holds an open (assigned) share position in ``ticker``."""

    @abstractmethod
    def list_watchlist_users(self) -> List[str]:
        """Return every user with at least one watchlist ticker."""

    @abstractmethod
    def get_scan_results(self, user_id: str) -> List[StoredScanResult]:
        """Return the latest scan's results, passed first then by composite score."""

    @abstractmethod
    def get_scan_metadata(self, user_id: str) -> ScanMetadata:
        """Return funnel counts for the user's latest scan."""

    @abstractmethod
    def get_price_history(self, ticker: str) -> List[PriceBar]:
        """Return the stored chart window for ``ticker``, newest first."""


__all__ = [
    "ScanMetadata",
    "Storage",
    "StorageError",
    "StoredScanResult",
]
