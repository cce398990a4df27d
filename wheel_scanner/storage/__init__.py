"""Storage backends for watchlists, portfolio lookups and scan results."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from .base import ScanMetadata, Storage, StorageError, StoredScanResult
from .sqlite import SQLiteStorage

if TYPE_CHECKING:  # pragma: no cover
    from ..config import AppSettings


def create_storage(settings: Optional["AppSettings"] = None) -> Storage:
    """Build the configured storage backend."""

    if settings is None:
        from ..config import get_settings

        settings = get_settings()
    sqlite_settings = settings.storage.require_sqlite()
    return SQLiteStorage(sqlite_settings.path, sqlite_settings.pragmas)


__all__ = [
    "SQLiteStorage",
    "ScanMetadata",
    "Storage",
    "StorageError",
    "StoredScanResult",
    "create_storage",
]
