"""Configuration helpers for the scanner job and CLI."""

from __future__ import annotations

from .loader import (
    AppSettings,
    MarketDataSettings,
    RateLimitSettings,
    ScannerSettings,
    ScoringSettings,
    SQLiteSettings,
    StorageSettings,
    get_settings,
    reset_settings_cache,
)

__all__ = [
    "AppSettings",
    "MarketDataSettings",
    "RateLimitSettings",
    "SQLiteSettings",
    "ScannerSettings",
    "ScoringSettings",
    "StorageSettings",
    "get_settings",
    "reset_settings_cache",
]
