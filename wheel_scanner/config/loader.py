"""Environment aware configuration loader for the wheel scanner."""

from __future__ import annotations

import copy
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..scoring.composite import DEFAULT_WEIGHTS

DEFAULT_SETTINGS: Dict[str, Any] = {
    "scanner": {
        "min_price": 13.0,
        "max_price": 150.0,
        "min_avg_volume": 1_000_000,
        "avg_volume_window": 20,
        "sma_long": 200,
        "sma_short": 50,
        "trend_lookback": 20,
        "sma_trend_tolerance_pct": 0.5,
        "min_iv_rank": 20.0,
        "iv_lookback_days": 365,
        "min_dte": 5,
        "max_dte": 45,
        "delta_min": -0.30,
        "delta_max": -0.02,
        "min_premium_yield": 8.0,
        "min_open_interest": 100,
        "min_option_volume": 20,
        "price_history_keep": 60,
        "fetch_workers": 4,
    },
    "scoring": {
        "weights": dict(DEFAULT_WEIGHTS),
        "yield_range": [8.0, 24.0],
        "iv_rank_range": [20.0, 70.0],
        "delta_sweet_spot": [-0.25, -0.22],
        "preferred_open_interest": 500,
        "max_trend_distance_pct": 20.0,
    },
    "market_data": {
        "provider": "financialdata",
        "base_url": "https://financialdata.net/api/v1",
        "api_key_env": "FINANCIAL_DATA_API_KEY",
        "timeout_seconds": 30.0,
        "page_size": 300,
    },
    "rate_limit": {
        "requests_per_minute": 10,
        "burst": 1,
        "acquire_timeout_seconds": None,
    },
    "storage": {
        "backend": "sqlite",
        "sqlite": {
            "path": "data/wheel_scanner.db",
            "pragmas": {},
        },
    },
}

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"
ENVIRONMENT_VARIABLE = "APP_ENV"


class ScannerSettings(BaseModel):
    """Business thresholds for the five scan phases."""

    model_config = ConfigDict(frozen=True)

    min_price: float = 13.0
    max_price: float = 150.0
    min_avg_volume: float = 1_000_000
    avg_volume_window: int = 20
    sma_long: int = 200
    sma_short: int = 50
    trend_lookback: int = 20
    sma_trend_tolerance_pct: float = 0.5
    min_iv_rank: float = 20.0
    iv_lookback_days: int = 365
    min_dte: int = 5
    max_dte: int = 45
    delta_min: float = -0.30
    delta_max: float = -0.02
    min_premium_yield: float = 8.0
    min_open_interest: int = 100
    min_option_volume: int = 20
    price_history_keep: int = 60
    fetch_workers: int = Field(default=4, ge=1)

    @model_validator(mode="after")
    def _check_ranges(self) -> "ScannerSettings":
        if self.min_price > self.max_price:
            raise ValueError("scanner.min_price must not exceed scanner.max_price")
        if self.min_dte > self.max_dte:
            raise ValueError("scanner.min_dte must not exceed scanner.max_dte")
        if self.delta_min > self.delta_max:
            raise ValueError("scanner.delta_min must not exceed scanner.delta_max")
        return self


class ScoringSettings(BaseModel):
    """Phase-4 weights and normalisation ranges."""

    model_config = ConfigDict(frozen=True)

    weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    yield_range: Tuple[float, float] = (8.0, 24.0)
    iv_rank_range: Tuple[float, float] = (20.0, 70.0)
    delta_sweet_spot: Tuple[float, float] = (-0.25, -0.22)
    preferred_open_interest: float = 500
    max_trend_distance_pct: float = 20.0

    @field_validator("weights", mode="before")
    @classmethod
    def _coerce_weights(cls, value: Mapping[str, Any]) -> Dict[str, float]:
        weights = {key: float(val) for key, val in dict(value or {}).items()}
        missing = set(DEFAULT_WEIGHTS) - set(weights)
        if missing:
            raise ValueError(f"scoring.weights missing: {', '.join(sorted(missing))}")
        return weights


class MarketDataSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str = "financialdata"
    base_url: str = "https://financialdata.net/api/v1"
    api_key_env: str = "FINANCIAL_DATA_API_KEY"
    timeout_seconds: float = Field(default=30.0, gt=0)
    page_size: int = Field(default=300, ge=1)


class RateLimitSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    requests_per_minute: float = Field(default=10, gt=0)
    burst: float = Field(default=1, ge=1)
    acquire_timeout_seconds: Optional[float] = None


class SQLiteSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str = "data/wheel_scanner.db"
    pragmas: Dict[str, Any] = Field(default_factory=dict)


class StorageSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: str = "sqlite"
    sqlite: SQLiteSettings = Field(default_factory=SQLiteSettings)

    def require_sqlite(self) -> SQLiteSettings:
        if self.backend != "sqlite":
            raise ValueError(f"Unsupported storage backend: {self.backend}")
        return self.sqlite


class AppSettings(BaseModel):
    """Fully resolved application settings loaded from YAML."""

    model_config = ConfigDict(frozen=True)

    env: str
    scanner: ScannerSettings = Field(default_factory=ScannerSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    market_data: MarketDataSettings = Field(default_factory=MarketDataSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @field_validator("env")
    @classmethod
    def _normalize_env(cls, value: str) -> str:
        return value.lower()


def _deep_merge(base: MutableMapping[str, Any], overrides: Mapping[str, Any]) -> MutableMapping[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, Mapping):
            existing = base.get(key)
            if isinstance(existing, MutableMapping):
                base[key] = _deep_merge(copy.deepcopy(existing), value)
            else:
                base[key] = copy.deepcopy(value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle.read()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping at the root.")
        return data


def _build_settings(env: str) -> AppSettings:
    config_path = CONFIG_DIR / f"{env}.yaml"
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file for environment '{env}' not found at {config_path}")

    merged = copy.deepcopy(DEFAULT_SETTINGS)
    overrides = _load_yaml(config_path)
    merged = _deep_merge(merged, overrides)
    merged["env"] = env
    return AppSettings.model_validate(merged)


@lru_cache(maxsize=None)
def _cached_settings(env: str) -> AppSettings:
    return _build_settings(env)


def get_settings(env: Optional[str] = None) -> AppSettings:
    """Load settings for the requested environment (default: APP_ENV or 'dev')."""

    resolved_env = (env or os.getenv(ENVIRONMENT_VARIABLE, "dev")).strip().lower()
    return _cached_settings(resolved_env)


def reset_settings_cache() -> None:
    """Clear the cached settings, primarily used during tests."""

    _cached_settings.cache_clear()


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
