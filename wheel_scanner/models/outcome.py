"""Per-ticker scan outcomes.

Each terminal state of the five-phase funnel is its own frozen dataclass so a
result can only carry the metrics of the phases it actually reached.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from .market import OptionContract


class ScanStatus(str, Enum):
    FAILED_PHASE_1 = "FAILED_PHASE_1"
    FAILED_PHASE_2 = "FAILED_PHASE_2"
    FAILED_PHASE_3 = "FAILED_PHASE_3"
    PASSED = "PASSED"
    ERROR = "ERROR"


class TrendDirection(str, Enum):
    RISING = "rising"
    FLAT = "flat"
    FALLING = "falling"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Phase1Metrics:
    stock_price: float
    sma200: Optional[float]
    sma50: Optional[float]
    avg_volume: float
    trend: TrendDirection
    bar_count: int

    def to_record(self) -> Dict[str, Any]:
        return {
            "stockPrice": self.stock_price,
            "sma200": self.sma200,
            "sma50": self.sma50,
            "avgVolume": self.avg_volume,
            "smaTrend": self.trend.value,
        }


@dataclass(frozen=True)
class Phase2Metrics:
    atm_contract: str
    current_iv: Optional[float]
    iv_high_52w: Optional[float]
    iv_low_52w: Optional[float]
    iv_rank: Optional[float]
    iv_points: int

    def to_record(self) -> Dict[str, Any]:
        return {
            "atmContract": self.atm_contract,
            "currentIV": self.current_iv,
            "ivHigh52w": self.iv_high_52w,
            "ivLow52w": self.iv_low_52w,
            "ivRank": self.iv_rank,
        }


@dataclass(frozen=True)
class CandidateContract:
    contract: OptionContract
    dte: int
    delta: float
    theta: float
    bid: float
    iv: Optional[float]
    open_interest: int
    option_volume: int
    premium_yield: float

    def to_record(self) -> Dict[str, Any]:
        return {
            "contractName": self.contract.contract_name,
            "strike": self.contract.strike,
            "expiration": self.contract.expiration.isoformat(),
            "dte": self.dte,
            "delta": self.delta,
            "theta": self.theta,
            "bid": self.bid,
            "iv": self.iv,
            "openInterest": self.open_interest,
            "optionVolume": self.option_volume,
            "premiumYield": self.premium_yield,
        }


@dataclass(frozen=True)
class ScoreBreakdown:
    yield_score: float
    iv_score: float
    delta_score: float
    liquidity_score: float
    trend_score: float
    composite_score: float

    def to_record(self) -> Dict[str, Any]:
        return {
            "yieldScore": self.yield_score,
            "ivScore": self.iv_score,
            "deltaScore": self.delta_score,
            "liquidityScore": self.liquidity_score,
            "trendScore": self.trend_score,
            "compositeScore": self.composite_score,
        }


@dataclass(frozen=True)
class PortfolioCheck:
    has_open_csp: bool = False
    has_assigned_position: bool = False
    flag: Optional[str] = None

    @property
    def portfolio_flag(self) -> bool:
        return self.has_open_csp or self.has_assigned_position

    def to_record(self) -> Dict[str, Any]:
        return {
            "hasOpenCSP": self.has_open_csp,
            "hasAssignedPos": self.has_assigned_position,
            "portfolioFlag": self.portfolio_flag,
            "portfolioNote": self.flag,
        }


class _Outcome:
    ticker: str
    status: ScanStatus
    passed = False

    @property
    def final_reason(self) -> Optional[str]:
        return None

    def _base_record(self) -> Dict[str, Any]:
        return {
            "ticker": self.ticker,
            "status": self.status.value,
            "passed": self.passed,
            "passedPhase1": False,
            "passedPhase2": False,
            "passedPhase3": False,
            "finalReason": self.final_reason,
            "portfolioFlag": False,
            "compositeScore": None,
        }


@dataclass(frozen=True)
class Phase1Failure(_Outcome):
    ticker: str
    reason: str
    phase1: Optional[Phase1Metrics] = None

    status = ScanStatus.FAILED_PHASE_1

    @property
    def final_reason(self) -> str:
        return f"Phase 1: {self.reason}"

    def to_record(self) -> Dict[str, Any]:
        record = self._base_record()
        if self.phase1 is not None:
            record.update(self.phase1.to_record())
        record["phase1Reason"] = self.reason
        return record


@dataclass(frozen=True)
class Phase2Failure(_Outcome):
    ticker: str
    reason: str
    phase1: Phase1Metrics
    phase2: Optional[Phase2Metrics] = None

    status = ScanStatus.FAILED_PHASE_2

    @property
    def final_reason(self) -> str:
        return f"Phase 2: {self.reason}"

    def to_record(self) -> Dict[str, Any]:
        record = self._base_record()
        record.update(self.phase1.to_record())
        record["passedPhase1"] = True
        if self.phase2 is not None:
            record.update(self.phase2.to_record())
        record["phase2Reason"] = self.reason
        return record


@dataclass(frozen=True)
class Phase3Failure(_Outcome):
    ticker: str
    reason: str
    phase1: Phase1Metrics
    phase2: Phase2Metrics

    status = ScanStatus.FAILED_PHASE_3

    @property
    def final_reason(self) -> str:
        return f"Phase 3: {self.reason}"

    def to_record(self) -> Dict[str, Any]:
        record = self._base_record()
        record.update(self.phase1.to_record())
        record.update(self.phase2.to_record())
        record.update({"passedPhase1": True, "passedPhase2": True, "phase3Reason": self.reason})
        return record


@dataclass(frozen=True)
class Passed(_Outcome):
    ticker: str
    phase1: Phase1Metrics
    phase2: Phase2Metrics
    selection: CandidateContract
    scores: ScoreBreakdown
    portfolio: PortfolioCheck

    status = ScanStatus.PASSED
    passed = True

    @property
    def composite_score(self) -> float:
        return self.scores.composite_score

    def to_record(self) -> Dict[str, Any]:
        record = self._base_record()
        for part in (self.phase1, self.phase2, self.selection, self.scores, self.portfolio):
            record.update(part.to_record())
        record.update({"passedPhase1": True, "passedPhase2": True, "passedPhase3": True})
        return record


@dataclass(frozen=True)
class ScanErrored(_Outcome):
    """A ticker aborted by an infrastructure failure (storage, unexpected bug)."""

    ticker: str
    reason: str

    status = ScanStatus.ERROR

    @property
    def final_reason(self) -> str:
        return f"Scan error: {self.reason}"

    def to_record(self) -> Dict[str, Any]:
        return self._base_record()


ScanOutcome = Union[Phase1Failure, Phase2Failure, Phase3Failure, Passed, ScanErrored]


@dataclass(frozen=True)
class ScanSummary:
    total_scanned: int
    total_passed: int
    scan_date: dt.datetime
    results: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalScanned": self.total_scanned,
            "totalPassed": self.total_passed,
            "scanDate": self.scan_date.isoformat(),
        }


__all__ = [
    "CandidateContract",
    "Passed",
    "Phase1Failure",
    "Phase1Metrics",
    "Phase2Failure",
    "Phase2Metrics",
    "Phase3Failure",
    "PortfolioCheck",
    "ScanErrored",
    "ScanOutcome",
    "ScanStatus",
    "ScanSummary",
    "ScoreBreakdown",
    "TrendDirection",
]
