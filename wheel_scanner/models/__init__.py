from .market import (
    IVDataPoint,
    OptionContract,
    OptionGreeksRecord,
    OptionPriceRecord,
    OptionType,
    PriceBar,
    most_recent,
)
from .outcome import (
    CandidateContract,
    Passed,
    Phase1Failure,
    Phase1Metrics,
    Phase2Failure,
    Phase2Metrics,
    Phase3Failure,
    PortfolioCheck,
    ScanErrored,
    ScanOutcome,
    ScanStatus,
    ScanSummary,
    ScoreBreakdown,
    TrendDirection,
)

__all__ = [
    "IVDataPoint",
    "OptionContract",
    "OptionGreeksRecord",
    "OptionPriceRecord",
    "OptionType",
    "PriceBar",
    "most_recent",
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
