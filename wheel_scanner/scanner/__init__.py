"""Scanner pipeline: indicators, phase logic, per-ticker state machine and orchestrator."""

from .service import ScanCancelled, run_all_users, run_full_scan
from .ticker import TickerScanner

__all__ = ["ScanCancelled", "TickerScanner", "run_all_users", "run_full_scan"]
