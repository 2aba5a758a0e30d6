"""
Market scanner: indicators, instrument resolution, data fetching, and the scan cycle.
"""

from .buffer import merge_signals, rank_signals  # noqa: F401
from .fetcher import MarketDataFetcher  # noqa: F401
from .indicators import IndicatorCalculator, build_snapshot, compute_indicators  # noqa: F401
from .pipeline import (  # noqa: F401
    InsufficientCandidatesError,
    ScanOrchestrator,
    ScanResult,
    ScanState,
)
from .resolver import InstrumentResolver  # noqa: F401
from .settings import ScanSettings  # noqa: F401
