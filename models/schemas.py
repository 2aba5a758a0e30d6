"""
Shared data structures for the scan pipeline and the classifier adapters.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence

Timeframe = Literal["intraday", "swing"]
Direction = Literal["buy", "sell", "no-trade"]
Trend = Literal["rising", "falling", "consolidating"]
ConfidenceLevel = Literal["high", "medium", "low"]
VolumeStatus = Literal["high", "normal", "low"]
Sentiment = Literal["bullish", "bearish", "choppy"]

TIMEFRAMES: tuple[Timeframe, ...] = ("intraday", "swing")


@dataclass(slots=True)
class Instrument:
    """Tradable security; `resolved_id` is filled in lazily by the resolver."""

    symbol: str
    exchange: str = "NSE"
    resolved_id: str | None = None


@dataclass(slots=True, frozen=True)
class Candle:
    """One OHLC(V) bar; timestamp is seconds since epoch."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float | None = None


@dataclass(slots=True, frozen=True)
class Ohlc:
    open: float
    high: float
    low: float
    close: float


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Indicator-enriched state of one instrument at scan time."""

    symbol: str
    resolved_id: str
    price: float
    rsi: float
    ema50: float
    ema200: float
    vwap: float
    trend: Trend
    ohlc: Ohlc
    volume_status: VolumeStatus = "normal"


@dataclass(slots=True)
class ClassificationRequest:
    """Request payload passed to model adapters."""

    model_id: str
    snapshot: Snapshot
    timeframe: Timeframe
    feedback: Sequence[str] = ()
    strategy: str = "single-pass"


@dataclass(slots=True)
class TradeSignal:
    """Structured trade recommendation surfaced to the dashboard."""

    id: str
    instrument_symbol: str
    timeframe: Timeframe
    direction: Direction
    entry_price: float
    stop_loss: float
    target: float
    risk_reward_ratio: float
    confidence_score: int
    confidence_level: ConfidenceLevel
    reason: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    target2: Optional[float] = None
    timeline: str | None = None
    risk_percentage: int | None = None
    prediction_summary: str | None = None
    model_id: str | None = None
    taken: bool = False
    feedback: str | None = None
    sources: List[Dict[str, str]] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        """Identity used for merging: (instrument, timeframe)."""
        return (self.instrument_symbol, self.timeframe)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        return payload

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "TradeSignal":
        data = dict(payload)
        raw_ts = data.get("timestamp")
        if isinstance(raw_ts, str):
            data["timestamp"] = datetime.fromisoformat(raw_ts)
        elif not isinstance(raw_ts, datetime):
            data["timestamp"] = datetime.now(tz=timezone.utc)
        known = TradeSignal.__dataclass_fields__.keys()
        return TradeSignal(**{k: v for k, v in data.items() if k in known})


@dataclass(slots=True, frozen=True)
class MarketBreadth:
    """Advance/decline counts over the snapshots analysed in one cycle."""

    advancing: int
    declining: int
    unchanged: int

    @staticmethod
    def from_snapshots(snapshots: Iterable[Snapshot]) -> "MarketBreadth":
        advancing = declining = unchanged = 0
        for snap in snapshots:
            if snap.trend == "rising":
                advancing += 1
            elif snap.trend == "falling":
                declining += 1
            else:
                unchanged += 1
        return MarketBreadth(advancing=advancing, declining=declining, unchanged=unchanged)


@dataclass(slots=True)
class MarketMood:
    sentiment: Sentiment
    summary: str
    sources: List[Dict[str, str]] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    model_id: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        return payload

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "MarketMood":
        data = dict(payload)
        if isinstance(data.get("timestamp"), str):
            data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        else:
            data.pop("timestamp", None)
        known = MarketMood.__dataclass_fields__.keys()
        return MarketMood(**{k: v for k, v in data.items() if k in known})
